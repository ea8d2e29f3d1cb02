"""Capture buffer: the samples collected during one data transmission."""

from __future__ import annotations

import numpy as np

from smartball.decoders.sample import SAMPLE_TO_G, Sample
from smartball.decoders.type_one import TypeOneDecoder
from smartball.decoders.type_two import TypeTwoDecoder
from smartball.protocol import DataType


class CaptureInProgress(RuntimeError):
    """The capture was read for analysis before it was sealed."""


def make_decoder(data_type: int, requested: int | None) -> TypeOneDecoder | TypeTwoDecoder:
    """Pick the line decoder for a transmission of the given data type."""
    if data_type == DataType.TYPE_ONE:
        return TypeOneDecoder()
    if data_type == DataType.TYPE_TWO:
        return TypeTwoDecoder(requested)
    raise ValueError(f"Unknown data type: {data_type}")


class Capture:
    """Append-only sample buffer fed one notification line at a time.

    The buffer is sealed when the transmission ends or is cancelled; only a
    sealed capture may be analysed.
    """

    def __init__(self, data_type: int, requested: int | None = None) -> None:
        self.data_type = DataType(data_type)
        self.requested = requested
        self.decoder = make_decoder(self.data_type, requested)
        self.samples: list[Sample] = []
        self.raw_lines: list[bytes] = []
        self.complete = False
        self.cancelled = False
        self.max_magnitude = 0

    def __len__(self) -> int:
        return len(self.samples)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "complete" if self.complete else "open"
        return f"Capture(type={int(self.data_type)}, {len(self.samples)}/{self.requested} samples, {state})"

    def add_line(self, line: bytes, start: bool = False, end: bool = False) -> list[Sample]:
        """Feed one notification line and return the samples it produced.

        Type-1 framing lines carry no samples and are only recorded raw. The
        type-2 decoder recognises its own framing.
        """
        if self.complete:
            return []
        line = bytes(line)
        self.raw_lines.append(line)

        if self.data_type == DataType.TYPE_ONE and (start or end):
            return []

        samples = self.decoder.add_packet(line)
        for s in samples:
            self.max_magnitude = max(self.max_magnitude, s.max_magnitude)
        self.samples.extend(samples)
        return samples

    def seal(self, cancelled: bool = False) -> None:
        if not self.complete:
            self.complete = True
            self.cancelled = cancelled

    @property
    def progress(self) -> int:
        """Transmission progress as a percentage, 0 to 100."""
        if not self.requested:
            return 0
        return max(0, min(100, int(100.0 * len(self.samples) / self.requested)))

    def to_array(self) -> np.ndarray:
        """Samples as an (N, 3) float array in g.

        Raises CaptureInProgress if the capture is still being filled.
        """
        if not self.complete:
            raise CaptureInProgress(f"{self!r} is still receiving data")
        if not self.samples:
            return np.zeros((0, 3))
        counts = np.array([(s.x, s.y, s.z) for s in self.samples], dtype=float)
        return counts * SAMPLE_TO_G

    def times(self) -> np.ndarray:
        return np.array([s.time for s in self.samples], dtype=float)
