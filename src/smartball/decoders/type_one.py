"""Type-1 sample stream decoder.

Each 20-byte line carries three 6-byte groups at offsets 2, 8 and 14. Bits
7..5 of byte 1 flag, per group, how it is encoded:

    flag clear: one absolute sample, 3x int16 LE (x, y, z)
    flag set:   two samples as six signed byte deltas
                (dx1, dy1, dz1, dx2, dy2, dz2), relative to the running
                previous position

Byte 0 is a line counter and is not checked.
"""

from __future__ import annotations

import logging
import struct

from smartball.decoders.sample import SAMPLE_PERIOD, Sample, wrap_int16
from smartball.protocol import PACKET_SIZE

logger = logging.getLogger(__name__)

GROUP_OFFSETS = (2, 8, 14)
GROUP_SIZE = 6


class TypeOneDecoder:
    """Stateful decoder; feed lines in arrival order."""

    def __init__(self) -> None:
        self._previous: tuple[int, int, int] | None = None
        self.samples_created = 0

    def add_packet(self, packet: bytes) -> list[Sample]:
        """Decode one line. Lines shorter than 20 bytes are ignored."""
        if len(packet) < PACKET_SIZE:
            return []

        flags = packet[1]
        samples: list[Sample] = []

        for i, offset in enumerate(GROUP_OFFSETS):
            group = packet[offset:offset + GROUP_SIZE]
            if flags & (0x80 >> i):
                if self._previous is None:
                    # The device always leads with an absolute group
                    logger.warning("Delta-coded group %d with no absolute sample before it, skipped", i)
                    continue
                deltas = struct.unpack("<6b", group)
                samples.append(self._emit(self._offset(self._previous, deltas[:3])))
                samples.append(self._emit(self._offset(self._previous, deltas[3:])))
            else:
                samples.append(self._emit(struct.unpack("<3h", group)))

        return samples

    @staticmethod
    def _offset(base: tuple[int, int, int], deltas: tuple[int, ...]) -> tuple[int, int, int]:
        return (
            wrap_int16(base[0] + deltas[0]),
            wrap_int16(base[1] + deltas[1]),
            wrap_int16(base[2] + deltas[2]),
        )

    def _emit(self, position: tuple[int, int, int]) -> Sample:
        sample = Sample(self.samples_created * SAMPLE_PERIOD, *position)
        self.samples_created += 1
        self._previous = position
        return sample
