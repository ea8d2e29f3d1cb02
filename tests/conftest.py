"""Shared fixtures and helpers for the smartball test suite."""

from __future__ import annotations

import json
import struct
from pathlib import Path

import numpy as np
import pytest

from smartball.ble import GATT_SUCCESS, Transport
from smartball.commands import TransportFault
from smartball.decoders.sample import SAMPLE_TO_G
from smartball.protocol import Characteristic
from smartball.session import BallSession


# ---------------------------------------------------------------------------
# Line-building helpers
# ---------------------------------------------------------------------------

START_LINE = bytes([0x8A, 0x0A, 0x00, 0x00]) + bytes(16)
TRAILER_LINE = bytes([0x9A]) + bytes(19)


def type_one_line(groups: list[tuple[int, ...]], counter: int = 0) -> bytes:
    """Build a type-1 line; 3-tuples are absolute groups, 6-tuples delta pairs."""
    assert len(groups) == 3
    flags = 0
    body = b""
    for i, group in enumerate(groups):
        if len(group) == 6:
            flags |= 0x80 >> i
            body += struct.pack("<6b", *group)
        else:
            body += struct.pack("<3h", *group)
    return bytes([counter & 0xFF, flags]) + body


def encode_type_one(positions: list[tuple[int, int, int]]) -> list[bytes]:
    """Greedy type-1 encoder: delta pairs where they fit, absolute otherwise."""
    groups: list[tuple[int, ...]] = []
    prev = None
    i = 0
    while i < len(positions):
        cur = positions[i]
        if prev is not None and i + 1 < len(positions):
            nxt = positions[i + 1]
            d1 = tuple(c - p for c, p in zip(cur, prev))
            d2 = tuple(n - c for n, c in zip(nxt, cur))
            if all(-128 <= d <= 127 for d in d1 + d2):
                groups.append(d1 + d2)
                prev = nxt
                i += 2
                continue
        groups.append(cur)
        prev = cur
        i += 1
    lines = []
    for n in range(0, len(groups), 3):
        chunk = groups[n:n + 3]
        assert len(chunk) == 3, "pad input so groups fill whole lines"
        lines.append(type_one_line(chunk, counter=n // 3))
    return lines


def type_two_line(sequence: int, slots: list[tuple[int, ...]]) -> bytes:
    """Build a type-2 line; 3-tuples are absolute slots, 6-tuples delta pairs."""
    assert len(slots) == 3
    word = sequence & 0x1FFF
    body = b""
    for flag, slot in zip((0x8000, 0x4000, 0x2000), slots):
        if len(slot) == 6:
            word |= flag
            body += struct.pack("<6b", *slot)
        else:
            body += struct.pack("<3h", *slot)
    return struct.pack("<H", word) + body


def encode_type_two(series: np.ndarray) -> list[bytes]:
    """Absolute-only type-2 lines for an (N, 3) g-unit series, N a multiple of 3."""
    counts = np.round(np.asarray(series) / SAMPLE_TO_G).astype(int)
    lines = []
    for seq, n in enumerate(range(0, len(counts), 3)):
        slots = [tuple(int(c) for c in row) for row in counts[n:n + 3]]
        lines.append(type_two_line(seq, slots))
    return lines


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class FakeTransport(Transport):
    """Records requests; completions are delivered by the test via complete()."""

    def __init__(self) -> None:
        super().__init__()
        self.requests: list[tuple] = []
        self.fail_handles: set = set()
        self.fail_enable = False
        self.outstanding = 0
        self.max_outstanding = 0

    def _issue(self, request: tuple) -> None:
        if request[1] in self.fail_handles:
            raise TransportFault(f"refused {request}")
        self.requests.append(request)
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)

    def enable_notifications(self, handle) -> None:
        if self.fail_enable:
            raise TransportFault("enable refused")
        self.requests.append(("enable", handle))

    def write(self, handle, payload: bytes, descriptor: str | None = None) -> None:
        self._issue(("write", handle, bytes(payload), descriptor))

    def read(self, handle, descriptor: str | None = None) -> None:
        self._issue(("read", handle, descriptor))

    def complete(self, value: bytes | None = None, status: int = GATT_SUCCESS) -> None:
        self.outstanding -= 1
        super().complete(value, status)

    @property
    def writes(self) -> list[tuple]:
        return [r for r in self.requests if r[0] == "write"]


def register_all(session: BallSession) -> None:
    for c in Characteristic:
        session.add_attribute(c, c.name)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport: FakeTransport) -> BallSession:
    s = BallSession(transport)
    register_all(s)
    return s


def run_to_idle(transport: FakeTransport, limit: int = 100) -> None:
    """Complete requests until nothing is outstanding."""
    for _ in range(limit):
        if transport.outstanding == 0:
            return
        transport.complete()
    raise AssertionError("transport never went idle")


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def impact_series(n: int = 600, at: int = 300, width: int = 30, peak: float = 8.0) -> np.ndarray:
    """Quiet (N, 3) g-unit series with one damped burst starting at ``at``."""
    rng = np.random.default_rng(0)
    series = rng.normal(0.0, 0.01, size=(n, 3))
    series[:, 2] += 1.0
    t = np.arange(width)
    burst = peak * np.exp(-t / (width / 4)) * np.sin(t * 0.9)
    series[at:at + width, 0] += burst
    series[at:at + width, 1] += 0.5 * burst
    series[at:at + width, 2] -= 0.3 * burst
    return series


# ---------------------------------------------------------------------------
# JSONL capture file helpers
# ---------------------------------------------------------------------------


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as JSONL to the given path."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


def make_capture_entry(
    characteristic: Characteristic,
    data: bytes,
    timestamp: str = "2024-02-13T12:00:00Z",
) -> dict:
    """Create a single JSONL packet entry."""
    return {
        "uuid": str(characteristic.uuid),
        "hex_data": data.hex(),
        "timestamp": timestamp,
    }
