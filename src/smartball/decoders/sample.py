"""The timestamped 3-axis accelerometer sample shared by both stream codecs."""

from __future__ import annotations

from dataclasses import dataclass

# Device counts to g
SAMPLE_TO_G = 0.002
# Seconds between consecutive samples (1 kHz)
SAMPLE_PERIOD = 0.001


@dataclass(frozen=True)
class Sample:
    """One accelerometer reading in raw device counts."""

    time: float  # seconds since the first sample of the stream
    x: int
    y: int
    z: int

    @property
    def g(self) -> tuple[float, float, float]:
        return (self.x * SAMPLE_TO_G, self.y * SAMPLE_TO_G, self.z * SAMPLE_TO_G)

    @property
    def max_magnitude(self) -> int:
        return max(abs(self.x), abs(self.y), abs(self.z))

    def __repr__(self) -> str:
        return f"Sample(t={self.time:.3f}s, x={self.x}, y={self.y}, z={self.z})"


def wrap_int16(value: int) -> int:
    """Wrap an integer into the signed 16-bit range, as the device does."""
    return ((value + 0x8000) & 0xFFFF) - 0x8000
