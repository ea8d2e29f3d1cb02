"""Locate the impact window(s) inside a captured sample stream.

The stream is run through an edge-enhancing filter and a momentum smoother
that favours sustained rises. Everything above half of the filtered peak is
an impact; each hit is then widened until the signal settles.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

MOMENTUM_PASSES = 5
MOMENTUM_EXPONENT = 1.41
PEAK_FRACTION = 0.5
SETTLE_FRACTION = 0.1
# Centred window over level; always divided by 16, even when clipped at the edges.
# Ends found with the point form (level[i] * fill / 16) come earlier and are
# only reproducible with that form.
SETTLE_WINDOW = 16


@dataclass
class ImpactRegion:
    """Inclusive index range [start, end] into the capture."""

    start: int
    end: int

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __repr__(self) -> str:
        return f"[{self.start}, {self.end}]"


def edge_filter(data: np.ndarray) -> np.ndarray:
    """Scale each interior sample by its absolute distance to both neighbours."""
    out = np.array(data, dtype=float)
    if len(out) < 3:
        return out
    diff = np.abs(out[1:-1] - out[:-2]) + np.abs(out[1:-1] - out[2:])
    out[1:-1] = np.abs(out[1:-1] * diff)
    return out


def momentum(data: np.ndarray) -> None:
    """One smoothing pass, in place.

    Rises build momentum; a dip smaller than the stored momentum is filled
    back up to the previous level at the cost of sqrt(dip).
    """
    for j in range(data.shape[1]):
        col = data[:, j].tolist()
        m = 0.0
        for i in range(1, len(col)):
            if col[i] > col[i - 1]:
                m += (col[i] - col[i - 1]) ** MOMENTUM_EXPONENT
            else:
                dip = col[i - 1] - col[i]
                if m > dip:
                    col[i] += dip
                    m -= math.sqrt(dip)
        data[:, j] = col


def filter_series(series: np.ndarray) -> np.ndarray:
    """Filtered single-axis series: edge filter, momentum, max across axes."""
    data = edge_filter(series)
    for _ in range(MOMENTUM_PASSES):
        momentum(data)
    return data.max(axis=1)


def find_impact_regions(series: np.ndarray) -> list[ImpactRegion]:
    """Find the non-overlapping impact regions in an (N, 3) sample array."""
    series = np.asarray(series, dtype=float)
    n = len(series)
    if n <= 1:
        return []
    if series.ndim == 1:
        series = series.reshape(-1, 1)

    level = filter_series(series)
    threshold = float(level.max()) * PEAK_FRACTION
    settle = threshold * SETTLE_FRACTION

    # Threshold crossings
    regions: list[ImpactRegion] = []
    start: int | None = None
    for i in range(n):
        if start is None:
            if level[i] > threshold:
                start = max(0, i - 1)
        elif level[i] < threshold:
            regions.append(ImpactRegion(start, i))
            start = None
    if start is not None:
        regions.append(ImpactRegion(start, n - 1))

    # Widen each region until the signal has settled
    half = SETTLE_WINDOW // 2
    for region in regions:
        for i in range(region.start, -1, -1):
            if level[i] < settle:
                region.start = i
                break

        for i in range(region.end, n):
            window = level[max(0, i - half):min(i + half, n)]
            if window.sum() / SETTLE_WINDOW < settle:
                region.end = i
                break

        region.end = min(n - 1, region.end + (region.end - region.start))

    return merge_regions(regions)


def merge_regions(regions: list[ImpactRegion]) -> list[ImpactRegion]:
    """Merge overlapping regions, scanning from the last to the first."""
    regions = sorted(regions, key=lambda r: r.start)
    for i in range(len(regions) - 1, 0, -1):
        if regions[i - 1].end >= regions[i].start:
            regions[i - 1].end = max(regions[i - 1].end, regions[i].end)
            del regions[i]
    return regions
