"""Capture to force pipeline: regions, then features, then the force model."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np

from smartball.analytics.correlator import evaluate
from smartball.analytics.features import extract_features
from smartball.analytics.impact import find_impact_regions
from smartball.decoders.capture import Capture
from smartball.decoders.sample import SAMPLE_PERIOD


@dataclass
class ImpactResult:
    """One impact region and the force estimated from it."""

    start: int
    end: int
    start_time: float  # seconds
    duration: float  # seconds
    peak_g: float
    force: float
    features: dict[str, float] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"Impact([{self.start}, {self.end}] t={self.start_time:.3f}s "
            f"dur={self.duration * 1000:.0f}ms peak={self.peak_g:.2f}g force={self.force:.1f})"
        )


@dataclass
class CaptureReport:
    data_type: int
    samples: int
    requested: int | None
    cancelled: bool
    impacts: list[ImpactResult] = field(default_factory=list)

    @property
    def strongest(self) -> ImpactResult | None:
        return max(self.impacts, key=lambda r: r.force, default=None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (JSON-friendly)."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


def analyze_window(series: np.ndarray, times: np.ndarray | None = None) -> list[ImpactResult]:
    """Find every impact in an (N, 3) g-unit series and estimate its force."""
    series = np.asarray(series, dtype=np.float64)
    if times is None:
        times = np.arange(len(series)) * SAMPLE_PERIOD

    results: list[ImpactResult] = []
    for region in find_impact_regions(series):
        window = series[region.start:region.end + 1]
        features = extract_features(window)
        results.append(ImpactResult(
            start=region.start,
            end=region.end,
            start_time=float(times[region.start]),
            duration=(region.end - region.start) * SAMPLE_PERIOD,
            peak_g=float(np.max(np.abs(window))),
            force=evaluate(features),
            features=features.to_dict(),
        ))
    return results


def analyze_capture(capture: Capture) -> CaptureReport:
    """Analyse a sealed capture.

    Raises CaptureInProgress if the capture is still receiving data.
    """
    series = capture.to_array()
    return CaptureReport(
        data_type=int(capture.data_type),
        samples=len(capture),
        requested=capture.requested,
        cancelled=capture.cancelled,
        impacts=analyze_window(series, capture.times()),
    )
