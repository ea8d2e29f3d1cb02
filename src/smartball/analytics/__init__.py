"""Impact detection and force estimation for captured kick data.

Modules:
    impact     -- Impact region extraction (edge filter + momentum smoothing)
    features   -- Per-axis statistical and spectral features
    correlator -- Fixed-coefficient linear force model
    pipeline   -- Capture to force report
"""

from smartball.analytics.impact import ImpactRegion, find_impact_regions, merge_regions
from smartball.analytics.features import FEATURES, FEATURE_NAMES, FeatureSet, extract_features
from smartball.analytics.correlator import (
    COEFFICIENTS,
    FeatureLengthMismatch,
    estimate_force,
    evaluate,
)
from smartball.analytics.pipeline import (
    CaptureReport,
    ImpactResult,
    analyze_capture,
    analyze_window,
)

__all__ = [
    # impact
    "ImpactRegion",
    "find_impact_regions",
    "merge_regions",
    # features
    "FEATURES",
    "FEATURE_NAMES",
    "FeatureSet",
    "extract_features",
    # correlator
    "COEFFICIENTS",
    "FeatureLengthMismatch",
    "estimate_force",
    "evaluate",
    # pipeline
    "CaptureReport",
    "ImpactResult",
    "analyze_capture",
    "analyze_window",
]
