"""Linear force model over the impact feature vector.

force = c[0] + sum(feature[i] * c[i + 1])

The coefficients were fit offline by multiple linear regression against
measured kick forces. They map one-to-one onto ``features.FEATURES``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from smartball.analytics.features import FEATURES, FeatureSet, extract_features

COEFFICIENTS: tuple[float, ...] = (
    -2980.95850432648,  # intercept
    1461.8982554902464,
    173.37314544160128,
    -2418.0521989188455,
    -399.2262087333679,
    187.0622012502032,
    54.859923289910135,
    0.16875243713025267,
    352.4888589144222,
    -0.015857487780531386,
    -0.0024783405319758404,
    -2714.053825149518,
    2779.021009588462,
    -2.205621071881506e-05,
    -883.5685037159376,
    859.114476160566,
    0.27568724869874084,
    -3.530260583361065,
    -39.33852881626251,
    -1322.9362407109838,
    190.6937924720649,
    1681.7055578548873,
    413.1189600248107,
    11947.67931809564,
    -12382.14837403676,
    -63.35759838490164,
    2663.201496130363,
)


class FeatureLengthMismatch(ValueError):
    """The feature vector does not line up with the coefficient table."""


def evaluate(feature_set: FeatureSet, coefficients: Sequence[float] = COEFFICIENTS) -> float:
    """Apply the linear model to a feature set."""
    if len(feature_set) != len(coefficients) - 1:
        raise FeatureLengthMismatch(
            f"Expected {len(coefficients) - 1} features, got {len(feature_set)}"
        )
    weights = np.asarray(coefficients, dtype=np.float64)
    return float(weights[0] + np.dot(feature_set.to_array(), weights[1:]))


def estimate_force(window: np.ndarray) -> float:
    """Estimated force for an (N, 3) impact window in g."""
    return evaluate(extract_features(window))
