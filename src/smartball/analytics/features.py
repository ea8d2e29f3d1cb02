"""Statistical and spectral features of an impact window.

Every feature is computed per axis (or per unordered axis pair), made
absolute, and averaged across axes. The order of ``FEATURES`` is the order
the force model's coefficients expect and must not change.

Spectral features work on the full complex DFT of each axis, taking the
absolute real part ("reals") and absolute imaginary part ("imags") of every
bin.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Callable, Iterator, Sequence

import numpy as np
from scipy import stats


# ---------------------------------------------------------------------------
# Axis series
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Spectrum:
    reals: np.ndarray
    imags: np.ndarray

    @classmethod
    def of(cls, values: np.ndarray) -> Spectrum:
        fft = np.fft.fft(values)
        return cls(np.abs(fft.real), np.abs(fft.imag))

    def __len__(self) -> int:
        return len(self.reals)


class AxisSeries:
    """One axis of the window, with its spectrum computed on first use."""

    def __init__(self, values: Sequence[float]) -> None:
        self.values = np.asarray(values, dtype=np.float64)
        self._spectrum: Spectrum | None = None

    def __len__(self) -> int:
        return len(self.values)

    @property
    def spectrum(self) -> Spectrum:
        if self._spectrum is None:
            self._spectrum = Spectrum.of(self.values)
        return self._spectrum


# ---------------------------------------------------------------------------
# Time-domain features
# ---------------------------------------------------------------------------


def mean(axis: AxisSeries) -> float:
    return float(np.mean(axis.values))


def kurtosis(axis: AxisSeries) -> float:
    """Bias-corrected excess kurtosis."""
    return float(stats.kurtosis(axis.values, fisher=True, bias=False))


def maximum(axis: AxisSeries) -> float:
    return float(np.max(axis.values))


def minimum(axis: AxisSeries) -> float:
    return float(np.min(axis.values))


def skewness(axis: AxisSeries) -> float:
    """Bias-corrected sample skewness."""
    return float(stats.skew(axis.values, bias=False))


def std_dev(axis: AxisSeries) -> float:
    return float(np.std(axis.values, ddof=1))


def average_deviation(axis: AxisSeries) -> float:
    v = axis.values
    return float(np.mean(np.abs(v - np.mean(v))))


def rms_amplitude(axis: AxisSeries) -> float:
    return float(np.sqrt(np.mean(axis.values ** 2)))


def compute_rmssd(intervals: Sequence[float]) -> float:
    """Root mean square of successive differences; 0.0 with fewer than 2 values."""
    if len(intervals) < 2:
        return 0.0
    diffs = np.diff(np.asarray(intervals, dtype=np.float64))
    return float(np.sqrt(np.mean(diffs ** 2)))


def peak_rmssd(axis: AxisSeries) -> float:
    """RMSSD over the positions of strict local maxima."""
    v = axis.values
    if len(v) < 3:
        return 0.0
    peaks = np.flatnonzero((v[1:-1] > v[:-2]) & (v[1:-1] > v[2:])) + 1
    return compute_rmssd(peaks)


def mean_first_difference(axis: AxisSeries) -> float:
    return float(np.mean(np.abs(np.diff(axis.values))))


def mean_second_difference(axis: AxisSeries) -> float:
    return float(np.mean(np.abs(np.diff(np.abs(np.diff(axis.values))))))


def zero_crossing_rate(axis: AxisSeries) -> float:
    v = axis.values
    return float(np.sum(v[1:] * v[:-1] < 0.0) / (len(v) - 1))


# ---------------------------------------------------------------------------
# Axis-pair features
# ---------------------------------------------------------------------------


def pearson(a: AxisSeries, b: AxisSeries) -> float:
    return float(np.corrcoef(a.values, b.values)[0, 1])


def spearman(a: AxisSeries, b: AxisSeries) -> float:
    return float(stats.spearmanr(a.values, b.values)[0])


def kendall(a: AxisSeries, b: AxisSeries) -> float:
    """Kendall's tau-b."""
    return float(stats.kendalltau(a.values, b.values)[0])


def covariance(a: AxisSeries, b: AxisSeries) -> float:
    return float(np.cov(a.values, b.values, ddof=1)[0, 1])


# ---------------------------------------------------------------------------
# Spectral features
# ---------------------------------------------------------------------------


def spectral_energy(axis: AxisSeries) -> float:
    s = axis.spectrum
    return float(np.sum(s.reals ** 2 + s.imags ** 2))


def spectral_std_dev(axis: AxisSeries) -> float:
    s = axis.spectrum
    return float(np.sqrt(np.sum(s.imags ** 2 * s.reals) / np.sum(s.reals)))


def spectral_centroid(axis: AxisSeries) -> float:
    s = axis.spectrum
    return float(np.sum(s.imags * s.reals) / abs(np.sum(s.reals)))


def spectral_skewness(axis: AxisSeries) -> float:
    s = axis.spectrum
    centroid = spectral_centroid(axis)
    return float(np.sum((s.reals - centroid) ** 3 * s.reals) / spectral_std_dev(axis) ** 3)


def spectral_kurtosis(axis: AxisSeries) -> float:
    s = axis.spectrum
    centroid = spectral_centroid(axis)
    return float(np.sum((s.reals - centroid) ** 4 * s.reals) / spectral_std_dev(axis) ** 4 - 3.0)


def spectral_crest(axis: AxisSeries) -> float:
    return float(np.max(axis.spectrum.reals) / spectral_centroid(axis))


def irregularity_k(axis: AxisSeries) -> float:
    r = axis.spectrum.reals
    local = (r[:-2] + r[1:-1] + r[2:]) / 3.0
    return float(np.sum(np.abs(r[1:-1] - local)))


def irregularity_j(axis: AxisSeries) -> float:
    r = axis.spectrum.reals
    return float(np.sum((r[1:-1] - r[2:]) ** 2) / np.sum(r[1:-1] ** 2))


def spectral_flatness(axis: AxisSeries) -> float:
    """Geometric over arithmetic mean of the reals; 0.0 when undefined."""
    r = axis.spectrum.reals
    geometric = float(np.exp(np.mean(np.log(r))))
    arithmetic = float(np.mean(r))
    if np.isnan(geometric) or np.isnan(arithmetic) or arithmetic == 0.0:
        return 0.0
    return geometric / arithmetic


def spectral_smoothness(axis: AxisSeries) -> float:
    logs = np.log(axis.spectrum.reals)
    local = (logs[:-2] + logs[1:-1] + logs[2:]) / 3.0
    return float(np.sum(20.0 * np.abs(logs[1:-1] - local)))


# ---------------------------------------------------------------------------
# Registry and extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Feature:
    name: str
    func: Callable[..., float]
    pairwise: bool = False


FEATURES: tuple[Feature, ...] = (
    Feature("Avg", mean),
    Feature("Kurt", kurtosis),
    Feature("Max", maximum),
    Feature("Min", minimum),
    Feature("Skew", skewness),
    Feature("Std_Dev", std_dev),
    Feature("Avg_Dev", average_deviation),
    Feature("RMS_Amp", rms_amplitude),
    Feature("Energy", spectral_energy),
    Feature("PCor", pearson, pairwise=True),
    Feature("SCor", spearman, pairwise=True),
    Feature("KCor", kendall, pairwise=True),
    Feature("Cov", covariance, pairwise=True),
    Feature("Spec_Std_Dev", spectral_std_dev),
    Feature("Spec_Centroid", spectral_centroid),
    Feature("Spec_Skew", spectral_skewness),
    Feature("Spec_Kurt", spectral_kurtosis),
    Feature("Spec_Crest", spectral_crest),
    Feature("Irreg_K", irregularity_k),
    Feature("Irreg_J", irregularity_j),
    Feature("Flatness", spectral_flatness),
    Feature("Smoothness", spectral_smoothness),
    Feature("RMSSD", peak_rmssd),
    Feature("Mean_of_First_difference", mean_first_difference),
    Feature("Mean_of_Second_differences", mean_second_difference),
    Feature("Zero_Crossing_Rate", zero_crossing_rate),
)

FEATURE_NAMES = tuple(f.name for f in FEATURES)


class FeatureSet:
    """Feature values keyed by name, in insertion order."""

    def __init__(self) -> None:
        self._values: dict[str, float] = {}

    def put(self, name: str, value: float) -> None:
        self._values[name] = float(value)

    def get(self, name: str, default: float = 0.0) -> float:
        return self._values.get(name, default)

    def __getitem__(self, name: str) -> float:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def names(self) -> list[str]:
        return list(self._values)

    def to_array(self) -> np.ndarray:
        return np.fromiter(self._values.values(), dtype=np.float64, count=len(self._values))

    def to_dict(self) -> dict[str, float]:
        return dict(self._values)

    def __repr__(self) -> str:
        return f"FeatureSet({len(self)} features)"


def extract_features(
    window: np.ndarray,
    features: Sequence[Feature] = FEATURES,
) -> FeatureSet:
    """Compute ``features`` over an (N, axes) window, in order."""
    window = np.asarray(window, dtype=np.float64)
    if window.ndim == 1:
        window = window.reshape(-1, 1)
    axes = [AxisSeries(window[:, j]) for j in range(window.shape[1])]

    result = FeatureSet()
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        for feature in features:
            if feature.pairwise:
                values = [abs(feature.func(a, b)) for a, b in combinations(axes, 2)]
            else:
                values = [abs(feature.func(a)) for a in axes]
            result.put(feature.name, float(np.mean(values)) if values else 0.0)
    return result
