"""Per-band value histograms and their order-independent combination."""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

DEFAULT_MAX_BUCKETS = 256


@dataclass(frozen=True, eq=False)
class Histogram:
    """Sorted (value, count) buckets describing one band's distribution."""

    values: np.ndarray
    counts: np.ndarray

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float64)
        counts = np.asarray(self.counts, dtype=np.int64)
        if values.shape != counts.shape or values.ndim != 1:
            raise ValueError("Histogram values and counts must be matching 1D arrays.")
        if values.size and np.any(np.diff(values) <= 0):
            values, counts = _collapse(values, counts)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "counts", counts)

    @classmethod
    def from_values(
        cls,
        data: np.ndarray,
        *,
        nodata: float | None = None,
        max_buckets: int = DEFAULT_MAX_BUCKETS,
    ) -> "Histogram":
        """Build a histogram from raw samples, ignoring nodata and NaN."""
        samples = np.asarray(data, dtype=np.float64).ravel()
        keep = ~np.isnan(samples)
        if nodata is not None and not np.isnan(nodata):
            keep &= samples != nodata
        samples = samples[keep]
        if samples.size == 0:
            return cls.empty()
        unique, counts = np.unique(samples, return_counts=True)
        if unique.size <= max_buckets:
            return cls(unique, counts)
        counts, edges = np.histogram(samples, bins=max_buckets)
        centers = (edges[:-1] + edges[1:]) / 2.0
        nonzero = counts > 0
        return cls(centers[nonzero], counts[nonzero])

    @classmethod
    def empty(cls) -> "Histogram":
        return cls(np.empty(0, dtype=np.float64), np.empty(0, dtype=np.int64))

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def min_max(self) -> tuple[float, float] | None:
        if self.is_empty:
            return None
        return float(self.values[0]), float(self.values[-1])

    def merge(self, other: "Histogram") -> "Histogram":
        """Return the bucket union of two histograms with summed counts."""
        values = np.concatenate([self.values, other.values])
        counts = np.concatenate([self.counts, other.counts])
        return Histogram(*_collapse(values, counts))

    def quantiles(self, fractions: Sequence[float]) -> np.ndarray:
        """Return the bucket values at the given cumulative fractions."""
        if self.is_empty:
            raise ValueError("Cannot compute quantiles of an empty histogram.")
        cumulative = np.cumsum(self.counts)
        targets = np.clip(np.asarray(fractions, dtype=np.float64), 0.0, 1.0) * cumulative[-1]
        indices = np.searchsorted(cumulative, targets, side="left")
        indices = np.clip(indices, 0, self.values.size - 1)
        return self.values[indices]

    def to_dict(self) -> dict[str, Any]:
        return {
            "buckets": [
                [float(value), int(count)] for value, count in zip(self.values, self.counts)
            ]
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Histogram":
        buckets = data.get("buckets", [])
        if not isinstance(buckets, list):
            raise ValueError("Histogram buckets must be a list.")
        values = [float(bucket[0]) for bucket in buckets]
        counts = [int(bucket[1]) for bucket in buckets]
        return cls(np.array(values, dtype=np.float64), np.array(counts, dtype=np.int64))


def _collapse(values: np.ndarray, counts: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return sorted unique values with the summed counts of each."""
    if values.size == 0:
        return values, counts
    unique, inverse = np.unique(values, return_inverse=True)
    summed = np.zeros(unique.size, dtype=np.int64)
    np.add.at(summed, inverse, counts)
    return unique, summed


def combine(histograms: Iterable[Histogram]) -> Histogram:
    """Combine histograms; the result does not depend on input order."""
    return reduce(Histogram.merge, histograms, Histogram.empty())


def histograms_to_payload(histograms: Sequence[Histogram]) -> list[dict[str, Any]]:
    """Serialize a per-band histogram tuple."""
    return [histogram.to_dict() for histogram in histograms]


def histograms_from_payload(payload: object) -> tuple[Histogram, ...]:
    """Parse a per-band histogram list."""
    if isinstance(payload, Mapping):
        payload = payload.get("bands")
    if not isinstance(payload, list):
        raise ValueError("Histogram payload must be a list of bands.")
    return tuple(Histogram.from_dict(band) for band in payload)
