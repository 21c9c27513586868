from __future__ import annotations

import itertools

import numpy as np
import pytest

from tilemosaic.histogram import (
    Histogram,
    combine,
    histograms_from_payload,
    histograms_to_payload,
)


def _same(left: Histogram, right: Histogram) -> bool:
    return np.array_equal(left.values, right.values) and np.array_equal(left.counts, right.counts)


def test_from_values_ignores_nodata_and_nan() -> None:
    data = np.array([[1.0, 2.0, 2.0], [np.nan, -9999.0, 3.0]])
    histogram = Histogram.from_values(data, nodata=-9999.0)
    assert histogram.values.tolist() == [1.0, 2.0, 3.0]
    assert histogram.counts.tolist() == [1, 2, 1]
    assert histogram.total == 4
    assert histogram.min_max() == (1.0, 3.0)


def test_from_values_buckets_large_inputs() -> None:
    data = np.arange(1000, dtype=np.float64)
    histogram = Histogram.from_values(data, max_buckets=10)
    assert histogram.values.size == 10
    assert histogram.total == 1000


def test_empty_histogram() -> None:
    histogram = Histogram.from_values(np.full((2, 2), np.nan))
    assert histogram.is_empty
    assert histogram.min_max() is None
    with pytest.raises(ValueError, match="empty histogram"):
        histogram.quantiles([0.5])


def test_unsorted_buckets_are_collapsed() -> None:
    histogram = Histogram(np.array([3.0, 1.0, 3.0]), np.array([1, 2, 4]))
    assert histogram.values.tolist() == [1.0, 3.0]
    assert histogram.counts.tolist() == [2, 5]


def test_mismatched_arrays_rejected() -> None:
    with pytest.raises(ValueError, match="matching 1D arrays"):
        Histogram(np.array([1.0, 2.0]), np.array([1]))


def test_merge_is_commutative_and_associative() -> None:
    first = Histogram.from_values(np.array([1.0, 2.0, 2.0]))
    second = Histogram.from_values(np.array([2.0, 5.0]))
    third = Histogram.from_values(np.array([0.5, 5.0, 9.0]))

    assert _same(first.merge(second), second.merge(first))
    assert _same(first.merge(second).merge(third), first.merge(second.merge(third)))
    expected = combine([first, second, third])
    for ordering in itertools.permutations([first, second, third]):
        assert _same(combine(ordering), expected)
    assert expected.values.tolist() == [0.5, 1.0, 2.0, 5.0, 9.0]
    assert expected.counts.tolist() == [1, 1, 3, 2, 1]


def test_merge_with_empty_is_identity() -> None:
    histogram = Histogram.from_values(np.array([4.0, 4.0, 7.0]))
    assert _same(histogram.merge(Histogram.empty()), histogram)
    assert combine([]).is_empty


def test_quantiles() -> None:
    histogram = Histogram(np.array([1.0, 2.0, 3.0, 4.0]), np.array([1, 1, 1, 1]))
    assert histogram.quantiles([0.25, 0.5, 0.75, 1.0]).tolist() == [1.0, 2.0, 3.0, 4.0]
    assert histogram.quantiles([0.0]).tolist() == [1.0]


def test_payload_forms() -> None:
    bands = (
        Histogram(np.array([1.0, 2.0]), np.array([3, 4])),
        Histogram.empty(),
    )
    payload = histograms_to_payload(bands)
    assert payload[0] == {"buckets": [[1.0, 3], [2.0, 4]]}
    parsed = histograms_from_payload({"bands": payload})
    assert len(parsed) == 2
    assert _same(parsed[0], bands[0])
    assert parsed[1].is_empty


def test_payload_rejects_non_list() -> None:
    with pytest.raises(ValueError, match="list of bands"):
        histograms_from_payload("nope")
    with pytest.raises(ValueError, match="buckets must be a list"):
        Histogram.from_dict({"buckets": {"a": 1}})
