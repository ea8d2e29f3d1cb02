"""Tests for smartball.analytics.impact -- filtering and impact region extraction."""

import numpy as np
import pytest

from smartball.analytics.impact import (
    ImpactRegion,
    edge_filter,
    filter_series,
    find_impact_regions,
    merge_regions,
    momentum,
)

from tests.conftest import impact_series


class TestEdgeFilter:
    def test_single_spike(self):
        out = edge_filter(np.array([[0.0], [1.0], [0.0]]))
        np.testing.assert_allclose(out[:, 0], [0.0, 2.0, 0.0])

    def test_endpoints_untouched(self):
        out = edge_filter(np.array([[3.0], [3.0], [3.0], [3.0]]))
        np.testing.assert_allclose(out[:, 0], [3.0, 0.0, 0.0, 3.0])

    def test_short_input_copied(self):
        data = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        out = edge_filter(data)
        np.testing.assert_allclose(out, data)
        assert out is not data


class TestMomentum:
    def test_small_dip_filled(self):
        data = np.array([[0.0], [1.0], [0.5]])
        momentum(data)
        np.testing.assert_allclose(data[:, 0], [0.0, 1.0, 1.0])

    def test_large_dip_kept(self):
        data = np.array([[0.0], [0.1], [0.0]])
        momentum(data)
        np.testing.assert_allclose(data[:, 0], [0.0, 0.1, 0.0])

    def test_axes_independent(self):
        data = np.array([[0.0, 0.0], [1.0, 0.1], [0.5, 0.0]])
        momentum(data)
        np.testing.assert_allclose(data, [[0.0, 0.0], [1.0, 0.1], [1.0, 0.0]])

    def test_filter_series_collapses_axes(self):
        assert filter_series(impact_series(n=50, at=10, width=10)).shape == (50,)


class TestFindImpactRegions:
    def test_empty_and_single(self):
        assert find_impact_regions(np.zeros((0, 3))) == []
        assert find_impact_regions(np.ones((1, 3))) == []

    def test_silent_signal(self):
        assert find_impact_regions(np.zeros((100, 3))) == []

    def test_locates_burst(self):
        regions = find_impact_regions(impact_series())
        assert len(regions) >= 1
        hit = [r for r in regions if r.contains(305)]
        assert len(hit) == 1
        assert 280 <= hit[0].start <= 305

    def test_regions_in_bounds_and_disjoint(self):
        n = 200
        regions = find_impact_regions(impact_series(n=n, at=170, width=30))
        assert regions
        for r in regions:
            assert 0 <= r.start <= r.end <= n - 1
        for a, b in zip(regions, regions[1:]):
            assert a.end < b.start

    def test_spike_runs_to_end(self):
        series = np.zeros((10, 3))
        series[1, 0] = 5.0
        assert find_impact_regions(series) == [ImpactRegion(0, 9)]

    def test_one_dimensional_input(self):
        series = np.zeros(10)
        series[1] = 5.0
        assert find_impact_regions(series) == [ImpactRegion(0, 9)]


class TestMergeRegions:
    def test_overlapping_merged(self):
        merged = merge_regions([ImpactRegion(10, 20), ImpactRegion(0, 12), ImpactRegion(30, 40)])
        assert merged == [ImpactRegion(0, 20), ImpactRegion(30, 40)]

    def test_nested_keeps_outer_end(self):
        assert merge_regions([ImpactRegion(0, 50), ImpactRegion(10, 20)]) == [ImpactRegion(0, 50)]

    def test_touching_merged(self):
        assert merge_regions([ImpactRegion(0, 5), ImpactRegion(5, 9)]) == [ImpactRegion(0, 9)]

    def test_chain_merged(self):
        regions = [ImpactRegion(0, 4), ImpactRegion(3, 8), ImpactRegion(7, 12)]
        assert merge_regions(regions) == [ImpactRegion(0, 12)]


class TestImpactRegion:
    def test_len_and_contains(self):
        r = ImpactRegion(3, 7)
        assert len(r) == 5
        assert r.contains(3) and r.contains(7)
        assert not r.contains(8)

    def test_repr(self):
        assert repr(ImpactRegion(1, 2)) == "[1, 2]"


@pytest.mark.parametrize("at", [50, 250, 450])
def test_burst_position_tracked(at):
    regions = find_impact_regions(impact_series(at=at))
    assert any(r.contains(at + 5) for r in regions)
