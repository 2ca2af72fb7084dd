"""
Tests for single-table, permutation and grid transform variants.
"""

import numpy as np
import pytest

from pyzpos.lut.grid import NEGATIVE_SENTINEL, POSITIVE_SENTINEL, GridLUTTransform
from pyzpos.lut.transforms import (
    LUTTransform,
    PermutationTransform,
    TransformKind,
    build_transform,
    sorted_permutation,
)


class TestLUTTransform:
    """Test the single global table."""

    def test_apply_every_axis(self):
        lut = LUTTransform([1.0, 2.0, 3.0, 4.0], n_dimensions=2)
        np.testing.assert_allclose(lut.apply([1.5, 0.0]), [2.5, 1.0])
        np.testing.assert_allclose(lut.apply_inverse([2.5, 1.0]), [1.5, 0.0])

    def test_single_axis_passes_others_through(self):
        lut = LUTTransform([0.0, 2.0, 4.0], n_dimensions=3, axis=0)
        np.testing.assert_allclose(lut.apply([0.5, 7.0, 8.0]), [1.0, 7.0, 8.0])
        np.testing.assert_allclose(lut.apply_inverse([3.0, 7.0, 8.0]), [1.5, 7.0, 8.0])

    def test_out_of_range_saturates(self):
        lut = LUTTransform([0.0, 1.0, 2.0])
        np.testing.assert_array_equal(
            lut.apply_axis([-0.1, 2.1]), [NEGATIVE_SENTINEL, POSITIVE_SENTINEL]
        )
        np.testing.assert_array_equal(
            lut.apply_inverse_axis([-1.0, 3.0]), [NEGATIVE_SENTINEL, POSITIVE_SENTINEL]
        )

    def test_position_dimension_checked(self):
        lut = LUTTransform([0.0, 1.0], n_dimensions=2)
        with pytest.raises(ValueError, match="2 coordinates"):
            lut.apply([0.5])

    def test_invalid_axis(self):
        with pytest.raises(ValueError, match="axis"):
            LUTTransform([0.0, 1.0], n_dimensions=2, axis=2)

    def test_rejects_grid(self):
        with pytest.raises(ValueError, match="1D"):
            LUTTransform(np.zeros((2, 3)) + np.arange(3))

    def test_non_monotonic_raises(self):
        with pytest.raises(ValueError, match="non-decreasing"):
            LUTTransform([0.0, 2.0, 1.0])

    def test_to_grid_matches(self):
        lut = LUTTransform([1.0, 2.0, 4.0, 8.0])
        grid = lut.to_grid()
        for t in (0.0, 0.5, 2.25, 3.0):
            assert grid.apply([], t) == pytest.approx(lut.apply([t])[0])

    def test_min_max(self):
        lut = LUTTransform([1.0, 2.0, 4.0])
        assert lut.min_coordinate() == 1.0
        assert lut.max_coordinate() == 4.0


class TestPermutationTransform:
    """Test integer reindexing."""

    def test_round_trip(self):
        perm = PermutationTransform([2, 0, 3, 1])
        for k in range(4):
            assert perm.apply_inverse(perm.apply([k]))[0] == k
            assert perm.apply(perm.apply_inverse([k]))[0] == k

    def test_apply_values(self):
        perm = PermutationTransform([2, 0, 1], n_dimensions=2)
        np.testing.assert_array_equal(perm.apply([0, 1]), [2, 0])
        np.testing.assert_array_equal(perm.apply_inverse([2, 0]), [0, 1])

    def test_axis(self):
        perm = PermutationTransform([1, 0], n_dimensions=3, axis=0)
        np.testing.assert_array_equal(perm.apply([0, 5, 6]), [1, 5, 6])

    def test_identity(self):
        perm = PermutationTransform.identity(5)
        np.testing.assert_array_equal(perm.apply_axis(np.arange(5)), np.arange(5))

    @pytest.mark.parametrize("bad", [[0, 0, 1], [1, 2, 3], [0.0, 1.0]])
    def test_invalid(self, bad):
        with pytest.raises(ValueError):
            PermutationTransform(bad)

    def test_min_max(self):
        perm = PermutationTransform([1, 0, 2])
        assert perm.min_coordinate() == 0.0
        assert perm.max_coordinate() == 2.0


class TestBuildTransform:
    """Test variant selection."""

    def test_kinds(self):
        assert isinstance(build_transform("lut", [0.0, 1.0]), LUTTransform)
        assert isinstance(
            build_transform(TransformKind.PERMUTATION, [1, 0]), PermutationTransform
        )

    def test_grid_positions(self):
        lut = np.array([[0.0, 1.0, 2.0], [10.0, 11.0, 12.0]])
        transform = build_transform(TransformKind.GRID_LUT, lut)
        assert isinstance(transform.grid, GridLUTTransform)
        np.testing.assert_allclose(transform.apply([0.5, 1.0]), [0.5, 6.0])
        np.testing.assert_allclose(transform.apply_inverse([0.5, 6.0]), [0.5, 1.0])
        assert transform.min_coordinate([1.0, 0.0]) == 10.0
        assert transform.max_coordinate([1.0, 0.0]) == 12.0

    def test_grid_bounds_need_position(self):
        transform = build_transform(TransformKind.GRID_LUT, np.array([[0.0, 1.0], [2.0, 3.0]]))
        with pytest.raises(ValueError, match="needs a position"):
            transform.min_coordinate()
        with pytest.raises(ValueError, match="needs a position"):
            transform.max_coordinate(None)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            build_transform("spline", [0.0, 1.0])


class TestSortedPermutation:
    """Test stable sorting of coordinates."""

    def test_stable_with_ties(self):
        sorted_values, forward, backward = sorted_permutation([2, 1, 2, 0])
        np.testing.assert_array_equal(sorted_values, [0, 1, 2, 2])
        np.testing.assert_array_equal(forward, [3, 1, 0, 2])
        np.testing.assert_array_equal(backward, [2, 1, 3, 0])

    def test_backward_inverts_forward(self):
        rng = np.random.default_rng(3)
        _, forward, backward = sorted_permutation(rng.random(20))
        np.testing.assert_array_equal(forward[backward], np.arange(20))
        np.testing.assert_array_equal(backward[forward], np.arange(20))
