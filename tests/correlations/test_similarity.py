"""
Tests for normalized cross-correlation and threaded correlation of stacks.
"""

import numpy as np
import pytest

from pyzpos.correlations.similarity import (
    block_ncc,
    compute_correlations,
    compute_similarity_matrix,
    ncc,
)


@pytest.fixture
def drifting_stack():
    """Sections that decorrelate with index distance."""
    rng = np.random.default_rng(42)
    base = rng.random((24, 20))
    sections = [base]
    for _ in range(7):
        sections.append(0.8 * sections[-1] + 0.2 * rng.random((24, 20)))
    return np.stack(sections)


class TestNCC:
    """Test similarity of single section pairs."""

    def test_identical(self):
        a = np.random.default_rng(0).random((8, 8))
        assert ncc(a, a) == pytest.approx(1.0)

    def test_negated(self):
        a = np.random.default_rng(0).random((8, 8))
        assert ncc(a, -a) == pytest.approx(-1.0)

    def test_affine_invariance(self):
        a = np.random.default_rng(0).random((8, 8))
        assert ncc(a, 3.0 * a + 7.0) == pytest.approx(1.0)

    def test_constant_section_is_nan(self):
        a = np.random.default_rng(0).random((8, 8))
        assert np.isnan(ncc(a, np.ones_like(a)))

    @pytest.mark.parametrize("value", [0.0, 0.01, 0.1, 0.3, 7.7, 30.085, 1234.567])
    def test_identical_flat_sections_are_nan(self, value):
        """Two equal constant sections have no variance to correlate."""
        a = np.full((16, 12), value)
        assert np.isnan(ncc(a, a.copy()))

    def test_flat_float32_section_is_nan(self):
        a = np.full((9, 9), 0.1, dtype=np.float32)
        assert np.isnan(ncc(a, np.random.default_rng(0).random((9, 9))))

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="shapes differ"):
            ncc(np.zeros((3, 3)), np.zeros((3, 4)))


class TestBlockNCC:
    """Test blockwise similarity."""

    def test_partial_blocks(self):
        a = np.random.default_rng(1).random((10, 7))
        result = block_ncc(a, a, 4)
        assert result.shape == (3, 2)
        np.testing.assert_allclose(result, 1.0)

    def test_blocks_are_independent(self):
        rng = np.random.default_rng(2)
        a = rng.random((8, 8))
        b = a.copy()
        b[4:, 4:] = -b[4:, 4:]
        result = block_ncc(a, b, 4)
        np.testing.assert_allclose(result[0, 0], 1.0)
        np.testing.assert_allclose(result[1, 1], -1.0)

    def test_flat_block_is_nan(self):
        """Only the constant block is missing."""
        rng = np.random.default_rng(3)
        a = rng.random((8, 8))
        a[:4, :4] = 0.3
        result = block_ncc(a, a.copy(), 4)
        assert np.isnan(result[0, 0])
        np.testing.assert_allclose(result[1, 1], 1.0)

    def test_invalid_block_size(self):
        with pytest.raises(ValueError, match="block_size"):
            block_ncc(np.zeros((2, 2)), np.zeros((2, 2)), 0)


class TestComputeCorrelations:
    """Test correlation stores of stacks."""

    def test_windows(self, drifting_stack):
        store = compute_correlations(drifting_stack, comparison_range=2)
        assert store.indices == list(range(8))
        assert store.get_meta(0).z_coordinate_min == 0
        assert store.get_meta(0).z_coordinate_max == 3
        assert store.get_meta(5).z_coordinate_min == 3
        assert store.get_meta(7).z_coordinate_max == 8
        assert store.get_correlations(4).shape == (1, 1, 5)

    def test_matrix_symmetric_with_unit_diagonal(self, drifting_stack):
        matrix = compute_similarity_matrix(drifting_stack, comparison_range=3)
        np.testing.assert_allclose(np.diag(matrix), 1.0)
        np.testing.assert_array_equal(np.isnan(matrix), np.isnan(matrix.T))
        finite = np.isfinite(matrix)
        np.testing.assert_allclose(matrix[finite], matrix.T[finite])

    def test_band(self, drifting_stack):
        matrix = compute_similarity_matrix(drifting_stack, comparison_range=2)
        i, j = np.indices(matrix.shape)
        assert np.all(np.isfinite(matrix[np.abs(i - j) <= 2]))
        assert np.all(np.isnan(matrix[np.abs(i - j) > 2]))

    def test_similarity_decays_with_distance(self, drifting_stack):
        matrix = compute_similarity_matrix(drifting_stack, comparison_range=3)
        assert matrix[0, 1] > matrix[0, 3]

    def test_worker_count_does_not_change_result(self, drifting_stack):
        single = compute_correlations(drifting_stack, 2, block_size=8, n_workers=1)
        pooled = compute_correlations(drifting_stack, 2, block_size=8, n_workers=4)
        for z in single.indices:
            np.testing.assert_array_equal(
                single.get_correlations(z), pooled.get_correlations(z)
            )

    def test_block_grid(self, drifting_stack):
        store = compute_correlations(drifting_stack, 1, block_size=8)
        assert (store.x_max, store.y_max) == (3, 3)
        assert len(store.xy_coordinates()) == 9

    @pytest.mark.parametrize("value", [0.01, 30.085, 1234.567, 3000.0])
    def test_blank_sections_are_missing(self, value):
        """Neighbouring blank sections leave their pair NaN in the matrix."""
        stack = np.full((2, 12, 10), value, dtype=np.float32)
        matrix = compute_similarity_matrix(stack, comparison_range=1)
        assert np.isnan(matrix[0, 1])
        assert np.isnan(matrix[1, 0])
        np.testing.assert_array_equal(np.diag(matrix), 1.0)

    def test_invalid_range(self, drifting_stack):
        with pytest.raises(ValueError, match="comparison_range"):
            compute_correlations(drifting_stack, 0)

    def test_requires_stack(self):
        with pytest.raises(ValueError, match="at least 2"):
            compute_correlations(np.zeros((1, 4, 4)), 1)
        with pytest.raises(ValueError, match="3D|\\(Z, X, Y\\)"):
            compute_correlations(np.zeros((4, 4)), 1)
