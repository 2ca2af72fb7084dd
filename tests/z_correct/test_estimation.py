"""
Tests for the neighbour-based coordinate estimator.
"""

import numpy as np
import pytest

from pyzpos.z_correct.estimation import estimate_neighbor_coordinates


def _banded(similarities):
    """Symmetric matrix with unit diagonal and the given adjacent similarities."""
    n = len(similarities) + 1
    matrix = np.full((n, n), np.nan)
    np.fill_diagonal(matrix, 1.0)
    for i, s in enumerate(similarities):
        matrix[i, i + 1] = matrix[i + 1, i] = s
    return matrix


class TestEstimateNeighborCoordinates:
    """Test coordinate placement from adjacent similarities."""

    def test_uniform_similarity_gives_uniform_spacing(self):
        coords = estimate_neighbor_coordinates(_banded([0.9, 0.9, 0.9]), np.arange(4.0))
        np.testing.assert_allclose(coords, [0.0, 1.0, 2.0, 3.0])

    def test_dissimilar_pair_gets_larger_gap(self):
        coords = estimate_neighbor_coordinates(_banded([0.9, 0.7, 0.9]), np.arange(4.0))
        gaps = np.diff(coords)
        assert gaps[1] == pytest.approx(3 * gaps[0])
        assert coords[0] == 0.0
        assert coords[-1] == pytest.approx(3.0)

    def test_identical_sections_floored(self):
        coords = estimate_neighbor_coordinates(
            _banded([1.0, 0.5]), np.arange(3.0), minimum_section_thickness=0.1
        )
        assert np.all(np.diff(coords) > 0)

    def test_missing_pair_uses_mean_spacing(self):
        matrix = _banded([0.8, 0.8, 0.8])
        matrix[1, 2] = matrix[2, 1] = np.nan
        coords = estimate_neighbor_coordinates(matrix, np.arange(4.0))
        np.testing.assert_allclose(np.diff(coords), 1.0)

    def test_asymmetric_pair_is_averaged(self):
        matrix = _banded([0.9, 0.9])
        matrix[0, 1] = 0.7
        coords = estimate_neighbor_coordinates(matrix, np.arange(3.0))
        gaps = np.diff(coords)
        assert gaps[0] == pytest.approx(2 * gaps[1])

    def test_single_section(self):
        np.testing.assert_array_equal(
            estimate_neighbor_coordinates(np.ones((1, 1)), np.array([5.0])), [5.0]
        )

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="do not match"):
            estimate_neighbor_coordinates(np.ones((3, 3)), np.arange(4.0))
