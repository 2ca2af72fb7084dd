"""
Coordinate estimation from similarity matrices.

The iterative inference that fits z-coordinates to a similarity matrix is
an external collaborator; any callable following :data:`CoordinateEstimator`
can be plugged into the pipeline. :func:`estimate_neighbor_coordinates` is a
non-iterative baseline using only adjacent sections.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

CoordinateEstimator = Callable[[np.ndarray, np.ndarray], np.ndarray]


def estimate_neighbor_coordinates(
    matrix: np.ndarray,
    starting_coordinates: np.ndarray,
    minimum_section_thickness: float = 0.01,
) -> np.ndarray:
    """
    Place sections by the dissimilarity of adjacent pairs.

    The spacing between sections ``i - 1`` and ``i`` is ``1 - m[i - 1, i]``
    (the mean of ``m[i - 1, i]`` and ``m[i, i - 1]`` when both are measured).
    Missing pairs take the mean measured spacing. Spacings are floored at
    ``minimum_section_thickness`` and rescaled so that the result spans the
    same range as ``starting_coordinates``.

    Parameters
    ----------
    matrix : np.ndarray
        ``(N, N)`` similarity matrix, NaN for missing pairs.
    starting_coordinates : np.ndarray
        Initial coordinates, typically ``arange(N)``.
    minimum_section_thickness : float
        Lower bound for a spacing before rescaling.

    Returns
    -------
    np.ndarray
        Strictly increasing coordinates if ``minimum_section_thickness > 0``.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    starting_coordinates = np.asarray(starting_coordinates, dtype=np.float64)
    n = matrix.shape[0]
    if matrix.shape != (n, n) or starting_coordinates.shape != (n,):
        raise ValueError(
            f"Matrix {matrix.shape} and starting coordinates "
            f"{starting_coordinates.shape} do not match"
        )
    if n < 2:
        return starting_coordinates.copy()

    idx = np.arange(1, n)
    pairs = np.stack((matrix[idx - 1, idx], matrix[idx, idx - 1]))
    measured = np.isfinite(pairs)
    counts = measured.sum(axis=0)
    similarity = np.where(measured, pairs, 0.0).sum(axis=0) / np.maximum(counts, 1)
    similarity[counts == 0] = np.nan
    spacing = 1.0 - similarity

    finite = np.isfinite(spacing)
    fill = float(np.mean(spacing[finite])) if np.any(finite) else 1.0
    spacing[~finite] = fill
    spacing = np.maximum(spacing, minimum_section_thickness)

    extent = starting_coordinates[-1] - starting_coordinates[0]
    total = spacing.sum()
    if total > 0:
        spacing = spacing * (extent / total)
    return starting_coordinates[0] + np.concatenate(([0.0], np.cumsum(spacing)))
