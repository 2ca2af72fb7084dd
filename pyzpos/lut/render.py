"""
Resampling of arrays through permutation and lookup-table transforms.

An output position ``p`` samples the (permuted) source at the inverse
transform of ``p``. Samples are N-linearly interpolated; positions outside
the source are NaN.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
from scipy.ndimage import map_coordinates

from pyzpos.lut.grid import (
    NEGATIVE_SENTINEL,
    POSITIVE_SENTINEL,
    GridLUTTransform,
    inverse_checked,
)
from pyzpos.lut.transforms import LUTTransform, PermutationTransform

_OUTSIDE = -1.0


def _clear_sentinels(positions: np.ndarray) -> np.ndarray:
    saturated = (positions == NEGATIVE_SENTINEL) | (positions == POSITIVE_SENTINEL)
    positions[saturated] = _OUTSIDE
    return positions


def _inside(positions: np.ndarray, size: int) -> np.ndarray:
    return (positions >= 0) & (positions <= size - 1)


def _source_positions(lut: LUTTransform, size: int) -> np.ndarray:
    return _clear_sentinels(
        lut.apply_inverse_axis(np.arange(size, dtype=np.float64))
    )


def generate_transformed(
    source: np.ndarray,
    permutation: Optional[PermutationTransform],
    lut: LUTTransform,
) -> np.ndarray:
    """
    Warp ``source`` on the axes of ``lut``.

    Parameters
    ----------
    source : np.ndarray
        Array with ``lut.n_dimensions`` dimensions, e.g. a similarity matrix
        (both axes transformed) or a ``(Z, X, Y)`` stack (``axis=0``).
    permutation : PermutationTransform, optional
        Reordering applied to the source before the lookup table. Must act on
        the same axes as ``lut``.
    lut : LUTTransform
        Maps source indices to corrected real coordinates.

    Returns
    -------
    np.ndarray
        Float64 array of the same shape as ``source``.
    """
    if source.ndim != lut.n_dimensions:
        raise ValueError(
            f"Source has {source.ndim} dimensions, transform expects {lut.n_dimensions}"
        )
    permuted = source.astype(np.float64, copy=False)
    if permutation is not None:
        if permutation.axes != lut.axes:
            raise ValueError("Permutation and lookup table must act on the same axes")
        for ax in permutation.axes:
            if permuted.shape[ax] != permutation.permutation.shape[0]:
                raise ValueError(
                    f"Permutation of length {permutation.permutation.shape[0]} "
                    f"does not match axis {ax} of size {permuted.shape[ax]}"
                )
            indices = permutation.apply_axis(np.arange(permuted.shape[ax]))
            permuted = np.take(permuted, indices, axis=ax)

    axis_positions = []
    for ax, size in enumerate(source.shape):
        if ax in lut.axes:
            axis_positions.append(_source_positions(lut, size))
        else:
            axis_positions.append(np.arange(size, dtype=np.float64))

    coords = np.stack(np.meshgrid(*axis_positions, indexing="ij"))
    valid = np.ones(source.shape, dtype=bool)
    for ax, positions in enumerate(axis_positions):
        shape = [1] * source.ndim
        shape[ax] = -1
        valid &= _inside(positions, source.shape[ax]).reshape(shape)

    result = map_coordinates(permuted, coords, order=1, mode="nearest")
    result[~valid] = np.nan
    return result


def pixel_to_grid(pixels: np.ndarray, pixel_spacing: float) -> np.ndarray:
    """Grid coordinate of pixel indices; cell centres sit at the centre of their block."""
    return (pixels - (pixel_spacing - 1.0) / 2.0) / pixel_spacing


def warp_stack_grid(
    stack: np.ndarray,
    transform: GridLUTTransform,
    pixel_spacing: Union[float, Sequence[float]],
) -> np.ndarray:
    """
    Spatially varying z-warp of a ``(Z, X, Y)`` stack.

    Each pixel column ``(x, y)`` uses the table interpolated at its grid
    position; output section ``z`` samples the column at the table's inverse
    of ``z``.

    Parameters
    ----------
    stack : np.ndarray
        Sections of shape ``(Z, X, Y)``.
    transform : GridLUTTransform
        Two grid dimensions over ``(x, y)``, tables of length ``Z``.
    pixel_spacing : float or (float, float)
        Pixels per grid cell along x and y.
    """
    if stack.ndim != 3:
        raise ValueError(f"Expected a (Z, X, Y) stack, got {stack.ndim}D")
    if transform.n_grid_dimensions != 2:
        raise ValueError(
            f"Stack warping needs a 2D LUT grid, got {transform.n_grid_dimensions}D"
        )
    n_z, n_x, n_y = stack.shape
    if transform.lut_max_index + 1 != n_z:
        raise ValueError(
            f"Tables have {transform.lut_max_index + 1} entries for {n_z} sections"
        )
    spacing_x, spacing_y = np.broadcast_to(
        np.asarray(pixel_spacing, dtype=np.float64), (2,)
    )

    source = stack.astype(np.float64, copy=False)
    result = np.empty((n_z, n_x, n_y), dtype=np.float64)
    grid_y = pixel_to_grid(np.arange(n_y, dtype=np.float64), spacing_y)
    z_out = np.arange(n_z, dtype=np.float64)
    columns = np.arange(n_y, dtype=np.float64)

    for x in range(n_x):
        grid_points = np.column_stack(
            (np.full(n_y, pixel_to_grid(float(x), spacing_x)), grid_y)
        )
        tables = transform.interpolated_luts(grid_points)
        # (n_z, n_y) source sections for every output section of every column
        z_source = np.stack(
            [
                _clear_sentinels(inverse_checked(tables, np.full(n_y, z)))
                for z in z_out
            ],
            axis=0,
        )
        coords = np.stack((z_source, np.broadcast_to(columns, (n_z, n_y))))
        column = map_coordinates(source[:, x, :], coords, order=1, mode="nearest")
        column[~_inside(z_source, n_z)] = np.nan
        result[:, x, :] = column

    return result

