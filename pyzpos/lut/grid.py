"""
Grid of monotonic lookup tables as an invertible coordinate transform.

A LUT array of shape ``(*grid_shape, L)`` holds one non-decreasing table of
``L`` real coordinates per grid cell. Tables for fractional grid positions
are obtained by N-linear interpolation between cells, with positions outside
the grid clamped to the border cells. A table maps a (fractional) index
``t`` in ``[0, L - 1]`` to a real coordinate by linear interpolation between
its entries, and back by binary search.

All lookups are stateless: the table for a grid position is recomputed on
every call, so one transform can be shared between threads.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from scipy.ndimage import map_coordinates

POSITIVE_SENTINEL = float(np.finfo(np.float64).max)
NEGATIVE_SENTINEL = -POSITIVE_SENTINEL


def validate_lut_array(lut_array: np.ndarray) -> np.ndarray:
    """
    Check that every table along the last axis is finite and non-decreasing.

    Raises
    ------
    ValueError
        If the tables are too short, contain non-finite values or decrease.
    """
    lut_array = np.array(lut_array, dtype=np.float64)
    if lut_array.ndim < 1:
        raise ValueError("LUT array must have at least one dimension")
    if lut_array.shape[-1] < 2:
        raise ValueError(
            f"Lookup tables need at least 2 entries, got {lut_array.shape[-1]}"
        )
    if not np.all(np.isfinite(lut_array)):
        raise ValueError("Lookup tables must not contain NaN or infinite values")
    decreasing = np.diff(lut_array, axis=-1) < 0
    if np.any(decreasing):
        cell = np.argwhere(decreasing)[0]
        raise ValueError(
            "Lookup tables must be non-decreasing; first violation at grid cell "
            f"{tuple(int(c) for c in cell[:-1])}, index {int(cell[-1])}"
        )
    return lut_array


def lut_forward(tables: np.ndarray, lut_coordinates: np.ndarray) -> np.ndarray:
    """Evaluate row-wise tables ``(N, L)`` at fractional indices ``(N,)``."""
    rows = np.arange(tables.shape[0])
    floor = np.floor(lut_coordinates).astype(np.intp)
    # t == L - 1 evaluates to the last entry instead of reading past the table
    floor = np.clip(floor, 0, tables.shape[1] - 2)
    floor_val = tables[rows, floor]
    next_val = tables[rows, floor + 1]
    dz = lut_coordinates - floor
    return (next_val - floor_val) * dz + floor_val


def lut_floor_index(tables: np.ndarray, real_coordinates: np.ndarray) -> np.ndarray:
    """
    Row-wise binary search for the bracketing index of ``real_coordinates``.

    For a strictly increasing row and ``table[0] <= v < table[-1]`` the result
    ``i`` satisfies ``table[i] <= v < table[i + 1]``. The result is always in
    ``[0, L - 2]`` and the search terminates after ``O(log L)`` steps for any
    table content.
    """
    n_rows, length = tables.shape
    rows = np.arange(n_rows)
    lo = np.zeros(n_rows, dtype=np.intp)
    hi = np.full(n_rows, length - 1, dtype=np.intp)
    i = hi >> 1
    while True:
        greater = tables[rows, i] > real_coordinates
        hi = np.where(greater, i, hi)
        lo = np.where(greater, lo, i)
        i = ((hi - lo) >> 1) + lo
        if np.all(i == lo):
            return i


def lut_inverse(tables: np.ndarray, real_coordinates: np.ndarray) -> np.ndarray:
    """
    Fractional table index of ``real_coordinates``, row-wise.

    A zero-width bracket (duplicate entries) resolves to its lower index.
    """
    rows = np.arange(tables.shape[0])
    i = lut_floor_index(tables, real_coordinates)
    real_z1 = tables[rows, i]
    real_z2 = tables[rows, i + 1]
    width = real_z2 - real_z1
    with np.errstate(invalid="ignore", divide="ignore"):
        fraction = np.where(width != 0, (real_coordinates - real_z1) / width, 0.0)
    return fraction + i


class GridLUTTransform:
    """
    Spatially varying lookup-table transform.

    Parameters
    ----------
    lut_array : np.ndarray
        Array of shape ``(*grid_shape, L)``; the leading axes form the grid,
        the trailing axis holds one non-decreasing table per cell. A 1D array
        is a single table shared by every position.
    """

    def __init__(self, lut_array: np.ndarray):
        self.lut_array = validate_lut_array(lut_array)
        self.lut_array.setflags(write=False)
        self.n_grid_dimensions = self.lut_array.ndim - 1
        self.lut_max_index = self.lut_array.shape[-1] - 1
        self.grid_shape = self.lut_array.shape[:-1]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(grid_shape={self.grid_shape}, "
            f"lut_max_index={self.lut_max_index})"
        )

    # -- table interpolation ------------------------------------------------

    def interpolated_luts(self, grid_points: np.ndarray) -> np.ndarray:
        """
        Tables at many grid positions.

        Parameters
        ----------
        grid_points : np.ndarray
            Array of shape ``(N, n_grid_dimensions)``.

        Returns
        -------
        np.ndarray
            Tables of shape ``(N, L)``.
        """
        grid_points = np.asarray(grid_points, dtype=np.float64)
        if grid_points.ndim == 1:
            grid_points = grid_points[:, np.newaxis]
        n_points = grid_points.shape[0]
        if self.n_grid_dimensions == 0:
            return np.broadcast_to(self.lut_array, (n_points, self.lut_max_index + 1))
        if grid_points.shape[1] != self.n_grid_dimensions:
            raise ValueError(
                f"Expected {self.n_grid_dimensions} grid coordinates per point, "
                f"got {grid_points.shape[1]}"
            )

        coords = grid_points.T
        tables = np.empty((n_points, self.lut_max_index + 1), dtype=np.float64)
        for index in range(self.lut_max_index + 1):
            tables[:, index] = map_coordinates(
                self.lut_array[..., index], coords, order=1, mode="nearest"
            )
        return tables

    def interpolated_lut(self, grid_coordinates: Sequence[float]) -> np.ndarray:
        """Table at a single grid position."""
        return self.interpolated_luts(self._point(grid_coordinates))[0]

    # -- vectorised evaluation ---------------------------------------------

    def _tables_for(self, grid_points, n_values: int) -> np.ndarray:
        if self.n_grid_dimensions == 0:
            return self.interpolated_luts(np.empty((n_values, 0)))
        return self.interpolated_luts(grid_points)

    def apply_many(self, grid_points, lut_coordinates) -> np.ndarray:
        lut_coordinates = np.asarray(lut_coordinates, dtype=np.float64)
        tables = self._tables_for(grid_points, lut_coordinates.shape[0])
        return lut_forward(tables, lut_coordinates)

    def apply_checked_many(self, grid_points, lut_coordinates) -> np.ndarray:
        lut_coordinates = np.asarray(lut_coordinates, dtype=np.float64)
        below = lut_coordinates < 0
        above = lut_coordinates > self.lut_max_index
        safe = np.where(below | above, 0.0, lut_coordinates)
        result = self.apply_many(grid_points, safe)
        result[below] = NEGATIVE_SENTINEL
        result[above] = POSITIVE_SENTINEL
        return result

    def find_floor_index_many(self, grid_points, real_coordinates) -> np.ndarray:
        real_coordinates = np.asarray(real_coordinates, dtype=np.float64)
        tables = self._tables_for(grid_points, real_coordinates.shape[0])
        return lut_floor_index(tables, real_coordinates)

    def apply_inverse_many(self, grid_points, real_coordinates) -> np.ndarray:
        real_coordinates = np.asarray(real_coordinates, dtype=np.float64)
        tables = self._tables_for(grid_points, real_coordinates.shape[0])
        return lut_inverse(tables, real_coordinates)

    def apply_inverse_checked_many(self, grid_points, real_coordinates) -> np.ndarray:
        real_coordinates = np.asarray(real_coordinates, dtype=np.float64)
        tables = self._tables_for(grid_points, real_coordinates.shape[0])
        return inverse_checked(tables, real_coordinates)

    # -- point evaluation ---------------------------------------------------

    def _point(self, grid_coordinates):
        if self.n_grid_dimensions == 0:
            return np.empty((1, 0))
        return np.asarray(grid_coordinates, dtype=np.float64).reshape(
            1, self.n_grid_dimensions
        )

    def apply(self, grid_coordinates: Sequence[float], lut_coordinate: float) -> float:
        """
        Real coordinate of fractional table index ``lut_coordinate``.

        ``lut_coordinate`` must lie in ``[0, lut_max_index]``; use
        :meth:`apply_checked` for unchecked input.
        """
        return float(self.apply_many(self._point(grid_coordinates), [lut_coordinate])[0])

    def apply_checked(
        self, grid_coordinates: Sequence[float], lut_coordinate: float
    ) -> float:
        """Like :meth:`apply`, saturating to the sentinels outside ``[0, lut_max_index]``."""
        return float(
            self.apply_checked_many(self._point(grid_coordinates), [lut_coordinate])[0]
        )

    def find_floor_index(
        self, grid_coordinates: Sequence[float], real_coordinate: float
    ) -> int:
        return int(
            self.find_floor_index_many(self._point(grid_coordinates), [real_coordinate])[0]
        )

    def apply_inverse(
        self, grid_coordinates: Sequence[float], real_coordinate: float
    ) -> float:
        """Fractional table index of ``real_coordinate``."""
        return float(
            self.apply_inverse_many(self._point(grid_coordinates), [real_coordinate])[0]
        )

    def apply_inverse_checked(
        self, grid_coordinates: Sequence[float], real_coordinate: float
    ) -> float:
        """Like :meth:`apply_inverse`, saturating outside the table's range."""
        return float(
            self.apply_inverse_checked_many(
                self._point(grid_coordinates), [real_coordinate]
            )[0]
        )

    def min_transformed_coordinate(self, grid_coordinates: Sequence[float]) -> float:
        return float(self.interpolated_lut(grid_coordinates)[0])

    def max_transformed_coordinate(self, grid_coordinates: Sequence[float]) -> float:
        return float(self.interpolated_lut(grid_coordinates)[self.lut_max_index])


def inverse_checked(tables: np.ndarray, real_coordinates: np.ndarray) -> np.ndarray:
    """Row-wise :func:`lut_inverse` with sentinels below the first / above the last entry."""
    below = real_coordinates < tables[:, 0]
    above = real_coordinates > tables[:, -1]
    result = lut_inverse(tables, real_coordinates)
    result[below] = NEGATIVE_SENTINEL
    result[above] = POSITIVE_SENTINEL
    return result
