"""
Coordinate transforms built on lookup tables.

Three variants share one capability (:class:`CoordinateTransform`):

- :class:`~pyzpos.lut.grid.GridLUTTransform`: one table per grid cell,
  interpolated across the grid (spatially varying).
- :class:`LUTTransform`: a single table applied to every transformed axis.
- :class:`PermutationTransform`: integer reindexing without interpolation.

:func:`build_transform` selects the variant from a :class:`TransformKind`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from pyzpos.lut.grid import (
    NEGATIVE_SENTINEL,
    POSITIVE_SENTINEL,
    GridLUTTransform,
    inverse_checked,
    lut_forward,
    validate_lut_array,
)


class TransformKind(str, Enum):
    GRID_LUT = "grid_lut"
    LUT = "lut"
    PERMUTATION = "permutation"


class CoordinateTransform(Protocol):
    def apply(self, position): ...

    def apply_inverse(self, position): ...

    def min_coordinate(self, position=None) -> float: ...

    def max_coordinate(self, position=None) -> float: ...


def _resolve_axes(n_dimensions: int, axis: Optional[int]) -> Tuple[int, ...]:
    if n_dimensions < 1:
        raise ValueError("n_dimensions must be >= 1")
    if axis is None:
        return tuple(range(n_dimensions))
    if not 0 <= axis < n_dimensions:
        raise ValueError(f"axis {axis} out of range for {n_dimensions} dimensions")
    return (axis,)


class LUTTransform:
    """
    Single lookup table applied identically everywhere.

    Parameters
    ----------
    lut : array_like
        Non-decreasing table of length ``L >= 2``.
    n_dimensions : int
        Dimensionality of the transformed positions.
    axis : int, optional
        The only transformed axis; the others pass through unchanged.
        ``None`` transforms every axis with the same table.
    """

    def __init__(self, lut, n_dimensions: int = 1, axis: Optional[int] = None):
        self.lut = validate_lut_array(lut)
        if self.lut.ndim != 1:
            raise ValueError(f"LUTTransform expects a 1D table, got {self.lut.ndim}D")
        self.lut.setflags(write=False)
        self.lut_max_index = self.lut.shape[0] - 1
        self.n_dimensions = n_dimensions
        self.axes = _resolve_axes(n_dimensions, axis)

    def apply_axis(self, values) -> np.ndarray:
        """Table lookup of fractional indices, saturating outside ``[0, L - 1]``."""
        values = np.asarray(values, dtype=np.float64)
        flat = values.ravel()
        below = flat < 0
        above = flat > self.lut_max_index
        tables = np.broadcast_to(self.lut, (flat.shape[0], self.lut.shape[0]))
        result = lut_forward(tables, np.where(below | above, 0.0, flat))
        result[below] = NEGATIVE_SENTINEL
        result[above] = POSITIVE_SENTINEL
        return result.reshape(values.shape)

    def apply_inverse_axis(self, values) -> np.ndarray:
        """Fractional indices of real coordinates, saturating outside the table."""
        values = np.asarray(values, dtype=np.float64)
        flat = values.ravel()
        tables = np.broadcast_to(self.lut, (flat.shape[0], self.lut.shape[0]))
        return inverse_checked(tables, flat).reshape(values.shape)

    def _map(self, position, func) -> np.ndarray:
        result = np.array(position, dtype=np.float64)
        if result.shape != (self.n_dimensions,):
            raise ValueError(
                f"Expected a position with {self.n_dimensions} coordinates, "
                f"got shape {result.shape}"
            )
        for ax in self.axes:
            result[ax] = func(result[ax])
        return result

    def apply(self, position: Sequence[float]) -> np.ndarray:
        return self._map(position, self.apply_axis)

    def apply_inverse(self, position: Sequence[float]) -> np.ndarray:
        return self._map(position, self.apply_inverse_axis)

    def min_coordinate(self, position=None) -> float:
        return float(self.lut[0])

    def max_coordinate(self, position=None) -> float:
        return float(self.lut[-1])

    def to_grid(self) -> GridLUTTransform:
        """The equivalent grid transform with zero grid dimensions."""
        return GridLUTTransform(self.lut)


class PermutationTransform:
    """
    Reindex integer coordinates: ``k -> permutation[k]`` on the transformed axes.

    Parameters
    ----------
    permutation : array_like
        A permutation of ``0 .. n - 1``.
    n_dimensions : int
        Dimensionality of the transformed positions.
    axis : int, optional
        The only transformed axis; ``None`` permutes every axis.
    """

    def __init__(self, permutation, n_dimensions: int = 1, axis: Optional[int] = None):
        permutation = np.array(permutation)
        if permutation.ndim != 1 or not np.issubdtype(permutation.dtype, np.integer):
            raise ValueError("permutation must be a 1D integer array")
        if not np.array_equal(np.sort(permutation), np.arange(permutation.shape[0])):
            raise ValueError("permutation must contain every index 0..n-1 exactly once")
        self.permutation = permutation.astype(np.intp)
        self.inverse_permutation = np.empty_like(self.permutation)
        self.inverse_permutation[self.permutation] = np.arange(self.permutation.shape[0])
        self.permutation.setflags(write=False)
        self.inverse_permutation.setflags(write=False)
        self.n_dimensions = n_dimensions
        self.axes = _resolve_axes(n_dimensions, axis)

    @classmethod
    def identity(cls, size: int, n_dimensions: int = 1, axis: Optional[int] = None):
        return cls(np.arange(size), n_dimensions, axis)

    def apply_axis(self, indices) -> np.ndarray:
        return self.permutation[np.asarray(indices, dtype=np.intp)]

    def apply_inverse_axis(self, indices) -> np.ndarray:
        return self.inverse_permutation[np.asarray(indices, dtype=np.intp)]

    def _map(self, position, table) -> np.ndarray:
        result = np.array(position, dtype=np.intp)
        if result.shape != (self.n_dimensions,):
            raise ValueError(
                f"Expected a position with {self.n_dimensions} coordinates, "
                f"got shape {result.shape}"
            )
        for ax in self.axes:
            result[ax] = table[result[ax]]
        return result

    def apply(self, position: Sequence[int]) -> np.ndarray:
        return self._map(position, self.permutation)

    def apply_inverse(self, position: Sequence[int]) -> np.ndarray:
        return self._map(position, self.inverse_permutation)

    def min_coordinate(self, position=None) -> float:
        return 0.0

    def max_coordinate(self, position=None) -> float:
        return float(self.permutation.shape[0] - 1)


class _GridTransformAdapter:
    """Exposes a :class:`GridLUTTransform` through the position-based capability.

    Positions are ``(*grid_coordinates, lut_coordinate)``.
    """

    def __init__(self, grid: GridLUTTransform):
        self.grid = grid

    def _split(self, position):
        if position is None:
            raise ValueError(
                "A grid LUT transform needs a position (*grid_coordinates, z) "
                "to look up its table"
            )
        position = np.asarray(position, dtype=np.float64)
        return position[:-1], float(position[-1])

    def apply(self, position) -> np.ndarray:
        grid_coordinates, t = self._split(position)
        return np.append(grid_coordinates, self.grid.apply_checked(grid_coordinates, t))

    def apply_inverse(self, position) -> np.ndarray:
        grid_coordinates, z = self._split(position)
        return np.append(
            grid_coordinates, self.grid.apply_inverse_checked(grid_coordinates, z)
        )

    def min_coordinate(self, position=None) -> float:
        return self.grid.min_transformed_coordinate(self._split(position)[0])

    def max_coordinate(self, position=None) -> float:
        return self.grid.max_transformed_coordinate(self._split(position)[0])


def build_transform(
    kind: Union[TransformKind, str],
    array,
    n_dimensions: int = 1,
    axis: Optional[int] = None,
) -> CoordinateTransform:
    """
    Construct the transform variant named by ``kind``.

    ``array`` is the LUT grid for ``GRID_LUT``, the table for ``LUT`` and the
    index permutation for ``PERMUTATION``. ``n_dimensions``/``axis`` are
    ignored for ``GRID_LUT``, whose positions are
    ``(*grid_coordinates, lut_coordinate)``.
    """
    kind = TransformKind(kind)
    if kind is TransformKind.GRID_LUT:
        return _GridTransformAdapter(GridLUTTransform(array))
    if kind is TransformKind.LUT:
        return LUTTransform(array, n_dimensions, axis)
    return PermutationTransform(array, n_dimensions, axis)


def sorted_permutation(values) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Stable sort of ``values``.

    Returns
    -------
    sorted_values : np.ndarray
    forward : np.ndarray
        ``forward[k]`` is the original index of the k-th smallest value.
    backward : np.ndarray
        Inverse of ``forward``: the rank of each original index.
    """
    values = np.asarray(values, dtype=np.float64)
    forward = np.argsort(values, kind="stable")
    backward = np.empty_like(forward)
    backward[forward] = np.arange(forward.shape[0])
    return values[forward], forward, backward
