"""
Storage of pairwise section correlations and dense matrix assembly.

Every section index owns a correlation volume of shape ``(X, Y, W)``: for each
sample location ``(x, y)`` the correlations with the ``W`` sections of its
comparison window (see :class:`~pyzpos.correlations.meta.Meta`).
:meth:`CorrelationsStore.extract_matrix` turns these windows into a dense,
banded ``N x N`` similarity matrix with NaN marking missing pairs.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from pyzpos.correlations.meta import Meta


class CorrelationsStore:
    """Section index -> (correlation volume, comparison window)."""

    def __init__(self):
        self._correlations: Dict[int, np.ndarray] = {}
        self._meta: Dict[int, Meta] = {}

    def __len__(self) -> int:
        return len(self._correlations)

    def __contains__(self, index: int) -> bool:
        return index in self._correlations

    def add_correlation(self, index: int, volume: np.ndarray, meta: Meta) -> None:
        """
        Insert or overwrite the correlation volume and window of ``index``.

        Parameters
        ----------
        index : int
            Section index.
        volume : np.ndarray
            Array of shape ``(X, Y, W)`` with ``W == meta.window_length``.
        meta : Meta
            Comparison window of the section.

        Raises
        ------
        ValueError
            If the volume is not 3D or its offset axis does not match the window.
        """
        volume = np.array(volume, dtype=np.float64)
        if volume.ndim != 3:
            raise ValueError(
                f"Correlation volume must be 3D (x, y, offset), got {volume.ndim}D"
            )
        if volume.shape[2] != meta.window_length:
            raise ValueError(
                f"Offset axis of section {index} has length {volume.shape[2]} "
                f"but its window [{meta.z_coordinate_min}, {meta.z_coordinate_max}) "
                f"spans {meta.window_length} sections"
            )
        index = int(index)
        self._correlations[index] = volume
        self._meta[index] = meta

    def get_correlations(self, index: int) -> np.ndarray:
        return self._correlations[index]

    def get_meta(self, index: int) -> Meta:
        return self._meta[index]

    @property
    def indices(self) -> List[int]:
        return sorted(self._correlations)

    @property
    def z_min(self) -> int:
        return min(self._meta) if self._meta else 0

    @property
    def z_max(self) -> int:
        return max(self._meta) + 1 if self._meta else 0

    @property
    def x_min(self) -> int:
        return 0

    @property
    def y_min(self) -> int:
        return 0

    def _first_volume(self) -> Optional[np.ndarray]:
        if not self._correlations:
            return None
        return self._correlations[min(self._correlations)]

    @property
    def x_max(self) -> int:
        first = self._first_volume()
        return 0 if first is None else first.shape[0]

    @property
    def y_max(self) -> int:
        first = self._first_volume()
        return 0 if first is None else first.shape[1]

    @property
    def n_sections(self) -> int:
        return self.z_max - self.z_min

    def extract_matrix(
        self, x: int, y: int, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Assemble the dense similarity matrix at sample location ``(x, y)``.

        Row ``z_ref - z_min`` holds the correlations of ``z_ref`` with every
        ``z_comp`` of its window that lies inside ``[z_min, z_max)``; all other
        cells are NaN.

        Parameters
        ----------
        x, y : int
            Sample location.
        out : np.ndarray, optional
            Preallocated ``(N, N)`` array to fill in place.

        Returns
        -------
        np.ndarray
            The filled ``(N, N)`` float64 matrix (``out`` if given).
        """
        z_min, z_max = self.z_min, self.z_max
        n = z_max - z_min
        if out is None:
            out = np.empty((n, n), dtype=np.float64)
        elif out.shape != (n, n):
            raise ValueError(f"Output matrix must have shape {(n, n)}, got {out.shape}")
        out.fill(np.nan)

        for z_ref in range(z_min, z_max):
            volume = self._correlations.get(z_ref)
            if volume is None:
                continue
            meta = self._meta[z_ref]
            z_comp = np.arange(meta.z_coordinate_min, meta.z_coordinate_max)
            inside = (z_comp >= z_min) & (z_comp < z_max)
            out[z_ref - z_min, z_comp[inside] - z_min] = volume[x, y, inside]

        return out

    def xy_coordinates(self) -> List[Tuple[int, int]]:
        """Dense grid of sample locations, taken from the lowest-index volume."""
        return [(x, y) for x in range(self.x_max) for y in range(self.y_max)]

    def iter_matrices(self) -> Iterator[Tuple[Tuple[int, int], np.ndarray]]:
        """Yield ``((x, y), matrix)`` for every sample location."""
        for x, y in self.xy_coordinates():
            yield (x, y), self.extract_matrix(x, y)


def store_from_matrix(matrix: np.ndarray, comparison_range: int) -> CorrelationsStore:
    """
    Wrap a dense similarity matrix into a store with a single sample location.

    Section ``z`` keeps the entries of row ``z`` inside its window
    ``[z - comparison_range, z + comparison_range + 1)``.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Expected a square 2D matrix, got shape {matrix.shape}")
    if comparison_range < 0:
        raise ValueError("comparison_range must be >= 0")

    n = matrix.shape[0]
    store = CorrelationsStore()
    for z in range(n):
        meta = Meta.for_range(z, comparison_range, n)
        row = matrix[z, meta.z_coordinate_min:meta.z_coordinate_max]
        store.add_correlation(z, row[np.newaxis, np.newaxis, :], meta)
    return store
