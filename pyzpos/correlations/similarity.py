"""
Normalized cross-correlation between sections of a stack.

Produces the correlation volumes consumed by
:class:`~pyzpos.correlations.store.CorrelationsStore`, either for whole
sections or for a regular grid of blocks (spatially varying similarity).
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from pyzpos.correlations.meta import Meta
from pyzpos.correlations.store import CorrelationsStore


def _block_sums(arr: np.ndarray, block_size: int) -> np.ndarray:
    """Sum ``arr`` over blocks of ``block_size x block_size`` (last blocks may be partial)."""
    s = np.add.reduceat(arr, np.arange(0, arr.shape[0], block_size), axis=0)
    return np.add.reduceat(s, np.arange(0, arr.shape[1], block_size), axis=1)


def _expand_blocks(block_values: np.ndarray, block_size: int, shape) -> np.ndarray:
    """Broadcast per-block values back to pixel resolution."""
    expanded = np.repeat(np.repeat(block_values, block_size, axis=0), block_size, axis=1)
    return expanded[: shape[0], : shape[1]]


def block_ncc(a: np.ndarray, b: np.ndarray, block_size: int) -> np.ndarray:
    """
    Per-block normalized cross-correlation of two sections.

    Returns an array of shape ``(ceil(X / block_size), ceil(Y / block_size))``.
    Blocks without variance in either section are NaN. A block counts as
    flat when its centred sum of squares is within float64 rounding of its
    raw sum of squares.
    """
    if a.shape != b.shape:
        raise ValueError(f"Section shapes differ: {a.shape} vs {b.shape}")
    if block_size < 1:
        raise ValueError("block_size must be >= 1")

    a = a.astype(np.float64, copy=False)
    b = b.astype(np.float64, copy=False)
    n = _block_sums(np.ones_like(a), block_size)
    da = a - _expand_blocks(_block_sums(a, block_size) / n, block_size, a.shape)
    db = b - _expand_blocks(_block_sums(b, block_size) / n, block_size, b.shape)

    cov = _block_sums(da * db, block_size)
    var_a = _block_sums(da * da, block_size)
    var_b = _block_sums(db * db, block_size)

    eps = np.finfo(np.float64).eps
    flat = (var_a <= eps * _block_sums(a * a, block_size)) | (
        var_b <= eps * _block_sums(b * b, block_size)
    )

    with np.errstate(invalid="ignore", divide="ignore"):
        result = cov / np.sqrt(var_a * var_b)
    result[flat | ~np.isfinite(result)] = np.nan
    return result


def ncc(a: np.ndarray, b: np.ndarray) -> float:
    """Normalized cross-correlation of two whole sections."""
    return float(block_ncc(a, b, max(a.shape))[0, 0])


def _ensure_stack(stack: np.ndarray) -> np.ndarray:
    if stack.ndim != 3:
        raise ValueError(f"Expected a (Z, X, Y) stack, got {stack.ndim}D")
    if stack.shape[0] < 2:
        raise ValueError("Stack must contain at least 2 sections")
    return stack


def compute_correlations(
    stack: np.ndarray,
    comparison_range: int,
    block_size: Optional[int] = None,
    n_workers: Optional[int] = None,
) -> CorrelationsStore:
    """
    Correlate every section with its neighbours and collect the results.

    Section ``z`` is compared with the sections in
    ``[z - comparison_range, z + comparison_range]`` (clipped to the stack);
    its self-correlation is 1.

    Parameters
    ----------
    stack : np.ndarray
        Sections of shape ``(Z, X, Y)``.
    comparison_range : int
        Maximal index distance of compared sections.
    block_size : int, optional
        Edge length of correlation blocks. ``None`` correlates whole sections,
        giving a single sample location.
    n_workers : int, optional
        Thread pool size, defaults to ``os.cpu_count()``.

    Returns
    -------
    CorrelationsStore
        One volume of shape ``(nx, ny, window)`` per section.
    """
    stack = _ensure_stack(stack)
    if comparison_range < 1:
        raise ValueError("comparison_range must be >= 1")

    n_sections = stack.shape[0]
    if block_size is None:
        block_size = max(stack.shape[1:])
    grid_shape = (
        -(-stack.shape[1] // block_size),
        -(-stack.shape[2] // block_size),
    )

    metas: List[Meta] = [
        Meta.for_range(z, comparison_range, n_sections) for z in range(n_sections)
    ]
    volumes = [
        np.full(grid_shape + (meta.window_length,), np.nan, dtype=np.float64)
        for meta in metas
    ]
    for z, meta in enumerate(metas):
        volumes[z][:, :, z - meta.z_coordinate_min] = 1.0

    def correlate_row(i: int) -> None:
        # Task i owns the pairs (i, k) with i < k <= i + range.
        for k in range(i + 1, min(n_sections, i + comparison_range + 1)):
            values = block_ncc(stack[i], stack[k], block_size)
            volumes[i][:, :, k - metas[i].z_coordinate_min] = values
            volumes[k][:, :, i - metas[k].z_coordinate_min] = values

    workers = n_workers or os.cpu_count() or 1
    with ThreadPoolExecutor(max_workers=workers) as executor:
        # list() propagates worker exceptions and joins every task
        list(executor.map(correlate_row, range(n_sections)))

    store = CorrelationsStore()
    for z in range(n_sections):
        store.add_correlation(z, volumes[z], metas[z])
    return store


def compute_similarity_matrix(
    stack: np.ndarray,
    comparison_range: int,
    n_workers: Optional[int] = None,
) -> np.ndarray:
    """Whole-section similarity matrix: 1 on the diagonal, NaN outside the band."""
    store = compute_correlations(stack, comparison_range, n_workers=n_workers)
    return store.extract_matrix(0, 0)
