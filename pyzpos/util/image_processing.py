"""
Image processing utilities for z-position correction.
Provides matrix normalization and stack downsampling for similarity computation.
"""

import numpy as np
from scipy.ndimage import gaussian_filter
from skimage.transform import resize as ski_resize


def normalize_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Scale a similarity matrix so that its largest finite entry is 1.

    Args:
        matrix: 2D similarity matrix, NaN marks missing pairs

    Returns:
        Float64 copy of the matrix divided by its finite maximum
    """
    matrix = np.array(matrix, dtype=np.float64)
    finite = np.isfinite(matrix)
    if not np.any(finite):
        return matrix
    max_val = matrix[finite].max()
    if max_val == 0:
        return matrix
    return matrix / max_val


def downsample_section(
    section: np.ndarray,
    xy_scale: float,
    source_sigma: float = 0.5,
    target_sigma: float = 0.5
) -> np.ndarray:
    """
    Downsample a 2D section with Gaussian pre-smoothing.

    The smoothing sigma is chosen such that a section with inherent blur
    ``source_sigma`` ends up with ``target_sigma`` at the target resolution.

    Args:
        section: 2D array
        xy_scale: Scale factor in (0, 1]
        source_sigma: Assumed blur of the input, in input pixels
        target_sigma: Desired blur of the output, in output pixels

    Returns:
        Float32 section of shape ``round(shape * xy_scale)``
    """
    section = section.astype(np.float32, copy=False)
    if xy_scale == 1.0:
        return section
    sigma = np.sqrt(max(target_sigma**2 / xy_scale**2 - source_sigma**2, 0.0))
    if sigma > 0:
        section = gaussian_filter(section, sigma=sigma, mode='reflect')
    shape = tuple(max(1, int(round(s * xy_scale))) for s in section.shape)
    return ski_resize(
        section, shape, order=1, mode='edge', anti_aliasing=False, preserve_range=True
    ).astype(np.float32)


def downsample_stack(stack: np.ndarray, xy_scale: float) -> np.ndarray:
    """
    Downsample every section of a (Z, X, Y) stack.

    Args:
        stack: Sections of shape (Z, X, Y)
        xy_scale: Scale factor in (0, 1]

    Returns:
        Float32 stack of the downsampled sections
    """
    if not (0.0 < xy_scale <= 1.0):
        raise ValueError("xy_scale must satisfy 0 < xy_scale <= 1")
    if xy_scale == 1.0:
        return stack.astype(np.float32, copy=False)
    return np.stack([downsample_section(s, xy_scale) for s in stack], axis=0)
