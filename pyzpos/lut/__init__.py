"""
Lookup-table coordinate transforms for z-position correction.

Classes
-------
GridLUTTransform
    Spatially varying, N-linearly interpolated grid of lookup tables
LUTTransform
    A single lookup table on one or all axes
PermutationTransform
    Integer reindexing of one or all axes

Functions
---------
build_transform
    Construct a transform variant from a TransformKind
generate_transformed, warp_stack_grid
    Resample arrays through the transforms
"""

from pyzpos.lut.grid import (
    NEGATIVE_SENTINEL,
    POSITIVE_SENTINEL,
    GridLUTTransform,
    validate_lut_array,
)
from pyzpos.lut.transforms import (
    CoordinateTransform,
    LUTTransform,
    PermutationTransform,
    TransformKind,
    build_transform,
    sorted_permutation,
)
from pyzpos.lut.render import generate_transformed, warp_stack_grid

__all__ = [
    "NEGATIVE_SENTINEL",
    "POSITIVE_SENTINEL",
    "GridLUTTransform",
    "validate_lut_array",
    "CoordinateTransform",
    "LUTTransform",
    "PermutationTransform",
    "TransformKind",
    "build_transform",
    "sorted_permutation",
    "generate_transformed",
    "warp_stack_grid",
]
