"""
Z-position correction pipeline.

The ``z_correct`` module implements a stage-based workflow for correcting
z-drift in stacks of serial sections:

1. Compute pairwise section similarities into a correlations store
2. Estimate corrected z-coordinates per sample location
3. Warp the similarity matrix and the section stack with lookup tables
"""

from pyzpos.z_correct.config import EstimatorKind, InputType, ZCorrectConfig
from pyzpos.z_correct.estimation import (
    CoordinateEstimator,
    estimate_neighbor_coordinates,
)
from pyzpos.z_correct.pipeline import (
    run_stage1,
    run_stage2,
    run_stage3,
    run_all_stages,
)

__all__ = [
    "ZCorrectConfig",
    "InputType",
    "EstimatorKind",
    "CoordinateEstimator",
    "estimate_neighbor_coordinates",
    "run_stage1",
    "run_stage2",
    "run_stage3",
    "run_all_stages",
]
