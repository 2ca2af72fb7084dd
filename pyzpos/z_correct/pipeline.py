"""
Stage-based z-position correction pipeline.

1) Compute pairwise section similarities and store them per section.
2) Estimate corrected z-coordinates for every sample location.
3) Build permutation/lookup-table transforms and render the warped
   similarity matrix and section stack.
"""

from __future__ import annotations

import json
from functools import partial
from pathlib import Path
from time import time
from typing import Any, Dict, Optional

import numpy as np

from pyzpos.correlations.similarity import compute_correlations
from pyzpos.correlations.store import CorrelationsStore, store_from_matrix
from pyzpos.lut.grid import GridLUTTransform
from pyzpos.lut.render import generate_transformed, warp_stack_grid
from pyzpos.lut.transforms import TransformKind, build_transform, sorted_permutation
from pyzpos.util.image_processing import downsample_stack
from pyzpos.util.io.stack import read_array, read_matrix, read_stack, write_array
from pyzpos.util.io.store import load_store, save_store
from pyzpos.z_correct.config import EstimatorKind, InputType, ZCorrectConfig
from pyzpos.z_correct.estimation import (
    CoordinateEstimator,
    estimate_neighbor_coordinates,
)


def load_or_create_status(output_root: Path) -> Dict[str, Any]:
    """Load ``status.json`` from ``output_root`` or return an empty dict."""
    status_path = output_root / "status.json"
    if status_path.exists():
        with open(status_path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {}


def save_status(output_root: Path, status: Dict[str, Any]) -> None:
    """Atomically persist ``status.json``."""
    status_path = output_root / "status.json"
    tmp_path = status_path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(status, f, indent=2)
    tmp_path.replace(status_path)


def _build_store(config: ZCorrectConfig, input_path: Path) -> CorrelationsStore:
    if config.input_type is InputType.MATRIX:
        matrix = read_matrix(input_path, normalize=config.normalize_matrix)
        print(f"Stage 1: wrapping {matrix.shape[0]}x{matrix.shape[1]} matrix")
        return store_from_matrix(matrix, config.comparison_range)

    stack = read_stack(input_path)
    if config.xy_scale != 1.0:
        stack = downsample_stack(stack, config.xy_scale)
    print(
        f"Stage 1: correlating {stack.shape[0]} sections of shape {stack.shape[1:]} "
        f"(range {config.comparison_range}, block size {config.block_size})"
    )
    return compute_correlations(
        stack,
        config.comparison_range,
        block_size=config.block_size,
        n_workers=config.n_workers,
    )


def _load_coordinate_grid(path: Path) -> np.ndarray:
    """Load coordinates as an ``(nx, ny, N)`` grid; 1D input is a single cell."""
    coordinates = np.asarray(read_array(path), dtype=np.float64)
    if coordinates.ndim == 1:
        coordinates = coordinates[np.newaxis, np.newaxis, :]
    if coordinates.ndim != 3:
        raise ValueError(
            f"Coordinates must be 1D (N,) or 3D (nx, ny, N), got shape {coordinates.shape}"
        )
    return coordinates


def run_stage1(config: ZCorrectConfig) -> Path:
    """
    Stage 1: build the correlations store.

    Returns
    -------
    Path
        Path to the correlations HDF5 file.
    """
    start_time = time()
    output_root = config.resolve_output_root()
    output_root.mkdir(parents=True, exist_ok=True)
    status = load_or_create_status(output_root)

    correlations_path = config.resolve_correlations_file()
    if config.resume and status.get("stage1") == "done" and correlations_path.exists():
        print(f"Stage 1: reusing existing correlations {correlations_path}")
        return correlations_path

    input_path = config.resolve_input_file()
    if not input_path.exists():
        raise FileNotFoundError(f"input_file not found: {input_path}")

    store = _build_store(config, input_path)
    save_store(correlations_path, store)
    write_array(config.resolve_matrix_file(), store.extract_matrix(0, 0))

    status["stage1"] = "done"
    status["n_sections"] = store.n_sections
    status["grid_shape"] = [store.x_max, store.y_max]
    save_status(output_root, status)

    elapsed = time() - start_time
    print(f"Stage 1 complete in {elapsed:.2f}s")
    return correlations_path


def run_stage2(
    config: ZCorrectConfig,
    correlations_path: Optional[Path] = None,
    estimator: Optional[CoordinateEstimator] = None,
) -> Path:
    """
    Stage 2: estimate corrected z-coordinates per sample location.

    Parameters
    ----------
    config : ZCorrectConfig
        Pipeline configuration.
    correlations_path : Path, optional
        Correlations file from stage 1.
    estimator : CoordinateEstimator, optional
        ``(matrix, starting_coordinates) -> coordinates``. Overrides
        ``config.estimator``.

    Returns
    -------
    Path
        Path to the ``(nx, ny, N)`` coordinate grid.
    """
    start_time = time()
    output_root = config.resolve_output_root()
    output_root.mkdir(parents=True, exist_ok=True)
    status = load_or_create_status(output_root)

    coordinates_path = config.resolve_coordinates_file()
    if config.resume and status.get("stage2") == "done" and coordinates_path.exists():
        print(f"Stage 2: reusing existing coordinates {coordinates_path}")
        return coordinates_path

    if correlations_path is None:
        correlations_path = config.resolve_correlations_file()
    store = load_store(correlations_path)
    n_sections = store.n_sections

    if estimator is None and config.estimator is EstimatorKind.FILE:
        external = config.resolve_external_coordinates_file()
        if external is None:
            raise ValueError(
                "external_coordinates_file is required when estimator is 'file'"
            )
        coordinates = _load_coordinate_grid(external)
        expected = (store.x_max, store.y_max, n_sections)
        if coordinates.shape != expected:
            raise ValueError(
                f"External coordinates have shape {coordinates.shape}, expected {expected}"
            )
        print(f"Stage 2: loaded coordinates from {external}")
    else:
        if estimator is None:
            estimator = partial(
                estimate_neighbor_coordinates,
                minimum_section_thickness=config.minimum_section_thickness,
            )
        starting_coordinates = np.arange(n_sections, dtype=np.float64)
        coordinates = np.empty((store.x_max, store.y_max, n_sections), dtype=np.float64)
        for (x, y), matrix in store.iter_matrices():
            estimate = np.asarray(estimator(matrix, starting_coordinates.copy()))
            if estimate.shape != (n_sections,):
                raise RuntimeError(
                    f"Estimator returned shape {estimate.shape} at ({x}, {y}), "
                    f"expected {(n_sections,)}"
                )
            coordinates[x, y] = estimate
        print(f"Stage 2: estimated coordinates at {store.x_max * store.y_max} locations")

    write_array(coordinates_path, coordinates)

    status["stage2"] = "done"
    save_status(output_root, status)

    elapsed = time() - start_time
    print(f"Stage 2 complete in {elapsed:.2f}s")
    return coordinates_path


def _render_single_table(
    config: ZCorrectConfig,
    table: np.ndarray,
    correlations_path: Path,
) -> Dict[str, Optional[Path]]:
    n_sections = table.shape[0]
    if config.with_reorder:
        table, forward, _ = sorted_permutation(table)
    else:
        forward = np.arange(n_sections)

    matrix = load_store(correlations_path).extract_matrix(0, 0)
    warped = generate_transformed(
        matrix,
        build_transform(TransformKind.PERMUTATION, forward, n_dimensions=2),
        build_transform(TransformKind.LUT, table, n_dimensions=2),
    )
    warped_matrix_path = write_array(config.resolve_warped_matrix_file(), warped)
    print(f"Stage 3: wrote warped matrix {warped_matrix_path}")

    corrected_stack_path = None
    stack_path = config.resolve_render_stack_file()
    if config.render_stack and stack_path is not None:
        stack = read_stack(stack_path)
        if stack.shape[0] != n_sections:
            raise ValueError(
                f"Stack has {stack.shape[0]} sections, coordinates cover {n_sections}"
            )
        corrected = generate_transformed(
            stack,
            build_transform(TransformKind.PERMUTATION, forward, n_dimensions=3, axis=0),
            build_transform(TransformKind.LUT, table, n_dimensions=3, axis=0),
        )
        corrected_stack_path = write_array(
            config.resolve_corrected_stack_file(), corrected
        )
        print(f"Stage 3: wrote corrected stack {corrected_stack_path}")

    return {
        "warped_matrix_path": warped_matrix_path,
        "corrected_stack_path": corrected_stack_path,
    }


def _render_grid(
    config: ZCorrectConfig, coordinates: np.ndarray
) -> Dict[str, Optional[Path]]:
    if config.with_reorder:
        raise ValueError("with_reorder is only supported for a single lookup table")
    transform = GridLUTTransform(coordinates)
    print(f"Stage 3: spatially varying transform {transform}")

    corrected_stack_path = None
    stack_path = config.resolve_render_stack_file()
    if config.render_stack and stack_path is not None:
        spacing = config.pixel_spacing()
        if spacing is None:
            raise ValueError("block_size is required to render a spatially varying transform")
        stack = read_stack(stack_path)
        corrected = warp_stack_grid(stack, transform, spacing)
        corrected_stack_path = write_array(
            config.resolve_corrected_stack_file(), corrected
        )
        print(f"Stage 3: wrote corrected stack {corrected_stack_path}")

    return {"warped_matrix_path": None, "corrected_stack_path": corrected_stack_path}


def run_stage3(
    config: ZCorrectConfig,
    coordinates_path: Optional[Path] = None,
    correlations_path: Optional[Path] = None,
) -> Dict[str, Optional[Path]]:
    """
    Stage 3: build the coordinate transforms and render the outputs.

    Returns
    -------
    dict
        Keys: ``warped_matrix_path``, ``corrected_stack_path`` (None if not written).
    """
    start_time = time()
    output_root = config.resolve_output_root()
    output_root.mkdir(parents=True, exist_ok=True)
    status = load_or_create_status(output_root)

    if config.resume and status.get("stage3") == "done":
        outputs = status.get("stage3_outputs", {})
        paths = {k: Path(v) if v else None for k, v in outputs.items()}
        if all(p is None or p.exists() for p in paths.values()):
            print("Stage 3: existing outputs found, skipping")
            return paths

    if coordinates_path is None:
        coordinates_path = config.resolve_coordinates_file()
    if correlations_path is None:
        correlations_path = config.resolve_correlations_file()
    if not coordinates_path.exists():
        raise FileNotFoundError(f"Coordinates not found: {coordinates_path}")

    coordinates = _load_coordinate_grid(coordinates_path)
    if coordinates.shape[:2] == (1, 1):
        outputs = _render_single_table(config, coordinates[0, 0], correlations_path)
    else:
        outputs = _render_grid(config, coordinates)

    status["stage3"] = "done"
    status["stage3_outputs"] = {k: str(v) if v else None for k, v in outputs.items()}
    save_status(output_root, status)

    elapsed = time() - start_time
    print(f"Stage 3 complete in {elapsed:.2f}s")
    return outputs


def run_all_stages(
    config: ZCorrectConfig,
    estimator: Optional[CoordinateEstimator] = None,
) -> Dict[str, Any]:
    """
    Run all z-correct stages.

    Returns
    -------
    dict
        Collected stage outputs.
    """
    print("=" * 60)
    print("Z-CORRECT STAGE 1: Pairwise Section Similarity")
    print("=" * 60)
    correlations_path = run_stage1(config)

    print("\n" + "=" * 60)
    print("Z-CORRECT STAGE 2: Estimate z-Coordinates")
    print("=" * 60)
    coordinates_path = run_stage2(
        config, correlations_path=correlations_path, estimator=estimator
    )

    print("\n" + "=" * 60)
    print("Z-CORRECT STAGE 3: Transform and Render")
    print("=" * 60)
    stage3_out = run_stage3(
        config,
        coordinates_path=coordinates_path,
        correlations_path=correlations_path,
    )

    return {
        "correlations_path": correlations_path,
        "coordinates_path": coordinates_path,
        **stage3_out,
    }
