"""
Configuration model for z-position correction workflows.

The z-correct pipeline has three stages:
1) Compute (or wrap) pairwise section similarities into a correlations store.
2) Estimate corrected z-coordinates for every sample location.
3) Build the coordinate transforms and render the warped matrix/stack.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


class InputType(str, Enum):
    MATRIX = "matrix"
    STACK = "stack"


class EstimatorKind(str, Enum):
    NEIGHBOR = "neighbor"
    FILE = "file"


class ZCorrectConfig(BaseModel):
    """Configuration for z-position estimation and correction."""

    # Core paths
    root: Path
    input_file: Path
    input_type: InputType = InputType.STACK
    render_stack_file: Optional[Path] = None
    external_coordinates_file: Optional[Path] = None

    # Outputs
    output_root: Path = Field(default=Path("z_correct_outputs"))
    correlations_file: Path = Field(default=Path("correlations.h5"))
    matrix_file: Path = Field(default=Path("similarity_matrix.tif"))
    coordinates_file: Path = Field(default=Path("coordinates.npy"))
    warped_matrix_file: Path = Field(default=Path("warped_matrix.tif"))
    corrected_stack_file: Path = Field(default=Path("corrected_stack.tif"))

    # Control flags
    resume: bool = True
    render_stack: bool = True

    # Stage 1 (similarity)
    comparison_range: int = 10
    xy_scale: float = 1.0
    block_size: Optional[int] = None
    n_workers: Optional[int] = None
    normalize_matrix: bool = True

    # Stage 2 (coordinates)
    estimator: EstimatorKind = EstimatorKind.NEIGHBOR
    minimum_section_thickness: float = 0.01

    # Stage 3 (transforms)
    with_reorder: bool = False

    @field_validator(
        "root",
        "input_file",
        "render_stack_file",
        "external_coordinates_file",
        "output_root",
        "correlations_file",
        "matrix_file",
        "coordinates_file",
        "warped_matrix_file",
        "corrected_stack_file",
        mode="before",
    )
    @classmethod
    def _to_path(cls, v):
        if v is None or isinstance(v, Path):
            return v
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("root")
    @classmethod
    def _validate_root(cls, v: Path):
        if not v.exists():
            raise ValueError(f"Root directory does not exist: {v}")
        if not v.is_dir():
            raise ValueError(f"Root path is not a directory: {v}")
        return v

    @field_validator("comparison_range")
    @classmethod
    def _validate_positive_int(cls, v: int):
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @field_validator("block_size", "n_workers")
    @classmethod
    def _validate_optional_positive_int(cls, v: Optional[int]):
        if v is not None and v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @field_validator("xy_scale")
    @classmethod
    def _validate_xy_scale(cls, v: float):
        if not (0.0 < v <= 1.0):
            raise ValueError("xy_scale must satisfy 0 < xy_scale <= 1")
        return v

    @field_validator("minimum_section_thickness")
    @classmethod
    def _validate_non_negative_float(cls, v: float):
        if v < 0:
            raise ValueError("Value must be >= 0")
        return v

    def _resolve_from_root(self, path: Path) -> Path:
        p = path.expanduser()
        return p if p.is_absolute() else (self.root / p)

    def _resolve_from_output_root(self, path: Path) -> Path:
        p = path.expanduser()
        return p if p.is_absolute() else (self.resolve_output_root() / p)

    def resolve_output_root(self) -> Path:
        return self._resolve_from_root(self.output_root)

    def resolve_input_file(self) -> Path:
        return self._resolve_from_root(self.input_file)

    def resolve_external_coordinates_file(self) -> Optional[Path]:
        if self.external_coordinates_file is None:
            return None
        return self._resolve_from_root(self.external_coordinates_file)

    def resolve_render_stack_file(self) -> Optional[Path]:
        """
        Resolve the stack to render.

        Stack input renders the input itself; matrix input renders
        ``render_stack_file`` if configured.
        """
        if self.input_type is InputType.STACK:
            return self.resolve_input_file()
        if self.render_stack_file is None:
            return None
        return self._resolve_from_root(self.render_stack_file)

    def resolve_correlations_file(self) -> Path:
        return self._resolve_from_output_root(self.correlations_file)

    def resolve_matrix_file(self) -> Path:
        return self._resolve_from_output_root(self.matrix_file)

    def resolve_coordinates_file(self) -> Path:
        return self._resolve_from_output_root(self.coordinates_file)

    def resolve_warped_matrix_file(self) -> Path:
        return self._resolve_from_output_root(self.warped_matrix_file)

    def resolve_corrected_stack_file(self) -> Path:
        return self._resolve_from_output_root(self.corrected_stack_file)

    def pixel_spacing(self) -> Optional[float]:
        """Pixels of the full-resolution stack per correlation block."""
        if self.block_size is None:
            return None
        return self.block_size / self.xy_scale

    @classmethod
    def from_toml(cls, path: Union[str, Path]) -> "ZCorrectConfig":
        import sys

        p = Path(path)
        if sys.version_info >= (3, 11):
            import tomllib

            with open(p, "rb") as f:
                data = tomllib.load(f)
        else:
            try:
                import tomli
            except ImportError as exc:
                raise ImportError(
                    "TOML support requires 'tomli' for Python < 3.11."
                ) from exc
            with open(p, "rb") as f:
                data = tomli.load(f)

        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ZCorrectConfig":
        try:
            import yaml
        except ImportError as exc:
            raise ImportError(
                "YAML support requires 'pyyaml'. Install with: pip install pyyaml"
            ) from exc

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return cls(**data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ZCorrectConfig":
        p = Path(path)
        suffix = p.suffix.lower()
        if suffix == ".toml":
            return cls.from_toml(p)
        if suffix in {".yaml", ".yml"}:
            return cls.from_yaml(p)
        raise ValueError(
            f"Unsupported config file format: {suffix}. Use .toml, .yaml, or .yml."
        )
