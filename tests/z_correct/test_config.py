"""
Tests for ZCorrectConfig.

Tests validation, path resolution and loading from TOML/YAML files.
"""

import pytest
from pathlib import Path
from pydantic import ValidationError

from pyzpos.z_correct.config import EstimatorKind, InputType, ZCorrectConfig


class TestValidation:
    """Test field validation."""

    def test_defaults(self, tmp_path):
        """Test default values of a minimal config."""
        config = ZCorrectConfig(root=tmp_path, input_file="stack.tif")
        assert config.input_type is InputType.STACK
        assert config.estimator is EstimatorKind.NEIGHBOR
        assert config.comparison_range == 10
        assert config.input_file == Path("stack.tif")
        assert config.pixel_spacing() is None

    def test_missing_root(self, tmp_path):
        """Test that a missing root directory is rejected."""
        with pytest.raises(ValidationError, match="does not exist"):
            ZCorrectConfig(root=tmp_path / "missing", input_file="stack.tif")

    def test_root_must_be_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(ValidationError, match="not a directory"):
            ZCorrectConfig(root=path, input_file="stack.tif")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("comparison_range", 0),
            ("block_size", 0),
            ("n_workers", -1),
            ("xy_scale", 0.0),
            ("xy_scale", 1.5),
            ("minimum_section_thickness", -0.1),
        ],
    )
    def test_invalid_values(self, tmp_path, field, value):
        """Test that out-of-range parameters are rejected."""
        with pytest.raises(ValidationError):
            ZCorrectConfig(root=tmp_path, input_file="stack.tif", **{field: value})

    def test_enum_from_string(self, tmp_path):
        config = ZCorrectConfig(
            root=tmp_path, input_file="m.tif", input_type="matrix", estimator="file"
        )
        assert config.input_type is InputType.MATRIX
        assert config.estimator is EstimatorKind.FILE


class TestPathResolution:
    """Test resolution of relative paths."""

    def test_outputs_under_output_root(self, tmp_path):
        config = ZCorrectConfig(root=tmp_path, input_file="stack.tif", output_root="out")
        assert config.resolve_input_file() == tmp_path / "stack.tif"
        assert config.resolve_output_root() == tmp_path / "out"
        assert config.resolve_correlations_file() == tmp_path / "out" / "correlations.h5"
        assert config.resolve_coordinates_file() == tmp_path / "out" / "coordinates.npy"

    def test_absolute_paths_kept(self, tmp_path):
        target = tmp_path / "elsewhere" / "coords.npy"
        config = ZCorrectConfig(
            root=tmp_path, input_file="stack.tif", coordinates_file=target
        )
        assert config.resolve_coordinates_file() == target

    def test_render_stack_for_stack_input(self, tmp_path):
        config = ZCorrectConfig(
            root=tmp_path, input_file="stack.tif", render_stack_file="other.tif"
        )
        assert config.resolve_render_stack_file() == tmp_path / "stack.tif"

    def test_render_stack_for_matrix_input(self, tmp_path):
        config = ZCorrectConfig(root=tmp_path, input_file="m.tif", input_type="matrix")
        assert config.resolve_render_stack_file() is None

        config = ZCorrectConfig(
            root=tmp_path,
            input_file="m.tif",
            input_type="matrix",
            render_stack_file="stack.tif",
        )
        assert config.resolve_render_stack_file() == tmp_path / "stack.tif"

    def test_pixel_spacing(self, tmp_path):
        config = ZCorrectConfig(
            root=tmp_path, input_file="stack.tif", block_size=8, xy_scale=0.5
        )
        assert config.pixel_spacing() == 16.0


class TestFileLoading:
    """Test loading configs from files."""

    def test_from_toml(self, tmp_path):
        path = tmp_path / "z_correct.toml"
        path.write_text(
            f'root = "{tmp_path.as_posix()}"\n'
            'input_file = "stack.tif"\n'
            "comparison_range = 4\n"
            "with_reorder = true\n"
        )
        config = ZCorrectConfig.from_file(path)
        assert config.comparison_range == 4
        assert config.with_reorder is True

    def test_from_yaml(self, tmp_path):
        pytest.importorskip("yaml")
        path = tmp_path / "z_correct.yaml"
        path.write_text(
            f"root: {tmp_path.as_posix()}\n"
            "input_file: matrix.npy\n"
            "input_type: matrix\n"
        )
        config = ZCorrectConfig.from_file(path)
        assert config.input_type is InputType.MATRIX

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported config"):
            ZCorrectConfig.from_file(tmp_path / "config.json")
