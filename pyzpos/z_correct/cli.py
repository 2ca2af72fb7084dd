"""
Command-line interface for z-position correction workflows.

Provides the ``pyzpos-z-correct`` command.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from pyzpos.z_correct.config import ZCorrectConfig
from pyzpos.z_correct.pipeline import (
    run_all_stages,
    run_stage1,
    run_stage2,
    run_stage3,
)

_STAGES = {
    "similarity": run_stage1,
    "coordinates": run_stage2,
    "render": run_stage3,
}
_STAGE_ALIASES = {"1": "similarity", "2": "coordinates", "3": "render"}

_EPILOG = """\
stages:
  similarity   pairwise section correlations -> correlations.h5
  coordinates  z-coordinates per sample location -> coordinates.npy
  render       warped similarity matrix and corrected stack

example:
  pyzpos-z-correct run -c z_correct.toml --stage coordinates \\
      --set estimator=file external_coordinates_file=coords.npy
"""


def _parse_value(raw: str) -> Any:
    """JSON literal if ``raw`` is one (``none`` is accepted for null), else the string."""
    if raw.lower() in ("none", "null"):
        return None
    if raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _override(item: str) -> Tuple[str, Any]:
    key, sep, value = item.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{item}'")
    return key.strip(), _parse_value(value)


def _stage(name: str) -> str:
    name = _STAGE_ALIASES.get(name, name)
    if name not in _STAGES:
        raise argparse.ArgumentTypeError(
            f"unknown stage '{name}' (choose from {', '.join(_STAGES)} or 1-3)"
        )
    return name


def load_config(config_path: Path, overrides: Optional[Dict[str, Any]] = None) -> ZCorrectConfig:
    """Load a config file and re-validate it with ``overrides`` applied."""
    config = ZCorrectConfig.from_file(config_path)
    if not overrides:
        return config
    return ZCorrectConfig(**{**config.model_dump(), **overrides})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pyzpos-z-correct",
        description="Estimate and correct z-drift in stacks of serial sections.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    run = commands.add_parser(
        "run",
        help="run the pipeline (all stages unless --stage is given)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )
    run.add_argument("-c", "--config", type=Path, required=True, help="TOML or YAML config file")
    run.add_argument(
        "-s",
        "--stage",
        type=_stage,
        metavar="STAGE",
        help="similarity | coordinates | render (or 1 | 2 | 3)",
    )
    run.add_argument(
        "--set",
        dest="overrides",
        type=_override,
        nargs="+",
        default=[],
        metavar="KEY=VALUE",
        help="config values replacing those of the file",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "run":
        parser.print_help()
        sys.exit(1)

    if not args.config.exists():
        parser.error(f"config file not found: {args.config}")
    config = load_config(args.config, dict(args.overrides))

    if args.stage is None:
        run_all_stages(config)
    else:
        _STAGES[args.stage](config)


if __name__ == "__main__":
    main()
