"""YAML config loader for the fault injection engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from faultline.chaos.config import EngineConfig


def load_engine_config(path: str | Path) -> EngineConfig:
    """Load engine settings from a YAML file.

    The file holds an ``engine:`` mapping; a missing or empty mapping
    yields the defaults.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A validated EngineConfig.

    Raises:
        FileNotFoundError: *path* does not exist.
        ValueError: the document is not a mapping.
        pydantic.ValidationError: the ``engine:`` values are invalid.
    """
    raw: Any = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(raw).__name__}")
    return EngineConfig.model_validate(raw.get("engine") or {})
