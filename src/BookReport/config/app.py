from __future__ import annotations

"""Application config orchestration and YAML loading entrypoints."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from BookReport.config.common import ConfigSection
from BookReport.config.output import OutputConfig, check_output, load_output
from BookReport.config.runtime import RuntimeConfig, check_runtime, load_runtime
from BookReport.config.store import StoreConfig, check_store, load_store

DEFAULT_CONFIG_PATH = Path("config/default.yml")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application root configuration."""

    runtime: RuntimeConfig
    store: StoreConfig
    output: OutputConfig


def parse_config_dict(raw: Mapping[str, Any]) -> AppConfig:
    """Parse a raw mapping into a validated AppConfig.

    Raises:
        TypeError: If a value has the wrong type.
        ValueError: If a key is missing or a value violates its constraints.
    """
    root = ConfigSection.root(raw)
    config = AppConfig(
        runtime=load_runtime(root),
        store=load_store(root),
        output=load_output(root),
    )
    check_runtime(config.runtime)
    check_store(config.store)
    check_output(config.output)
    return config


def load_config(path: Path, defaults: Path | None = None) -> AppConfig:
    """Load a YAML config file, layered over `defaults` when given.

    Args:
        path: Config file to load.
        defaults: Base file whose keys `path` overrides; ignored when it is
            the same file as `path`.

    Returns:
        Validated configuration.
    """
    raw = read_yaml(path)
    if defaults is not None and Path(defaults).resolve() != Path(path).resolve():
        raw = merge_config_dicts(read_yaml(defaults), raw)
    return parse_config_dict(raw)


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file whose root must be a mapping (empty file is `{}`)."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config root of {path} must be a mapping/object")
    return dict(data)


def merge_config_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge `override` into `base`; nested mappings merge key by key."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = merge_config_dicts(current, value)
        merged[key] = value
    return merged
