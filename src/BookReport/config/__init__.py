from __future__ import annotations

"""Public configuration API for BookReport."""

from BookReport.config.app import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    load_config,
    merge_config_dicts,
    parse_config_dict,
)
from BookReport.config.output import OutputConfig
from BookReport.config.runtime import RuntimeConfig
from BookReport.config.store import StoreConfig

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "RuntimeConfig",
    "StoreConfig",
    "OutputConfig",
    "AppConfig",
    "load_config",
    "merge_config_dicts",
    "parse_config_dict",
]
