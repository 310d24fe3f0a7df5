"""Runtime domain configuration (logging and which report entries run)."""

from __future__ import annotations

from dataclasses import dataclass

from BookReport.config.common import ConfigSection, check_non_empty

_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Validated process settings.

    Attributes:
        level: Logging level name.
        to_file: Whether logs are mirrored to a per-action file.
        dir: Base directory for log files.
        entries: Catalog entry names run by default; empty runs all.
    """

    level: str
    to_file: bool
    dir: str
    entries: tuple[str, ...] = ()


def load_runtime(root: ConfigSection) -> RuntimeConfig:
    """Load runtime configuration from the `log` and `report` sections.

    Raises:
        TypeError: If config types are invalid.
        ValueError: If required keys are missing.
    """
    log_section = root.section("log", required=True)
    report = root.section("report")
    return RuntimeConfig(
        level=log_section.string("level").upper(),
        to_file=log_section.boolean("to_file"),
        dir=log_section.string("dir"),
        entries=report.string_list("entries", []),
    )


def check_runtime(config: RuntimeConfig) -> None:
    """Validate runtime domain constraints.

    Raises:
        ValueError: If values violate runtime constraints.
    """
    if config.level not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log.level must be one of {sorted(_ALLOWED_LOG_LEVELS)}")
    check_non_empty(config.dir, "log.dir")
    for idx, name in enumerate(config.entries):
        check_non_empty(name, f"report.entries[{idx}]")
