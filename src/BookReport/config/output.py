"""Output domain configuration for report rendering."""

from __future__ import annotations

from dataclasses import dataclass

from BookReport.config.common import ConfigSection, check_non_empty

FORMAT_CONSOLE = "console"
FORMAT_JSON = "json"
_ALLOWED_FORMATS = {FORMAT_CONSOLE, FORMAT_JSON}


@dataclass(frozen=True, slots=True)
class OutputConfig:
    """Output configuration.

    Attributes:
        base_dir: Root directory for file outputs.
        formats: Enabled writers, lower-cased and de-duplicated in order.
    """

    base_dir: str
    formats: tuple[str, ...]


def load_output(root: ConfigSection) -> OutputConfig:
    section = root.section("output", required=True)
    formats = tuple(dict.fromkeys(item.strip().lower() for item in section.string_list("formats")))
    return OutputConfig(base_dir=section.string("base_dir"), formats=formats)


def check_output(config: OutputConfig) -> None:
    """Validate output domain constraints.

    Raises:
        ValueError: If values violate output constraints.
    """
    check_non_empty(config.base_dir, "output.base_dir")
    if not config.formats:
        raise ValueError("output.formats must include at least one format")
    unknown = set(config.formats) - _ALLOWED_FORMATS
    if unknown:
        raise ValueError(f"output.formats has unknown formats: {sorted(unknown)}")
