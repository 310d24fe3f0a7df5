"""Output renderers for report results.

Console and JSON writers, plus a factory that builds the writer chain named
by `output.formats`.
"""

from __future__ import annotations

from typing import Callable

from BookReport.config import AppConfig, OutputConfig
from BookReport.config.output import FORMAT_CONSOLE, FORMAT_JSON
from BookReport.renderers.base import MultiOutputWriter, OutputWriter
from BookReport.renderers.console import ConsoleOutputWriter, render_result
from BookReport.renderers.json import JsonFileWriter, render_json

_WRITER_FACTORIES: dict[str, Callable[[OutputConfig], OutputWriter]] = {
    FORMAT_CONSOLE: lambda output: ConsoleOutputWriter(),
    FORMAT_JSON: lambda output: JsonFileWriter(output.base_dir),
}


def create_output_writer(config: AppConfig) -> OutputWriter:
    """Create the writer chain for the configured formats.

    Raises:
        ValueError: If a format has no writer or none is configured.
    """
    writers: list[OutputWriter] = []
    for fmt in config.output.formats:
        factory = _WRITER_FACTORIES.get(fmt)
        if factory is None:
            raise ValueError(f"No output writer for format: {fmt}")
        writers.append(factory(config.output))
    return MultiOutputWriter(writers)


__all__ = [
    "OutputWriter",
    "ConsoleOutputWriter",
    "JsonFileWriter",
    "MultiOutputWriter",
    "render_json",
    "render_result",
    "create_output_writer",
]
