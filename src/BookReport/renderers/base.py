"""Output writer interface.

Commands hand each `EntryResult` to a writer as soon as it is produced;
`finalize` runs once after the last entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from BookReport.services.report import EntryResult


class OutputWriter(ABC):
    """Abstract base class for report output writers."""

    @abstractmethod
    def write_result(self, result: EntryResult) -> None:
        """Write the result of a single catalog entry.

        Args:
            result: Entry and the value its operation returned.
        """

    @abstractmethod
    def finalize(self, action: str) -> None:
        """Flush anything accumulated during the run.

        Args:
            action: The CLI command name (e.g., 'run').
        """


class MultiOutputWriter(OutputWriter):
    """Fan each result out to several writers, in configuration order."""

    def __init__(self, writers: Iterable[OutputWriter]) -> None:
        """Initialize the fan-out writer.

        Raises:
            ValueError: If no writer is given.
        """
        self.writers = tuple(writers)
        if not self.writers:
            raise ValueError("No output writers configured")

    def write_result(self, result: EntryResult) -> None:
        for writer in self.writers:
            writer.write_result(result)

    def finalize(self, action: str) -> None:
        for writer in self.writers:
            writer.finalize(action)
