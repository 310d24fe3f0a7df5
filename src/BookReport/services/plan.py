"""Query plan inspection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from BookReport.core.models import PlanSummary
from BookReport.core.query import Condition, check_filter
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


@dataclass(slots=True)
class PlanInspector:
    """Ask the store how it would run a find, without changing any data."""

    store: DocumentStore

    def explain(self, conditions: Sequence[Condition]) -> PlanSummary:
        """Return the plan summary for a find with this filter.

        Args:
            conditions: Filter to explain.

        Returns:
            Stage tree and statistics; `uses_index` tells index scans from
            full collection scans.

        Raises:
            InvalidSpec: If the filter is malformed.
            StoreUnavailable: If the store cannot produce a plan.
        """
        conditions = check_filter(conditions)
        summary = self.store.explain(conditions)
        log.debug(
            "explain filter=%s uses_index=%s indexes=%s",
            conditions,
            summary.uses_index,
            summary.index_names,
        )
        return summary
