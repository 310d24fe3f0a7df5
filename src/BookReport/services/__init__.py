"""Query services for BookReport.

Each service takes the store handle in its constructor; nothing here keeps a
global connection.
"""

from __future__ import annotations

from BookReport.services.executor import QueryExecutor
from BookReport.services.indexes import IndexManager
from BookReport.services.plan import PlanInspector
from BookReport.services.report import EntryResult, ReportRunner
from BookReport.services.seed import load_books, seed_books

__all__ = [
    "QueryExecutor",
    "IndexManager",
    "PlanInspector",
    "EntryResult",
    "ReportRunner",
    "load_books",
    "seed_books",
]
