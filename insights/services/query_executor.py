"""Paginated reads against a report's backing view."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure, PyMongoError

from insights.core.errors import BackendError, BadFilter, InsightsError, ValidationError

logger = logging.getLogger(__name__)


def build_projection(select: Optional[str]) -> Optional[Dict[str, int]]:
    """``"a, b,c"`` -> ``{"a": 1, "b": 1, "c": 1}``; nothing selected -> ``None``."""
    if not select:
        return None
    fields = [f.strip() for f in select.split(",") if f.strip()]
    return {f: 1 for f in fields} or None


def build_sort(sort: Optional[str]) -> Optional[List[Tuple[str, int]]]:
    """``"-amount"`` -> descending on ``amount``; ``"amount"`` -> ascending."""
    if not sort or not sort.strip():
        return None
    sort = sort.strip()
    if sort.startswith("-"):
        field, direction = sort[1:].strip(), DESCENDING
    else:
        field, direction = sort, ASCENDING
    if not field:
        raise ValidationError("Invalid sort parameter", sort)
    return [(field, direction)]


def build_pagination(total: int, page: int, page_size: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / page_size) if page_size else 0
    return {
        "page": page,
        "count": page_size,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def _backend_error(action: str, report, exc: PyMongoError) -> InsightsError:
    # Server-side regex compilation failures are the caller's fault
    if isinstance(exc, OperationFailure) and "regular expression" in str(exc).lower():
        return BadFilter("Invalid filter format", str(exc))
    logger.error(
        "report.query_failed",
        extra={
            "action": action,
            "report_id": getattr(report, "ReportID", None),
            "view": getattr(report, "ViewName", None),
            "error": str(exc),
        },
    )
    return BackendError(f"Failed to {action} report data", str(exc))


class QueryExecutor:
    def __init__(self, pool, max_page_size: int = 1000):
        self.pool = pool
        self.max_page_size = max_page_size

    def _collection(self, report):
        entry = self.pool.acquire(report.ViewDBName)
        return entry.db[report.ViewName]

    def execute(
        self,
        report,
        predicate: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of rows and the pre-pagination match count."""
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if page_size < 1:
            raise ValidationError("count must be 1 or greater")
        page_size = min(page_size, self.max_page_size)
        offset = (page - 1) * page_size

        collection = self._collection(report)
        try:
            cursor = collection.find(predicate, projection)
            if sort:
                cursor = cursor.sort(sort)
            rows = list(cursor.skip(offset).limit(page_size))
            total = collection.count_documents(predicate)
        except PyMongoError as e:
            raise _backend_error("fetch", report, e)
        return rows, total

    def count(self, report, predicate: Dict[str, Any]) -> int:
        collection = self._collection(report)
        try:
            return collection.count_documents(predicate)
        except PyMongoError as e:
            raise _backend_error("count", report, e)

    def stream(self, report, predicate: Dict[str, Any], batch_size: int = 1000):
        """Iterate every matching document in natural order (used by exports)."""
        collection = self._collection(report)
        yield from collection.find(predicate, batch_size=batch_size)
