"""Report definitions: creation, lookup (cache in front of the store), reads."""
from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import PyMongoError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from insights.core.errors import BackendError, NotFound, ValidationError
from insights.models.report import ReportDefinition
from insights.schemas.reports import CreateReportRequest
from insights.services.documents import to_jsonable
from insights.services.filter_translator import parse_filter
from insights.services.query_executor import build_pagination, build_projection, build_sort

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")


@dataclass(frozen=True)
class ReportSnapshot:
    """Detached copy of a ``ReportDefinition`` row, safe to cache and share."""

    ReportID: str
    Name: str
    ViewName: str
    ViewDBName: str
    SourceCollection: str
    Description: Optional[str] = None
    Pipeline: List[Dict[str, Any]] = field(default_factory=list)
    IsCrossDB: bool = False
    Fields: List[Dict[str, Any]] = field(default_factory=list)
    Filters: List[Any] = field(default_factory=list)
    Searchable: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: ReportDefinition) -> "ReportSnapshot":
        return cls(
            ReportID=row.ReportID,
            Name=row.Name,
            ViewName=row.ViewName,
            ViewDBName=row.ViewDBName,
            SourceCollection=row.SourceCollection,
            Description=row.Description,
            Pipeline=copy.deepcopy(row.Pipeline or []),
            IsCrossDB=bool(row.IsCrossDB),
            Fields=copy.deepcopy(row.Fields or []),
            Filters=copy.deepcopy(row.Filters or []),
            Searchable=list(row.Searchable or []),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.ReportID,
            "name": self.Name,
            "description": self.Description,
            "fields": self.Fields,
            "filters": self.Filters,
            "searchable": self.Searchable,
        }


def _cache_key(report_id: str) -> str:
    return f"report:{report_id}"


class ReportService:
    def __init__(self, session_factory, pool, executor, report_cache, result_cache=None):
        self.session_factory = session_factory
        self.pool = pool
        self.executor = executor
        self.report_cache = report_cache
        self.result_cache = result_cache

    # ------------------------------------------------------------------ #
    # Definitions
    # ------------------------------------------------------------------ #
    def create_report(self, payload: CreateReportRequest) -> str:
        view, spec = payload.view, payload.report
        with self.session_factory() as db:
            if db.query(ReportDefinition).filter(ReportDefinition.Name == spec.name).first():
                raise ValidationError(f"A report named '{spec.name}' already exists")

        self._replace_view(view.viewDBName, view.viewName, view.sourceCollection, view.pipeline)

        report_id = str(uuid.uuid4())
        row = ReportDefinition(
            ReportID=report_id,
            Name=spec.name,
            Description=spec.description,
            ViewName=view.viewName,
            ViewDBName=view.viewDBName,
            SourceCollection=view.sourceCollection,
            Pipeline=view.pipeline,
            IsCrossDB=spec.isCrossDB,
            Fields=[f.model_dump(exclude_none=True) for f in spec.fields],
            Filters=spec.filters,
            Searchable=spec.searchable,
        )
        with self.session_factory() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ValidationError(f"A report named '{spec.name}' already exists")
        audit.info(
            "report.created",
            extra={"report_id": report_id, "report_name": spec.name, "view": view.viewName},
        )
        return report_id

    def _replace_view(self, db_name: str, view_name: str, source: str, pipeline) -> None:
        entry = self.pool.acquire(db_name)
        try:
            if view_name in entry.db.list_collection_names(filter={"name": view_name}):
                logger.info("report.view.dropping", extra={"view": view_name, "db_name": db_name})
                entry.db.drop_collection(view_name)
            entry.db.create_collection(view_name, viewOn=source, pipeline=pipeline)
        except PyMongoError as e:
            logger.error("report.view.create_failed", extra={"view": view_name, "error": str(e)})
            raise BackendError("Failed to create the report", str(e))

    def list_reports(self) -> List[Dict[str, Any]]:
        try:
            with self.session_factory() as db:
                rows = db.query(ReportDefinition).order_by(ReportDefinition.Name).all()
                return [ReportSnapshot.from_row(r).summary() for r in rows]
        except SQLAlchemyError as e:
            raise BackendError("Failed to fetch reports list", str(e))

    def get_definition(self, report_id: str) -> ReportSnapshot:
        if not report_id:
            raise NotFound("Report not found")
        key = _cache_key(report_id)
        cached = self.report_cache.get(key)
        if cached is not None:
            return cached
        try:
            with self.session_factory() as db:
                row = (
                    db.query(ReportDefinition)
                    .filter(ReportDefinition.ReportID == report_id)
                    .first()
                )
                snapshot = ReportSnapshot.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise BackendError("Failed to load report", str(e))
        if snapshot is None:
            raise NotFound("Report not found")
        self.report_cache.set(key, snapshot)
        return snapshot

    def invalidate(self, report_id: str) -> None:
        self.report_cache.invalidate(_cache_key(report_id))

    # ------------------------------------------------------------------ #
    # Data
    # ------------------------------------------------------------------ #
    def read(
        self,
        report_id: str,
        select: Optional[str] = None,
        filter_text: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        count: int = 10,
    ) -> Tuple[List[Any], Dict[str, Any]]:
        report = self.get_definition(report_id)
        predicate = parse_filter(filter_text)
        projection = build_projection(select)
        sort_spec = build_sort(sort)

        result_key = ("read", report_id, select, filter_text, sort, page, count)
        if self.result_cache is not None:
            hit = self.result_cache.get(result_key)
            if hit is not None:
                return hit

        page_size = min(count, self.executor.max_page_size)
        rows, total = self.executor.execute(
            report, predicate, projection, sort_spec, page=page, page_size=page_size
        )
        result = (to_jsonable(rows), build_pagination(total, page, page_size))
        if self.result_cache is not None:
            self.result_cache.set(result_key, result)
        return result

    def count(self, report_id: str, filter_text: Optional[str] = None) -> int:
        report = self.get_definition(report_id)
        predicate = parse_filter(filter_text)

        result_key = ("count", report_id, filter_text)
        if self.result_cache is not None:
            hit = self.result_cache.get(result_key)
            if hit is not None:
                return hit

        total = self.executor.count(report, predicate)
        if self.result_cache is not None:
            self.result_cache.set(result_key, total)
        return total
