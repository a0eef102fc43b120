"""Explicit wiring of the long-lived services held on ``app.state.services``."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from insights.services.archive_storage import build_archive_storage
from insights.services.cache import LRUCache
from insights.services.connection_pool import ConnectionPool
from insights.services.export_service import ExportService, ExportWorker
from insights.services.query_executor import QueryExecutor
from insights.services.report_service import ReportService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    pool: ConnectionPool
    report_cache: LRUCache
    result_cache: LRUCache
    reports: ReportService
    exports: ExportService
    worker: Any
    scheduler: Optional[Any] = None

    def shutdown(self, wait_for_exports: bool = False) -> None:
        # Producers stop before the connections they use are closed
        if self.scheduler is not None and getattr(self.scheduler, "running", False):
            self.scheduler.shutdown(wait=False)
        self.worker.shutdown(wait=wait_for_exports)
        self.report_cache.clear()
        self.result_cache.clear()
        self.pool.close_all()
        logger.info("services.stopped")


def build_services(settings, session_factory, pool=None, storage=None, worker=None) -> Services:
    pool = pool or ConnectionPool(
        settings.MONGODB_URI,
        server_selection_timeout_ms=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    )
    report_cache = LRUCache(settings.REPORT_CACHE_SIZE, settings.REPORT_CACHE_TTL_SECONDS)
    result_cache = LRUCache(settings.RESULT_CACHE_SIZE, settings.RESULT_CACHE_TTL_SECONDS)
    executor = QueryExecutor(pool, max_page_size=settings.MAX_PAGE_SIZE)
    reports = ReportService(
        session_factory,
        pool,
        executor,
        report_cache,
        result_cache if settings.RESULT_CACHE_ENABLED else None,
    )
    worker = worker or ExportWorker(max_workers=settings.EXPORT_MAX_WORKERS)
    exports = ExportService(
        session_factory,
        reports,
        executor,
        storage or build_archive_storage(settings),
        worker,
        batch_size=settings.EXPORT_BATCH_SIZE,
        retention_days=settings.EXPORT_RETENTION_DAYS,
        artifact_max_age_days=settings.EXPORT_ARTIFACT_MAX_AGE_DAYS,
    )
    return Services(
        pool=pool,
        report_cache=report_cache,
        result_cache=result_cache,
        reports=reports,
        exports=exports,
        worker=worker,
    )
