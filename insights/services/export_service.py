"""Asynchronous report exports: job records, CSV+zip generation, retention.

Lifecycle of a job::

    Pending -> Processing -> Completed
                          \\-> Failed

``initiate`` runs in the request path: it validates, persists a ``Pending``
record and hands ``process`` to the worker. ``process`` owns every later
transition and never raises; failures end up on the record as ``Failed``.
"""
from __future__ import annotations

import csv
import logging
import os
import shutil
import tempfile
import threading
import uuid
import zipfile
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from insights.core.errors import BadFilter, ExportNotReady, NotFound, ValidationError
from insights.models.export import ExportStatus, ReportExport
from insights.services.documents import format_cell, get_path
from insights.services.filter_translator import translate
from insights.services.query_executor import build_pagination

logger = logging.getLogger("insights.export")
audit = logging.getLogger("audit")

_TRANSITIONS = {
    ExportStatus.PENDING: {ExportStatus.PROCESSING, ExportStatus.FAILED},
    ExportStatus.PROCESSING: {ExportStatus.COMPLETED, ExportStatus.FAILED},
    ExportStatus.COMPLETED: set(),
    ExportStatus.FAILED: set(),
}


def utcnow() -> datetime:
    # Naive UTC to match the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _safe_filename(name: str) -> str:
    name = str(name).strip().replace(" ", "_")
    return "".join(c for c in name if c.isalnum() or c in ("-", "_", "."))[:100]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_job(job: ReportExport) -> Dict[str, Any]:
    return {
        "exportId": job.ExportID,
        "reportId": job.ReportID,
        "user": job.UserID,
        "status": job.Status,
        "fileName": job.FileName,
        "recordCount": job.RecordCount,
        "filter": job.Filter,
        "createdAt": _iso(job.CreatedAt),
        "lastUpdated": _iso(job.LastUpdated),
        "completedAt": _iso(job.CompletedAt),
        "expiresAt": _iso(job.ExpiresAt),
        "viewed": bool(job.Viewed),
        "viewedAt": _iso(job.ViewedAt),
        "version": job.Version,
        "error": job.ErrorMessage,
    }


class InvalidTransition(RuntimeError):
    pass


class ExportWorker:
    """Bounded thread pool running export jobs off the request path."""

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="export")
        self._futures: set = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable, *args) -> Future:
        future = self._executor.submit(fn, *args)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._done)
        return future

    def _done(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("export.worker.unhandled", exc_info=exc)

    def pending(self) -> int:
        with self._lock:
            return len(self._futures)

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)


@dataclass
class DownloadTicket:
    file_name: str
    path: Optional[str] = None
    url: Optional[str] = None


class ExportService:
    def __init__(
        self,
        session_factory,
        reports,
        executor,
        storage,
        worker,
        batch_size: int = 1000,
        retention_days: int = 7,
        artifact_max_age_days: int = 7,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.reports = reports
        self.executor = executor
        self.storage = storage
        self.worker = worker
        self.batch_size = batch_size
        self.retention_days = retention_days
        self.artifact_max_age_days = artifact_max_age_days
        self._now = clock

    # ------------------------------------------------------------------ #
    # Request path
    # ------------------------------------------------------------------ #
    def initiate(self, report_id: str, filter_tree: Optional[Dict[str, Any]], caller: str) -> Dict[str, Any]:
        if not report_id:
            raise ValidationError("reportId is required")
        raw = filter_tree or {}
        if not isinstance(raw, dict):
            raise BadFilter("Invalid filter format", "filter must be a JSON object")
        predicate = translate(raw)
        report = self.reports.get_definition(report_id)

        now = self._now()
        job = ReportExport(
            ExportID=str(uuid.uuid4()),
            UserID=caller,
            ReportID=report_id,
            CreatedAt=now,
            LastUpdated=now,
            ExpiresAt=now + timedelta(days=self.retention_days),
            Version=1,
            Deleted=False,
            Viewed=False,
            Status=ExportStatus.PENDING.value,
            FileName=f"{_safe_filename(report.Name) or 'report'}_{now.strftime('%Y%m%dT%H%M%SZ')}",
            Filter=raw,
            Columns=list(report.Fields),
            RecordCount=0,
        )
        with self.session_factory() as db:
            db.add(job)
            db.commit()
            view = serialize_job(job)

        logger.info(
            "export.initiated",
            extra={"export_id": view["exportId"], "report_id": report_id, "user": caller},
        )
        if not self._submit(view["exportId"], report_id, predicate, caller):
            with self.session_factory() as db:
                view = serialize_job(db.get(ReportExport, view["exportId"]))
        return view

    def _submit(self, export_id: str, report_id: str, predicate, caller: str) -> bool:
        try:
            self.worker.submit(self.process, export_id, report_id, predicate, caller)
        except RuntimeError as e:
            # Worker already shut down
            logger.error("export.submit_failed", extra={"export_id": export_id, "error": str(e)})
            self._fail(export_id, f"Could not schedule export: {e}")
            return False
        return True

    # ------------------------------------------------------------------ #
    # Background processing
    # ------------------------------------------------------------------ #
    def process(self, export_id: str, report_id: str, predicate, caller: str) -> None:
        ctx = {"export_id": export_id, "report_id": report_id, "user": caller}
        tmpdir = None
        try:
            file_name, columns = self._start(export_id)
            report = self.reports.get_definition(report_id)
            columns = columns or list(report.Fields)

            total = self.executor.count(report, predicate)
            if total == 0:
                self._complete(export_id, record_count=0)
                logger.info("export.completed_empty", extra=ctx)
                return

            tmpdir = tempfile.mkdtemp(prefix="export_")
            csv_path = os.path.join(tmpdir, f"{file_name}.csv")
            written = self._write_csv(csv_path, report, predicate, columns)
            if written == 0:
                # Matches vanished between the count and the scan
                self._complete(export_id, record_count=0)
                logger.info("export.completed_empty", extra=ctx)
                return

            archive_path = os.path.join(tmpdir, f"{file_name}.zip")
            with zipfile.ZipFile(
                archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
            ) as z:
                z.write(csv_path, arcname=f"{file_name}.csv")
            size = os.path.getsize(archive_path)
            # Stored under the job id; two jobs may share a display name
            location = self.storage.save(archive_path, caller, f"{export_id}.zip")

            self._complete(export_id, record_count=written, location=location, size=size)
            logger.info("export.completed", extra={**ctx, "record_count": written, "bytes": size})
        except Exception as e:
            logger.exception("export.failed", extra=ctx)
            self._fail(export_id, str(e) or e.__class__.__name__)
        finally:
            if tmpdir:
                shutil.rmtree(tmpdir, ignore_errors=True)

    def _write_csv(self, path: str, report, predicate, columns: List[Dict[str, Any]]) -> int:
        written = 0
        buffer: List[List[str]] = []
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow([c.get("label") or c["key"] for c in columns])
            for doc in self.executor.stream(report, predicate, batch_size=self.batch_size):
                buffer.append(
                    [format_cell(get_path(doc, c["key"]), c.get("type", "string")) for c in columns]
                )
                if len(buffer) >= self.batch_size:
                    writer.writerows(buffer)
                    written += len(buffer)
                    buffer.clear()
            if buffer:
                writer.writerows(buffer)
                written += len(buffer)
        return written

    def _advance(self, db, job: ReportExport, status: ExportStatus, **values) -> None:
        current = ExportStatus(job.Status)
        if status not in _TRANSITIONS[current]:
            raise InvalidTransition(f"{current.value} -> {status.value}")
        job.Status = status.value
        for name, value in values.items():
            setattr(job, name, value)
        self._touch(job)
        db.commit()

    def _touch(self, job: ReportExport) -> None:
        job.LastUpdated = self._now()
        job.Version = int(job.Version or 0) + 1

    def _start(self, export_id: str) -> Tuple[str, List[Dict[str, Any]]]:
        with self.session_factory() as db:
            job = db.get(ReportExport, export_id)
            if job is None:
                raise NotFound("Export not found")
            self._advance(db, job, ExportStatus.PROCESSING)
            return job.FileName, list(job.Columns or [])

    def _complete(
        self,
        export_id: str,
        record_count: int,
        location: Optional[str] = None,
        size: Optional[int] = None,
    ) -> None:
        with self.session_factory() as db:
            job = db.get(ReportExport, export_id)
            self._advance(
                db,
                job,
                ExportStatus.COMPLETED,
                RecordCount=record_count,
                ArchiveLocation=location,
                ArchiveSize=size,
                CompletedAt=self._now(),
            )

    def _fail(self, export_id: str, message: str) -> None:
        try:
            with self.session_factory() as db:
                job = db.get(ReportExport, export_id)
                if job is None or job.Status in (
                    ExportStatus.COMPLETED.value,
                    ExportStatus.FAILED.value,
                ):
                    return
                self._advance(db, job, ExportStatus.FAILED, ErrorMessage=message[:2000])
        except SQLAlchemyError:
            logger.exception("export.mark_failed_error", extra={"export_id": export_id})

    # ------------------------------------------------------------------ #
    # Job access
    # ------------------------------------------------------------------ #
    def _owned(self, db, export_id: str, caller: str) -> ReportExport:
        job = db.get(ReportExport, export_id) if export_id else None
        if job is None or job.Deleted or job.UserID != caller:
            raise NotFound("Export not found")
        return job

    def list_exports(self, caller: str, page: int = 1, count: int = 10):
        if page < 1 or count < 1:
            raise ValidationError("page and count must be 1 or greater")
        with self.session_factory() as db:
            q = db.query(ReportExport).filter(
                ReportExport.UserID == caller, ReportExport.Deleted.is_(False)
            )
            total = q.count()
            rows = (
                q.order_by(ReportExport.CreatedAt.desc())
                .offset((page - 1) * count)
                .limit(count)
                .all()
            )
            return [serialize_job(r) for r in rows], build_pagination(total, page, count)

    def get_export(self, export_id: str, caller: str) -> Dict[str, Any]:
        with self.session_factory() as db:
            return serialize_job(self._owned(db, export_id, caller))

    def open_download(self, export_id: str, caller: str) -> DownloadTicket:
        with self.session_factory() as db:
            job = self._owned(db, export_id, caller)
            if job.Status != ExportStatus.COMPLETED.value:
                raise ExportNotReady("Export is not ready", {"status": job.Status})
            if not job.RecordCount or not job.ArchiveLocation:
                raise NotFound("Export contains no records")
            if job.ExpiresAt and job.ExpiresAt < self._now():
                raise NotFound("Export has expired")
            location, file_name = job.ArchiveLocation, f"{job.FileName}.zip"

        path = self.storage.local_path(location)
        if path:
            return DownloadTicket(file_name=file_name, path=path)
        if hasattr(self.storage, "presigned_url") and self.storage.exists(location):
            return DownloadTicket(file_name=file_name, url=self.storage.presigned_url(location, file_name))
        raise NotFound("Export file is missing")

    def mark_viewed(self, export_id: str, caller: str, retention_days: int = 7) -> Dict[str, Any]:
        if retention_days < 1:
            raise ValidationError("retentionDays must be 1 or greater")
        with self.session_factory() as db:
            job = self._owned(db, export_id, caller)
            now = self._now()
            job.Viewed = True
            job.ViewedAt = now
            job.ExpiresAt = now + timedelta(days=retention_days)
            self._touch(job)
            db.commit()
            return serialize_job(job)

    def delete_export(self, export_id: str, caller: str) -> Dict[str, Any]:
        with self.session_factory() as db:
            job = self._owned(db, export_id, caller)
            self.storage.delete(job.ArchiveLocation)
            job.Deleted = True
            self._touch(job)
            db.commit()
            audit.info("export.deleted", extra={"export_id": export_id, "user": caller})
            return serialize_job(job)

    # ------------------------------------------------------------------ #
    # Retention and recovery
    # ------------------------------------------------------------------ #
    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Soft-delete jobs past ``ExpiresAt`` and remove their archives."""
        now = now or self._now()
        removed = 0
        with self.session_factory() as db:
            jobs = (
                db.query(ReportExport)
                .filter(
                    ReportExport.Deleted.is_(False),
                    ReportExport.ExpiresAt.isnot(None),
                    ReportExport.ExpiresAt < now,
                )
                .all()
            )
            for job in jobs:
                try:
                    self.storage.delete(job.ArchiveLocation)
                except OSError as e:
                    logger.warning(
                        "export.sweep.delete_failed",
                        extra={"export_id": job.ExportID, "error": str(e)},
                    )
                job.Deleted = True
                self._touch(job)
                removed += 1
            db.commit()
        if removed:
            logger.info("export.sweep.expired", extra={"count": removed})
        return removed

    def sweep_stale_artifacts(self, max_age_days: Optional[int] = None) -> int:
        """Delete stored archives older than the cutoff whatever their job says."""
        days = self.artifact_max_age_days if max_age_days is None else max_age_days
        removed = self.storage.purge_older_than(self._now() - timedelta(days=days))
        if removed:
            logger.info("export.sweep.artifacts", extra={"count": removed})
        return removed

    def reconcile_orphans(self) -> Dict[str, int]:
        """Fail jobs a previous process left ``Processing``; requeue ``Pending`` ones."""
        failed = 0
        requeue: List[Tuple[str, str, Dict[str, Any], str]] = []
        with self.session_factory() as db:
            jobs = (
                db.query(ReportExport)
                .filter(
                    ReportExport.Deleted.is_(False),
                    ReportExport.Status.in_(
                        [ExportStatus.PENDING.value, ExportStatus.PROCESSING.value]
                    ),
                )
                .all()
            )
            for job in jobs:
                if job.Status == ExportStatus.PROCESSING.value:
                    self._advance(
                        db, job, ExportStatus.FAILED, ErrorMessage="Interrupted by a restart"
                    )
                    failed += 1
                else:
                    requeue.append((job.ExportID, job.ReportID, job.Filter or {}, job.UserID))

        for export_id, report_id, raw, caller in requeue:
            try:
                predicate = translate(raw)
            except BadFilter as e:
                self._fail(export_id, e.message)
                continue
            self._submit(export_id, report_id, predicate, caller)
        if failed or requeue:
            logger.warning(
                "export.reconciled", extra={"failed": failed, "requeued": len(requeue)}
            )
        return {"failed": failed, "requeued": len(requeue)}
