import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


def run_expired_export_sweep(export_service) -> int:
    """Soft-delete expired export jobs; returns how many were swept."""
    try:
        return export_service.sweep_expired()
    except Exception:
        # Keep the scheduler alive; the next tick retries
        logger.exception("jobs.sweep_expired_exports.failed")
        return 0


def run_stale_artifact_purge(export_service) -> int:
    try:
        return export_service.sweep_stale_artifacts()
    except Exception:
        logger.exception("jobs.purge_stale_export_files.failed")
        return 0


def build_scheduler(export_service, settings) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    scheduler.add_job(
        run_expired_export_sweep,
        IntervalTrigger(minutes=settings.EXPORT_SWEEP_INTERVAL_MINUTES),
        args=[export_service],
        id="sweep_expired_exports",
        name="sweep_expired_exports",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_stale_artifact_purge,
        IntervalTrigger(hours=settings.EXPORT_ARTIFACT_SWEEP_HOURS),
        args=[export_service],
        id="purge_stale_export_files",
        name="purge_stale_export_files",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
