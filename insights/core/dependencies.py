"""Dependencies for FastAPI routes."""
from fastapi import Request

from insights.core.container import Services
from insights.services.export_service import ExportService
from insights.services.report_service import ReportService

ANONYMOUS = "anonymous"


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_report_service(request: Request) -> ReportService:
    return get_services(request).reports


def get_export_service(request: Request) -> ExportService:
    return get_services(request).exports


def get_caller(request: Request) -> str:
    """Opaque caller identity; authentication happens upstream of this service."""
    return (request.headers.get("X-User-Id") or "").strip() or ANONYMOUS
