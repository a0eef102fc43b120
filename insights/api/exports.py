from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import FileResponse, RedirectResponse

from insights.core.dependencies import get_caller, get_export_service
from insights.schemas.reports import MarkViewedRequest
from insights.services.export_service import ExportService

router = APIRouter(prefix="/insights/exports", tags=["exports"])


@router.get("")
def list_exports(
    page: int = 1,
    count: int = 10,
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    items, pagination = exports.list_exports(caller, page=page, count=count)
    return {"data": items, "pagination": pagination}


@router.get("/{export_id}")
def get_export(
    export_id: str,
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    return exports.get_export(export_id, caller)


@router.get("/{export_id}/download")
def download_export(
    export_id: str,
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    ticket = exports.open_download(export_id, caller)
    if ticket.url:
        return RedirectResponse(ticket.url, status_code=307)
    return FileResponse(ticket.path, media_type="application/zip", filename=ticket.file_name)


@router.patch("/{export_id}/viewed")
def mark_export_viewed(
    export_id: str,
    body: Optional[MarkViewedRequest] = Body(None),
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    days = body.retentionDays if body else 7
    job = exports.mark_viewed(export_id, caller, retention_days=days)
    return {"message": "Export marked as viewed", "export": job}


@router.delete("/{export_id}")
def delete_export(
    export_id: str,
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    job = exports.delete_export(export_id, caller)
    return {"message": "Export deleted", "export": job}
