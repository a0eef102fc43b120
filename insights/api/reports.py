from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from insights.core.dependencies import get_caller, get_export_service, get_report_service
from insights.core.settings import settings
from insights.schemas.reports import CreateReportRequest, ExportRequest
from insights.services.export_service import ExportService
from insights.services.report_service import ReportService

router = APIRouter(prefix="/insights/reports", tags=["reports"])


@router.post("", status_code=201)
def create_report(
    payload: CreateReportRequest,
    reports: ReportService = Depends(get_report_service),
):
    report_id = reports.create_report(payload)
    return {"message": f"Report created successfully: {report_id}.", "id": report_id}


@router.get("")
def list_reports(reports: ReportService = Depends(get_report_service)):
    return reports.list_reports()


@router.get("/{report_id}")
def read_report(
    report_id: str,
    select: Optional[str] = None,
    filter: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = 1,
    count: int = settings.DEFAULT_PAGE_SIZE,
    envelope: bool = True,
    reports: ReportService = Depends(get_report_service),
):
    data, pagination = reports.read(
        report_id, select=select, filter_text=filter, sort=sort, page=page, count=count
    )
    if not envelope:
        return data
    return {"data": data, "pagination": pagination}


@router.get("/{report_id}/count")
def count_report(
    report_id: str,
    filter: Optional[str] = Query(None),
    reports: ReportService = Depends(get_report_service),
):
    return reports.count(report_id, filter_text=filter)


@router.post("/{report_id}/export", status_code=202)
def initiate_export(
    report_id: str,
    body: Optional[ExportRequest] = Body(None),
    caller: str = Depends(get_caller),
    exports: ExportService = Depends(get_export_service),
):
    job = exports.initiate(report_id, body.filter if body else None, caller)
    return JSONResponse(
        {
            "message": "Export started",
            "exportId": job["exportId"],
            "status": job["status"],
        },
        status_code=202,
    )
