"""Liveness endpoints."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import get_db

router = APIRouter()


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        metadata_ok = True
    except SQLAlchemyError:
        metadata_ok = False
    body = {"status": "ok" if metadata_ok else "degraded", "metadataStore": metadata_ok}
    services = getattr(request.app.state, "services", None)
    if services is not None:
        body["pool"] = services.pool.stats()
        body["reportCache"] = services.report_cache.stats()
        body["pendingExports"] = services.worker.pending()
    return body


@router.get("/health.txt", response_class=PlainTextResponse)
def health_txt():
    return "OK"
