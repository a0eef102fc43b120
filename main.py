import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.starlette import StarletteIntegration
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from insights.api import exports, health, reports
from insights.core.container import build_services
from insights.core.errors import InsightsError
from insights.core.logging_utils import configure_logging
from insights.core.middleware import add_compression_middleware, add_cors_middleware
from insights.core.settings import settings
from insights.jobs.retention_jobs import build_scheduler
from insights.models import AppErrorLog

load_dotenv()

# Configure logging (console + rotating file; JSON by default)
configure_logging(settings)
logger = logging.getLogger("insights")

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[StarletteIntegration()],
        traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0.0),
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own services before the app starts
    owned = getattr(app.state, "services", None) is None
    if owned:
        services = build_services(settings, SessionLocal)
        app.state.services = services
        try:
            services.exports.reconcile_orphans()
        except SQLAlchemyError:
            logger.exception("startup.reconcile_failed")
        if settings.SCHEDULER_ENABLED:
            services.scheduler = build_scheduler(services.exports, settings)
            services.scheduler.start()
        logger.info("startup.complete", extra={"port": settings.PORT})
    try:
        yield
    finally:
        # The server has stopped accepting requests by the time we get here
        if owned:
            app.state.services.shutdown(wait_for_exports=settings.EXPORT_SHUTDOWN_WAIT)
            app.state.services = None


app = FastAPI(title="Insights Reports API", lifespan=lifespan)
add_compression_middleware(app)
add_cors_middleware(app, settings)

app.include_router(health.router)
app.include_router(reports.router)
app.include_router(exports.router)


# Request logging middleware with request id and caller context
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start = time.perf_counter()
    duration_ms: Optional[int] = None
    request.state.request_id = request_id

    extra_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else None,
        "user_id": request.headers.get("X-User-Id"),
    }
    logger.info("request.start", extra=extra_ctx)
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.exception("request.error", extra={**extra_ctx, "duration_ms": duration_ms})
        raise

    duration_ms = int((time.perf_counter() - start) * 1000)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request.end",
        extra={**extra_ctx, "status_code": response.status_code, "duration_ms": duration_ms},
    )
    return response


def _record_error(request: Request, status: int, exc: Exception, with_trace: bool = False) -> None:
    """Best-effort write of a failed request to AppErrorLog."""
    try:
        with SessionLocal() as db:
            db.add(
                AppErrorLog(
                    RequestID=getattr(request.state, "request_id", None),
                    Path=str(request.url.path),
                    Method=request.method,
                    StatusCode=int(status),
                    UserID=request.headers.get("X-User-Id"),
                    ClientIP=request.client.host if request.client else None,
                    ErrorType=exc.__class__.__name__,
                    Message=str(getattr(exc, "message", exc)),
                    StackTrace=(
                        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
                        if with_trace
                        else None
                    ),
                )
            )
            db.commit()
    except SQLAlchemyError:
        # Never mask the original error with a logging failure
        logger.warning("error_log.write_failed", exc_info=True)


def _error_response(request: Request, status: int, message: str, detail=None) -> JSONResponse:
    body = {"message": message, "success": False, "code": status}
    if detail is not None:
        body["error"] = detail
    resp = JSONResponse(body, status_code=status)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        resp.headers["X-Request-ID"] = str(request_id)
    return resp


@app.exception_handler(InsightsError)
async def insights_error_handler(request: Request, exc: InsightsError):
    status = exc.status_code
    if status >= 500:
        logger.error(
            "request.failed",
            extra={"path": request.url.path, "error": exc.message, "detail": str(exc.detail)},
        )
        _record_error(request, status, exc)
    return _error_response(request, status, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()
    ]
    return _error_response(request, 400, "Invalid request", errors)


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("request.unhandled", extra={"path": request.url.path})
    _record_error(request, 500, exc, with_trace=True)
    return _error_response(request, 500, "Internal Server Error", str(exc))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT)
