import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipstitch.api import assemble, downloads, jobs, trim
from clipstitch.config import get_settings
from clipstitch.constants.error_codes import get_error_spec, is_retryable
from clipstitch.exceptions import ClipstitchError
from clipstitch.schemas.envelope import ErrorInfo, ErrorLocation, ErrorResponse
from clipstitch.services.job_registry import job_registry
from clipstitch.services.storage_service import get_storage
from clipstitch.utils.media_info import get_ffmpeg_version

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def sweep_jobs() -> int:
    removed = job_registry.sweep(settings.job_retention_s)
    if removed:
        logger.info(f"[CLEANUP] Removed {removed} expired jobs")
    return removed


def sweep_files() -> int:
    return get_storage().cleanup_old_files(settings.file_retention_s)


async def _run_periodically(name: str, interval_s: float, sweep: Callable[[], int]) -> None:
    while True:
        await asyncio.sleep(interval_s)
        try:
            await asyncio.to_thread(sweep)
        except Exception:
            logger.exception(f"[CLEANUP] {name} sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    try:
        await asyncio.to_thread(sweep_files)
    except OSError as e:
        logger.warning(f"[CLEANUP] Initial file sweep failed: {e}")

    sweepers = [
        asyncio.create_task(_run_periodically("job", settings.job_sweep_interval_s, sweep_jobs)),
        asyncio.create_task(_run_periodically("file", settings.file_sweep_interval_s, sweep_files)),
    ]
    logger.info(f"{settings.app_name} {settings.app_version} started (output dir: {settings.output_dir})")
    yield
    # Shutdown
    for task in sweepers:
        task.cancel()
    await asyncio.gather(*sweepers, return_exceptions=True)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_ERROR",
    }
    return mapping.get(status_code, "HTTP_ERROR")


def _error_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(error=error).model_dump(exclude_none=True)),
    )


def _spec_error(code: str, message: str, location: ErrorLocation | None = None) -> ErrorInfo:
    spec = get_error_spec(code)
    return ErrorInfo(
        code=code,
        message=message,
        location=location,
        retryable=is_retryable(code),
        suggested_fix=spec.get("suggested_fix"),
    )


@app.exception_handler(ClipstitchError)
async def clipstitch_exception_handler(request: Request, exc: ClipstitchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc.message}")
    return _error_response(exc.status_code, exc.to_error_info())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request validation errors (422) in the same error format as everything else."""
    errors = exc.errors()
    location = None
    if errors:
        first_error = errors[0]
        loc = [x for x in first_error.get("loc", []) if x != "body"]
        msg = first_error.get("msg", "Validation error")
        message = f"{' -> '.join(str(x) for x in loc)}: {msg}" if loc else msg
        fields = [str(x) for x in loc if not isinstance(x, int)]
        indexes = [x for x in loc if isinstance(x, int)]
        if fields:
            location = ErrorLocation(field=".".join(fields), index=indexes[0] if indexes else None)
    else:
        message = "Request validation failed"

    return _error_response(422, _spec_error("VALIDATION_ERROR", message, location))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _http_error_code(exc.status_code)
    return _error_response(exc.status_code, _spec_error(code, str(exc.detail)))


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(500, _spec_error("INTERNAL_ERROR", "Internal server error"))


# Routers
app.include_router(assemble.router, prefix="/api", tags=["assemble"])
app.include_router(trim.router, prefix="/api", tags=["trim"])
app.include_router(jobs.router, prefix="/api", tags=["jobs"])
app.include_router(downloads.router, prefix="/api", tags=["downloads"])


@app.get("/api/health")
async def health_check() -> dict[str, str | None]:
    ffmpeg_version = await asyncio.to_thread(get_ffmpeg_version)
    return {
        "status": "healthy" if ffmpeg_version else "degraded",
        "ffmpeg": ffmpeg_version,
        "version": settings.app_version,
        "git_hash": settings.git_hash,
    }
