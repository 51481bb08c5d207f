import os
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import metrics
from .config import Settings, load_settings
from .errors import PipelineError, ValidationError
from .pipeline import PipelineStageRunner, pipeline_router

load_dotenv()

logger = logging.getLogger(__name__)


def _error_body(message: str, exc: Exception, settings: Settings) -> dict:
    body = {"error": message}
    if settings.debug_errors:
        body["details"] = "".join(traceback.format_exception(exc))
    return body


def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[PipelineStageRunner] = None,
) -> FastAPI:
    settings = settings or load_settings()
    runner = runner or PipelineStageRunner(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Worker starting up (tmp={runner.store.tmp_dir}, public={runner.store.public_dir}, "
            f"default provider={settings.video_provider.value})"
        )
        yield
        logger.info("Worker shutting down...")

    app = FastAPI(title="UGC Video Pipeline Worker", lifespan=lifespan)
    app.state.settings = settings
    app.state.runner = runner

    # ── Error envelopes ──────────────────────────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in err["loc"][1:]) or "body" for err in exc.errors()})
        message = f"Missing or invalid parameters: {', '.join(fields)}"
        logger.warning(f"{request.url.path}: {message}")
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        logger.warning(f"{request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        logger.error(f"Error in {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=_error_body(str(exc), exc, settings))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error in {request.url.path}: {exc}", exc_info=True)
        message = str(exc) or type(exc).__name__
        return JSONResponse(status_code=500, content=_error_body(message, exc, settings))

    # ── Routes ───────────────────────────────────────────────────────────

    app.include_router(pipeline_router)

    @app.get("/health")
    def health_check():
        """Verify worker is running and provider keys are configured."""
        return {
            "status": "ok",
            "piapi_key_set": bool(settings.piapi_key),
            "syncio_key_set": bool(settings.syncio_api_key),
            "default_video_provider": settings.video_provider.value,
        }

    @app.get("/metrics")
    def metrics_endpoint():
        """Return a snapshot of all worker metrics."""
        return metrics.get_snapshot()

    # Published artifacts, keyed by filename
    public_prefix = settings.public_base_url.rstrip("/")
    if public_prefix.startswith("/"):
        app.mount(public_prefix, StaticFiles(directory=runner.store.public_dir), name="public")

    return app


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    _settings = load_settings()
    configure_logging(_settings.log_level)
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(_settings), host="0.0.0.0", port=port)
