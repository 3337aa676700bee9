"""Health check and metrics endpoints."""

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import settings
from .logging_setup import get_logger

log = get_logger(__name__)


def create_health_api(service) -> FastAPI:
    """FastAPI app exposing /health, /ready and /metrics for ``service``."""
    app = FastAPI(
        title="IndieWeb Indexer Health",
        description="Health check and metrics for the IndieWeb feed indexer",
        version="1.0.0",
    )

    @app.get("/health")
    async def health_check():
        """Basic liveness check with component details."""
        try:
            status = service.get_health_status()
        except Exception as e:
            log.error("health_check_failed", error=str(e))
            return JSONResponse(
                content={"status": "unhealthy", "error": str(e), "service": settings.service_name},
                status_code=503,
            )
        status_code = 200 if status["status"] == "healthy" else 503
        return JSONResponse(content=status, status_code=status_code)

    @app.get("/ready")
    async def readiness_check():
        """Ready once the firehose is connected."""
        firehose = getattr(service, "firehose", None)
        is_ready = bool(firehose is not None and firehose.running)
        return JSONResponse(
            content={"status": "ready" if is_ready else "not_ready", "service": settings.service_name},
            status_code=200 if is_ready else 503,
        )

    if settings.metrics_enabled:
        @app.get("/metrics")
        async def metrics():
            """Prometheus metrics."""
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
