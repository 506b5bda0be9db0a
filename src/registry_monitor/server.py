from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .health import HealthStatus


def _flag(value: bool) -> str:
    return "true" if value else "false"


def create_app(health: HealthStatus, registry: CollectorRegistry) -> FastAPI:
    """HTTP surface: liveness, latest-cycle status and Prometheus metrics."""
    app = FastAPI(title="Registry Monitor")

    @app.get("/health", response_class=PlainTextResponse)
    def get_health():
        healthy = health.read_health()
        return PlainTextResponse(_flag(healthy), status_code=200 if healthy else 503)

    @app.get("/status", response_class=PlainTextResponse)
    def get_status():
        status = health.read_status()
        return PlainTextResponse(_flag(status), status_code=200 if status else 400)

    @app.get("/metrics")
    def get_metrics():
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
