"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Request, Response

from app.monitoring.metrics import realtime_connections, realtime_online_users
from app.monitoring.registry import registry


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics(request: Request) -> Response:
    """Expose collected metrics for Prometheus scraping.

    Connection and presence gauges are refreshed from the live hub so a
    scrape never reports counts left over from a previous hub.
    """

    hub = getattr(request.app.state, "realtime", None)
    if hub is not None:
        realtime_connections.set(len(hub.registry))
        realtime_online_users.set(len(hub.presence))
    payload = registry.render()
    return Response(content=payload, media_type="text/plain; version=0.0.4")
