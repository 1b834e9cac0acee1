"""Prometheus scrape endpoint for HTTP, reservation, carpool and email metrics."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from ..core.observability import get_prometheus_metrics

router = APIRouter(tags=["Observability"])


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Counters for reservations, waitlist promotions, carpool bookings and member emails",
    response_class=Response,
)
async def metrics() -> Response:
    """Render the service registry in the Prometheus text format."""
    return Response(content=get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
