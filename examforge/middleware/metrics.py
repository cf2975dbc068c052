"""Prometheus metrics."""
from fastapi import FastAPI
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

webhook_deliveries_total = Counter(
    "examforge_webhook_deliveries_total",
    "Webhook delivery attempts by outcome",
    ["event", "outcome"],
)

webhook_delivery_duration_seconds = Histogram(
    "examforge_webhook_delivery_duration_seconds",
    "Webhook HTTP delivery duration in seconds",
    ["event"],
)

lms_sync_records_total = Counter(
    "examforge_lms_sync_records_total",
    "LMS records processed during sync by outcome",
    ["provider", "sync_type", "outcome"],
)


def setup_metrics(app: FastAPI) -> None:
    """Setup Prometheus metrics endpoint."""

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
