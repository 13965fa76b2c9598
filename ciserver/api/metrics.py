"""
GET /metrics: build and webhook counters in Prometheus text format.
"""
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ciserver.core.metrics import metrics

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics")
async def get_metrics() -> PlainTextResponse:
    return PlainTextResponse(metrics.to_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
