"""Metrics API routes for observability."""

from typing import Any

from fastapi import APIRouter

from ruddit_core.observability.metrics import get_collector

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def get_metrics() -> dict[str, Any]:
    """Get a snapshot of the in-process counters, gauges and histograms."""
    return get_collector().get_all()
