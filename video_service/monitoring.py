"""Prometheus metrics for the video service."""

from prometheus_fastapi_instrumentator import Instrumentator
from fastapi import FastAPI


def setup_monitoring(app: FastAPI) -> Instrumentator:
    """Instrument request metrics and expose them at /metrics (set ENABLE_METRICS=true)."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,  # Gate rejections for unknown paths would explode label cardinality
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/favicon.ico", "/static/.*"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="video_service_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=True)
    return instrumentator
