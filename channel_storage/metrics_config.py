"""Channel Storage Gateway Metrics Configuration.

Local metrics collection using OpenTelemetry with a Prometheus reader. The
gateway serves the export on ``GET /metrics``. Collection is disabled in
test environments unless explicitly enabled.
"""

from __future__ import annotations

import logging
import os
import socket
from typing import Any

from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST
from prometheus_client import generate_latest

from .config.settings import Settings
from .config.settings import get_settings

logger = logging.getLogger(__name__)

# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "channel-storage-gateway")
SERVICE_VERSION = os.getenv("OTEL_SERVICE_VERSION", "0.1.0")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "local")

# Metrics instances
meter_provider = None
meter = None
gateway_calls_counter = None
prometheus_reader = None

_metrics_initialized = False


def get_resource() -> Resource:
    """Create OpenTelemetry resource with service information."""
    return Resource.create(
        {
            "service.name": SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": DEPLOYMENT_ENVIRONMENT,
            "host.name": socket.gethostname(),
        }
    )


def initialize_metrics():
    """Initialize metrics collection with the Prometheus reader."""
    global meter_provider, meter, gateway_calls_counter, prometheus_reader

    prometheus_reader = PrometheusMetricReader()
    meter_provider = MeterProvider(resource=get_resource(), metric_readers=[prometheus_reader])
    meter = meter_provider.get_meter(__name__)

    gateway_calls_counter = meter.create_counter(
        name="gateway_calls_total",
        description="Total number of gateway calls",
        unit="1",
    )
    logger.info(f"Metrics initialized: {SERVICE_NAME} v{SERVICE_VERSION} ({DEPLOYMENT_ENVIRONMENT})")


def ensure_metrics_initialized(settings: Settings | None = None):
    """Initialize metrics once, if enabled by ``settings`` (the global settings by default)."""
    global _metrics_initialized
    if _metrics_initialized:
        return
    if (settings or get_settings()).metrics_active:
        initialize_metrics()
    _metrics_initialized = True


def is_metrics_enabled() -> bool:
    """Check if metrics collection is enabled."""
    return gateway_calls_counter is not None


def record_gateway_call(method: str, status: str, channel: str = ""):
    """Count one gateway call by method, outcome and channel."""
    if not is_metrics_enabled():
        return
    gateway_calls_counter.add(
        1,
        {
            "method": method,
            "status": status,
            "channel": channel or "none",
            "environment": DEPLOYMENT_ENVIRONMENT,
        },
    )


def get_metrics_export() -> tuple[str, str]:
    """Export metrics in Prometheus format."""
    if not is_metrics_enabled() or not prometheus_reader:
        return "# Metrics not available\n", "text/plain"
    return generate_latest().decode("utf-8"), CONTENT_TYPE_LATEST


def get_metrics_summary() -> dict[str, Any]:
    """Get metrics summary for the health endpoint."""
    if not is_metrics_enabled():
        return {"status": "disabled"}
    return {
        "status": "active",
        "service_name": SERVICE_NAME,
        "service_version": SERVICE_VERSION,
        "environment": DEPLOYMENT_ENVIRONMENT,
    }


def shutdown_metrics():
    """Shutdown metrics collection."""
    global meter_provider, meter, prometheus_reader, gateway_calls_counter, _metrics_initialized
    if meter_provider:
        meter_provider.shutdown()
    meter_provider = None
    meter = None
    prometheus_reader = None
    gateway_calls_counter = None
    _metrics_initialized = False
