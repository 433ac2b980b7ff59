"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared by all services.
``BaseService.run_forever()`` records cycle counts, durations and failure
streaks automatically; services add domain values (unread counts, feed
size, send outcomes) through ``set_gauge()`` and ``inc_counter()``.

``MetricsServer`` exposes the registry over aiohttp for Prometheus
scraping, plus a plain-text liveness endpoint.

Architecture:
    SERVICE_INFO:               Static metadata set once at startup.
    SERVICE_GAUGE:              Point-in-time values (current state).
    SERVICE_COUNTER:            Cumulative totals (monotonically increasing).
    CYCLE_DURATION_SECONDS:     Histogram of refresh cycle latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True and the service
    runs in continuous mode.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=9108, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")
    health_path: str = Field(default="/healthz", description="Liveness endpoint path")

    @field_validator("path", "health_path")
    @classmethod
    def _validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"endpoint path must start with '/': {v!r}")
        return v


# ---------------------------------------------------------------------------
# Common Service Metrics (auto-tracked by BaseService.run_forever)
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "nostrinbox_service",
    "Service information and metadata",
)

# Refresh cycles are dominated by relay round-trips bounded by the fan-out timeout
CYCLE_DURATION_SECONDS = Histogram(
    "nostrinbox_cycle_duration_seconds",
    "Duration of service cycle in seconds",
    ["service"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)


# ---------------------------------------------------------------------------
# Generic Label-Based Metrics (used by services via set_gauge/inc_counter)
#
# Automatic labels (BaseService.run_forever):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
#
# Service-specific labels (examples):
#   gauge:   {service="messenger", name="unread"}
#   counter: {service="messenger", name="sent_nip17"}
# ---------------------------------------------------------------------------

SERVICE_GAUGE = Gauge(
    "nostrinbox_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "nostrinbox_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing Prometheus metrics and a liveness probe.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=9108))
        await server.start()
        # ... service runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening for scrape requests.

        No-op if metrics are disabled in the configuration.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled or self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)
        app.router.add_get(self._config.health_path, self._handle_health)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        await site.start()
        self._runner = runner

    async def stop(self) -> None:
        """Stop the HTTP server. Safe to call when it was never started."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    @staticmethod
    async def _handle_health(_request: web.Request) -> web.Response:
        return web.Response(text="ok")


async def start_metrics_server(
    config: MetricsConfig | None = None,
) -> MetricsServer:
    """Create and start a metrics server.

    Returns:
        A MetricsServer instance. The caller should ``stop()`` it during
        shutdown to release the bound port.
    """
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
