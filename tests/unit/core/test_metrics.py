"""
Unit tests for core.metrics module.

Tests:
- MetricsConfig defaults and validation
- MetricsServer lifecycle (disabled no-op, start, idempotent stop)
- HTTP endpoints for scraping and liveness
- Module-level metric objects and their labels
"""

import pytest
from aiohttp import ClientSession, web
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info
from pydantic import ValidationError

from nostrinbox.core.metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)


# ============================================================================
# MetricsConfig Tests
# ============================================================================


class TestMetricsConfig:
    """Tests for MetricsConfig Pydantic model."""

    def test_defaults(self) -> None:
        config = MetricsConfig()

        assert config.enabled is False
        assert config.port == 9108
        assert config.host == "127.0.0.1"
        assert config.path == "/metrics"
        assert config.health_path == "/healthz"

    @pytest.mark.parametrize("port", [80, 1023, 65536])
    def test_port_bounds(self, port: int) -> None:
        with pytest.raises(ValidationError):
            MetricsConfig(port=port)

    def test_path_must_be_absolute(self) -> None:
        with pytest.raises(ValidationError, match="must start with"):
            MetricsConfig(path="metrics")


# ============================================================================
# MetricsServer Tests
# ============================================================================


class TestMetricsServerLifecycle:
    """Tests for MetricsServer start/stop lifecycle."""

    async def test_start_disabled_is_noop(self) -> None:
        server = MetricsServer(MetricsConfig(enabled=False))

        await server.start()

        assert server.running is False

    async def test_start_and_stop(self) -> None:
        server = MetricsServer(MetricsConfig(enabled=True, port=19876))

        try:
            await server.start()
            assert server.running is True
        finally:
            await server.stop()
        assert server.running is False

    async def test_stop_without_start_is_safe(self) -> None:
        server = MetricsServer(MetricsConfig())

        await server.stop()
        await server.stop()


class TestMetricsServerHandlers:
    """Tests for the request handlers."""

    async def test_handle_metrics(self) -> None:
        response = await MetricsServer._handle_metrics(None)  # type: ignore[arg-type]

        assert isinstance(response, web.Response)
        assert response.headers["Content-Type"] == CONTENT_TYPE_LATEST
        assert isinstance(response.body, bytes)

    async def test_handle_health(self) -> None:
        response = await MetricsServer._handle_health(None)  # type: ignore[arg-type]

        assert response.text == "ok"


class TestMetricsServerEndpoint:
    """Tests for the live HTTP endpoints."""

    async def test_scrape_and_health(self) -> None:
        config = MetricsConfig(enabled=True, port=19879, path="/custom/prom")
        server = await start_metrics_server(config)

        try:
            async with ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{config.port}/custom/prom") as resp:
                    assert resp.status == 200
                    assert CONTENT_TYPE_LATEST in resp.headers.get("Content-Type", "")
                    assert len(await resp.text()) > 0
                async with session.get(f"http://127.0.0.1:{config.port}/healthz") as resp:
                    assert resp.status == 200
                    assert await resp.text() == "ok"
        finally:
            await server.stop()

    async def test_with_none_config(self) -> None:
        server = await start_metrics_server(None)

        try:
            assert isinstance(server, MetricsServer)
            assert server.running is False
        finally:
            await server.stop()


# ============================================================================
# Module-Level Metrics Objects Tests
# ============================================================================


class TestMetricObjects:
    """Tests for module-level metric objects."""

    def test_types(self) -> None:
        assert isinstance(SERVICE_INFO, Info)
        assert isinstance(CYCLE_DURATION_SECONDS, Histogram)
        assert isinstance(SERVICE_GAUGE, Gauge)
        assert isinstance(SERVICE_COUNTER, Counter)

    def test_labels(self) -> None:
        assert SERVICE_GAUGE._labelnames == ("service", "name")
        assert SERVICE_COUNTER._labelnames == ("service", "name")
        assert CYCLE_DURATION_SECONDS._labelnames == ("service",)

    def test_gauge_set(self) -> None:
        SERVICE_GAUGE.labels(service="test", name="unread_messages").set(4)

        sample = SERVICE_GAUGE.labels(service="test", name="unread_messages")._value.get()
        assert sample == 4
