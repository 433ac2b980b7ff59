"""
Unit tests for core.base_service module.

Tests:
- BaseServiceConfig defaults and validation
- Construction, factory methods and the async context manager
- run_forever() cycle accounting and failure limits
- Gauge and counter helpers honoring metrics.enabled
"""

from unittest.mock import patch

import pytest
from pydantic import Field, ValidationError

from nostrinbox.core.base_service import BaseService, BaseServiceConfig
from nostrinbox.core.metrics import SERVICE_COUNTER, SERVICE_GAUGE, MetricsConfig
from nostrinbox.core.storage import MemoryStore


class ConcreteServiceConfig(BaseServiceConfig):
    """Test configuration inheriting from BaseServiceConfig."""

    max_items: int = Field(default=100, ge=1)


class ConcreteService(BaseService[ConcreteServiceConfig]):
    """Test implementation."""

    SERVICE_NAME = "test_service"
    CONFIG_CLASS = ConcreteServiceConfig

    def __init__(self, store=None, config: ConcreteServiceConfig | None = None) -> None:
        super().__init__(store=store, config=config)
        self.run_count = 0
        self.should_fail = False
        self.fail_count = 0

    async def run(self) -> None:
        self.run_count += 1
        if self.should_fail:
            self.fail_count += 1
            raise RuntimeError("Simulated failure")


class TestBaseServiceConfig:
    """BaseServiceConfig Pydantic model."""

    def test_defaults(self) -> None:
        config = BaseServiceConfig()

        assert config.interval == 60.0
        assert config.max_consecutive_failures == 5
        assert config.metrics.enabled is False

    def test_interval_minimum(self) -> None:
        with pytest.raises(ValidationError):
            BaseServiceConfig(interval=5.0)

    def test_max_consecutive_failures_zero_allowed(self) -> None:
        assert BaseServiceConfig(max_consecutive_failures=0).max_consecutive_failures == 0


class TestInit:
    """BaseService construction."""

    def test_defaults(self) -> None:
        service = ConcreteService()

        assert isinstance(service.store, MemoryStore)
        assert isinstance(service.config, ConcreteServiceConfig)
        assert service.config.max_items == 100
        assert service.is_running

    def test_injected_store(self) -> None:
        store = MemoryStore()

        assert ConcreteService(store=store).store is store


class TestFactoryMethods:
    """from_dict() and from_yaml()."""

    def test_from_dict(self) -> None:
        service = ConcreteService.from_dict({"interval": 30.0, "max_items": 7})

        assert service.config.interval == 30.0
        assert service.config.max_items == 7

    def test_from_yaml(self, tmp_path) -> None:
        path = tmp_path / "service.yaml"
        path.write_text("interval: 45\nmax_items: 3\n")

        service = ConcreteService.from_yaml(str(path))

        assert service.config.interval == 45.0
        assert service.config.max_items == 3

    def test_from_yaml_file_not_found(self) -> None:
        with pytest.raises(FileNotFoundError):
            ConcreteService.from_yaml("/nonexistent/service.yaml")


class TestLifecycle:
    """Context manager and shutdown signalling."""

    async def test_context_manager(self) -> None:
        service = ConcreteService()
        service.request_shutdown()

        async with service:
            assert service.is_running
        assert not service.is_running

    async def test_wait_returns_true_on_shutdown(self) -> None:
        service = ConcreteService()
        service.request_shutdown()

        assert await service.wait(timeout=1.0) is True

    async def test_wait_returns_false_on_timeout(self) -> None:
        assert await ConcreteService().wait(timeout=0.01) is False


class TestRunForever:
    """BaseService.run_forever()."""

    async def test_executes_run_and_uses_interval(self) -> None:
        service = ConcreteService(config=ConcreteServiceConfig(interval=60.0))
        recorded: list[float] = []

        async def mock_wait(timeout: float) -> bool:
            recorded.append(timeout)
            return True

        with patch.object(service, "wait", mock_wait):
            async with service:
                await service.run_forever()

        assert service.run_count == 1
        assert recorded == [60.0]

    async def test_stops_on_max_failures(self) -> None:
        service = ConcreteService(config=ConcreteServiceConfig(max_consecutive_failures=3))
        service.should_fail = True

        async def mock_wait(timeout: float) -> bool:
            return False

        with patch.object(service, "wait", mock_wait):
            async with service:
                await service.run_forever()

        assert service.fail_count == 3

    async def test_unlimited_failures_when_zero(self) -> None:
        service = ConcreteService(config=ConcreteServiceConfig(max_consecutive_failures=0))
        service.should_fail = True

        async def mock_wait(timeout: float) -> bool:
            return service.fail_count >= 10

        with patch.object(service, "wait", mock_wait):
            async with service:
                await service.run_forever()

        assert service.fail_count == 10

    async def test_success_resets_failure_streak(self) -> None:
        service = ConcreteService(config=ConcreteServiceConfig(max_consecutive_failures=2))

        async def mock_wait(timeout: float) -> bool:
            # Fail, succeed, fail, fail: only the last two are consecutive
            service.should_fail = service.run_count in (2, 3)
            return False

        service.should_fail = True
        with patch.object(service, "wait", mock_wait):
            async with service:
                await service.run_forever()

        assert service.run_count == 4
        assert service.fail_count == 3


class TestCustomMetrics:
    """set_gauge() and inc_counter()."""

    def test_disabled_metrics_are_noop(self) -> None:
        service = ConcreteService()

        with patch.object(SERVICE_GAUGE, "labels") as labels:
            service.set_gauge("unread", 3)
        labels.assert_not_called()

    def test_enabled_metrics_recorded(self) -> None:
        config = ConcreteServiceConfig(metrics=MetricsConfig(enabled=True))
        service = ConcreteService(config=config)

        service.set_gauge("unread", 3)
        before = SERVICE_COUNTER.labels(service="test_service", name="sent")._value.get()
        service.inc_counter("sent")

        assert SERVICE_GAUGE.labels(service="test_service", name="unread")._value.get() == 3
        after = SERVICE_COUNTER.labels(service="test_service", name="sent")._value.get()
        assert after == before + 1


class TestAbstract:
    """BaseService abstract behavior."""

    def test_cannot_instantiate_base(self) -> None:
        with pytest.raises(TypeError):
            BaseService()  # type: ignore[abstract]

    def test_must_implement_run(self) -> None:
        class IncompleteService(BaseService):
            SERVICE_NAME = "incomplete"
            CONFIG_CLASS = BaseServiceConfig

        with pytest.raises(TypeError):
            IncompleteService()
