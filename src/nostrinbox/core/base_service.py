"""
Abstract base class for nostrinbox services.

``BaseService[ConfigT]`` provides the standard lifecycle for the messenger
and notifier: structured logging via [Logger][nostrinbox.core.logger.Logger],
graceful shutdown via ``asyncio.Event``, interval-based refresh cycles with
[run_forever()][nostrinbox.core.base_service.BaseService.run_forever],
consecutive failure limits, and Prometheus metrics.

Durable state (watermarks, follower baselines) goes through the injected
[KeyValueStore][nostrinbox.core.storage.KeyValueStore] rather than living
only in memory.

See Also:
    [BaseServiceConfig][nostrinbox.core.base_service.BaseServiceConfig]: Base
        configuration model for all services.
    [MetricsServer][nostrinbox.core.metrics.MetricsServer]: Prometheus
        endpoint started alongside continuous services.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .storage import MemoryStore
from .yaml import load_yaml


if TYPE_CHECKING:
    from types import TracebackType

    from nostrinbox.models.constants import ServiceName

    from .storage import KeyValueStore


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class BaseServiceConfig(BaseModel):
    """Base configuration shared by all services that run in a loop.

    See Also:
        [BaseService][nostrinbox.core.base_service.BaseService]: The abstract
            service class that consumes this configuration.
        [MetricsConfig][nostrinbox.core.metrics.MetricsConfig]: Embedded
            configuration for the Prometheus metrics endpoint.
    """

    interval: float = Field(
        default=60.0,
        ge=10.0,
        description="Seconds between refresh cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for all nostrinbox services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][nostrinbox.core.base_service.BaseService.run].

    Attributes:
        SERVICE_NAME: Unique service identifier used in logging and metrics.
        CONFIG_CLASS: Pydantic model class used by the factory methods.
        _store: [KeyValueStore][nostrinbox.core.storage.KeyValueStore] for
            durable state.
        _config: Typed service configuration.
        _logger: [Logger][nostrinbox.core.logger.Logger] named after the
            service.
        _shutdown_event: Clear while running, set once shutdown is requested.

    Note:
        The lifecycle is ``async with service:`` followed by
        [run_forever()][nostrinbox.core.base_service.BaseService.run_forever]
        or a single [run()][nostrinbox.core.base_service.BaseService.run]
        call with ``--once``. Subclasses that open network clients do so in
        ``__aenter__`` and release them in ``__aexit__``.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, store: KeyValueStore | None = None, config: ConfigT | None = None) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @abstractmethod
    async def run(self) -> None:
        """Execute one refresh cycle.

        Called repeatedly by
        [run_forever()][nostrinbox.core.base_service.BaseService.run_forever].
        Implementations perform a bounded unit of work and return.
        """
        ...

    def request_shutdown(self) -> None:
        """Request a graceful shutdown. Safe to call from signal handlers."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Whether the service is still active (shutdown not yet requested)."""
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Wait for a shutdown signal or for *timeout* seconds.

        Returns:
            True if shutdown was requested during the wait, False if the
            timeout expired.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Run refresh cycles until shutdown or the failure limit.

        Calls [run()][nostrinbox.core.base_service.BaseService.run], then
        sleeps ``config.interval`` seconds via an interruptible
        [wait()][nostrinbox.core.base_service.BaseService.wait]. A cycle
        that raises counts as a failure; ``max_consecutive_failures``
        failures in a row stop the loop (``0`` disables the limit).

        ``CancelledError``, ``KeyboardInterrupt`` and ``SystemExit`` always
        propagate without being counted.

        Metrics: ``cycles_success``, ``cycles_failed``, ``errors_{type}``
        (counters), ``consecutive_failures``, ``last_cycle_timestamp``
        (gauges) and ``cycle_duration_seconds``.
        """
        interval = self._config.interval
        max_consecutive_failures = self._config.max_consecutive_failures
        metrics_enabled = self._config.metrics.enabled

        if metrics_enabled:
            SERVICE_INFO.info({"service": str(self.SERVICE_NAME)})

        self._logger.info(
            "run_forever_started",
            interval=interval,
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            cycle_start = time.monotonic()

            try:
                await self.run()

                duration = time.monotonic() - cycle_start
                self.inc_counter("cycles_success")
                if metrics_enabled:
                    CYCLE_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(duration)
                self.set_gauge("last_cycle_timestamp", time.time())
                self.set_gauge("consecutive_failures", 0)

                consecutive_failures = 0
                self._logger.info(
                    "cycle_completed", duration_s=round(duration, 3), next_cycle_s=interval
                )

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # noqa: BLE001  # top-level error boundary for run_forever
                consecutive_failures += 1

                self.inc_counter("cycles_failed")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self.inc_counter(f"errors_{type(e).__name__}")

                self._logger.error(
                    "run_cycle_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    consecutive_failures=consecutive_failures,
                )

                if 0 < max_consecutive_failures <= consecutive_failures:
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(
        cls, config_path: str, store: KeyValueStore | None = None, **kwargs: Any
    ) -> Self:
        """Create a service from a YAML configuration file.

        Args:
            config_path: Path to the YAML file.
            store: Persistence backend; defaults to the one selected by the
                config's ``storage`` section when the service defines it.
            **kwargs: Additional keyword arguments passed to the constructor.
        """
        return cls.from_dict(load_yaml(config_path), store=store, **kwargs)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], store: KeyValueStore | None = None, **kwargs: Any
    ) -> Self:
        """Create a service from a configuration dictionary parsed into ``CONFIG_CLASS``."""
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(store=store, config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Mark the service as running on context entry."""
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Signal shutdown on context exit."""
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
