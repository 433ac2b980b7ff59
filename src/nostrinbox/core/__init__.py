"""Core layer: service lifecycle, persistence, logging, metrics and errors.

Sits in the middle of the package DAG -- depends only on
``nostrinbox.models`` and is depended upon by ``nostrinbox.services``.

Attributes:
    BaseService: Abstract generic base class with lifecycle management
        ([run()][nostrinbox.core.base_service.BaseService.run] /
        [run_forever()][nostrinbox.core.base_service.BaseService.run_forever] /
        shutdown), factory methods and Prometheus metrics integration.
    KeyValueStore: Async key/value persistence protocol, implemented by
        [MemoryStore][nostrinbox.core.storage.MemoryStore] and
        [FileStore][nostrinbox.core.storage.FileStore].
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.

See Also:
    [nostrinbox.models][nostrinbox.models]: Pure dataclass models consumed by
        this layer.
    [nostrinbox.services][nostrinbox.services]: Service implementations that
        depend on this layer.
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    MissingIdentityError,
    NoRelaysError,
    NostrInboxError,
    PreconditionError,
    ProtocolError,
    PublishingError,
    RelayTimeoutError,
    SendFailedError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .storage import FileStore, KeyValueStore, MemoryStore, StorageConfig, create_store
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "FileStore",
    "KeyValueStore",
    "Logger",
    "MemoryStore",
    "MetricsConfig",
    "MetricsServer",
    "MissingIdentityError",
    "NoRelaysError",
    "NostrInboxError",
    "PreconditionError",
    "ProtocolError",
    "PublishingError",
    "RelayTimeoutError",
    "SendFailedError",
    "StorageConfig",
    "StructuredFormatter",
    "create_store",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
