"""Client-facing exports for monitor_http."""

from .capture import RequestDescriptor, capture_request, capture_request_sync
from .client import (
    AsyncMonitorClient,
    MonitorClient,
    create_async_monitor_client,
    create_monitor_client,
)
from .collector import (
    Collector,
    InMemoryCollector,
    MonitorConfig,
    NoopCollector,
    TrackedRequest,
    get_default_collector,
    set_default_collector,
)
from .decoding import is_textual_content_type, maybe_decode_body
from .tap import TappedAsyncStream, TappedSyncStream

__all__ = [
    "AsyncMonitorClient",
    "MonitorClient",
    "create_async_monitor_client",
    "create_monitor_client",
    "Collector",
    "InMemoryCollector",
    "NoopCollector",
    "MonitorConfig",
    "TrackedRequest",
    "get_default_collector",
    "set_default_collector",
    "RequestDescriptor",
    "capture_request",
    "capture_request_sync",
    "is_textual_content_type",
    "maybe_decode_body",
    "TappedAsyncStream",
    "TappedSyncStream",
]
