"""Collector interface and built-in collectors for monitor_http.

The collector is the side channel that receives request lifecycle reports.
The core only depends on :class:`Collector`; storage and presentation are
the collector's business.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Literal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MonitorConfig(BaseModel):
    """Switches controlling how much of each exchange is captured."""

    log_request_body: bool = True
    log_response_body: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MonitorConfig":
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        if "MONITOR_LOG_REQUEST_BODY" in environ:
            values["log_request_body"] = environ["MONITOR_LOG_REQUEST_BODY"]
        if "MONITOR_LOG_RESPONSE_BODY" in environ:
            values["log_response_body"] = environ["MONITOR_LOG_RESPONSE_BODY"]
        return cls.model_validate(values)


# ---------------------------------------------------------------------------
# Collector protocol
# ---------------------------------------------------------------------------


class Collector(Protocol):
    config: MonitorConfig

    def start(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None = None,
        body_size: int | None = None,
        body_raw: bytes | None = None,
    ) -> str:  # pragma: no cover - interface
        ...

    def complete(
        self,
        request_id: str,
        *,
        status_code: int,
        response_headers: Mapping[str, str],
        response_body: str | None,
        response_size: int,
    ) -> None:  # pragma: no cover - interface
        ...

    def fail(
        self, request_id: str, *, error_message: str, is_timeout: bool
    ) -> None:  # pragma: no cover - interface
        ...


class NoopCollector:
    """Hands out tracking ids and discards every report."""

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self.config = config or MonitorConfig()

    def start(self, **kwargs: Any) -> str:
        return uuid.uuid4().hex

    def complete(self, request_id: str, **kwargs: Any) -> None:
        return None

    def fail(self, request_id: str, **kwargs: Any) -> None:
        return None


# ---------------------------------------------------------------------------
# In-memory collector
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackedRequest(BaseModel):
    """One request lifecycle as seen by :class:`InMemoryCollector`."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    method: str
    url: str
    request_headers: Dict[str, str]
    request_body: Optional[str] = None
    request_size: Optional[int] = None
    request_raw: Optional[bytes] = None
    state: Literal["pending", "completed", "failed"] = "pending"
    status_code: Optional[int] = None
    response_headers: Dict[str, str] = Field(default_factory=dict)
    response_body: Optional[str] = None
    response_size: Optional[int] = None
    error_message: Optional[str] = None
    is_timeout: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class InMemoryCollector:
    """Keeps every tracked request in memory, in start order.

    Reporting against an unknown id, or finishing a request twice, raises
    ``ValueError``.
    """

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self.config = config or MonitorConfig()
        self._requests: Dict[str, TrackedRequest] = {}

    @property
    def requests(self) -> list[TrackedRequest]:
        return list(self._requests.values())

    def get(self, request_id: str) -> TrackedRequest:
        try:
            return self._requests[request_id]
        except KeyError:
            raise ValueError(f"Unknown request id {request_id}") from None

    def clear(self) -> None:
        self._requests.clear()

    def start(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None = None,
        body_size: int | None = None,
        body_raw: bytes | None = None,
    ) -> str:
        request_id = uuid.uuid4().hex
        self._requests[request_id] = TrackedRequest(
            id=request_id,
            method=method,
            url=url,
            request_headers=dict(headers),
            request_body=body,
            request_size=body_size,
            request_raw=body_raw,
        )
        logger.debug(f"Started {method} {url} as {request_id}")
        return request_id

    def complete(
        self,
        request_id: str,
        *,
        status_code: int,
        response_headers: Mapping[str, str],
        response_body: str | None,
        response_size: int,
    ) -> None:
        record = self._pending(request_id)
        record.state = "completed"
        record.status_code = status_code
        record.response_headers = dict(response_headers)
        record.response_body = response_body
        record.response_size = response_size
        record.finished_at = _utcnow()
        logger.debug(
            f"Completed {request_id} with {status_code} ({response_size} bytes)"
        )

    def fail(self, request_id: str, *, error_message: str, is_timeout: bool) -> None:
        record = self._pending(request_id)
        record.state = "failed"
        record.error_message = error_message
        record.is_timeout = is_timeout
        record.finished_at = _utcnow()
        logger.debug(f"Failed {request_id}: {error_message}")

    def _pending(self, request_id: str) -> TrackedRequest:
        record = self.get(request_id)
        if record.state != "pending":
            raise ValueError(f"Request {request_id} already {record.state}")
        return record


# ---------------------------------------------------------------------------
# Process-wide default
# ---------------------------------------------------------------------------


_default_collector: Collector = NoopCollector()


def get_default_collector() -> Collector:
    return _default_collector


def set_default_collector(collector: Collector) -> Collector:
    """Install ``collector`` as the default and return the previous one."""

    global _default_collector
    previous = _default_collector
    _default_collector = collector
    return previous
