"""httpx clients that report every exchange to a collector.

Both clients wrap an inner httpx client. Requests are built by the inner
client (so its base URL, default headers, cookies and timeouts apply) and
dispatched through it; the wrapper only captures, taps and reports.
"""

from __future__ import annotations

import logging
import typing

import httpx
from httpx import USE_CLIENT_DEFAULT

from .capture import RequestDescriptor, capture_request, capture_request_sync
from .collector import Collector, get_default_collector
from .tap import report_failure, wrap_async_response, wrap_response

logger = logging.getLogger(__name__)


def _start(collector: Collector, descriptor: RequestDescriptor) -> str:
    request_id = collector.start(
        method=descriptor.method,
        url=descriptor.url,
        headers=dict(descriptor.headers),
        body=descriptor.body_text,
        body_size=descriptor.body_size,
        body_raw=descriptor.body_raw,
    )
    logger.debug(f"Tracking {descriptor.method} {descriptor.url} as {request_id}")
    return request_id


class _DetachedAsyncTransport(httpx.AsyncBaseTransport):
    """Stands in for the wrapper's own transport; traffic goes through the inner client."""

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        raise RuntimeError("AsyncMonitorClient dispatches through its inner client")


class _DetachedTransport(httpx.BaseTransport):
    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise RuntimeError("MonitorClient dispatches through its inner client")


class AsyncMonitorClient(httpx.AsyncClient):
    """An ``httpx.AsyncClient`` that tracks its traffic with a collector."""

    def __init__(
        self,
        inner: httpx.AsyncClient | None = None,
        *,
        collector: Collector | None = None,
        **client_kwargs: typing.Any,
    ) -> None:
        if inner is not None and client_kwargs:
            raise TypeError("Pass either an inner client or client options, not both")
        super().__init__(transport=_DetachedAsyncTransport())
        self._inner = inner if inner is not None else httpx.AsyncClient(**client_kwargs)
        self._collector = collector if collector is not None else get_default_collector()

    @property
    def inner(self) -> httpx.AsyncClient:
        return self._inner

    @property
    def collector(self) -> Collector:
        return self._collector

    def build_request(self, *args: typing.Any, **kwargs: typing.Any) -> httpx.Request:
        return self._inner.build_request(*args, **kwargs)

    async def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        auth: typing.Any = USE_CLIENT_DEFAULT,
        follow_redirects: typing.Any = USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        config = self._collector.config
        request, descriptor = await capture_request(
            request, log_body=config.log_request_body
        )
        request_id = _start(self._collector, descriptor)

        try:
            response = await self._inner.send(
                request, stream=True, auth=auth, follow_redirects=follow_redirects
            )
        except BaseException as exc:
            report_failure(self._collector, request_id, exc)
            raise

        response = wrap_async_response(response, request_id, self._collector)
        if not stream:
            try:
                await response.aread()
            except BaseException:
                await response.aclose()
                raise
        return response

    async def aclose(self) -> None:
        await self._inner.aclose()
        await super().aclose()

    async def __aexit__(self, exc_type=None, exc_value=None, traceback=None) -> None:
        await super().__aexit__(exc_type, exc_value, traceback)
        await self._inner.aclose()


class MonitorClient(httpx.Client):
    """Synchronous counterpart of :class:`AsyncMonitorClient`."""

    def __init__(
        self,
        inner: httpx.Client | None = None,
        *,
        collector: Collector | None = None,
        **client_kwargs: typing.Any,
    ) -> None:
        if inner is not None and client_kwargs:
            raise TypeError("Pass either an inner client or client options, not both")
        super().__init__(transport=_DetachedTransport())
        self._inner = inner if inner is not None else httpx.Client(**client_kwargs)
        self._collector = collector if collector is not None else get_default_collector()

    @property
    def inner(self) -> httpx.Client:
        return self._inner

    @property
    def collector(self) -> Collector:
        return self._collector

    def build_request(self, *args: typing.Any, **kwargs: typing.Any) -> httpx.Request:
        return self._inner.build_request(*args, **kwargs)

    def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        auth: typing.Any = USE_CLIENT_DEFAULT,
        follow_redirects: typing.Any = USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        config = self._collector.config
        request, descriptor = capture_request_sync(
            request, log_body=config.log_request_body
        )
        request_id = _start(self._collector, descriptor)

        try:
            response = self._inner.send(
                request, stream=True, auth=auth, follow_redirects=follow_redirects
            )
        except BaseException as exc:
            report_failure(self._collector, request_id, exc)
            raise

        response = wrap_response(response, request_id, self._collector)
        if not stream:
            try:
                response.read()
            except BaseException:
                response.close()
                raise
        return response

    def close(self) -> None:
        self._inner.close()
        super().close()

    def __exit__(self, exc_type=None, exc_value=None, traceback=None) -> None:
        super().__exit__(exc_type, exc_value, traceback)
        self._inner.close()


def create_async_monitor_client(
    inner: httpx.AsyncClient | None = None, *, collector: Collector | None = None
) -> AsyncMonitorClient:
    """Wrap ``inner`` (or a new ``httpx.AsyncClient``) with request tracking."""

    return AsyncMonitorClient(inner, collector=collector)


def create_monitor_client(
    inner: httpx.Client | None = None, *, collector: Collector | None = None
) -> MonitorClient:
    return MonitorClient(inner, collector=collector)
