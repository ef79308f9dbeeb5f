"""Response tap: observe a response body stream on its way to the caller.

The tap replaces ``response.stream`` with a pass-through stream that counts
(and optionally buffers) every raw chunk, then reports exactly one terminal
outcome for the tracked request when the stream ends or fails. Chunks are
pulled from upstream only when the consumer asks for the next one, and
closing the tap closes upstream.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterator, Optional

import httpx

from .collector import Collector
from .decoding import maybe_decode_body

logger = logging.getLogger(__name__)

TIMEOUT_ERRORS = (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)


def describe_error(error: BaseException) -> str:
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name


def is_timeout(error: BaseException) -> bool:
    return isinstance(error, TIMEOUT_ERRORS)


def report_failure(collector: Collector, request_id: str, error: BaseException) -> None:
    logger.debug(f"Request {request_id} failed: {describe_error(error)}")
    collector.fail(
        request_id,
        error_message=describe_error(error),
        is_timeout=is_timeout(error),
    )


class ResponseAccumulator:
    """Running byte count, plus the bytes themselves when capturing."""

    def __init__(self, *, capture_body: bool) -> None:
        self.capture_body = capture_body
        self._buffer: Optional[bytearray] = bytearray() if capture_body else None
        self.size = 0

    def add(self, chunk: bytes) -> None:
        self.size += len(chunk)
        if self._buffer is not None:
            self._buffer.extend(chunk)

    def take_bytes(self) -> bytes:
        if self._buffer is None:
            return b""
        data = bytes(self._buffer)
        self._buffer = bytearray()
        return data


class ResponseReporter:
    """Emits the single terminal report for one tracked response."""

    def __init__(
        self,
        collector: Collector,
        request_id: str,
        response: httpx.Response,
        accumulator: ResponseAccumulator,
    ) -> None:
        self._collector = collector
        self._request_id = request_id
        self._response = response
        self._accumulator = accumulator
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def _claim(self) -> bool:
        if self._finished:
            return False
        self._finished = True
        return True

    def complete(self, *, encoded: bool = True) -> None:
        if not self._claim():
            return
        body = None
        if self._accumulator.capture_body:
            body = maybe_decode_body(
                self._accumulator.take_bytes(),
                self._response.headers,
                encoded=encoded,
            )
        self._collector.complete(
            self._request_id,
            status_code=self._response.status_code,
            response_headers=dict(self._response.headers),
            response_body=body,
            response_size=self._accumulator.size,
        )

    def fail(self, error: BaseException) -> None:
        if not self._claim():
            return
        report_failure(self._collector, self._request_id, error)


class TappedAsyncStream(httpx.AsyncByteStream):
    def __init__(
        self,
        stream: httpx.AsyncByteStream,
        *,
        accumulator: ResponseAccumulator,
        reporter: ResponseReporter,
    ) -> None:
        self._stream = stream
        self._accumulator = accumulator
        self._reporter = reporter

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._stream:
                self._accumulator.add(chunk)
                yield chunk
        except GeneratorExit:
            raise
        except BaseException as exc:
            self._reporter.fail(exc)
            raise
        self._reporter.complete()

    async def aclose(self) -> None:
        await self._stream.aclose()


class TappedSyncStream(httpx.SyncByteStream):
    def __init__(
        self,
        stream: httpx.SyncByteStream,
        *,
        accumulator: ResponseAccumulator,
        reporter: ResponseReporter,
    ) -> None:
        self._stream = stream
        self._accumulator = accumulator
        self._reporter = reporter

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._stream:
                self._accumulator.add(chunk)
                yield chunk
        except GeneratorExit:
            raise
        except BaseException as exc:
            self._reporter.fail(exc)
            raise
        self._reporter.complete()

    def close(self) -> None:
        self._stream.close()


def _prepare(
    response: httpx.Response, request_id: str, collector: Collector
) -> tuple[ResponseAccumulator, ResponseReporter]:
    accumulator = ResponseAccumulator(
        capture_body=collector.config.log_response_body
    )
    reporter = ResponseReporter(collector, request_id, response, accumulator)
    if response.is_stream_consumed:
        # Body was loaded (and content-decoded) before we saw the response,
        # so the reported size is the decoded length.
        accumulator.add(response.content)
        reporter.complete(encoded=False)
    return accumulator, reporter


def wrap_async_response(
    response: httpx.Response, request_id: str, collector: Collector
) -> httpx.Response:
    accumulator, reporter = _prepare(response, request_id, collector)
    if not reporter.finished:
        response.stream = TappedAsyncStream(
            response.stream, accumulator=accumulator, reporter=reporter
        )
    return response


def wrap_response(
    response: httpx.Response, request_id: str, collector: Collector
) -> httpx.Response:
    accumulator, reporter = _prepare(response, request_id, collector)
    if not reporter.finished:
        response.stream = TappedSyncStream(
            response.stream, accumulator=accumulator, reporter=reporter
        )
    return response
