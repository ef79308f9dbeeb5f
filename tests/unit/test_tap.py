"""Tests for the response tap and terminal reporting."""

import asyncio
import gzip
import logging

import httpx
import pytest

from monitor_http import InMemoryCollector, MonitorConfig
from monitor_http.tap import (
    ResponseAccumulator,
    ResponseReporter,
    describe_error,
    is_timeout,
    wrap_async_response,
    wrap_response,
)
from tests.streams import RecordingAsyncStream, RecordingSyncStream


def _start(collector):
    return collector.start(method="GET", url="https://api.example.com/data", headers={})


class TestResponseAccumulator:
    def test_buffers_when_capturing(self):
        accumulator = ResponseAccumulator(capture_body=True)
        accumulator.add(b"abc")
        accumulator.add(b"de")
        assert accumulator.size == 5
        assert accumulator.take_bytes() == b"abcde"
        assert accumulator.take_bytes() == b""

    def test_only_counts_when_not_capturing(self):
        accumulator = ResponseAccumulator(capture_body=False)
        accumulator.add(b"abc")
        accumulator.add(b"de")
        assert accumulator.size == 5
        assert accumulator.take_bytes() == b""


class TestErrorClassification:
    def test_timeouts(self):
        assert is_timeout(httpx.ReadTimeout("slow"))
        assert is_timeout(httpx.ConnectTimeout("slow"))
        assert is_timeout(TimeoutError())
        assert is_timeout(asyncio.TimeoutError())

    def test_other_errors(self):
        assert not is_timeout(httpx.ConnectError("refused"))
        assert not is_timeout(ValueError("bad"))

    def test_describe_error(self):
        assert describe_error(httpx.ConnectError("refused")) == "ConnectError: refused"
        assert describe_error(TimeoutError()) == "TimeoutError"


class TestResponseReporter:
    def test_first_terminal_report_wins(self, collector):
        request_id = _start(collector)
        response = httpx.Response(200, headers={"content-type": "text/plain"})
        accumulator = ResponseAccumulator(capture_body=True)
        accumulator.add(b"done")
        reporter = ResponseReporter(collector, request_id, response, accumulator)

        reporter.complete()
        reporter.fail(httpx.ReadError("late"))
        reporter.complete()

        record = collector.get(request_id)
        assert reporter.finished
        assert record.state == "completed"
        assert record.response_body == "done"
        assert record.error_message is None

    def test_failure_then_completion(self, collector):
        request_id = _start(collector)
        reporter = ResponseReporter(
            collector,
            request_id,
            httpx.Response(200),
            ResponseAccumulator(capture_body=False),
        )

        reporter.fail(httpx.ReadTimeout("timed out"))
        reporter.complete()

        record = collector.get(request_id)
        assert record.state == "failed"
        assert record.is_timeout is True
        assert record.error_message == "ReadTimeout: timed out"


@pytest.mark.asyncio
class TestTappedAsyncStream:
    async def test_chunks_pass_through_unchanged(self, collector):
        request_id = _start(collector)
        upstream = RecordingAsyncStream([b"hel", b"lo ", b"wor", b"ld"])
        response = httpx.Response(
            200, headers={"content-type": "text/plain"}, stream=upstream
        )

        wrap_async_response(response, request_id, collector)
        chunks = [chunk async for chunk in response.aiter_raw()]

        assert chunks == [b"hel", b"lo ", b"wor", b"ld"]
        record = collector.get(request_id)
        assert record.state == "completed"
        assert record.status_code == 200
        assert record.response_body == "hello world"
        assert record.response_size == 11
        assert record.response_headers["content-type"] == "text/plain"
        assert upstream.closed

    async def test_size_only_when_body_capture_disabled(self, quiet_collector):
        request_id = _start(quiet_collector)
        response = httpx.Response(
            200,
            headers={"content-type": "application/json"},
            stream=RecordingAsyncStream([b'{"items":', b"[]}"]),
        )

        wrap_async_response(response, request_id, quiet_collector)
        body = await response.aread()

        assert body == b'{"items":[]}'
        record = quiet_collector.get(request_id)
        assert record.response_body is None
        assert record.response_size == 12

    async def test_pulls_lazily_and_cancel_closes_upstream(self, collector):
        request_id = _start(collector)
        upstream = RecordingAsyncStream([b"one", b"two", b"three"])
        response = httpx.Response(200, stream=upstream)
        wrap_async_response(response, request_id, collector)

        iterator = response.aiter_raw()
        assert await iterator.__anext__() == b"one"
        assert upstream.pulled == 1

        await iterator.aclose()
        await response.aclose()

        assert upstream.closed
        assert upstream.pulled == 1
        assert collector.get(request_id).state == "pending"

    async def test_stream_error_is_reported_and_reraised(self, collector):
        request_id = _start(collector)
        upstream = RecordingAsyncStream(
            [b"partial"], error=httpx.ReadTimeout("read timed out")
        )
        response = httpx.Response(200, stream=upstream)
        wrap_async_response(response, request_id, collector)

        received = []
        with pytest.raises(httpx.ReadTimeout):
            async for chunk in response.aiter_raw():
                received.append(chunk)

        assert received == [b"partial"]
        record = collector.get(request_id)
        assert record.state == "failed"
        assert record.is_timeout is True
        assert record.error_message == "ReadTimeout: read timed out"

    async def test_preloaded_body_is_reported_immediately(self, collector):
        request_id = _start(collector)
        response = httpx.Response(204)

        returned = wrap_async_response(response, request_id, collector)

        assert returned is response
        record = collector.get(request_id)
        assert record.state == "completed"
        assert record.status_code == 204
        assert record.response_size == 0
        assert record.response_body is None

    async def test_preloaded_gzip_body_is_not_decompressed_twice(self, collector, caplog):
        request_id = _start(collector)
        response = httpx.Response(
            200,
            headers={"content-type": "application/json", "content-encoding": "gzip"},
            content=gzip.compress(b'{"a": 1}'),
        )

        with caplog.at_level(logging.WARNING, logger="monitor_http"):
            wrap_async_response(response, request_id, collector)

        record = collector.get(request_id)
        assert record.state == "completed"
        assert record.response_body == '{"a": 1}'
        assert record.response_size == len(b'{"a": 1}')
        assert caplog.records == []

    async def test_gzip_body_is_decoded_for_the_report_only(self, collector):
        request_id = _start(collector)
        compressed = gzip.compress(b'{"compressed": true}')
        response = httpx.Response(
            200,
            headers={"content-type": "application/json", "content-encoding": "gzip"},
            stream=RecordingAsyncStream([compressed[:10], compressed[10:]]),
        )
        wrap_async_response(response, request_id, collector)

        body = await response.aread()

        assert body == b'{"compressed": true}'
        record = collector.get(request_id)
        assert record.response_body == '{"compressed": true}'
        assert record.response_size == len(compressed)


class TestTappedSyncStream:
    def test_chunks_pass_through_unchanged(self, collector):
        request_id = _start(collector)
        upstream = RecordingSyncStream([b"a", b"b", b"c"])
        response = httpx.Response(
            201, headers={"content-type": "text/csv"}, stream=upstream
        )

        wrap_response(response, request_id, collector)

        assert list(response.iter_raw()) == [b"a", b"b", b"c"]
        record = collector.get(request_id)
        assert record.state == "completed"
        assert record.status_code == 201
        assert record.response_body == "abc"
        assert upstream.closed

    def test_stream_error(self):
        collector = InMemoryCollector(MonitorConfig(log_response_body=False))
        request_id = _start(collector)
        response = httpx.Response(
            200, stream=RecordingSyncStream([b"x"], error=httpx.RemoteProtocolError("eof"))
        )
        wrap_response(response, request_id, collector)

        with pytest.raises(httpx.RemoteProtocolError):
            response.read()

        record = collector.get(request_id)
        assert record.state == "failed"
        assert record.is_timeout is False
        assert record.error_message == "RemoteProtocolError: eof"
