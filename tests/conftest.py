"""
Shared pytest fixtures for all tests.

Provides collectors and mock-transport backed httpx clients so tests never
touch the network.
"""

import httpx
import pytest

from monitor_http import (
    AsyncMonitorClient,
    InMemoryCollector,
    MonitorClient,
    MonitorConfig,
    set_default_collector,
)


@pytest.fixture
def collector():
    """Collector capturing both request and response bodies."""
    return InMemoryCollector(MonitorConfig())


@pytest.fixture
def quiet_collector():
    """Collector with body capture switched off."""
    return InMemoryCollector(
        MonitorConfig(log_request_body=False, log_response_body=False)
    )


@pytest.fixture
def default_collector():
    """Install an InMemoryCollector as the process default for one test."""
    installed = InMemoryCollector()
    previous = set_default_collector(installed)
    yield installed
    set_default_collector(previous)


@pytest.fixture
def make_async_client(collector):
    """Build an AsyncMonitorClient around a MockTransport handler."""

    def _make(handler, *, tracking=None, **kwargs):
        inner = httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)
        return AsyncMonitorClient(inner, collector=tracking if tracking is not None else collector)

    return _make


@pytest.fixture
def make_sync_client(collector):
    """Build a MonitorClient around a MockTransport handler."""

    def _make(handler, *, tracking=None, **kwargs):
        inner = httpx.Client(transport=httpx.MockTransport(handler), **kwargs)
        return MonitorClient(inner, collector=tracking if tracking is not None else collector)

    return _make
