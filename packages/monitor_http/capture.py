"""Request capture: snapshot an outgoing request before it is dispatched.

Bodies that live in memory are logged straight from the request. One-shot
streaming bodies are read once and replayed from the captured buffer, so the
transport still receives an identical body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from .decoding import maybe_decode_body

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    headers: httpx.Headers
    has_body: bool
    body_size: Optional[int] = None
    body_raw: Optional[bytes] = None
    body_text: Optional[str] = None


def declared_size(headers: httpx.Headers) -> Optional[int]:
    """Return the ``Content-Length`` header as an int, if it is usable."""

    value = headers.get("content-length")
    if value is None:
        return None
    try:
        size = int(value)
    except ValueError:
        return None
    return size if size >= 0 else None


def _describe(request: httpx.Request, body: Optional[bytes]) -> RequestDescriptor:
    headers = request.headers.copy()
    if body is None:
        size = declared_size(headers)
        return RequestDescriptor(
            method=request.method,
            url=str(request.url),
            headers=headers,
            has_body=bool(size) or "transfer-encoding" in headers,
            body_size=size,
        )
    return RequestDescriptor(
        method=request.method,
        url=str(request.url),
        headers=headers,
        has_body=bool(body),
        body_size=len(body),
        body_raw=body or None,
        body_text=maybe_decode_body(body, headers),
    )


def _replay(request: httpx.Request, body: bytes) -> httpx.Request:
    """Build a fresh request that sends ``body`` in place of a consumed stream."""

    headers = request.headers.copy()
    size = declared_size(headers)
    headers.pop("transfer-encoding", None)
    headers["content-length"] = str(len(body) if size is None else size)
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=body,
        extensions=dict(request.extensions),
    )


async def capture_request(
    request: httpx.Request, *, log_body: bool
) -> Tuple[httpx.Request, RequestDescriptor]:
    """Return the request to send and its descriptor.

    With ``log_body`` off nothing is read from the body.
    """

    if not log_body:
        return request, _describe(request, None)
    try:
        body = request.content
    except httpx.RequestNotRead:
        body = await request.aread()
        logger.debug(f"Captured {len(body)} streamed bytes for {request.method} {request.url}")
        request = _replay(request, body)
    return request, _describe(request, body)


def capture_request_sync(
    request: httpx.Request, *, log_body: bool
) -> Tuple[httpx.Request, RequestDescriptor]:
    if not log_body:
        return request, _describe(request, None)
    try:
        body = request.content
    except httpx.RequestNotRead:
        body = request.read()
        logger.debug(f"Captured {len(body)} streamed bytes for {request.method} {request.url}")
        request = _replay(request, body)
    return request, _describe(request, body)
