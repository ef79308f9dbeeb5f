"""Heuristics for turning captured bodies into loggable text."""

from __future__ import annotations

import logging
import zlib
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

TEXTUAL_MARKERS = (
    "json",
    "xml",
    "x-www-form-urlencoded",
    "graphql",
    "javascript",
    "yaml",
)


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works on plain dicts too."""

    target = name.lower()
    for key, value in headers.items():
        if key.lower() == target:
            return value
    return None


def is_textual_content_type(content_type: str | None) -> bool:
    if content_type is None:
        return False
    lower = content_type.lower()
    if lower.startswith("multipart/"):
        return False
    if lower.startswith("text/"):
        return True
    return any(marker in lower for marker in TEXTUAL_MARKERS)


def _decompress(body: bytes, encoding: str) -> Optional[bytes]:
    if encoding in ("gzip", "x-gzip"):
        decoder = zlib.decompressobj(zlib.MAX_WBITS | 16)
    elif encoding == "deflate":
        # Servers send both zlib-wrapped and raw deflate under this name.
        wbits = zlib.MAX_WBITS if body[:1] == b"\x78" else -zlib.MAX_WBITS
        decoder = zlib.decompressobj(wbits)
    else:
        logger.debug(f"Not decoding body with content-encoding {encoding!r}")
        return None
    try:
        return decoder.decompress(body) + decoder.flush()
    except zlib.error as exc:
        logger.warning(f"Could not decompress {encoding} body: {exc}")
        return None


def maybe_decode_body(
    body: bytes, headers: Mapping[str, str], *, encoded: bool = True
) -> Optional[str]:
    """Return ``body`` as text when the headers say it is textual.

    When ``encoded`` is true the body is taken to be wire bytes and any
    ``Content-Encoding`` is undone first; pass ``encoded=False`` for bodies
    httpx has already decoded. Malformed UTF-8 is replaced, so this
    never raises for bad input; it returns ``None`` instead of text for
    binary, empty or undecodable bodies.
    """

    if not body:
        return None
    if not is_textual_content_type(header_value(headers, "content-type")):
        return None

    encodings = header_value(headers, "content-encoding") if encoded else None
    if encodings:
        # Codings are listed in the order they were applied.
        for encoding in reversed(encodings.lower().split(",")):
            encoding = encoding.strip()
            if encoding in ("", "identity"):
                continue
            decoded = _decompress(body, encoding)
            if decoded is None:
                return None
            body = decoded

    return body.decode("utf-8", errors="replace")
