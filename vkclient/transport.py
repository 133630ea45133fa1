"""HTTP transport adapter built on ``httpx``.

``HttpTransport`` owns one ``httpx.Client`` with HTTP/2 enabled, so
concurrent calls from several threads are multiplexed over a shared
connection.  Every request advertises the configured
:class:`~vkclient.Compression` in ``Accept-Encoding``.

Responses are read *raw* (``Response.iter_raw``) and decompressed by
:func:`decompress` according to the response's own ``Content-Encoding``
header.  The server is free to ignore the requested encoding, so the
requested preference is never used to pick a decoder.

Network-level failures surface as :class:`~vkclient.errors.TransportError`
with the original ``httpx`` exception chained.

Logger: ``vkclient.wire.http``: requests and responses at DEBUG level.
"""

from __future__ import annotations

import gzip
import logging
import time
import zlib
from collections.abc import Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx
import zstandard

from vkclient._debug import fmt_body, fmt_headers, fmt_params, wire_http_logger
from vkclient._hooks import _CallHook
from vkclient._types import Compression
from vkclient.errors import DecodeError, TransportError

__all__ = [
    "HttpTransport",
    "RawResponse",
    "decompress",
]

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class RawResponse:
    """Status, headers, and decompressed body of one HTTP exchange."""

    status_code: int
    headers: httpx.Headers
    content: bytes

    @property
    def content_type(self) -> str | None:
        """The response ``Content-Type`` header, if any."""
        return self.headers.get("content-type")

    @property
    def is_success(self) -> bool:
        """Whether the status is 2xx."""
        return 200 <= self.status_code < 300


# ---------------------------------------------------------------------------
# Decompression
# ---------------------------------------------------------------------------


def _gunzip(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"Failed to decompress gzip data ({len(data)} compressed bytes)") from exc


def _unzstd(data: bytes) -> bytes:
    # decompressobj handles frames without a content size in the header
    try:
        return zstandard.ZstdDecompressor().decompressobj().decompress(data)
    except zstandard.ZstdError as exc:
        raise DecodeError(f"Failed to decompress zstd data ({len(data)} compressed bytes)") from exc


def decompress(data: bytes, content_encoding: str | None) -> bytes:
    """Undo the encodings listed in a ``Content-Encoding`` header.

    Stacked encodings (``"gzip, zstd"``) are applied by the server in
    order, so they are removed in reverse.

    Args:
        data: Raw body bytes as received.
        content_encoding: The response ``Content-Encoding`` header value.

    Returns:
        The decoded body.

    Raises:
        DecodeError: If an encoding is unsupported or the bytes are corrupt.

    """
    if not content_encoding or not data:
        return data
    codings = [c.strip().lower() for c in content_encoding.split(",") if c.strip()]
    for coding in reversed(codings):
        if coding == "identity":
            continue
        if coding in ("gzip", "x-gzip"):
            data = _gunzip(data)
        elif coding == "zstd":
            data = _unzstd(data)
        else:
            raise DecodeError(f"Unsupported Content-Encoding {coding!r}")
    return data


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class HttpTransport:
    """Thin wrapper around a shared ``httpx.Client``.

    A caller-supplied *client* (for example one built on
    ``httpx.MockTransport``) is used as-is and is not closed by
    :meth:`close`.

    ``call_hook`` is shared by every component built on this transport
    (request executor, longpoll engine, uploader) and is set by
    :func:`vkclient.otel.instrument_client`.
    """

    __slots__ = ("_client", "_compression", "_owns_client", "call_hook")

    def __init__(
        self,
        compression: Compression = Compression.NONE,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        http2: bool = True,
        client: httpx.Client | None = None,
    ) -> None:
        """Create the transport and, unless *client* is given, an HTTP/2 client."""
        self._compression = compression
        self.call_hook: _CallHook | None = None
        if client is None:
            self._client = httpx.Client(http2=http2, timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    @property
    def compression(self) -> Compression:
        """Compression advertised in ``Accept-Encoding``."""
        return self._compression

    def execute(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
        files: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> RawResponse:
        """Send one request and return the decompressed response.

        Args:
            method: HTTP method (``"GET"``, ``"POST"``).
            url: Absolute request URL, without query parameters.
            params: Query parameters.
            content: Request body bytes.
            files: Multipart file parts, in ``httpx`` ``files=`` form.
            headers: Extra request headers; ``Accept-Encoding`` is set
                from the configured compression unless given here.
            timeout: Per-request timeout in seconds; the client default
                applies when ``None``.

        Returns:
            The response status, headers, and decompressed body.

        Raises:
            TransportError: On connect, TLS, timeout, or protocol failures.
            DecodeError: If the body cannot be decompressed.

        """
        request_headers: dict[str, str] = {"Accept-Encoding": self._compression.accept_encoding}
        if headers:
            request_headers.update(headers)

        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug(
                "HTTP %s %s params=[%s] body_size=%d",
                method,
                url,
                fmt_params(params or {}),
                len(content or b""),
            )

        t0 = time.monotonic()
        try:
            with self._client.stream(
                method,
                url,
                params=params,
                content=content,
                files=files,
                headers=request_headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            ) as response:
                raw = b"".join(response.iter_raw())
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            raise TransportError(f"{method} {url} failed: {type(exc).__name__}: {exc}") from exc

        body = decompress(raw, response.headers.get("content-encoding"))

        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug(
                "HTTP %d from %s (%s, %s, raw=%d bytes, body=%d bytes, %.1fms): %s",
                response.status_code,
                url,
                response.http_version,
                fmt_headers(response.headers),
                len(raw),
                len(body),
                (time.monotonic() - t0) * 1000,
                fmt_body(body),
            )
        return RawResponse(response.status_code, response.headers, body)

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpTransport:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, closing the client."""
        self.close()
