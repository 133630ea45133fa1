"""Scripted ``httpx.MockTransport`` server and response builders for tests.

Each test queues the replies the fake server returns, in order, and
inspects the recorded requests afterwards.
"""

from __future__ import annotations

import gzip
import json
from collections.abc import Callable
from typing import Any

import httpx
import msgpack
import zstandard

from vkclient import Compression, HttpTransport

TOKEN = "test-token-0123456789"

type Reply = httpx.Response | BaseException | Callable[[httpx.Request], httpx.Response]
"""One scripted server reply: a response, an exception to raise, or a handler."""


def compress(data: bytes, encoding: str | None) -> bytes:
    """Apply a ``Content-Encoding`` (possibly stacked) the way a server would."""
    if not encoding:
        return data
    for coding in (c.strip() for c in encoding.split(",")):
        if coding == "gzip":
            data = gzip.compress(data)
        elif coding == "zstd":
            data = zstandard.ZstdCompressor().compress(data)
        elif coding != "identity":
            raise ValueError(f"test helper cannot apply {coding!r}")
    return data


def raw_response(
    body: bytes,
    *,
    status: int = 200,
    content_type: str | None = None,
    content_encoding: str | None = None,
) -> httpx.Response:
    """Build a response whose body bytes are sent exactly as given.

    The body is wrapped in a stream so that ``httpx`` does not decode it
    before the transport reads it raw.
    """
    headers = {"Content-Length": str(len(body))}
    if content_type is not None:
        headers["Content-Type"] = content_type
    if content_encoding is not None:
        headers["Content-Encoding"] = content_encoding
    return httpx.Response(status, headers=headers, stream=httpx.ByteStream(body))


def json_response(value: Any, *, status: int = 200, encoding: str | None = None) -> httpx.Response:
    """Serialize *value* as JSON, compressed with *encoding*."""
    body = compress(json.dumps(value).encode(), encoding)
    return raw_response(body, status=status, content_type="application/json; charset=utf-8", content_encoding=encoding)


def msgpack_response(value: Any, *, status: int = 200, encoding: str | None = None) -> httpx.Response:
    """Serialize *value* as MessagePack, compressed with *encoding*."""
    body = compress(msgpack.packb(value, use_bin_type=True), encoding)
    return raw_response(body, status=status, content_type="application/x-msgpack", content_encoding=encoding)


class ScriptedServer:
    """Fake HTTP server replaying queued replies and recording requests."""

    def __init__(self, *replies: Reply) -> None:
        self.replies: list[Reply] = list(replies)
        self.requests: list[httpx.Request] = []

    def queue(self, *replies: Reply) -> None:
        """Append replies to the script."""
        self.replies.extend(replies)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return reply

    def client(self) -> httpx.Client:
        """Return an ``httpx.Client`` routed to this server."""
        return httpx.Client(transport=httpx.MockTransport(self))

    def transport(self, compression: Compression = Compression.NONE) -> HttpTransport:
        """Return an ``HttpTransport`` routed to this server."""
        return HttpTransport(compression, client=self.client())

