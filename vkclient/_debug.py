"""Debug logging infrastructure for wire protocol diagnostics.

Provides logger instances under the ``vkclient.wire.*`` hierarchy and
formatting helpers for request parameters and response bodies.  Enabling
``logging.getLogger("vkclient.wire").setLevel(logging.DEBUG)`` shows
everything that flows over the wire, with the access token redacted.

All formatting helpers return ``str`` and never log directly.
They are designed to be called inside ``isEnabledFor`` guards so
there is zero overhead when debug logging is disabled.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

# ---------------------------------------------------------------------------
# Logger hierarchy: vkclient.wire.*
# ---------------------------------------------------------------------------

wire_request_logger = logging.getLogger("vkclient.wire.request")
"""Request parameter serialization."""

wire_response_logger = logging.getLogger("vkclient.wire.response")
"""Envelope decoding."""

wire_http_logger = logging.getLogger("vkclient.wire.http")
"""HTTP requests / responses, including decompression."""

wire_longpoll_logger = logging.getLogger("vkclient.wire.longpoll")
"""Longpoll polls and control codes."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 80
"""Maximum repr length for individual values in fmt_params."""

_SECRET_KEYS: frozenset[str] = frozenset({"access_token", "key"})

_REDACTED = "***"


def fmt_params(params: Mapping[str, Any]) -> str:
    """Format request parameters compactly, redacting secrets.

    Returns:
        ``"user_ids='1,2', access_token=***, v='5.131'"`` with long values
        truncated, or ``""`` for no parameters.

    """
    if not params:
        return ""
    parts: list[str] = []
    for k, v in params.items():
        if k in _SECRET_KEYS:
            parts.append(f"{k}={_REDACTED}")
            continue
        r = repr(v)
        if len(r) > _MAX_VALUE_LEN:
            r = r[:_MAX_VALUE_LEN] + "..."
        parts.append(f"{k}={r}")
    return ", ".join(parts)


def fmt_body(content: bytes, limit: int = 200) -> str:
    """Return a truncated, decoded preview of a body."""
    return content[:limit].decode(errors="replace") if content else ""


def fmt_headers(headers: Mapping[str, str]) -> str:
    """Format the negotiation-relevant headers.

    Returns:
        ``"content-type='application/json', content-encoding='gzip'"``

    """
    keys = ("content-type", "content-encoding", "accept", "accept-encoding")
    parts = [f"{k}={headers[k]!r}" for k in keys if k in headers]
    return ", ".join(parts)
