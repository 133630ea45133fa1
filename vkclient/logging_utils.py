# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Single-line JSON log formatter.

:class:`VkJsonFormatter` serializes each record as one JSON object with
``timestamp``, ``level``, ``logger`` and ``message`` plus every field the
library attaches through ``extra`` (``method``, ``duration_ms``,
``error_code``, ``failed``, ``ts``, ...).  Credential-bearing extras are
masked.

Not imported by ``vkclient`` itself; opt in explicitly::

    from vkclient.logging_utils import VkJsonFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(VkJsonFormatter())
    logging.getLogger("vkclient").addHandler(handler)
"""

from __future__ import annotations

import json
import logging

__all__ = ["VkJsonFormatter"]

# Attributes every LogRecord carries; anything else arrived via ``extra``.
_DEFAULT_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
}

_RESERVED_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})

REDACTED_KEYS: frozenset[str] = frozenset({"access_token", "key", "token"})
"""Extra field names whose values are never written out."""


class VkJsonFormatter(logging.Formatter):
    """JSON formatter emitting all structured extra fields.

    Standard keys cannot be overwritten by extras of the same name.
    Values of :data:`REDACTED_KEYS` extras are replaced with ``"***"``;
    non-serializable values are coerced with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        for name, value in record.__dict__.items():
            if name in _DEFAULT_RECORD_ATTRS or name in _RESERVED_KEYS:
                continue
            obj[name] = "***" if name in REDACTED_KEYS else value
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            obj["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(obj, default=str)
