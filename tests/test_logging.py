# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the JSON log formatter and wire debug helpers."""

from __future__ import annotations

import json
import logging
import sys

from vkclient._debug import fmt_body, fmt_headers, fmt_params
from vkclient.logging_utils import VkJsonFormatter


def _record(msg: str = "test", level: int = logging.INFO, name: str = "vkclient.client") -> logging.LogRecord:
    return logging.LogRecord(name=name, level=level, pathname="", lineno=0, msg=msg, args=(), exc_info=None)


# ---------------------------------------------------------------------------
# VkJsonFormatter tests
# ---------------------------------------------------------------------------


class TestVkJsonFormatter:
    """Tests for VkJsonFormatter."""

    def test_valid_json_output(self) -> None:
        """Output should be valid single-line JSON with the standard keys."""
        output = VkJsonFormatter().format(_record("test message"))
        assert "\n" not in output
        parsed = json.loads(output)
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "vkclient.client"
        assert parsed["message"] == "test message"
        assert "timestamp" in parsed

    def test_extra_fields_in_output(self) -> None:
        """Extra fields should appear in JSON output."""
        record = _record()
        record.method = "users.get"
        record.duration_ms = 12.5
        record.error_code = None
        parsed = json.loads(VkJsonFormatter().format(record))
        assert parsed["method"] == "users.get"
        assert parsed["duration_ms"] == 12.5
        assert parsed["error_code"] is None

    def test_secrets_redacted(self) -> None:
        """Credential extras are masked."""
        record = _record()
        record.access_token = "vk1.a.secret"
        record.key = "lp-key"
        output = VkJsonFormatter().format(record)
        assert "vk1.a.secret" not in output
        assert "lp-key" not in output
        assert json.loads(output)["access_token"] == "***"

    def test_reserved_keys_not_overwritten(self) -> None:
        """Extras cannot replace the standard keys."""
        record = _record("real")
        record.__dict__["level"] = "fake"
        parsed = json.loads(VkJsonFormatter().format(record))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "real"

    def test_exception_included(self) -> None:
        """Exception tracebacks appear under the exception key."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="vkclient.client",
                level=logging.ERROR,
                pathname="",
                lineno=0,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )
        parsed = json.loads(VkJsonFormatter().format(record))
        assert "ValueError: boom" in parsed["exception"]

    def test_non_serializable_coerced(self) -> None:
        """Non-JSON values are stringified."""
        record = _record()
        record.server = object()
        parsed = json.loads(VkJsonFormatter().format(record))
        assert parsed["server"].startswith("<object object")

    def test_real_log_record(self) -> None:
        """A record produced by a library logger round-trips."""
        records: list[logging.LogRecord] = []

        class _Collect(logging.Handler):
            def emit(self, record: logging.LogRecord) -> None:
                records.append(record)

        logger = logging.getLogger("vkclient.longpoll")
        handler = _Collect()
        logger.addHandler(handler)
        old_level = logger.level
        logger.setLevel(logging.INFO)
        try:
            logger.info("Longpoll session re-bootstrapped after failed=%d", 2, extra={"failed": 2, "ts": 10})
        finally:
            logger.removeHandler(handler)
            logger.setLevel(old_level)
        parsed = json.loads(VkJsonFormatter().format(records[0]))
        assert parsed["message"] == "Longpoll session re-bootstrapped after failed=2"
        assert parsed["failed"] == 2
        assert parsed["ts"] == 10


# ---------------------------------------------------------------------------
# Wire debug helpers
# ---------------------------------------------------------------------------


class TestDebugHelpers:
    """Formatting helpers for vkclient.wire.* loggers."""

    def test_fmt_params_redacts(self) -> None:
        """Tokens and longpoll keys are never printed."""
        text = fmt_params({"user_ids": "1,2", "access_token": "secret", "key": "lpkey", "v": "5.131"})
        assert text == "user_ids='1,2', access_token=***, key=***, v='5.131'"

    def test_fmt_params_truncates(self) -> None:
        """Long values are cut short."""
        text = fmt_params({"code": "x" * 500})
        assert text.endswith("...")
        assert len(text) < 100

    def test_fmt_params_empty(self) -> None:
        """No parameters formats as an empty string."""
        assert fmt_params({}) == ""

    def test_fmt_body(self) -> None:
        """Bodies are decoded leniently and truncated."""
        assert fmt_body(b"") == ""
        assert fmt_body(b"abc" * 100, limit=5) == "abcab"
        assert fmt_body(b"\xff\xfe") == "��"

    def test_fmt_headers(self) -> None:
        """Only negotiation headers are shown."""
        headers = {"content-type": "application/json", "content-encoding": "zstd", "set-cookie": "x"}
        assert fmt_headers(headers) == "content-type='application/json', content-encoding='zstd'"
