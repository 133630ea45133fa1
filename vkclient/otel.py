# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""OpenTelemetry client-side instrumentation for vkclient.

Provides ``OtelConfig`` and ``instrument_client()`` for adding tracing
(one CLIENT span per HTTP exchange) and metrics (a request counter and a
duration histogram) to API calls, longpoll polls, and uploads.

Requires ``pip install vkclient[otel]`` (opentelemetry-api + opentelemetry-sdk).

Usage::

    from vkclient.otel import OtelConfig, instrument_client

    api = VkApiBuilder(token).build()
    instrument_client(api)  # uses global TracerProvider / MeterProvider
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from contextvars import Token
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.metrics import Counter, Histogram, Meter, MeterProvider, get_meter_provider
from opentelemetry.trace import SpanKind, StatusCode, Tracer, TracerProvider, get_tracer_provider

from vkclient._hooks import HookToken, _register_call_hook
from vkclient.client import VkApi
from vkclient.errors import ApiError, LongPollError, TransportError
from vkclient.transport import HttpTransport

__all__ = ["OtelConfig", "instrument_client"]

_SCOPE_NAME = "vkclient"
_SCOPE_VERSION = "4.0.4"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OtelConfig:
    """Configuration for OpenTelemetry instrumentation.

    Attributes:
        tracer_provider: Custom ``TracerProvider``; uses the global provider when ``None``.
        meter_provider: Custom ``MeterProvider``; uses the global provider when ``None``.
        enable_tracing: Enable span creation (default ``True``).
        enable_metrics: Enable counter/histogram recording (default ``True``).
        record_exceptions: Record exceptions on error spans (default ``True``).
        custom_attributes: Extra span/metric attributes merged into every call.

    """

    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None
    enable_tracing: bool = True
    enable_metrics: bool = True
    record_exceptions: bool = True
    custom_attributes: Mapping[str, str] = field(default_factory=dict)


def instrument_client[T: (VkApi, HttpTransport)](target: T, config: OtelConfig | None = None) -> T:
    """Attach OpenTelemetry tracing and metrics to a client.

    The hook lives on the shared transport, so longpoll engines and
    uploaders obtained from an instrumented ``VkApi`` are covered too.
    Not thread-safe while calls are in flight; instrument before use.

    Args:
        target: A ``VkApi`` or a bare ``HttpTransport``.
        config: Optional configuration; uses global providers and defaults when ``None``.

    Returns:
        The same *target* instance (for chaining).

    """
    if config is None:
        config = OtelConfig()
    transport = target.transport if isinstance(target, VkApi) else target
    transport.call_hook = _register_call_hook(transport.call_hook, _OtelCallHook(config))
    return target


# ---------------------------------------------------------------------------
# Internal call hook
# ---------------------------------------------------------------------------


@dataclass
class _OtelHookToken:
    """Internal token carrying span + timing for on_call_end."""

    span: trace.Span | None
    otel_token: Token[Context] | None
    start_time: float
    kind: str
    name: str


def _error_attributes(error: BaseException) -> dict[str, Any]:
    attrs: dict[str, Any] = {"vk.error_type": type(error).__name__}
    if isinstance(error, ApiError):
        attrs["vk.error_code"] = error.code
    elif isinstance(error, LongPollError):
        attrs["vk.longpoll.failed"] = error.failed
    elif isinstance(error, TransportError) and error.status_code is not None:
        attrs["http.response.status_code"] = error.status_code
    return attrs


class _OtelCallHook:
    """Implements ``_CallHook`` with OpenTelemetry spans and metrics."""

    __slots__ = ("_config", "_counter", "_histogram", "_meter", "_tracer")

    def __init__(self, config: OtelConfig) -> None:
        self._config = config

        tp = config.tracer_provider or get_tracer_provider()
        self._tracer: Tracer = tp.get_tracer(_SCOPE_NAME, _SCOPE_VERSION)

        mp: MeterProvider = config.meter_provider or get_meter_provider()
        self._meter: Meter = mp.get_meter(_SCOPE_NAME, _SCOPE_VERSION)
        self._counter: Counter = self._meter.create_counter(
            "rpc.client.requests",
            unit="{request}",
            description="Number of VK API requests sent",
        )
        self._histogram: Histogram = self._meter.create_histogram(
            "rpc.client.duration",
            unit="s",
            description="Duration of VK API requests",
        )

    def on_call_start(self, kind: str, name: str, attributes: Mapping[str, Any]) -> HookToken:
        """Start a span and record the start time."""
        start_time = time.monotonic()
        span: trace.Span | None = None
        otel_token: Token[Context] | None = None

        if self._config.enable_tracing:
            attrs: dict[str, Any] = {
                "rpc.system": "vk",
                "rpc.method": name,
                "vk.kind": kind,
                **attributes,
            }
            attrs.update(self._config.custom_attributes)
            span = self._tracer.start_span(f"vk/{name}", kind=SpanKind.CLIENT, attributes=attrs)
            otel_token = otel_context.attach(trace.set_span_in_context(span))

        return _OtelHookToken(span=span, otel_token=otel_token, start_time=start_time, kind=kind, name=name)

    def on_call_end(self, token: HookToken, error: BaseException | None) -> None:
        """End the span and record metrics."""
        if not isinstance(token, _OtelHookToken):
            return

        duration = time.monotonic() - token.start_time
        status = "error" if error is not None else "ok"

        if token.span is not None:
            if error is not None:
                token.span.set_status(StatusCode.ERROR, str(error))
                token.span.set_attributes(_error_attributes(error))
                if self._config.record_exceptions:
                    token.span.record_exception(error)
            else:
                token.span.set_status(StatusCode.OK)
            token.span.end()

        if token.otel_token is not None:
            otel_context.detach(token.otel_token)

        if self._config.enable_metrics:
            metric_attrs: dict[str, str] = {
                "rpc.system": "vk",
                "rpc.method": token.name,
                "vk.kind": token.kind,
                "status": status,
                **self._config.custom_attributes,
            }
            self._counter.add(1, metric_attrs)
            self._histogram.record(duration, metric_attrs)
