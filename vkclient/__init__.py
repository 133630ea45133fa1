# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Client for the VK API over HTTP/2 with MessagePack and zstd support."""

import contextlib
import logging

from vkclient._types import DEFAULT_VERSION, ApiCredentials, Compression, List, Version, WireFormat
from vkclient.client import ApiMethod, ClientConfig, VkApi, VkApiBuilder
from vkclient.codec import ApiFailure, ApiSuccess, decode_envelope, encode_params
from vkclient.errors import ApiError, DecodeError, EncodeError, LongPollError, TransportError, VkApiError
from vkclient.longpoll import (
    HistoryTooOld,
    KeyOrTimestampInvalid,
    LongPollSession,
    NoUpdates,
    SessionExpired,
    UpdatesBatch,
    VkLongPoll,
)
from vkclient.transport import HttpTransport
from vkclient.upload import VkUploader

# OpenTelemetry instrumentation (optional: requires `pip install vkclient[otel]`)
with contextlib.suppress(ImportError):
    from vkclient.otel import OtelConfig, instrument_client

__all__ = [
    # Client
    "ApiMethod",
    "ClientConfig",
    "VkApi",
    "VkApiBuilder",
    # Values
    "DEFAULT_VERSION",
    "ApiCredentials",
    "Compression",
    "List",
    "Version",
    "WireFormat",
    # Codec
    "ApiFailure",
    "ApiSuccess",
    "decode_envelope",
    "encode_params",
    # Errors
    "ApiError",
    "DecodeError",
    "EncodeError",
    "LongPollError",
    "TransportError",
    "VkApiError",
    # Longpoll
    "HistoryTooOld",
    "KeyOrTimestampInvalid",
    "LongPollSession",
    "NoUpdates",
    "SessionExpired",
    "UpdatesBatch",
    "VkLongPoll",
    # Transport / upload
    "HttpTransport",
    "VkUploader",
]

if "OtelConfig" in dir():
    __all__ += ["OtelConfig", "instrument_client"]

# NullHandler on the package logger so library users don't get
# "No handler found" warnings.
logging.getLogger("vkclient").addHandler(logging.NullHandler())
