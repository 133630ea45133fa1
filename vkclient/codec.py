# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Envelope codec: request parameter encoding and response envelope decoding.

Request encoding
----------------
- ``WireFormat.JSON``: parameters are flattened to a string map (``List``
  values comma-joined, booleans as ``1``/``0``) and form-urlencoded.
- ``WireFormat.MSGPACK``: parameters are packed as a native msgpack map;
  ``List`` values become msgpack arrays.

Response decoding
-----------------
Every method response is an envelope::

    {"response": <payload>}
    {"error": {"error_code": 5, "error_msg": "...", "request_params": [{"key": ..., "value": ...}]}}

:func:`decode_envelope` returns exactly one of :class:`ApiSuccess` or
:class:`ApiFailure`; malformed bytes raise :class:`~vkclient.errors.DecodeError`.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import msgpack

from vkclient._debug import fmt_body, wire_request_logger, wire_response_logger
from vkclient._types import List, Version, WireFormat, _scalar_to_str
from vkclient.errors import ApiError, DecodeError, EncodeError

__all__ = [
    "FORM_CONTENT_TYPE",
    "ApiEnvelope",
    "ApiFailure",
    "ApiSuccess",
    "convert_payload",
    "decode_body",
    "decode_envelope",
    "encode_params",
    "envelope_from_value",
    "flatten_params",
    "request_content_type",
    "wire_format_for_content_type",
]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_SCALARS = (str, int, float)


# ---------------------------------------------------------------------------
# Envelope types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApiSuccess:
    """Success arm of a response envelope.

    Attributes:
        payload: The decoded ``response`` value, untyped.
        execute_errors: Per-call errors reported alongside a successful
            ``execute`` response.

    """

    payload: Any
    execute_errors: tuple[ApiError, ...] = field(default=())


@dataclass(frozen=True)
class ApiFailure:
    """Failure arm of a response envelope."""

    error: ApiError


type ApiEnvelope = ApiSuccess | ApiFailure


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def flatten_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Flatten parameters to the string map used by form encoding.

    ``None`` values are dropped.

    Raises:
        EncodeError: If a value is not a scalar, ``List``, ``Version``, or enum.

    """
    flat: dict[str, str] = {}
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, List | Version):
            flat[name] = str(value)
        elif isinstance(value, Enum):
            flat[name] = _scalar_to_str(value.value)
        elif isinstance(value, _SCALARS):
            flat[name] = _scalar_to_str(value)
        else:
            raise EncodeError(
                f"parameter {name!r} has unsupported type {type(value).__name__}; wrap sequences in List(...)"
            )
    return flat


def _to_msgpack_value(name: str, value: Any) -> Any:
    if isinstance(value, List):
        return [_to_msgpack_value(name, item) for item in value]
    if isinstance(value, Version):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, _SCALARS):
        return value
    raise EncodeError(f"parameter {name!r} has unsupported type {type(value).__name__}")


def encode_params(params: Mapping[str, Any], wire_format: WireFormat) -> bytes:
    """Serialize request parameters for *wire_format*.

    Args:
        params: Parameter name to value.  ``None`` values are dropped.
        wire_format: Negotiated wire format.

    Returns:
        The request body bytes.

    Raises:
        EncodeError: If a value cannot be serialized.

    """
    if wire_format is WireFormat.MSGPACK:
        packed = {name: _to_msgpack_value(name, value) for name, value in params.items() if value is not None}
        try:
            body: bytes = msgpack.packb(packed, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as exc:
            raise EncodeError(f"cannot pack request parameters: {exc}") from exc
    else:
        body = urlencode(flatten_params(params)).encode("ascii")

    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug("Encoded %d params as %s (%d bytes)", len(params), wire_format.value, len(body))
    return body


def request_content_type(wire_format: WireFormat) -> str:
    """Return the ``Content-Type`` of a request body encoded for *wire_format*."""
    if wire_format is WireFormat.MSGPACK:
        return wire_format.mime_type
    return FORM_CONTENT_TYPE


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def wire_format_for_content_type(content_type: str | None, default: WireFormat) -> WireFormat:
    """Pick the response codec from a ``Content-Type`` header.

    The server may answer in a different format than requested (for
    example JSON error pages from a ``.msgpack`` endpoint), so the header
    wins over the configured format.  Unknown or missing types fall back
    to *default*.
    """
    if not content_type:
        return default
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime == "application/json" or mime.endswith("+json"):
        return WireFormat.JSON
    if mime in ("application/x-msgpack", "application/msgpack", "application/vnd.msgpack"):
        return WireFormat.MSGPACK
    return default


def decode_body(data: bytes, wire_format: WireFormat) -> Any:
    """Decode a raw (non-enveloped) body.

    Raises:
        DecodeError: If *data* is empty or malformed for *wire_format*.

    """
    if not data:
        raise DecodeError(f"empty {wire_format.value} body")
    try:
        if wire_format is WireFormat.MSGPACK:
            return msgpack.unpackb(data, raw=False)
        return json.loads(data)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise DecodeError(f"malformed {wire_format.value} body ({len(data)} bytes): {fmt_body(data, 80)!r}") from exc


def envelope_from_value(value: Any) -> ApiEnvelope:
    """Classify an already-decoded body as success or failure.

    Raises:
        DecodeError: If *value* carries neither ``error`` nor ``response``.

    """
    if not isinstance(value, Mapping):
        raise DecodeError(f"envelope must be a mapping, got {type(value).__name__}")
    if "error" in value:
        error = value["error"]
        if not isinstance(error, Mapping):
            raise DecodeError(f"envelope error must be a mapping, got {type(error).__name__}")
        return ApiFailure(ApiError.from_mapping(error))
    if "response" in value:
        execute_errors = tuple(
            ApiError.from_mapping(e) for e in value.get("execute_errors") or () if isinstance(e, Mapping)
        )
        return ApiSuccess(value["response"], execute_errors)
    raise DecodeError(f"envelope has neither 'response' nor 'error' (keys: {sorted(map(str, value))})")


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def _convert_field(value: Any, hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is types.UnionType or origin is typing.Union:
        # Optional[X]: convert as X when present
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1 and value is not None:
            return _convert_field(value, args[0])
        return value
    if origin is list:
        (item_type,) = typing.get_args(hint) or (Any,)
        if isinstance(value, list) and _is_dataclass_type(item_type):
            return [_convert(v, item_type) for v in value]
        return value
    if _is_dataclass_type(hint) and isinstance(value, Mapping):
        return _convert(value, hint)
    return value


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _convert(value: Any, target: Any) -> Any:
    if target is Any:
        return value
    origin = typing.get_origin(target)
    if origin is list:
        (item_type,) = typing.get_args(target) or (Any,)
        if not isinstance(value, list):
            raise TypeError(f"expected a list, got {type(value).__name__}")
        return [_convert(v, item_type) for v in value]
    if _is_dataclass_type(target):
        if not isinstance(value, Mapping):
            raise TypeError(f"expected a mapping for {target.__name__}, got {type(value).__name__}")
        try:
            hints = typing.get_type_hints(target)
        except NameError:
            hints = {}
        kwargs = {
            f.name: _convert_field(value[f.name], hints.get(f.name, Any))
            for f in dataclasses.fields(target)
            if f.init and f.name in value
        }
        return target(**kwargs)
    return target(value)


def convert_payload(payload: Any, response_type: Any = None) -> Any:
    """Convert a decoded payload into the caller's expected type.

    Args:
        payload: The untyped decoded value.
        response_type: ``None`` (return *payload* unchanged), a dataclass
            (unknown keys are ignored; nested dataclass and
            ``list[dataclass]`` fields are converted too), ``list[X]``, or
            any callable accepting the payload.

    Returns:
        The converted value.

    Raises:
        DecodeError: If the payload does not fit *response_type*.

    """
    if response_type is None:
        return payload
    try:
        return _convert(payload, response_type)
    except (TypeError, ValueError, KeyError) as exc:
        raise DecodeError(f"cannot convert response to {_type_name(response_type)}: {exc}") from exc


def decode_envelope(data: bytes, wire_format: WireFormat) -> ApiEnvelope:
    """Decode response bytes into :class:`ApiSuccess` or :class:`ApiFailure`.

    Args:
        data: Decompressed response body.
        wire_format: Codec to use.

    Returns:
        Exactly one envelope arm.

    Raises:
        DecodeError: On malformed bytes or an unrecognized envelope shape.

    """
    envelope = envelope_from_value(decode_body(data, wire_format))
    if wire_response_logger.isEnabledFor(logging.DEBUG):
        arm = "failure" if isinstance(envelope, ApiFailure) else "success"
        wire_response_logger.debug("Decoded %s envelope (%s, %d bytes)", arm, wire_format.value, len(data))
    return envelope
