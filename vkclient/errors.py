"""Exception hierarchy for API calls, longpoll polling, and uploads.

Every error raised by this package derives from :class:`VkApiError`:

- :class:`TransportError`: the request never produced a usable response
  (connect, TLS, timeout, reset, or an undecodable non-2xx status).
- :class:`DecodeError`: bytes arrived but could not be decompressed or
  decoded into the expected shape.
- :class:`EncodeError`: request parameters could not be serialized.
- :class:`ApiError`: the API answered with an error envelope.
- :class:`LongPollError`: a longpoll server returned a ``failed`` code
  that is not part of the recoverable protocol states.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

__all__ = [
    "ApiError",
    "DecodeError",
    "EncodeError",
    "LongPollError",
    "TransportError",
    "VkApiError",
]


class VkApiError(Exception):
    """Base class for all errors raised by vkclient."""


class TransportError(VkApiError):
    """Network-level failure, distinct from API-reported errors.

    Attributes:
        status_code: HTTP status of the response, or ``None`` when no
            response was received.

    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialize with a description and optional HTTP status."""
        self.status_code = status_code
        super().__init__(message)


class DecodeError(VkApiError):
    """Raised when response bytes cannot be decompressed or decoded."""


class EncodeError(VkApiError):
    """Raised when request parameters cannot be serialized."""


class ApiError(VkApiError):
    """Business-logic error reported by the API.

    See https://dev.vk.com/reference/errors for the list of codes.

    Attributes:
        code: The ``error_code`` field.
        message: The ``error_msg`` field.
        request_params: The request parameters echoed back by the API,
            keyed by parameter name.

    """

    def __init__(self, code: int, message: str, request_params: Mapping[str, Any] | None = None) -> None:
        """Initialize with the fields of an error envelope."""
        self.code = code
        self.message = message
        self.request_params: Mapping[str, Any] = MappingProxyType(dict(request_params or {}))
        super().__init__(f"vk api error occurred. Code: {code}, message: {message}")

    def __eq__(self, other: object) -> bool:
        """Compare code, message, and echoed parameters."""
        if not isinstance(other, ApiError):
            return NotImplemented
        return (self.code, self.message, dict(self.request_params)) == (
            other.code,
            other.message,
            dict(other.request_params),
        )

    def __hash__(self) -> int:
        """Hash by code and message."""
        return hash((self.code, self.message))

    @classmethod
    def from_mapping(cls, error: Mapping[str, Any]) -> ApiError:
        """Build from the ``error`` object of an envelope.

        Raises:
            DecodeError: If ``error_code`` is missing or not an integer.

        """
        code = error.get("error_code")
        if isinstance(code, bool) or not isinstance(code, int):
            raise DecodeError(f"error envelope has no integer error_code: {dict(error)!r}")
        message = error.get("error_msg", "")
        params: dict[str, Any] = {}
        for item in error.get("request_params") or ():
            if isinstance(item, Mapping) and "key" in item:
                params[str(item["key"])] = item.get("value")
        return cls(code, str(message), params)


class LongPollError(VkApiError):
    """Longpoll ``failed`` code outside the recoverable set (1, 2, 3).

    Attributes:
        failed: The ``failed`` code.
        min_version: Lowest supported longpoll version, when reported.
        max_version: Highest supported longpoll version, when reported.

    """

    def __init__(self, failed: int, *, min_version: int | None = None, max_version: int | None = None) -> None:
        """Initialize with the server's control code and version bounds."""
        self.failed = failed
        self.min_version = min_version
        self.max_version = max_version
        detail = ""
        if min_version is not None or max_version is not None:
            detail = f" (supported versions: {min_version}..{max_version})"
        super().__init__(f"long poll error occurred, code: {failed}{detail}")
