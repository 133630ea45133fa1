# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Request executor: ``VkApi``, its builder, and typed method wrappers.

One call is::

    params + credentials -> encode -> POST /method/{name} -> decompress
        -> decode envelope -> ApiError | payload -> response_type

The client never retries and never interprets error codes; an
:class:`~vkclient.errors.ApiError` is raised exactly as the server
reported it.

Usage::

    from vkclient import List, VkApiBuilder

    with VkApiBuilder(token).build() as api:
        users = api.call("users.get", {"user_ids": List([1, 2]), "fields": List(["sex"])})

Logger: ``vkclient.client``: one DEBUG record per call with ``method``,
``duration_ms``, and ``error_code`` extra fields.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from vkclient._debug import fmt_body, fmt_params, wire_request_logger
from vkclient._hooks import _observe
from vkclient._types import DEFAULT_VERSION, ApiCredentials, Compression, Version, WireFormat
from vkclient.codec import (
    ApiFailure,
    ApiSuccess,
    convert_payload,
    decode_envelope,
    encode_params,
    request_content_type,
    wire_format_for_content_type,
)
from vkclient.errors import DecodeError, TransportError
from vkclient.transport import DEFAULT_TIMEOUT, HttpTransport, RawResponse

if TYPE_CHECKING:
    from vkclient.longpoll import VkLongPoll
    from vkclient.upload import VkUploader

__all__ = [
    "ApiMethod",
    "ClientConfig",
    "VkApi",
    "VkApiBuilder",
]

_logger = logging.getLogger("vkclient.client")

DEFAULT_DOMAIN = "api.vk.com"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration.

    Attributes:
        credentials: Access token and default API version.
        domain: API host, without scheme.
        wire_format: Response (and msgpack request) serialization.
        compression: Compression advertised in ``Accept-Encoding``.
        timeout: Default per-request timeout in seconds.
        http2: Whether the owned ``httpx.Client`` negotiates HTTP/2.

    Raises:
        ValueError: If *domain* is empty or *timeout* is not positive.

    """

    credentials: ApiCredentials
    domain: str = DEFAULT_DOMAIN
    wire_format: WireFormat = WireFormat.MSGPACK
    compression: Compression = Compression.ZSTD
    timeout: float = DEFAULT_TIMEOUT
    http2: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.domain:
            raise ValueError("domain must be a non-empty string")
        if "/" in self.domain:
            raise ValueError(f"domain must be a bare host name, got {self.domain!r}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")

    def method_url(self, method: str) -> str:
        """Return the endpoint URL for *method*.

        MessagePack responses are served from ``{method}.msgpack``.
        """
        suffix = ".msgpack" if self.wire_format is WireFormat.MSGPACK else ""
        return f"https://{self.domain}/method/{method}{suffix}"


# ---------------------------------------------------------------------------
# Typed method wrappers
# ---------------------------------------------------------------------------


class ApiMethod:
    """Base class for strongly typed method descriptions.

    Subclasses are dataclasses whose fields are the request parameters::

        @dataclass
        class UsersGet(ApiMethod):
            method_name = "users.get"
            response_type = list[User]

            user_ids: List
            fields: List | None = None

        users = api.call_method(UsersGet(user_ids=List([1, 2])))

    Attributes:
        method_name: API method name.
        version: API version this method requires, or ``None`` for the
            client default.
        response_type: Conversion target for the payload, or ``None``.

    """

    method_name: ClassVar[str]
    version: ClassVar[Version | None] = None
    response_type: ClassVar[Any] = None

    def to_params(self) -> dict[str, Any]:
        """Return the request parameters carried by this instance."""
        if dataclasses.is_dataclass(self):
            return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        return dict(vars(self))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class VkApi:
    """Client for the VK API over HTTP/2.

    Thread-safe: configuration is frozen and the underlying
    ``httpx.Client`` may be shared by concurrent calls.
    """

    __slots__ = ("_config", "_transport")

    def __init__(self, config: ClientConfig, *, http_client: httpx.Client | None = None) -> None:
        """Create a client.

        Args:
            config: Frozen client configuration.
            http_client: Optional pre-built ``httpx.Client``; it is not
                closed by :meth:`close`.

        """
        self._config = config
        self._transport = HttpTransport(
            config.compression,
            timeout=config.timeout,
            http2=config.http2,
            client=http_client,
        )

    @classmethod
    def from_token(cls, access_token: str) -> VkApi:
        """Create a client with default settings."""
        return VkApiBuilder(access_token).build()

    @property
    def config(self) -> ClientConfig:
        """The client configuration."""
        return self._config

    @property
    def transport(self) -> HttpTransport:
        """The shared HTTP transport."""
        return self._transport

    # -- Request building ----------------------------------------------------

    def build_params(self, params: Mapping[str, Any] | None, version: Version | None = None) -> dict[str, Any]:
        """Merge caller parameters with the credential fields.

        ``access_token`` and ``v`` always come from the client; values the
        caller supplied under those names are replaced.
        """
        merged: dict[str, Any] = dict(params or {})
        merged.update(self._config.credentials.as_params(version))
        return merged

    # -- Calls ---------------------------------------------------------------

    def call(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        response_type: Any = None,
    ) -> Any:
        """Call an API method.

        See https://dev.vk.com/method for the list of methods.

        Args:
            method: Method name, e.g. ``"users.get"``.
            params: Request parameters; wrap sequences in ``List``.
            response_type: Optional conversion target for the payload (see
                :func:`vkclient.codec.convert_payload`).

        Returns:
            The ``response`` payload, converted when *response_type* is set.

        Raises:
            ApiError: The API returned an error envelope.
            TransportError: The request failed at the network level, or a
                non-2xx response could not be decoded.
            DecodeError: The response or payload could not be decoded.
            EncodeError: A parameter could not be serialized.

        """
        success = self.execute(method, params)
        return convert_payload(success.payload, response_type)

    def call_method(self, request: ApiMethod) -> Any:
        """Call the method described by a typed wrapper."""
        success = self.execute(request.method_name, request.to_params(), version=request.version)
        return convert_payload(success.payload, request.response_type)

    def execute(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        version: Version | None = None,
    ) -> ApiSuccess:
        """Call *method* and return the success envelope.

        Unlike :meth:`call`, this keeps ``execute_errors`` reported by the
        ``execute`` method.

        Raises:
            ApiError: The API returned an error envelope.
            TransportError: See :meth:`call`.
            DecodeError: See :meth:`call`.
            EncodeError: See :meth:`call`.

        """
        config = self._config
        merged = self.build_params(params, version)
        body = encode_params(merged, config.wire_format)
        url = config.method_url(method)

        if wire_request_logger.isEnabledFor(logging.DEBUG):
            wire_request_logger.debug("Call %s: %s", method, fmt_params(merged))

        attributes = {"vk.wire_format": config.wire_format.value, "vk.compression": config.compression.value}
        t0 = time.monotonic()
        error_code: int | None = None
        try:
            with _observe(self._transport.call_hook, "call", method, attributes):
                response = self._transport.execute(
                    "POST",
                    url,
                    content=body,
                    headers={
                        "Content-Type": request_content_type(config.wire_format),
                        "Accept": config.wire_format.mime_type,
                    },
                )
                envelope = self._decode(response, url)
                if isinstance(envelope, ApiFailure):
                    error_code = envelope.error.code
                    raise envelope.error
        finally:
            duration_ms = (time.monotonic() - t0) * 1000
            _logger.debug(
                "Call %s finished in %.1fms",
                method,
                duration_ms,
                extra={"method": method, "duration_ms": round(duration_ms, 2), "error_code": error_code},
            )
        return envelope

    def _decode(self, response: RawResponse, url: str) -> ApiSuccess | ApiFailure:
        wire_format = wire_format_for_content_type(response.content_type, self._config.wire_format)
        try:
            return decode_envelope(response.content, wire_format)
        except DecodeError as exc:
            if response.is_success:
                raise
            raise TransportError(
                f"HTTP {response.status_code} from {url}: {fmt_body(response.content)!r}",
                status_code=response.status_code,
            ) from exc

    # -- Companion engines ---------------------------------------------------

    def longpoll(self) -> VkLongPoll:
        """Return a longpoll engine sharing this client's connection."""
        from vkclient.longpoll import VkLongPoll

        return VkLongPoll(self._transport)

    def uploader(self) -> VkUploader:
        """Return an uploader sharing this client's connection."""
        from vkclient.upload import VkUploader

        return VkUploader(self._transport)

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        self._transport.close()

    def __enter__(self) -> VkApi:
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

    def __repr__(self) -> str:
        """Show the negotiated settings, never the token."""
        c = self._config
        return (
            f"VkApi(domain={c.domain!r}, version='{c.credentials.version}', "
            f"wire_format={c.wire_format.value}, compression={c.compression.value})"
        )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class VkApiBuilder:
    """Builder for :class:`VkApi`.

    Defaults: domain ``api.vk.com``, version ``5.131``, MessagePack, zstd.
    """

    __slots__ = (
        "_access_token",
        "_compression",
        "_domain",
        "_http2",
        "_http_client",
        "_timeout",
        "_version",
        "_wire_format",
    )

    def __init__(self, access_token: str) -> None:
        """Start from *access_token* with default values."""
        self._access_token = access_token
        self._version = DEFAULT_VERSION
        self._domain = DEFAULT_DOMAIN
        self._wire_format = WireFormat.MSGPACK
        self._compression = Compression.ZSTD
        self._timeout = DEFAULT_TIMEOUT
        self._http2 = True
        self._http_client: httpx.Client | None = None

    def with_access_token(self, access_token: str) -> VkApiBuilder:
        """Replace the access token."""
        self._access_token = access_token
        return self

    def with_version(self, version: Version | str) -> VkApiBuilder:
        """Set the API version (``Version`` or ``"5.131"``)."""
        self._version = Version.parse(version) if isinstance(version, str) else version
        return self

    def with_domain(self, domain: str) -> VkApiBuilder:
        """Set the API host."""
        self._domain = domain
        return self

    def with_wire_format(self, wire_format: WireFormat) -> VkApiBuilder:
        """Set the serialization format."""
        self._wire_format = wire_format
        return self

    def with_compression(self, compression: Compression) -> VkApiBuilder:
        """Set the requested response compression."""
        self._compression = compression
        return self

    def with_timeout(self, timeout: float) -> VkApiBuilder:
        """Set the default per-request timeout in seconds."""
        self._timeout = timeout
        return self

    def with_http2(self, enabled: bool) -> VkApiBuilder:
        """Enable or disable HTTP/2 on the owned client."""
        self._http2 = enabled
        return self

    def with_http_client(self, client: httpx.Client) -> VkApiBuilder:
        """Use a pre-built ``httpx.Client`` (not closed by the API client)."""
        self._http_client = client
        return self

    def config(self) -> ClientConfig:
        """Return the frozen configuration described by this builder.

        Raises:
            ValueError: If a setting is invalid.

        """
        return ClientConfig(
            credentials=ApiCredentials(self._access_token, self._version),
            domain=self._domain,
            wire_format=self._wire_format,
            compression=self._compression,
            timeout=self._timeout,
            http2=self._http2,
        )

    def build(self) -> VkApi:
        """Create the client."""
        return VkApi(self.config(), http_client=self._http_client)

