# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Longpoll engine for the User and Bots Long Poll APIs.

A longpoll subscription is a :class:`LongPollSession` (``server``, ``key``,
``ts``) obtained from an API method such as ``groups.getLongPollServer``.
Each poll is a long-lived ``GET`` to ``server`` with
``act=a_check&key=...&ts=...&wait=...``; the server answers when events
arrive or the wait window elapses.

Server control codes
--------------------
- ``updates`` + ``ts``: ``UpdatesBatch``; ``ts`` advances.
- empty ``updates``: ``NoUpdates``; ``ts`` advances.
- ``failed: 1``: ``KeyOrTimestampInvalid``; ``server`` and ``key`` are
  re-bootstrapped.
- ``failed: 2``: ``SessionExpired``; the whole session is re-bootstrapped.
- ``failed: 3`` + ``ts``: ``HistoryTooOld``; the new ``ts`` is adopted.
- ``failed: 4`` or any other code: ``LongPollError`` is raised.

Control codes 1-3 are protocol states, not errors: ``subscribe`` recovers
and then yields the outcome so the caller can see what happened (code 3
means some events were lost for good).

``subscribe`` is a lazy, infinite generator.  Nothing is requested until
``next()`` is called, and closing the generator stops it before its next
request.  It is not restartable from history.

Logger: ``vkclient.longpoll``: recoveries at INFO, lost history and
rewinding ``ts`` values at WARNING.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any
from urllib.parse import urlsplit

from vkclient._debug import fmt_params, wire_longpoll_logger
from vkclient._hooks import _observe
from vkclient._types import Compression, WireFormat
from vkclient.codec import decode_body, flatten_params, wire_format_for_content_type
from vkclient.errors import DecodeError, LongPollError, TransportError
from vkclient.transport import HttpTransport

__all__ = [
    "Bootstrap",
    "HistoryTooOld",
    "KeyOrTimestampInvalid",
    "LongPollOutcome",
    "LongPollSession",
    "NoUpdates",
    "SessionExpired",
    "UpdatesBatch",
    "VkLongPoll",
    "classify_response",
]

_logger = logging.getLogger("vkclient.longpoll")

DEFAULT_WAIT = 25
"""Recommended wait window in seconds."""

_TIMEOUT_MARGIN = 10.0
"""Seconds added to ``wait`` for the HTTP read timeout."""


def _parse_int(value: Any, name: str) -> int:
    """Accept an integer or a numeric string (servers send both)."""
    if isinstance(value, bool):
        raise DecodeError(f"longpoll field {name!r} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
    raise DecodeError(f"longpoll field {name!r} must be an integer, got {value!r}")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass
class LongPollSession:
    """Mutable ``server``/``key``/``ts`` triple of one subscription.

    ``subscribe`` updates the instance in place, so the caller can read
    the latest ``ts`` at any time.  One session belongs to one consumer.
    """

    server: str
    key: str = field(repr=False)
    ts: int

    def __post_init__(self) -> None:
        """Normalize ``ts`` given as a numeric string."""
        self.ts = _parse_int(self.ts, "ts")
        if not self.server:
            raise ValueError("server must be a non-empty string")

    @classmethod
    def from_response(cls, value: Mapping[str, Any]) -> LongPollSession:
        """Build from a ``*.getLongPollServer`` response payload.

        Raises:
            DecodeError: If ``server``, ``key``, or ``ts`` is missing
                or invalid.

        """
        try:
            return cls(server=str(value["server"]), key=str(value["key"]), ts=value["ts"])
        except (KeyError, TypeError) as exc:
            raise DecodeError(f"longpoll server response is missing {exc}") from exc
        except ValueError as exc:
            raise DecodeError(f"invalid longpoll server response: {exc}") from exc

    @property
    def url(self) -> str:
        """The poll URL; servers given without a scheme get ``https://``."""
        if self.server.startswith(("http://", "https://")):
            return self.server
        return f"https://{self.server}"


type Bootstrap = Callable[[], LongPollSession | Mapping[str, Any]]
"""Callback returning a fresh session (or the raw ``getLongPollServer`` payload)."""


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UpdatesBatch:
    """Events returned by one poll, in server order, and the next ``ts``."""

    updates: tuple[Any, ...]
    ts: int


@dataclass(frozen=True)
class NoUpdates:
    """The wait window elapsed without events."""

    ts: int


@dataclass(frozen=True)
class SessionExpired:
    """``failed: 2``: the key is no longer valid."""


@dataclass(frozen=True)
class HistoryTooOld:
    """``failed: 3``: events before ``ts`` were lost; polling resumes at ``ts``."""

    ts: int


@dataclass(frozen=True)
class KeyOrTimestampInvalid:
    """``failed: 1``: the timestamp is stale for the current key."""


type LongPollOutcome = UpdatesBatch | NoUpdates | SessionExpired | HistoryTooOld | KeyOrTimestampInvalid


def classify_response(value: Any, current_ts: int) -> LongPollOutcome:
    """Map a decoded longpoll response to an outcome.

    Args:
        value: Decoded JSON body, or ``None`` for an empty response.
        current_ts: The session's ``ts``, used when the server sends none.

    Returns:
        The outcome for this response.

    Raises:
        LongPollError: For ``failed`` codes other than 1, 2, and 3.
        DecodeError: If the body matches no known shape.

    """
    if value is None:
        return NoUpdates(current_ts)
    if not isinstance(value, Mapping):
        raise DecodeError(f"longpoll response must be a mapping, got {type(value).__name__}")

    if "failed" in value:
        failed = _parse_int(value["failed"], "failed")
        if failed == 1:
            return KeyOrTimestampInvalid()
        if failed == 2:
            return SessionExpired()
        if failed == 3:
            if value.get("ts") is None:
                raise DecodeError("longpoll 'failed: 3' response carries no ts")
            return HistoryTooOld(_parse_int(value["ts"], "ts"))
        raise LongPollError(
            failed,
            min_version=value.get("min_version"),
            max_version=value.get("max_version"),
        )

    ts = _parse_int(value["ts"], "ts") if value.get("ts") is not None else current_ts
    if "updates" in value:
        updates = value["updates"]
        if not isinstance(updates, list):
            raise DecodeError(f"longpoll 'updates' must be a list, got {type(updates).__name__}")
        if not updates:
            return NoUpdates(ts)
        return UpdatesBatch(tuple(updates), ts)
    if "ts" in value:
        return NoUpdates(ts)
    raise DecodeError(f"longpoll response has neither 'updates' nor 'failed' (keys: {sorted(map(str, value))})")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class VkLongPoll:
    """Longpoll client.

    Obtain one from :meth:`vkclient.VkApi.longpoll` to share the API
    client's connection, or construct it directly::

        with VkLongPoll() as lp:
            for update in lp.iter_updates(session, bootstrap=fetch_session):
                handle(update)

    """

    __slots__ = ("_owns_transport", "_timeout_margin", "_transport")

    def __init__(self, transport: HttpTransport | None = None, *, timeout_margin: float = _TIMEOUT_MARGIN) -> None:
        """Create the engine.

        Args:
            transport: Shared transport; a gzip-accepting HTTP/2 transport
                is created (and owned) when ``None``.
            timeout_margin: Seconds added to ``wait`` for the read timeout.

        """
        if transport is None:
            self._transport = HttpTransport(Compression.GZIP)
            self._owns_transport = True
        else:
            self._transport = transport
            self._owns_transport = False
        self._timeout_margin = timeout_margin

    # -- Single poll ---------------------------------------------------------

    def poll_once(
        self,
        session: LongPollSession,
        *,
        wait: int = DEFAULT_WAIT,
        mode: int | None = None,
        version: int | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> LongPollOutcome:
        """Issue one poll and classify the response.

        Does not modify *session*.

        Args:
            session: Subscription to poll.
            wait: Seconds the server may hold the request open.
            mode: User Long Poll ``mode`` bitmask.
            version: User Long Poll protocol ``version``.
            extra_params: Additional query parameters; they cannot
                override ``act``, ``key``, ``ts``, or ``wait``.

        Returns:
            The classified outcome.

        Raises:
            TransportError: On network failures or a non-2xx status.
            DecodeError: On a malformed body.
            LongPollError: On unrecoverable ``failed`` codes.

        """
        params: dict[str, Any] = dict(extra_params or {})
        if mode is not None:
            params["mode"] = mode
        if version is not None:
            params["version"] = version
        params.update({"act": "a_check", "key": session.key, "ts": session.ts, "wait": wait})

        url = session.url
        if wire_longpoll_logger.isEnabledFor(logging.DEBUG):
            wire_longpoll_logger.debug("Poll %s [%s]", url, fmt_params(params))

        t0 = time.monotonic()
        hook_attributes = {"server.address": urlsplit(url).netloc, "vk.longpoll.wait": wait}
        with _observe(self._transport.call_hook, "longpoll", "longpoll", hook_attributes):
            response = self._transport.execute(
                "GET",
                url,
                params=flatten_params(params),
                headers={"Accept": WireFormat.JSON.mime_type},
                timeout=wait + self._timeout_margin,
            )
            if not response.is_success:
                raise TransportError(f"longpoll server {url} returned HTTP {response.status_code}", status_code=response.status_code)
            if response.status_code == 204 or not response.content.strip():
                value = None
            else:
                value = decode_body(response.content, wire_format_for_content_type(response.content_type, WireFormat.JSON))
            outcome = classify_response(value, session.ts)

        if wire_longpoll_logger.isEnabledFor(logging.DEBUG):
            wire_longpoll_logger.debug(
                "Poll outcome %s after %.1fms",
                type(outcome).__name__,
                (time.monotonic() - t0) * 1000,
            )
        return outcome

    # -- Streaming -----------------------------------------------------------

    def subscribe(
        self,
        session: LongPollSession,
        *,
        bootstrap: Bootstrap | None = None,
        wait: int = DEFAULT_WAIT,
        mode: int | None = None,
        version: int | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> Iterator[LongPollOutcome]:
        """Yield one outcome per poll, recovering the session as needed.

        *session* is updated in place before each outcome is yielded.
        ``KeyOrTimestampInvalid`` and ``SessionExpired`` are yielded after
        *bootstrap* has produced a fresh session; without *bootstrap* they
        are yielded and the stream ends.

        Args:
            session: Subscription to poll; mutated in place.
            bootstrap: Callback returning a fresh session.
            wait: See :meth:`poll_once`.
            mode: See :meth:`poll_once`.
            version: See :meth:`poll_once`.
            extra_params: See :meth:`poll_once`.

        Yields:
            Outcomes in the order the server produced them.

        Raises:
            TransportError: From a poll; the stream ends.
            DecodeError: From a poll or a malformed bootstrap result.
            LongPollError: On unrecoverable ``failed`` codes.

        """
        while True:
            outcome = self.poll_once(session, wait=wait, mode=mode, version=version, extra_params=extra_params)

            if isinstance(outcome, UpdatesBatch | NoUpdates):
                _advance(session, outcome.ts)
            elif isinstance(outcome, HistoryTooOld):
                _logger.warning(
                    "Longpoll history lost, resuming at ts=%d",
                    outcome.ts,
                    extra={"failed": 3, "ts": outcome.ts, "previous_ts": session.ts},
                )
                session.ts = outcome.ts
            elif isinstance(outcome, KeyOrTimestampInvalid):
                if bootstrap is None:
                    yield outcome
                    return
                fresh = _run_bootstrap(bootstrap, failed=1)
                session.server = fresh.server
                session.key = fresh.key
                session.ts = max(session.ts, fresh.ts)
            elif isinstance(outcome, SessionExpired):
                if bootstrap is None:
                    yield outcome
                    return
                fresh = _run_bootstrap(bootstrap, failed=2)
                session.server = fresh.server
                session.key = fresh.key
                session.ts = fresh.ts

            yield outcome

    def iter_updates(
        self,
        session: LongPollSession,
        *,
        bootstrap: Bootstrap | None = None,
        wait: int = DEFAULT_WAIT,
        mode: int | None = None,
        version: int | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> Iterator[Any]:
        """Yield individual update records from :meth:`subscribe`.

        Control outcomes are handled by ``subscribe`` and not yielded.

        Raises:
            LongPollError: With ``failed`` 1 or 2 when the session needs a
                re-bootstrap and no *bootstrap* callback was given.

        """
        for outcome in self.subscribe(
            session,
            bootstrap=bootstrap,
            wait=wait,
            mode=mode,
            version=version,
            extra_params=extra_params,
        ):
            if isinstance(outcome, UpdatesBatch):
                yield from outcome.updates
            elif isinstance(outcome, KeyOrTimestampInvalid | SessionExpired) and bootstrap is None:
                raise LongPollError(1 if isinstance(outcome, KeyOrTimestampInvalid) else 2)

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Close the transport if this engine created it."""
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> VkLongPoll:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, closing an owned transport."""
        self.close()


def _advance(session: LongPollSession, ts: int) -> None:
    """Move ``session.ts`` forward; a lower server value is ignored."""
    if ts < session.ts:
        _logger.warning(
            "Longpoll server returned ts=%d behind current ts=%d, keeping current",
            ts,
            session.ts,
            extra={"ts": ts, "previous_ts": session.ts},
        )
        return
    session.ts = ts


def _run_bootstrap(bootstrap: Bootstrap, *, failed: int) -> LongPollSession:
    """Obtain a fresh session from the caller's callback."""
    result = bootstrap()
    fresh = result if isinstance(result, LongPollSession) else LongPollSession.from_response(result)
    _logger.info(
        "Longpoll session re-bootstrapped after failed=%d",
        failed,
        extra={"failed": failed, "server": fresh.server, "ts": fresh.ts},
    )
    return fresh
