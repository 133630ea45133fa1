"""Observability hooks called around API calls, longpoll polls, and uploads."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Mapping
from typing import Any, Protocol

type HookToken = object
"""Opaque token returned by ``_CallHook.on_call_start``."""


class _CallHook(Protocol):
    """Internal protocol for observability hooks called around each HTTP exchange."""

    def on_call_start(self, kind: str, name: str, attributes: Mapping[str, Any]) -> HookToken:
        """Start observability for a call and return an opaque token.

        Args:
            kind: ``"call"``, ``"longpoll"``, or ``"upload"``.
            name: API method name, or ``"longpoll"``/``"upload"``; hosts go
                in the ``server.address`` attribute.
            attributes: Extra attributes (wire format, compression).

        """
        ...

    def on_call_end(self, token: HookToken, error: BaseException | None) -> None:
        """Finalize observability after the call (success or failure)."""
        ...


class _CompositeCallHook:
    """Fans out to several hooks; tokens are kept positionally."""

    __slots__ = ("_hooks",)

    def __init__(self, hooks: tuple[_CallHook, ...]) -> None:
        self._hooks = hooks

    def on_call_start(self, kind: str, name: str, attributes: Mapping[str, Any]) -> HookToken:
        return tuple(h.on_call_start(kind, name, attributes) for h in self._hooks)

    def on_call_end(self, token: HookToken, error: BaseException | None) -> None:
        tokens = token if isinstance(token, tuple) else ()
        for hook, t in zip(self._hooks, tokens, strict=False):
            hook.on_call_end(t, error)


def _register_call_hook(existing: _CallHook | None, new: _CallHook) -> _CallHook:
    """Chain *new* after *existing*, returning the hook to install."""
    if existing is None:
        return new
    if isinstance(existing, _CompositeCallHook):
        return _CompositeCallHook((*existing._hooks, new))
    return _CompositeCallHook((existing, new))


@contextlib.contextmanager
def _observe(hook: _CallHook | None, kind: str, name: str, attributes: Mapping[str, Any]) -> Iterator[None]:
    """Run the body between ``on_call_start`` and ``on_call_end``."""
    if hook is None:
        yield
        return
    token = hook.on_call_start(kind, name, attributes)
    try:
        yield
    except BaseException as exc:
        hook.on_call_end(token, exc)
        raise
    hook.on_call_end(token, None)
