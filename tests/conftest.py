"""Shared test fixtures for vkclient tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from tests._server import TOKEN, ScriptedServer
from vkclient import Compression, VkApi, VkApiBuilder, WireFormat


@pytest.fixture()
def server() -> ScriptedServer:
    """Empty scripted server."""
    return ScriptedServer()


@pytest.fixture()
def make_api(server: ScriptedServer) -> Iterator[Callable[..., VkApi]]:
    """Factory for ``VkApi`` clients talking to the ``server`` fixture."""
    clients: list[httpx.Client] = []

    def factory(
        wire_format: WireFormat = WireFormat.JSON,
        compression: Compression = Compression.NONE,
        **overrides: Any,
    ) -> VkApi:
        http_client = server.client()
        clients.append(http_client)
        builder = (
            VkApiBuilder(TOKEN)
            .with_wire_format(wire_format)
            .with_compression(compression)
            .with_http_client(http_client)
        )
        for name, value in overrides.items():
            getattr(builder, f"with_{name}")(value)
        return builder.build()

    yield factory
    for http_client in clients:
        http_client.close()
