"""Compare wire format and compression combinations on ``users.get``.

Requires a service token::

    SERVICE_TOKEN=... python examples/users_get.py
"""

from __future__ import annotations

import itertools
import os
import time
from dataclasses import dataclass

from vkclient import ApiMethod, Compression, List, VkApi, VkApiBuilder, WireFormat


@dataclass
class User:
    """Subset of the ``users.get`` user object."""

    id: int
    first_name: str
    last_name: str
    sex: int | None = None


@dataclass
class UsersGet(ApiMethod):
    """``users.get`` request."""

    method_name = "users.get"
    response_type = list[User]

    user_ids: List
    fields: List | None = None


def get_users_info(api: VkApi) -> list[User]:
    """Fetch three well-known users."""
    users: list[User] = api.call_method(UsersGet(user_ids=List([1, 2, 3]), fields=List(["id", "sex"])))
    return users


def main() -> None:
    """Time one call per format/compression pair."""
    token = os.environ["SERVICE_TOKEN"]

    for wire_format, compression in itertools.product(WireFormat, Compression):
        builder = VkApiBuilder(token).with_wire_format(wire_format).with_compression(compression)
        with builder.build() as api:
            t0 = time.perf_counter()
            users = get_users_info(api)
            elapsed_us = (time.perf_counter() - t0) * 1_000_000
        print(f"{wire_format.value}+{compression.value}: {len(users)} users in {elapsed_us:.0f} micros")


if __name__ == "__main__":
    main()
