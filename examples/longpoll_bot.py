"""Print events from a community's Bots Long Poll stream.

Requires a community token with longpoll enabled::

    SERVICE_TOKEN=... GROUP_ID=... python examples/longpoll_bot.py
"""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass

from vkclient import ApiMethod, LongPollSession, VkApiBuilder


@dataclass
class GetLongPollServer(ApiMethod):
    """``groups.getLongPollServer`` request."""

    method_name = "groups.getLongPollServer"

    group_id: int


def main() -> None:
    """Print the first ten updates."""
    logging.basicConfig(level=logging.INFO)
    token = os.environ["SERVICE_TOKEN"]
    group_id = int(os.environ["GROUP_ID"])

    with VkApiBuilder(token).build() as api, api.longpoll() as longpoll:

        def bootstrap() -> LongPollSession:
            return LongPollSession.from_response(api.call_method(GetLongPollServer(group_id=group_id)))

        session = bootstrap()
        for update in itertools.islice(longpoll.iter_updates(session, bootstrap=bootstrap), 10):
            print(update)


if __name__ == "__main__":
    main()
