"""Value types shared by the request pipeline, longpoll engine, and uploader."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "ApiCredentials",
    "Compression",
    "List",
    "Version",
    "WireFormat",
]


class List:
    """Ordered parameter value sent as one comma-separated field.

    The API expects array-valued parameters such as ``user_ids`` or
    ``fields`` as a delimited string in form encoding.  MessagePack
    requests carry the items as a native array instead.

    Example::

        >>> str(List([1, 2, 3]))
        '1,2,3'

    """

    __slots__ = ("items",)

    SEPARATOR = ","

    def __init__(self, items: Iterable[Any] = ()) -> None:
        """Capture *items* in iteration order."""
        self.items: tuple[Any, ...] = tuple(items)

    def __str__(self) -> str:
        """Join items with the separator."""
        return self.SEPARATOR.join(_scalar_to_str(i) for i in self.items)

    def __repr__(self) -> str:
        """Return ``List([...])``."""
        return f"List({list(self.items)!r})"

    def __iter__(self) -> Iterator[Any]:
        """Iterate over the wrapped items."""
        return iter(self.items)

    def __len__(self) -> int:
        """Return the number of items."""
        return len(self.items)

    def __eq__(self, other: object) -> bool:
        """Compare item sequences."""
        if not isinstance(other, List):
            return NotImplemented
        return self.items == other.items

    def __hash__(self) -> int:
        """Hash the item tuple."""
        return hash(self.items)

    @classmethod
    def parse(cls, value: str, item_type: type = str) -> List:
        """Split a comma-joined field back into a ``List``.

        Args:
            value: The joined string, e.g. ``"1,2,3"``.
            item_type: Converter applied to each piece.

        Returns:
            A ``List`` of converted pieces; empty for an empty string.

        """
        if value == "":
            return cls()
        return cls(item_type(piece) for piece in value.split(cls.SEPARATOR))


def _scalar_to_str(value: Any) -> str:
    # The API reads booleans as 1/0.
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


@dataclass(frozen=True, order=True)
class Version:
    """Major and minor version of the API, rendered as ``"5.131"``."""

    major: int = 5
    minor: int = 131

    def __str__(self) -> str:
        """Return ``"major.minor"``."""
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, value: str) -> Version:
        """Parse a ``"major.minor"`` string.

        Raises:
            ValueError: If *value* is not two dot-separated integers.

        """
        major, sep, minor = value.strip().partition(".")
        if not sep:
            raise ValueError(f"API version must look like '5.131', got {value!r}")
        return cls(int(major), int(minor))


DEFAULT_VERSION = Version()


class WireFormat(Enum):
    """Serialization used for API responses (and msgpack request bodies)."""

    JSON = "json"
    MSGPACK = "msgpack"

    @property
    def mime_type(self) -> str:
        """MIME type advertised in ``Accept``."""
        return _MIME_TYPES[self]


_MIME_TYPES: dict[WireFormat, str] = {
    WireFormat.JSON: "application/json",
    WireFormat.MSGPACK: "application/x-msgpack",
}


class Compression(Enum):
    """Response compression requested through ``Accept-Encoding``."""

    NONE = "identity"
    GZIP = "gzip"
    ZSTD = "zstd"

    @property
    def accept_encoding(self) -> str:
        """Header value advertised to the server."""
        return self.value


@dataclass(frozen=True)
class ApiCredentials:
    """Access token and API version attached to every call.

    The token never appears in ``repr()``.
    """

    access_token: str = field(repr=False)
    version: Version = DEFAULT_VERSION

    def __post_init__(self) -> None:
        """Reject an empty token."""
        if not self.access_token:
            raise ValueError("access_token must be a non-empty string")

    def as_params(self, version: Version | None = None) -> dict[str, str]:
        """Return the credential fields merged into every request."""
        return {"access_token": self.access_token, "v": str(version or self.version)}
