"""Multipart file uploader for upload server URLs.

Upload URLs come from API methods such as ``photos.getMessagesUploadServer``;
the returned JSON (``server``, ``photo``, ``hash``, ...) is then passed to
the matching ``*.save*`` method.  Upload servers ignore ``access_token``
and the API version, so requests carry only the file parts.

Logger: ``vkclient.upload``: one DEBUG record per upload with ``host``,
``size`` and ``duration_ms`` extra fields.
"""

from __future__ import annotations

import logging
import mimetypes
import time
from collections.abc import Mapping
from pathlib import Path
from types import TracebackType
from typing import IO, Any
from urllib.parse import urlsplit

from vkclient._debug import fmt_body
from vkclient._hooks import _observe
from vkclient._types import Compression, WireFormat
from vkclient.codec import convert_payload, decode_body, wire_format_for_content_type
from vkclient.errors import TransportError
from vkclient.transport import HttpTransport

__all__ = ["UploadFile", "VkUploader"]

_logger = logging.getLogger("vkclient.upload")

type UploadFile = bytes | IO[bytes] | Path
"""File content: raw bytes, a binary file object, or a path to read."""

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _file_part(file: UploadFile, filename: str | None, content_type: str | None) -> tuple[str, Any, str]:
    """Build one ``httpx`` ``files=`` tuple."""
    if isinstance(file, Path):
        name = filename or file.name
        payload: Any = file.read_bytes()
    else:
        name = filename or Path(getattr(file, "name", None) or "file").name
        payload = file
    if content_type is None:
        content_type = mimetypes.guess_type(name)[0] or _DEFAULT_CONTENT_TYPE
    return name, payload, content_type


def _part_size(part: tuple[str, Any, str]) -> int:
    payload = part[1]
    return len(payload) if isinstance(payload, bytes) else -1


class VkUploader:
    """Uploads files to upload-server URLs with ``multipart/form-data``."""

    __slots__ = ("_owns_transport", "_transport")

    def __init__(self, transport: HttpTransport | None = None) -> None:
        """Create the uploader; a gzip-accepting transport is owned when none is given."""
        if transport is None:
            self._transport = HttpTransport(Compression.GZIP)
            self._owns_transport = True
        else:
            self._transport = transport
            self._owns_transport = False

    def upload(
        self,
        url: str,
        file: UploadFile,
        *,
        filename: str | None = None,
        field: str = "file",
        content_type: str | None = None,
        response_type: Any = None,
    ) -> Any:
        """Upload one file.

        Args:
            url: Upload server URL returned by the API.
            file: File content.
            filename: Part file name; derived from *file* when possible.
            field: Multipart field name (``"photo"``, ``"file"``, ...).
            content_type: Part content type; guessed from the file name
                when ``None``.
            response_type: Optional conversion target for the decoded
                JSON (see :func:`vkclient.codec.convert_payload`).

        Returns:
            The decoded upload-server response.

        Raises:
            TransportError: On network failures or a non-2xx status.
            DecodeError: If a 2xx body is not valid JSON or does not fit
                *response_type*.

        """
        return self.upload_files(url, {field: _file_part(file, filename, content_type)}, response_type=response_type)

    def upload_files(
        self,
        url: str,
        files: Mapping[str, UploadFile | tuple[str, Any, str]],
        *,
        response_type: Any = None,
    ) -> Any:
        """Upload several parts in one request (e.g. ``file1`` ... ``file5``).

        Values are either file content or ready ``(filename, content,
        content_type)`` tuples.
        """
        parts = {
            name: value if isinstance(value, tuple) else _file_part(value, None, None) for name, value in files.items()
        }
        host = urlsplit(url).netloc
        size = sum(_part_size(p) for p in parts.values())

        t0 = time.monotonic()
        with _observe(
            self._transport.call_hook, "upload", "upload", {"server.address": host, "vk.upload.parts": len(parts)}
        ):
            response = self._transport.execute(
                "POST",
                url,
                files=parts,
                headers={"Accept": WireFormat.JSON.mime_type},
            )
            if not response.is_success:
                raise TransportError(
                    f"HTTP {response.status_code} from upload server {host}: {fmt_body(response.content)!r}",
                    status_code=response.status_code,
                )
            value = decode_body(response.content, wire_format_for_content_type(response.content_type, WireFormat.JSON))

        duration_ms = (time.monotonic() - t0) * 1000
        _logger.debug(
            "Uploaded %d part(s) to %s in %.1fms",
            len(parts),
            host,
            duration_ms,
            extra={"host": host, "size": size, "duration_ms": round(duration_ms, 2)},
        )
        return convert_payload(value, response_type)

    def close(self) -> None:
        """Close the transport if this uploader created it."""
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> VkUploader:
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
