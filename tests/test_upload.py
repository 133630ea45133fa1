"""Tests for the multipart uploader."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest

from tests._server import ScriptedServer, json_response, raw_response
from vkclient import DecodeError, TransportError, VkUploader

UPLOAD_URL = "https://pu.vk.com/c123/upload.php?act=do_add&mid=1&aid=-14&gid=0&hash=abc"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@dataclass
class PhotoUpload:
    """photos.getMessagesUploadServer upload result."""

    server: int
    photo: str
    hash: str


def _multipart(request: httpx.Request) -> bytes:
    assert request.headers["content-type"].startswith("multipart/form-data; boundary=")
    return request.content


@pytest.fixture()
def uploader(server: ScriptedServer) -> VkUploader:
    """Uploader routed to the scripted server."""
    return VkUploader(server.transport())


class TestUpload:
    """Single-file uploads."""

    def test_bytes_upload(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Bytes are sent as one file part and the raw JSON is returned."""
        server.queue(json_response({"server": 1, "photo": "[{}]", "hash": "h"}))
        result = uploader.upload(UPLOAD_URL, PNG, filename="cat.png", field="photo")
        assert result == {"server": 1, "photo": "[{}]", "hash": "h"}

        request = server.requests[0]
        assert request.method == "POST"
        assert request.url.host == "pu.vk.com"
        assert request.url.params["act"] == "do_add"
        body = _multipart(request)
        assert b'name="photo"; filename="cat.png"' in body
        assert b"Content-Type: image/png" in body
        assert PNG in body

    def test_response_type(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """The raw JSON converts into the requested type."""
        server.queue(json_response({"server": 1, "photo": "[{}]", "hash": "h", "extra": True}))
        assert uploader.upload(UPLOAD_URL, PNG, response_type=PhotoUpload) == PhotoUpload(1, "[{}]", "h")

    def test_no_envelope(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Upload responses are not unwrapped from an envelope."""
        server.queue(json_response({"response": "literal"}))
        assert uploader.upload(UPLOAD_URL, PNG) == {"response": "literal"}

    def test_path_upload(self, server: ScriptedServer, uploader: VkUploader, tmp_path: Path) -> None:
        """Paths are read and named after the file."""
        path = tmp_path / "doc.txt"
        path.write_bytes(b"hello")
        server.queue(json_response({"file": "xyz"}))
        uploader.upload(UPLOAD_URL, path)
        body = _multipart(server.requests[0])
        assert b'name="file"; filename="doc.txt"' in body
        assert b"Content-Type: text/plain" in body
        assert b"hello" in body

    def test_stream_upload(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Binary streams are sent with an explicit content type."""
        server.queue(json_response({"file": "xyz"}))
        uploader.upload(UPLOAD_URL, io.BytesIO(b"RIFF...."), filename="voice.ogg", content_type="audio/ogg")
        body = _multipart(server.requests[0])
        assert b'filename="voice.ogg"' in body
        assert b"Content-Type: audio/ogg" in body

    def test_gzip_response(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Compressed upload responses are decoded by header."""
        server.queue(json_response({"file": "xyz"}, encoding="gzip"))
        assert uploader.upload(UPLOAD_URL, PNG) == {"file": "xyz"}

    def test_http_error(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Non-2xx statuses are TransportErrors."""
        server.queue(json_response({"error": "bad hash"}, status=403))
        with pytest.raises(TransportError) as info:
            uploader.upload(UPLOAD_URL, PNG)
        assert info.value.status_code == 403

    def test_malformed_body(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """A 2xx body that is not JSON is a DecodeError."""
        server.queue(raw_response(b"<html>oops</html>", content_type="text/html"))
        with pytest.raises(DecodeError):
            uploader.upload(UPLOAD_URL, PNG)

    def test_network_error(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Connection failures are TransportErrors."""
        server.queue(httpx.ConnectError("connection refused"))
        with pytest.raises(TransportError):
            uploader.upload(UPLOAD_URL, PNG)


class TestUploadFiles:
    """Multi-part uploads."""

    def test_several_parts(self, server: ScriptedServer, uploader: VkUploader) -> None:
        """Each mapping entry becomes its own part."""
        server.queue(json_response({"server": 1, "photos_list": "[]", "hash": "h"}))
        uploader.upload_files(
            UPLOAD_URL,
            {
                "file1": ("a.jpg", b"AAAA", "image/jpeg"),
                "file2": ("b.jpg", b"BBBB", "image/jpeg"),
            },
        )
        body = _multipart(server.requests[0])
        assert b'name="file1"; filename="a.jpg"' in body
        assert b'name="file2"; filename="b.jpg"' in body
        assert b"AAAA" in body
        assert b"BBBB" in body

    def test_owned_transport_closed(self) -> None:
        """An uploader created without a transport closes its own."""
        with VkUploader() as uploader:
            transport = uploader._transport
        assert transport._client.is_closed
