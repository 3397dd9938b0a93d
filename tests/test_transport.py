"""Tests for UploadTransport and IngestionClient against a mocked endpoint."""
import json

import httpx
import pytest

from order_uploader.errors import (
    ErrorKind,
    PayloadTooLargeError,
    QuotaError,
    RemoteError,
    TransportError,
)
from order_uploader.models import Chunk, EncodedFile, FileDescriptor, OrderMetadata
from order_uploader.orchestrator.transport import UploadTransport, build_chunk_request
from order_uploader.services.api_client import IngestionClient
from order_uploader.services.encoder import FileEncoder

ENDPOINT = "https://script.example.com/macros/s/abc/exec"
ORDER = OrderMetadata(order_id="54321", total=120.0, vpa="shop@upi")


def _chunk(*names, first_index=0):
    files = []
    for name in names:
        raw = name.encode() * 10
        files.append(EncodedFile(FileDescriptor.from_bytes(name, raw), FileEncoder.encode_bytes(raw)))
    return Chunk(tuple(files), 0, first_index)


def _ok(files):
    return {
        "success": True,
        "files": [{"name": n, "fileId": f"id-{n}", "webViewLink": f"https://view/{n}"} for n in files],
        "errors": [],
        "uploadedCount": len(files),
        "totalCount": len(files),
    }


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.requests = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def _send(recorder, chunk, ceiling=None, index=1, total=1):
    async with IngestionClient(ENDPOINT, transport=httpx.MockTransport(recorder)) as client:
        transport = UploadTransport(client, ceiling=ceiling)
        return await transport.send_chunk(chunk, ORDER, index, total)


def test_build_chunk_request_shape():
    body = build_chunk_request(_chunk("a.pdf", "b.pdf"), ORDER, 2, 3, timestamp="T")
    assert [f["name"] for f in body["files"]] == ["a.pdf", "b.pdf"]
    assert body["orderData"] == {
        "orderId": "54321",
        "total": 120.0,
        "vpa": "shop@upi",
        "timestamp": "T",
        "chunkIndex": 2,
        "totalChunks": 3,
    }


@pytest.mark.asyncio
async def test_sends_compact_json_and_parses_result():
    recorder = Recorder(httpx.Response(200, json=_ok(["a.pdf", "b.pdf"])))
    result = await _send(recorder, _chunk("a.pdf", "b.pdf"), index=2, total=3)

    assert result.success is True
    assert [f.file_id for f in result.files] == ["id-a.pdf", "id-b.pdf"]

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    sent = json.loads(request.content)
    assert sent["orderData"]["chunkIndex"] == 2
    assert sent["orderData"]["totalChunks"] == 3
    assert b", " not in request.content


@pytest.mark.asyncio
async def test_follows_redirect_to_content_host():
    def handler(request):
        if request.url.host == "script.example.com":
            return httpx.Response(302, headers={"Location": "https://content.example.com/echo"})
        return httpx.Response(200, json=_ok(["a.pdf"]))

    async with IngestionClient(ENDPOINT, transport=httpx.MockTransport(handler)) as client:
        result = await UploadTransport(client).send_chunk(_chunk("a.pdf"), ORDER, 1, 1)
    assert result.uploaded_count == 1


@pytest.mark.asyncio
async def test_server_error_raises_remote_error():
    recorder = Recorder(httpx.Response(500, text="Internal failure"))
    with pytest.raises(RemoteError) as exc_info:
        await _send(recorder, _chunk("a.pdf"))
    assert exc_info.value.status_code == 500
    assert exc_info.value.kind == ErrorKind.UNKNOWN
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_quota_text_raises_quota_error():
    recorder = Recorder(httpx.Response(200, json={"success": False, "error": "Service invoked too many times for one day"}))
    with pytest.raises(QuotaError):
        await _send(recorder, _chunk("a.pdf"))


@pytest.mark.asyncio
async def test_success_false_raises_remote_error():
    recorder = Recorder(httpx.Response(200, json={"success": False, "error": "Folder missing"}))
    with pytest.raises(RemoteError) as exc_info:
        await _send(recorder, _chunk("a.pdf"))
    assert "Folder missing" in str(exc_info.value)


@pytest.mark.asyncio
async def test_html_body_is_malformed_response():
    recorder = Recorder(httpx.Response(200, text="<html>Sign in</html>"))
    with pytest.raises(RemoteError) as exc_info:
        await _send(recorder, _chunk("a.pdf"))
    assert exc_info.value.kind == ErrorKind.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_null_error_index_is_malformed_response():
    payload = _ok([])
    payload["errors"] = [{"index": None, "error": "decode failed"}]
    recorder = Recorder(httpx.Response(200, json=payload))
    with pytest.raises(RemoteError) as exc_info:
        await _send(recorder, _chunk("a.pdf"))
    assert exc_info.value.kind == ErrorKind.MALFORMED_RESPONSE
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_connect_error_is_network_unreachable():
    recorder = Recorder(httpx.ConnectError("Name or service not known"))
    with pytest.raises(TransportError) as exc_info:
        await _send(recorder, _chunk("a.pdf"))
    assert exc_info.value.kind == ErrorKind.NETWORK_UNREACHABLE


@pytest.mark.asyncio
async def test_post_is_not_retried():
    recorder = Recorder(httpx.Response(503, text="busy"), httpx.Response(200, json=_ok(["a.pdf"])))
    with pytest.raises(RemoteError):
        await _send(recorder, _chunk("a.pdf"))
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_oversized_body_is_never_sent():
    recorder = Recorder()
    with pytest.raises(PayloadTooLargeError) as exc_info:
        await _send(recorder, _chunk("a.pdf"), ceiling=50)
    assert exc_info.value.kind == ErrorKind.FILE_TOO_LARGE
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_per_file_errors_are_returned():
    payload = _ok(["a.pdf"])
    payload["errors"] = [{"index": 1, "name": "b.pdf", "error": "File too large"}]
    payload["totalCount"] = 2
    recorder = Recorder(httpx.Response(200, json=payload))

    result = await _send(recorder, _chunk("a.pdf", "b.pdf"))
    assert result.uploaded_count == 1
    assert result.errors[0].name == "b.pdf"


class TestIngestionClient:
    @pytest.mark.asyncio
    async def test_get_retries_server_errors(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("order_uploader.services.api_client.asyncio.sleep", fake_sleep)
        recorder = Recorder(
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json={"status": "ok"}),
        )
        async with IngestionClient(ENDPOINT, transport=httpx.MockTransport(recorder)) as client:
            response = await client.get({"orderId": "1"})

        assert response.status_code == 200
        assert len(recorder.requests) == 2
        assert recorder.requests[0].url.params["orderId"] == "1"
        assert sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_get_gives_up_after_max_retries(self, monkeypatch):
        async def fake_sleep(delay):
            return None

        monkeypatch.setattr("order_uploader.services.api_client.asyncio.sleep", fake_sleep)
        recorder = Recorder(*[httpx.ConnectError("refused") for _ in range(3)])
        async with IngestionClient(ENDPOINT, max_retries=3, transport=httpx.MockTransport(recorder)) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get()
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_requires_context(self):
        client = IngestionClient(ENDPOINT)
        with pytest.raises(RuntimeError):
            await client.post(b"{}")
