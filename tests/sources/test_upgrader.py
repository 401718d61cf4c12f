"""Tests for format upgraders (HTTP via httpx.MockTransport, local directory)."""

from __future__ import annotations

import json

import httpx
import pytest

from blockseq.core.errors import NormalizeError
from blockseq.sources.upgrader import DirectoryFormatUpgrader, HttpFormatUpgrader, normalize_body

V2_DOCUMENT = {"objName": "Stage", "children": [], "info": {}}


# ── Helpers ──────────────────────────────────────────────────────────────


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _serve(document: dict, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=json.dumps(document).encode())

    return handler


async def _to_v3(project_id: str, document: dict) -> dict:
    return {"targets": [], "converted_from": project_id}


# ── normalize_body ───────────────────────────────────────────────────────


class TestNormalizeBody:
    @pytest.mark.asyncio
    async def test_v3_is_decoded(self, simple_document):
        body = json.dumps(simple_document).encode()
        assert await normalize_body("1", body) == simple_document

    @pytest.mark.asyncio
    async def test_undecodable_passes_through(self):
        assert await normalize_body("1", b"garbage") == b"garbage"

    @pytest.mark.asyncio
    async def test_v2_without_converter(self):
        with pytest.raises(NormalizeError, match="no converter") as exc:
            await normalize_body("7", V2_DOCUMENT)
        assert exc.value.context.project_id == "7"

    @pytest.mark.asyncio
    async def test_v2_with_converter(self):
        result = await normalize_body("7", V2_DOCUMENT, _to_v3)
        assert result == {"targets": [], "converted_from": "7"}

    @pytest.mark.asyncio
    async def test_converter_failure_wrapped(self):
        async def broken(project_id: str, document: dict) -> dict:
            raise RuntimeError("converter crashed")

        with pytest.raises(NormalizeError, match="converter crashed") as exc:
            await normalize_body("7", V2_DOCUMENT, broken)
        assert isinstance(exc.value.cause, RuntimeError)


# ── HttpFormatUpgrader ───────────────────────────────────────────────────


class TestHttpFormatUpgrader:
    def test_url_for(self):
        assert HttpFormatUpgrader("https://projects.example/").url_for("42") == "https://projects.example/42"
        assert HttpFormatUpgrader("https://projects.example").url_for("42") == "https://projects.example/42"

    @pytest.mark.asyncio
    async def test_upgrade_v3(self, simple_document):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=simple_document)

        async with HttpFormatUpgrader("https://projects.example/", client=_client(handler)) as up:
            body = await up.upgrade("10128407")

        assert body == simple_document
        assert seen == ["https://projects.example/10128407"]

    @pytest.mark.asyncio
    async def test_v2_uses_converter(self):
        up = HttpFormatUpgrader("https://p/", client=_client(_serve(V2_DOCUMENT)), converter=_to_v3)
        assert (await up.upgrade("3"))["converted_from"] == "3"

    @pytest.mark.asyncio
    async def test_not_found(self):
        up = HttpFormatUpgrader("https://p/", client=_client(_serve({}, status=404)))
        with pytest.raises(NormalizeError, match="HTTP 404") as exc:
            await up.fetch("9")
        assert exc.value.retryable is False
        assert exc.value.context.http_status == 404
        assert exc.value.context.url == "https://p/9"

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        up = HttpFormatUpgrader("https://p/", client=_client(_serve({}, status=503)))
        with pytest.raises(NormalizeError) as exc:
            await up.upgrade("9")
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        up = HttpFormatUpgrader("https://p/", client=_client(handler))
        with pytest.raises(NormalizeError, match="timed out"):
            await up.upgrade("9")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        up = HttpFormatUpgrader("https://p/", client=_client(handler))
        with pytest.raises(NormalizeError, match="refused"):
            await up.upgrade("9")

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        client = _client(_serve({}))
        up = HttpFormatUpgrader("https://p/", client=client)
        await up.aclose()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        up = HttpFormatUpgrader("https://p/", timeout=3.0)
        client = up.client
        assert client is up.client
        await up.aclose()
        assert client.is_closed


# ── DirectoryFormatUpgrader ──────────────────────────────────────────────


class TestDirectoryFormatUpgrader:
    @pytest.mark.asyncio
    async def test_reads_json(self, tmp_path, simple_document):
        (tmp_path / "5.json").write_text(json.dumps(simple_document))
        up = DirectoryFormatUpgrader(tmp_path)
        assert await up.upgrade("5") == simple_document

    def test_prefers_sb3(self, tmp_path):
        (tmp_path / "5.sb3").write_bytes(b"sb3 bytes")
        (tmp_path / "5.json").write_text("{}")
        assert DirectoryFormatUpgrader(tmp_path).path_for("5") == tmp_path / "5.sb3"

    @pytest.mark.asyncio
    async def test_missing(self, tmp_path):
        with pytest.raises(NormalizeError, match="No project file"):
            await DirectoryFormatUpgrader(tmp_path).upgrade("404")

    @pytest.mark.asyncio
    async def test_v2_without_converter(self, tmp_path):
        (tmp_path / "2.json").write_text(json.dumps(V2_DOCUMENT))
        with pytest.raises(NormalizeError):
            await DirectoryFormatUpgrader(tmp_path).upgrade("2")
