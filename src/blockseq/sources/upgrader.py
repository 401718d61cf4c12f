"""
Format upgraders — fetch a project and bring it to schema version 3.

The upgrader is the only network-bound stage of a job. It returns a body the
parser accepts (normally the decoded JSON object) or raises
``NormalizeError``. Converting older schema versions is delegated to an
external ``converter`` coroutine; without one, older projects are rejected
here rather than misparsed later.

Architecture:
    ::

        FormatUpgrader (protocol)
          ├── HttpFormatUpgrader       ─ GET <project_server><id> via httpx
          └── DirectoryFormatUpgrader  ─ <dir>/<id>.sb3 | <dir>/<id>.json

        body ─▶ decode ─▶ version 3 ─▶ pass through
                       └▶ version 2 ─▶ converter(id, document) | NormalizeError

Example::

    async with HttpFormatUpgrader("https://projects.scratch.mit.edu/") as up:
        body = await up.upgrade("10128407")
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

import httpx

from blockseq.core.errors import NormalizeError, ParseError
from blockseq.core.logging import get_logger
from blockseq.sources.parser import decode_document, detect_schema_version

logger = get_logger(__name__)

ProjectBody = str | bytes | dict[str, Any]
Converter = Callable[[str, dict[str, Any]], Awaitable[ProjectBody]]


class FormatUpgrader(Protocol):
    """Anything that can produce a version-3 body for a project id."""

    async def upgrade(self, project_id: str) -> ProjectBody: ...


async def normalize_body(
    project_id: str,
    body: ProjectBody,
    converter: Converter | None = None,
) -> ProjectBody:
    """Pass version-3 bodies through, hand older ones to ``converter``."""
    try:
        document = decode_document(body)
    except ParseError:
        # undecodable bodies are the parser's to reject
        return body

    version = detect_schema_version(document)
    if version != 2:
        return document

    if converter is None:
        raise NormalizeError(
            "Schema version 2 project and no converter configured"
        ).with_context(project_id=project_id)

    try:
        return await converter(project_id, document)
    except NormalizeError:
        raise
    except Exception as e:
        raise NormalizeError(
            f"Conversion to schema version 3 failed: {e}", cause=e
        ).with_context(project_id=project_id)


class HttpFormatUpgrader:
    """Fetches projects from a project server with an ``httpx.AsyncClient``.

    The client is created lazily and closed by ``aclose()`` (or the async
    context manager) unless one was passed in.
    """

    def __init__(
        self,
        project_server: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        converter: Converter | None = None,
    ):
        self.project_server = project_server
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._converter = converter

    def url_for(self, project_id: str) -> str:
        return f"{self.project_server.rstrip('/')}/{project_id}"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def fetch(self, project_id: str) -> bytes:
        """Download the raw project body.

        Raises:
            NormalizeError: non-2xx status, timeout or transport failure
        """
        url = self.url_for(project_id)
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NormalizeError(
                f"Project server returned HTTP {status}",
                retryable=status >= 500 or status == 429,
                cause=e,
            ).with_context(project_id=project_id, url=url, http_status=status)
        except httpx.TimeoutException as e:
            raise NormalizeError("Project fetch timed out", cause=e).with_context(
                project_id=project_id, url=url
            )
        except httpx.HTTPError as e:
            raise NormalizeError(f"Project fetch failed: {e}", cause=e).with_context(
                project_id=project_id, url=url
            )

        logger.debug("upgrader.fetched", project_id=project_id, bytes=len(response.content))
        return response.content

    async def upgrade(self, project_id: str) -> ProjectBody:
        body = await self.fetch(project_id)
        return await normalize_body(project_id, body, self._converter)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpFormatUpgrader:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()


class DirectoryFormatUpgrader:
    """Reads ``<id>.sb3`` or ``<id>.json`` from a local directory."""

    SUFFIXES = (".sb3", ".json")

    def __init__(self, directory: str | Path, *, converter: Converter | None = None):
        self.directory = Path(directory)
        self._converter = converter

    def path_for(self, project_id: str) -> Path | None:
        for suffix in self.SUFFIXES:
            candidate = self.directory / f"{project_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    async def upgrade(self, project_id: str) -> ProjectBody:
        path = self.path_for(project_id)
        if path is None:
            raise NormalizeError(
                f"No project file for {project_id} in {self.directory}"
            ).with_context(project_id=project_id)
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise NormalizeError(f"Cannot read {path}: {e}", cause=e).with_context(
                project_id=project_id
            )
        return await normalize_body(project_id, body, self._converter)

    async def __aenter__(self) -> DirectoryFormatUpgrader:
        return self

    async def __aexit__(self, *args) -> None:
        return None
