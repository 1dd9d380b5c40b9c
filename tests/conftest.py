"""Shared test fixtures for model-sync tests.

Provides an in-process fake of the two remote endpoints (served through
httpx.MockTransport), sync configurations pointing at a temporary artifact
directory, and a compiler that records its calls.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
import structlog

from model_sync import observability
from model_sync.compiler import LoadedArtifact, PassthroughCompiler
from model_sync.config import SyncConfig
from model_sync.digest import compute_digest

BASE_ENDPOINT = "https://models.example.com/v1/classifier"
TEST_TOKEN = "test-bearer-token"


class BrokenStream(httpx.AsyncByteStream):
    """Response body that breaks off after a first chunk."""

    def __init__(self, first_chunk: bytes) -> None:
        self._first_chunk = first_chunk

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self._first_chunk
        raise httpx.ReadError("connection reset by peer")


class FakeRemote:
    """In-memory digest and download endpoints.

    Attributes:
        payload: Bytes served by the download endpoint.
        digest_body: Overrides the digest response (dict as JSON, str as raw text).
        digest_status: HTTP status of the digest endpoint.
        download_status: HTTP status of the download endpoint.
        break_download: Serve a body that fails mid-stream.
        requests: Every request received, in order.
    """

    def __init__(self, payload: bytes = b"model-v1") -> None:
        self.payload = payload
        self.digest_body: dict[str, Any] | str | None = None
        self.digest_status = 200
        self.download_status = 200
        self.break_download = False
        self.requests: list[httpx.Request] = []

    @property
    def download_count(self) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/download"))

    @property
    def digest_count(self) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/latest"))

    def publish(self, payload: bytes) -> None:
        """Publish a new artifact version."""
        self.payload = payload

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/latest"):
            return self._digest_response()
        if request.url.path.endswith("/download"):
            return self._download_response()
        return httpx.Response(404)

    def _digest_response(self) -> httpx.Response:
        if self.digest_status != 200:
            return httpx.Response(self.digest_status, json={"error": "denied"})
        if isinstance(self.digest_body, str):
            return httpx.Response(200, text=self.digest_body)
        body = self.digest_body
        if body is None:
            body = {"digest": compute_digest(self.payload), "status": "ok"}
        return httpx.Response(200, json=body)

    def _download_response(self) -> httpx.Response:
        if self.download_status != 200:
            return httpx.Response(self.download_status)
        if self.break_download:
            return httpx.Response(200, stream=BrokenStream(self.payload[:4]))
        return httpx.Response(200, content=self.payload)


class RecordingCompiler(PassthroughCompiler):
    """PassthroughCompiler that counts calls and can be told to fail."""

    def __init__(self) -> None:
        self.compile_calls = 0
        self.load_calls = 0
        self.fail_compile = False

    def compile(self, artifact_path: Path, compiled_path: Path) -> Path:
        self.compile_calls += 1
        if self.fail_compile:
            raise RuntimeError("corrupted artifact")
        return super().compile(artifact_path, compiled_path)

    def load(self, compiled_path: Path) -> LoadedArtifact:
        self.load_calls += 1
        return super().load(compiled_path)


@pytest.fixture
def remote() -> FakeRemote:
    """Create a fake remote publishing ``b"model-v1"``."""
    return FakeRemote()


@pytest_asyncio.fixture
async def http_client(remote: FakeRemote) -> AsyncIterator[httpx.AsyncClient]:
    """Create an httpx client routed to the fake remote."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote.handler)) as client:
        yield client


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """Return an artifact directory that does not exist yet."""
    return tmp_path / "artifacts"


@pytest.fixture
def make_config(artifact_dir: Path) -> Callable[..., SyncConfig]:
    """Factory fixture building SyncConfig against the fake remote."""

    def _make(**kwargs: Any) -> SyncConfig:
        kwargs.setdefault("artifact_dir", artifact_dir)
        return SyncConfig.from_base_endpoint(BASE_ENDPOINT, TEST_TOKEN, **kwargs)

    return _make


@pytest.fixture
def sync_config(make_config: Callable[..., SyncConfig]) -> SyncConfig:
    """Create a default SyncConfig."""
    return make_config()


@pytest.fixture
def compiler() -> RecordingCompiler:
    """Create a recording passthrough compiler."""
    return RecordingCompiler()


@pytest.fixture
def statuses() -> Iterator[list[Any]]:
    """Collect status notifications."""
    collected: list[Any] = []
    yield collected


@pytest.fixture(autouse=True)
def reset_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop cached loggers so each test sees the default structlog setup."""
    monkeypatch.setattr(observability, "_logger", None)
    yield
    structlog.reset_defaults()
