"""Artifact synchronizer.

ArtifactSynchronizer keeps one local artifact in step with a remote source
of truth:

    START -> (artifact missing? DOWNLOAD : CHECK_DIGEST)
          -> (digest differs? DOWNLOAD : SKIP)
          -> RESOLVE_COMPILED -> DONE

Any failure aborts the run with the originating error. Downloads land in a
temporary file and are renamed over the artifact, so a failed or cancelled
run leaves the previous artifact byte-for-byte intact.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from model_sync.compiler import Compiler, PassthroughCompiler
from model_sync.config import CachePolicy, SyncConfig
from model_sync.digest import digests_match, normalize_digest
from model_sync.endpoints import DigestEndpoint, DownloadTransport
from model_sync.errors import CompileError, ModelSyncError, StoreError
from model_sync.locking import path_lock
from model_sync.observability import (
    StatusCallback,
    SyncStatus,
    get_logger,
    notify_status,
    sync_operation,
)
from model_sync.store import LocalStore

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

T = TypeVar("T")


class SyncOutcome(str, Enum):
    """What a synchronization run did to the local artifact."""

    DOWNLOADED = "downloaded"  # no local artifact existed
    UPDATED = "updated"  # local artifact was stale and replaced
    UP_TO_DATE = "up_to_date"  # digests matched, nothing downloaded
    RESOLVED = "resolved"  # compile-only run, no network traffic


@dataclass(frozen=True)
class SyncResult:
    """Result of a synchronization run.

    Attributes:
        runnable: Loaded artifact returned by the compiler.
        compiled_path: Where the compiled artifact lives.
        outcome: What happened to the raw artifact.
        local_digest: Digest of the local artifact before the run, if it existed.
        remote_digest: Digest published by the remote, if it was consulted.
    """

    runnable: Any
    compiled_path: Path
    outcome: SyncOutcome
    local_digest: str | None = None
    remote_digest: str | None = None

    @property
    def downloaded(self) -> bool:
        """Whether this run replaced the raw artifact."""
        return self.outcome in (SyncOutcome.DOWNLOADED, SyncOutcome.UPDATED)


async def run_in_worker(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run blocking ``func`` in a worker thread and wait for it even if cancelled.

    A thread cannot be interrupted, so on cancellation the caller keeps
    waiting until the thread has finished before CancelledError propagates.
    Locks held by the caller therefore cover all file work the thread does.

    Args:
        func: Blocking callable.
        *args: Positional arguments for ``func``.
        **kwargs: Keyword arguments for ``func``.

    Returns:
        The return value of ``func``.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        while not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.wait({task})
        exc = None if task.cancelled() else task.exception()
        if exc is not None:
            get_logger().warning(
                "worker_failed_after_cancel", error=str(exc), error_type=type(exc).__name__
            )
        raise


def resolve_runnable(
    store: LocalStore,
    compiler: Compiler,
    *,
    recompile: bool,
    on_status: StatusCallback | None = None,
) -> tuple[Any, Path]:
    """Produce the runnable artifact and the location of its compiled form.

    An existing compiled cache is loaded directly unless ``recompile`` is
    set. Otherwise the raw artifact is compiled first.

    Args:
        store: Local store holding the artifact and compiled cache paths.
        compiler: Compiler used to build and load the compiled form.
        recompile: Ignore any existing compiled cache.
        on_status: Optional status receiver.

    Returns:
        Tuple of (runnable, compiled_path).

    Raises:
        StoreError: If there is no raw artifact to compile.
        CompileError: If compiling or loading fails.
    """
    logger = get_logger()
    compiled_path = store.compiled_path

    if not recompile and store.compiled_exists():
        notify_status(SyncStatus.LOADING_CACHED, on_status)
    else:
        if not store.artifact_exists():
            raise StoreError("No artifact to compile", path=str(store.artifact_path))
        notify_status(SyncStatus.COMPILING, on_status)
        with sync_operation("compile", artifact_path=str(store.artifact_path)):
            try:
                compiled_path = compiler.compile(store.artifact_path, store.compiled_path)
            except ModelSyncError:
                raise
            except Exception as exc:
                raise CompileError(
                    "Compiler rejected artifact",
                    path=str(store.artifact_path),
                    cause=str(exc) or type(exc).__name__,
                ) from exc
        logger.info("artifact_compiled", compiled_path=str(compiled_path))

    try:
        runnable = compiler.load(compiled_path)
    except ModelSyncError:
        raise
    except Exception as exc:
        raise CompileError(
            "Cannot load compiled artifact",
            path=str(compiled_path),
            cause=str(exc) or type(exc).__name__,
        ) from exc
    return runnable, compiled_path


class ArtifactSynchronizer:
    """Synchronizes one local artifact with its remote endpoints.

    Concurrent runs against the same artifact path are serialized through a
    per-path lock, including runs from different instances.

    Attributes:
        config: Synchronization configuration.

    Example:
        >>> config = SyncConfig.from_base_endpoint(
        ...     "https://models.example.com/v1/classifier", token="secret"
        ... )
        >>> synchronizer = ArtifactSynchronizer(config)
        >>> result = await synchronizer.synchronize()
        >>> result.runnable
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        compiler: Compiler | None = None,
        client: httpx.AsyncClient | None = None,
        on_status: StatusCallback | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize ArtifactSynchronizer.

        Args:
            config: Synchronization configuration.
            compiler: Compiler for the artifact. Defaults to PassthroughCompiler.
            client: Optional httpx client. When omitted a client is created
                per run with the configured timeout.
            on_status: Optional receiver of progress notifications.
            logger: Optional structlog logger. Uses default if not provided.
        """
        self.config = config
        self.store = LocalStore(config.artifact_path, config.compiled_path)
        self._compiler: Compiler = compiler or PassthroughCompiler()
        self._client = client
        self._on_status = on_status
        self._logger = logger or get_logger()

    async def synchronize(self) -> SyncResult:
        """Bring the local artifact up to date and return the runnable form.

        Returns:
            SyncResult with the runnable artifact and what was done.

        Raises:
            AuthError: If an endpoint rejects the token.
            TransportError: If an endpoint is unreachable or misbehaves.
            ParseError: If the digest response is malformed.
            StoreError: If local state cannot be read or written.
            CompileError: If the artifact cannot be compiled or loaded.
        """
        async with path_lock(self.config.artifact_path), self._http_client() as client:
            local_digest: str | None = None
            remote_digest: str | None = None

            if not self.store.artifact_exists():
                notify_status(SyncStatus.RETRIEVING, self._on_status)
                await self._fetch_and_replace(client)
                outcome = SyncOutcome.DOWNLOADED
            else:
                notify_status(SyncStatus.CHECKING_FOR_UPDATE, self._on_status)
                local_digest = await run_in_worker(self.store.artifact_digest)
                remote_digest = await self._fetch_latest_digest(client)
                if digests_match(local_digest, remote_digest):
                    notify_status(SyncStatus.UP_TO_DATE, self._on_status)
                    outcome = SyncOutcome.UP_TO_DATE
                else:
                    self._logger.info(
                        "artifact_stale",
                        local_digest=local_digest,
                        remote_digest=remote_digest,
                    )
                    await self._fetch_and_replace(client)
                    outcome = SyncOutcome.UPDATED

            result = await self._resolve(outcome, local_digest, remote_digest)

        notify_status(SyncStatus.DONE, self._on_status)
        return result

    async def check_for_update(self) -> bool:
        """Report whether synchronize() would download, without changing anything.

        Returns:
            True if the artifact is missing or its digest differs from the remote.

        Raises:
            AuthError: If the digest endpoint rejects the token.
            TransportError: If the digest endpoint is unreachable.
            ParseError: If the digest response is malformed.
            StoreError: If the local artifact cannot be read.
        """
        async with path_lock(self.config.artifact_path), self._http_client() as client:
            if not self.store.artifact_exists():
                return True
            notify_status(SyncStatus.CHECKING_FOR_UPDATE, self._on_status)
            local_digest = await run_in_worker(self.store.artifact_digest)
            remote_digest = await self._fetch_latest_digest(client)
            stale = not digests_match(local_digest, remote_digest)
            if not stale:
                notify_status(SyncStatus.UP_TO_DATE, self._on_status)
            return stale

    async def fetch_latest_digest(self) -> str:
        """Fetch the remote digest as published (unnormalized).

        Raises:
            AuthError: If the endpoint answers 401/403.
            TransportError: On network failure or unexpected status.
            ParseError: If the response body is malformed.
        """
        async with self._http_client() as client:
            return await self._fetch_latest_digest(client)

    async def resolve(self) -> SyncResult:
        """Compile and load the current local artifact without network traffic.

        Use after a CompileError to retry compilation without downloading
        again. The compiled cache is always rebuilt.

        Raises:
            StoreError: If there is no local artifact.
            CompileError: If the artifact cannot be compiled or loaded.
        """
        async with path_lock(self.config.artifact_path):
            if not self.store.artifact_exists():
                raise StoreError(
                    "No local artifact to resolve", path=str(self.config.artifact_path)
                )
            runnable, compiled_path = await run_in_worker(
                resolve_runnable,
                self.store,
                self._compiler,
                recompile=True,
                on_status=self._on_status,
            )
        notify_status(SyncStatus.DONE, self._on_status)
        return SyncResult(
            runnable=runnable,
            compiled_path=compiled_path,
            outcome=SyncOutcome.RESOLVED,
        )

    def _http_client(self) -> httpx.AsyncClient | _BorrowedClient:
        """Return an async context manager yielding the HTTP client for one run."""
        if self._client is not None:
            return _BorrowedClient(self._client)
        return httpx.AsyncClient(timeout=self.config.timeout_seconds)

    async def _fetch_latest_digest(self, client: httpx.AsyncClient) -> str:
        endpoint = DigestEndpoint(
            client, self.config.digest_endpoint, self.config.token, logger=self._logger
        )
        with sync_operation("digest_check", url=self.config.digest_endpoint):
            record = await endpoint.fetch_latest()
        return record.digest

    async def _fetch_and_replace(self, client: httpx.AsyncClient) -> None:
        """Download the artifact and atomically move it into place.

        Under ALWAYS_RECOMPILE_AFTER_DOWNLOAD the compiled cache is removed
        before the replace, so a compiled artifact never sits next to a raw
        artifact newer than itself, even when a later step fails.
        """
        transport = DownloadTransport(
            client, self.config.download_endpoint, self.config.token, logger=self._logger
        )
        notify_status(SyncStatus.DOWNLOADING, self._on_status)
        with sync_operation(
            "download",
            artifact_path=str(self.config.artifact_path),
            url=self.config.download_endpoint,
        ), self.store.temporary_file() as temp_path:
            try:
                size = await transport.download_to(temp_path)
            except OSError as exc:
                raise StoreError(
                    "Cannot write downloaded artifact",
                    path=str(temp_path),
                    cause=str(exc),
                ) from exc
            if self.config.cache_policy is CachePolicy.ALWAYS_RECOMPILE_AFTER_DOWNLOAD:
                self.store.invalidate_compiled()
            self.store.replace_artifact(temp_path)

        self._logger.info(
            "artifact_downloaded",
            path=str(self.config.artifact_path),
            bytes=size,
        )

    async def _resolve(
        self,
        outcome: SyncOutcome,
        local_digest: str | None,
        remote_digest: str | None,
    ) -> SyncResult:
        recompile = (
            outcome is not SyncOutcome.UP_TO_DATE
            and self.config.cache_policy is CachePolicy.ALWAYS_RECOMPILE_AFTER_DOWNLOAD
        )
        runnable, compiled_path = await run_in_worker(
            resolve_runnable,
            self.store,
            self._compiler,
            recompile=recompile,
            on_status=self._on_status,
        )
        return SyncResult(
            runnable=runnable,
            compiled_path=compiled_path,
            outcome=outcome,
            local_digest=local_digest,
            remote_digest=normalize_digest(remote_digest) if remote_digest else None,
        )


class _BorrowedClient:
    """Async context manager that yields a caller-owned client without closing it."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __aenter__(self) -> httpx.AsyncClient:
        return self._client

    async def __aexit__(self, *exc_info: object) -> None:
        return None
