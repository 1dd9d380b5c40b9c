"""Filesystem store for the raw artifact and its compiled cache.

All writes to the artifact path go through a temporary file in the same
directory followed by os.replace(), so readers only ever observe the old
content or the complete new content.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from model_sync.digest import compute_digest
from model_sync.errors import StoreError
from model_sync.observability import get_logger

TEMP_SUFFIX = ".part"


class LocalStore:
    """Local persisted state of one synchronized artifact.

    Attributes:
        artifact_path: Path of the raw artifact.
        compiled_path: Path of the compiled artifact cache (file or directory).

    Example:
        >>> store = LocalStore(Path("/data/model.mlmodel"), Path("/data/model.mlmodelc"))
        >>> store.artifact_exists()
        False
    """

    def __init__(self, artifact_path: Path, compiled_path: Path) -> None:
        self.artifact_path = Path(artifact_path)
        self.compiled_path = Path(compiled_path)
        self._logger = get_logger()

    @property
    def directory(self) -> Path:
        """Directory holding the artifact."""
        return self.artifact_path.parent

    def ensure_directory(self) -> None:
        """Create the artifact directory if it doesn't exist.

        Raises:
            StoreError: If the directory cannot be created.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(
                "Cannot create artifact directory",
                path=str(self.directory),
                cause=str(exc),
            ) from exc

    def artifact_exists(self) -> bool:
        """Check whether a raw artifact is present."""
        return self.artifact_path.is_file()

    def compiled_exists(self) -> bool:
        """Check whether a compiled artifact cache is present."""
        return self.compiled_path.exists()

    def read_artifact(self) -> bytes:
        """Read the full raw artifact.

        Raises:
            StoreError: If the artifact cannot be read.
        """
        try:
            return self.artifact_path.read_bytes()
        except OSError as exc:
            raise StoreError(
                "Cannot read artifact",
                path=str(self.artifact_path),
                cause=str(exc),
            ) from exc

    def artifact_digest(self) -> str:
        """Compute the digest of the raw artifact.

        An empty file is a valid artifact with the digest of zero bytes.

        Raises:
            StoreError: If the artifact cannot be read.
        """
        try:
            return compute_digest(self.artifact_path)
        except OSError as exc:
            raise StoreError(
                "Cannot hash artifact",
                path=str(self.artifact_path),
                cause=str(exc),
            ) from exc

    @contextmanager
    def temporary_file(self) -> Iterator[Path]:
        """Reserve a temporary file next to the artifact.

        The file is removed on exit unless it has been moved into place by
        replace_artifact(). Being in the same directory keeps the final
        rename atomic.

        Yields:
            Path of the empty temporary file.

        Raises:
            StoreError: If the temporary file cannot be created.
        """
        self.ensure_directory()
        try:
            fd, name = tempfile.mkstemp(
                dir=self.directory,
                prefix=f".{self.artifact_path.name}.",
                suffix=TEMP_SUFFIX,
            )
        except OSError as exc:
            raise StoreError(
                "Cannot create temporary file",
                path=str(self.directory),
                cause=str(exc),
            ) from exc
        os.close(fd)
        temp_path = Path(name)
        try:
            yield temp_path
        finally:
            temp_path.unlink(missing_ok=True)

    def replace_artifact(self, source: Path) -> None:
        """Atomically move ``source`` over the artifact path.

        Args:
            source: A fully written file in the artifact directory.

        Raises:
            StoreError: If the file cannot be flushed or renamed.
        """
        try:
            with open(source, "rb") as f:
                os.fsync(f.fileno())
            os.replace(source, self.artifact_path)
        except OSError as exc:
            raise StoreError(
                "Cannot replace artifact",
                path=str(self.artifact_path),
                cause=str(exc),
            ) from exc
        self._logger.info("artifact_replaced", path=str(self.artifact_path))

    def write_artifact(self, data: bytes) -> None:
        """Atomically write ``data`` to the artifact path.

        Raises:
            StoreError: If the write fails. The previous artifact is untouched.
        """
        with self.temporary_file() as temp_path:
            try:
                temp_path.write_bytes(data)
            except OSError as exc:
                raise StoreError(
                    "Cannot write artifact",
                    path=str(temp_path),
                    cause=str(exc),
                ) from exc
            self.replace_artifact(temp_path)

    def invalidate_compiled(self) -> bool:
        """Remove the compiled artifact cache.

        Returns:
            True if a cache was present and removed.

        Raises:
            StoreError: If the cache exists but cannot be removed.
        """
        if not self.compiled_path.exists():
            return False
        try:
            if self.compiled_path.is_dir():
                shutil.rmtree(self.compiled_path)
            else:
                self.compiled_path.unlink()
        except OSError as exc:
            raise StoreError(
                "Cannot invalidate compiled artifact",
                path=str(self.compiled_path),
                cause=str(exc),
            ) from exc
        self._logger.info("compiled_cache_invalidated", path=str(self.compiled_path))
        return True
