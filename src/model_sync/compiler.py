"""Compiler protocol and built-in compilers.

A compiler turns the raw artifact into a platform-specific compiled form
stored at the compiled-cache path, and loads that compiled form into a
runnable object. The runnable is opaque to model-sync.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from model_sync.digest import compute_digest


@runtime_checkable
class Compiler(Protocol):
    """Platform capability producing a runnable artifact from raw bytes.

    Implementations may raise any exception; the synchronizer reports it
    as CompileError.
    """

    def compile(self, artifact_path: Path, compiled_path: Path) -> Path:
        """Compile ``artifact_path`` and persist the result.

        Args:
            artifact_path: The raw artifact.
            compiled_path: Suggested location for the compiled form.

        Returns:
            Location the compiled form was written to.
        """
        ...

    def load(self, compiled_path: Path) -> Any:
        """Load a compiled artifact into a runnable object."""
        ...


@dataclass(frozen=True)
class LoadedArtifact:
    """Runnable handle produced by PassthroughCompiler."""

    path: Path
    digest: str
    size: int


class PassthroughCompiler:
    """Compiler for artifacts that need no platform compilation.

    The raw bytes are copied to the compiled path atomically, and loading
    yields a LoadedArtifact describing them.
    """

    def compile(self, artifact_path: Path, compiled_path: Path) -> Path:
        compiled_path.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=compiled_path.parent, prefix=f".{compiled_path.name}.")
        os.close(fd)
        try:
            shutil.copyfile(artifact_path, name)
            os.replace(name, compiled_path)
        finally:
            Path(name).unlink(missing_ok=True)
        return compiled_path

    def load(self, compiled_path: Path) -> LoadedArtifact:
        return LoadedArtifact(
            path=compiled_path,
            digest=compute_digest(compiled_path),
            size=compiled_path.stat().st_size,
        )


class CallableCompiler:
    """Adapts two plain functions to the Compiler protocol.

    Example:
        >>> compiler = CallableCompiler(
        ...     compile_fn=lambda src, dst: convert(src, dst),
        ...     load_fn=lambda path: runtime.load(path),
        ... )
    """

    def __init__(
        self,
        compile_fn: Callable[[Path, Path], Path | None],
        load_fn: Callable[[Path], Any],
    ) -> None:
        self._compile_fn = compile_fn
        self._load_fn = load_fn

    def compile(self, artifact_path: Path, compiled_path: Path) -> Path:
        result = self._compile_fn(artifact_path, compiled_path)
        return Path(result) if result is not None else compiled_path

    def load(self, compiled_path: Path) -> Any:
        return self._load_fn(compiled_path)
