"""model-sync: keep a local machine-learning model in step with a remote source.

This package provides:
- Digest-based staleness checks against a remote digest endpoint
- Atomic replacement of the local artifact from a download endpoint
- A pluggable compile step with an explicit compiled-cache policy
- Structured logging via structlog and OpenTelemetry span tracing

Example:
    >>> from model_sync import create_synchronizer
    >>> synchronizer = create_synchronizer(
    ...     "https://models.example.com/v1/classifier",
    ...     token="secret",
    ... )
    >>> result = await synchronizer.synchronize()
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    # Factory function
    "create_synchronizer",
    # Synchronizer
    "ArtifactSynchronizer",
    "SyncOutcome",
    "SyncResult",
    "resolve_runnable",
    # Configuration models
    "CachePolicy",
    "DigestRecord",
    "SyncConfig",
    # Compilers
    "CallableCompiler",
    "Compiler",
    "LoadedArtifact",
    "PassthroughCompiler",
    # Digest helpers
    "compute_digest",
    "digests_match",
    "format_digest",
    "normalize_digest",
    # Observability
    "SyncStatus",
    "configure_logging",
    # Exceptions
    "ModelSyncError",
    "TransportError",
    "AuthError",
    "ParseError",
    "StoreError",
    "CompileError",
    "SyncPhase",
]

_LAZY_MODULES = {
    "create_synchronizer": "model_sync.factory",
    "ArtifactSynchronizer": "model_sync.synchronizer",
    "SyncOutcome": "model_sync.synchronizer",
    "SyncResult": "model_sync.synchronizer",
    "resolve_runnable": "model_sync.synchronizer",
    "CachePolicy": "model_sync.config",
    "DigestRecord": "model_sync.config",
    "SyncConfig": "model_sync.config",
    "CallableCompiler": "model_sync.compiler",
    "Compiler": "model_sync.compiler",
    "LoadedArtifact": "model_sync.compiler",
    "PassthroughCompiler": "model_sync.compiler",
    "compute_digest": "model_sync.digest",
    "digests_match": "model_sync.digest",
    "format_digest": "model_sync.digest",
    "normalize_digest": "model_sync.digest",
    "SyncStatus": "model_sync.observability",
    "configure_logging": "model_sync.observability",
    "ModelSyncError": "model_sync.errors",
    "TransportError": "model_sync.errors",
    "AuthError": "model_sync.errors",
    "ParseError": "model_sync.errors",
    "StoreError": "model_sync.errors",
    "CompileError": "model_sync.errors",
    "SyncPhase": "model_sync.errors",
}


def __getattr__(name: str) -> object:
    """Lazy import of public API members."""
    module_path = _LAZY_MODULES.get(name)
    if module_path is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_path), name)
