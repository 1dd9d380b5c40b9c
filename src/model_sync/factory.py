"""Synchronizer factory.

This module provides create_synchronizer() for building an
ArtifactSynchronizer from either configuration shape:

- SyncConfig: explicit digest and download endpoints
- a base endpoint string: ``<base>/latest`` and ``<base>/download``
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from model_sync.config import SyncConfig
from model_sync.observability import get_logger
from model_sync.synchronizer import ArtifactSynchronizer

if TYPE_CHECKING:
    import httpx

    from model_sync.compiler import Compiler
    from model_sync.observability import StatusCallback


def create_synchronizer(
    config: SyncConfig | str,
    *,
    token: str | None = None,
    compiler: Compiler | None = None,
    client: httpx.AsyncClient | None = None,
    on_status: StatusCallback | None = None,
    **config_kwargs: Any,
) -> ArtifactSynchronizer:
    """Create an artifact synchronizer.

    Args:
        config: A SyncConfig, or a base endpoint URL.
        token: Bearer token, required when ``config`` is a base endpoint.
        compiler: Optional compiler. Defaults to PassthroughCompiler.
        client: Optional shared httpx.AsyncClient.
        on_status: Optional receiver of progress notifications.
        **config_kwargs: Extra SyncConfig fields when ``config`` is a base endpoint.

    Returns:
        ArtifactSynchronizer: Configured synchronizer.

    Raises:
        ValueError: If a base endpoint is given without a token, or if
            extra config fields accompany a SyncConfig.

    Example:
        >>> synchronizer = create_synchronizer(
        ...     "https://models.example.com/v1/classifier",
        ...     token="secret",
        ...     artifact_name="classifier.mlmodel",
        ... )
    """
    logger = get_logger()

    if isinstance(config, SyncConfig):
        if token is not None or config_kwargs:
            msg = "token and config fields must not be passed alongside a SyncConfig"
            raise ValueError(msg)
        sync_config = config
    else:
        if not token:
            msg = "token is required when creating a synchronizer from a base endpoint"
            raise ValueError(msg)
        sync_config = SyncConfig.from_base_endpoint(config, token, **config_kwargs)

    logger.info(
        "creating_synchronizer",
        digest_endpoint=sync_config.digest_endpoint,
        download_endpoint=sync_config.download_endpoint,
        artifact_path=str(sync_config.artifact_path),
        cache_policy=sync_config.cache_policy.value,
    )
    return ArtifactSynchronizer(
        sync_config,
        compiler=compiler,
        client=client,
        on_status=on_status,
    )
