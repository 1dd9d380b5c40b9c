"""Pydantic configuration models for model-sync.

This module provides:
- CachePolicy: When the compiled artifact cache is rebuilt
- SyncConfig: Endpoint, credential and local path configuration
- DigestRecord: Response model of the digest endpoint
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
)

# Environment variable consulted for the bearer token when a YAML file omits it
TOKEN_ENV_VAR = "MODEL_SYNC_TOKEN"

DEFAULT_ARTIFACT_NAME = "model.mlmodel"
DEFAULT_COMPILED_SUFFIX = ".mlmodelc"


def default_artifact_dir() -> Path:
    """Return the user-scoped directory artifacts are stored in by default.

    Honors ``XDG_DATA_HOME`` and falls back to ``~/.local/share``.
    """
    base = os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share"
    return Path(base) / "model-sync"


class CachePolicy(str, Enum):
    """Compiled-cache invalidation policy.

    ALWAYS_RECOMPILE_AFTER_DOWNLOAD:
        A download invalidates the compiled cache, so a compiled artifact
        never outlives the raw artifact it was built from.
    RECOMPILE_ONLY_IF_CACHE_ABSENT:
        Compile-once semantics. An existing compiled cache is reused even
        after the raw artifact has been replaced.
    """

    ALWAYS_RECOMPILE_AFTER_DOWNLOAD = "always-recompile-after-download"
    RECOMPILE_ONLY_IF_CACHE_ABSENT = "recompile-only-if-cache-absent"


class SyncConfig(BaseModel):
    """Configuration for synchronizing one artifact.

    Attributes:
        digest_endpoint: URL returning the latest published digest.
        download_endpoint: URL streaming the latest artifact bytes.
        token: Bearer token sent to both endpoints.
        artifact_dir: Writable directory holding the artifact and its compiled cache.
        artifact_name: File name of the raw artifact.
        compiled_suffix: Suffix replacing the artifact's suffix for the compiled cache.
        cache_policy: Compiled-cache invalidation policy.
        timeout_seconds: Connect/read timeout for each HTTP request.

    Example:
        >>> config = SyncConfig.from_base_endpoint(
        ...     "https://models.example.com/v1/classifier",
        ...     token="secret",
        ... )
        >>> config.digest_endpoint
        'https://models.example.com/v1/classifier/latest'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    digest_endpoint: str = Field(
        ...,
        min_length=1,
        description="Digest lookup endpoint URL",
    )
    download_endpoint: str = Field(
        ...,
        min_length=1,
        description="Artifact download endpoint URL",
    )
    token: SecretStr = Field(
        ...,
        description="Bearer token for both endpoints",
    )
    artifact_dir: Path = Field(
        default_factory=default_artifact_dir,
        description="Writable directory for the artifact and compiled cache",
    )
    artifact_name: str = Field(
        default=DEFAULT_ARTIFACT_NAME,
        min_length=1,
        description="File name of the raw artifact",
    )
    compiled_suffix: str = Field(
        default=DEFAULT_COMPILED_SUFFIX,
        min_length=1,
        description="Suffix of the compiled artifact cache",
    )
    cache_policy: CachePolicy = Field(
        default=CachePolicy.ALWAYS_RECOMPILE_AFTER_DOWNLOAD,
        description="Compiled cache invalidation policy",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="HTTP connect/read timeout in seconds",
    )

    @field_validator("digest_endpoint", "download_endpoint")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Validate URL format (must be http:// or https://)."""
        if not v.startswith(("http://", "https://")):
            msg = f"URL must start with http:// or https://, got: {v}"
            raise ValueError(msg)
        return v

    @field_validator("artifact_name")
    @classmethod
    def validate_artifact_name(cls, v: str) -> str:
        """Validate the artifact name is a bare file name."""
        if Path(v).name != v or v in (".", ".."):
            msg = f"artifact_name must be a file name without directories, got: {v}"
            raise ValueError(msg)
        return v

    @field_validator("compiled_suffix")
    @classmethod
    def validate_compiled_suffix(cls, v: str) -> str:
        """Validate the compiled suffix starts with a dot."""
        if not v.startswith(".") or "/" in v:
            msg = f"compiled_suffix must look like '.ext', got: {v}"
            raise ValueError(msg)
        return v

    @property
    def artifact_path(self) -> Path:
        """Path of the raw artifact file."""
        return self.artifact_dir / self.artifact_name

    @property
    def compiled_path(self) -> Path:
        """Path of the compiled artifact cache derived from the artifact name."""
        return self.artifact_path.with_suffix(self.compiled_suffix)

    @classmethod
    def from_base_endpoint(
        cls,
        base_endpoint: str,
        token: str | SecretStr,
        **kwargs: Any,
    ) -> SyncConfig:
        """Build a config from a combined endpoint.

        The digest endpoint is ``<base>/latest`` and the download endpoint
        is ``<base>/download``.

        Args:
            base_endpoint: Base URL of the artifact service.
            token: Bearer token.
            **kwargs: Any other SyncConfig field.

        Returns:
            Validated SyncConfig.
        """
        base = base_endpoint.rstrip("/")
        return cls(
            digest_endpoint=f"{base}/latest",
            download_endpoint=f"{base}/download",
            token=token,
            **kwargs,
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> SyncConfig:
        """Load SyncConfig from a YAML file.

        The file holds either ``endpoint`` (combined form) or both
        ``digest_endpoint`` and ``download_endpoint``. When ``token`` is
        absent it is read from the ``MODEL_SYNC_TOKEN`` environment variable.

        Args:
            path: Path to the YAML file.

        Returns:
            Validated SyncConfig.

        Raises:
            FileNotFoundError: If file doesn't exist.
            yaml.YAMLError: If YAML syntax is invalid.
            ValidationError: If schema validation fails.

        Example:
            >>> config = SyncConfig.from_yaml(Path("model-sync.yaml"))
        """
        return cls.model_validate(load_config_data(path))


def load_config_data(path: str | Path) -> dict[str, Any]:
    """Read raw SyncConfig fields from a YAML file without validating them.

    Expands a combined ``endpoint`` into the two endpoint fields and fills
    ``token`` from ``MODEL_SYNC_TOKEN`` when the file has none.

    Raises:
        FileNotFoundError: If file doesn't exist.
        yaml.YAMLError: If YAML syntax is invalid.
        ValueError: If the document is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Sync config must be a mapping, got {type(data).__name__}"
        raise ValueError(msg)

    if "token" not in data and os.environ.get(TOKEN_ENV_VAR):
        data["token"] = os.environ[TOKEN_ENV_VAR]

    base = data.pop("endpoint", None)
    if base is not None:
        base = str(base).rstrip("/")
        data.setdefault("digest_endpoint", f"{base}/latest")
        data.setdefault("download_endpoint", f"{base}/download")
    return data


class DigestRecord(BaseModel):
    """Latest published digest as returned by the digest endpoint.

    Only ``digest`` takes part in comparison. ``status`` is informational.
    The service contract always sends ``status``, but a body without it is
    still accepted (as an empty string) because nothing here reads it.
    Older services publish the digest under ``md5``, accepted as an alias.

    Example:
        >>> DigestRecord.model_validate({"md5": "9e107d9d", "status": "ok"}).digest
        '9e107d9d'
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    digest: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("digest", "md5"),
        description="Digest of the latest published artifact",
    )
    status: str = Field(
        default="",
        description="Informational status reported by the service",
    )
