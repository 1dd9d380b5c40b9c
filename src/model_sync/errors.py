"""Custom exceptions for model-sync.

This module defines the exception hierarchy:
- ModelSyncError (base)
- TransportError
- AuthError
- ParseError
- StoreError
- CompileError

Every error records the synchronization phase it came from so callers can
tell a failed digest check from a failed download or compile.
"""

from __future__ import annotations

from enum import Enum


class SyncPhase(str, Enum):
    """Phase of a synchronization run that raised an error."""

    DIGEST_CHECK = "digest_check"
    DOWNLOAD = "download"
    STORE = "store"
    COMPILE = "compile"


class ModelSyncError(Exception):
    """Base exception for all model-sync operations.

    Attributes:
        message: Human-readable error description.
        phase: Synchronization phase that failed, if known.
        details: Optional additional context about the error.

    Example:
        >>> try:
        ...     await synchronizer.synchronize()
        ... except ModelSyncError as e:
        ...     print(f"Sync failed during {e.phase}: {e}")
    """

    def __init__(
        self,
        message: str,
        *,
        phase: SyncPhase | None = None,
        details: dict[str, str] | None = None,
    ) -> None:
        """Initialize ModelSyncError.

        Args:
            message: Human-readable error description.
            phase: Synchronization phase that failed.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with phase and details if present."""
        parts = dict(self.details)
        if self.phase is not None:
            parts = {"phase": self.phase.value, **parts}
        if parts:
            detail_str = ", ".join(f"{k}={v}" for k, v in parts.items())
            return f"{self.message} ({detail_str})"
        return self.message


class TransportError(ModelSyncError):
    """A remote endpoint could not be reached or answered unexpectedly.

    Raised when:
    - The connection fails, is refused or times out
    - The endpoint returns a non-2xx status other than 401/403
    - The download stream breaks off mid-transfer
    """

    def __init__(
        self,
        message: str = "Transport failure",
        *,
        phase: SyncPhase | None = None,
        url: str | None = None,
        status_code: int | None = None,
        cause: str | None = None,
    ) -> None:
        """Initialize TransportError.

        Args:
            message: Human-readable error description.
            phase: Synchronization phase that failed.
            url: The endpoint URL involved.
            status_code: HTTP status code, if a response was received.
            cause: The underlying cause of the failure.
        """
        details: dict[str, str] = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = str(status_code)
        if cause:
            details["cause"] = cause
        super().__init__(message, phase=phase, details=details)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class AuthError(ModelSyncError):
    """An endpoint rejected the bearer token (HTTP 401 or 403).

    Callers should refresh the token rather than retry blindly.

    Security:
        The token is never included in the message or details.
    """

    def __init__(
        self,
        message: str = "Authorization rejected",
        *,
        phase: SyncPhase | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize AuthError.

        Args:
            message: Human-readable error description.
            phase: Synchronization phase that failed.
            url: The endpoint URL that rejected the token.
            status_code: HTTP status code (401 or 403).
        """
        details: dict[str, str] = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = str(status_code)
        super().__init__(message, phase=phase, details=details)
        self.url = url
        self.status_code = status_code


class ParseError(ModelSyncError):
    """The digest endpoint returned a body that does not match the contract."""

    def __init__(
        self,
        message: str = "Malformed digest response",
        *,
        url: str | None = None,
        body: str | None = None,
    ) -> None:
        """Initialize ParseError.

        Args:
            message: Human-readable error description.
            url: The digest endpoint URL.
            body: Leading part of the offending response body.
        """
        details: dict[str, str] = {}
        if url:
            details["url"] = url
        if body is not None:
            details["body"] = body[:200]
        super().__init__(message, phase=SyncPhase.DIGEST_CHECK, details=details)
        self.url = url


class StoreError(ModelSyncError):
    """Reading or writing local artifact state failed.

    Raised on disk full, permission denied, missing artifact for a
    compile-only retry and similar filesystem failures.
    """

    def __init__(
        self,
        message: str = "Local store failure",
        *,
        path: str | None = None,
        cause: str | None = None,
    ) -> None:
        """Initialize StoreError.

        Args:
            message: Human-readable error description.
            path: Filesystem path involved.
            cause: The underlying cause of the failure.
        """
        details: dict[str, str] = {}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = cause
        super().__init__(message, phase=SyncPhase.STORE, details=details)
        self.path = path
        self.cause = cause


class CompileError(ModelSyncError):
    """The compiler rejected the raw artifact or the compiled form failed to load.

    The raw artifact stays in place; retry the compile step alone with
    ``ArtifactSynchronizer.resolve()``.
    """

    def __init__(
        self,
        message: str = "Artifact compilation failed",
        *,
        path: str | None = None,
        cause: str | None = None,
    ) -> None:
        """Initialize CompileError.

        Args:
            message: Human-readable error description.
            path: Artifact or compiled path involved.
            cause: The underlying cause of the failure.
        """
        details: dict[str, str] = {}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = cause
        super().__init__(message, phase=SyncPhase.COMPILE, details=details)
        self.path = path
        self.cause = cause
