"""HTTP collaborators: the digest endpoint and the download transport.

Both endpoints authenticate with ``Authorization: Bearer <token>`` and share
one httpx.AsyncClient owned by the caller. Redirects are followed, as download
endpoints commonly answer with a presigned storage URL; httpx drops the
Authorization header when a redirect leaves the original origin. Failures are
translated into the model-sync error hierarchy:

- 401/403 -> AuthError
- other non-2xx, connection failures, timeouts -> TransportError
- undecodable digest body -> ParseError
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from pydantic import SecretStr, ValidationError

from model_sync.config import DigestRecord
from model_sync.digest import normalize_digest
from model_sync.errors import AuthError, ParseError, SyncPhase, TransportError
from model_sync.observability import get_logger

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

AUTH_FAILURE_CODES = frozenset({401, 403})

# Stream chunk size for artifact downloads
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def bearer_headers(token: SecretStr) -> dict[str, str]:
    """Build the authorization header for both endpoints."""
    return {"Authorization": f"Bearer {token.get_secret_value()}"}


def _check_status(response: httpx.Response, *, url: str, phase: SyncPhase) -> None:
    """Raise the matching error for a non-2xx response.

    Raises:
        AuthError: On 401/403.
        TransportError: On any other non-2xx status.
    """
    code = response.status_code
    if code in AUTH_FAILURE_CODES:
        raise AuthError(
            "Endpoint rejected the bearer token",
            phase=phase,
            url=url,
            status_code=code,
        )
    if not response.is_success:
        raise TransportError(
            f"Unexpected HTTP status {code}",
            phase=phase,
            url=url,
            status_code=code,
        )


class DigestEndpoint:
    """Looks up the digest of the latest published artifact.

    Example:
        >>> async with httpx.AsyncClient() as client:
        ...     endpoint = DigestEndpoint(client, config.digest_endpoint, config.token)
        ...     record = await endpoint.fetch_latest()
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        token: SecretStr,
        *,
        logger: BoundLogger | None = None,
    ) -> None:
        self.url = url
        self._client = client
        self._token = token
        self._logger = logger or get_logger()

    async def fetch_latest(self) -> DigestRecord:
        """Fetch and validate the latest digest record.

        Returns:
            DigestRecord with the digest as published by the service.

        Raises:
            AuthError: If the endpoint answers 401/403.
            TransportError: On network failure or unexpected status.
            ParseError: If the body is not a JSON object with a hex ``digest``.
        """
        try:
            response = await self._client.get(
                self.url, headers=bearer_headers(self._token), follow_redirects=True
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                "Digest endpoint unreachable",
                phase=SyncPhase.DIGEST_CHECK,
                url=self.url,
                cause=str(exc) or type(exc).__name__,
            ) from exc

        _check_status(response, url=self.url, phase=SyncPhase.DIGEST_CHECK)

        try:
            record = DigestRecord.model_validate(response.json())
            normalize_digest(record.digest)
        except (ValueError, ValidationError) as exc:
            raise ParseError(
                f"Malformed digest response: {exc}",
                url=self.url,
                body=response.text,
            ) from exc

        self._logger.debug("latest_digest_fetched", digest=record.digest, status=record.status)
        return record


class DownloadTransport:
    """Streams the latest artifact bytes into a local file."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        token: SecretStr,
        *,
        logger: BoundLogger | None = None,
    ) -> None:
        self.url = url
        self._client = client
        self._token = token
        self._logger = logger or get_logger()

    async def download_to(self, destination: Path) -> int:
        """Stream the artifact body into ``destination``.

        ``destination`` is overwritten. It is a scratch file; moving it into
        place is the caller's job.

        Args:
            destination: File to write the body to.

        Returns:
            Number of bytes written.

        Raises:
            AuthError: If the endpoint answers 401/403.
            TransportError: On network failure, unexpected status or a broken stream.
            OSError: If writing ``destination`` fails.
        """
        written = 0
        try:
            async with self._client.stream(
                "GET", self.url, headers=bearer_headers(self._token), follow_redirects=True
            ) as response:
                _check_status(response, url=self.url, phase=SyncPhase.DOWNLOAD)
                with open(destination, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(
                "Artifact download failed",
                phase=SyncPhase.DOWNLOAD,
                url=self.url,
                cause=str(exc) or type(exc).__name__,
            ) from exc

        self._logger.debug("artifact_downloaded", url=self.url, bytes=written)
        return written
