"""Content digest helpers.

Digests are used for change detection only, so MD5 is sufficient. Local
digests are rendered as lowercase hex; remote digests may carry a label such
as ``md5:`` or ``MD5 digest:`` and arbitrary letter case, which
normalize_digest() removes before comparison.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

DEFAULT_ALGORITHM = "md5"

# 1 MiB read size keeps memory flat for large model files
CHUNK_SIZE = 1024 * 1024

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def compute_digest(source: str | Path | bytes, *, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the MD5 digest of a file or byte string.

    Args:
        source: Path to a file, or the raw bytes.
        chunk_size: Read size used when hashing a file.

    Returns:
        Lowercase hex digest.

    Raises:
        OSError: If the file cannot be read.

    Example:
        >>> compute_digest(b"")
        'd41d8cd98f00b204e9800998ecf8427e'
    """
    hasher = hashlib.md5(usedforsecurity=False)
    if isinstance(source, bytes):
        hasher.update(source)
        return hasher.hexdigest()

    with open(source, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def format_digest(hex_digest: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Render a digest with its algorithm label.

    Example:
        >>> format_digest("AB12", "MD5")
        'md5:ab12'
    """
    return f"{algorithm.lower()}:{normalize_digest(hex_digest)}"


def normalize_digest(value: str) -> str:
    """Reduce a digest string to bare lowercase hex.

    Strips surrounding whitespace and any leading ``<label>:`` prefix
    (``md5:``, ``MD5 digest:``), then lowercases.

    Args:
        value: Digest in any supported framing.

    Returns:
        Lowercase hex digest.

    Raises:
        ValueError: If nothing hex-like remains after normalization.

    Example:
        >>> normalize_digest("MD5 digest: 9E107D9D")
        '9e107d9d'
    """
    _, _, bare = value.rpartition(":")
    bare = bare.strip().lower()
    if not bare or not _HEX_RE.match(bare):
        msg = f"Not a hex digest: {value!r}"
        raise ValueError(msg)
    return bare


def digests_match(left: str, right: str) -> bool:
    """Compare two digests with case-insensitive, format-normalized equality."""
    return normalize_digest(left) == normalize_digest(right)
