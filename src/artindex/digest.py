"""Content digests."""

from __future__ import annotations

import hashlib
from pathlib import Path

from artindex.errors import DigestUnavailableError

SHA1 = "sha1"

DEFAULT_CHUNK_SIZE = 4096


def new_sha1() -> "hashlib._Hash":
    """Create a SHA-1 hasher; a missing algorithm is a configuration error."""
    try:
        return hashlib.new(SHA1, usedforsecurity=False)
    except ValueError as e:
        raise DigestUnavailableError(f"Unable to calculate {SHA1} digest: {e}") from e


def sha1_file(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Stream a file through SHA-1 in fixed-size chunks."""
    sha1 = new_sha1()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            sha1.update(chunk)
    return sha1.hexdigest()
