"""SHA-256 checksums for export packages."""

import hashlib
from pathlib import Path

CHECKSUM_ALGORITHM = "sha256"
_CHUNK_SIZE = 1024 * 1024


def file_checksum(path: Path) -> str:
    """Return the hex SHA-256 digest of a file, read in 1 MiB chunks.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        while chunk := fh.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


def checksums_match(expected: str, actual: str) -> bool:
    """Compare two hex digests case-insensitively."""
    return expected.strip().lower() == actual.strip().lower()
