"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from pathlib import Path


def hash_bytes(data: bytes) -> str:
    """Return the SHA256 hex digest of a byte buffer."""
    return hashlib.sha256(data).hexdigest()


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def is_hidden(path: Path) -> bool:
    """True when any component of ``path`` starts with a dot."""
    return any(part.startswith(".") and part not in (".", "..") for part in Path(path).parts)


def is_under(path: str, directory: Path) -> bool:
    """True when ``path`` lies inside ``directory`` (component-wise, not a string prefix)."""
    try:
        Path(path).relative_to(directory)
    except ValueError:
        return False
    return True
