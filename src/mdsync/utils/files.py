"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import NamedTuple


class FileSignature(NamedTuple):
    """Identity of one on-disk version of a file."""

    mtime_ns: int
    sha256: str


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def file_signature(path: Path) -> FileSignature | None:
    """Return the signature of ``path``, or ``None`` when it is missing or unreadable."""
    try:
        mtime_ns = path.stat().st_mtime_ns
        return FileSignature(mtime_ns, compute_sha256(path))
    except OSError:
        return None


def resolve_within(base_dir: Path, relative: str) -> Path:
    """Resolve ``relative`` under ``base_dir``, refusing anything that escapes it.

    Raises ``ValueError`` for null bytes, ``..`` segments, doubled slashes,
    absolute paths and symlinks pointing outside ``base_dir``.
    """
    if "\0" in relative:
        raise ValueError("path contains null byte")
    if ".." in relative or "//" in relative or relative.startswith("/"):
        raise ValueError("path must stay within the document directory")

    base = os.path.realpath(str(base_dir))
    candidate = os.path.realpath(os.path.join(base, relative))
    # Compare with a trailing separator so /docs does not match /docs2
    if not (candidate + os.sep).startswith(base + os.sep):
        raise ValueError("path must stay within the document directory")
    return Path(candidate)
