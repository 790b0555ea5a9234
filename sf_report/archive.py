"""Compressed archives of run log directories."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Optional


def archive_directory(path: Optional[Path]) -> bytes:
    """Return a gzip tarball of ``path`` with members relative to it.

    A missing directory yields a valid, empty archive.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        if path is not None and path.is_dir():
            for item in sorted(path.rglob("*")):
                tar.add(item, arcname=str(item.relative_to(path)), recursive=False)
    return buffer.getvalue()
