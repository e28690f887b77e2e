# =============================================================================
# Document Store Adapter — Local Disk
# =============================================================================
# Persists an uploaded file and returns the absolute path the worker will
# read. Filenames are "<epoch millis>-<random 9 digits>-<original name>" so
# two uploads of "report.pdf" never collide.
# =============================================================================

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    filename: str      # original name as uploaded
    destination: str   # directory, with trailing separator
    path: str          # absolute path of the stored file
    size: int


class DocumentStore:
    """Saves uploads under `upload_dir`."""

    def __init__(self, upload_dir: str) -> None:
        self.upload_dir = Path(upload_dir)

    def save(self, filename: str, content: bytes) -> StoredFile:
        """
        Write `content` to a new unique file.

        Raises:
            OSError: If the directory cannot be created or written.
        """
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        # Strip any client-supplied directories.
        original = Path(filename).name or "upload.pdf"
        unique_prefix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
        target = (self.upload_dir / f"{unique_prefix}-{original}").resolve()
        target.write_bytes(content)

        logger.info("Saved upload: %s (%d bytes) → %s", original, len(content), target)
        return StoredFile(
            filename=original,
            destination=str(target.parent) + "/",
            path=str(target),
            size=len(content),
        )
