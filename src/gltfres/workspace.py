"""Per-transcode temporary files.

Every workspace owns a uuid so concurrent transcodes never share a path.
Files are named ``<prefix>-<uuid><ext>`` in one directory, which is what
external encoders that emit a sibling file next to their input expect.
"""

from __future__ import annotations

import tempfile
import uuid
from pathlib import Path

from .logging import get_logger
from .utils.aio import run_blocking

__all__ = ["TempWorkspace"]


class TempWorkspace:
    def __init__(self, root: str | Path | None = None, prefix: str = "image"):
        self.root = Path(root) if root is not None else Path(tempfile.gettempdir())
        self.uid = uuid.uuid4().hex
        self.prefix = prefix
        self._owned: set[Path] = set()

    @property
    def owned(self) -> frozenset[Path]:
        return frozenset(self._owned)

    def path(self, extension: str) -> Path:
        """Allocate (but do not create) the workspace file for ``extension``."""
        p = self.root / f"{self.prefix}-{self.uid}{extension}"
        self._owned.add(p)
        return p

    def adopt(self, path: Path) -> Path:
        """Take ownership of a file an external tool produced."""
        self._owned.add(path)
        return path

    async def write(self, extension: str, data: bytes) -> Path:
        p = self.path(extension)
        await run_blocking(p.write_bytes, data)
        return p

    async def read(self, path: Path) -> bytes:
        return await run_blocking(path.read_bytes)

    async def remove(self, path: Path) -> None:
        await run_blocking(path.unlink)
        self._owned.discard(path)

    def cleanup(self) -> None:
        """Delete every owned file still on disk."""
        logger = get_logger()
        for p in sorted(self._owned):
            try:
                p.unlink()
            except FileNotFoundError:
                pass
            else:
                logger.debug("Removed leftover temp file %s", p.name)
        self._owned.clear()

    async def __aenter__(self) -> "TempWorkspace":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await run_blocking(self.cleanup)
