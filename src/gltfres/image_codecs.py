"""Codec capability used by the image transcode pipeline.

The pipeline only talks to an :class:`ImageCodecs` object, so tests can
substitute fakes and callers can plug in other tools. :class:`DefaultCodecs`
decodes WebP and re-encodes JPEG with Pillow and produces KTX2 containers by
running the ``basisu`` command-line encoder.
"""

from __future__ import annotations

import io
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from PIL import Image, UnidentifiedImageError

from .errors import transcode_error
from .logging import get_logger
from .utils.aio import run_blocking

__all__ = ["ImageCodecs", "DefaultCodecs", "basisu_command"]

_STDERR_TAIL = 400


class ImageCodecs(Protocol):
    async def decode_lossy(self, data: bytes) -> bytes:
        """Decode WebP bytes to PNG bytes."""
        ...

    async def encode_compressed_texture(
        self, path: Path, *, linear: bool, quality: int | None
    ) -> Path:
        """Encode ``path`` to a sibling ``.ktx2`` file and return its path."""
        ...

    async def reencode_raster(self, path: Path, *, quality: int) -> Path:
        """Re-encode ``path`` to a sibling ``.jpg`` file and return its path."""
        ...


def basisu_command(
    executable: str,
    path: Path,
    *,
    linear: bool = False,
    quality: int | None = None,
) -> list[str]:
    cmd = [executable, "-ktx2", "-mipmap"]
    if linear:
        cmd.append("-linear")
    if quality:
        cmd += ["-q", str(quality)]
    cmd += [str(path), "-output_path", str(path.parent)]
    return cmd


def _decode_to_png(data: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            out = io.BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError) as e:
        raise transcode_error(f"WebP decode failed: {e}") from e
    return out.getvalue()


def _reencode_jpeg(path: Path, quality: int) -> Path:
    target = path.with_suffix(".jpg")
    try:
        with Image.open(path) as img:
            img.load()
            if img.mode not in ("RGB", "L", "CMYK"):
                img = img.convert("RGB")
            img.save(target, format="JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        raise transcode_error(
            f"JPEG re-encode failed: {e}", {"input": path.name}
        ) from e
    return target


class DefaultCodecs:
    def __init__(self, basisu: str = "basisu"):
        self.basisu = basisu

    async def decode_lossy(self, data: bytes) -> bytes:
        return await run_blocking(_decode_to_png, data)

    async def encode_compressed_texture(
        self, path: Path, *, linear: bool, quality: int | None
    ) -> Path:
        cmd = basisu_command(self.basisu, path, linear=linear, quality=quality)
        await run_blocking(self._run, cmd)
        out = path.with_suffix(".ktx2")
        if not out.exists():
            raise transcode_error(
                "basisu reported success but produced no output",
                {"expected": out.name},
            )
        return out

    async def reencode_raster(self, path: Path, *, quality: int) -> Path:
        return await run_blocking(_reencode_jpeg, path, quality)

    def _run(self, cmd: Sequence[str]) -> None:
        if shutil.which(cmd[0]) is None:
            raise transcode_error(
                f"Encoder not found on PATH: {cmd[0]}", {"cmd": list(cmd)}
            )
        get_logger().debug("Running %s", " ".join(cmd))
        result = subprocess.run(
            list(cmd), capture_output=True, text=True, check=False
        )
        if result.returncode != 0:
            raise transcode_error(
                f"{Path(cmd[0]).name} exited with status {result.returncode}",
                {
                    "cmd": list(cmd),
                    "stderr": (result.stderr or "")[-_STDERR_TAIL:],
                },
            )
