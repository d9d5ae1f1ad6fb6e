"""Per-image transcode pipeline.

Stages run strictly in order for one image::

    SNIFF -> [DECODE_WEBP] -> [BASIS_ENCODE | JPEG_RECOMPRESS] -> FINALIZE

The image bytes travel through a temp file because the external encoders
work on paths. Each stage deletes the files it consumed once its output has
been read back; the workspace context removes anything left behind when a
stage fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple

from .config import WriteOptions
from .gltf import get_source, pipeline_extras
from .image_codecs import ImageCodecs
from .image_format import get_image_extension
from .logging import get_logger
from .workspace import TempWorkspace

__all__ = ["Stage", "TranscodeResult", "transcode_image"]

KTX2_EXTENSION = ".ktx2"


class Stage(Enum):
    SNIFF = "sniff"
    DECODE_WEBP = "decode-webp"
    BASIS_ENCODE = "basis-encode"
    JPEG_RECOMPRESS = "jpeg-recompress"
    FINALIZE = "finalize"


@dataclass(frozen=True, slots=True)
class TranscodeResult:
    extension: str
    source_extension: str
    stages: Tuple[Stage, ...]


def _trace(index: int, stage: Stage, detail: str) -> None:
    get_logger().debug("image[%d] %s: %s", index, stage.value, detail)


async def _consume(ws: TempWorkspace, output: Path, *inputs: Path) -> bytes:
    data = await ws.read(output)
    for p in {output, *inputs}:
        await ws.remove(p)
    return data


async def transcode_image(
    image: Dict[str, Any],
    index: int,
    options: WriteOptions,
    codecs: ImageCodecs,
    *,
    temp_dir: str | Path | None = None,
) -> TranscodeResult:
    """Run ``image`` through the pipeline, replacing its source bytes.

    Returns the extension sniffed from the final bytes, which is the one the
    image must be externalized with.
    """
    logger = get_logger()
    extras = pipeline_extras(image)
    source = get_source(image, "images", index)
    extension = get_image_extension(source)
    source_extension = extension
    stages = [Stage.SNIFF]
    _trace(index, Stage.SNIFF, f"sniffed {extension}")

    async with TempWorkspace(temp_dir) as ws:
        if extension == ".webp" and options.decode_webp:
            png = await codecs.decode_lossy(source)
            extension = ".png"
            current: Path | None = await ws.write(extension, png)
            stages.append(Stage.DECODE_WEBP)
            _trace(index, Stage.DECODE_WEBP, f"-> {current.name}")
        else:
            current = await ws.write(extension, source)

        if options.encode_basis:
            # Basis wins over JPEG, even for input that is already KTX2.
            if extension != KTX2_EXTENSION:
                ws.adopt(current.with_suffix(KTX2_EXTENSION))
                out = await codecs.encode_compressed_texture(
                    current,
                    linear=options.basis_linear,
                    quality=options.basis_quality,
                )
                extras["source"] = await _consume(ws, ws.adopt(out), current)
                current = None
                stages.append(Stage.BASIS_ENCODE)
                _trace(
                    index, Stage.BASIS_ENCODE, f"{extension} -> {out.suffix}"
                )
        elif options.jpeg_compression_ratio:
            ws.adopt(current.with_suffix(".jpg"))
            out = await codecs.reencode_raster(
                current, quality=options.jpeg_compression_ratio
            )
            extras["source"] = await _consume(ws, ws.adopt(out), current)
            current = None
            stages.append(Stage.JPEG_RECOMPRESS)
            _trace(
                index, Stage.JPEG_RECOMPRESS, f"{extension} -> {out.suffix}"
            )

        if current is not None:
            extras["source"] = await _consume(ws, current)

    final = get_image_extension(extras["source"])
    stages.append(Stage.FINALIZE)
    logger.info("image[%d] final extension %s", index, final)
    return TranscodeResult(
        extension=final,
        source_extension=source_extension,
        stages=tuple(stages),
    )
