"""Write glTF resources as data URIs, bufferViews, or separate files.

Passes run in a fixed order:

1. images: transcoded concurrently, then externalized as each finishes;
2. shaders: externalized in index order;
3. unreachable accessors/bufferViews/buffers are pruned and the remaining
   buffers merged into one;
4. buffers: externalized, or appended to the caller's buffer storage;
5. textures get ``KHR_texture_basisu`` when Basis encoding was requested.

Buffers come last because embedding an image or shader as a bufferView adds
buffer bytes that pruning and merging must see. On failure the document is
left partially rewritten and should be discarded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterable

from .buffers import add_buffer, merge_buffers, remove_unused_elements
from .config import WriteOptions
from .errors import W_CONFIG_CONFLICT
from .gltf import add_extension_required, iter_entities, pipeline_extras
from .image_codecs import DefaultCodecs, ImageCodecs
from .logging import get_logger
from .mime import mime_type_from_extension
from .reporting import get_reporter, task
from .strategy import (
    BufferPoolAppend,
    WrittenResourceMap,
    write_buffer,
    write_resource,
    write_shader,
)
from .transcode import KTX2_EXTENSION, transcode_image

__all__ = [
    "KHR_TEXTURE_BASISU",
    "BUFFER_KINDS",
    "ImageWrite",
    "write_image",
    "write_resources",
    "write_resources_sync",
]

KHR_TEXTURE_BASISU = "KHR_texture_basisu"
BUFFER_KINDS = ("accessor", "bufferView", "buffer")

Document = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class ImageWrite:
    extension: str
    # True when an earlier image with the same resourceId was reused.
    reused: bool


async def write_image(
    gltf: Document,
    image: Dict[str, Any],
    index: int,
    written: WrittenResourceMap,
    options: WriteOptions,
    codecs: ImageCodecs,
    *,
    append: BufferPoolAppend = add_buffer,
    temp_dir: str | Path | None = None,
) -> ImageWrite:
    """Transcode and externalize one image."""
    result = await transcode_image(
        image, index, options, codecs, temp_dir=temp_dir
    )
    extras = pipeline_extras(image)
    relative_path = extras.get("relativePath")
    if relative_path and result.extension != result.source_extension:
        extras["relativePath"] = str(
            PurePosixPath(relative_path.replace("\\", "/")).with_suffix(
                result.extension
            )
        )
    fresh = write_resource(
        gltf,
        image,
        index,
        separate=options.separate_textures,
        data_uris=options.data_uris,
        extension=result.extension,
        written=written,
        options=options,
        append=append,
    )
    if result.extension == KTX2_EXTENSION:
        add_extension_required(gltf, KHR_TEXTURE_BASISU)
    if "bufferView" in image:
        # Without a file name the container is only identifiable by type.
        image["mimeType"] = mime_type_from_extension(result.extension)
    else:
        image.pop("mimeType", None)
    return ImageWrite(extension=result.extension, reused=not fresh)


async def _write_images(
    gltf: Document,
    written: WrittenResourceMap,
    options: WriteOptions,
    codecs: ImageCodecs,
    append: BufferPoolAppend,
    temp_dir: str | Path | None,
) -> list[str]:
    images = list(iter_entities(gltf, "images"))
    if not images:
        return []
    rep = get_reporter()

    async def _one(index: int, image: Dict[str, Any]) -> ImageWrite:
        done = await write_image(
            gltf,
            image,
            index,
            written,
            options,
            codecs,
            append=append,
            temp_dir=temp_dir,
        )
        rep.advance(
            "write.images", current_item=image.get("name") or f"image{index}"
        )
        return done

    with task("write.images", "Images", total=len(images)) as stats:
        results = await asyncio.gather(
            *(_one(index, image) for index, image in images)
        )
        reused = sum(1 for r in results if r.reused)
        stats["written"] = len(results) - reused
        stats["reused"] = reused
    extensions = [r.extension for r in results]
    counts: Dict[str, int] = {}
    for ext in extensions:
        counts[ext] = counts.get(ext, 0) + 1
    rep.status(
        f"Images summary: images={len(extensions)} "
        + " ".join(f"{ext.lstrip('.')}={n}" for ext, n in sorted(counts.items()))
    )
    return extensions


def _write_shaders(
    gltf: Document,
    written: WrittenResourceMap,
    options: WriteOptions,
    append: BufferPoolAppend,
) -> None:
    shaders = list(iter_entities(gltf, "shaders"))
    if not shaders:
        return
    rep = get_reporter()
    with task("write.shaders", "Shaders", total=len(shaders)) as stats:
        reused = 0
        for index, shader in shaders:
            if not write_shader(gltf, shader, index, written, options, append):
                reused += 1
            rep.advance(
                "write.shaders",
                current_item=shader.get("name") or f"shader{index}",
            )
        stats["written"] = len(shaders) - reused
        stats["reused"] = reused


def _write_buffers(
    gltf: Document,
    written: WrittenResourceMap,
    options: WriteOptions,
    append: BufferPoolAppend,
) -> None:
    buffers = list(iter_entities(gltf, "buffers"))
    if not buffers:
        return
    rep = get_reporter()
    total_bytes = 0
    with task("write.buffers", "Buffers", total=len(buffers)) as stats:
        for index, buffer in buffers:
            write_buffer(gltf, buffer, index, written, options, append)
            total_bytes += buffer.get("byteLength", 0)
            rep.advance("write.buffers")
        stats["bytes"] = total_bytes
        if options.separate_resources is not None:
            stats["files"] = len(options.separate_resources)
    rep.status(f"Buffers summary: buffers={len(buffers)} bytes={total_bytes}")


def _add_texture_basisu(gltf: Document) -> None:
    textures = list(iter_entities(gltf, "textures"))
    for _, texture in textures:
        extensions = texture.setdefault("extensions", {})
        extensions[KHR_TEXTURE_BASISU] = {"source": texture.get("source")}
    if textures:
        add_extension_required(gltf, KHR_TEXTURE_BASISU)


async def write_resources(
    gltf: Document,
    options: WriteOptions | None = None,
    *,
    codecs: ImageCodecs | None = None,
    append: BufferPoolAppend = add_buffer,
    merge: Callable[[Document, str | None], None] = merge_buffers,
    prune: Callable[[Document, Iterable[str]], None] = remove_unused_elements,
    temp_dir: str | Path | None = None,
) -> Document:
    """Externalize every image, shader and buffer of ``gltf`` in place.

    ``codecs`` defaults to :class:`DefaultCodecs`; ``append``, ``merge`` and
    ``prune`` are the buffer pool collaborators and can be replaced.
    Returns ``gltf``.
    """
    options = options if options is not None else WriteOptions()
    codecs = codecs if codecs is not None else DefaultCodecs()
    logger = get_logger()
    for conflict in options.conflicts():
        logger.warning("%s: %s", W_CONFIG_CONFLICT, conflict)

    # resourceId -> bufferView index or uri, for this call only.
    written: WrittenResourceMap = {}

    await _write_images(gltf, written, options, codecs, append, temp_dir)
    _write_shaders(gltf, written, options, append)

    prune(gltf, BUFFER_KINDS)
    merge(gltf, options.name)

    _write_buffers(gltf, written, options, append)

    if options.encode_basis:
        _add_texture_basisu(gltf)
    return gltf


def write_resources_sync(
    gltf: Document, options: WriteOptions | None = None, **kwargs: Any
) -> Document:
    """Blocking wrapper around :func:`write_resources`."""
    return asyncio.run(write_resources(gltf, options, **kwargs))
