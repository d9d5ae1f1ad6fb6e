"""Apply one of the three resource representations, with identity dedup.

A resource ends up as exactly one of

* a ``bufferView`` index into the shared buffer pool,
* a ``data:`` URI,
* a relative ``uri`` whose bytes are placed in the separate-resource sink.

``written`` maps ``resourceId`` to the target already produced during this
write, so resources sharing an identity share one target and their bytes are
stored once.
"""

from __future__ import annotations

import base64
from typing import Any, Callable, Dict, Union

from .buffers import add_buffer
from .config import WriteOptions
from .gltf import get_source
from .logging import get_logger
from .mime import mime_type_from_extension
from .naming import get_relative_path

__all__ = [
    "WrittenResourceMap",
    "BufferPoolAppend",
    "BUFFER_EXTENSION",
    "SHADER_EXTENSION",
    "write_resource",
    "write_buffer",
    "write_shader",
    "write_data_uri",
    "write_buffer_view",
    "write_file",
    "write_buffer_storage",
]

WrittenResourceMap = Dict[str, Union[int, str]]
BufferPoolAppend = Callable[[Dict[str, Any], bytes], int]

BUFFER_EXTENSION = ".bin"
SHADER_EXTENSION = ".glsl"

_KIND_BY_EXTENSION = {BUFFER_EXTENSION: "buffers", SHADER_EXTENSION: "shaders"}


def _kind(extension: str) -> str:
    return _KIND_BY_EXTENSION.get(extension, "images")


def _resource_id(entity: Dict[str, Any]) -> str | None:
    return entity.get("extras", {}).get("_pipeline", {}).get("resourceId")


def write_data_uri(
    entity: Dict[str, Any],
    index: int,
    extension: str,
    written: WrittenResourceMap,
) -> bool:
    entity.pop("bufferView", None)
    resource_id = _resource_id(entity)
    if resource_id is not None and resource_id in written:
        entity["uri"] = written[resource_id]
        return False

    source = get_source(entity, _kind(extension), index)
    mime = mime_type_from_extension(extension)
    encoded = base64.b64encode(source).decode("ascii")
    entity["uri"] = f"data:{mime};base64,{encoded}"
    if resource_id is not None:
        written[resource_id] = entity["uri"]
    return True


def write_buffer_view(
    gltf: Dict[str, Any],
    entity: Dict[str, Any],
    index: int,
    extension: str,
    written: WrittenResourceMap,
    append: BufferPoolAppend = add_buffer,
) -> bool:
    entity.pop("uri", None)
    resource_id = _resource_id(entity)
    if resource_id is not None and resource_id in written:
        entity["bufferView"] = written[resource_id]
        return False

    source = get_source(entity, _kind(extension), index)
    entity["bufferView"] = append(gltf, source)
    if resource_id is not None:
        written[resource_id] = entity["bufferView"]
    return True


def write_file(
    gltf: Dict[str, Any],
    entity: Dict[str, Any],
    index: int,
    extension: str,
    written: WrittenResourceMap,
    options: WriteOptions,
) -> bool:
    entity.pop("bufferView", None)
    resource_id = _resource_id(entity)
    if resource_id is not None and resource_id in written:
        entity["uri"] = written[resource_id]
        return False

    source = get_source(entity, _kind(extension), index)
    relative_path = get_relative_path(
        gltf,
        entity,
        index,
        extension,
        options.separate_resources,
        options.name,
    )
    entity["uri"] = relative_path
    if options.separate_resources is not None:
        options.separate_resources[relative_path] = source
    if resource_id is not None:
        written[resource_id] = relative_path
    return True


def write_resource(
    gltf: Dict[str, Any],
    entity: Dict[str, Any],
    index: int,
    *,
    separate: bool,
    data_uris: bool,
    extension: str,
    written: WrittenResourceMap,
    options: WriteOptions,
    append: BufferPoolAppend = add_buffer,
) -> bool:
    """Externalize ``entity``; ``separate`` wins over ``data_uris``.

    Returns False when an earlier resource with the same ``resourceId`` was
    reused instead of writing new bytes.
    """
    if separate:
        return write_file(gltf, entity, index, extension, written, options)
    elif data_uris:
        return write_data_uri(entity, index, extension, written)
    else:
        return write_buffer_view(gltf, entity, index, extension, written, append)


def write_buffer_storage(
    buffer: Dict[str, Any], index: int, options: WriteOptions
) -> None:
    assert options.buffer_storage is not None
    offset = options.buffer_storage.append(get_source(buffer, "buffers", index))
    get_logger().debug("buffer[%d] stored at offset %d", index, offset)


def write_buffer(
    gltf: Dict[str, Any],
    buffer: Dict[str, Any],
    index: int,
    written: WrittenResourceMap,
    options: WriteOptions,
    append: BufferPoolAppend = add_buffer,
) -> bool:
    if options.buffer_storage is not None and not options.separate_buffers:
        write_buffer_storage(buffer, index, options)
        return True
    # A buffer is never embedded as a bufferView of itself.
    return write_resource(
        gltf,
        buffer,
        index,
        separate=options.separate_buffers,
        data_uris=True,
        extension=BUFFER_EXTENSION,
        written=written,
        options=options,
        append=append,
    )


def write_shader(
    gltf: Dict[str, Any],
    shader: Dict[str, Any],
    index: int,
    written: WrittenResourceMap,
    options: WriteOptions,
    append: BufferPoolAppend = add_buffer,
) -> bool:
    return write_resource(
        gltf,
        shader,
        index,
        separate=options.separate_shaders,
        data_uris=options.data_uris,
        extension=SHADER_EXTENSION,
        written=written,
        options=options,
        append=append,
    )
