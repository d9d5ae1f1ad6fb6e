"""Reading and writing glTF / GLB files around the resource writer.

:func:`load_gltf` fills ``extras._pipeline.source`` for every buffer, image
and shader so :func:`gltfres.writer.write_resources` can externalize them;
the save functions strip the pipeline extras and put the bytes on disk.
"""

from __future__ import annotations

import base64
import json
import re
import struct
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote

from .errors import E_INVALID_DOCUMENT, E_MISSING_SOURCE, document_error
from .gltf import iter_entities, pipeline_extras, remove_pipeline_extras
from .logging import get_logger
from .utils.paths import safe_file_path

__all__ = [
    "GLB_MAGIC",
    "load_gltf",
    "save_gltf",
    "save_glb",
    "decode_data_uri",
]

GLB_MAGIC = b"glTF"
GLB_VERSION = 2
CHUNK_TYPE_JSON = 0x4E4F534A  # b"JSON"
CHUNK_TYPE_BIN = 0x004E4942  # b"BIN\0"

_DATA_URI_RE = re.compile(r"^data:([^;,]*)?(;base64)?,(.*)$", re.DOTALL)

Document = Dict[str, Any]


def decode_data_uri(uri: str) -> bytes | None:
    """Return the payload of a ``data:`` URI, or None for other URIs."""
    m = _DATA_URI_RE.match(uri)
    if not m:
        return None
    if m.group(2):
        return base64.b64decode(m.group(3))
    return unquote(m.group(3)).encode("utf-8")


def _parse_glb(data: bytes) -> tuple[Document, Optional[bytes]]:
    if len(data) < 20:
        raise document_error(E_INVALID_DOCUMENT, "GLB too small")
    magic, version, length = struct.unpack_from("<4sII", data, 0)
    if magic != GLB_MAGIC or version != GLB_VERSION:
        raise document_error(
            E_INVALID_DOCUMENT,
            "Unsupported GLB header",
            {"magic": magic.hex(), "version": version},
        )
    offset = 12
    gltf: Optional[Document] = None
    binary: Optional[bytes] = None
    while offset + 8 <= min(length, len(data)):
        chunk_len, chunk_type = struct.unpack_from("<II", data, offset)
        chunk = data[offset + 8 : offset + 8 + chunk_len]
        if chunk_type == CHUNK_TYPE_JSON and gltf is None:
            gltf = json.loads(chunk.decode("utf-8"))
        elif chunk_type == CHUNK_TYPE_BIN and binary is None:
            binary = bytes(chunk)
        offset += 8 + chunk_len
    if gltf is None:
        raise document_error(E_INVALID_DOCUMENT, "GLB has no JSON chunk")
    return gltf, binary


def _read_uri(base_dir: Path, uri: str) -> tuple[bytes, Optional[Path]]:
    payload = decode_data_uri(uri)
    if payload is not None:
        return payload, None
    path = safe_file_path(base_dir, unquote(uri))
    return path.read_bytes(), path


def _load_buffers(gltf: Document, base_dir: Path, binary: Optional[bytes]) -> None:
    for index, buffer in iter_entities(gltf, "buffers"):
        extras = pipeline_extras(buffer)
        uri = buffer.pop("uri", None)
        if uri is not None:
            extras["source"], path = _read_uri(base_dir, uri)
            if path is not None:
                extras["relativePath"] = uri
        elif index == 0 and binary is not None:
            extras["source"] = binary[: buffer.get("byteLength", len(binary))]
        else:
            raise document_error(
                E_MISSING_SOURCE,
                f"buffers[{index}] has no uri",
                {"index": index},
            )


def _buffer_view_bytes(gltf: Document, view_index: int) -> bytes:
    view = gltf["bufferViews"][view_index]
    source = pipeline_extras(gltf["buffers"][view["buffer"]])["source"]
    start = view.get("byteOffset", 0)
    return bytes(source[start : start + view["byteLength"]])


def _load_embedded(gltf: Document, kind: str, base_dir: Path) -> None:
    for index, entity in iter_entities(gltf, kind):
        extras = pipeline_extras(entity)
        uri = entity.pop("uri", None)
        if uri is not None:
            extras["source"], path = _read_uri(base_dir, uri)
            if path is not None:
                # Entities pointing at the same file share one output.
                extras["resourceId"] = str(path)
                extras["relativePath"] = uri
        elif "bufferView" in entity:
            extras["source"] = _buffer_view_bytes(gltf, entity["bufferView"])
            extras["resourceId"] = f"bufferView:{entity['bufferView']}"
        else:
            raise document_error(
                E_MISSING_SOURCE,
                f"{kind}[{index}] has neither uri nor bufferView",
                {"kind": kind, "index": index},
            )


def load_gltf(path: str | Path) -> Document:
    p = Path(path)
    raw = p.read_bytes()
    binary: Optional[bytes] = None
    if raw[:4] == GLB_MAGIC:
        gltf, binary = _parse_glb(raw)
    else:
        gltf = json.loads(raw.decode("utf-8"))
    if not isinstance(gltf, dict):
        raise document_error(E_INVALID_DOCUMENT, "Root of glTF must be an object")
    base_dir = p.parent
    _load_buffers(gltf, base_dir, binary)
    _load_embedded(gltf, "images", base_dir)
    _load_embedded(gltf, "shaders", base_dir)
    get_logger().debug(
        "Loaded %s: buffers=%d images=%d shaders=%d",
        p.name,
        len(gltf.get("buffers", [])),
        len(gltf.get("images", [])),
        len(gltf.get("shaders", [])),
    )
    return gltf


def _write_separate(
    out_dir: Path, separate_resources: Mapping[str, bytes] | None
) -> List[Path]:
    written: List[Path] = []
    for relative_path, data in (separate_resources or {}).items():
        target = safe_file_path(out_dir, relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        written.append(target)
    return written


def save_gltf(
    gltf: Document,
    path: str | Path,
    separate_resources: Mapping[str, bytes] | None = None,
) -> List[Path]:
    """Write ``gltf`` as JSON plus its separate files; return all paths."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    remove_pipeline_extras(gltf)
    p.write_text(json.dumps(gltf, indent=2), encoding="utf-8")
    return [p, *_write_separate(p.parent, separate_resources)]


def _chunk(chunk_type: int, data: bytes, pad: bytes) -> bytes:
    data += pad * ((-len(data)) % 4)
    return struct.pack("<II", len(data), chunk_type) + data


def save_glb(
    gltf: Document,
    path: str | Path,
    binary: bytes,
    separate_resources: Mapping[str, bytes] | None = None,
) -> List[Path]:
    """Write ``gltf`` as GLB with ``binary`` as its BIN chunk."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    remove_pipeline_extras(gltf)
    if binary:
        buffers = gltf.setdefault("buffers", [{}])
        buffers[0].pop("uri", None)
        buffers[0]["byteLength"] = len(binary)
    body = _chunk(
        CHUNK_TYPE_JSON,
        json.dumps(gltf, separators=(",", ":")).encode("utf-8"),
        b" ",
    )
    if binary:
        body += _chunk(CHUNK_TYPE_BIN, bytes(binary), b"\x00")
    header = struct.pack("<4sII", GLB_MAGIC, GLB_VERSION, 12 + len(body))
    p.write_bytes(header + body)
    return [p, *_write_separate(p.parent, separate_resources)]
