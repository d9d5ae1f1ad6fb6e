"""Buffer pool collaborators: append, merge, and unreachable-element pruning.

The resource writer only relies on their contracts:

* :func:`add_buffer` appends bytes as a new buffer + bufferView and returns
  the bufferView index;
* :func:`merge_buffers` collapses every buffer into one, rewriting each
  bufferView's ``buffer``/``byteOffset``;
* :func:`remove_unused_elements` drops accessors, bufferViews and buffers
  nothing references and re-indexes the survivors.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Iterator, List, Tuple

from .gltf import iter_entities, pipeline_extras
from .logging import get_logger

__all__ = [
    "BUFFER_ALIGNMENT",
    "add_buffer",
    "merge_buffers",
    "remove_unused_elements",
]

BUFFER_ALIGNMENT = 8

# (holder, key) such that holder[key] is an index into some array.
Ref = Tuple[Dict[str, Any], str]


def add_buffer(gltf: Dict[str, Any], data: bytes) -> int:
    buffers = gltf.setdefault("buffers", [])
    buffers.append(
        {"byteLength": len(data), "extras": {"_pipeline": {"source": data}}}
    )
    views = gltf.setdefault("bufferViews", [])
    views.append(
        {"buffer": len(buffers) - 1, "byteOffset": 0, "byteLength": len(data)}
    )
    return len(views) - 1


def merge_buffers(gltf: Dict[str, Any], name: str | None = None) -> None:
    buffers = gltf.get("buffers") or []
    if not buffers:
        return
    if name is None:
        name = next((b["name"] for b in buffers if b.get("name")), None)

    merged = bytearray()
    for _, view in iter_entities(gltf, "bufferViews"):
        source = pipeline_extras(buffers[view["buffer"]]).get("source", b"")
        start = view.get("byteOffset", 0)
        chunk = bytes(source[start : start + view["byteLength"]])
        pad = (-len(merged)) % BUFFER_ALIGNMENT
        merged += b"\x00" * pad
        view["byteOffset"] = len(merged)
        view["buffer"] = 0
        merged += chunk

    buffer: Dict[str, Any] = {
        "byteLength": len(merged),
        "extras": {"_pipeline": {"source": bytes(merged)}},
    }
    if name is not None:
        buffer["name"] = name
    get_logger().debug(
        "Merged %d buffer(s) into one of %d bytes", len(buffers), len(merged)
    )
    gltf["buffers"] = [buffer]


def _accessor_refs(gltf: Dict[str, Any]) -> Iterator[Ref]:
    for _, mesh in iter_entities(gltf, "meshes"):
        for primitive in mesh.get("primitives", []):
            attributes = primitive.get("attributes", {})
            for semantic in attributes:
                yield attributes, semantic
            if "indices" in primitive:
                yield primitive, "indices"
            for target in primitive.get("targets", []):
                for semantic in target:
                    yield target, semantic
    for _, skin in iter_entities(gltf, "skins"):
        if "inverseBindMatrices" in skin:
            yield skin, "inverseBindMatrices"
    for _, animation in iter_entities(gltf, "animations"):
        for sampler in animation.get("samplers", []):
            for key in ("input", "output"):
                if key in sampler:
                    yield sampler, key
    for _, node in iter_entities(gltf, "nodes"):
        instancing = node.get("extensions", {}).get("EXT_mesh_gpu_instancing")
        if instancing:
            attributes = instancing.get("attributes", {})
            for semantic in attributes:
                yield attributes, semantic


def _key_refs(node: Any, key: str) -> Iterator[Ref]:
    if isinstance(node, dict):
        for k, value in node.items():
            if k == key and isinstance(value, int) and not isinstance(value, bool):
                yield node, k
            else:
                yield from _key_refs(value, key)
    elif isinstance(node, list):
        for value in node:
            yield from _key_refs(value, key)


def _buffer_view_refs(gltf: Dict[str, Any]) -> Iterator[Ref]:
    for kind, items in gltf.items():
        if kind == "bufferViews":
            continue
        yield from _key_refs(items, "bufferView")


def _buffer_refs(gltf: Dict[str, Any]) -> Iterator[Ref]:
    return _key_refs(gltf.get("bufferViews") or [], "buffer")


_REF_FINDERS: Dict[str, Tuple[str, Callable[[Dict[str, Any]], Iterable[Ref]]]] = {
    "accessor": ("accessors", _accessor_refs),
    "bufferView": ("bufferViews", _buffer_view_refs),
    "buffer": ("buffers", _buffer_refs),
}


def _prune(gltf: Dict[str, Any], kind: str) -> int:
    array_name, finder = _REF_FINDERS[kind]
    items: List[Any] = gltf.get(array_name) or []
    if not items:
        return 0
    refs = list(finder(gltf))
    used = {holder[key] for holder, key in refs}
    remap: Dict[int, int] = {}
    kept: List[Any] = []
    for index, item in enumerate(items):
        if index in used:
            remap[index] = len(kept)
            kept.append(item)
    for holder, key in refs:
        holder[key] = remap[holder[key]]
    removed = len(items) - len(kept)
    if kept:
        gltf[array_name] = kept
    else:
        del gltf[array_name]
    return removed


def remove_unused_elements(
    gltf: Dict[str, Any],
    kinds: Iterable[str] = ("accessor", "bufferView", "buffer"),
) -> None:
    """Remove unreferenced elements of ``kinds``.

    Kinds are processed in dependency order (accessors before bufferViews
    before buffers) whatever order they are given in, so removing an accessor
    can orphan its bufferView within the same call.
    """
    wanted = set(kinds)
    unknown = wanted - set(_REF_FINDERS)
    if unknown:
        raise ValueError(f"Unsupported element kinds: {sorted(unknown)}")
    logger = get_logger()
    for kind in _REF_FINDERS:
        if kind not in wanted:
            continue
        removed = _prune(gltf, kind)
        if removed:
            logger.debug("Removed %d unused %s(s)", removed, kind)
