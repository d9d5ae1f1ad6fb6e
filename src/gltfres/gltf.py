"""Helpers over the in-memory glTF document (a JSON ``dict``)."""

from __future__ import annotations

from typing import Any, Dict, Iterator, Tuple

from .errors import E_MISSING_SOURCE, document_error

__all__ = [
    "FRAGMENT_SHADER",
    "VERTEX_SHADER",
    "iter_entities",
    "pipeline_extras",
    "get_source",
    "add_extension_used",
    "add_extension_required",
    "remove_pipeline_extras",
]

# WebGL shader stage enums.
FRAGMENT_SHADER = 35632
VERTEX_SHADER = 35633

Entity = Dict[str, Any]


def iter_entities(gltf: Dict[str, Any], kind: str) -> Iterator[Tuple[int, Entity]]:
    """Yield ``(index, entity)`` for the ``kind`` array (e.g. ``"images"``)."""
    items = gltf.get(kind) or []
    for index, entity in enumerate(items):
        if entity is not None:
            yield index, entity


def pipeline_extras(entity: Entity) -> Dict[str, Any]:
    extras = entity.setdefault("extras", {})
    return extras.setdefault("_pipeline", {})


def get_source(entity: Entity, kind: str, index: int) -> bytes:
    source = entity.get("extras", {}).get("_pipeline", {}).get("source")
    if source is None:
        raise document_error(
            E_MISSING_SOURCE,
            f"{kind}[{index}] has no pipeline source bytes",
            {"kind": kind, "index": index},
        )
    if isinstance(source, str):
        return source.encode("utf-8")
    return bytes(source)


def add_extension_used(gltf: Dict[str, Any], extension: str) -> None:
    used = gltf.setdefault("extensionsUsed", [])
    if extension not in used:
        used.append(extension)


def add_extension_required(gltf: Dict[str, Any], extension: str) -> None:
    """Mark ``extension`` required (and therefore also used)."""
    add_extension_used(gltf, extension)
    required = gltf.setdefault("extensionsRequired", [])
    if extension not in required:
        required.append(extension)


def remove_pipeline_extras(gltf: Dict[str, Any]) -> None:
    """Strip ``extras._pipeline`` everywhere, dropping emptied ``extras``."""

    def _walk(node: Any) -> None:
        if isinstance(node, dict):
            extras = node.get("extras")
            if isinstance(extras, dict) and "_pipeline" in extras:
                del extras["_pipeline"]
                if not extras:
                    del node["extras"]
            for value in node.values():
                _walk(value)
        elif isinstance(node, list):
            for value in node:
                _walk(value)

    _walk(gltf)
