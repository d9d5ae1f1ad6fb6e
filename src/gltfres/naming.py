"""Deterministic file names for resources written as separate files.

Pure functions: nothing here touches the filesystem. The separate-resource
sink doubles as the collision oracle, so names stay unique within one write.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import E_ORPHAN_SHADER, document_error
from .gltf import FRAGMENT_SHADER, iter_entities

__all__ = [
    "find_program",
    "shader_stage",
    "get_name",
    "get_relative_path",
]


def find_program(
    gltf: Dict[str, Any], shader_index: int
) -> Optional[Tuple[int, Dict[str, Any]]]:
    """Return ``(index, program)`` of the first program using the shader."""
    for index, program in iter_entities(gltf, "programs"):
        if shader_index in (
            program.get("fragmentShader"),
            program.get("vertexShader"),
        ):
            return index, program
    return None


def shader_stage(shader: Dict[str, Any]) -> str:
    return "FS" if shader.get("type") == FRAGMENT_SHADER else "VS"


def _shader_name(
    gltf: Dict[str, Any],
    shader: Dict[str, Any],
    index: int,
    gltf_name: str | None,
) -> str:
    found = find_program(gltf, index)
    if found is None:
        raise document_error(
            E_ORPHAN_SHADER,
            f"shader[{index}] is not used by any program",
            {"shader": index},
        )
    program_index, program = found
    stage = shader_stage(shader)
    if program.get("name") is not None:
        return program["name"] + stage
    if gltf_name is not None:
        return f"{gltf_name}{stage}{program_index}"
    return f"{stage.lower()}{program_index}"


def get_name(
    gltf: Dict[str, Any],
    entity: Dict[str, Any],
    index: int,
    extension: str,
    gltf_name: str | None = None,
) -> str:
    """Base file name (no extension) for ``entity``.

    The kind is inferred from the extension: ``.bin`` is a buffer, ``.glsl``
    a shader, anything else an image.
    """
    if entity.get("name") is not None:
        return entity["name"]
    if extension == ".bin":
        if gltf_name is not None:
            return f"{gltf_name}{index}"
        return f"buffer{index}"
    if extension == ".glsl":
        return _shader_name(gltf, entity, index, gltf_name)
    if gltf_name is not None:
        return f"{gltf_name}{index}"
    return f"image{index}"


def get_relative_path(
    gltf: Dict[str, Any],
    entity: Dict[str, Any],
    index: int,
    extension: str,
    taken: Mapping[str, bytes] | None,
    gltf_name: str | None = None,
) -> str:
    explicit = entity.get("extras", {}).get("_pipeline", {}).get("relativePath")
    if explicit is not None:
        return explicit.replace("\\", "/")

    name = get_name(gltf, entity, index, extension, gltf_name)
    relative_path = name + extension
    if taken is None:
        return relative_path
    number = 1
    while relative_path in taken:
        relative_path = f"{name}_{number}{extension}"
        number += 1
    return relative_path
