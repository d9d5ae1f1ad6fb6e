"""Write options and their loading from JSON/YAML files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import E_INVALID_OPTION, ResourceWriteError

__all__ = [
    "BufferStorage",
    "WriteOptions",
    "check_quality",
    "load_options",
]


@dataclass(slots=True)
class BufferStorage:
    """Single growable region receiving every buffer's bytes."""

    buffer: bytearray = field(default_factory=bytearray)

    def append(self, data: bytes) -> int:
        """Append ``data``; return the offset it was written at."""
        offset = len(self.buffer)
        self.buffer += data
        return offset

    def __len__(self) -> int:
        return len(self.buffer)


@dataclass(slots=True)
class WriteOptions:
    name: str | None = None
    separate_buffers: bool = False
    separate_textures: bool = False
    separate_shaders: bool = False
    data_uris: bool = False
    encode_basis: bool = False
    basis_quality: int | None = None
    basis_linear: bool = False
    decode_webp: bool = False
    jpeg_compression_ratio: int | None = None
    # When set, buffer bytes land here instead of being externalized.
    buffer_storage: BufferStorage | None = None
    # Receives relative path -> bytes for every separately written file.
    separate_resources: Dict[str, bytes] | None = None

    def conflicts(self) -> list[str]:
        """Describe option pairs where one silently overrides the other."""
        out: list[str] = []
        if self.encode_basis and self.jpeg_compression_ratio:
            out.append(
                "encode_basis overrides jpeg_compression_ratio "
                f"({self.jpeg_compression_ratio}); JPEG re-compression skipped"
            )
        return out

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WriteOptions":
        """Build options from snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        aliases = {_camel(n): n for n in known}
        aliases["decodeWebP"] = "decode_webp"
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            target = key if key in known else aliases.get(key)
            if target is None:
                raise ResourceWriteError(
                    code=E_INVALID_OPTION,
                    message=f"Unknown option: {key}",
                    context={"option": key},
                )
            kwargs[target] = value
        for quality_key in ("basis_quality", "jpeg_compression_ratio"):
            value = kwargs.get(quality_key)
            if value is not None:
                check_quality(quality_key, value)
        return cls(**kwargs)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def check_quality(key: str, value: Any) -> None:
    """Raise ``E_INVALID_OPTION`` unless ``value`` is in range for ``key``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ResourceWriteError(
            code=E_INVALID_OPTION,
            message=f"{key} must be an integer",
            context={"option": key, "value": value},
        )
    upper = 255 if key == "basis_quality" else 100
    if not 1 <= value <= upper:
        raise ResourceWriteError(
            code=E_INVALID_OPTION,
            message=f"{key} must be within 1..{upper}",
            context={"option": key, "value": value},
        )


def load_options(path: str | Path) -> WriteOptions:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        data: Any = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Root of options file must be an object")
    return WriteOptions.from_mapping(data)
