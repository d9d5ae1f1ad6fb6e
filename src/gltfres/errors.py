"""Error definitions for gltfres."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

E_TRANSCODE = "E_TRANSCODE"
E_IMAGE_FORMAT = "E_IMAGE_FORMAT"
E_ORPHAN_SHADER = "E_ORPHAN_SHADER"
E_MISSING_SOURCE = "E_MISSING_SOURCE"
E_INVALID_DOCUMENT = "E_INVALID_DOCUMENT"
E_INVALID_OPTION = "E_INVALID_OPTION"

# Not raised; reported as a warning when two options compete.
W_CONFIG_CONFLICT = "W_CONFIG_CONFLICT"


@dataclass
class ResourceWriteError(Exception):
    code: str
    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }


class TranscodeError(ResourceWriteError):
    """An external codec failed or exited with a non-zero status."""


class ImageFormatError(ResourceWriteError):
    """Image bytes carry no recognizable header."""


class DocumentError(ResourceWriteError):
    pass


def transcode_error(
    message: str, context: Optional[Dict[str, Any]] = None
) -> TranscodeError:
    return TranscodeError(code=E_TRANSCODE, message=message, context=context)


def document_error(
    code: str, message: str, context: Optional[Dict[str, Any]] = None
) -> DocumentError:
    return DocumentError(code=code, message=message, context=context)


__all__ = [
    "ResourceWriteError",
    "TranscodeError",
    "ImageFormatError",
    "DocumentError",
    "transcode_error",
    "document_error",
    "E_TRANSCODE",
    "E_IMAGE_FORMAT",
    "E_ORPHAN_SHADER",
    "E_MISSING_SOURCE",
    "E_INVALID_DOCUMENT",
    "E_INVALID_OPTION",
    "W_CONFIG_CONFLICT",
]
