"""MIME type lookup by file extension."""

from __future__ import annotations

import mimetypes

__all__ = ["mime_type_from_extension"]

_TYPES = mimetypes.MimeTypes()
# Shader sources are plain text; GPU texture containers are not registered.
_TYPES.add_type("text/plain", ".glsl")
_TYPES.add_type("image/basis", ".basis")
_TYPES.add_type("image/ktx2", ".ktx2")
_TYPES.add_type("image/ktx", ".ktx")
_TYPES.add_type("image/crn", ".crn")
_TYPES.add_type("image/webp", ".webp")
_TYPES.add_type("application/octet-stream", ".bin")


def mime_type_from_extension(extension: str) -> str:
    ext = extension if extension.startswith(".") else "." + extension
    mime, _ = _TYPES.guess_type("file" + ext.lower(), strict=False)
    return mime or "application/octet-stream"
