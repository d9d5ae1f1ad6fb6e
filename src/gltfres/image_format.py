"""Image format sniffing from magic numbers."""

from __future__ import annotations

from .errors import E_IMAGE_FORMAT, ImageFormatError

__all__ = ["get_image_extension", "KTX2_IDENTIFIER"]

KTX2_IDENTIFIER = b"\xabKTX 20\xbb\r\n\x1a\n"
KTX1_IDENTIFIER = b"\xabKTX 11\xbb\r\n\x1a\n"

_TWO_BYTE_HEADERS = {
    b"BM": ".bmp",
    b"GI": ".gif",
    b"\xff\xd8": ".jpg",
    b"\x89P": ".png",
    b"Hx": ".crn",
    b"sB": ".basis",
}


def get_image_extension(data: bytes) -> str:
    """Return the file extension (with dot) matching the bytes' header."""
    if data[:12] == KTX2_IDENTIFIER:
        return ".ktx2"
    if data[:12] == KTX1_IDENTIFIER:
        return ".ktx"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    ext = _TWO_BYTE_HEADERS.get(bytes(data[:2]))
    if ext is None:
        raise ImageFormatError(
            code=E_IMAGE_FORMAT,
            message="Image data does not have a valid header",
            context={"header": bytes(data[:12]).hex()},
        )
    return ext
