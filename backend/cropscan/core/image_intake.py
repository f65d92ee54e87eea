"""Image intake for crop photos.

Turns an uploaded photo into a self-contained ``data:`` URI that travels
inside a single provider request.  Only the size and the image type are
checked; the bytes are passed through untouched.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Optional

from cropscan.core.config import TEN_MIB
from cropscan.errors import ValidationError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

MAX_IMAGE_BYTES = TEN_MIB

_EXTENSION_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "heic": "image/heic",
}
_IMAGE_TYPES = frozenset(_EXTENSION_TYPES.values()) | {"image/jpg", "image/heif"}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$")


@dataclass(frozen=True)
class EncodedImage:
    """An image ready for transport: MIME type and bytes inlined as a data URI."""

    mime_type: str
    size_bytes: int
    data_uri: str


def _resolve_mime_type(content_type: Optional[str], filename: Optional[str]) -> Optional[str]:
    """Return the image MIME type, or None if the file does not look like an image."""
    if content_type:
        ct = content_type.split(";", 1)[0].strip().lower()
        if ct in _IMAGE_TYPES:
            return "image/jpeg" if ct == "image/jpg" else ct
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        return _EXTENSION_TYPES.get(ext)
    return None


def _check_size(size: int, max_bytes: int) -> None:
    if size == 0:
        raise ValidationError("empty", "Image is empty")
    if size > max_bytes:
        raise ValidationError(
            "too_large",
            f"Image is {size} bytes; the limit is {max_bytes} bytes",
        )


def prepare(
    content: bytes,
    *,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> EncodedImage:
    """Validate an uploaded photo and encode it as a data URI.

    Raises ``ValidationError`` with reason ``empty``, ``too_large`` or
    ``unsupported_type``.
    """
    _check_size(len(content), max_bytes)

    mime_type = _resolve_mime_type(content_type, filename)
    if mime_type is None:
        raise ValidationError(
            "unsupported_type",
            f"Not an image: content_type={content_type!r} filename={filename!r}",
        )

    payload = base64.b64encode(content).decode("ascii")
    logger.debug("Prepared %s image %s (%d bytes)", mime_type, filename, len(content))
    return EncodedImage(
        mime_type=mime_type,
        size_bytes=len(content),
        data_uri=f"data:{mime_type};base64,{payload}",
    )


def parse_data_uri(value: str, *, max_bytes: int = MAX_IMAGE_BYTES) -> EncodedImage:
    """Accept an already encoded ``data:image/...;base64,...`` string.

    The payload is decoded once so the same size limit applies as for uploads.
    """
    match = _DATA_URI_RE.match(value.strip()) if value else None
    if match is None:
        raise ValidationError("invalid_data_uri", "Image must be a base64 data:image/... URI")

    try:
        raw = base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("invalid_data_uri", "Image payload is not valid base64") from exc

    _check_size(len(raw), max_bytes)

    mime_type = match.group("mime").lower()
    return EncodedImage(
        mime_type=mime_type,
        size_bytes=len(raw),
        data_uri=value.strip(),
    )
