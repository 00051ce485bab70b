from __future__ import annotations
from dataclasses import dataclass
from io import BytesIO
from typing import Optional
import logging

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/tiff": "tiff",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/webp": "webp",
}

# Pillow format names that are a variant of a more common kind
_PIL_ALIASES = {"mpo": "jpeg"}


@dataclass(frozen=True)
class ImageInfo:
    format: Optional[str]
    width: Optional[int]
    height: Optional[int]


def content_type_format(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    return _CONTENT_TYPES.get(content_type.strip().lower())


def inspect_image(data: bytes) -> Optional[ImageInfo]:
    """Kind and pixel size read from the image header, or None if it is not an image."""
    try:
        with Image.open(BytesIO(data)) as img:
            kind = img.format.lower() if img.format else None
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not decode image data: {e}")
        return None
    kind = _PIL_ALIASES.get(kind, kind)
    return ImageInfo(format=kind, width=width or None, height=height or None)
