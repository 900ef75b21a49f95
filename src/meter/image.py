from __future__ import annotations

import base64
import io
import os

from PIL import Image, ImageOps, UnidentifiedImageError


MAX_SIDE = 1024
JPEG_QUALITY = 80


class ImageError(ValueError):
    """Input bytes could not be decoded as an image."""


def compress_image(data: bytes, *, max_side: int = MAX_SIDE, quality: int = JPEG_QUALITY) -> str:
    """Shrink a photo for upload and return it as base64 JPEG text.

    - Honors EXIF orientation (phone photos are often stored rotated).
    - Neither side ends up above `max_side`; aspect ratio is kept and small
      images are never upscaled.
    """
    try:
        im = Image.open(io.BytesIO(data))
        im = ImageOps.exif_transpose(im).convert("RGB")
    except (UnidentifiedImageError, OSError) as ex:
        raise ImageError("Could not decode image") from ex

    im.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    im.save(buf, format="JPEG", quality=quality)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def load_image_file(path: os.PathLike[str] | str) -> str:
    with open(path, "rb") as f:
        return compress_image(f.read())


__all__ = ["ImageError", "compress_image", "load_image_file"]
