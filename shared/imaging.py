# =============================================================================
# CLIPKit Demo - Image Utilities
# =============================================================================
# Decoding, resizing and transport helpers for the images fed to the image
# encoder.  Images travel between the client and server as base64-encoded PNG
# bytes; the server decodes them and resizes to the encoder's square input
# (224x224 for CLIP ViT-B/32) before encoding.
# =============================================================================

import base64
import io
import logging
from typing import Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw image file bytes (PNG, JPEG, ...) into an RGB PIL image.

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Could not decode image: {exc}") from exc
    return image.convert("RGB")


def load_image(path: str) -> Image.Image:
    """Open an image file from disk as RGB."""
    with open(path, "rb") as f:
        return decode_image(f.read())


def resize_image_to(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """
    Stretch an image to exactly ``size`` (width, height).

    The aspect ratio is not preserved; the encoder expects a fixed square
    input and the whole frame should be visible to it.
    """
    if image.size == tuple(size):
        return image.convert("RGB")
    resized = image.convert("RGB").resize(tuple(size), Image.BICUBIC)
    logger.debug("Resized image %dx%d -> %dx%d", image.width, image.height, size[0], size[1])
    return resized


def to_pixel_buffer(image: Image.Image) -> np.ndarray:
    """
    Convert an image to a 32-bit XRGB pixel buffer.

    Returns:
        numpy uint8 array of shape (height, width, 4); channel 0 is an unused
        alpha byte set to 255, followed by R, G, B.
    """
    rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    height, width, _ = rgb.shape
    buffer = np.empty((height, width, 4), dtype=np.uint8)
    buffer[..., 0] = 255
    buffer[..., 1:] = rgb
    return buffer


def encode_image_base64(image: Image.Image) -> str:
    """Serialize an image as base64-encoded PNG for JSON transport."""
    out = io.BytesIO()
    image.convert("RGB").save(out, format="PNG")
    return base64.b64encode(out.getvalue()).decode("ascii")


def decode_image_base64(data: str) -> Image.Image:
    """
    Inverse of encode_image_base64; accepts any image format PIL can read.

    Raises:
        ValueError: If the string is not valid base64 or not an image.
    """
    try:
        raw = base64.b64decode(data, validate=True)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid base64 image data: {exc}") from exc
    return decode_image(raw)
