"""Image decoding and model-input preparation.

Decoding handles format detection, EXIF orientation, colour conversion and
size validation. Preparation turns an RGB frame into the float tensor the
classifier expects.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Literal

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from sortkiosk.errors import DecodeError, InferenceError

if TYPE_CHECKING:
    from numpy.typing import NDArray

DEFAULT_INPUT_SIZE = 224


def decode_image(image_bytes: bytes, max_pixels: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow understands).
        max_pixels: Upper bound on width * height.

    Returns:
        HxWx3 RGB uint8 numpy array.

    Raises:
        DecodeError: If the bytes are not an image or exceed the size limit.
    """
    if not image_bytes:
        raise DecodeError("Empty image file")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.width * img.height > max_pixels:
                raise DecodeError(f"Image too large: {img.width}x{img.height}")
            oriented = ImageOps.exif_transpose(img)
            return np.asarray(oriented.convert("RGB"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise DecodeError() from exc


def to_model_input(
    image: NDArray[np.uint8],
    size: int = DEFAULT_INPUT_SIZE,
    layout: Literal["nhwc", "nchw"] = "nhwc",
) -> NDArray[np.float32]:
    """Resize (nearest neighbour) and scale a frame to a [0, 1] batch of one.

    Args:
        image: HxWx3 (or HxWx4, alpha is dropped) uint8 array.
        size: Square model input resolution.
        layout: Tensor layout the model expects.

    Returns:
        Float32 tensor of shape (1, size, size, 3) or (1, 3, size, size).
    """
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InferenceError(f"Expected an HxWx3 image, got shape {image.shape}")

    rgb = np.ascontiguousarray(image[:, :, :3], dtype=np.uint8)
    resized = Image.fromarray(rgb).resize((size, size), Image.Resampling.NEAREST)
    tensor = np.asarray(resized, dtype=np.float32) / 255.0
    if layout == "nchw":
        tensor = tensor.transpose(2, 0, 1)
    return tensor[np.newaxis, ...]
