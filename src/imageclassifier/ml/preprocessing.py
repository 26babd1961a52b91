"""Image preprocessing pipeline.

Decodes raw image bytes and turns them into the fixed-shape float32 tensor a
backend's model expects:

    bytes -> decode (Pillow, EXIF orientation, channel conversion)
          -> cast to float32
          -> bilinear resize to target_height x target_width
          -> (value - mean) / scale
          -> add batch dimension: [1, H, W, C]

All functions are pure; the same bytes and parameters always give the same
tensor.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from imageclassifier.errors import DecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

_MODES_BY_CHANNELS: dict[int, str] = {1: "L", 3: "RGB", 4: "RGBA"}

# Single-band modes holding 16-bit samples; Pillow clips these at 255 on convert.
_SIXTEEN_BIT_MODES = frozenset({"I;16", "I;16B", "I;16L", "I;16N", "I"})


@dataclass(frozen=True)
class PreprocessingParams:
    """Resize target and normalization constants a model was trained with."""

    target_width: int
    target_height: int
    channel_count: int
    mean: float
    scale: float

    def __post_init__(self) -> None:
        if self.target_width < 1 or self.target_height < 1:
            raise ValueError("Target size must be at least 1x1")
        if self.channel_count not in _MODES_BY_CHANNELS:
            raise ValueError(f"Unsupported channel count: {self.channel_count}")
        if self.scale == 0:
            raise ValueError("Scale must be non-zero")

    @property
    def tensor_shape(self) -> tuple[int, int, int, int]:
        return (1, self.target_height, self.target_width, self.channel_count)


def decode_image(
    image_bytes: bytes,
    channel_count: int = 3,
    max_pixels: int | None = None,
) -> NDArray[np.uint8]:
    """Decode raw image bytes into an HxWxC uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        channel_count: Number of channels in the result (1, 3 or 4). Alpha is
            dropped or synthesized as needed.
        max_pixels: Reject images with more pixels than this.

    Returns:
        HxWxC uint8 numpy array.

    Raises:
        DecodeError: If the bytes are not a supported image or exceed the limit.
    """
    mode = _MODES_BY_CHANNELS.get(channel_count)
    if mode is None:
        raise ValueError(f"Unsupported channel count: {channel_count}")
    if not image_bytes:
        raise DecodeError("Image is empty")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if max_pixels is not None and width * height > max_pixels:
                raise DecodeError(f"Image has {width * height} pixels, limit is {max_pixels}")
            img.load()
            oriented = _to_eight_bit(ImageOps.exif_transpose(img))
            if oriented.mode == "P" and "transparency" in oriented.info:
                oriented = oriented.convert("RGBA")
            converted = oriented.convert(mode)
    except DecodeError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Unsupported or oversized image: {exc}") from exc
    except (OSError, EOFError, SyntaxError, ValueError) as exc:
        # Pillow reports truncated and corrupt streams with these
        raise DecodeError(f"Could not decode image: {exc}") from exc

    array = np.asarray(converted, dtype=np.uint8)
    if array.ndim == 2:
        array = array[:, :, np.newaxis]
    return array


def _to_eight_bit(image: Image.Image) -> Image.Image:
    """Rescale 16-bit single-band images to 0-255 instead of clipping them."""
    if image.mode not in _SIXTEEN_BIT_MODES:
        return image
    samples = np.asarray(image, dtype=np.float32) / 257.0
    return Image.fromarray(np.clip(np.rint(samples), 0, 255).astype(np.uint8))


def resize_bilinear(image: NDArray[np.float32], height: int, width: int) -> NDArray[np.float32]:
    """Resize an HxWxC float image with bilinear interpolation.

    Uses the ``align_corners=False`` convention: output pixel ``i`` samples the
    source at ``i * in_size / out_size``, with neighbours clamped to the edge.
    """
    in_height, in_width = image.shape[:2]
    if (in_height, in_width) == (height, width):
        return image.astype(np.float32, copy=True)

    ys = np.arange(height, dtype=np.float64) * (in_height / height)
    xs = np.arange(width, dtype=np.float64) * (in_width / width)

    y0 = np.floor(ys).astype(np.intp)
    x0 = np.floor(xs).astype(np.intp)
    y1 = np.minimum(y0 + 1, in_height - 1)
    x1 = np.minimum(x0 + 1, in_width - 1)
    wy = (ys - y0).astype(np.float32)[:, np.newaxis, np.newaxis]
    wx = (xs - x0).astype(np.float32)[np.newaxis, :, np.newaxis]

    top_left = image[y0][:, x0]
    top_right = image[y0][:, x1]
    bottom_left = image[y1][:, x0]
    bottom_right = image[y1][:, x1]

    top = top_left + (top_right - top_left) * wx
    bottom = bottom_left + (bottom_right - bottom_left) * wx
    return (top + (bottom - top) * wy).astype(np.float32)


def to_tensor(image: NDArray[np.uint8], params: PreprocessingParams) -> NDArray[np.float32]:
    """Resize and normalize a decoded image into a ``[1, H, W, C]`` tensor."""
    pixels = image.astype(np.float32)
    resized = resize_bilinear(pixels, params.target_height, params.target_width)
    normalized = (resized - np.float32(params.mean)) / np.float32(params.scale)
    return np.expand_dims(normalized, axis=0).astype(np.float32, copy=False)


def preprocess(
    image_bytes: bytes,
    params: PreprocessingParams,
    max_pixels: int | None = None,
) -> NDArray[np.float32]:
    """Decode image bytes and prepare the model input tensor.

    Raises:
        DecodeError: If the bytes cannot be decoded.
    """
    image = decode_image(image_bytes, params.channel_count, max_pixels=max_pixels)
    tensor = to_tensor(image, params)
    logger.debug("Preprocessed %sx%s image into tensor %s", image.shape[1], image.shape[0], tensor.shape)
    return tensor
