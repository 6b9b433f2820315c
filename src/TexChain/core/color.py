"""Color-space conversion between linear working data and display encoding.

Conversion is done here on the CPU with a fixed sRGB transfer curve, never
delegated to a host color-space setting, so a given linear buffer always
encodes to the same bytes.
"""

import logging

import numpy as np

from .buffers import ColorSpace, ImageBuffer

logger = logging.getLogger("texchain.color")


def srgb_to_linear(arr: np.ndarray) -> np.ndarray:
    """Convert sRGB [0,1] values to linear RGB."""
    arr = np.asarray(arr, dtype=np.float32)
    if np.isnan(arr).any():
        logger.warning("NaN detected in srgb_to_linear input; replacing with 0.0")
        arr = np.nan_to_num(arr, nan=0.0)
    arr = np.clip(arr, 0.0, 1.0)
    return np.where(
        arr <= 0.04045,
        arr / 12.92,
        np.power((arr + 0.055) / 1.055, 2.4),
    ).astype(np.float32, copy=False)


def linear_to_srgb(arr: np.ndarray) -> np.ndarray:
    """Convert linear RGB values to sRGB [0,1]; input is clamped first."""
    arr = np.asarray(arr, dtype=np.float32)
    if np.isnan(arr).any():
        logger.warning("NaN detected in linear_to_srgb input; replacing with 0.0")
        arr = np.nan_to_num(arr, nan=0.0)
    arr = np.clip(arr, 0.0, 1.0)
    return np.where(
        arr <= 0.0031308,
        arr * 12.92,
        1.055 * np.power(arr, 1.0 / 2.4) - 0.055,
    ).astype(np.float32, copy=False)


def luminance_bt709(rgb: np.ndarray) -> np.ndarray:
    """Compute BT.709 luminance of linear RGB data."""
    rgb = np.asarray(rgb, dtype=np.float32)
    return (
        0.2126 * rgb[..., 0] +
        0.7152 * rgb[..., 1] +
        0.0722 * rgb[..., 2]
    ).astype(np.float32, copy=False)


def to_display_encoding(image: ImageBuffer) -> ImageBuffer:
    """Return a display-encoded copy of a linear buffer.

    RGB is clamped to [0,1] and sRGB-encoded per pixel; alpha passes through
    unmodified. Buffers already tagged as display-encoded are copied as-is.
    """
    if image.color_space is ColorSpace.DISPLAY:
        logger.debug("Buffer already display-encoded; returning copy")
        return image.copy()
    out = np.empty_like(image.pixels)
    out[:, :, :3] = linear_to_srgb(image.rgb)
    out[:, :, 3] = image.alpha
    return ImageBuffer(out, ColorSpace.DISPLAY)


def to_linear(image: ImageBuffer) -> ImageBuffer:
    """Return a linear copy of a display-encoded buffer."""
    if image.color_space is ColorSpace.LINEAR:
        return image.copy()
    out = np.empty_like(image.pixels)
    out[:, :, :3] = srgb_to_linear(image.rgb)
    out[:, :, 3] = image.alpha
    return ImageBuffer(out, ColorSpace.LINEAR)
