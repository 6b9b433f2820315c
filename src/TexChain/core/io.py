"""Image I/O: decode files into linear buffers and encode buffers to disk."""

import logging
import os
import threading
from pathlib import Path
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

from .buffers import ColorSpace, ImageBuffer, MaskBuffer
from .color import srgb_to_linear, to_display_encoding

# Pixel counts are validated per call in read_pixels() instead.
Image.MAX_IMAGE_PIXELS = None

logger = logging.getLogger("texchain.io")

SUPPORTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tga", ".tif", ".tiff", ".bmp")


def _infer_integer_mode_bit_depth(img: Image.Image, ext: str) -> int:
    """Infer bit depth for Pillow mode ``I`` images from metadata."""
    bits_info = img.info.get("bits")
    if isinstance(bits_info, int) and bits_info > 0:
        return bits_info
    tag_v2 = getattr(img, "tag_v2", None)
    if tag_v2 is not None:
        bits_tag = tag_v2.get(258)
        if isinstance(bits_tag, tuple) and bits_tag:
            bits_tag = bits_tag[0]
        if isinstance(bits_tag, int) and bits_tag > 0:
            return bits_tag
    # PNG and TIFF promote 16-bit samples to mode I.
    if ext in (".png", ".tif", ".tiff"):
        return 16
    return 32


def read_pixels(path: str, max_pixels: int = 0) -> Tuple[np.ndarray, bool]:
    """Read an image file as a float32 array.

    Returns ``(array, is_float)``. Integer formats are normalized to [0, 1];
    floating-point files (Pillow mode ``F``) keep their absolute values.
    """
    ext = Path(path).suffix.lower()
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Image not found: {path}")
    try:
        with Image.open(path) as img:
            if max_pixels > 0 and img.width * img.height > max_pixels:
                raise ValueError(
                    f"Image too large: {img.width}x{img.height} = "
                    f"{img.width * img.height:,} pixels (max {max_pixels:,}). "
                    "Resize input or increase max_image_pixels."
                )

            if img.mode in ("I;16", "I;16B", "I;16L", "I;16N"):
                logger.debug("Loading %s as 16-bit integer mode %s", path, img.mode)
                return np.asarray(img, dtype=np.float32) / 65535.0, False

            if img.mode == "I":
                bit_depth = _infer_integer_mode_bit_depth(img, ext)
                max_value = float((1 << min(bit_depth, 32)) - 1)
                arr = np.clip(np.asarray(img, dtype=np.float32) / max_value, 0.0, 1.0)
                logger.debug("Loaded %s in mode I with inferred bit depth %d", path, bit_depth)
                return arr, False

            if img.mode == "F":
                arr = np.asarray(img, dtype=np.float32)
                logger.debug("Loaded %s in float mode", path)
                return arr, True

            if img.mode in ("P", "LA", "PA"):
                with img.convert("RGBA") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            elif img.mode == "CMYK":
                with img.convert("RGB") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            else:
                arr = np.asarray(img, dtype=np.float32) / 255.0
            return arr, False
    except ValueError:
        raise
    except Exception as e:
        logger.error("Failed to open image '%s' (ext=%s): %s", path, ext, e)
        raise IOError(f"Failed to open image: {path} ({e})") from e


def _read_16bit_color_png(path: str):
    """Read a 16-bit color PNG with OpenCV (Pillow truncates these to 8-bit)."""
    data = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if data is None or data.dtype != np.uint16 or data.ndim != 3:
        return None
    if data.shape[2] == 4:
        data = data[:, :, [2, 1, 0, 3]]
    else:
        data = data[:, :, ::-1]
    return data.astype(np.float32) / 65535.0


def load_image(path: str, max_pixels: int = 0) -> ImageBuffer:
    """Load an image file as a linear RGBA buffer.

    8- and 16-bit integer files are treated as sRGB and decoded to linear;
    floating-point files are already linear and kept as-is.
    """
    arr = None
    is_float = False
    if Path(path).suffix.lower() == ".png" and os.path.isfile(path):
        arr = _read_16bit_color_png(path)
        if arr is not None and max_pixels > 0 and arr.shape[0] * arr.shape[1] > max_pixels:
            raise ValueError(f"Image too large: {arr.shape[1]}x{arr.shape[0]} (max {max_pixels:,})")
    if arr is None:
        arr, is_float = read_pixels(path, max_pixels)

    buf = ImageBuffer(arr, ColorSpace.LINEAR)
    if not is_float:
        buf.pixels[:, :, :3] = srgb_to_linear(buf.rgb)
    logger.debug("Loaded %s as %r", path, buf)
    return buf


def load_mask(path: str, max_pixels: int = 0) -> MaskBuffer:
    """Load a mask file; the first channel is used as-is, without decoding."""
    arr, _ = read_pixels(path, max_pixels)
    return MaskBuffer(arr)


def save_image(image: ImageBuffer, path: str, bits: int = 8, quality: int = 95):
    """Encode ``image`` to ``path`` as an 8- or 16-bit file.

    Linear buffers are display-encoded first. 16-bit output is written for
    PNG only; other formats fall back to 8-bit with a warning. Uses an atomic
    write (temp file + ``os.replace``).
    """
    if bits not in (8, 16):
        raise ValueError(f"bits must be 8 or 16, got {bits}")
    if image.color_space is ColorSpace.LINEAR:
        image = to_display_encoding(image)
    arr = np.clip(image.pixels, 0.0, 1.0)

    ext = Path(path).suffix.lower()
    if bits == 16 and ext != ".png":
        logger.warning("16-bit output is only supported for PNG; writing 8-bit %s", path)
        bits = 8
    has_alpha = bool(np.any(arr[:, :, 3] < 1.0))
    if ext in (".jpg", ".jpeg") or not has_alpha:
        arr = arr[:, :, :3]

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    # Keep the extension so the encoder can infer the format.
    tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
    try:
        if bits == 16:
            arr_16 = np.round(arr * 65535.0).astype(np.uint16)
            if arr_16.shape[-1] == 4:
                png_data = arr_16[:, :, [2, 1, 0, 3]]  # RGBA -> BGRA
            else:
                png_data = arr_16[:, :, ::-1]  # RGB -> BGR
            if not cv2.imwrite(tmp_path, np.ascontiguousarray(png_data)):
                raise IOError(f"cv2.imwrite failed for 16-bit PNG: {path}")
        else:
            arr_out = np.round(arr * 255.0).astype(np.uint8)
            with Image.fromarray(arr_out) as img:
                if ext in (".jpg", ".jpeg"):
                    img.save(tmp_path, quality=quality)
                elif ext == ".png":
                    img.save(tmp_path, optimize=True)
                else:
                    img.save(tmp_path)
        os.replace(tmp_path, path)
        logger.debug("Saved: %s (%dx%d, %dbit)", path, arr.shape[1], arr.shape[0], bits)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
