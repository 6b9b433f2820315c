"""Image and mask buffers threaded through the node chain.

Buffers own a float32 numpy array and can be released explicitly; a released
buffer drops its pixels so peak memory stays bounded even when callers keep
references to stale buffer objects.
"""

import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger("texchain.buffers")


class ColorSpace(Enum):
    """Enumerate the encodings a buffer can carry."""

    LINEAR = "linear"
    DISPLAY = "display"


def ensure_rgba(arr: np.ndarray) -> np.ndarray:
    """Promote HxW, HxWx1, HxWx3 or HxWx4 arrays to float32 HxWx4."""
    arr = np.asarray(arr, dtype=np.float32)
    if arr.ndim == 2:
        arr = arr[:, :, None]
    if arr.ndim != 3:
        raise ValueError(f"Expected a 2D or 3D image array, got shape {arr.shape}")
    h, w, c = arr.shape
    if c == 4:
        return arr
    if c == 1:
        rgb = np.repeat(arr, 3, axis=2)
    elif c == 3:
        rgb = arr
    elif c == 2:
        # Luminance + alpha
        return np.dstack([arr[:, :, :1]] * 3 + [arr[:, :, 1:2]]).astype(np.float32)
    else:
        raise ValueError(f"Unsupported channel count {c} (shape {arr.shape})")
    alpha = np.ones((h, w, 1), dtype=np.float32)
    return np.concatenate([rgb, alpha], axis=2)


def resize_array(arr: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resample HxW or HxWxC float data to the target size."""
    if arr.shape[:2] == (height, width):
        return arr.astype(np.float32, copy=False)
    src_h, src_w = arr.shape[:2]
    shrinking = width < src_w and height < src_h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    out = cv2.resize(
        np.ascontiguousarray(arr, dtype=np.float32),
        (width, height),
        interpolation=interpolation,
    )
    if arr.ndim == 3 and out.ndim == 2:
        out = out[:, :, None]
    return out.astype(np.float32, copy=False)


class ImageBuffer:
    """RGBA float32 pixel grid tagged with its color space."""

    def __init__(self, pixels: np.ndarray, color_space: ColorSpace = ColorSpace.LINEAR):
        self._pixels = np.ascontiguousarray(ensure_rgba(pixels))
        self.color_space = ColorSpace(color_space)

    @classmethod
    def empty(cls, width: int, height: int,
              color_space: ColorSpace = ColorSpace.LINEAR) -> "ImageBuffer":
        """Allocate a zero-filled buffer."""
        if width < 1 or height < 1:
            raise ValueError(f"Buffer dimensions must be >= 1, got {width}x{height}")
        return cls(np.zeros((height, width, 4), dtype=np.float32), color_space)

    @classmethod
    def filled(cls, width: int, height: int, rgba,
               color_space: ColorSpace = ColorSpace.LINEAR) -> "ImageBuffer":
        """Allocate a buffer filled with one RGBA (or RGB) value."""
        value = np.asarray(rgba, dtype=np.float32).reshape(-1)
        if value.size == 3:
            value = np.append(value, 1.0).astype(np.float32)
        if value.size != 4:
            raise ValueError(f"Fill value must have 3 or 4 components, got {value.size}")
        buf = cls.empty(width, height, color_space)
        buf._pixels[:] = value
        return buf

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise ValueError("ImageBuffer has been released")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    @property
    def nbytes(self) -> int:
        return 0 if self._pixels is None else int(self._pixels.nbytes)

    def same_size(self, other) -> bool:
        return other is not None and not other.released and self.shape == other.shape

    def copy(self) -> "ImageBuffer":
        return ImageBuffer(self.pixels.copy(), self.color_space)

    def resized(self, width: int, height: int) -> "ImageBuffer":
        """Return a resampled copy (or a plain copy when sizes already match)."""
        if (height, width) == self.shape:
            return self.copy()
        return ImageBuffer(resize_array(self.pixels, width, height), self.color_space)

    def release(self):
        """Drop the pixel storage. Releasing twice is a no-op."""
        self._pixels = None

    def __repr__(self) -> str:
        if self.released:
            return "ImageBuffer(released)"
        return f"ImageBuffer({self.width}x{self.height}, {self.color_space.value})"


class MaskBuffer:
    """Single-channel float32 weight grid, conceptually in [0, 1]."""

    def __init__(self, values: np.ndarray):
        arr = np.asarray(values, dtype=np.float32)
        if arr.ndim == 3:
            # Accept image-like masks; the first channel carries the weight.
            arr = arr[:, :, 0]
        if arr.ndim != 2:
            raise ValueError(f"Mask must be HxW, got shape {arr.shape}")
        self._values = np.ascontiguousarray(arr)

    @classmethod
    def filled(cls, width: int, height: int, value: float) -> "MaskBuffer":
        return cls(np.full((height, width), float(value), dtype=np.float32))

    @classmethod
    def from_image(cls, image: ImageBuffer) -> "MaskBuffer":
        """Use the red channel of an image as mask weights."""
        return cls(image.pixels[:, :, 0].copy())

    @property
    def values(self) -> np.ndarray:
        if self._values is None:
            raise ValueError("MaskBuffer has been released")
        return self._values

    @property
    def released(self) -> bool:
        return self._values is None

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    @property
    def shape(self):
        return (self.height, self.width)

    def resized(self, width: int, height: int) -> "MaskBuffer":
        return MaskBuffer(resize_array(self.values, width, height))

    def release(self):
        self._values = None

    def __repr__(self) -> str:
        if self.released:
            return "MaskBuffer(released)"
        return f"MaskBuffer({self.width}x{self.height})"


def as_image_buffer(image, color_space: Optional[ColorSpace] = None) -> ImageBuffer:
    """Wrap arrays as linear buffers; pass ImageBuffer instances through."""
    if isinstance(image, ImageBuffer):
        return image
    return ImageBuffer(np.asarray(image), color_space or ColorSpace.LINEAR)
