"""Composite a second texture over the pipeline buffer."""

import logging
from enum import Enum
from typing import Optional

import numpy as np

from ..config import BlendParams
from ..core.buffers import ColorSpace, ImageBuffer, MaskBuffer, as_image_buffer
from ..core.color import to_linear
from ..core.kernels import register_kernel
from .base import ProcessingNode, apply_mask, mask_weights

logger = logging.getLogger("texchain.nodes.blend")


class BlendMode(Enum):
    NORMAL = "normal"
    MULTIPLY = "multiply"
    ADD = "add"
    SCREEN = "screen"
    OVERLAY = "overlay"
    HDR_ADD = "hdr_add"
    HDR_MULTIPLY = "hdr_multiply"

    @property
    def is_hdr(self) -> bool:
        return self in (BlendMode.HDR_ADD, BlendMode.HDR_MULTIPLY)


def _blend_rgb(mode: BlendMode, base: np.ndarray, top: np.ndarray) -> np.ndarray:
    if mode is BlendMode.NORMAL:
        return top
    if mode is BlendMode.MULTIPLY or mode is BlendMode.HDR_MULTIPLY:
        return base * top
    if mode is BlendMode.ADD:
        return np.clip(base + top, 0.0, 1.0)
    if mode is BlendMode.HDR_ADD:
        return base + top
    if mode is BlendMode.SCREEN:
        return 1.0 - (1.0 - base) * (1.0 - top)
    if mode is BlendMode.OVERLAY:
        return np.where(
            base < 0.5,
            2.0 * base * top,
            1.0 - 2.0 * (1.0 - base) * (1.0 - top),
        )
    raise ValueError(f"Unsupported blend mode: {mode}")


@register_kernel("blend")
def blend_kernel(base_rgb: np.ndarray, top: np.ndarray, mode: BlendMode,
                 strength: float, hdr_color: np.ndarray) -> np.ndarray:
    """Blend ``top`` (HxWx4) over ``base_rgb`` and return the new RGB."""
    top_rgb = top[:, :, :3]
    opacity = strength * top[:, :, 3:4]
    if mode.is_hdr:
        top_rgb = top_rgb * hdr_color[:3]
        opacity = opacity * hdr_color[3]
    blended = _blend_rgb(mode, base_rgb, top_rgb)
    return (base_rgb + (blended - base_rgb) * opacity).astype(np.float32, copy=False)


class BlendNode(ProcessingNode):
    """Blend ``blend_image`` over the input with one of seven modes.

    Without a blend image the node is a pass-through. The blend image is
    resampled bilinearly when its resolution differs from the input; the
    resampled copy is cached until the image or target size changes.
    """

    node_type = "blend"
    kernel_name = "blend"

    def __init__(self, params: Optional[BlendParams] = None,
                 blend_image: Optional[ImageBuffer] = None):
        super().__init__(params or BlendParams())
        self._blend_image = None
        self._resampled = None
        self._resampled_key = None
        self.blend_image = blend_image

    @property
    def blend_image(self) -> Optional[ImageBuffer]:
        return self._blend_image

    @blend_image.setter
    def blend_image(self, image):
        if image is not None:
            image = as_image_buffer(image)
            if image.color_space is ColorSpace.DISPLAY:
                image = to_linear(image)
        self._blend_image = image
        self._drop_resampled()

    def _drop_resampled(self):
        self._resampled = None
        self._resampled_key = None

    def _blend_pixels(self, width: int, height: int) -> np.ndarray:
        image = self._blend_image
        if image.width == width and image.height == height:
            return image.pixels
        key = (width, height)
        if self._resampled is None or self._resampled_key != key:
            logger.debug(
                "[%s] Resampling blend image %dx%d -> %dx%d",
                self.name, image.width, image.height, width, height,
            )
            self._resampled = image.resized(width, height).pixels
            self._resampled_key = key
        return self._resampled

    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        if self._blend_image is None or self._blend_image.released:
            logger.debug("[%s] No blend image; passing input through", self.name)
            return source

        p = self.params
        mode = BlendMode(p.blend_mode)
        strength = float(np.clip(p.strength, 0.0, 1.0))
        hdr = np.ones(4, dtype=np.float32)
        values = np.asarray(p.hdr_color, dtype=np.float32).reshape(-1)
        count = min(values.size, 4)
        hdr[:count] = values[:count]

        top = self._blend_pixels(source.width, source.height)
        blended = self._kernel(source.rgb, top, mode, strength, hdr)

        out = source.pixels.copy()
        weights = mask_weights(mask, p, source.height, source.width)
        out[:, :, :3] = apply_mask(source.rgb, blended, weights)
        return ImageBuffer(out, source.color_space)

    def cleanup(self):
        super().cleanup()
        self._drop_resampled()
