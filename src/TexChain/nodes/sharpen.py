"""Unsharp-mask sharpening and Gaussian blur."""

import logging
from enum import Enum
from typing import Dict, Optional

import cv2
import numpy as np

from ..config import SharpenParams
from ..core.buffers import ImageBuffer, MaskBuffer
from ..core.kernels import register_kernel
from .base import ProcessingNode, apply_mask, mask_weights

logger = logging.getLogger("texchain.nodes.sharpen")

MIN_KERNEL_SIZE = 3
MAX_KERNEL_SIZE = 9


class SharpenMode(Enum):
    SHARPEN = "sharpen"
    BLUR = "blur"


def normalize_kernel_size(size) -> int:
    """Clamp to [3, 9] and round even sizes up to the next odd one."""
    k = int(np.clip(int(size), MIN_KERNEL_SIZE, MAX_KERNEL_SIZE))
    if k % 2 == 0:
        k += 1
    return k


@register_kernel("gaussian_filter")
def gaussian_filter_kernel(rgb: np.ndarray, taps: np.ndarray) -> np.ndarray:
    """Separable Gaussian filter of RGB with reflected borders."""
    return cv2.sepFilter2D(
        np.ascontiguousarray(rgb, dtype=np.float32), -1, taps, taps,
        borderType=cv2.BORDER_REFLECT,
    )


class SharpenNode(ProcessingNode):
    """Sharpen (``src + s * (src - blur)``) or blur (``lerp(src, blur, s)``)."""

    node_type = "sharpen"
    kernel_name = "gaussian_filter"

    def __init__(self, params: Optional[SharpenParams] = None):
        super().__init__(params or SharpenParams())
        self._taps: Dict[int, np.ndarray] = {}

    def _gaussian_taps(self, size: int) -> np.ndarray:
        taps = self._taps.get(size)
        if taps is None:
            # sigma <= 0 lets OpenCV derive it from the window size.
            taps = cv2.getGaussianKernel(size, 0, ktype=cv2.CV_32F)
            self._taps[size] = taps
        return taps

    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        p = self.params
        mode = SharpenMode(p.mode)
        size = normalize_kernel_size(p.kernel_size)
        if mode is SharpenMode.SHARPEN:
            strength = float(np.clip(p.strength, 0.0, 2.0))
        else:
            strength = float(np.clip(p.strength, 0.0, 1.0))

        src = source.rgb
        blurred = self._kernel(src, self._gaussian_taps(size))
        if mode is SharpenMode.SHARPEN:
            processed = src + strength * (src - blurred)
        else:
            processed = src + (blurred - src) * strength

        out = source.pixels.copy()
        weights = mask_weights(mask, p, source.height, source.width)
        out[:, :, :3] = apply_mask(src, processed.astype(np.float32, copy=False), weights)
        return ImageBuffer(out, source.color_space)

    def cleanup(self):
        super().cleanup()
        self._taps.clear()
