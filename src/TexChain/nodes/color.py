"""Hue / saturation / brightness / gamma correction."""

import logging
from typing import Optional

import cv2
import numpy as np

from ..config import ColorCorrectionParams
from ..core.buffers import ImageBuffer, MaskBuffer
from ..core.kernels import register_kernel
from .base import ProcessingNode, apply_mask, mask_weights

logger = logging.getLogger("texchain.nodes.color")


def wrap_hue(degrees: float) -> float:
    """Wrap a hue offset into [-180, 180)."""
    return ((float(degrees) + 180.0) % 360.0) - 180.0


@register_kernel("color_correction")
def color_correction_kernel(rgb: np.ndarray, hue_shift: float, saturation: float,
                            brightness: float, gamma: float) -> np.ndarray:
    """Adjust linear RGB through an HSV round trip followed by a gamma curve."""
    rgb = np.ascontiguousarray(np.maximum(rgb, 0.0), dtype=np.float32)
    hsv = cv2.cvtColor(rgb, cv2.COLOR_RGB2HSV)
    # Float HSV from OpenCV: H in [0, 360), S in [0, 1], V = max(R, G, B).
    hsv[:, :, 0] = np.mod(hsv[:, :, 0] + hue_shift, 360.0)
    hsv[:, :, 1] = np.clip(hsv[:, :, 1] * saturation, 0.0, 1.0)
    hsv[:, :, 2] = hsv[:, :, 2] * brightness
    out = cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB)
    if gamma != 1.0:
        out = np.power(np.maximum(out, 0.0), 1.0 / gamma)
    return out.astype(np.float32, copy=False)


class ColorCorrectionNode(ProcessingNode):
    """Rotate hue, scale saturation and brightness, then apply gamma."""

    node_type = "color_correction"
    kernel_name = "color_correction"

    def __init__(self, params: Optional[ColorCorrectionParams] = None):
        super().__init__(params or ColorCorrectionParams())

    def _is_identity(self, hue: float, sat: float, bright: float, gamma: float) -> bool:
        return hue == 0.0 and sat == 1.0 and bright == 1.0 and gamma == 1.0

    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        p = self.params
        hue = wrap_hue(p.hue_shift)
        sat = float(np.clip(p.saturation, 0.0, 2.0))
        bright = float(np.clip(p.brightness, 0.0, 2.0))
        gamma = float(np.clip(p.gamma, 0.1, 3.0))

        out = source.pixels.copy()
        if self._is_identity(hue, sat, bright, gamma):
            return ImageBuffer(out, source.color_space)

        corrected = self._kernel(source.rgb, hue, sat, bright, gamma)
        weights = mask_weights(mask, p, source.height, source.width)
        out[:, :, :3] = apply_mask(source.rgb, corrected, weights)
        return ImageBuffer(out, source.color_space)
