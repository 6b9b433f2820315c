"""Tone-curve adjustment with per-channel and combined RGB curves."""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..config import ToneCurveParams
from ..core.buffers import ImageBuffer, MaskBuffer
from ..core.curves import ResponseCurve, apply_lut, compile_lut
from ..core.kernels import register_kernel
from .base import ProcessingNode, apply_mask, mask_weights

logger = logging.getLogger("texchain.nodes.tone_curve")

# (params field, toggle field, channel index or None for all of RGB)
_CHANNEL_CURVES = (
    ("red_curve", "use_red_curve", 0),
    ("green_curve", "use_green_curve", 1),
    ("blue_curve", "use_blue_curve", 2),
)
_COMBINED_CURVE = ("rgb_curve", "use_rgb_curve", None)


@register_kernel("tone_curve")
def tone_curve_kernel(rgb: np.ndarray,
                      passes: List[Tuple[Optional[int], np.ndarray]]) -> np.ndarray:
    """Apply ``(channel, lut)`` passes in order; channel None means all of RGB."""
    out = np.array(rgb, dtype=np.float32, copy=True)
    for channel, lut in passes:
        if channel is None:
            out = apply_lut(out, lut)
        else:
            out[:, :, channel] = apply_lut(out[:, :, channel], lut)
    return out


class ToneCurveNode(ProcessingNode):
    """Remap color channels through compiled curve LUTs.

    The individual R, G and B curves run first, then the combined RGB curve
    over all three color channels. Each curve slot keeps one LUT, recompiled
    when its points, interpolation or size change and dropped in ``cleanup``.
    """

    node_type = "tone_curve"
    kernel_name = "tone_curve"

    def __init__(self, params: Optional[ToneCurveParams] = None):
        super().__init__(params or ToneCurveParams())
        # field name -> (curve key, LUT)
        self._luts: Dict[str, Tuple[tuple, np.ndarray]] = {}

    def _curve(self, field_name: str) -> ResponseCurve:
        return ResponseCurve(getattr(self.params, field_name), self.params.interpolation)

    def lut_for(self, field_name: str) -> np.ndarray:
        """Return the LUT of one curve slot, recompiling it when the curve changed."""
        curve = self._curve(field_name)
        size = int(self.params.lut_size)
        key = (curve.cache_key, size)
        cached = self._luts.get(field_name)
        if cached is not None and cached[0] == key:
            return cached[1]
        lut = compile_lut(curve, size)
        self._luts[field_name] = (key, lut)
        return lut

    def _passes(self) -> List[Tuple[Optional[int], np.ndarray]]:
        passes = []
        for field_name, toggle, channel in _CHANNEL_CURVES + (_COMBINED_CURVE,):
            if getattr(self.params, toggle):
                passes.append((channel, self.lut_for(field_name)))
        return passes

    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        out = source.pixels.copy()
        passes = self._passes()
        if not passes:
            return ImageBuffer(out, source.color_space)
        mapped = self._kernel(source.rgb, passes)
        weights = mask_weights(mask, self.params, source.height, source.width)
        out[:, :, :3] = apply_mask(source.rgb, mapped, weights)
        return ImageBuffer(out, source.color_space)

    def cleanup(self):
        super().cleanup()
        self._luts.clear()
