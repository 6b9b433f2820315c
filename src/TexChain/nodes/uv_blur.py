"""Gaussian blur that stays on its own side of UV seams.

The blur is separable: a horizontal pass, then a vertical pass over the
horizontal result. For every tap offset the boundary source decides whether
the tap may contribute to the center pixel, and each pixel is normalized by
the sum of the weights it accepted. Taps past the image edge read the edge
pixel.
"""

import logging
import time
from typing import Optional

import numpy as np

from ..config import UVIslandBlurParams
from ..core.boundary import BoundarySource, MeshIslandBoundary, TextureGradientBoundary
from ..core.buffers import ImageBuffer, MaskBuffer
from ..core.islands import MeshData
from ..core.kernels import register_kernel
from .base import ProcessingNode, apply_mask, mask_weights

logger = logging.getLogger("texchain.nodes.uv_blur")

MIN_RADIUS, MAX_RADIUS = 1, 20
MIN_SIGMA, MAX_SIGMA = 0.5, 10.0


def gaussian_weights(radius: int, sigma: float) -> np.ndarray:
    """Return unnormalized weights ``exp(-d^2 / 2 sigma^2)`` for d = 0..radius."""
    d = np.arange(radius + 1, dtype=np.float32)
    return np.exp(-(d * d) / (2.0 * sigma * sigma)).astype(np.float32)


def _blur_rows(data: np.ndarray, seam: np.ndarray, boundary: BoundarySource,
               weights: np.ndarray, out: np.ndarray) -> np.ndarray:
    """Blur along axis 1 of ``data`` (HxWxC) into ``out``."""
    width = data.shape[1]
    columns = np.arange(width)
    np.multiply(data, weights[0], out=out)
    weight_sum = np.full(seam.shape, weights[0], dtype=np.float32)

    for direction in (-1, 1):
        reachable = np.ones(seam.shape, dtype=bool)
        for d in range(1, weights.size):
            idx = np.clip(columns + direction * d, 0, width - 1)
            tap_seam = seam[:, idx]
            accepted = boundary.accept(seam, tap_seam, reachable)
            w = weights[d] * accepted.astype(np.float32)
            out += data[:, idx] * w[:, :, None]
            weight_sum += w
            reachable = accepted

    out /= weight_sum[:, :, None]
    return out


@register_kernel("uv_island_blur")
def uv_island_blur_kernel(rgb: np.ndarray, seam: np.ndarray, boundary: BoundarySource,
                          weights: np.ndarray, scratch: np.ndarray) -> np.ndarray:
    """Two-pass seam-aware blur of ``rgb`` (HxWx3); ``scratch`` is HxWx3 float32."""
    horizontal = _blur_rows(rgb, seam, boundary, weights, scratch)
    vertical = np.empty_like(rgb, dtype=np.float32)
    # Transposed views turn the column pass into a row pass.
    _blur_rows(
        horizontal.transpose(1, 0, 2), seam.T, boundary, weights,
        vertical.transpose(1, 0, 2),
    )
    frozen = boundary.frozen_pixels(seam)
    if frozen is not None:
        vertical[frozen] = rgb[frozen]
    return vertical


def _same_key(a: Optional[tuple], b: Optional[tuple]) -> bool:
    # The leading element is a mesh or image object: compare it by identity.
    if a is None or b is None:
        return False
    return a[0] is b[0] and a[1:] == b[1:]


class UVIslandBlurNode(ProcessingNode):
    """Blur that does not bleed across UV-island boundaries.

    ``boundary`` selects the seam strategy. By default it is built from the
    parameters: ``TextureGradientBoundary`` for ``boundary: texture`` and
    ``MeshIslandBoundary`` for ``boundary: mesh``. Setting it to None turns
    the node into a pass-through.
    """

    node_type = "uv_island_blur"
    kernel_name = "uv_island_blur"

    def __init__(self, params: Optional[UVIslandBlurParams] = None,
                 boundary: Optional[BoundarySource] = None):
        super().__init__(params or UVIslandBlurParams())
        self._boundary = boundary if boundary is not None else self._default_boundary()
        self._cache_key = None
        self._seam_map = None
        self._scratch = None

    def _default_boundary(self) -> BoundarySource:
        p = self.params
        if p.boundary == "mesh":
            return MeshIslandBoundary()
        return TextureGradientBoundary(
            threshold=p.boundary_threshold, dilation_radius=p.dilation_radius,
        )

    @property
    def boundary(self) -> Optional[BoundarySource]:
        return self._boundary

    @boundary.setter
    def boundary(self, source: Optional[BoundarySource]):
        self._boundary = source
        self.invalidate_cache()

    @property
    def mesh(self) -> Optional[MeshData]:
        if isinstance(self._boundary, MeshIslandBoundary):
            return self._boundary.mesh
        return None

    @mesh.setter
    def mesh(self, mesh: Optional[MeshData]):
        """Switch to the mesh strategy with ``mesh`` as its source."""
        self.params.boundary = "mesh"
        self.boundary = MeshIslandBoundary(mesh)

    def bind_source(self, image: Optional[ImageBuffer]):
        if self._boundary is not None:
            self._boundary.bind_source(image)

    def invalidate_cache(self):
        """Forget the cached seam map so the next run rebuilds it."""
        self._cache_key = None
        self._seam_map = None

    def _seam_map_for(self, source: ImageBuffer) -> Optional[np.ndarray]:
        key = self._boundary.cache_key(source)
        if key is None:
            logger.warning("[%s] Boundary source has no input data", self.name)
            return None
        if _same_key(key, self._cache_key):
            return self._seam_map
        start = time.perf_counter()
        # A missing map is cached too, so a mesh without islands is not re-segmented.
        self._seam_map = self._boundary.build_map(source)
        self._cache_key = key
        logger.debug(
            "[%s] Built %s seam map for %dx%d in %.0f ms",
            self.name, self._boundary.kind, source.width, source.height,
            (time.perf_counter() - start) * 1000.0,
        )
        return self._seam_map

    def _scratch_for(self, height: int, width: int) -> np.ndarray:
        shape = (height, width, 3)
        if self._scratch is None or self._scratch.shape != shape:
            self._scratch = np.empty(shape, dtype=np.float32)
        return self._scratch

    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        if self._boundary is None:
            logger.warning("[%s] No boundary source set; passing input through", self.name)
            return source
        seam = self._seam_map_for(source)
        if seam is None:
            logger.warning("[%s] No seam map available; passing input through", self.name)
            return source

        p = self.params
        radius = int(np.clip(int(p.blur_radius), MIN_RADIUS, MAX_RADIUS))
        sigma = float(np.clip(p.blur_sigma, MIN_SIGMA, MAX_SIGMA))
        weights = gaussian_weights(radius, sigma)

        rgb = source.rgb
        blurred = self._kernel(
            np.ascontiguousarray(rgb), seam, self._boundary, weights,
            self._scratch_for(source.height, source.width),
        )
        out = source.pixels.copy()
        w = mask_weights(mask, p, source.height, source.width)
        out[:, :, :3] = apply_mask(rgb, blurred, w)
        return ImageBuffer(out, source.color_space)

    def cleanup(self):
        super().cleanup()
        self.invalidate_cache()
        self.bind_source(None)
        self._scratch = None
