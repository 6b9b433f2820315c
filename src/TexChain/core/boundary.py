"""Seam maps that keep blur taps from crossing UV-island boundaries.

Two independent strategies produce a per-pixel seam map:

* ``TextureGradientBoundary`` needs no mesh: it detects strong color
  gradients in a reference texture and dilates them into a protected band.
  This is the default strategy.
* ``MeshIslandBoundary`` segments a mesh's UV unwrap into islands and
  rasterizes their IDs.

Both expose the same ``BoundarySource`` interface to the island blur node.
"""

import logging
import time
from typing import Optional

import cv2
import numpy as np

from .buffers import ImageBuffer, resize_array
from .islands import MeshData, build_id_image, extract_islands

logger = logging.getLogger("texchain.boundary")

DEFAULT_BOUNDARY_THRESHOLD = 0.1
DEFAULT_DILATION_RADIUS = 5


def detect_edges(rgb: np.ndarray, threshold: float = DEFAULT_BOUNDARY_THRESHOLD) -> np.ndarray:
    """Mark pixels whose color differs from a 4-neighbor by more than ``threshold``.

    The gradient magnitude is the largest RGB Euclidean distance to the
    left/right/up/down neighbors, with edge pixels replicated.
    """
    rgb = np.asarray(rgb, dtype=np.float32)
    padded = np.pad(rgb, ((1, 1), (1, 1), (0, 0)), mode="edge")
    center = padded[1:-1, 1:-1]
    magnitude = np.zeros(rgb.shape[:2], dtype=np.float32)
    for dy, dx in ((0, -1), (0, 1), (-1, 0), (1, 0)):
        neighbor = padded[1 + dy:padded.shape[0] - 1 + dy, 1 + dx:padded.shape[1] - 1 + dx]
        diff = np.sqrt(np.sum((center - neighbor) ** 2, axis=2))
        np.maximum(magnitude, diff, out=magnitude)
    return (magnitude > threshold).astype(np.float32)


def disk_kernel(radius: int) -> np.ndarray:
    """Return a (2r+1)^2 uint8 disk; disks of growing radius are nested."""
    r = int(radius)
    yy, xx = np.mgrid[-r:r + 1, -r:r + 1]
    return ((xx * xx + yy * yy) <= r * r).astype(np.uint8)


def dilate_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow the non-zero region of ``mask`` by a disk of ``radius`` pixels."""
    if radius <= 0:
        return np.asarray(mask, dtype=np.float32).copy()
    binary = (np.asarray(mask) > 0.5).astype(np.uint8)
    dilated = cv2.dilate(binary, disk_kernel(radius), iterations=1,
                         borderType=cv2.BORDER_CONSTANT, borderValue=0)
    return dilated.astype(np.float32)


def build_boundary_mask(image, threshold: float = DEFAULT_BOUNDARY_THRESHOLD,
                        dilation_radius: int = DEFAULT_DILATION_RADIUS) -> np.ndarray:
    """Build an HxW {0,1} mask of pixels near a UV or content seam."""
    if image is None:
        raise ValueError("build_boundary_mask requires an image")
    if dilation_radius < 0:
        raise ValueError(f"dilation_radius must be >= 0, got {dilation_radius}")
    rgb = image.rgb if isinstance(image, ImageBuffer) else np.asarray(image, dtype=np.float32)
    if rgb.ndim == 2:
        rgb = rgb[:, :, None]
    rgb = rgb[:, :, :3]

    start = time.perf_counter()
    edges = detect_edges(rgb, threshold)
    mask = dilate_mask(edges, dilation_radius)
    logger.info(
        "Generated boundary mask in %.0f ms (resolution: %dx%d, threshold: %s, dilation: %dpx)",
        (time.perf_counter() - start) * 1000.0,
        rgb.shape[1], rgb.shape[0], threshold, dilation_radius,
    )
    return mask


class BoundarySource:
    """Strategy that builds a seam map and decides which blur taps are valid."""

    kind = "base"

    def cache_key(self, source: ImageBuffer) -> Optional[tuple]:
        """Return the cache key of the map for ``source``, or None when unavailable.

        The first element is compared by identity, the rest by equality.
        """
        raise NotImplementedError

    def build_map(self, source: ImageBuffer) -> Optional[np.ndarray]:
        """Compute the seam map at the source resolution (None when unavailable)."""
        raise NotImplementedError

    def bind_source(self, image: Optional[ImageBuffer]):
        """Tell the strategy which texture the pipeline is editing (None unbinds)."""

    def frozen_pixels(self, seam_map: np.ndarray) -> Optional[np.ndarray]:
        """Return a bool mask of pixels that must keep their value, or None."""
        return None

    def accept(self, center: np.ndarray, tap: np.ndarray, reachable: np.ndarray) -> np.ndarray:
        """Return the bool mask of accepted taps at one offset.

        ``reachable`` is the acceptance mask of the previous offset in the
        same direction (all True for the first offset).
        """
        raise NotImplementedError


class MeshIslandBoundary(BoundarySource):
    """Accept a tap only when it lies in the same UV island as the center."""

    kind = "mesh"

    def __init__(self, mesh: Optional[MeshData] = None):
        self.mesh = mesh
        self.islands = None

    def cache_key(self, source: ImageBuffer) -> Optional[tuple]:
        if self.mesh is None:
            return None
        return (self.mesh, source.width, source.height)

    def build_map(self, source: ImageBuffer) -> Optional[np.ndarray]:
        if self.mesh is None:
            logger.warning("Source mesh is not set for UV island boundary")
            return None
        self.islands = extract_islands(self.mesh)
        if not self.islands:
            logger.warning("No UV islands found in mesh: %s", self.mesh.name)
            return None
        return build_id_image(self.islands, source.width, source.height)

    def accept(self, center, tap, reachable):
        return tap == center


class TextureGradientBoundary(BoundarySource):
    """Keep blur inside regions delimited by strong texture gradients.

    The map comes from ``reference`` when set, else from the texture bound by
    the pipeline, else from the buffer being processed.
    """

    kind = "texture"

    def __init__(self, reference: Optional[ImageBuffer] = None,
                 threshold: float = DEFAULT_BOUNDARY_THRESHOLD,
                 dilation_radius: int = DEFAULT_DILATION_RADIUS):
        self.reference = reference
        self.threshold = float(threshold)
        self.dilation_radius = int(dilation_radius)
        self._bound = None

    def bind_source(self, image: Optional[ImageBuffer]):
        self._bound = image

    def _reference_for(self, source: ImageBuffer) -> ImageBuffer:
        if self.reference is not None:
            return self.reference
        if self._bound is not None and not self._bound.released:
            return self._bound
        return source

    def cache_key(self, source: ImageBuffer) -> Optional[tuple]:
        ref = self._reference_for(source)
        return (ref, source.width, source.height,
                self.threshold, self.dilation_radius)

    def build_map(self, source: ImageBuffer) -> Optional[np.ndarray]:
        ref = self._reference_for(source)
        rgb = ref.rgb
        if ref.shape != source.shape:
            rgb = resize_array(rgb, source.width, source.height)
        return build_boundary_mask(rgb, self.threshold, self.dilation_radius)

    def frozen_pixels(self, seam_map):
        return seam_map >= 0.5

    def accept(self, center, tap, reachable):
        return reachable & (tap < 0.5)
