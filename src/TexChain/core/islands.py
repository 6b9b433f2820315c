"""UV island segmentation from mesh connectivity.

Triangles are connected when they share an edge in UV space (both endpoints
within ``epsilon``, either winding). Connected components become islands,
which are rasterized into an island-ID image used to keep blur taps on the
same side of a UV seam.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .errors import MissingMeshDataError

logger = logging.getLogger("texchain.islands")

NO_ISLAND = -1
UV_EDGE_EPSILON = 1e-4
_SMALL_BBOX_PIXELS = 4


@dataclass
class MeshData:
    """UV coordinates and triangle indices of one mesh."""

    uv: Optional[np.ndarray]
    triangles: Optional[np.ndarray]
    name: str = "mesh"

    def __post_init__(self) -> None:
        if self.uv is not None:
            self.uv = np.asarray(self.uv, dtype=np.float64).reshape(-1, 2)
        if self.triangles is not None:
            self.triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1)

    @property
    def triangle_count(self) -> int:
        return 0 if self.triangles is None else int(self.triangles.size // 3)

    @property
    def vertex_count(self) -> int:
        return 0 if self.uv is None else int(self.uv.shape[0])

    def validate(self) -> None:
        """Raise MissingMeshDataError when UV segmentation is impossible."""
        if self.uv is None or self.uv.size == 0:
            raise MissingMeshDataError(f"Mesh '{self.name}' has no UV data")
        if self.triangles is None or self.triangles.size == 0:
            raise MissingMeshDataError(f"Mesh '{self.name}' has no triangles")
        if self.triangles.size % 3 != 0:
            raise MissingMeshDataError(
                f"Mesh '{self.name}' triangle index count {self.triangles.size} "
                "is not a multiple of 3"
            )
        if self.triangles.min() < 0 or self.triangles.max() >= self.vertex_count:
            raise MissingMeshDataError(
                f"Mesh '{self.name}' triangle indices exceed UV count {self.vertex_count}"
            )

    def triangle_uvs(self) -> np.ndarray:
        """Return UVs gathered per triangle, shape (T, 3, 2)."""
        return self.uv[self.triangles].reshape(-1, 3, 2)


@dataclass
class UVIsland:
    """One connected UV region."""

    id: int
    triangles: List[int] = field(default_factory=list)
    uv_points: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    bounds: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)


def _calculate_bounds(points: np.ndarray) -> Tuple[float, float, float, float]:
    if points.size == 0:
        return (0.0, 0.0, 0.0, 0.0)
    mins = points.min(axis=0)
    maxs = points.max(axis=0)
    return (float(mins[0]), float(mins[1]),
            float(maxs[0] - mins[0]), float(maxs[1] - mins[1]))


def _shares_uv_edge(query: np.ndarray, candidates: np.ndarray, epsilon: float) -> np.ndarray:
    """Return a bool per candidate triangle sharing a UV edge with ``query``.

    ``query`` is (3, 2) and ``candidates`` is (C, 3, 2).
    """
    q_start = query                                  # (3, 2)
    q_end = np.roll(query, -1, axis=0)
    c_start = candidates                             # (C, 3, 2)
    c_end = np.roll(candidates, -1, axis=1)

    def close(a, b):
        # a: (3, 2) query endpoints, b: (C, 3, 2) candidate endpoints
        diff = a[None, :, None, :] - b[:, None, :, :]
        return np.sqrt(np.sum(diff * diff, axis=-1)) < epsilon   # (C, 3, 3)

    same_dir = close(q_start, c_start) & close(q_end, c_end)
    reversed_dir = close(q_start, c_end) & close(q_end, c_start)
    return np.any(same_dir | reversed_dir, axis=(1, 2))


def extract_islands(mesh: Optional[MeshData],
                    epsilon: float = UV_EDGE_EPSILON) -> List[UVIsland]:
    """Group mesh triangles into UV islands by breadth-first traversal.

    Returns an empty list (with a warning) when the mesh has no usable UV
    data, so callers can fall back to unblurred behavior.
    """
    if mesh is None:
        logger.warning("No mesh supplied for UV island extraction")
        return []
    try:
        mesh.validate()
    except MissingMeshDataError as exc:
        logger.warning("UV island extraction skipped: %s", exc)
        return []

    tri_uvs = mesh.triangle_uvs()
    tri_count = tri_uvs.shape[0]
    logger.info(
        "Extracting UV islands: mesh=%s (%d verts, %d triangles)",
        mesh.name, mesh.vertex_count, tri_count,
    )
    start = time.perf_counter()

    processed = np.zeros(tri_count, dtype=bool)
    components: List[List[int]] = []
    for seed in range(tri_count):
        if processed[seed]:
            continue
        component = []
        queue = deque([seed])
        processed[seed] = True
        while queue:
            tri = queue.popleft()
            component.append(tri)
            # Every triangle before the seed is already assigned, so only
            # unprocessed triangles after it need comparing.
            candidates = np.nonzero(~processed[seed + 1:])[0] + seed + 1
            if candidates.size == 0:
                continue
            hits = candidates[_shares_uv_edge(tri_uvs[tri], tri_uvs[candidates], epsilon)]
            processed[hits] = True
            queue.extend(int(h) for h in hits)
        components.append(component)
        if len(components) % 10 == 0:
            logger.debug(
                "Found %d islands so far (%d/%d triangles checked)",
                len(components), seed + 1, tri_count,
            )

    islands = []
    for island_id, component in enumerate(components):
        component.sort()
        points = tri_uvs[component].reshape(-1, 2)
        islands.append(UVIsland(
            id=island_id,
            triangles=component,
            uv_points=points,
            bounds=_calculate_bounds(points),
        ))

    logger.info(
        "Found %d UV islands in mesh %s (%.0f ms)",
        len(islands), mesh.name, (time.perf_counter() - start) * 1000.0,
    )
    return islands


def _edge_sign(px, py, ax, ay, bx, by):
    return (px - bx) * (ay - by) - (ax - bx) * (py - by)


def build_id_image(islands: List[UVIsland], width: int, height: int) -> np.ndarray:
    """Rasterize islands into an HxW int32 image of island IDs.

    UV (0, 0) is the bottom-left texel while array row 0 is the top row.
    Pixels not covered by any triangle hold ``NO_ISLAND``.
    """
    if width < 1 or height < 1:
        raise ValueError(f"ID image dimensions must be >= 1, got {width}x{height}")
    id_image = np.full((height, width), NO_ISLAND, dtype=np.int32)
    total_triangles = 0

    for island in islands:
        points = np.asarray(island.uv_points, dtype=np.float64).reshape(-1, 2)
        for j in range(0, points.shape[0] - 2, 3):
            total_triangles += 1
            tri = points[j:j + 3] * np.array([width, height], dtype=np.float64)

            min_x = max(0, int(np.floor(tri[:, 0].min())))
            max_x = min(width - 1, int(np.floor(tri[:, 0].max())))
            min_y = max(0, int(np.floor(tri[:, 1].min())))
            max_y = min(height - 1, int(np.floor(tri[:, 1].max())))
            if max_x < min_x or max_y < min_y:
                continue

            # Bottom-up y to top-down rows.
            row_lo = height - 1 - max_y
            row_hi = height - 1 - min_y

            area = (max_x - min_x + 1) * (max_y - min_y + 1)
            if area <= _SMALL_BBOX_PIXELS:
                id_image[row_lo:row_hi + 1, min_x:max_x + 1] = island.id
                continue

            xs = np.arange(min_x, max_x + 1, dtype=np.float64) + 0.5
            ys = np.arange(min_y, max_y + 1, dtype=np.float64) + 0.5
            px, py = np.meshgrid(xs, ys)
            (ax, ay), (bx, by), (cx, cy) = tri
            d1 = _edge_sign(px, py, ax, ay, bx, by)
            d2 = _edge_sign(px, py, bx, by, cx, cy)
            d3 = _edge_sign(px, py, cx, cy, ax, ay)
            has_neg = (d1 < 0) | (d2 < 0) | (d3 < 0)
            has_pos = (d1 > 0) | (d2 > 0) | (d3 > 0)
            inside = ~(has_neg & has_pos)

            # inside is indexed bottom-up (y ascending); flip to rows.
            region = id_image[row_lo:row_hi + 1, min_x:max_x + 1]
            region[inside[::-1]] = island.id

    logger.debug(
        "Rasterized %d triangles into %dx%d island ID image",
        total_triangles, width, height,
    )
    return id_image
