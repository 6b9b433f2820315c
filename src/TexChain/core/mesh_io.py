"""Load mesh UV data from ``.npz`` archives and Wavefront ``.obj`` files."""

import logging
import os
from pathlib import Path

import numpy as np

from .errors import MissingMeshDataError
from .islands import MeshData

logger = logging.getLogger("texchain.mesh_io")


def _load_npz(path: str) -> MeshData:
    with np.load(path, allow_pickle=False) as archive:
        missing = [key for key in ("uv", "triangles") if key not in archive.files]
        if missing:
            raise MissingMeshDataError(
                f"Mesh archive '{path}' is missing array(s): {', '.join(missing)}"
            )
        uv = np.array(archive["uv"], dtype=np.float64)
        triangles = np.array(archive["triangles"], dtype=np.int64)
    return MeshData(uv, triangles, name=Path(path).stem)


def _obj_uv_index(token: str, uv_count: int) -> int:
    """Return the 0-based UV index of one ``f`` vertex token (``v/vt/vn``)."""
    parts = token.split("/")
    if len(parts) < 2 or not parts[1]:
        raise MissingMeshDataError(f"Face vertex '{token}' has no texture coordinate")
    index = int(parts[1])
    # OBJ indices are 1-based; negative values count back from the end.
    return index - 1 if index > 0 else uv_count + index


def _load_obj(path: str) -> MeshData:
    uvs = []
    triangles = []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line_no, raw_line in enumerate(f, 1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            if parts[0] == "vt":
                if len(parts) < 3:
                    raise MissingMeshDataError(f"{path}:{line_no}: malformed 'vt' record")
                uvs.append((float(parts[1]), float(parts[2])))
            elif parts[0] == "f":
                corners = [_obj_uv_index(tok, len(uvs)) for tok in parts[1:]]
                if len(corners) < 3:
                    raise MissingMeshDataError(f"{path}:{line_no}: face has fewer than 3 vertices")
                # Fan-triangulate polygons.
                for i in range(1, len(corners) - 1):
                    triangles.append((corners[0], corners[i], corners[i + 1]))
    return MeshData(
        np.asarray(uvs, dtype=np.float64).reshape(-1, 2) if uvs else None,
        np.asarray(triangles, dtype=np.int64).reshape(-1) if triangles else None,
        name=Path(path).stem,
    )


def load_mesh(path: str) -> MeshData:
    """Load UVs and triangle indices from ``path``.

    A mesh without usable UV data is still returned, with a warning; UV
    island extraction then yields no islands and blur nodes pass through.

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: unsupported mesh format.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Mesh not found: {path}")
    ext = Path(path).suffix.lower()
    if ext not in (".npz", ".obj"):
        raise ValueError(f"Unsupported mesh format '{ext}' (use .npz or .obj)")
    try:
        mesh = _load_npz(path) if ext == ".npz" else _load_obj(path)
        mesh.validate()
    except MissingMeshDataError as exc:
        logger.warning("Mesh %s has no usable UV data: %s", path, exc)
        return MeshData(None, None, name=Path(path).stem)
    logger.info(
        "Loaded mesh %s: %d UVs, %d triangles", path, mesh.vertex_count, mesh.triangle_count,
    )
    return mesh
