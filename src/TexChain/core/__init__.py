"""Core utilities -- re-exports all public symbols for convenience."""

from .buffers import ColorSpace, ImageBuffer, MaskBuffer, as_image_buffer, ensure_rgba
from .color import (
    linear_to_srgb,
    luminance_bt709,
    srgb_to_linear,
    to_display_encoding,
    to_linear,
)
from .curves import CURVE_RESOLUTION, ResponseCurve, apply_lut, compile_lut
from .errors import (
    MissingMeshDataError,
    MissingSourceError,
    NodeExecutionFailedError,
    ResourceUnavailableError,
    TexChainError,
)
from .islands import NO_ISLAND, MeshData, UVIsland, build_id_image, extract_islands
from .boundary import (
    BoundarySource,
    MeshIslandBoundary,
    TextureGradientBoundary,
    build_boundary_mask,
)
from .kernels import load_kernel, register_kernel
from .io import load_image, load_mask, save_image
from .mesh_io import load_mesh
from .logging import setup_logging

__all__ = [
    "ColorSpace", "ImageBuffer", "MaskBuffer", "as_image_buffer", "ensure_rgba",
    "linear_to_srgb", "luminance_bt709", "srgb_to_linear",
    "to_display_encoding", "to_linear",
    "CURVE_RESOLUTION", "ResponseCurve", "apply_lut", "compile_lut",
    "MissingMeshDataError", "MissingSourceError", "NodeExecutionFailedError",
    "ResourceUnavailableError", "TexChainError",
    "NO_ISLAND", "MeshData", "UVIsland", "build_id_image", "extract_islands",
    "BoundarySource", "MeshIslandBoundary", "TextureGradientBoundary",
    "build_boundary_mask",
    "load_kernel", "register_kernel",
    "load_image", "load_mask", "save_image",
    "load_mesh",
    "setup_logging",
]
