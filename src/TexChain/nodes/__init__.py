"""Processing nodes and the registry that builds them from config entries."""

import logging
import os
from typing import Dict, List, Optional, Type

from ..config import PipelineConfig, parse_node_params
from .base import ProcessingNode, apply_mask, mask_weights
from .blend import BlendMode, BlendNode
from .color import ColorCorrectionNode
from .sharpen import SharpenMode, SharpenNode
from .tone_curve import ToneCurveNode
from .uv_blur import UVIslandBlurNode

logger = logging.getLogger("texchain.nodes")

NODE_TYPES: Dict[str, Type[ProcessingNode]] = {
    cls.node_type: cls
    for cls in (
        ColorCorrectionNode,
        BlendNode,
        SharpenNode,
        ToneCurveNode,
        UVIslandBlurNode,
    )
}


def _resolve(path: str, base_dir: Optional[str]) -> str:
    if base_dir and not os.path.isabs(path):
        return os.path.join(base_dir, path)
    return path


def _attach_resources(node: ProcessingNode, base_dir: Optional[str]):
    """Load the files a node's parameters point at."""
    from ..core.io import load_image
    from ..core.mesh_io import load_mesh

    params = node.params
    if isinstance(node, BlendNode) and params.blend_image:
        node.blend_image = load_image(_resolve(params.blend_image, base_dir))
    elif isinstance(node, UVIslandBlurNode):
        if params.boundary == "mesh" and params.mesh_path:
            node.mesh = load_mesh(_resolve(params.mesh_path, base_dir))
        elif params.boundary == "texture" and params.reference_image:
            node.boundary.reference = load_image(_resolve(params.reference_image, base_dir))
            node.invalidate_cache()


def build_node(entry: dict, load_resources: bool = False,
               base_dir: Optional[str] = None, _path: str = "") -> ProcessingNode:
    """Instantiate a node from a ``{"type": ..., **params}`` mapping.

    Raises:
        ValueError: unknown node type or malformed entry.
    """
    params = parse_node_params(entry, _path)
    problems = params.problems()
    if problems:
        raise ValueError(f"{_path.rstrip('.') or entry['type']}: {'; '.join(problems)}")
    node = NODE_TYPES[entry["type"]](params)
    if load_resources:
        _attach_resources(node, base_dir)
    return node


def node_to_dict(node: ProcessingNode) -> dict:
    """Serialize a node back to a config entry."""
    return node.to_dict()


def build_nodes(config: PipelineConfig, load_resources: bool = True,
                base_dir: Optional[str] = None) -> List[ProcessingNode]:
    """Build every node listed in ``config``, in order."""
    nodes = []
    for idx, entry in enumerate(config.nodes):
        nodes.append(build_node(
            entry, load_resources=load_resources, base_dir=base_dir, _path=f"nodes[{idx}].",
        ))
    logger.debug("Built %d node(s) from config", len(nodes))
    return nodes


__all__ = [
    "BlendMode",
    "BlendNode",
    "ColorCorrectionNode",
    "NODE_TYPES",
    "ProcessingNode",
    "SharpenMode",
    "SharpenNode",
    "ToneCurveNode",
    "UVIslandBlurNode",
    "apply_mask",
    "build_node",
    "build_nodes",
    "mask_weights",
    "node_to_dict",
]
