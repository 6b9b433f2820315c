"""Base class shared by all processing nodes."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..config import NodeParams
from ..core.buffers import ImageBuffer, MaskBuffer
from ..core.errors import ResourceUnavailableError
from ..core.kernels import load_kernel

logger = logging.getLogger("texchain.nodes")


def mask_weights(mask: Optional[MaskBuffer], params: NodeParams,
                 height: int, width: int) -> Optional[np.ndarray]:
    """Return per-pixel effect weights (HxWx1), or None for full effect.

    Without a mask the node applies fully; ``mask_strength`` and
    ``invert_mask`` only shape a mask that is present.
    """
    if mask is None:
        return None
    values = mask.values
    if values.shape != (height, width):
        values = mask.resized(width, height).values
    weights = np.clip(values, 0.0, 1.0)
    if params.invert_mask:
        weights = 1.0 - weights
    weights = weights * float(np.clip(params.mask_strength, 0.0, 1.0))
    return weights[:, :, None].astype(np.float32, copy=False)


def apply_mask(source: np.ndarray, processed: np.ndarray,
               weights: Optional[np.ndarray]) -> np.ndarray:
    """Blend ``processed`` over ``source`` by ``weights`` (None = processed)."""
    if weights is None:
        return processed
    return (source + (processed - source) * weights).astype(np.float32, copy=False)


class ProcessingNode(ABC):
    """One non-destructive image operation in a pipeline.

    Subclasses implement ``_process`` and may override ``cleanup`` to release
    the private resources they cache. The buffer returned by ``process`` is
    handed over to the caller; the source buffer is never modified.
    """

    #: Registry type name, used in configuration files.
    node_type = "node"
    #: Name of the kernel loaded on first use.
    kernel_name: Optional[str] = None

    def __init__(self, params: NodeParams):
        self.params = params
        self._kernel = None
        self._kernel_failed = False

    @property
    def name(self) -> str:
        return self.params.name

    @name.setter
    def name(self, value: str):
        self.params.name = value

    @property
    def enabled(self) -> bool:
        return self.params.enabled

    @enabled.setter
    def enabled(self, value: bool):
        self.params.enabled = bool(value)

    def _acquire_kernel(self):
        """Load the node kernel on first use and cache the handle."""
        if self._kernel is None and self.kernel_name is not None:
            self._kernel = load_kernel(self.kernel_name)
        return self._kernel

    def bind_source(self, image: Optional[ImageBuffer]):
        """Receive the pipeline's linear source texture before each run.

        Nodes that derive data from the unprocessed texture override this.
        """

    def process(self, source: ImageBuffer, mask: Optional[MaskBuffer] = None) -> ImageBuffer:
        """Apply the node to ``source`` and return the result buffer.

        Disabled nodes, and nodes whose kernel cannot be loaded, return
        ``source`` itself.
        """
        if not self.enabled:
            return source
        try:
            self._acquire_kernel()
        except ResourceUnavailableError as exc:
            if not self._kernel_failed:
                logger.error("[%s] %s; passing input through", self.name, exc)
                self._kernel_failed = True
            return source
        self._kernel_failed = False
        return self._process(source, mask)

    @abstractmethod
    def _process(self, source: ImageBuffer, mask: Optional[MaskBuffer]) -> ImageBuffer:
        """Run the node's transform; ``self._kernel`` is loaded."""

    def cleanup(self):
        """Release the kernel handle and cached resources."""
        self._kernel = None

    def to_dict(self) -> dict:
        """Serialize the node type and every parameter."""
        import dataclasses
        data = {"type": self.node_type}
        data.update(dataclasses.asdict(self.params))
        return data

    def __repr__(self) -> str:
        state = "on" if self.enabled else "off"
        return f"{type(self).__name__}(name={self.name!r}, {state})"
