"""Run an ordered chain of processing nodes over one texture.

`TextureProcessor` owns the linear working buffer, the node list and the
optional mask. Each run feeds the working buffer through every enabled node
in order, releasing intermediate buffers as soon as the next node has
replaced them.
"""

import logging
import time
from typing import Iterable, List, Optional

import numpy as np

from .config import PipelineConfig
from .core.buffers import ColorSpace, ImageBuffer, MaskBuffer, as_image_buffer
from .core.color import to_display_encoding, to_linear
from .core.errors import MissingSourceError, NodeExecutionFailedError
from .nodes import ProcessingNode, build_nodes

logger = logging.getLogger("texchain.pipeline")


def capped_size(width: int, height: int, max_dim: int):
    """Return the (width, height) that fits ``max_dim`` with aspect preserved.

    The longer side becomes ``max_dim``; the shorter side is
    ``round(max_dim / aspect)`` (round half to even), never below 1.
    """
    if max_dim < 1:
        raise ValueError(f"max_dim must be >= 1, got {max_dim}")
    if width <= max_dim and height <= max_dim:
        return width, height
    if width >= height:
        return max_dim, max(1, round(max_dim / (width / height)))
    return max(1, round(max_dim / (height / width))), max_dim


class TextureProcessor:
    """Non-destructive node-chain executor for a single source texture."""

    def __init__(self, nodes: Optional[Iterable[ProcessingNode]] = None):
        self._nodes: List[ProcessingNode] = list(nodes or [])
        self._source = None
        self._working: Optional[ImageBuffer] = None
        self._mask: Optional[MaskBuffer] = None
        self._result: Optional[ImageBuffer] = None

    @classmethod
    def from_config(cls, config: PipelineConfig, base_dir: Optional[str] = None,
                    load_resources: bool = True) -> "TextureProcessor":
        """Build a processor whose node list comes from ``config``."""
        return cls(build_nodes(config, load_resources=load_resources, base_dir=base_dir))

    # -- state -------------------------------------------------------------

    @property
    def nodes(self) -> tuple:
        return tuple(self._nodes)

    @property
    def mask(self) -> Optional[MaskBuffer]:
        return self._mask

    @property
    def working_buffer(self) -> Optional[ImageBuffer]:
        return self._working

    def set_source(self, image):
        """Copy ``image`` into the linear working buffer (None clears it).

        The working buffer is reused when the same source object is set again
        at the same size; otherwise it is recreated.
        """
        if image is None:
            self._release_result()
            self._release_working()
            self._source = None
            return
        buf = as_image_buffer(image)
        if buf.color_space is ColorSpace.DISPLAY:
            linear = to_linear(buf).pixels
        else:
            linear = buf.pixels

        reuse = (
            self._working is not None
            and not self._working.released
            and image is self._source
            and self._working.shape == buf.shape
        )
        self._release_result()
        if reuse:
            np.copyto(self._working.pixels, linear)
        else:
            self._release_working()
            self._working = ImageBuffer(linear.copy(), ColorSpace.LINEAR)
            logger.debug("Created working buffer %r", self._working)
        self._source = image

    def set_mask(self, mask):
        """Use ``mask`` for every node in later runs (None clears).

        Image buffers contribute their red channel; arrays are wrapped as-is.
        """
        if isinstance(mask, ImageBuffer):
            mask = MaskBuffer.from_image(mask)
        elif mask is not None and not isinstance(mask, MaskBuffer):
            mask = MaskBuffer(mask)
        self._mask = mask

    def add_node(self, node: ProcessingNode):
        self._nodes.append(node)

    def remove_node(self, node: ProcessingNode) -> bool:
        """Release ``node``'s resources and drop it from the chain."""
        for idx, existing in enumerate(self._nodes):
            if existing is node:
                node.cleanup()
                del self._nodes[idx]
                return True
        return False

    def clear_nodes(self):
        for node in self._nodes:
            node.cleanup()
        self._nodes.clear()

    # -- execution ---------------------------------------------------------

    def _release_working(self):
        if self._working is not None:
            self._working.release()
            self._working = None

    def _release_result(self):
        if self._result is not None and self._result is not self._working:
            self._result.release()
        self._result = None

    def _run_mask(self, width: int, height: int):
        """Return (mask for this run, run-local copy to release or None)."""
        mask = self._mask
        if mask is None or mask.released:
            return None, None
        if mask.shape == (height, width):
            return mask, None
        logger.debug(
            "Resampling mask %dx%d -> %dx%d for this run",
            mask.width, mask.height, width, height,
        )
        local = mask.resized(width, height)
        return local, local

    def run(self, strict: bool = False) -> Optional[ImageBuffer]:
        """Execute every enabled node in order and return the final buffer.

        The returned buffer stays owned by the processor until the next run
        or ``teardown``. Without a source this logs a warning and returns
        None, or raises ``MissingSourceError`` when ``strict`` is set.

        Raises:
            NodeExecutionFailedError: a node returned no (or a released) buffer.
        """
        working = self._working
        if working is None or working.released:
            if strict:
                raise MissingSourceError("No source texture set")
            logger.warning("No source texture set; nothing to process")
            return None

        self._release_result()
        run_mask, local_mask = self._run_mask(working.width, working.height)
        current = working
        executed = 0
        start = time.perf_counter()
        try:
            for node in self._nodes:
                if not node.enabled:
                    continue
                # The working buffer keeps its identity while the source is unchanged.
                node.bind_source(working)
                node_start = time.perf_counter()
                result = node.process(current, run_mask)
                if result is None or result.released:
                    raise NodeExecutionFailedError(node.name)
                if current is not working and current is not result:
                    current.release()
                current = result
                executed += 1
                logger.debug(
                    "[%s] processed %dx%d in %.1f ms",
                    node.name, current.width, current.height,
                    (time.perf_counter() - node_start) * 1000.0,
                )
        except Exception:
            if current is not working:
                current.release()
            raise
        finally:
            if local_mask is not None:
                local_mask.release()

        self._result = current
        logger.info(
            "Pipeline run finished: %d/%d node(s) executed on %dx%d in %.0f ms",
            executed, len(self._nodes), working.width, working.height,
            (time.perf_counter() - start) * 1000.0,
        )
        return current

    def get_result(self, display: bool = False) -> Optional[ImageBuffer]:
        """Run and return an independent copy of the result.

        With ``display=True`` the copy is sRGB display-encoded.
        """
        result = self.run()
        if result is None:
            return None
        return to_display_encoding(result) if display else result.copy()

    def get_result_capped(self, max_dim: int, display: bool = False) -> Optional[ImageBuffer]:
        """Like ``get_result`` but downsampled to fit within ``max_dim``."""
        result = self.run()
        if result is None:
            return None
        width, height = capped_size(result.width, result.height, max_dim)
        out = result.resized(width, height)
        if (width, height) != (result.width, result.height):
            logger.debug(
                "Capped result %dx%d -> %dx%d",
                result.width, result.height, width, height,
            )
        if display:
            encoded = to_display_encoding(out)
            out.release()
            return encoded
        return out

    def teardown(self):
        """Release every node's resources and all pipeline buffers."""
        for node in self._nodes:
            node.cleanup()
        self._release_result()
        self._release_working()
        self._source = None
        self._mask = None
        logger.debug("Processor torn down")

    def __enter__(self) -> "TextureProcessor":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.teardown()
        return False
