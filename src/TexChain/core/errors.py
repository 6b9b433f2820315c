"""Exception taxonomy shared by the pipeline, nodes and mesh utilities."""


class TexChainError(RuntimeError):
    """Base class for all TexChain runtime errors."""


class MissingSourceError(TexChainError):
    """Raised when a run is requested before any source image was set."""


class NodeExecutionFailedError(TexChainError):
    """Raised when a node claims success but produces no result buffer."""

    def __init__(self, node_name: str, detail: str = ""):
        self.node_name = node_name
        message = f"Node '{node_name}' returned no result"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MissingMeshDataError(TexChainError, ValueError):
    """Raised when a mesh lacks the UV data required for segmentation."""


class ResourceUnavailableError(TexChainError):
    """Raised when a compute kernel or its backing module cannot be loaded."""
