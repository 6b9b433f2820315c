"""Registry of named compute kernels loaded lazily by processing nodes.

Nodes ask for a kernel by name on their first ``process`` call and keep the
handle until ``cleanup``. A kernel declares the modules it needs; when one of
them cannot be imported, loading raises ``ResourceUnavailableError`` and the
node degrades to a pass-through.
"""

import importlib
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .errors import ResourceUnavailableError

logger = logging.getLogger("texchain.kernels")

_registry: Dict[str, "KernelSpec"] = {}
_registry_lock = threading.Lock()

# Map import names to pip package names where they differ
_PIP_NAMES = {"cv2": "opencv-python-headless", "yaml": "PyYAML", "PIL": "Pillow"}


@dataclass(frozen=True)
class KernelSpec:
    """A kernel entry point plus the modules it depends on."""

    name: str
    fn: Callable
    requires: Tuple[str, ...] = ()


def register_kernel(name: str, requires: Tuple[str, ...] = ()):
    """Register the decorated function under ``name``.

    ``requires`` lists modules the kernel imports lazily; modules imported at
    the top of the defining module need no entry.
    """
    def decorator(fn):
        with _registry_lock:
            if name in _registry and _registry[name].fn is not fn:
                logger.warning("Kernel '%s' re-registered; replacing previous entry", name)
            _registry[name] = KernelSpec(name=name, fn=fn, requires=tuple(requires))
        return fn
    return decorator


def unregister_kernel(name: str) -> None:
    with _registry_lock:
        _registry.pop(name, None)


def registered_kernels() -> Tuple[str, ...]:
    with _registry_lock:
        return tuple(sorted(_registry))


def _check_requirements(spec: KernelSpec) -> list:
    missing = []
    for module_name in spec.requires:
        try:
            importlib.import_module(module_name)
        except ImportError:
            missing.append(_PIP_NAMES.get(module_name, module_name))
    return missing


def load_kernel(name: str) -> Callable:
    """Return the kernel callable registered as ``name``.

    Raises:
        ResourceUnavailableError: unknown kernel or missing dependency.
    """
    with _registry_lock:
        spec = _registry.get(name)
    if spec is None:
        raise ResourceUnavailableError(f"Kernel '{name}' is not registered")
    missing = _check_requirements(spec)
    if missing:
        raise ResourceUnavailableError(
            f"Kernel '{name}' unavailable; missing dependencies: {', '.join(missing)}"
        )
    logger.debug("Loaded kernel '%s'", name)
    return spec.fn
