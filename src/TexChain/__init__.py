"""Provide package metadata for `TexChain`.

TexChain edits textures non-destructively through an ordered chain of
processing nodes, including UV-seam aware blur.
"""

import logging as _logging

__version__ = "0.4.0"
_logger = _logging.getLogger("texchain")
_logger.addHandler(_logging.NullHandler())


__all__ = ["__version__"]
