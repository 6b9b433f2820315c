"""Shared test fixtures."""

import shutil
import tempfile

import numpy as np
import pytest

from TexChain.config import PipelineConfig
from TexChain.core import ColorSpace, ImageBuffer, MeshData


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return PipelineConfig()


@pytest.fixture
def gray_buffer():
    return ImageBuffer.filled(4, 4, (0.5, 0.5, 0.5, 1.0), ColorSpace.LINEAR)


def split_buffer(width=16, height=16, left=0.2, right=0.8):
    """Buffer whose left half holds ``left`` and right half ``right``."""
    pixels = np.ones((height, width, 4), dtype=np.float32)
    pixels[:, : width // 2, :3] = left
    pixels[:, width // 2:, :3] = right
    return ImageBuffer(pixels)


def noise_buffer(width=16, height=16, center=0.5, amplitude=0.02, seed=0):
    """Low-amplitude noise with no neighbor difference above 0.1."""
    rng = np.random.default_rng(seed)
    pixels = np.ones((height, width, 4), dtype=np.float32)
    pixels[:, :, :3] = center + rng.uniform(-amplitude, amplitude, (height, width, 3))
    return ImageBuffer(pixels)


def quad_mesh(u0, u1, v0=0.0, v1=1.0, name="quad"):
    """Two-triangle quad covering [u0, u1] x [v0, v1] in UV space."""
    uv = np.array([[u0, v0], [u1, v0], [u1, v1], [u0, v1]], dtype=np.float64)
    return MeshData(uv, np.array([0, 1, 2, 0, 2, 3]), name=name)


def two_island_mesh():
    """Left and right half quads separated by a gap wider than the UV epsilon."""
    uv = np.array([
        [0.0, 0.0], [0.5, 0.0], [0.5, 1.0], [0.0, 1.0],
        [0.5005, 0.0], [1.0, 0.0], [1.0, 1.0], [0.5005, 1.0],
    ], dtype=np.float64)
    triangles = np.array([0, 1, 2, 0, 2, 3, 4, 5, 6, 4, 6, 7])
    return MeshData(uv, triangles, name="halves")
