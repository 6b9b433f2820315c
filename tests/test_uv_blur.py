"""Tests for the UV-island aware blur node."""

import unittest
from unittest import mock

import numpy as np

from TexChain.config import UVIslandBlurParams
from TexChain.core import (
    MaskBuffer,
    MeshData,
    MeshIslandBoundary,
    TextureGradientBoundary,
)
from TexChain.nodes import UVIslandBlurNode
from TexChain.nodes.uv_blur import gaussian_weights
from conftest import noise_buffer, quad_mesh, split_buffer, two_island_mesh


def test_gaussian_weights():
    np.testing.assert_allclose(
        gaussian_weights(2, 1.0), [1.0, np.exp(-0.5), np.exp(-2.0)], rtol=1e-6,
    )


class TestTextureStrategy(unittest.TestCase):
    def test_default_boundary_is_texture(self):
        node = UVIslandBlurNode()
        self.assertIsInstance(node.boundary, TextureGradientBoundary)
        self.assertIsNone(node.mesh)

    def test_no_bleed_across_color_seam(self):
        source = split_buffer(16, 16, left=0.2, right=0.8)
        out = UVIslandBlurNode(UVIslandBlurParams(blur_radius=6)).process(source)
        np.testing.assert_allclose(out.pixels, source.pixels, atol=1e-6)

    def test_unbounded_blur_would_bleed(self):
        source = split_buffer(16, 16, left=0.2, right=0.8)
        node = UVIslandBlurNode(boundary=TextureGradientBoundary(threshold=10.0))
        out = node.process(source)
        self.assertGreater(float(out.rgb[0, 7, 0]), 0.25)

    def test_smooth_region_is_blurred(self):
        source = noise_buffer(16, 16)
        out = UVIslandBlurNode().process(source)
        self.assertLess(float(out.rgb.std()), float(source.rgb.std()))
        np.testing.assert_allclose(out.alpha, source.alpha)

    def test_band_pixels_keep_their_value(self):
        reference = split_buffer(16, 16, left=0.0, right=1.0)
        boundary = TextureGradientBoundary(reference, dilation_radius=0)
        source = noise_buffer(16, 16)
        out = UVIslandBlurNode(boundary=boundary).process(source)
        np.testing.assert_array_equal(out.rgb[:, 7:9], source.rgb[:, 7:9])
        self.assertFalse(np.allclose(out.rgb[:, :7], source.rgb[:, :7]))

    def test_mask_zero_keeps_input(self):
        source = noise_buffer(8, 8)
        out = UVIslandBlurNode().process(source, MaskBuffer.filled(8, 8, 0.0))
        np.testing.assert_allclose(out.pixels, source.pixels, atol=1e-7)


class TestMeshStrategy(unittest.TestCase):
    def test_no_bleed_between_islands(self):
        source = split_buffer(8, 4, left=0.2, right=0.8)
        node = UVIslandBlurNode(UVIslandBlurParams(blur_radius=3))
        node.mesh = two_island_mesh()
        self.assertEqual(node.params.boundary, "mesh")
        out = node.process(source)
        np.testing.assert_allclose(out.pixels, source.pixels, atol=1e-6)

    def test_blurs_within_island(self):
        source = noise_buffer(8, 8)
        node = UVIslandBlurNode(boundary=MeshIslandBoundary(quad_mesh(0.0, 1.0)))
        out = node.process(source)
        self.assertLess(float(out.rgb.std()), float(source.rgb.std()))

    def test_missing_mesh_passes_through(self):
        node = UVIslandBlurNode(UVIslandBlurParams(boundary="mesh"))
        self.assertIsInstance(node.boundary, MeshIslandBoundary)
        source = noise_buffer(8, 8)
        with self.assertLogs("texchain.nodes", level="WARNING"):
            self.assertIs(node.process(source), source)

    def test_mesh_without_islands_passes_through(self):
        node = UVIslandBlurNode()
        node.mesh = MeshData(None, None, name="empty")
        source = noise_buffer(8, 8)
        with self.assertLogs("texchain", level="WARNING"):
            self.assertIs(node.process(source), source)

    def test_no_boundary_source_passes_through(self):
        node = UVIslandBlurNode()
        node.boundary = None
        source = noise_buffer(8, 8)
        self.assertIs(node.process(source), source)


class TestSeamMapCache(unittest.TestCase):
    def test_map_reused_until_key_changes(self):
        boundary = MeshIslandBoundary(two_island_mesh())
        node = UVIslandBlurNode(boundary=boundary)
        with mock.patch.object(boundary, "build_map", wraps=boundary.build_map) as spy:
            node.process(noise_buffer(8, 4))
            node.process(noise_buffer(8, 4, seed=1))
            self.assertEqual(spy.call_count, 1)
            node.process(noise_buffer(16, 8))
            self.assertEqual(spy.call_count, 2)
            node.invalidate_cache()
            node.process(noise_buffer(16, 8))
            self.assertEqual(spy.call_count, 3)

    def test_new_mesh_object_rebuilds(self):
        boundary = MeshIslandBoundary(two_island_mesh())
        node = UVIslandBlurNode(boundary=boundary)
        with mock.patch.object(boundary, "build_map", wraps=boundary.build_map) as spy:
            node.process(noise_buffer(8, 4))
            boundary.mesh = two_island_mesh()
            node.process(noise_buffer(8, 4))
            self.assertEqual(spy.call_count, 2)

    def test_missing_map_is_cached(self):
        boundary = MeshIslandBoundary(MeshData(None, None))
        node = UVIslandBlurNode(boundary=boundary)
        with mock.patch.object(boundary, "build_map", return_value=None) as spy:
            node.process(noise_buffer(8, 4))
            node.process(noise_buffer(8, 4))
            self.assertEqual(spy.call_count, 1)

    def test_texture_reference_identity_key(self):
        reference = noise_buffer(8, 8)
        boundary = TextureGradientBoundary(reference)
        node = UVIslandBlurNode(boundary=boundary)
        with mock.patch.object(boundary, "build_map", wraps=boundary.build_map) as spy:
            node.process(noise_buffer(8, 8, seed=2))
            node.process(noise_buffer(8, 8, seed=3))
            self.assertEqual(spy.call_count, 1)
            boundary.reference = reference.copy()
            node.process(noise_buffer(8, 8, seed=3))
            self.assertEqual(spy.call_count, 2)

    def test_scratch_buffer_follows_dimensions(self):
        node = UVIslandBlurNode()
        node.process(noise_buffer(8, 8))
        first = node._scratch
        node.process(noise_buffer(8, 8, seed=4))
        self.assertIs(node._scratch, first)
        node.process(noise_buffer(12, 6))
        self.assertEqual(node._scratch.shape, (6, 12, 3))
        node.cleanup()
        self.assertIsNone(node._scratch)
        self.assertIsNone(node._seam_map)
