"""Tests for the color, blend, sharpen and tone-curve nodes."""

import logging
import unittest
from unittest import mock

import numpy as np
import pytest

from TexChain.config import (
    BlendParams,
    ColorCorrectionParams,
    SharpenParams,
    ToneCurveParams,
)
from TexChain.core import ColorSpace, ImageBuffer, MaskBuffer, ResourceUnavailableError
from TexChain.nodes import (
    NODE_TYPES,
    BlendNode,
    ColorCorrectionNode,
    SharpenNode,
    ToneCurveNode,
)
from TexChain.nodes.color import wrap_hue
from TexChain.nodes.sharpen import normalize_kernel_size
from conftest import split_buffer


def _random_buffer(width=8, height=8, seed=0, alpha=1.0):
    rng = np.random.default_rng(seed)
    pixels = rng.uniform(0.05, 0.95, (height, width, 4)).astype(np.float32)
    pixels[:, :, 3] = alpha
    return ImageBuffer(pixels)


def _rgb_buffer(rgb, width=4, height=4, alpha=1.0):
    return ImageBuffer.filled(width, height, tuple(rgb) + (alpha,))


@pytest.mark.parametrize("node_type", sorted(NODE_TYPES))
def test_disabled_node_returns_input(node_type):
    node = NODE_TYPES[node_type]()
    node.enabled = False
    source = _random_buffer()
    mask = MaskBuffer.filled(8, 8, 1.0)
    assert node.process(source, mask) is source


def test_unavailable_kernel_passes_through(caplog):
    node = SharpenNode()
    source = _random_buffer()
    with mock.patch("TexChain.nodes.base.load_kernel",
                    side_effect=ResourceUnavailableError("kernel missing")):
        with caplog.at_level(logging.ERROR, logger="texchain.nodes"):
            assert node.process(source) is source
            assert node.process(source) is source
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    # Only the first failure is logged.
    assert len(errors) == 1
    assert node._kernel is None


class TestColorCorrection(unittest.TestCase):
    def test_defaults_are_identity(self):
        source = _random_buffer()
        out = ColorCorrectionNode().process(source)
        self.assertIsNot(out, source)
        np.testing.assert_array_equal(out.pixels, source.pixels)

    def test_brightness_scales_value(self):
        node = ColorCorrectionNode(ColorCorrectionParams(brightness=0.5))
        out = node.process(_rgb_buffer((0.4, 0.4, 0.4)))
        np.testing.assert_allclose(out.rgb, 0.2, atol=1e-5)

    def test_gamma_applies_inverse_exponent(self):
        node = ColorCorrectionNode(ColorCorrectionParams(gamma=2.0))
        out = node.process(_rgb_buffer((0.25, 0.25, 0.25)))
        np.testing.assert_allclose(out.rgb, 0.5, atol=1e-5)

    def test_zero_saturation_desaturates(self):
        node = ColorCorrectionNode(ColorCorrectionParams(saturation=0.0))
        out = node.process(_rgb_buffer((0.8, 0.2, 0.2)))
        np.testing.assert_allclose(out.rgb, 0.8, atol=1e-5)

    def test_hue_shift_wraps(self):
        self.assertEqual(wrap_hue(390.0), 30.0)
        self.assertEqual(wrap_hue(-200.0), 160.0)
        source = _random_buffer()
        a = ColorCorrectionNode(ColorCorrectionParams(hue_shift=30.0)).process(source)
        b = ColorCorrectionNode(ColorCorrectionParams(hue_shift=390.0)).process(source)
        np.testing.assert_allclose(a.pixels, b.pixels, atol=1e-5)

    def test_hue_rotation_moves_red_to_green(self):
        node = ColorCorrectionNode(ColorCorrectionParams(hue_shift=120.0))
        out = node.process(_rgb_buffer((1.0, 0.0, 0.0)))
        np.testing.assert_allclose(out.rgb[0, 0], (0.0, 1.0, 0.0), atol=1e-5)

    def test_alpha_untouched(self):
        node = ColorCorrectionNode(ColorCorrectionParams(brightness=1.5))
        source = _random_buffer(alpha=0.3)
        out = node.process(source)
        np.testing.assert_allclose(out.alpha, 0.3)

    def test_mask_zero_keeps_input_and_mask_one_applies(self):
        params = ColorCorrectionParams(brightness=0.5)
        source = _random_buffer()
        full = ColorCorrectionNode(params).process(source)
        zero = ColorCorrectionNode(params).process(source, MaskBuffer.filled(8, 8, 0.0))
        one = ColorCorrectionNode(params).process(source, MaskBuffer.filled(8, 8, 1.0))
        np.testing.assert_allclose(zero.pixels, source.pixels, atol=1e-7)
        np.testing.assert_allclose(one.pixels, full.pixels, atol=1e-7)

    def test_inverted_mask_and_strength(self):
        params = ColorCorrectionParams(brightness=0.5, invert_mask=True, mask_strength=0.5)
        source = _rgb_buffer((0.4, 0.4, 0.4))
        out = ColorCorrectionNode(params).process(source, MaskBuffer.filled(4, 4, 0.0))
        # weight = (1 - 0) * 0.5 -> halfway between 0.4 and 0.2
        np.testing.assert_allclose(out.rgb, 0.3, atol=1e-5)

    def test_mask_resampled_to_source(self):
        params = ColorCorrectionParams(brightness=0.5)
        source = _rgb_buffer((0.4, 0.4, 0.4), 8, 8)
        out = ColorCorrectionNode(params).process(source, MaskBuffer.filled(2, 2, 0.0))
        np.testing.assert_allclose(out.rgb, 0.4, atol=1e-6)


class TestBlend(unittest.TestCase):
    def _node(self, mode, blend_image, **kwargs):
        return BlendNode(BlendParams(blend_mode=mode, **kwargs), blend_image=blend_image)

    def test_no_blend_image_is_noop(self):
        source = _random_buffer()
        self.assertIs(BlendNode().process(source), source)

    def test_multiply_half_gray_halves_input(self):
        source = _random_buffer(4, 4)
        node = self._node("multiply", _rgb_buffer((0.5, 0.5, 0.5)))
        out = node.process(source)
        np.testing.assert_allclose(out.rgb, source.rgb * 0.5, atol=1e-6)

    def test_add_is_clamped(self):
        node = self._node("add", _rgb_buffer((0.5, 0.5, 0.5)))
        out = node.process(_rgb_buffer((0.8, 0.8, 0.8)))
        np.testing.assert_allclose(out.rgb, 1.0, atol=1e-6)

    def test_hdr_add_is_unclamped(self):
        node = self._node("hdr_add", _rgb_buffer((0.5, 0.5, 0.5)),
                          hdr_color=[2.0, 2.0, 2.0, 1.0])
        out = node.process(_rgb_buffer((0.5, 0.5, 0.5)))
        np.testing.assert_allclose(out.rgb, 1.5, atol=1e-6)

    def test_hdr_multiply_uses_hdr_color(self):
        node = self._node("hdr_multiply", _rgb_buffer((1.0, 1.0, 1.0)),
                          hdr_color=[3.0, 1.0, 0.5, 1.0])
        out = node.process(_rgb_buffer((0.5, 0.5, 0.5)))
        np.testing.assert_allclose(out.rgb[0, 0], (1.5, 0.5, 0.25), atol=1e-6)

    def test_hdr_color_ignored_by_ldr_modes(self):
        node = self._node("multiply", _rgb_buffer((0.5, 0.5, 0.5)),
                          hdr_color=[4.0, 4.0, 4.0, 1.0])
        out = node.process(_rgb_buffer((0.5, 0.5, 0.5)))
        np.testing.assert_allclose(out.rgb, 0.25, atol=1e-6)

    def test_screen_and_overlay(self):
        top = _rgb_buffer((0.5, 0.5, 0.5))
        screen = self._node("screen", top).process(_rgb_buffer((0.5, 0.5, 0.5)))
        np.testing.assert_allclose(screen.rgb, 0.75, atol=1e-6)
        dark = self._node("overlay", top).process(_rgb_buffer((0.25, 0.25, 0.25)))
        np.testing.assert_allclose(dark.rgb, 0.25, atol=1e-6)
        light = self._node("overlay", top).process(_rgb_buffer((0.75, 0.75, 0.75)))
        np.testing.assert_allclose(light.rgb, 0.75, atol=1e-6)

    def test_opacity_is_strength_times_blend_alpha(self):
        top = _rgb_buffer((1.0, 1.0, 1.0), alpha=0.5)
        out = self._node("normal", top, strength=0.5).process(_rgb_buffer((0.0, 0.0, 0.0)))
        np.testing.assert_allclose(out.rgb, 0.25, atol=1e-6)

    def test_output_alpha_is_source_alpha(self):
        source = _rgb_buffer((0.2, 0.2, 0.2), alpha=0.3)
        out = self._node("normal", _rgb_buffer((1.0, 1.0, 1.0))).process(source)
        np.testing.assert_allclose(out.alpha, 0.3)
        np.testing.assert_allclose(out.rgb, 1.0)

    def test_blend_image_resampled(self):
        source = _random_buffer(4, 4)
        node = self._node("multiply", _rgb_buffer((0.5, 0.5, 0.5), 2, 2))
        out = node.process(source)
        np.testing.assert_allclose(out.rgb, source.rgb * 0.5, atol=1e-6)
        node.cleanup()
        self.assertIsNone(node._resampled)

    def test_display_blend_image_is_linearized(self):
        node = BlendNode(BlendParams(blend_mode="normal"))
        node.blend_image = ImageBuffer.filled(4, 4, (0.5, 0.5, 0.5, 1.0), ColorSpace.DISPLAY)
        self.assertIs(node.blend_image.color_space, ColorSpace.LINEAR)
        out = node.process(_rgb_buffer((0.0, 0.0, 0.0)))
        np.testing.assert_allclose(out.rgb, 0.2140, atol=1e-3)


class TestSharpen(unittest.TestCase):
    def test_kernel_size_normalization(self):
        self.assertEqual(normalize_kernel_size(1), 3)
        self.assertEqual(normalize_kernel_size(4), 5)
        self.assertEqual(normalize_kernel_size(7), 7)
        self.assertEqual(normalize_kernel_size(8), 9)
        self.assertEqual(normalize_kernel_size(15), 9)

    def test_constant_image_unchanged(self):
        source = _rgb_buffer((0.4, 0.4, 0.4), 8, 8)
        for mode in ("sharpen", "blur"):
            out = SharpenNode(SharpenParams(mode=mode)).process(source)
            np.testing.assert_allclose(out.rgb, 0.4, atol=1e-5)

    def test_sharpen_overshoots_edge(self):
        source = split_buffer(16, 8, left=0.2, right=0.8)
        out = SharpenNode(SharpenParams(mode="sharpen", strength=1.0)).process(source)
        self.assertGreater(float(out.rgb.max()), 0.8)
        self.assertLess(float(out.rgb.min()), 0.2)

    def test_blur_softens_edge(self):
        source = split_buffer(16, 8, left=0.2, right=0.8)
        out = SharpenNode(SharpenParams(mode="blur", strength=1.0)).process(source)
        self.assertGreater(float(out.rgb[4, 7, 0]), 0.2)
        self.assertLess(float(out.rgb[4, 8, 0]), 0.8)
        self.assertAlmostEqual(float(out.rgb[4, 0, 0]), 0.2, places=5)

    def test_zero_strength_is_identity(self):
        source = split_buffer(16, 8)
        for mode in ("sharpen", "blur"):
            out = SharpenNode(SharpenParams(mode=mode, strength=0.0)).process(source)
            np.testing.assert_allclose(out.pixels, source.pixels, atol=1e-7)

    def test_blur_strength_clamped_to_one(self):
        source = split_buffer(16, 8)
        a = SharpenNode(SharpenParams(mode="blur", strength=1.0)).process(source)
        b = SharpenNode(SharpenParams(mode="blur", strength=5.0)).process(source)
        np.testing.assert_allclose(a.pixels, b.pixels)

    def test_alpha_untouched_and_taps_cached(self):
        node = SharpenNode(SharpenParams(kernel_size=6))
        out = node.process(_random_buffer(alpha=0.6))
        np.testing.assert_allclose(out.alpha, 0.6)
        self.assertIn(7, node._taps)
        node.cleanup()
        self.assertEqual(node._taps, {})


class TestToneCurve(unittest.TestCase):
    def test_identity_rgb_curve_within_one_step(self):
        source = _random_buffer()
        out = ToneCurveNode().process(source)
        self.assertLessEqual(float(np.abs(out.pixels - source.pixels).max()), 1.0 / 255.0)

    def test_channel_curves_run_before_rgb_curve(self):
        params = ToneCurveParams(
            red_curve=[[0.0, 0.0], [1.0, 0.5]],
            rgb_curve=[[0.0, 0.0], [0.5, 1.0], [1.0, 1.0]],
            use_red_curve=True,
            use_rgb_curve=True,
            interpolation="linear",
        )
        out = ToneCurveNode(params).process(_rgb_buffer((0.8, 0.2, 0.2)))
        # red: 0.8 -> 0.4 (red curve) -> 0.8 (rgb curve); reversed order gives 0.5
        np.testing.assert_allclose(out.rgb[0, 0], (0.8, 0.4, 0.4), atol=1e-4)

    def test_disabled_channels_untouched(self):
        params = ToneCurveParams(
            green_curve=[[0.0, 1.0], [1.0, 1.0]],
            use_green_curve=True,
            use_rgb_curve=False,
        )
        source = _rgb_buffer((0.3, 0.3, 0.3), alpha=0.7)
        out = ToneCurveNode(params).process(source)
        np.testing.assert_allclose(out.pixels[0, 0], (0.3, 1.0, 0.3, 0.7), atol=1e-6)

    def test_no_active_curves_copies_input(self):
        source = _random_buffer()
        out = ToneCurveNode(ToneCurveParams(use_rgb_curve=False)).process(source)
        self.assertIsNot(out, source)
        np.testing.assert_array_equal(out.pixels, source.pixels)

    def test_one_lut_per_curve_slot(self):
        node = ToneCurveNode(ToneCurveParams(rgb_curve=[[0, 0], [0.5, 0.7], [1, 1]]))
        source = _random_buffer()
        node.process(source)
        first = node.lut_for("rgb_curve")
        node.process(source)
        self.assertIs(node.lut_for("rgb_curve"), first)
        for y in (0.3, 0.4, 0.6):
            node.params.rgb_curve = [[0, 0], [0.5, y], [1, 1]]
            node.process(source)
        self.assertEqual(list(node._luts), ["rgb_curve"])
        self.assertAlmostEqual(float(node.lut_for("rgb_curve")[128]), 0.6, delta=0.01)
        node.params.lut_size = 64
        self.assertEqual(node.lut_for("rgb_curve").shape, (64,))
        self.assertEqual(len(node._luts), 1)
        node.cleanup()
        self.assertEqual(node._luts, {})
