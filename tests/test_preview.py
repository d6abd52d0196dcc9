"""Tests for the CPU preview renderer and its post effects."""

import dataclasses

import numpy as np
import pytest
from PIL import Image

from chromakeys.config import PreviewConfig
from chromakeys.engine import InstrumentEngine
from chromakeys.errors import TransientRenderFailure
from chromakeys.preview import (
    PreviewRenderer,
    add_glow,
    chromatic_aberration,
    hsv_to_rgb,
    kaleidoscope_fold,
    mirror,
    radial_warp,
    splat,
    vignette,
)

DT = 1.0 / 60.0


class TestHelpers:
    def test_hsv_primaries(self):
        rgb = hsv_to_rgb(np.array([0.0, 1 / 3, 2 / 3]), np.ones(3), np.ones(3))
        np.testing.assert_allclose(rgb, np.eye(3), atol=1e-5)

    def test_hsv_hue_wraps_and_broadcasts(self):
        wrapped = hsv_to_rgb(np.array([1.25, -0.75]), 0.85, 1.0)
        base = hsv_to_rgb(np.array([0.25, 0.25]), 0.85, 1.0)
        assert wrapped.shape == (2, 3)
        np.testing.assert_allclose(wrapped, base, atol=1e-5)

    def test_hsv_zero_saturation_is_grey(self):
        rgb = hsv_to_rgb(np.array([0.1, 0.6]), 0.0, 0.4)
        np.testing.assert_allclose(rgb, np.full((2, 3), 0.4), atol=1e-6)

    def test_splat_bilinear_taps(self):
        accum = np.zeros((4, 4, 3), dtype=np.float32)
        splat(np.array([1.25]), np.array([2.5]), np.ones((1, 3), dtype=np.float32), np.array([1.0]), accum)
        np.testing.assert_allclose(accum[2, 1, 0], 0.375)
        np.testing.assert_allclose(accum[2, 2, 0], 0.125)
        np.testing.assert_allclose(accum[3, 1, 0], 0.375)
        np.testing.assert_allclose(accum[3, 2, 0], 0.125)

    def test_splat_conserves_weight(self):
        accum = np.zeros((10, 10, 3), dtype=np.float32)
        splat(np.array([4.3]), np.array([5.6]), np.ones((1, 3), dtype=np.float32), np.array([2.0]), accum)
        assert accum[:, :, 0].sum() == pytest.approx(2.0, rel=1e-5)

    def test_splat_ignores_off_screen(self):
        accum = np.zeros((10, 10, 3), dtype=np.float32)
        splat(np.array([-50.0]), np.array([3.0]), np.ones((1, 3), dtype=np.float32), np.array([1.0]), accum)
        assert accum.sum() == 0.0

    def test_fold_shape_and_passthrough(self):
        img = np.random.default_rng(0).integers(0, 255, (40, 60, 3), dtype=np.uint8)
        assert kaleidoscope_fold(img, 6).shape == img.shape
        assert kaleidoscope_fold(img, 1) is img

    def test_warp_zero_is_identity(self):
        img = np.zeros((20, 20, 3), dtype=np.uint8)
        assert radial_warp(img, 0.0, 0.0) is img
        assert radial_warp(img, 0.02, 1.0).shape == img.shape

    def test_mirror_symmetric(self):
        img = np.zeros((10, 10, 3), dtype=np.uint8)
        img[:, :5] = 200
        out = mirror(img, 1.0, 0.0)
        np.testing.assert_array_equal(out, out[:, ::-1])

    def test_aberration_offset_clamped(self):
        img = np.random.default_rng(1).integers(0, 255, (8, 8, 3), dtype=np.uint8)
        out = chromatic_aberration(img, offset=50)
        assert out.shape == img.shape
        np.testing.assert_array_equal(out[:, :, 1], img[:, :, 1])

    def test_vignette_darkens_corners(self):
        img = np.full((40, 40, 3), 200, dtype=np.uint8)
        out = vignette(img, strength=0.8)
        assert out[0, 0, 0] < out[20, 20, 0]

    def test_glow_never_darkens(self):
        img = np.random.default_rng(2).integers(0, 255, (30, 30, 3), dtype=np.uint8)
        out = add_glow(img, intensity=0.5, radius=3)
        assert np.all(out.astype(int) >= img.astype(int) - 1)


class TestPreviewRenderer:
    @pytest.fixture
    def frame(self, small_config):
        engine = InstrumentEngine(small_config)
        engine.trigger_cell(3, 1)
        return engine.tick(dt=DT)

    def test_render_shape(self, small_config, frame):
        preview = PreviewRenderer(small_config.preview, seed=0)
        image = preview.render(frame)
        assert image.shape == (64, 96, 3)
        assert image.dtype == np.uint8
        assert image.max() > 0
        assert preview.last_image is image

    def test_projection_centre(self):
        preview = PreviewRenderer(PreviewConfig(width=100, height=50))
        x, y, depth = preview.project(np.zeros((1, 3)), yaw=0.0)
        assert x[0] == pytest.approx(50.0)
        assert y[0] == pytest.approx(25.0)
        assert depth[0] == pytest.approx(0.5)

    def test_zoom_spreads_points(self):
        preview = PreviewRenderer(PreviewConfig(width=100, height=50))
        pts = np.array([[0.5, 0.0, 0.0]])
        x1, _, _ = preview.project(pts, yaw=0.0, zoom=1.0)
        x2, _, _ = preview.project(pts, yaw=0.0, zoom=2.0)
        assert x2[0] - 50 > x1[0] - 50 > 0

    def test_subsample_caps_particles(self):
        preview = PreviewRenderer(PreviewConfig(max_particles=10), seed=0)
        pts = np.random.default_rng(0).uniform(-1, 1, (100, 3))
        assert len(preview._subsample(pts)) == 10

    def test_bad_frame_is_transient_failure(self, small_config, frame):
        preview = PreviewRenderer(small_config.preview)
        broken = dataclasses.replace(frame, positions=np.zeros((5, 2)))
        with pytest.raises(TransientRenderFailure):
            preview.render(broken)

    def test_as_engine_renderer(self, small_config):
        preview = PreviewRenderer(small_config.preview, seed=0)
        engine = InstrumentEngine(small_config, renderer=preview)
        engine.burst(5, 1)
        for _ in range(3):
            engine.tick(dt=DT)
        assert preview.last_image is not None
        assert engine.render_failures == 0

    def test_save_png(self, small_config, frame, tmp_path):
        preview = PreviewRenderer(small_config.preview)
        path = tmp_path / "frame.png"
        preview.save_png(preview.render(frame), path)
        with Image.open(path) as img:
            assert img.size == (96, 64)
