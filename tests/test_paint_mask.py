"""Tests for paint mask rasterisation and stroke mapping"""
import numpy as np
import pytest

from scenecarve.core.paint_mask import (
    MaskChannel, PaintMask, clip_segment, paint_stroke, stroke_radius_native
)
from scenecarve.core.projection import Projection


class TestPaintMask:

    def test_new_mask_is_empty(self):
        mask = PaintMask(100, 80)
        assert mask.data.shape == (80, 100, 2)
        assert mask.is_empty()
        assert mask.revision == 0

    def test_strokes_accumulate(self):
        mask = PaintMask(100, 80)
        mask.draw_segment((10, 10), (50, 10), 3, MaskChannel.FOREGROUND)
        first = mask.foreground.copy()
        mask.draw_segment((10, 40), (50, 40), 3, MaskChannel.FOREGROUND)
        assert mask.foreground[10, 30] == 255
        assert mask.foreground[40, 30] == 255
        assert (mask.foreground >= first).all()
        assert mask.is_empty(MaskChannel.BACKGROUND)
        assert mask.revision == 2

    def test_channels_are_independent(self):
        mask = PaintMask(100, 80)
        mask.draw_segment((10, 10), (90, 10), 2, MaskChannel.BACKGROUND)
        assert mask.background[10, 50] == 255
        assert mask.is_empty(MaskChannel.FOREGROUND)
        assert not mask.is_empty()

    def test_erase_only_touches_its_channel(self):
        mask = PaintMask(100, 80)
        mask.draw_segment((10, 40), (90, 40), 4, MaskChannel.FOREGROUND)
        mask.draw_segment((10, 40), (90, 40), 4, MaskChannel.BACKGROUND)
        mask.draw_segment((40, 40), (60, 40), 6, MaskChannel.FOREGROUND, erase=True)
        assert mask.foreground[40, 50] == 0
        assert mask.foreground[40, 15] == 255
        assert mask.background[40, 50] == 255

    def test_clear(self):
        mask = PaintMask(50, 50)
        mask.draw_segment((5, 5), (45, 45), 2, MaskChannel.FOREGROUND)
        mask.draw_segment((5, 45), (45, 5), 2, MaskChannel.BACKGROUND)
        mask.clear(MaskChannel.FOREGROUND)
        assert mask.is_empty(MaskChannel.FOREGROUND)
        assert not mask.is_empty(MaskChannel.BACKGROUND)

    def test_far_off_image_stroke_is_clipped(self):
        mask = PaintMask(50, 50)
        mask.draw_segment((-1e12, 25), (1e12, 25), 2, MaskChannel.FOREGROUND)
        assert mask.foreground[25, 25] == 255

    def test_far_off_image_slanted_stroke_keeps_slope(self):
        mask = PaintMask(100, 100)
        start, end = (-100000.0, 0.0), (50.0, 100.0)
        mask.draw_segment(start, end, 1, MaskChannel.FOREGROUND)
        assert mask.foreground.any()
        assert not mask.foreground[:95, 0].any()

        ys, xs = np.nonzero(mask.foreground)
        dx, dy = end[0] - start[0], end[1] - start[1]
        distance = np.abs(dy * (xs - start[0]) - dx * (ys - start[1])) / np.hypot(dx, dy)
        assert distance.max() <= 2.5

    def test_stroke_missing_the_image_paints_nothing(self):
        mask = PaintMask(50, 50)
        mask.draw_segment((-500, -10), (500, -10), 2, MaskChannel.FOREGROUND)
        mask.draw_segment((-1000, 10), (-10, 2000), 2, MaskChannel.FOREGROUND)
        assert mask.is_empty()
        assert mask.revision == 0

    def test_overlay_colours(self):
        mask = PaintMask(20, 20)
        mask.draw_segment((5, 5), (15, 5), 1, MaskChannel.FOREGROUND)
        overlay = mask.rgba_overlay((0, 0, 255))
        assert overlay.shape == (20, 20, 4)
        assert tuple(overlay[5, 10]) == (0, 0, 255, 160)
        assert overlay[15, 10, 3] == 0


class TestStrokeMapping:

    def test_identity_projection_scales_to_native(self):
        mask = PaintMask(800, 600)
        proj = Projection.identity((800, 600), (800, 600), (800, 600))
        paint_stroke(mask, proj, (400, 300), (50, 50), (100, 50), is_background=False, erase=False, brush_size=2)
        assert mask.foreground[100, 150] == 255
        assert mask.foreground[50, 75] == 0
        assert mask.is_empty(MaskChannel.BACKGROUND)

    def test_stroke_follows_homography(self):
        mask = PaintMask(800, 600)
        h = np.array([[1.0, 0.0, 20.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
        proj = Projection((800, 600), (800, 600), (800, 600), homography=h)
        paint_stroke(mask, proj, (800, 600), (120, 300), (120, 300), is_background=True, erase=False, brush_size=3)
        assert mask.background[300, 100] == 255
        assert mask.background[300, 120] == 0

    def test_radius_in_native_pixels(self):
        proj = Projection.identity((1600, 1200), (800, 600), (800, 600))
        assert stroke_radius_native(2, proj, (800, 600)) == pytest.approx(4.0)
        aligned = Projection((1600, 1200), (800, 600), (800, 600), homography=np.eye(3))
        assert stroke_radius_native(2, aligned, (800, 600)) == pytest.approx(4.0)


class TestClipSegment:

    def test_inside_segment_unchanged(self):
        assert clip_segment((1, 2), (3, 4), (0, 0, 10, 10)) == ((1.0, 2.0), (3.0, 4.0))

    def test_clipped_points_stay_on_the_line(self):
        (x0, y0), (x1, y1) = clip_segment((-90, -40), (110, 60), (0, 0, 20, 20))
        assert (x0, y0) == pytest.approx((0.0, 5.0))
        assert (x1, y1) == pytest.approx((20.0, 15.0))

    def test_outside_and_non_finite(self):
        assert clip_segment((-5, -5), (-1, 30), (0, 0, 10, 10)) is None
        assert clip_segment((0, 0), (float("inf"), 5), (0, 0, 10, 10)) is None
