"""
Foreground/background paint hints, stored per image at native resolution
"""

import cv2
import numpy as np
from enum import IntEnum
from typing import Optional, Tuple
import logging

from scenecarve.core.errors import native_errors
from scenecarve.core.projection import Projection, Size

logger = logging.getLogger(__name__)

PAINTED = 255


def clip_segment(
    start: Tuple[float, float],
    end: Tuple[float, float],
    bounds: Tuple[float, float, float, float]
) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    """
    Liang-Barsky clip of a float segment to (x_min, y_min, x_max, y_max).

    The clipped segment keeps the original slope. Returns None when the
    segment misses the rectangle.
    """
    if not np.isfinite([*start, *end]).all():
        return None
    x0, y0 = float(start[0]), float(start[1])
    dx, dy = float(end[0]) - x0, float(end[1]) - y0
    x_min, y_min, x_max, y_max = bounds
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x0 - x_min), (dx, x_max - x0), (-dy, y0 - y_min), (dy, y_max - y0)):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return None
            t0 = max(t0, t)
        else:
            if t < t0:
                return None
            t1 = min(t1, t)
    return (x0 + t0 * dx, y0 + t0 * dy), (x0 + t1 * dx, y0 + t1 * dy)


class MaskChannel(IntEnum):
    FOREGROUND = 0
    BACKGROUND = 1


class PaintMask:
    """
    Two-channel raster (foreground, background) in image-native pixels.

    Strokes accumulate with max; an erase stroke sets the covered pixels of
    its channel back to zero. revision increases on every mutation.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.data = np.zeros((height, width, 2), dtype=np.uint8)
        self.revision = 0

    @property
    def foreground(self) -> np.ndarray:
        return self.data[:, :, MaskChannel.FOREGROUND]

    @property
    def background(self) -> np.ndarray:
        return self.data[:, :, MaskChannel.BACKGROUND]

    def is_empty(self, channel: MaskChannel = None) -> bool:
        if channel is None:
            return not self.data.any()
        return not self.data[:, :, channel].any()

    def draw_segment(
        self,
        start: Tuple[float, float],
        end: Tuple[float, float],
        radius: float,
        channel: MaskChannel,
        erase: bool = False
    ):
        """Rasterise a round-capped segment in native coordinates"""
        r = max(1, int(round(radius)))
        clipped = clip_segment(start, end, (-r, -r, self.width - 1 + r, self.height - 1 + r))
        if clipped is None:
            return
        p0 = (int(round(clipped[0][0])), int(round(clipped[0][1])))
        p1 = (int(round(clipped[1][0])), int(round(clipped[1][1])))

        stroke = np.zeros((self.height, self.width), dtype=np.uint8)
        with native_errors("stroke rasterisation"):
            cv2.line(stroke, p0, p1, PAINTED, thickness=2 * r, lineType=cv2.LINE_8)
            cv2.circle(stroke, p0, r, PAINTED, thickness=-1)
            cv2.circle(stroke, p1, r, PAINTED, thickness=-1)

        target = self.data[:, :, channel]
        if erase:
            target[stroke > 0] = 0
        else:
            np.maximum(target, stroke, out=target)
        self.revision += 1

    def clear(self, channel: MaskChannel):
        self.data[:, :, channel] = 0
        self.revision += 1

    def rgba_overlay(self, fg_color: Tuple[int, int, int], bg_color: Tuple[int, int, int] = (40, 40, 40),
                     opacity: int = 160) -> np.ndarray:
        """BGRA texture of the strokes for display"""
        overlay = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        bg = self.background > 0
        fg = self.foreground > 0
        overlay[bg, :3] = bg_color
        overlay[bg, 3] = opacity
        overlay[fg, :3] = fg_color
        overlay[fg, 3] = opacity
        return overlay


def stroke_radius_native(brush_size: float, projection: Projection, canvas_size: Size) -> float:
    """Brush radius in canvas pixels expressed in image-native pixels"""
    sx = projection.native_size[0] / canvas_size[0]
    sy = projection.native_size[1] / canvas_size[1]
    if projection.homography is not None:
        # Local scale of the inverse mapping around the canvas centre
        c = np.array([[canvas_size[0] / 2.0, canvas_size[1] / 2.0]])
        a = projection.from_canvas(c, canvas_size)
        b = projection.from_canvas(c + [[brush_size, 0.0]], canvas_size)
        d = np.linalg.norm(b - a)
        if np.isfinite(d) and d > 0:
            return float(d)
    return float(brush_size * (sx + sy) / 2.0)


def paint_stroke(
    mask: PaintMask,
    projection: Projection,
    canvas_size: Size,
    from_canvas: Tuple[float, float],
    to_canvas: Tuple[float, float],
    is_background: bool,
    erase: bool,
    brush_size: float
):
    """
    Map a canvas-space drag through the inverse projection and draw it into the mask.
    """
    endpoints = projection.from_canvas(np.array([from_canvas, to_canvas], dtype=np.float64), canvas_size)
    if not np.isfinite(endpoints).all():
        logger.warning(f"Stroke {from_canvas}->{to_canvas} maps outside the image plane, ignored")
        return
    channel = MaskChannel.BACKGROUND if is_background else MaskChannel.FOREGROUND
    radius = stroke_radius_native(brush_size, projection, canvas_size)
    mask.draw_segment(tuple(endpoints[0]), tuple(endpoints[1]), radius, channel, erase=erase)
