"""
Render boundary between the pipeline and the display

The pipeline hands out one RenderItem per image; CompositeRenderer warps
them onto a canvas of the baseline's aspect and alpha-blends them
(source-over), the same compositing the display surface performs.
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import List, Optional
import logging

from scenecarve.core.config import ResultView
from scenecarve.core.errors import RenderSurfaceError, native_errors
from scenecarve.core.projection import Projection, Size

logger = logging.getLogger(__name__)


@dataclass
class RenderItem:
    """Everything the display needs for one image"""
    index: int
    texture: np.ndarray                 # native BGR
    paint_overlay: Optional[np.ndarray] # native BGRA or None
    composite: Optional[np.ndarray]     # native BGRA or None
    projection: Projection

    @property
    def homography(self) -> np.ndarray:
        """Stored projection, identity when absent"""
        if self.projection.homography is None:
            return np.eye(3)
        return self.projection.homography

    @property
    def detection_size(self) -> Size:
        return self.projection.detection_size


def build_render_items(pipeline, show_masks: bool = True) -> List[RenderItem]:
    """Collect render items for every image of a pipeline, in index order"""
    items = []
    for index, image in enumerate(pipeline.store):
        rec = pipeline.record(index)
        overlay = None
        if show_masks and rec.paint_mask is not None and not rec.paint_mask.is_empty():
            overlay = rec.paint_mask.rgba_overlay(pipeline.color(index))
        items.append(RenderItem(
            index=index,
            texture=image.pixels,
            paint_overlay=overlay,
            composite=rec.composite,
            projection=pipeline.projection(index),
        ))
    return items


def canvas_size_for(width: int, height: int, max_width: int) -> Size:
    """Canvas with the baseline's aspect ratio, at most max_width wide"""
    canvas_w = min(width, max_width)
    return canvas_w, max(1, int(round(height * canvas_w / width)))


class CompositeRenderer:
    """CPU renderer: perspective-warp textures and blend with source alpha"""

    def __init__(self, canvas_size: Size, background=(0, 0, 0)):
        if canvas_size[0] <= 0 or canvas_size[1] <= 0:
            raise RenderSurfaceError(f"Invalid canvas size {canvas_size}")
        self.canvas_size = canvas_size
        self.background = background

    def _check_item(self, item: RenderItem):
        tex = item.texture
        if tex is None or tex.ndim != 3 or tex.shape[2] != 3 or tex.dtype != np.uint8:
            raise RenderSurfaceError(f"Image {item.index}: texture must be HxWx3 uint8")
        native = (tex.shape[1], tex.shape[0])
        if tuple(item.projection.native_size) != native:
            raise RenderSurfaceError(f"Image {item.index}: projection is for {item.projection.native_size}, "
                                     f"texture is {native}")
        for name, layer in (('paint overlay', item.paint_overlay), ('composite', item.composite)):
            if layer is None:
                continue
            if layer.ndim != 3 or layer.shape[2] != 4 or (layer.shape[1], layer.shape[0]) != native:
                raise RenderSurfaceError(f"Image {item.index}: {name} shape {layer.shape} "
                                         f"does not match texture {native}")
        h = item.homography
        if h.shape != (3, 3) or not np.isfinite(h).all():
            raise RenderSurfaceError(f"Image {item.index}: projection must be a finite 3x3 matrix")

    def _warp(self, layer: np.ndarray, item: RenderItem) -> np.ndarray:
        matrix = item.projection.native_to_canvas(self.canvas_size)
        with native_errors("render warp", image_index=item.index):
            return cv2.warpPerspective(
                layer, matrix, self.canvas_size,
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=(0, 0, 0, 0)
            )

    def _blend(self, canvas: np.ndarray, layer: np.ndarray):
        """Source-over blend of a warped BGRA layer onto the float canvas"""
        alpha = layer[:, :, 3:4].astype(np.float32) / 255.0
        canvas *= (1.0 - alpha)
        canvas += layer[:, :, :3].astype(np.float32) * alpha

    def _draw(self, canvas: np.ndarray, layer: np.ndarray, item: RenderItem):
        if layer.shape[2] == 3:
            layer = cv2.cvtColor(layer, cv2.COLOR_BGR2BGRA)
        self._blend(canvas, self._warp(layer, item))

    def render(
        self,
        items: List[RenderItem],
        view: ResultView = ResultView.NONE,
        selected: int = -1
    ) -> np.ndarray:
        """
        Draw the scene.

        Args:
            items: Render items in index order (index 0 is the baseline)
            view: NONE draws source images, SPLIT only the selected image
                carved, FULL the baseline with every carved composite on top
            selected: Image drawn last / alone; -1 draws all images

        Returns:
            BGR uint8 canvas

        Raises:
            RenderSurfaceError: inconsistent item state
        """
        for item in items:
            self._check_item(item)
        if selected >= len(items):
            raise RenderSurfaceError(f"Selected image {selected} out of range ({len(items)} images)")

        w, h = self.canvas_size
        canvas = np.empty((h, w, 3), dtype=np.float32)
        canvas[:] = self.background

        if view == ResultView.SPLIT and selected >= 0:
            item = items[selected]
            layer = item.composite if item.composite is not None else item.texture
            self._draw(canvas, layer, item)
        elif view == ResultView.FULL:
            if items:
                self._draw(canvas, items[0].texture, items[0])
            for item in items[1:]:
                if item.composite is not None:
                    self._draw(canvas, item.composite, item)
        else:
            # Selected image is drawn last so it sits on top
            order = list(items)
            if selected >= 0:
                order = [it for it in items if it.index != selected] + [items[selected]]
            for item in order:
                self._draw(canvas, item.texture, item)
            for item in order:
                if item.paint_overlay is not None and (selected < 0 or item.index == selected):
                    self._draw(canvas, item.paint_overlay, item)

        return np.clip(canvas, 0, 255).astype(np.uint8)
