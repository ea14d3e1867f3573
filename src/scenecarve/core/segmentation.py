"""
Marker-based segmentation and alpha carving

Markers: 0 = unknown, 1 = background, >= 2 = foreground components,
-1 = boundary after watershed. The carved composite keeps source colour with
alpha 255 except on background and boundary pixels, which get alpha 0.
"""

import cv2
import numpy as np
from typing import Optional
import logging

from skimage.filters import sobel
from skimage.segmentation import watershed as skimage_watershed

from scenecarve.core.config import SegmentationType
from scenecarve.core.errors import native_errors
from scenecarve.core.paint_mask import PaintMask

logger = logging.getLogger(__name__)

UNKNOWN = 0
BACKGROUND_LABEL = 1
FIRST_FOREGROUND_LABEL = 2
BOUNDARY = -1


def build_markers(mask: PaintMask) -> np.ndarray:
    """
    Seed marker map from a paint mask.

    Each connected foreground blob gets its own label starting at 2. Pixels
    painted as both foreground and background stay unknown.
    """
    fg = mask.foreground > 0
    bg = mask.background > 0
    conflict = fg & bg
    fg &= ~conflict
    bg &= ~conflict

    markers = np.zeros((mask.height, mask.width), dtype=np.int32)
    with native_errors("connected components"):
        n_labels, labels = cv2.connectedComponents(fg.astype(np.uint8), connectivity=8)
    markers[fg] = labels[fg] + (FIRST_FOREGROUND_LABEL - 1)
    markers[bg] = BACKGROUND_LABEL
    logger.debug(f"Markers: {n_labels - 1} foreground components, "
                 f"{int(bg.sum())} background px, {int((markers == UNKNOWN).sum())} unknown px")
    return markers


def opencv_watershed(image: np.ndarray, markers: np.ndarray) -> np.ndarray:
    """cv2.watershed on the colour image; boundaries come back as -1"""
    result = markers.copy()
    cv2.watershed(image, result)
    return result


def gradient_watershed(image: np.ndarray, markers: np.ndarray) -> np.ndarray:
    """scikit-image watershed on the Sobel gradient; watershed lines become -1"""
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY).astype(np.float64) / 255.0
    elevation = sobel(gray)
    labels = skimage_watershed(elevation, markers=markers, watershed_line=True)
    result = labels.astype(np.int32)
    result[labels == 0] = BOUNDARY
    return result


SEGMENTERS = {
    SegmentationType.WATERSHED: opencv_watershed,
    SegmentationType.GRADIENT_WATERSHED: gradient_watershed,
}


def segment(
    image: np.ndarray,
    markers: np.ndarray,
    algorithm: SegmentationType = SegmentationType.WATERSHED,
    image_index: Optional[int] = None
) -> np.ndarray:
    """Run the selected marker-based segmentation; returns the final marker map"""
    if image.shape[:2] != markers.shape:
        raise ValueError(f"Marker map {markers.shape} does not match image {image.shape[:2]}")
    with native_errors(f"{algorithm.value} segmentation", image_index=image_index):
        return SEGMENTERS[algorithm](image, markers)


def carve(image: np.ndarray, markers: np.ndarray) -> np.ndarray:
    """BGRA raster: source colour, alpha 0 on background/boundary pixels, 255 elsewhere"""
    rgba = np.empty((image.shape[0], image.shape[1], 4), dtype=np.uint8)
    rgba[:, :, :3] = image
    dropped = (markers == BACKGROUND_LABEL) | (markers == BOUNDARY)
    rgba[:, :, 3] = np.where(dropped, 0, 255).astype(np.uint8)
    return rgba


def composite(
    image: np.ndarray,
    mask: PaintMask,
    algorithm: SegmentationType = SegmentationType.WATERSHED,
    image_index: Optional[int] = None
) -> Optional[np.ndarray]:
    """
    Carve the composite raster for one image.

    Args:
        image: Native-resolution BGR pixels
        mask: The image's paint mask
        algorithm: Segmentation variant
        image_index: For error reporting

    Returns:
        BGRA composite, or None when no foreground has been painted

    Raises:
        NativeComputationError: if OpenCV fails during labelling or watershed
    """
    if mask.is_empty():
        return None
    if (mask.width, mask.height) != (image.shape[1], image.shape[0]):
        raise ValueError(f"Paint mask {mask.width}x{mask.height} does not match "
                         f"image {image.shape[1]}x{image.shape[0]}")

    markers = build_markers(mask)
    if not (markers >= FIRST_FOREGROUND_LABEL).any():
        logger.debug(f"Image {image_index}: no foreground seeds, nothing to carve")
        return None
    return carve(image, segment(image, markers, algorithm, image_index=image_index))
