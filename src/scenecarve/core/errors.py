"""
Error types raised by the alignment and segmentation pipeline
"""

from contextlib import contextmanager
from typing import Optional

import cv2


class SceneCarveError(Exception):
    """Base class for all pipeline errors"""


class ConfigurationError(SceneCarveError, ValueError):
    """Invalid configuration value, rejected before reaching OpenCV"""

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class AlignmentFailure(SceneCarveError):
    """
    Homography estimation produced no usable transform.

    Non-fatal: the image keeps an identity projection and renders unwarped.
    """

    def __init__(self, reason: str, image_index: Optional[int] = None, num_matches: int = 0):
        self.reason = reason
        self.image_index = image_index
        self.num_matches = num_matches
        where = f"image {image_index}" if image_index is not None else "image"
        super().__init__(f"Could not align {where} onto baseline automatically: {reason}")


class NativeComputationError(SceneCarveError):
    """OpenCV signalled an internal error while running a pipeline stage"""

    def __init__(self, stage: str, message: str, image_index: Optional[int] = None):
        self.stage = stage
        self.image_index = image_index
        where = f" (image {image_index})" if image_index is not None else ""
        super().__init__(f"{stage} failed{where}: {message}")


class RenderSurfaceError(SceneCarveError):
    """The render surface received inconsistent textures or transforms"""


class BaselineMaskError(SceneCarveError, ValueError):
    """Paint operations are not allowed on the baseline image"""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation} on the baseline image (index 0)")


@contextmanager
def native_errors(stage: str, image_index: Optional[int] = None):
    """
    Translate ``cv2.error`` raised inside the block into NativeComputationError.

    Example:
        with native_errors("watershed", image_index=2):
            cv2.watershed(image, markers)
    """
    try:
        yield
    except cv2.error as e:
        # cv2.error carries the C++ message as its only argument
        message = str(e).strip().splitlines()[-1] if str(e).strip() else repr(e)
        raise NativeComputationError(stage, message, image_index=image_index) from e
