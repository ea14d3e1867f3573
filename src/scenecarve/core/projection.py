"""
Coordinate mapping between canvas, image-native and detection-frame spaces

The canvas is the baseline's frame stretched to the display size. A stored
homography maps the image's detection frame onto the baseline's detection
frame; it is rescaled, never re-estimated, for other resolutions.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

Size = Tuple[int, int]


def scale_matrix(sx: float, sy: float) -> np.ndarray:
    return np.array([[sx, 0.0, 0.0],
                     [0.0, sy, 0.0],
                     [0.0, 0.0, 1.0]], dtype=np.float64)


def apply_homography(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 3x3 transform to Nx2 points"""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homogeneous = np.hstack([pts, np.ones((len(pts), 1))])
    mapped = homogeneous @ matrix.T
    return mapped[:, :2] / mapped[:, 2:3]


@dataclass
class Projection:
    """
    Projection of one image onto the baseline.

    homography is None for the baseline and for images that are not (or
    could not be) aligned; those map to the canvas by a plain linear scale.
    """
    native_size: Size
    detection_size: Size
    baseline_detection_size: Size
    homography: Optional[np.ndarray] = None

    @property
    def is_identity(self) -> bool:
        return self.homography is None

    @property
    def detection_scale(self) -> Tuple[float, float]:
        """Detection-frame pixels per native pixel"""
        return (self.detection_size[0] / self.native_size[0],
                self.detection_size[1] / self.native_size[1])

    def native_to_canvas(self, canvas_size: Size) -> np.ndarray:
        """3x3 matrix taking image-native pixels to canvas pixels"""
        if self.homography is None:
            return scale_matrix(canvas_size[0] / self.native_size[0],
                                canvas_size[1] / self.native_size[1])
        to_detection = scale_matrix(*self.detection_scale)
        to_canvas = scale_matrix(canvas_size[0] / self.baseline_detection_size[0],
                                 canvas_size[1] / self.baseline_detection_size[1])
        return to_canvas @ self.homography @ to_detection

    def canvas_to_native(self, canvas_size: Size) -> np.ndarray:
        """3x3 matrix taking canvas pixels back to image-native pixels"""
        if self.homography is None:
            # Direct scale, no matrix inversion
            return scale_matrix(self.native_size[0] / canvas_size[0],
                                self.native_size[1] / canvas_size[1])
        return np.linalg.inv(self.native_to_canvas(canvas_size))

    def to_canvas(self, points: np.ndarray, canvas_size: Size) -> np.ndarray:
        """Map Nx2 image-native points into canvas space"""
        return apply_homography(self.native_to_canvas(canvas_size), points)

    def from_canvas(self, points: np.ndarray, canvas_size: Size) -> np.ndarray:
        """Map Nx2 canvas points into image-native space"""
        return apply_homography(self.canvas_to_native(canvas_size), points)

    @classmethod
    def identity(cls, native_size: Size, detection_size: Size,
                 baseline_detection_size: Size) -> 'Projection':
        return cls(native_size=native_size, detection_size=detection_size,
                   baseline_detection_size=baseline_detection_size, homography=None)
