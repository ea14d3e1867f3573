"""
Feature extraction on a downscaled grayscale detection frame

Two binary-descriptor detectors are supported:
- AKAZE: scale/rotation invariant, no tunable feature count (default)
- ORB: bounded feature count and tunable edge threshold
"""

import cv2
import numpy as np
from dataclasses import dataclass, field
from typing import Tuple, Optional
import logging

from scenecarve.core.config import PipelineConfig, DetectorType
from scenecarve.core.errors import native_errors
from scenecarve.core.image_store import SourceImage

logger = logging.getLogger(__name__)

# Column layout of FeatureSet.keypoints
KP_X, KP_Y, KP_SIZE, KP_ANGLE, KP_RESPONSE, KP_OCTAVE = range(6)


def detection_size(native_width: int, native_height: int, width_limit: int) -> Tuple[int, int]:
    """
    Size of the detection frame for an image.

    Width is capped at the limit (never upscaled), height keeps the aspect ratio.
    """
    width = min(native_width, width_limit)
    height = max(1, int(round(native_height * (width / native_width))))
    return width, height


@dataclass
class FeatureSet:
    """
    Keypoints and descriptors of one image, in detection-frame coordinates.

    keypoints is an Nx6 float array (x, y, size, angle, response, octave);
    descriptors has one row per keypoint.
    """
    keypoints: np.ndarray
    descriptors: np.ndarray
    frame_size: Tuple[int, int]
    native_size: Tuple[int, int]
    detector: DetectorType = DetectorType.AKAZE
    released: bool = field(default=False, repr=False)

    def __post_init__(self):
        if len(self.keypoints) != len(self.descriptors):
            raise ValueError(
                f"Keypoint/descriptor count mismatch: {len(self.keypoints)} != {len(self.descriptors)}"
            )

    def __len__(self) -> int:
        return len(self.keypoints)

    @property
    def points(self) -> np.ndarray:
        """Nx2 float32 keypoint positions"""
        return self.keypoints[:, [KP_X, KP_Y]].astype(np.float32)

    @property
    def octaves(self) -> np.ndarray:
        return self.keypoints[:, KP_OCTAVE].astype(np.int32)

    @property
    def scale(self) -> Tuple[float, float]:
        """Detection-frame pixels per native pixel, per axis"""
        return (self.frame_size[0] / self.native_size[0],
                self.frame_size[1] / self.native_size[1])

    def release(self):
        """Drop the arrays so a replacement set does not pile up memory"""
        self.keypoints = np.empty((0, 6), dtype=np.float32)
        self.descriptors = np.empty((0, self.descriptors.shape[1] if self.descriptors.ndim == 2 else 0),
                                    dtype=np.uint8)
        self.released = True


def keypoints_to_array(keypoints) -> np.ndarray:
    """Convert cv2.KeyPoint sequence to the Nx6 FeatureSet layout"""
    if len(keypoints) == 0:
        return np.empty((0, 6), dtype=np.float32)
    return np.array([[kp.pt[0], kp.pt[1], kp.size, kp.angle, kp.response, kp.octave]
                     for kp in keypoints], dtype=np.float32)


def array_to_keypoints(kp_array: np.ndarray):
    """Inverse of keypoints_to_array, for OpenCV drawing helpers"""
    return [cv2.KeyPoint(float(row[KP_X]), float(row[KP_Y]), float(row[KP_SIZE]),
                         float(row[KP_ANGLE]), float(row[KP_RESPONSE]), int(row[KP_OCTAVE]))
            for row in kp_array]


class AKAZEDetector:
    """AKAZE detector (binary MLDB descriptors)"""

    def __init__(self):
        self.akaze = cv2.AKAZE_create()

    def detect_and_compute(self, gray: np.ndarray):
        return self.akaze.detectAndCompute(gray, None)

    def release(self):
        self.akaze = None


class ORBDetector:
    """ORB detector with bounded feature count"""

    def __init__(self, n_features: int = 200, edge_threshold: int = 31):
        self.n_features = n_features
        self.edge_threshold = edge_threshold
        self.orb = cv2.ORB_create(nfeatures=n_features)
        self.orb.setMaxFeatures(n_features)
        self.orb.setEdgeThreshold(edge_threshold)

    def detect_and_compute(self, gray: np.ndarray):
        return self.orb.detectAndCompute(gray, None)

    def release(self):
        self.orb = None


def create_detector(config: PipelineConfig):
    """Create the detector selected in the configuration"""
    if config.detector == DetectorType.ORB:
        return ORBDetector(n_features=config.max_features, edge_threshold=config.edge_threshold)
    return AKAZEDetector()


def make_detection_frame(image: SourceImage, width_limit: int) -> np.ndarray:
    """Downscaled single-channel version of an image"""
    width, height = detection_size(image.width, image.height, width_limit)
    if (width, height) != (image.width, image.height):
        resized = cv2.resize(image.pixels, (width, height), interpolation=cv2.INTER_AREA)
    else:
        resized = image.pixels
    return cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)


def extract_features(
    image: SourceImage,
    config: PipelineConfig,
    image_index: Optional[int] = None
) -> FeatureSet:
    """
    Detect keypoints and compute descriptors on the image's detection frame.

    Args:
        image: Source image
        config: Validated pipeline configuration
        image_index: Position in the image store, for error reporting

    Returns:
        FeatureSet in detection-frame coordinates

    Raises:
        NativeComputationError: if OpenCV fails on resize, conversion or detection
    """
    detector = None
    try:
        with native_errors("feature extraction", image_index=image_index):
            gray = make_detection_frame(image, config.width_limit)
            detector = create_detector(config)
            keypoints, descriptors = detector.detect_and_compute(gray)

        kp_array = keypoints_to_array(keypoints)
        if descriptors is None:
            # No keypoints: keep an empty descriptor matrix with the detector's row width
            descriptors = np.empty((0, 61 if config.detector == DetectorType.AKAZE else 32), dtype=np.uint8)

        frame_size = (gray.shape[1], gray.shape[0])
        logger.debug(
            f"Image {image_index if image_index is not None else image.name}: "
            f"{len(kp_array)} {config.detector.value} features on {frame_size[0]}x{frame_size[1]} frame"
        )
        return FeatureSet(
            keypoints=kp_array,
            descriptors=descriptors,
            frame_size=frame_size,
            native_size=image.size,
            detector=config.detector,
        )
    finally:
        if detector is not None:
            detector.release()
