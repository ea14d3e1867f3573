"""Tests for detection-frame downscaling and feature extraction"""
import cv2
import numpy as np
import pytest

from scenecarve.core.config import PipelineConfig, DetectorType
from scenecarve.core.errors import NativeComputationError
from scenecarve.core.image_store import SourceImage
from scenecarve.ml.feature_detector import (
    FeatureSet, ORBDetector, AKAZEDetector, create_detector, detection_size,
    extract_features, make_detection_frame, keypoints_to_array, array_to_keypoints, KP_X, KP_Y
)

from conftest import make_scene


class TestDetectionSize:

    def test_wide_image_is_downscaled(self):
        assert detection_size(1600, 1200, 800) == (800, 600)

    def test_small_image_is_not_upscaled(self):
        assert detection_size(400, 300, 800) == (400, 300)

    def test_aspect_ratio_rounding(self):
        assert detection_size(1000, 333, 800) == (800, 266)

    def test_height_never_zero(self):
        assert detection_size(4000, 1, 800) == (800, 1)


class TestExtraction:

    def test_akaze_on_textured_scene(self, scene, config):
        features = extract_features(SourceImage(scene), config, image_index=0)
        assert len(features) > 50
        assert len(features.keypoints) == len(features.descriptors)
        assert features.keypoints.shape[1] == 6
        assert features.descriptors.dtype == np.uint8
        assert features.detector == DetectorType.AKAZE
        assert features.frame_size == (800, 600)
        assert features.native_size == (800, 600)

    def test_large_image_detected_on_downscaled_frame(self):
        big = make_scene(1600, 1200, seed=3)
        features = extract_features(SourceImage(big), PipelineConfig().validate())
        assert features.frame_size == (800, 600)
        assert features.native_size == (1600, 1200)
        assert features.scale == (0.5, 0.5)
        assert features.keypoints[:, KP_X].max() < 800
        assert features.keypoints[:, KP_Y].max() < 600

    def test_orb_respects_max_features(self, scene):
        few = extract_features(SourceImage(scene), PipelineConfig(detector="orb", max_features=50).validate())
        many = extract_features(SourceImage(scene), PipelineConfig(detector="orb", max_features=400).validate())
        assert few.detector == DetectorType.ORB
        assert 0 < len(few) < len(many)
        assert few.descriptors.shape[1] == 32

    def test_blank_image_has_no_features(self, blank_image, config):
        features = extract_features(SourceImage(blank_image), config)
        assert len(features) == 0
        assert features.descriptors.shape == (0, 61)

    def test_native_failure_is_translated(self, scene, config, monkeypatch):
        class Broken:
            def detectAndCompute(self, gray, mask):
                raise cv2.error("detector exploded")

        monkeypatch.setattr(cv2, "AKAZE_create", lambda: Broken())
        with pytest.raises(NativeComputationError) as exc_info:
            extract_features(SourceImage(scene), config, image_index=3)
        assert exc_info.value.image_index == 3
        assert isinstance(exc_info.value.__cause__, cv2.error)


class TestDetectors:

    def test_orb_knobs_forwarded(self):
        detector = ORBDetector(n_features=123, edge_threshold=17)
        assert detector.orb.getMaxFeatures() == 123
        assert detector.orb.getEdgeThreshold() == 17

    def test_create_detector_by_config(self):
        assert isinstance(create_detector(PipelineConfig().validate()), AKAZEDetector)
        orb = create_detector(PipelineConfig(detector="orb", max_features=64, edge_threshold=9).validate())
        assert isinstance(orb, ORBDetector)
        assert (orb.n_features, orb.edge_threshold) == (64, 9)

    def test_release_drops_native_object(self):
        detector = AKAZEDetector()
        detector.release()
        assert detector.akaze is None

    def test_detection_frame_is_grayscale(self, scene):
        frame = make_detection_frame(SourceImage(scene), 400)
        assert frame.shape == (300, 400)
        assert frame.dtype == np.uint8


class TestFeatureSet:

    def test_count_mismatch_rejected(self):
        with pytest.raises(ValueError):
            FeatureSet(np.zeros((3, 6), np.float32), np.zeros((2, 61), np.uint8), (10, 10), (10, 10))

    def test_release_empties_arrays(self, scene, config):
        features = extract_features(SourceImage(scene), config)
        features.release()
        assert features.released
        assert len(features) == 0
        assert features.descriptors.shape == (0, 61)

    def test_keypoint_array_conversion(self):
        kps = [cv2.KeyPoint(10.5, 20.25, 7.0, 45.0, 0.5, 2)]
        arr = keypoints_to_array(kps)
        assert arr.shape == (1, 6)
        back = array_to_keypoints(arr)[0]
        assert back.pt == pytest.approx((10.5, 20.25))
        assert back.octave == 2
        assert keypoints_to_array([]).shape == (0, 6)
