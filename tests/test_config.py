"""Tests for configuration validation and cache key derivation"""
import pytest

from scenecarve.core.cache_keys import features_key, alignment_key, composite_key
from scenecarve.core.config import (
    PipelineConfig, DetectorType, SegmentationType, FEATURE_FIELDS, COMPOSITE_FIELDS
)
from scenecarve.core.errors import ConfigurationError


class TestPipelineConfig:

    def test_defaults(self):
        config = PipelineConfig().validate()
        assert config.detector == DetectorType.AKAZE
        assert config.width_limit == 800
        assert config.max_features == 200
        assert config.edge_threshold == 31
        assert config.ratio_threshold == pytest.approx(0.7)
        assert config.segmentation == SegmentationType.WATERSHED
        assert config.alignment_enabled is True

    def test_parses_enum_strings(self):
        config = PipelineConfig(detector="ORB", segmentation="gradient_watershed").validate()
        assert config.detector == DetectorType.ORB
        assert config.segmentation == SegmentationType.GRADIENT_WATERSHED

    @pytest.mark.parametrize("field,value", [
        ("max_features", -5),
        ("max_features", 0),
        ("width_limit", 0),
        ("edge_threshold", 0),
        ("edge_threshold", 1000),
        ("ratio_threshold", 0.0),
        ("ratio_threshold", 1.5),
        ("ratio_threshold", float("nan")),
        ("brush_size", 0),
        ("detector", "sift"),
        ("segmentation", "grabcut"),
        ("alignment_enabled", "yes"),
        ("max_features", 12.5),
        ("max_features", float("inf")),
        ("max_features", float("nan")),
        ("width_limit", float("-inf")),
        ("edge_threshold", float("nan")),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ConfigurationError) as exc_info:
            PipelineConfig(**{field: value}).validate()
        assert exc_info.value.field == field

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            PipelineConfig(max_features=-1).validate()

    def test_mapping_round_trip(self):
        config = PipelineConfig(detector=DetectorType.ORB, max_features=500).validate()
        data = config.to_mapping()
        assert data['detector'] == 'orb'
        assert PipelineConfig.from_mapping(data) == config

    def test_from_mapping_ignores_unknown_keys(self):
        config = PipelineConfig.from_mapping({'detector': 'orb', 'eraser': True})
        assert config.detector == DetectorType.ORB

    def test_orb_knobs_only_count_for_orb(self):
        akaze = PipelineConfig().validate()
        orb = PipelineConfig(detector=DetectorType.ORB).validate()
        assert 'max_features' not in akaze.stage_fields(FEATURE_FIELDS)
        assert orb.stage_fields(FEATURE_FIELDS)['max_features'] == 200
        assert orb.stage_fields(COMPOSITE_FIELDS) == {'segmentation': 'watershed', 'detector': 'orb'}


class TestCacheKeys:

    def test_stages_never_share_keys(self, config):
        keys = {features_key("abc", config), alignment_key("abc", "base", config), composite_key("abc", config)}
        assert len(keys) == 3

    def test_keys_depend_on_identity(self, config):
        assert features_key("a", config) != features_key("b", config)
        assert composite_key("a", config) != composite_key("b", config)

    def test_alignment_key_depends_on_baseline(self, config):
        assert alignment_key("img", "base1", config) != alignment_key("img", "base2", config)

    def test_ratio_change_only_touches_alignment(self, config):
        other = PipelineConfig(ratio_threshold=0.8).validate()
        assert features_key("a", config) == features_key("a", other)
        assert composite_key("a", config) == composite_key("a", other)
        assert alignment_key("a", "b", config) != alignment_key("a", "b", other)

    def test_alignment_toggle_changes_alignment_key(self, config):
        off = PipelineConfig(alignment_enabled=False).validate()
        assert alignment_key("a", "b", config) != alignment_key("a", "b", off)
        assert features_key("a", config) == features_key("a", off)

    def test_segmentation_change_only_touches_composite(self, config):
        other = PipelineConfig(segmentation=SegmentationType.GRADIENT_WATERSHED).validate()
        assert composite_key("a", config) != composite_key("a", other)
        assert features_key("a", config) == features_key("a", other)
        assert alignment_key("a", "b", config) == alignment_key("a", "b", other)

    def test_detector_change_touches_every_stage(self, config):
        orb = PipelineConfig(detector=DetectorType.ORB).validate()
        assert features_key("a", config) != features_key("a", orb)
        assert alignment_key("a", "b", config) != alignment_key("a", "b", orb)
        assert composite_key("a", config) != composite_key("a", orb)

    def test_akaze_ignores_orb_knobs(self, config):
        other = PipelineConfig(max_features=999, edge_threshold=10).validate()
        assert features_key("a", config) == features_key("a", other)
        orb1 = PipelineConfig(detector=DetectorType.ORB).validate()
        orb2 = PipelineConfig(detector=DetectorType.ORB, max_features=999).validate()
        assert features_key("a", orb1) != features_key("a", orb2)
