"""
Pipeline configuration

A PipelineConfig is passed explicitly into every orchestration pass. Each
stage declares the fields it reads so cache keys can be derived from
exactly that subset.
"""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Dict, Tuple, Any
import math

from scenecarve.core.errors import ConfigurationError


class DetectorType(Enum):
    """Keypoint detector algorithm"""
    AKAZE = "akaze"
    ORB = "orb"


class SegmentationType(Enum):
    """Marker-based segmentation algorithm"""
    WATERSHED = "watershed"
    GRADIENT_WATERSHED = "gradient_watershed"


class ResultView(Enum):
    """What the renderer shows"""
    NONE = "none"
    SPLIT = "split"
    FULL = "full"


DEFAULT_WIDTH_LIMIT = 800
DEFAULT_MAX_FEATURES = 200
DEFAULT_EDGE_THRESHOLD = 31
DEFAULT_RATIO_THRESHOLD = 0.7

# Fields read by each stage. Detector knobs only matter for ORB, see stage_fields().
FEATURE_FIELDS: Tuple[str, ...] = ('detector', 'width_limit', 'max_features', 'edge_threshold')
ALIGNMENT_FIELDS: Tuple[str, ...] = FEATURE_FIELDS + (
    'alignment_enabled', 'ratio_threshold', 'ransac_reproj_threshold'
)
COMPOSITE_FIELDS: Tuple[str, ...] = ('segmentation', 'detector')

_ORB_ONLY_FIELDS = ('max_features', 'edge_threshold')


def _parse_enum(enum_cls, field: str, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        for member in enum_cls:
            if member.value == text or member.name.lower() == text:
                return member
    raise ConfigurationError(field, value, f"expected one of {[m.value for m in enum_cls]}")


def _check_int(field: str, value, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(field, value, "expected an integer")
    if isinstance(value, float) and (not math.isfinite(value) or value != int(value)):
        raise ConfigurationError(field, value, "expected an integer")
    value = int(value)
    if not low <= value <= high:
        raise ConfigurationError(field, value, f"must be in [{low}, {high}]")
    return value


@dataclass(frozen=True)
class PipelineConfig:
    """Settings consumed by the extraction, alignment and composite stages"""

    detector: DetectorType = DetectorType.AKAZE
    width_limit: int = DEFAULT_WIDTH_LIMIT
    max_features: int = DEFAULT_MAX_FEATURES
    edge_threshold: int = DEFAULT_EDGE_THRESHOLD
    ratio_threshold: float = DEFAULT_RATIO_THRESHOLD
    segmentation: SegmentationType = SegmentationType.WATERSHED
    alignment_enabled: bool = True
    brush_size: int = 2
    ransac_reproj_threshold: float = 3.0

    def validate(self) -> 'PipelineConfig':
        """
        Range-check every field.

        Returns:
            A normalised copy (enum fields parsed from strings, ints coerced)

        Raises:
            ConfigurationError: on the first invalid field
        """
        detector = _parse_enum(DetectorType, 'detector', self.detector)
        segmentation = _parse_enum(SegmentationType, 'segmentation', self.segmentation)
        width_limit = _check_int('width_limit', self.width_limit, 16, 16384)
        max_features = _check_int('max_features', self.max_features, 1, 100000)
        edge_threshold = _check_int('edge_threshold', self.edge_threshold, 1, 255)
        brush_size = _check_int('brush_size', self.brush_size, 1, 512)

        ratio = self.ratio_threshold
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or math.isnan(ratio):
            raise ConfigurationError('ratio_threshold', ratio, "expected a number")
        if not 0.0 < ratio <= 1.0:
            raise ConfigurationError('ratio_threshold', ratio, "must be in (0, 1]")

        reproj = self.ransac_reproj_threshold
        if isinstance(reproj, bool) or not isinstance(reproj, (int, float)) or not reproj > 0:
            raise ConfigurationError('ransac_reproj_threshold', reproj, "must be a positive number")

        if not isinstance(self.alignment_enabled, bool):
            raise ConfigurationError('alignment_enabled', self.alignment_enabled, "expected a boolean")

        return replace(
            self,
            detector=detector,
            segmentation=segmentation,
            width_limit=width_limit,
            max_features=max_features,
            edge_threshold=edge_threshold,
            brush_size=brush_size,
            ratio_threshold=float(ratio),
            ransac_reproj_threshold=float(reproj),
        )

    def stage_fields(self, fields: Tuple[str, ...]) -> Dict[str, Any]:
        """Values of the given stage fields, in a form suitable for hashing"""
        values = {}
        for name in fields:
            if name in _ORB_ONLY_FIELDS and self.detector != DetectorType.ORB:
                continue
            value = getattr(self, name)
            values[name] = value.value if isinstance(value, Enum) else value
        return values

    def to_mapping(self) -> Dict[str, Any]:
        """Plain dict with enum values, as stored in the settings file"""
        data = asdict(self)
        data['detector'] = self.detector.value if isinstance(self.detector, Enum) else self.detector
        data['segmentation'] = (
            self.segmentation.value if isinstance(self.segmentation, Enum) else self.segmentation
        )
        return data

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        """Build and validate a config from a settings mapping; unknown keys are ignored"""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known).validate()
