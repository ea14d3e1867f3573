"""
Per-stage cache key derivation

A key is the hash of the image identity plus the configuration fields the
stage declared. Stage names are part of the hashed payload, so two stages
never share a key space.
"""

import hashlib
import json
from typing import Optional

from scenecarve.core.config import (
    PipelineConfig, FEATURE_FIELDS, ALIGNMENT_FIELDS, COMPOSITE_FIELDS
)

FEATURES_STAGE = "features"
ALIGNMENT_STAGE = "alignment"
COMPOSITE_STAGE = "composite"


def _stage_key(stage: str, identity: str, config_values: dict, extra: Optional[dict] = None) -> str:
    payload = {
        'stage': stage,
        'image': identity,
        'config': config_values,
    }
    if extra:
        payload['extra'] = extra
    key_data = json.dumps(payload, sort_keys=True)
    return hashlib.sha256(key_data.encode()).hexdigest()[:32]


def features_key(identity: str, config: PipelineConfig) -> str:
    """Key for feature extraction: image + detector configuration"""
    return _stage_key(FEATURES_STAGE, identity, config.stage_fields(FEATURE_FIELDS))


def alignment_key(identity: str, baseline_identity: str, config: PipelineConfig) -> str:
    """
    Key for alignment onto the baseline.

    Includes the baseline identity: replacing the baseline invalidates every
    alignment even when the target image is unchanged.
    """
    return _stage_key(
        ALIGNMENT_STAGE, identity, config.stage_fields(ALIGNMENT_FIELDS),
        extra={'baseline': baseline_identity}
    )


def composite_key(identity: str, config: PipelineConfig) -> str:
    """Key for segmentation/compositing: image + segmentation + detector"""
    return _stage_key(COMPOSITE_STAGE, identity, config.stage_fields(COMPOSITE_FIELDS))
