"""
Persisted user settings

A flat mapping of setting name to value, stored as YAML. Every key has a
typed default; values are hydrated once and written back on every change.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from scenecarve.core.config import PipelineConfig, ResultView

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    **PipelineConfig().to_mapping(),
    'brush_foreground': True,
    'eraser': False,
    'result_view': ResultView.NONE.value,
    'selected_image': 0,
}


def _same_type(default: Any, value: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, type(default)) and not (isinstance(value, bool) and not isinstance(default, bool))


class SettingsStore:
    """YAML-backed key/value settings with typed defaults"""

    def __init__(self, path: Optional[Path] = None, defaults: Optional[Dict[str, Any]] = None):
        if path is None:
            from scenecarve.utils.platform_utils import get_settings_path
            path = get_settings_path()
        self.path = Path(path)
        self.defaults = dict(defaults if defaults is not None else DEFAULT_SETTINGS)
        self._values: Dict[str, Any] = dict(self.defaults)
        self.hydrate()

    def hydrate(self):
        """Load stored values over the defaults; unknown or mistyped entries are ignored"""
        if not self.path.exists():
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                stored = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read settings from {self.path}: {e}")
            return
        if not isinstance(stored, dict):
            logger.warning(f"Ignoring settings file {self.path}: expected a mapping")
            return

        for key, value in stored.items():
            if key not in self.defaults:
                logger.debug(f"Ignoring unknown setting '{key}'")
                continue
            if not _same_type(self.defaults[key], value):
                logger.warning(f"Setting '{key}' has wrong type ({type(value).__name__}), using default")
                continue
            self._values[key] = value
        logger.info(f"Loaded settings from {self.path}")

    def get(self, key: str) -> Any:
        return self._values[key]

    def set(self, key: str, value: Any):
        """Change a setting and persist immediately"""
        if key not in self.defaults:
            raise KeyError(f"Unknown setting '{key}'")
        if not _same_type(self.defaults[key], value):
            raise TypeError(f"Setting '{key}' expects {type(self.defaults[key]).__name__}, "
                            f"got {type(value).__name__}")
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self.save()

    def update(self, values: Dict[str, Any]):
        for key, value in values.items():
            self.set(key, value)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def save(self):
        """Atomically write all values to the settings file"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".settings_", suffix=".yaml")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(self._values, f, default_flow_style=False, sort_keys=True)
            os.replace(temp_path, self.path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def pipeline_config(self) -> PipelineConfig:
        """Validated PipelineConfig built from the current settings"""
        return PipelineConfig.from_mapping(self._values)
