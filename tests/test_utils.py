"""Tests for logging setup, persisted settings and memory tracking"""
import logging

import pytest
import yaml

from scenecarve.core.config import DetectorType
from scenecarve.core.errors import ConfigurationError
from scenecarve.utils.logger import setup_logger, get_log_file_path, LOG_FILE_NAME
from scenecarve.utils.memory_manager import MemoryManager
from scenecarve.utils.settings_store import SettingsStore, DEFAULT_SETTINGS


class TestLogger:

    def test_file_logging(self, tmp_path):
        logger = setup_logger("scenecarve.test_file_logging", level=logging.DEBUG, log_dir=tmp_path)
        try:
            logger.debug("This is a DEBUG message")
            logger.warning("This is a WARNING message")

            log_path = get_log_file_path()
            assert log_path == tmp_path / LOG_FILE_NAME
            text = log_path.read_text(encoding='utf-8')
            assert "This is a DEBUG message" in text
            assert "WARNING" in text
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    def test_handlers_not_duplicated(self, tmp_path):
        logger = setup_logger("scenecarve.test_no_dup", log_dir=tmp_path)
        try:
            count = len(logger.handlers)
            assert setup_logger("scenecarve.test_no_dup", log_dir=tmp_path) is logger
            assert len(logger.handlers) == count
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)


class TestSettingsStore:

    def test_defaults(self, tmp_path):
        settings = SettingsStore(tmp_path / "settings.yaml")
        assert settings.as_dict() == DEFAULT_SETTINGS
        assert settings.get('detector') == 'akaze'
        assert not (tmp_path / "settings.yaml").exists()

    def test_set_persists(self, tmp_path):
        path = tmp_path / "settings.yaml"
        settings = SettingsStore(path)
        settings.set('detector', 'orb')
        settings.update({'max_features': 500, 'ratio_threshold': 0.8})

        reloaded = SettingsStore(path)
        assert reloaded.get('detector') == 'orb'
        assert reloaded.get('max_features') == 500
        assert reloaded.get('ratio_threshold') == pytest.approx(0.8)
        assert list(tmp_path.glob(".settings_*")) == []

    def test_set_rejects_unknown_and_mistyped(self, tmp_path):
        settings = SettingsStore(tmp_path / "settings.yaml")
        with pytest.raises(KeyError):
            settings.set('bogus', 1)
        with pytest.raises(TypeError):
            settings.set('max_features', "many")
        with pytest.raises(TypeError):
            settings.set('alignment_enabled', 1)

    def test_hydrate_skips_bad_entries(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({'detector': 5, 'width_limit': 640, 'bogus': True}))
        settings = SettingsStore(path)
        assert settings.get('detector') == 'akaze'
        assert settings.get('width_limit') == 640
        with pytest.raises(KeyError):
            settings.get('bogus')

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("detector: [unclosed")
        assert SettingsStore(path).as_dict() == DEFAULT_SETTINGS

    def test_pipeline_config(self, tmp_path):
        settings = SettingsStore(tmp_path / "settings.yaml")
        settings.set('detector', 'orb')
        assert settings.pipeline_config().detector == DetectorType.ORB
        settings.set('max_features', -5)
        with pytest.raises(ConfigurationError):
            settings.pipeline_config()


class TestMemoryManager:

    def test_usage_and_peak(self):
        manager = MemoryManager()
        usage = manager.get_memory_usage()
        assert usage > 0
        assert manager.get_peak_usage() >= usage
        assert manager.get_available_memory() > 0

    def test_checkpoints(self):
        manager = MemoryManager()
        assert manager.get_checkpoint_diff("missing") is None
        manager.checkpoint("start")
        assert isinstance(manager.get_checkpoint_diff("start"), float)
        manager.force_gc()

    def test_track_operation_warns_over_limit(self, caplog):
        manager = MemoryManager(memory_limit_gb=0.0)
        with caplog.at_level(logging.WARNING, logger="scenecarve.utils.memory_manager"):
            with manager.track_operation("features[0]"):
                pass
        assert any("exceeds limit" in r.message for r in caplog.records)
