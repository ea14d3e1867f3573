"""
Cross-platform locations for application data, logs and settings
"""

import platform
from pathlib import Path

APP_NAME = "SceneCarve"


def get_app_data_directory() -> Path:
    """Get application data directory"""
    system = platform.system()
    
    if system == "Windows":
        # Windows: Use AppData\Local
        app_data = Path.home() / "AppData" / "Local" / APP_NAME
    elif system == "Darwin":  # macOS
        app_data = Path.home() / "Library" / "Application Support" / APP_NAME
    else:  # Linux and others
        app_data = Path.home() / ".local" / "share" / APP_NAME
    
    app_data.mkdir(parents=True, exist_ok=True)
    return app_data


def get_logs_directory() -> Path:
    """Get logs directory"""
    logs_dir = get_app_data_directory() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_settings_path() -> Path:
    """Path of the persisted settings file"""
    return get_app_data_directory() / "settings.yaml"
