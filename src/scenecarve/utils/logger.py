"""Logging utilities"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "scenecarve.log"

# Global variable to store log file path
_log_file_path: Optional[Path] = None


def _writable(log_dir: Path) -> bool:
    test_file = log_dir / ".test_write"
    try:
        test_file.write_text("test")
        test_file.unlink()
        return True
    except (PermissionError, OSError):
        return False


def get_logs_directory() -> Path:
    """Get logs directory with fallbacks"""
    # Try platform-specific location first
    try:
        from scenecarve.utils.platform_utils import get_logs_directory as _get_logs_dir
        log_dir = _get_logs_dir()
        if _writable(log_dir):
            return log_dir
    except (PermissionError, OSError):
        # Can't create platform directory, fall back to local
        pass
    
    # Fallback 1: Try local logs directory
    try:
        log_dir = Path("logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        if _writable(log_dir):
            return log_dir
    except (PermissionError, OSError):
        pass
    
    # Fallback 2: Use current directory
    return Path(".")


def setup_logger(name: str, level: int = logging.INFO, log_dir: Optional[Path] = None) -> logging.Logger:
    """Setup logger with consistent formatting"""
    global _log_file_path
    
    logger = logging.getLogger(name)
    logger.setLevel(level)
    
    if not logger.handlers:
        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        
        # File handler (cross-platform)
        try:
            log_file = (log_dir or get_logs_directory()) / LOG_FILE_NAME
            file_handler = logging.FileHandler(str(log_file), mode='a', encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            
            _log_file_path = log_file
            if name == "__main__" or "main" in name.lower():
                logger.info(f"Logging to: {log_file.absolute()}")
        except OSError as e:
            # If file logging fails, continue without it
            print(f"Could not set up file logging: {e}", file=sys.stderr)
    
    return logger


def get_log_file_path() -> Optional[Path]:
    """Get the path to the log file"""
    return _log_file_path
