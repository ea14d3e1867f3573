"""
Memory tracking around native pipeline stages
"""

import psutil
import logging
import gc
from typing import Optional, Dict
from contextlib import contextmanager

logger = logging.getLogger(__name__)

_GB = 1024 * 1024 * 1024


class MemoryManager:
    """Track process memory while extraction, alignment and compositing run"""

    def __init__(self, memory_limit_gb: float = 4.0):
        """
        Initialize memory manager

        Args:
            memory_limit_gb: Soft limit in GB; exceeding it logs a warning
        """
        self.memory_limit_gb = memory_limit_gb
        self._peak_usage_gb = 0.0
        self._checkpoints: Dict[str, float] = {}
        logger.debug(f"Memory manager initialized (limit: {memory_limit_gb} GB)")

    def get_memory_usage(self) -> float:
        """
        Get current memory usage in GB

        Returns:
            Resident set size in GB, 0.0 if it cannot be read
        """
        try:
            usage_gb = psutil.Process().memory_info().rss / _GB
        except psutil.Error as e:
            logger.warning(f"Could not get memory usage: {e}")
            return 0.0

        if usage_gb > self._peak_usage_gb:
            self._peak_usage_gb = usage_gb
        return usage_gb

    def get_available_memory(self) -> float:
        """Get available system memory in GB"""
        return psutil.virtual_memory().available / _GB

    def get_peak_usage(self) -> float:
        """Get peak memory usage in GB"""
        return self._peak_usage_gb

    def checkpoint(self, name: str):
        """Record current usage under a name"""
        self._checkpoints[name] = self.get_memory_usage()

    def get_checkpoint_diff(self, name: str) -> Optional[float]:
        """Memory difference in GB since a checkpoint, or None if it doesn't exist"""
        if name not in self._checkpoints:
            return None
        return self.get_memory_usage() - self._checkpoints[name]

    def force_gc(self):
        """Force garbage collection and log results"""
        before = self.get_memory_usage()
        gc.collect()
        freed = before - self.get_memory_usage()
        if freed > 0.01:  # Only log if significant
            logger.debug(f"GC freed {freed * 1024:.1f} MB")

    @contextmanager
    def track_operation(self, name: str):
        """
        Context manager to track memory usage of an operation

        Example:
            with memory_manager.track_operation("features[2]"):
                extract_features(image, config)
        """
        start_usage = self.get_memory_usage()
        try:
            yield
        finally:
            end_usage = self.get_memory_usage()
            logger.debug(f"Operation '{name}': memory change {(end_usage - start_usage) * 1024:+.1f} MB "
                         f"(now {end_usage:.2f} GB)")
            if end_usage > self.memory_limit_gb:
                logger.warning(f"Memory usage {end_usage:.2f} GB exceeds limit {self.memory_limit_gb:.2f} GB "
                               f"({self.get_available_memory():.2f} GB available)")
