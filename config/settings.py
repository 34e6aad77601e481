"""
Configuration settings for the study playback index
"""
import logging
from dataclasses import dataclass
from typing import Optional


# Fixed-point time base shared by every sample
TICKS_PER_SECOND = 10_000_000
TICKS_PER_MILLISECOND = 10_000
TICKS_PER_MINUTE = 60 * TICKS_PER_SECOND
TICKS_PER_HOUR = 60 * TICKS_PER_MINUTE


@dataclass
class ImportConfig:
    """Data file import configuration"""
    max_workers: Optional[int] = None  # None = ThreadPoolExecutor default
    chunk_size: int = 50_000  # rows per pandas chunk
    delimiter: str = ","
    encoding: str = "utf-8-sig"  # tolerates a byte order mark

    # Descriptor formats
    DESCRIPTOR_EXTENSIONS = [".xml", ".json"]


@dataclass
class IndexConfig:
    """Temporal index configuration"""
    search_iteration_limit: int = 100


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: int = logging.INFO
    log_file: Optional[str] = None


class AppSettings:
    """Application-wide settings"""

    def __init__(self):
        self.importing = ImportConfig()
        self.index = IndexConfig()
        self.logging = LoggingConfig()

        # File paths
        self.data_directory: Optional[str] = None
        self.recent_studies: list = []

    def add_recent_study(self, filepath: str, limit: int = 10):
        """Remember a loaded descriptor, most recent first"""
        if filepath in self.recent_studies:
            self.recent_studies.remove(filepath)
        self.recent_studies.insert(0, filepath)
        del self.recent_studies[limit:]


# Global settings instance
app_settings = AppSettings()
