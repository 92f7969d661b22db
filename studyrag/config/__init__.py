"""Configuration module -- exports Settings and load_config."""

from studyrag.config.loader import load_config
from studyrag.config.settings import Settings

__all__ = ["Settings", "load_config"]
