"""
Utility helpers.
"""

from dossier.utils.config import Config, Settings, load_config
from dossier.utils.logging import get_logger, set_log_level

__all__ = [
    "Config",
    "Settings",
    "load_config",
    "get_logger",
    "set_log_level",
]
