"""
Utility modules for core functionality.

Modules:
- decorators: Timing helpers (timer, log_duration)
- filenames: Download filename helpers
"""

from .decorators import log_duration, timer
from .filenames import export_filename, replace_extension

__all__ = [
    "export_filename",
    "log_duration",
    "replace_extension",
    "timer",
]
