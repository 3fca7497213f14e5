"""
API Routers for the Image Utility Server
"""

from . import background, geometry, process, system

__all__ = ["process", "geometry", "background", "system"]
