"""
Core modules for the Image Utility Server
"""

from .enums import ErrorKind, OutputFormat, PipelineState, TransformOperation

__all__ = [
    "ErrorKind",
    "OutputFormat",
    "PipelineState",
    "TransformOperation",
]
