"""
Download filename helpers.

Exported files keep the original name with a prefix naming the operation
(``cropped-``, ``edited-``, ``converted-``, ``nobg-``).
"""

from pathlib import PurePosixPath
from typing import Optional

DEFAULT_BASENAME = "image"


def _clean_name(name: Optional[str]) -> str:
    # Browsers may send a full client path; keep the last component only
    if not name:
        return DEFAULT_BASENAME
    base = PurePosixPath(name.replace("\\", "/")).name
    return base or DEFAULT_BASENAME


def replace_extension(name: Optional[str], extension: str) -> str:
    """
    Swap the extension of a filename.

    Example:
        >>> replace_extension("photo.jpeg", "webp")
        'photo.webp'
    """
    stem = PurePosixPath(_clean_name(name)).stem or DEFAULT_BASENAME
    return f"{stem}.{extension.lstrip('.')}"


def export_filename(prefix: str, name: Optional[str], extension: Optional[str] = None) -> str:
    """
    Build a download filename.

    Args:
        prefix: Operation prefix, e.g. "cropped-"
        name: Original filename (may be None)
        extension: Optional new extension

    Returns:
        Prefixed filename
    """
    base = replace_extension(name, extension) if extension else _clean_name(name)
    return f"{prefix}{base}"
