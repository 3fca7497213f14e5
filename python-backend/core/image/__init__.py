"""
Image processing utilities - functional architecture.

This package provides the transform pipeline building blocks:
- geometry: resize-fit, rotated bounding boxes, crop rectangles, affine steps
- processors: raster compositing (resize-with-pad, rotate/flip, crop, flatten)
- converters: decoding and NumPy/PIL/base64 conversions
- encoder: jpeg/png/webp/avif encoding
"""

from core.image.converters import (
    ImageInfo,
    SourceImage,
    decode_image,
    numpy_to_pil,
    pil_to_numpy,
    probe_image,
    to_base64,
)
from core.image.encoder import (
    OutputImage,
    encode,
    encode_image,
    format_for_mime_type,
    mime_type_for,
    parse_output_format,
)
from core.image.geometry import (
    Geometry,
    ResizeGeometry,
    clip_crop_rect,
    compute_geometry,
    crop_rectangle,
    crop_viewport,
    resize_fit,
    rotated_bounding_box,
    viewport_window,
)
from core.image.processors import (
    composite,
    crop_extract,
    ensure_bgra,
    flatten_alpha,
    resize_draw,
    rotate_flip,
)

__all__ = [
    # Converter functions
    "ImageInfo",
    "SourceImage",
    "decode_image",
    "numpy_to_pil",
    "pil_to_numpy",
    "probe_image",
    "to_base64",
    # Encoder functions
    "OutputImage",
    "encode",
    "encode_image",
    "format_for_mime_type",
    "mime_type_for",
    "parse_output_format",
    # Geometry functions
    "Geometry",
    "ResizeGeometry",
    "clip_crop_rect",
    "compute_geometry",
    "crop_rectangle",
    "crop_viewport",
    "resize_fit",
    "rotated_bounding_box",
    "viewport_window",
    # Processor functions
    "composite",
    "crop_extract",
    "ensure_bgra",
    "flatten_alpha",
    "resize_draw",
    "rotate_flip",
]
