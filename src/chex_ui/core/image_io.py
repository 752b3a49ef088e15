"""
Image I/O Utilities
===================

This module captures bitmaps from the sources the pipeline accepts (paths,
raw bytes, file-like uploads, PIL images, numpy arrays) and encodes bitmaps
back into embedded base64 data URLs for display.

A *bitmap* throughout the package is a ``(height, width, 4)`` ``uint8`` numpy
array holding R, G, B, A channels. Captured bitmaps are treated as immutable;
every transform works on a copy.

Functions
---------
load_bitmap
    Decode any supported source into an RGBA bitmap
to_bitmap
    Convert an in-memory image (PIL or numpy) into an RGBA bitmap
resize_bitmap
    Bilinear resize to a model input size
encode_data_url
    Encode a bitmap as a ``data:`` URL (JPEG or PNG)
read_source_bytes
    Read the raw bytes of an upload for forwarding to the inference service

Notes
-----
DICOM handling:
- Extracts pixel_array and min-max normalizes to 0-255, like a viewer would
- Grayscale is expanded to RGB with an opaque alpha channel

Standard formats (PNG, JPEG, ...) are loaded using PIL.Image.open().

See Also
--------
chex_ui.core.analyzer : Consumes bitmaps
chex_ui.core.correction : Produces data URLs via encode_data_url
"""

import base64
import io
import logging
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from chex_ui.errors import ImageLoadError

logger = logging.getLogger(__name__)


def _is_dicom(data: bytes) -> bool:
    return len(data) > 132 and data[128:132] == b"DICM"


def _dicom_to_image(data: bytes) -> Image.Image:
    import pydicom

    ds = pydicom.dcmread(io.BytesIO(data))
    arr = ds.pixel_array.astype(np.float32)
    arr -= arr.min()
    if arr.max() > 0:
        arr /= arr.max()
    arr = (arr * 255).astype(np.uint8)
    return Image.fromarray(arr)


def read_source_bytes(source) -> bytes:
    """
    Read the raw bytes of an image source.

    Parameters
    ----------
    source : str, Path, bytes or file-like
        Image location or content

    Returns
    -------
    bytes
        File content

    Raises
    ------
    ImageLoadError
        If the source cannot be read or is empty
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        elif isinstance(source, (str, Path)):
            data = Path(source).read_bytes()
        elif hasattr(source, "read"):
            if hasattr(source, "seek"):
                source.seek(0)
            data = source.read()
        else:
            raise ImageLoadError(f"Unsupported image source: {type(source).__name__}")
    except OSError as e:
        raise ImageLoadError(f"Could not read image: {e}") from e
    if not data:
        raise ImageLoadError("Image source is empty")
    return data


def to_bitmap(image) -> np.ndarray:
    """
    Convert a PIL image or numpy array into an RGBA ``uint8`` bitmap.

    Grayscale arrays ``(H, W)`` are replicated into R, G, B; RGB arrays get an
    opaque alpha channel. The result never shares memory with the input.

    Raises
    ------
    ImageLoadError
        If the array has an unsupported shape or is empty
    """
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGBA"), dtype=np.uint8)

    arr = np.asarray(image)
    if arr.ndim == 2:
        arr = np.repeat(arr[..., None], 3, axis=2)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ImageLoadError(f"Unsupported bitmap shape: {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ImageLoadError("Image has zero width or height")
    arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    return arr.copy()


def load_bitmap(source) -> np.ndarray:
    """
    Decode an image source into an RGBA bitmap.

    Parameters
    ----------
    source : str, Path, bytes, file-like, PIL.Image or np.ndarray
        Anything an upload can arrive as. DICOM content is detected by its
        ``DICM`` preamble regardless of file name.

    Returns
    -------
    np.ndarray
        ``(H, W, 4)`` uint8 bitmap

    Raises
    ------
    ImageLoadError
        If the source cannot be read or decoded

    Examples
    --------
    >>> from chex_ui.core.image_io import load_bitmap
    >>> bmp = load_bitmap("xray.png")
    >>> bmp.shape
    (1024, 1024, 4)
    """
    if isinstance(source, (Image.Image, np.ndarray)):
        return to_bitmap(source)

    data = read_source_bytes(source)
    try:
        if _is_dicom(data):
            img = _dicom_to_image(data)
        else:
            img = Image.open(io.BytesIO(data))
            img.load()
    except ImageLoadError:
        raise
    except Exception as e:
        # pydicom and Pillow raise assorted types (AttributeError, DecompressionBombError)
        raise ImageLoadError(f"Could not decode image: {e}") from e

    bitmap = to_bitmap(img)
    if bitmap.shape[0] == 0 or bitmap.shape[1] == 0:
        raise ImageLoadError("Image has zero width or height")
    logger.debug("Loaded %dx%d bitmap", bitmap.shape[1], bitmap.shape[0])
    return bitmap


def resize_bitmap(bitmap: np.ndarray, size) -> np.ndarray:
    """Bilinear resize to ``size = (width, height)``; returns a copy if unchanged."""
    width, height = int(size[0]), int(size[1])
    if bitmap.shape[1] == width and bitmap.shape[0] == height:
        return bitmap.copy()
    return cv2.resize(bitmap, (width, height), interpolation=cv2.INTER_LINEAR)


def encode_data_url(bitmap: np.ndarray, fmt: str = "JPEG", quality: int = 90) -> str:
    """
    Encode a bitmap as an embedded base64 data URL.

    JPEG has no alpha channel, so transparent pixels are composited onto black
    (as a browser canvas does when exporting JPEG).

    Parameters
    ----------
    bitmap : np.ndarray
        ``(H, W, 4)`` uint8 bitmap
    fmt : {"JPEG", "PNG"}
        Output format
    quality : int, default=90
        JPEG quality (ignored for PNG)

    Returns
    -------
    str
        ``data:image/<fmt>;base64,...``
    """
    fmt = fmt.upper()
    buf = io.BytesIO()
    if fmt == "JPEG":
        rgb = bitmap[..., :3].astype(np.float32) * (bitmap[..., 3:4] / 255.0)
        Image.fromarray(np.round(rgb).astype(np.uint8), "RGB").save(
            buf, format="JPEG", quality=quality
        )
        mime = "image/jpeg"
    elif fmt == "PNG":
        Image.fromarray(bitmap, "RGBA").save(buf, format="PNG")
        mime = "image/png"
    else:
        raise ValueError(f"Unsupported output format: {fmt}")
    payload = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:{mime};base64,{payload}"


def decode_data_url(url: str) -> np.ndarray:
    """Decode a ``data:`` URL produced by :func:`encode_data_url` back into a bitmap."""
    try:
        header, payload = url.split(",", 1)
    except ValueError as e:
        raise ImageLoadError("Malformed data URL") from e
    if not header.startswith("data:") or ";base64" not in header:
        raise ImageLoadError("Malformed data URL")
    return load_bitmap(base64.b64decode(payload))
