"""Normalize logged frames to JPEG bytes.

Frames arrive as whatever the capture side has at hand:

* ``numpy.ndarray`` in OpenCV's BGR/BGRA order, or single-channel grayscale;
* ``PIL.Image.Image``;
* already-encoded JPEG ``bytes``;
* any of the above wrapped in ``OrientedFrame`` with an EXIF orientation.

The camera sensor's orientation rarely matches the display orientation. With
``fix_orientation`` the orientation is baked into the pixels before
compression, so every viewer shows the frame upright. Without it the flag is
carried as EXIF metadata and left for the viewer to honor.

These functions are CPU-bound and synchronous; the upload pipeline runs them
in a worker thread, one entry at a time.
"""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

JPEG_MAGIC = b"\xff\xd8\xff"
EXIF_ORIENTATION_TAG = 0x0112


class Orientation(enum.IntEnum):
    """EXIF orientation values (tag 0x0112)."""

    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8

    @classmethod
    def coerce(cls, value: Any) -> "Orientation":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UP


# Transpose that turns stored pixels into display pixels, per orientation.
_DISPLAY_TRANSPOSE = {
    Orientation.UP_MIRRORED: Image.Transpose.FLIP_LEFT_RIGHT,
    Orientation.DOWN: Image.Transpose.ROTATE_180,
    Orientation.DOWN_MIRRORED: Image.Transpose.FLIP_TOP_BOTTOM,
    Orientation.LEFT_MIRRORED: Image.Transpose.TRANSPOSE,
    Orientation.RIGHT: Image.Transpose.ROTATE_270,
    Orientation.RIGHT_MIRRORED: Image.Transpose.TRANSVERSE,
    Orientation.LEFT: Image.Transpose.ROTATE_90,
}


@dataclass(slots=True, frozen=True)
class OrientedFrame:
    """A frame plus the orientation it should be displayed in."""

    image: Any
    orientation: Orientation = Orientation.UP


def ensure_uint8(frame: np.ndarray) -> np.ndarray:
    if frame.dtype == np.uint8:
        return frame
    if np.issubdtype(frame.dtype, np.floating) and frame.size and float(frame.max()) <= 1.0:
        frame = frame * 255.0
    return np.clip(frame, 0, 255).astype(np.uint8)


def ndarray_to_image(frame: np.ndarray) -> Image.Image:
    """Convert an OpenCV-ordered frame to a Pillow image."""

    data = ensure_uint8(np.asarray(frame))
    if data.ndim == 3 and data.shape[2] == 1:
        data = data[..., 0]
    if data.ndim == 2:
        return Image.fromarray(data, mode="L")
    if data.ndim == 3 and data.shape[2] == 3:
        return Image.fromarray(cv2.cvtColor(data, cv2.COLOR_BGR2RGB), mode="RGB")
    if data.ndim == 3 and data.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(data, cv2.COLOR_BGRA2RGB), mode="RGB")
    raise ValueError(f"unsupported frame shape {data.shape}")


def to_pil_image(image: Any) -> Image.Image:
    if isinstance(image, Image.Image):
        return image if image.mode in ("RGB", "L") else image.convert("RGB")
    if isinstance(image, np.ndarray):
        return ndarray_to_image(image)
    if isinstance(image, (bytes, bytearray, memoryview)):
        decoded = Image.open(io.BytesIO(bytes(image)))
        decoded.load()
        return decoded
    raise TypeError(f"cannot log frame of type {type(image).__name__}")


def unwrap(image: Any) -> Tuple[Any, Orientation]:
    if isinstance(image, OrientedFrame):
        return image.image, Orientation.coerce(image.orientation)
    return image, Orientation.UP


def embedded_orientation(image: Image.Image) -> Orientation:
    return Orientation.coerce(image.getexif().get(EXIF_ORIENTATION_TAG, Orientation.UP))


def apply_orientation(image: Image.Image, orientation: Orientation) -> Image.Image:
    """Re-render ``image`` so it looks upright without any orientation flag."""
    method = _DISPLAY_TRANSPOSE.get(orientation)
    return image.transpose(method) if method is not None else image


def _save_jpeg(image: Image.Image, quality: int, orientation: Optional[Orientation]) -> bytes:
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    options = {"format": "JPEG", "quality": quality}
    if orientation is not None and orientation is not Orientation.UP:
        exif = Image.Exif()
        exif[EXIF_ORIENTATION_TAG] = int(orientation)
        options["exif"] = exif.tobytes()
    image.save(buffer, **options)
    return buffer.getvalue()


def encode_jpeg(image: Any, *, quality: int = 95, fix_orientation: bool = False) -> bytes:
    """Return JPEG bytes for any supported frame representation.

    JPEG bytes pass through untouched unless an orientation has to be baked
    in or written out. Raises ``TypeError``/``ValueError``/``OSError`` when the
    frame cannot be decoded or encoded.
    """

    payload, orientation = unwrap(image)

    if isinstance(payload, (bytes, bytearray, memoryview)):
        raw = bytes(payload)
        if not raw:
            raise ValueError("empty image payload")
        if raw.startswith(JPEG_MAGIC) and orientation is Orientation.UP and not fix_orientation:
            return raw
        decoded = to_pil_image(raw)
        if orientation is Orientation.UP:
            orientation = embedded_orientation(decoded)
        if raw.startswith(JPEG_MAGIC) and orientation is Orientation.UP:
            return raw
        pil_image = decoded
    else:
        pil_image = to_pil_image(payload)

    if fix_orientation:
        return _save_jpeg(apply_orientation(pil_image, orientation), quality, None)
    return _save_jpeg(pil_image, quality, orientation)


__all__ = [
    "Orientation",
    "OrientedFrame",
    "apply_orientation",
    "embedded_orientation",
    "encode_jpeg",
    "ensure_uint8",
    "ndarray_to_image",
    "to_pil_image",
]
