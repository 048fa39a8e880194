"""Image preprocessing pipeline.

Validates uploads (media type, file size), decodes them with Pillow, applies
EXIF orientation, enforces a minimum size, and letterboxes the result onto a
fixed white canvas for classifier input.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from PIL import Image, ImageOps

from animalid.errors import ImageDecodeError, ImageTooSmallError, ImageValidationError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from animalid.config import Settings

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png", "image/webp"})

_WHITE = (255, 255, 255)


@dataclass(frozen=True)
class UploadedImage:
    """A user-selected image file, exactly as received."""

    data: bytes
    media_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, eq=False)
class PreparedImage:
    """A letterboxed square canvas ready for classification.

    ``box`` is the (left, top, width, height) region of the canvas covered by
    the scaled source image; everything outside it is white padding.
    """

    pixels: NDArray[np.uint8]
    scale: float
    box: tuple[int, int, int, int]
    source_size: tuple[int, int]

    @property
    def size(self) -> tuple[int, int]:
        height, width = self.pixels.shape[:2]
        return width, height


class ImagePreprocessor(Protocol):
    """Protocol for image preprocessing."""

    def validate(self, upload: UploadedImage) -> bool:
        """Return True if the upload has a supported type and size."""
        ...

    def check(self, upload: UploadedImage) -> None:
        """Raise ImageValidationError if the upload is not acceptable."""
        ...

    def prepare(self, upload: UploadedImage) -> PreparedImage:
        """Decode an upload and letterbox it onto the classifier canvas.

        Raises:
            ImageDecodeError: If the bytes cannot be decoded as an image.
            ImageTooSmallError: If either dimension is below the minimum.
        """
        ...


class LetterboxPreprocessor:
    """Pillow-based preprocessor producing white-padded square canvases."""

    def __init__(self, settings: Settings) -> None:
        self._max_file_size = settings.max_file_size
        self._min_side = settings.min_image_side
        self._canvas_size = settings.canvas_size

    def validate(self, upload: UploadedImage) -> bool:
        try:
            self.check(upload)
        except ImageValidationError:
            return False
        return True

    def check(self, upload: UploadedImage) -> None:
        if upload.media_type not in SUPPORTED_MEDIA_TYPES:
            raise ImageValidationError
        if upload.size > self._max_file_size:
            limit_mb = self._max_file_size / (1024 * 1024)
            raise ImageValidationError(f"Image too large (max {limit_mb:g}MB)")

    def prepare(self, upload: UploadedImage) -> PreparedImage:
        try:
            source = Image.open(io.BytesIO(upload.data))
        except (OSError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError from exc

        try:
            try:
                source.load()
            except (OSError, Image.DecompressionBombError) as exc:
                raise ImageDecodeError from exc
            oriented = _apply_orientation(source)

            width, height = oriented.size
            if width < self._min_side or height < self._min_side:
                raise ImageTooSmallError(f"Image too small (min {self._min_side}x{self._min_side} pixels)")
            return self._letterbox(oriented)
        finally:
            source.close()

    def _letterbox(self, image: Image.Image) -> PreparedImage:
        size = self._canvas_size
        width, height = image.size
        scale = min(size / width, size / height)
        new_width = max(1, min(size, round(width * scale)))
        new_height = max(1, min(size, round(height * scale)))

        resized = _flatten_alpha(image).resize((new_width, new_height), Image.Resampling.BILINEAR)
        canvas = Image.new("RGB", (size, size), _WHITE)
        left = (size - new_width) // 2
        top = (size - new_height) // 2
        canvas.paste(resized, (left, top))

        return PreparedImage(
            pixels=np.asarray(canvas, dtype=np.uint8),
            scale=scale,
            box=(left, top, new_width, new_height),
            source_size=(width, height),
        )


def _flatten_alpha(image: Image.Image) -> Image.Image:
    """Composite transparent images onto white and return an RGB image."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (*_WHITE, 255))
        return Image.alpha_composite(background, rgba).convert("RGB")
    return image.convert("RGB")


def _apply_orientation(image: Image.Image) -> Image.Image:
    """Rotate per the EXIF orientation tag; unreadable EXIF leaves pixels as decoded."""
    try:
        return ImageOps.exif_transpose(image)
    except (SyntaxError, ValueError, OSError) as exc:
        logger.info("Ignoring unreadable EXIF block: %s", exc)
        return image
