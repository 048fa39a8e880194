"""User-facing errors raised while identifying an animal.

Each error carries the message shown to the user. The search orchestrator is
the only place these are turned into rendered output.
"""

from __future__ import annotations


class IdentificationError(Exception):
    """Base class for errors that abort a search run."""

    default_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ImageValidationError(IdentificationError):
    """Unsupported media type or oversized upload."""

    default_message = "Invalid format. Use JPG, PNG or WebP."


class ImageTooSmallError(IdentificationError):
    default_message = "Image too small (min 50x50 pixels)"


class ImageDecodeError(IdentificationError):
    default_message = "Failed to load the image"


class ModelUnavailableError(IdentificationError):
    default_message = "System temporarily unavailable"


class AnimalNotRecognizedError(IdentificationError):
    default_message = "Animal not recognized (try another photo)"


class EmptyInputError(IdentificationError):
    default_message = "Select an image or type a name"
