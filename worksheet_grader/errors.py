"""Error types raised by the grading pipeline.

Each error carries the HTTP status and the message that may be shown to the
end user. The function app converts them to responses in one place.
"""

from __future__ import annotations

from typing import Optional


class GradingError(Exception):
    """Base class for failures of a single grading submission."""

    status_code = 500
    default_message = "Failed to grade image."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def public_message(self) -> str:
        return str(self)


class InputError(GradingError):
    """Missing input or a declared media type that is not an image."""

    status_code = 400
    default_message = "Please select a valid image file."


class DecodeError(GradingError):
    """The uploaded bytes could not be decoded as a raster image."""

    status_code = 400
    default_message = "Could not read the uploaded image."

    @property
    def public_message(self) -> str:
        return self.default_message


class InferenceError(GradingError):
    """The call to the vision model failed outright."""

    status_code = 500
    default_message = "Failed to grade image."


class ParseError(GradingError):
    """The model output could not be turned into grading results."""

    status_code = 500
    default_message = "Failed to parse AI response. Please try again."

    def __init__(self, message: Optional[str] = None, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text

    @property
    def public_message(self) -> str:
        return self.default_message


class GeometryError(GradingError, ValueError):
    """A bounding box is inverted or outside the 0-1000 scale."""

    status_code = 500
    default_message = "Grading result contained an invalid bounding box."

    @property
    def public_message(self) -> str:
        return self.default_message


class SubmissionSuperseded(GradingError):
    """A newer submission for the same session replaced this one."""

    status_code = 409
    default_message = "A newer submission replaced this one."
