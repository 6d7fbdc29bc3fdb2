"""Data structures passed between the grading pipeline stages."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from .schema import GradingResponse

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_MAX_DIMENSION = 1024
DEFAULT_JPEG_QUALITY = 80
DEFAULT_TEMPERATURE = 0.1


@dataclass(frozen=True)
class GradingSettings:
    """Fixed configuration for one pipeline instance."""

    model: str = DEFAULT_MODEL
    max_dimension: int = DEFAULT_MAX_DIMENSION
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    temperature: float = DEFAULT_TEMPERATURE
    structured_output: bool = True


@dataclass(frozen=True)
class RawImage:
    """User-supplied image bytes with their declared media type."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class NormalizedImage:
    """A resized JPEG used both as the inference payload and for display."""

    data: bytes
    width: int
    height: int
    quality: int
    source_width: int
    source_height: int
    mime_type: str = "image/jpeg"

    @property
    def display_source(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"

    @property
    def was_resized(self) -> bool:
        return (self.width, self.height) != (self.source_width, self.source_height)


@dataclass(frozen=True)
class GradingRequest:
    """Everything sent to the vision model for one submission."""

    image_data: bytes
    image_mime_type: str
    task_instruction: str
    system_instruction: str
    response_schema: Any
    temperature: float
    model: str


@dataclass(frozen=True)
class GradedWorksheet:
    """Result of a successful submission."""

    image: NormalizedImage
    results: GradingResponse
