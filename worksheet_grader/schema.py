"""Structured output schema for one graded line of work."""

from __future__ import annotations

from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .coordinates import check_bounding_box


class GradingResult(BaseModel):
    """One evaluated line of handwritten work."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, strict=True)

    line_number: int = Field(
        alias="lineNumber",
        ge=1,
        description="The sequential line number starting from 1",
    )
    latex: str = Field(description="The math expression in LaTeX format")
    is_correct: bool = Field(
        alias="isCorrect",
        description="True if the step is mathematically valid",
    )
    explanation: str = Field(description="Feedback on the step")
    bounding_box: Tuple[int, int, int, int] = Field(
        alias="boundingBox",
        description="Coordinates [ymin, xmin, ymax, xmax] on a 1000x1000 scale",
    )

    @model_validator(mode="after")
    def _check_geometry(self) -> "GradingResult":
        check_bounding_box(self.bounding_box)
        return self

    def to_payload(self) -> dict:
        payload = self.model_dump(by_alias=True)
        payload["boundingBox"] = list(self.bounding_box)
        return payload


GradingResponse = Tuple[GradingResult, ...]
