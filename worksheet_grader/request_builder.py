"""Grading request construction and the call to the Gemini vision model."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .errors import InferenceError
from .grading_types import GradingRequest, GradingSettings, NormalizedImage

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """
You are an expert Math Teacher AI. Your task is to grade a handwritten math worksheet.

1. **Analyze**: Scan the image from top to bottom. Identify every distinct math expression or step.
2. **Evaluate**: For each line/step, determine if the math is logically correct based on the previous lines or standard math rules.
3. **Localize**: Return the 2D bounding box for each distinct line in the [ymin, xmin, ymax, xmax] format (0-1000 scale).
4. **Explain**: If a line is incorrect, provide a brief, friendly explanation of the error. If correct, keep explanation empty or "Correct".
5. **Transcription**: Transcribe the math into LaTeX format.

**CRITICAL OUTPUT RULES:**
- Return ONLY a valid JSON Array.
- Do not include Markdown formatting (no ```json).
- Do not include any intro/outro text.
""".strip()

TASK_INSTRUCTION = (
    "Grade this math problem. Identify lines, check correctness, "
    "and provide bounding boxes."
)

REQUIRED_FIELDS = ["lineNumber", "latex", "isCorrect", "explanation", "boundingBox"]

GRADING_RESPONSE_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "lineNumber": types.Schema(
                type=types.Type.INTEGER,
                description="The sequential line number starting from 1",
            ),
            "latex": types.Schema(
                type=types.Type.STRING,
                description="The math expression in LaTeX format",
            ),
            "isCorrect": types.Schema(
                type=types.Type.BOOLEAN,
                description="True if the step is mathematically valid",
            ),
            "explanation": types.Schema(
                type=types.Type.STRING,
                description="Feedback on the step",
            ),
            "boundingBox": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.INTEGER),
                description="Coordinates [ymin, xmin, ymax, xmax] on a 1000x1000 scale",
            ),
        },
        required=REQUIRED_FIELDS,
    ),
)

_SCHEMA_TEXT = json.dumps(
    [
        {
            "lineNumber": "integer",
            "latex": "string",
            "isCorrect": "boolean",
            "explanation": "string",
            "boundingBox": ["integer", "integer", "integer", "integer"],
        }
    ],
    indent=2,
)


def build_grading_request(
    image: NormalizedImage, settings: Optional[GradingSettings] = None
) -> GradingRequest:
    settings = settings or GradingSettings()
    return GradingRequest(
        image_data=image.data,
        image_mime_type=image.mime_type,
        task_instruction=TASK_INSTRUCTION,
        system_instruction=SYSTEM_INSTRUCTION,
        response_schema=GRADING_RESPONSE_SCHEMA,
        temperature=settings.temperature,
        model=settings.model,
    )


def build_generate_config(
    request: GradingRequest, *, structured_output: bool = True
) -> types.GenerateContentConfig:
    """Return the generation config for a request.

    Without structured output the schema is described in the system
    instruction instead of being sent as a constraint.
    """
    if structured_output:
        return types.GenerateContentConfig(
            system_instruction=request.system_instruction,
            response_mime_type="application/json",
            response_schema=request.response_schema,
            temperature=request.temperature,
        )

    instruction = (
        f"{request.system_instruction}\n"
        "- Every array element must have exactly these fields, all required:\n"
        f"{_SCHEMA_TEXT}"
    )
    return types.GenerateContentConfig(
        system_instruction=instruction,
        response_mime_type="application/json",
        temperature=request.temperature,
    )


def build_contents(request: GradingRequest) -> list:
    return [
        types.Part.from_bytes(data=request.image_data, mime_type=request.image_mime_type),
        types.Part.from_text(text=request.task_instruction),
    ]


def create_genai_client(api_key: str, timeout_ms: Optional[int] = None) -> genai.Client:
    """Create a Gemini client, with a request timeout when one is configured."""
    if timeout_ms:
        return genai.Client(
            api_key=api_key, http_options=types.HttpOptions(timeout=timeout_ms)
        )
    return genai.Client(api_key=api_key)


class GradingClient:
    """Submits grading requests through an injected google-genai client."""

    def __init__(self, client: Any, *, structured_output: bool = True) -> None:
        self._client = client
        self.structured_output = structured_output

    async def submit(self, request: GradingRequest) -> str:
        """Send one request and return the raw model text. No retries."""
        config = build_generate_config(
            request, structured_output=self.structured_output
        )
        logger.info(
            "Requesting grading from %s (%d image bytes)",
            request.model,
            len(request.image_data),
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=request.model,
                contents=build_contents(request),
                config=config,
            )
        except genai_errors.APIError as exc:
            logger.error("Gemini API error %s: %s", exc.code, exc.message)
            raise InferenceError(exc.message or None) from exc
        except Exception as exc:
            logger.exception("Grading request failed")
            raise InferenceError() from exc

        text = response.text
        if not text:
            logger.error("Gemini returned no text for the grading request")
            raise InferenceError("The model returned an empty response.")
        return text
