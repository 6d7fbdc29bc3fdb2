import json
import logging
import os
from typing import Optional

import azure.functions as func

from worksheet_grader import coordinates, response_parser
from worksheet_grader.errors import GradingError, InputError
from worksheet_grader.grading_types import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_DIMENSION,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    GradedWorksheet,
    GradingSettings,
    RawImage,
)
from worksheet_grader.image_normalizer import check_media_type, decode_data_url
from worksheet_grader.overlay import render_overlay
from worksheet_grader.pipeline import GradingPipeline, SubmissionTracker
from worksheet_grader.request_builder import GradingClient, create_genai_client

app = func.FunctionApp()

# Inference and normalization settings from environment variables with defaults
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", DEFAULT_MODEL)
GEMINI_TIMEOUT_MS = int(os.environ.get("GEMINI_TIMEOUT_MS") or 0) or None
MAX_IMAGE_DIMENSION = int(os.environ.get("MAX_IMAGE_DIMENSION", DEFAULT_MAX_DIMENSION))
JPEG_QUALITY = int(os.environ.get("JPEG_QUALITY", DEFAULT_JPEG_QUALITY))
GRADING_TEMPERATURE = float(
    os.environ.get("GRADING_TEMPERATURE", DEFAULT_TEMPERATURE)
)
GRADING_STRUCTURED_OUTPUT = (
    os.environ.get("GRADING_STRUCTURED_OUTPUT", "true").strip().lower()
    in {"1", "true", "yes", "on"}
)
SESSION_HEADER = "x-session-id"


def _resolve_auth_level(value: Optional[str], default: func.AuthLevel) -> func.AuthLevel:
    if not value:
        return default
    normalized = value.strip().upper()
    if normalized in {"ANONYMOUS", "FUNCTION", "ADMIN"}:
        return getattr(func.AuthLevel, normalized)
    logging.warning("Unknown auth level '%s'; defaulting to %s", value, default)
    return default


DEFAULT_AUTH_LEVEL = _resolve_auth_level(
    os.environ.get("HTTP_AUTH_LEVEL"), func.AuthLevel.FUNCTION
)
HEALTH_AUTH_LEVEL = _resolve_auth_level(
    os.environ.get("HEALTH_AUTH_LEVEL"), DEFAULT_AUTH_LEVEL
)

_SESSIONS = SubmissionTracker()
_pipeline: Optional[GradingPipeline] = None


def _grading_settings() -> GradingSettings:
    return GradingSettings(
        model=GEMINI_MODEL,
        max_dimension=MAX_IMAGE_DIMENSION,
        jpeg_quality=JPEG_QUALITY,
        temperature=GRADING_TEMPERATURE,
        structured_output=GRADING_STRUCTURED_OUTPUT,
    )


def _get_grading_pipeline() -> Optional[GradingPipeline]:
    """Return the grading pipeline, creating the Gemini client on first use."""
    global _pipeline
    if _pipeline is not None:
        return _pipeline

    if not GEMINI_API_KEY:
        logging.error("GEMINI_API_KEY not found in environment")
        return None

    try:
        client = create_genai_client(GEMINI_API_KEY, GEMINI_TIMEOUT_MS)
    except Exception as exc:
        logging.error("Failed to create Gemini client: %s", exc)
        return None

    settings = _grading_settings()
    _pipeline = GradingPipeline(
        GradingClient(client, structured_output=settings.structured_output),
        settings,
    )
    return _pipeline


def _parse_bool_param(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _json_response(payload: dict, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps(payload), status_code=status_code, mimetype="application/json"
    )


def _error_response(error: GradingError) -> func.HttpResponse:
    return _json_response({"error": error.public_message}, error.status_code)


def _read_raw_image(req: func.HttpRequest) -> RawImage:
    """Extract the uploaded image from a JSON data URL or a raw image body.

    Raises:
        InputError: no image was provided or its type is not declared.
    """
    content_type = (req.headers.get("content-type") or "").split(";")[0].strip()
    if content_type.lower().startswith("image/"):
        body = req.get_body() or b""
        if not body:
            raise InputError("No image data provided")
        return RawImage(data=body, mime_type=content_type.lower())

    try:
        payload = req.get_json()
    except ValueError as exc:
        raise InputError("Request body must be JSON with an 'image' field.") from exc

    image = payload.get("image") if isinstance(payload, dict) else None
    if not image or not isinstance(image, str):
        raise InputError("No image data provided")
    mime_type = payload.get("mimeType")
    if mime_type is not None and not isinstance(mime_type, str):
        raise InputError("Please select a valid image file.")
    return decode_data_url(image, mime_type)


async def _grade_submission(req: func.HttpRequest) -> GradedWorksheet:
    raw = _read_raw_image(req)
    check_media_type(raw.mime_type)
    pipeline = _get_grading_pipeline()
    if pipeline is None:
        raise GradingError("Grading service is not configured.")
    session_id = (req.headers.get(SESSION_HEADER) or "").strip() or None
    return await _SESSIONS.run(session_id, pipeline.grade(raw))


def _serialize_worksheet(worksheet: GradedWorksheet, *, details: bool) -> dict:
    body: dict = {"results": [r.to_payload() for r in worksheet.results]}
    if not details:
        return body

    body["summary"] = response_parser.summarize(worksheet.results)
    body["overlays"] = [
        {
            "lineNumber": r.line_number,
            "isCorrect": r.is_correct,
            "style": coordinates.to_percentages(r.bounding_box).to_css(),
        }
        for r in worksheet.results
    ]
    body["image"] = {
        "width": worksheet.image.width,
        "height": worksheet.image.height,
        "src": worksheet.image.display_source,
    }
    return body


@app.function_name(name="GradeWorksheet")
@app.route(route="grade", methods=["POST"], auth_level=DEFAULT_AUTH_LEVEL)
async def grade_worksheet(req: func.HttpRequest) -> func.HttpResponse:
    """Grade an uploaded worksheet image and return one result per line.

    Send ``{"image": "data:image/...;base64,..."}`` as JSON, or the raw
    image bytes with an ``image/*`` content type.

    Query params:
      - details=true|false (default: false) adds a summary, overlay
        geometry and the normalized image to the response
    """
    details = _parse_bool_param(req.params.get("details"), default=False)
    try:
        worksheet = await _grade_submission(req)
        body = _serialize_worksheet(worksheet, details=details)
    except GradingError as exc:
        logging.error("Grading failed (%s): %s", type(exc).__name__, exc)
        return _error_response(exc)
    except Exception:
        logging.exception("Unexpected error while grading worksheet")
        return _json_response({"error": GradingError.default_message}, 500)

    return _json_response(body)


@app.function_name(name="GradeWorksheetAnnotated")
@app.route(route="grade/annotated", methods=["POST"], auth_level=DEFAULT_AUTH_LEVEL)
async def grade_worksheet_annotated(req: func.HttpRequest) -> func.HttpResponse:
    """Grade an uploaded worksheet and return the image with result boxes drawn."""
    try:
        worksheet = await _grade_submission(req)
        annotated = render_overlay(worksheet.image, worksheet.results)
    except GradingError as exc:
        logging.error("Grading failed (%s): %s", type(exc).__name__, exc)
        return _error_response(exc)
    except Exception:
        logging.exception("Unexpected error while grading worksheet")
        return _json_response({"error": GradingError.default_message}, 500)

    summary = response_parser.summarize(worksheet.results)
    headers = {
        "X-Line-Count": str(summary["total"]),
        "X-Correct-Count": str(summary["correct"]),
    }
    return func.HttpResponse(
        body=annotated, status_code=200, mimetype="image/jpeg", headers=headers
    )


@app.function_name(name="Health")
@app.route(route="health", methods=["GET"], auth_level=HEALTH_AUTH_LEVEL)
def health(req: func.HttpRequest) -> func.HttpResponse:
    """Simple health endpoint for Postman/smoke tests."""
    return func.HttpResponse("OK", status_code=200)
