import asyncio

import pytest
from google.genai import errors as genai_errors
from google.genai import types

from helpers import StubGenaiClient, make_image_bytes, valid_results_json
from worksheet_grader.errors import InferenceError
from worksheet_grader.grading_types import GradingSettings, RawImage
from worksheet_grader.image_normalizer import normalize_image_bytes
from worksheet_grader.request_builder import (
    GRADING_RESPONSE_SCHEMA,
    REQUIRED_FIELDS,
    SYSTEM_INSTRUCTION,
    TASK_INSTRUCTION,
    GradingClient,
    build_generate_config,
    build_grading_request,
)


def _request(**settings):
    raw = RawImage(data=make_image_bytes(120, 80), mime_type="image/png")
    image = normalize_image_bytes(raw)
    return build_grading_request(image, GradingSettings(**settings))


def test_build_grading_request_carries_fixed_contract() -> None:
    request = _request(model="gemini-test", temperature=0.2)

    assert request.image_data[:2] == b"\xff\xd8"
    assert request.image_mime_type == "image/jpeg"
    assert request.task_instruction == TASK_INSTRUCTION
    assert request.system_instruction == SYSTEM_INSTRUCTION
    assert request.response_schema is GRADING_RESPONSE_SCHEMA
    assert request.model == "gemini-test"
    assert request.temperature == 0.2


def test_system_instruction_covers_grading_rules() -> None:
    for phrase in ("top to bottom", "previous lines", "0-1000", "explanation", "LaTeX"):
        assert phrase in SYSTEM_INSTRUCTION
    assert "ONLY a valid JSON Array" in SYSTEM_INSTRUCTION


def test_response_schema_requires_all_fields() -> None:
    assert GRADING_RESPONSE_SCHEMA.type == types.Type.ARRAY
    item = GRADING_RESPONSE_SCHEMA.items
    assert item.type == types.Type.OBJECT
    assert sorted(item.properties) == sorted(REQUIRED_FIELDS)
    assert item.required == REQUIRED_FIELDS
    box = item.properties["boundingBox"]
    assert box.type == types.Type.ARRAY
    assert box.items.type == types.Type.INTEGER


def test_generate_config_with_structured_output() -> None:
    config = build_generate_config(_request())
    assert config.response_mime_type == "application/json"
    assert config.response_schema == GRADING_RESPONSE_SCHEMA
    assert config.temperature == 0.1
    assert config.system_instruction == SYSTEM_INSTRUCTION


def test_generate_config_falls_back_to_textual_schema() -> None:
    config = build_generate_config(_request(), structured_output=False)
    assert config.response_schema is None
    assert config.response_mime_type == "application/json"
    assert config.system_instruction.startswith(SYSTEM_INSTRUCTION)
    assert '"boundingBox"' in config.system_instruction


def test_submit_returns_raw_text() -> None:
    stub = StubGenaiClient(text=valid_results_json())
    client = GradingClient(stub)
    request = _request(model="gemini-test")

    text = asyncio.run(client.submit(request))

    assert text == valid_results_json()
    assert len(stub.calls) == 1
    call = stub.calls[0]
    assert call["model"] == "gemini-test"
    image_part, text_part = call["contents"]
    assert image_part.inline_data.mime_type == "image/jpeg"
    assert image_part.inline_data.data == request.image_data
    assert text_part.text == TASK_INSTRUCTION
    assert call["config"].response_schema == GRADING_RESPONSE_SCHEMA


def test_submit_surfaces_service_message() -> None:
    error = genai_errors.ClientError(
        429,
        {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}},
    )
    client = GradingClient(StubGenaiClient(error=error))

    with pytest.raises(InferenceError) as excinfo:
        asyncio.run(client.submit(_request()))
    assert "Quota exceeded" in excinfo.value.public_message


def test_submit_uses_generic_message_for_transport_errors() -> None:
    client = GradingClient(StubGenaiClient(error=ConnectionError("socket closed")))

    with pytest.raises(InferenceError) as excinfo:
        asyncio.run(client.submit(_request()))
    assert excinfo.value.public_message == "Failed to grade image."


def test_submit_rejects_empty_response() -> None:
    client = GradingClient(StubGenaiClient(text=None))

    with pytest.raises(InferenceError):
        asyncio.run(client.submit(_request()))
