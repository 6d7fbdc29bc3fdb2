"""Utility to grade a worksheet photo locally.

This script reads an image file from disk, sends it through the grading
pipeline and prints one line per graded step. To invoke it, run::

    GEMINI_API_KEY=... python grade_local.py --input /path/to/worksheet.jpg

Pass ``--output annotated.jpg`` to also write the image with result boxes.
The API key falls back to the ``Values`` of ``local.settings.json``.
"""
import argparse
import asyncio
import json
import mimetypes
import os
from pathlib import Path

from worksheet_grader import (
    GradingClient,
    GradingError,
    GradingPipeline,
    GradingSettings,
    RawImage,
    create_genai_client,
    render_overlay,
    summarize,
)


def load_local_settings_if_needed() -> None:
    if os.environ.get("GEMINI_API_KEY"):
        return

    settings_path = Path(__file__).with_name("local.settings.json")
    if not settings_path.exists():
        return

    settings = json.loads(settings_path.read_text(encoding="utf-8"))
    values = settings.get("Values", {})
    for k, v in values.items():
        if isinstance(v, str) and k not in os.environ:
            os.environ[k] = v


def main() -> None:
    parser = argparse.ArgumentParser(description="Grade a worksheet image locally")
    parser.add_argument("--input", required=True, help="Path to input image")
    parser.add_argument("--output", help="Path to save the annotated image")
    parser.add_argument("--model", default=GradingSettings.model, help="Gemini model name")
    args = parser.parse_args()

    load_local_settings_if_needed()
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        parser.error("GEMINI_API_KEY is not set")

    input_path = Path(args.input)
    mime_type = mimetypes.guess_type(input_path.name)[0] or "application/octet-stream"
    raw = RawImage(data=input_path.read_bytes(), mime_type=mime_type)

    settings = GradingSettings(model=args.model)
    pipeline = GradingPipeline(GradingClient(create_genai_client(api_key)), settings)
    try:
        worksheet = asyncio.run(pipeline.grade(raw))
    except GradingError as exc:
        print(f"Grading failed: {exc.public_message}")
        raise SystemExit(1)

    for result in worksheet.results:
        verdict = "correct" if result.is_correct else "incorrect"
        print(f"Line {result.line_number} [{verdict}] {result.latex}")
        if result.explanation:
            print(f"    {result.explanation}")
    summary = summarize(worksheet.results)
    print(f"{summary['correct']}/{summary['total']} correct")

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(render_overlay(worksheet.image, worksheet.results))
        print(f"Saved {out_path}")


if __name__ == "__main__":
    main()
