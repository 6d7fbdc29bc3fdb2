"""Test helpers for building images, stub inference clients and invoking functions."""

import asyncio
import inspect
import json
from io import BytesIO
from types import SimpleNamespace
from typing import List, Optional

from PIL import Image


VALID_RESULTS = [
    {
        "lineNumber": 1,
        "latex": "2x + 3 = 7",
        "isCorrect": True,
        "explanation": "",
        "boundingBox": [100, 50, 180, 600],
    },
    {
        "lineNumber": 2,
        "latex": "2x = 5",
        "isCorrect": False,
        "explanation": "Subtracting 3 from 7 gives 4, not 5.",
        "boundingBox": [200, 50, 280, 500],
    },
]


def valid_results_json() -> str:
    return json.dumps(VALID_RESULTS)


def make_image_bytes(
    width: int = 64,
    height: int = 48,
    *,
    fmt: str = "PNG",
    mode: str = "RGB",
    color=(255, 255, 255),
) -> bytes:
    """Encode a solid image of the given size in memory."""
    img = Image.new(mode, (width, height), color=color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class StubModels:
    """Stands in for ``client.aio.models`` of google-genai."""

    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[dict] = []

    async def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class StubGenaiClient:
    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.models = StubModels(text=text, error=error)
        self.aio = SimpleNamespace(models=self.models)

    @property
    def calls(self) -> List[dict]:
        return self.models.calls


def user_function(handler):
    """Return the plain Python function behind a decorated function handler."""
    function = getattr(handler, "_function", None)
    return function.get_user_function() if function is not None else handler


def invoke(handler, req):
    """Call a decorated function handler, running it to completion if async."""
    result = user_function(handler)(req)
    if inspect.iscoroutine(result):
        return asyncio.run(result)
    return result
