"""End-to-end grading of one submission, plus per-session supersession."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, Optional, TypeVar

from .errors import SubmissionSuperseded
from .grading_types import GradedWorksheet, GradingSettings, RawImage
from .image_normalizer import check_media_type, normalize_image
from .request_builder import GradingClient, build_grading_request
from .response_parser import parse_grading_response

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GradingPipeline:
    """Normalize an image, ask the model to grade it and parse the answer.

    Each stage finishes before the next one starts. Failures are raised as
    :class:`~worksheet_grader.errors.GradingError` subclasses and are never
    retried.
    """

    def __init__(
        self, client: GradingClient, settings: Optional[GradingSettings] = None
    ) -> None:
        self.client = client
        self.settings = settings or GradingSettings()

    async def grade(self, raw: RawImage) -> GradedWorksheet:
        check_media_type(raw.mime_type)
        image = await normalize_image(
            raw,
            max_dimension=self.settings.max_dimension,
            quality=self.settings.jpeg_quality,
        )
        request = build_grading_request(image, self.settings)
        raw_text = await self.client.submit(request)
        results = parse_grading_response(raw_text)
        logger.info(
            "Graded worksheet: %d line(s), %d correct",
            len(results),
            sum(1 for r in results if r.is_correct),
        )
        return GradedWorksheet(image=image, results=results)


class SubmissionTracker:
    """Keeps at most one pending submission per session key.

    Starting a submission for a key cancels the previous one still running
    for that key; its caller gets :class:`SubmissionSuperseded`.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: Optional[str], work: Awaitable[T]) -> T:
        if not key:
            return await work

        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            logger.info("Cancelling superseded submission for session %s", key)
            previous.cancel()

        task = asyncio.ensure_future(work)
        self._tasks[key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._tasks.get(key) is not task:
                raise SubmissionSuperseded() from None
            raise
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]
