"""Research lookup dispatcher."""

from __future__ import annotations

import json
import logging

from ..constants import (
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_OUTPUT_LENGTH,
    DEFAULT_RESEARCH_QUERY,
)
from ..contracts import RESEARCH, ResearchStep
from .base import DispatchContext, DispatchResult, WebhookDispatcher

logger = logging.getLogger(__name__)


class ResearchDispatcher(WebhookDispatcher):
    """Sends ``{query, output_format, output_length}`` to the research service.

    The textual answer becomes the run's last result, visible to later
    message templates.
    """

    kind = RESEARCH
    label = "Research"

    async def _execute(
        self, step: ResearchStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        config = step.config
        query = config.query or context.input_data.get("query") or DEFAULT_RESEARCH_QUERY
        payload = {
            "query": query,
            "output_format": config.output_format or DEFAULT_OUTPUT_FORMAT,
            "output_length": config.output_length or DEFAULT_OUTPUT_LENGTH,
        }
        logger.info(
            f"Research: {query!r} (format: {payload['output_format']}, "
            f"length: {payload['output_length']})"
        )

        response = await self._post(payload, trace)
        try:
            data = response.json()
        except ValueError:
            return response.text

        trace.response_body = data
        answer = data
        if isinstance(data, dict):
            answer = data.get("result") or data.get("content") or data
        # Non-string answers are stored as JSON text
        return answer if isinstance(answer, str) else json.dumps(answer)
