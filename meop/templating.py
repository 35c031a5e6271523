"""Substitution of the ``{{result}}`` placeholder in message templates."""

from __future__ import annotations

import logging
import re
from typing import Optional

from .contracts import MessageConfig, StepBase

logger = logging.getLogger(__name__)

RESULT_PLACEHOLDER = re.compile(r"\{\{result\}\}", re.IGNORECASE)


def interpolate(template: str, result: Optional[str]) -> str:
    """Replace every ``{{result}}`` token in ``template`` with ``result``.

    Matching is case-insensitive. Without a prior result the template is
    returned untouched, tokens included.
    """
    if not result:
        return template
    return RESULT_PLACEHOLDER.sub(lambda _match: result, template)


def has_placeholder(template: str) -> bool:
    return RESULT_PLACEHOLDER.search(template) is not None


def resolve_step(step: StepBase, result: Optional[str]) -> StepBase:
    """Return ``step`` with its message template expanded against ``result``.

    The stored step is left untouched.
    """
    config = getattr(step, "config", None)
    if not isinstance(config, MessageConfig):
        return step
    if not result and has_placeholder(config.message):
        logger.debug(f"No research result yet; step {step.id} keeps its placeholder")
    message = interpolate(config.message, result)
    if message == config.message:
        return step
    return step.model_copy(
        update={"config": config.model_copy(update={"message": message})}
    )
