"""Coercion of stored step documents and step ordering strategies."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence as SequenceT, Tuple

from .contracts import (
    DELAY,
    RESEARCH,
    SEND_DISCORD,
    SEND_EMAIL,
    SEND_SLACK,
    SEND_TEXT,
    TRIGGER,
    Sequence,
    StepBase,
    canonical_kind,
)

logger = logging.getLogger(__name__)

OrderingStrategy = Callable[[SequenceT[StepBase]], List[StepBase]]

DEFAULT_LABELS: Dict[str, str] = {
    RESEARCH: "Research",
    SEND_TEXT: "Text",
    SEND_EMAIL: "Email",
    SEND_SLACK: "Slack",
    SEND_DISCORD: "Discord",
    DELAY: "Delay",
    "trigger_schedule": "Schedule",
    "trigger_webhook": "Webhook",
    "trigger_voice": "Voice",
    "trigger_manual": "Manual",
}


def order_by_index(steps: SequenceT[StepBase]) -> List[StepBase]:
    """Sort by explicit ``order``; ties keep insertion order."""
    indexed = list(enumerate(steps))
    indexed.sort(key=lambda item: (item[1].order, item[0]))
    return [step for _, step in indexed]


def order_by_position(steps: SequenceT[StepBase]) -> List[StepBase]:
    """Sort top to bottom by canvas ``position.y``; unplaced steps go last."""

    def key(item: Tuple[int, StepBase]) -> Tuple[int, float, int]:
        idx, step = item
        if step.position is None:
            return (1, 0.0, idx)
        return (0, step.position.y, idx)

    return [step for _, step in sorted(enumerate(steps), key=key)]


ORDERING_STRATEGIES: Dict[str, OrderingStrategy] = {
    "index": order_by_index,
    "position": order_by_position,
}


# ----------------------------------------------------------------------
# Legacy documents


def _legacy_kind(step: Dict[str, Any], trigger_type: Optional[str]) -> str:
    raw_type = str(step.get("type") or step.get("kind") or "").strip().lower()
    config = step.get("config") or {}

    if raw_type == TRIGGER:
        hint = (trigger_type or "").lower()
        if "voice" in hint:
            return "trigger_voice"
        if "webhook" in hint or isinstance(config.get("webhookUrl"), str):
            return "trigger_webhook"
        return "trigger_schedule"

    if raw_type != "action":
        return canonical_kind(raw_type)

    action_type = str(config.get("action_type") or "").strip().lower()
    if action_type in ("send_slack", "slack_message"):
        return SEND_SLACK
    if action_type in ("send_discord", "discord_message"):
        return SEND_DISCORD
    if action_type == "send_email":
        return SEND_EMAIL
    if action_type == RESEARCH:
        return RESEARCH
    return SEND_TEXT


def _legacy_config(kind: str, config: Dict[str, Any]) -> Dict[str, Any]:
    config = dict(config)
    config.pop("action_type", None)
    if kind == RESEARCH:
        config.setdefault(
            "query", config.pop("research_query", None) or config.pop("original_query", None)
        )
    elif kind == SEND_SLACK:
        config.setdefault("channel", config.pop("slack_channel", None))
    elif kind == SEND_DISCORD:
        config.setdefault("channel", config.pop("discord_channel", None))
    elif kind == SEND_TEXT and not config.get("phone"):
        config["phone"] = config.pop("to", None)
    return {key: value for key, value in config.items() if value is not None}


def coerce_steps(
    raw: Any, trigger_type: Optional[str] = None
) -> Tuple[List[Dict[str, Any]], str]:
    """Turn any stored step document into canonical step dicts.

    Returns the step dicts together with the ordering strategy name they
    should be executed with.
    """
    if isinstance(raw, dict) and isinstance(raw.get("nodes"), list):
        if raw.get("connections"):
            logger.debug("Ignoring workflow connections; execution is linear")
        nodes = [
            {**node, "kind": canonical_kind(node.get("kind") or node.get("type"))}
            for node in raw["nodes"]
        ]
        return nodes, "position"

    if not isinstance(raw, list):
        return [], "index"

    steps: List[Dict[str, Any]] = []
    for idx, step in enumerate(raw):
        if not isinstance(step, dict):
            logger.warning(f"Skipping malformed step at index {idx}: {step!r}")
            continue
        kind = _legacy_kind(step, trigger_type)
        steps.append(
            {
                "id": step.get("id") or str(uuid.uuid4()),
                "kind": kind,
                "label": step.get("label") or DEFAULT_LABELS.get(kind, "Step"),
                "order": idx if step.get("order") is None else step["order"],
                "position": step.get("position"),
                "config": _legacy_config(kind, step.get("config") or {}),
            }
        )
    return steps, "index"


def load_sequence(data: Dict[str, Any]) -> Sequence:
    """Validate a sequence definition, accepting any stored step layout."""
    data = dict(data)
    steps, ordering = coerce_steps(data.get("steps"), data.get("trigger_type"))
    data["steps"] = steps
    data.setdefault("ordering", ordering)
    if data.get("schedule") is None and data.get("trigger_config"):
        data["schedule"] = data["trigger_config"]
    return Sequence.model_validate(data)
