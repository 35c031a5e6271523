"""Step, sequence and queue message contracts for the meop sequence engine."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)

from .constants import DEFAULT_SCHEDULE_TIMEZONE

RESEARCH = "research"
SEND_TEXT = "send_text"
SEND_EMAIL = "send_email"
SEND_SLACK = "send_slack"
SEND_DISCORD = "send_discord"
DELAY = "delay"
CONDITION = "condition"
TRANSFORM = "transform"
TRIGGER = "trigger"

ACTION_KINDS = (
    RESEARCH,
    SEND_TEXT,
    SEND_EMAIL,
    SEND_SLACK,
    SEND_DISCORD,
    DELAY,
    CONDITION,
    TRANSFORM,
)

# Names used by the sequence builder, the workflow canvas and legacy rows.
KIND_ALIASES: Dict[str, str] = {
    "action_research": RESEARCH,
    "text": SEND_TEXT,
    "action_text": SEND_TEXT,
    "email": SEND_EMAIL,
    "action_email": SEND_EMAIL,
    "slack": SEND_SLACK,
    "action_slack": SEND_SLACK,
    "slack_message": SEND_SLACK,
    "discord": SEND_DISCORD,
    "action_discord": SEND_DISCORD,
    "discord_message": SEND_DISCORD,
    "action_delay": DELAY,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_kind(kind: Optional[str]) -> str:
    """Map a raw step kind onto its canonical name."""
    value = (kind or "").strip().lower()
    return KIND_ALIASES.get(value, value)


def is_trigger_kind(kind: Optional[str]) -> bool:
    return canonical_kind(kind).startswith(TRIGGER)


# ----------------------------------------------------------------------
# Per-kind configuration


class StepConfig(BaseModel):
    """Base for kind-specific parameter bags."""

    model_config = ConfigDict(populate_by_name=True)


class ResearchConfig(StepConfig):
    query: Optional[str] = None
    output_format: Optional[str] = Field(default=None, alias="outputFormat")
    output_length: Optional[str] = Field(default=None, alias="outputLength")

    @field_validator("output_length", mode="before")
    @classmethod
    def _length_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class MessageConfig(StepConfig):
    message: str = ""

    @field_validator("message", mode="before")
    @classmethod
    def _empty_message(cls, value: Any) -> Any:
        return "" if value is None else value


class TextConfig(MessageConfig):
    phone: Optional[str] = None


class EmailConfig(MessageConfig):
    to: Optional[str] = None
    subject: Optional[str] = None


class ChannelConfig(MessageConfig):
    channel: Optional[str] = None

    @field_validator("channel", mode="before")
    @classmethod
    def _strip_hash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lstrip("#") or None
        return value


class DelayConfig(StepConfig):
    delay_minutes: Optional[float] = Field(default=None, alias="delayMinutes")


class ConditionConfig(StepConfig):
    condition: str = ""


class TransformConfig(StepConfig):
    transform: str = ""


# ----------------------------------------------------------------------
# Steps


class Position(BaseModel):
    """Canvas coordinates of a workflow-builder node."""

    x: float = 0
    y: float = 0


class StepBase(BaseModel):
    """Fields shared by every step kind."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    label: str = ""
    order: int = 0
    position: Optional[Position] = None

    @model_validator(mode="before")
    @classmethod
    def _canonicalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        kind = data.get("kind") or data.pop("type", None)
        if kind:
            data["kind"] = canonical_kind(kind)
        if data.get("config") is None:
            data.pop("config", None)
        if data.get("label") is None:
            data.pop("label", None)
        return data


class ResearchStep(StepBase):
    kind: Literal["research"] = RESEARCH
    config: ResearchConfig = Field(default_factory=ResearchConfig)


class TextStep(StepBase):
    kind: Literal["send_text"] = SEND_TEXT
    config: TextConfig = Field(default_factory=TextConfig)


class EmailStep(StepBase):
    kind: Literal["send_email"] = SEND_EMAIL
    config: EmailConfig = Field(default_factory=EmailConfig)


class SlackStep(StepBase):
    kind: Literal["send_slack"] = SEND_SLACK
    config: ChannelConfig = Field(default_factory=ChannelConfig)


class DiscordStep(StepBase):
    kind: Literal["send_discord"] = SEND_DISCORD
    config: ChannelConfig = Field(default_factory=ChannelConfig)


class DelayStep(StepBase):
    kind: Literal["delay"] = DELAY
    config: DelayConfig = Field(default_factory=DelayConfig)


class ConditionStep(StepBase):
    kind: Literal["condition"] = CONDITION
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class TransformStep(StepBase):
    kind: Literal["transform"] = TRANSFORM
    config: TransformConfig = Field(default_factory=TransformConfig)


class TriggerStep(StepBase):
    """Entry marker describing how a run started. Never dispatched."""

    kind: str = TRIGGER
    config: Dict[str, Any] = Field(default_factory=dict)


class UnknownStep(StepBase):
    """Step whose kind this engine does not recognise."""

    kind: str
    config: Dict[str, Any] = Field(default_factory=dict)


def _step_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = canonical_kind(value.get("kind") or value.get("type"))
    else:
        kind = getattr(value, "kind", "")
    if kind.startswith(TRIGGER):
        return TRIGGER
    return kind if kind in ACTION_KINDS else "unknown"


Step = Annotated[
    Union[
        Annotated[ResearchStep, Tag(RESEARCH)],
        Annotated[TextStep, Tag(SEND_TEXT)],
        Annotated[EmailStep, Tag(SEND_EMAIL)],
        Annotated[SlackStep, Tag(SEND_SLACK)],
        Annotated[DiscordStep, Tag(SEND_DISCORD)],
        Annotated[DelayStep, Tag(DELAY)],
        Annotated[ConditionStep, Tag(CONDITION)],
        Annotated[TransformStep, Tag(TRANSFORM)],
        Annotated[TriggerStep, Tag(TRIGGER)],
        Annotated[UnknownStep, Tag("unknown")],
    ],
    Discriminator(_step_tag),
]


# ----------------------------------------------------------------------
# Sequences


class ScheduleConfig(BaseModel):
    """When a scheduled sequence is due."""

    model_config = ConfigDict(populate_by_name=True)

    frequency: str = "daily"  # daily, weekly, monthly, one_time, every_x_days
    time: Optional[str] = None  # HH:MM
    days: List[str] = Field(default_factory=list)
    day_of_month: Optional[int] = Field(default=None, alias="dayOfMonth")
    custom_date: Optional[date] = None
    every_x_days: Optional[int] = None
    timezone: str = DEFAULT_SCHEDULE_TIMEZONE

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        scheduled_time = data.pop("scheduled_time", None)
        if not data.get("time") and scheduled_time:
            data["time"] = scheduled_time
        day_of_week = data.pop("day_of_week", None) or data.pop("dayOfWeek", None)
        if not data.get("days") and day_of_week:
            data["days"] = [day_of_week]
        if "day_of_month" in data and isinstance(data["day_of_month"], str):
            data["day_of_month"] = int(data["day_of_month"]) if data["day_of_month"] else None
        custom_date = data.get("custom_date")
        if isinstance(custom_date, str) and len(custom_date) > 10:
            data["custom_date"] = custom_date[:10]
        return data


class Sequence(BaseModel):
    """Named, ordered list of steps. Read-only while an execution runs."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    ordering: Literal["index", "position"] = "index"
    is_active: bool = True
    schedule: Optional[ScheduleConfig] = None
    last_run_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("steps")
    @classmethod
    def _unique_step_ids(cls, steps: List[StepBase]) -> List[StepBase]:
        seen: set[str] = set()
        for step in steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return steps

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Sequence":
        return cls.model_validate_json(data)


class RunRequest(BaseModel):
    """
    Envelope handed to background workers. The execution id is generated up
    front so the caller can poll the execution store for it.
    """

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sequence_id: str
    input_data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_json(self) -> str:
        """Serialize request to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "RunRequest":
        """Deserialize request from JSON."""
        return cls.model_validate_json(data)
