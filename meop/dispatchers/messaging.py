"""Messaging relay dispatchers: text, email, Slack and Discord."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..constants import DEFAULT_DISCORD_CHANNEL, DEFAULT_DISPATCH_TIMEOUT, DEFAULT_SLACK_CHANNEL
from ..contracts import (
    SEND_DISCORD,
    SEND_EMAIL,
    SEND_SLACK,
    SEND_TEXT,
    ChannelConfig,
    EmailStep,
    TextStep,
)
from ..errors import StepConfigurationError
from ..utils.phone import format_phone_e164
from .base import DispatchContext, DispatchResult, WebhookDispatcher

logger = logging.getLogger(__name__)


def _preview(message: str, limit: int = 50) -> str:
    return message if len(message) <= limit else message[:limit] + "..."


class TextDispatcher(WebhookDispatcher):
    kind = SEND_TEXT
    label = "Text send"

    async def _execute(
        self, step: TextStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        config = step.config
        if not config.phone:
            raise StepConfigurationError("Phone number is required for text step")
        phone = format_phone_e164(config.phone)
        message = config.message
        logger.info(f"Text to {phone}: {_preview(message)!r}")

        await self._post(
            {"action_type": "send_text", "phone": phone, "message": message}, trace
        )
        return f"Text sent to {phone}"


class EmailDispatcher(WebhookDispatcher):
    kind = SEND_EMAIL
    label = "Email send"

    async def _execute(
        self, step: EmailStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        config = step.config
        if not config.to:
            raise StepConfigurationError("Email recipient is required")
        if not config.subject:
            raise StepConfigurationError("Email subject is required")
        message = config.message
        logger.info(f"Email to {config.to}: {config.subject!r}")

        await self._post(
            {
                "action_type": "send_email",
                "to": config.to,
                "subject": config.subject,
                "message": message,
            },
            trace,
        )
        return f"Email sent to {config.to}"


class ChannelDispatcher(WebhookDispatcher):
    """Posts a message to a chat channel, falling back to a default channel."""

    action_type: str = ""
    platform: str = ""

    def __init__(
        self,
        url: Optional[str],
        default_channel: str,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(url, timeout=timeout, client=client)
        self.default_channel = default_channel

    async def _execute(self, step, context: DispatchContext, trace: DispatchResult) -> str:
        config: ChannelConfig = step.config
        channel = config.channel or self.default_channel
        message = config.message
        logger.info(f"{self.label} #{channel}: {_preview(message)!r}")

        await self._post(
            {"action_type": self.action_type, "channel": channel, "message": message},
            trace,
        )
        return f"{self.platform} message sent to #{channel}"


class SlackDispatcher(ChannelDispatcher):
    kind = SEND_SLACK
    label = "Slack send"
    platform = "Slack"
    action_type = "slack_message"

    def __init__(
        self,
        url: Optional[str],
        default_channel: str = DEFAULT_SLACK_CHANNEL,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(url, default_channel, timeout=timeout, client=client)


class DiscordDispatcher(ChannelDispatcher):
    kind = SEND_DISCORD
    label = "Discord send"
    platform = "Discord"
    action_type = "discord_message"

    def __init__(
        self,
        url: Optional[str],
        default_channel: str = DEFAULT_DISCORD_CHANNEL,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(url, default_channel, timeout=timeout, client=client)
