"""Step dispatchers and the default dispatcher registry."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from ..config import MeopConfig, load_config
from .base import BaseDispatcher, DispatchContext, DispatchResult, WebhookDispatcher
from .local import ConditionDispatcher, DelayDispatcher, TransformDispatcher
from .messaging import (
    ChannelDispatcher,
    DiscordDispatcher,
    EmailDispatcher,
    SlackDispatcher,
    TextDispatcher,
)
from .research import ResearchDispatcher

DispatcherRegistry = Dict[str, BaseDispatcher]


def build_default_dispatchers(
    config: Optional[MeopConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> DispatcherRegistry:
    """Build the step kind -> dispatcher map from ``config``.

    ``client`` is shared by every relay dispatcher when given; otherwise each
    call opens its own connection.
    """
    config = config or load_config()
    hooks = config.webhooks
    timeout = config.dispatch_timeout
    dispatchers: list[BaseDispatcher] = [
        ResearchDispatcher(hooks.research, timeout=timeout, client=client),
        TextDispatcher(hooks.send_text, timeout=timeout, client=client),
        EmailDispatcher(hooks.send_email, timeout=timeout, client=client),
        SlackDispatcher(
            hooks.send_slack,
            default_channel=config.default_channels.slack,
            timeout=timeout,
            client=client,
        ),
        DiscordDispatcher(
            hooks.send_discord,
            default_channel=config.default_channels.discord,
            timeout=timeout,
            client=client,
        ),
        DelayDispatcher(),
        ConditionDispatcher(),
        TransformDispatcher(),
    ]
    return {d.kind: d for d in dispatchers}


__all__ = [
    "BaseDispatcher",
    "ChannelDispatcher",
    "ConditionDispatcher",
    "DelayDispatcher",
    "DiscordDispatcher",
    "DispatchContext",
    "DispatchResult",
    "DispatcherRegistry",
    "EmailDispatcher",
    "ResearchDispatcher",
    "SlackDispatcher",
    "TextDispatcher",
    "TransformDispatcher",
    "WebhookDispatcher",
    "build_default_dispatchers",
]
