from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_DISCORD_CHANNEL,
    DEFAULT_DISPATCH_TIMEOUT,
    DEFAULT_SLACK_CHANNEL,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class WebhookConfig(BaseModel):
    """Relay endpoints, one per outbound step kind."""

    research: Optional[str] = None
    send_text: Optional[str] = None
    send_email: Optional[str] = None
    send_slack: Optional[str] = None
    send_discord: Optional[str] = None


class ChannelDefaults(BaseModel):
    """Channels used when a messaging step omits one."""

    slack: str = DEFAULT_SLACK_CHANNEL
    discord: str = DEFAULT_DISCORD_CHANNEL


class MeopConfig(BaseModel):
    """Top-level configuration model."""

    webhooks: WebhookConfig = WebhookConfig()
    default_channels: ChannelDefaults = ChannelDefaults()
    dispatch_timeout: float = DEFAULT_DISPATCH_TIMEOUT
    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> MeopConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MEOP_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("MEOP_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = MeopConfig(**data)
    else:
        config = MeopConfig()

    env_db_url = os.getenv("MEOP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    for kind in WebhookConfig.model_fields:
        env_url = os.getenv(f"MEOP_WEBHOOK_{kind.upper()}")
        if env_url:
            setattr(config.webhooks, kind, env_url)
    return config
