"""Typed configuration models used throughout the project."""

from typing import List, Literal, Optional

from pydantic import BaseModel, field_validator, model_validator


class BotIntents(BaseModel):
    """Discord gateway intent toggles."""

    members: bool = False
    message_content: bool = True


class BotConfig(BaseModel):
    """Runtime behaviour toggles for the gateway client."""

    intents: BotIntents = BotIntents()
    shard_count: Optional[int] = None
    command_modules: List[str] = []
    ignore_bots: bool = True
    sync_commands_on_start: bool = False


class DispatchConfig(BaseModel):
    """Prefix matching and user-facing reply behaviour for text commands."""

    default_prefix: str = "!"
    additional_prefixes: List[str] = []
    mention_prefix: bool = True
    reply_on_filter_rejection: bool = True
    reply_on_argument_error: bool = True
    rejection_template: str = "You cannot use this command. Requirement: {criteria}"
    handler_error_reply: Optional[str] = None

    @field_validator("default_prefix", mode="before")
    @classmethod
    def _strip_prefix(cls, value: str):
        """Prefixes never carry surrounding whitespace."""
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("default_prefix must not be empty")
        return value

    @field_validator("additional_prefixes", mode="before")
    @classmethod
    def _strip_additional(cls, value):
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            cleaned = [item.strip() for item in value if isinstance(item, str) and item.strip()]
            return list(dict.fromkeys(cleaned))
        return value


class InteractionConfig(BaseModel):
    """Acknowledgement deadlines for slash command interactions."""

    soft_deadline_ms: int = 250
    hard_deadline_ms: int = 3000
    default_ack_mode: Literal["manual", "auto_default", "auto_ephemeral"] = "auto_default"

    @field_validator("default_ack_mode", mode="before")
    @classmethod
    def _lower_mode(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_deadlines(self):
        if self.soft_deadline_ms <= 0:
            raise ValueError("soft_deadline_ms must be positive")
        if self.soft_deadline_ms >= self.hard_deadline_ms:
            raise ValueError("soft_deadline_ms must be lower than hard_deadline_ms")
        return self


class AnalyticsConfig(BaseModel):
    """Configuration for dispatch outcome analytics export."""

    enabled: bool = False
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    flush_interval_seconds: int = 30
    batch_size: int = 50
    storage_path: str = "data/dispatch_analytics.log"
    hash_salt: str = "switchboard"


class LoggingConfig(BaseModel):
    """Log level and format for the process."""

    level: str = "INFO"
    discord_level: str = "INFO"
    format: Optional[str] = None

    @field_validator("level", "discord_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class AppConfig(BaseModel):
    """Root configuration container loaded from ``config.yml`` and ``.env``."""

    bot: BotConfig = BotConfig()
    dispatch: DispatchConfig = DispatchConfig()
    interactions: InteractionConfig = InteractionConfig()
    analytics: AnalyticsConfig = AnalyticsConfig()
    logging: LoggingConfig = LoggingConfig()
