"""Configuration loader for Switchboard.

This module centralises configuration concerns: it loads ``config.yml``,
overrides with environment variables (``.env``) and exposes globally accessible
objects the rest of the code base can rely on.
"""

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .schema import AppConfig, DispatchConfig, InteractionConfig

# Resolve env file precedence: .env.local (dev), .env.production (prod), then .env
_base_dir = Path(__file__).resolve().parents[2]
_env_files = [".env.local", ".env.production", ".env"]
_loaded = False
for _candidate in _env_files:
    _path = _base_dir / _candidate
    if _path.exists():
        load_dotenv(_path)
        _loaded = True
        break
if not _loaded:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)


def _load_yaml(path: str) -> Dict:
    """Load a YAML config file, returning an empty dict if it is blank or absent."""
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
        return data or {}


def _env_bool(value: Optional[str], fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.strip().lower() in {"1", "true", "yes", "on"}


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """Overlay ``SWITCHBOARD_*`` environment variables onto ``config``."""
    prefix = os.getenv("SWITCHBOARD_PREFIX")
    extra = os.getenv("SWITCHBOARD_ADDITIONAL_PREFIXES")
    mention = os.getenv("SWITCHBOARD_MENTION_PREFIX")
    if prefix or extra or mention:
        config.dispatch = DispatchConfig(
            **{
                **config.dispatch.model_dump(),
                "default_prefix": prefix or config.dispatch.default_prefix,
                "additional_prefixes": extra.split(",") if extra else config.dispatch.additional_prefixes,
                "mention_prefix": _env_bool(mention, config.dispatch.mention_prefix),
            }
        )

    soft = os.getenv("SWITCHBOARD_SOFT_DEADLINE_MS")
    hard = os.getenv("SWITCHBOARD_HARD_DEADLINE_MS")
    ack_mode = os.getenv("SWITCHBOARD_ACK_MODE")
    if soft or hard or ack_mode:
        config.interactions = InteractionConfig(
            soft_deadline_ms=int(soft) if soft else config.interactions.soft_deadline_ms,
            hard_deadline_ms=int(hard) if hard else config.interactions.hard_deadline_ms,
            default_ack_mode=ack_mode or config.interactions.default_ack_mode,
        )

    log_level = os.getenv("SWITCHBOARD_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.strip().upper()

    analytics_enabled = os.getenv("SWITCHBOARD_ANALYTICS_ENABLED")
    if analytics_enabled is not None:
        config.analytics.enabled = _env_bool(analytics_enabled, config.analytics.enabled)
    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Build an ``AppConfig`` from ``path`` (or ``CONFIG_PATH``) plus env overrides."""
    raw = _load_yaml(path or os.getenv("CONFIG_PATH", "config.yml"))
    return apply_env_overrides(AppConfig(**raw))


CONFIG = load_config()
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
