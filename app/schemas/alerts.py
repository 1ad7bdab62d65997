from typing import Any, List, Optional

from .base import CamelModel


class AlertPayload(CamelModel):
    type: Optional[str] = None
    message: Optional[str] = None
    title: Optional[str] = None
    priority: Optional[str] = None
    symbol: Optional[str] = None
    value: Optional[Any] = None
    webhook_url: Optional[str] = None
    mention_role: Optional[str] = None
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None
    silent: Optional[bool] = None


class AlertCondition(CamelModel):
    type: str
    target: float = 0.0
    target_min: Optional[float] = None
    target_max: Optional[float] = None
    operator: Optional[str] = None


class AlertRuleIn(CamelModel):
    name: Optional[str] = None
    symbol: Optional[str] = None
    symbols: Optional[List[str]] = None
    conditions: Optional[List[AlertCondition]] = None
    logic: Optional[str] = None
    priority: Optional[str] = None
    active: Optional[bool] = None
    cooldown_seconds: Optional[int] = None


class AlertSettingsIn(CamelModel):
    discord_enabled: Optional[bool] = None
    discord_webhook_url: Optional[str] = None
    discord_mention_on_critical: Optional[bool] = None
    discord_mention_role: Optional[str] = None
    telegram_enabled: Optional[bool] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_silent: Optional[bool] = None
