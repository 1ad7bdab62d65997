from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger, JSON, Text
from sqlalchemy.sql import func
from app.core.database import Base

class AlertRule(Base):
    __tablename__ = "alert_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)

    # Single symbol, a list of symbols, or "GLOBAL" for every USDT pair
    symbol = Column(String, nullable=True)
    symbols = Column(JSON, default=list)

    # [{"type": "price_above", "target": 100000}, {"type": "chg_5m", "target": 2, "operator": "gt"}]
    conditions = Column(JSON, default=list)
    logic = Column(String, default="AND")  # AND, OR
    priority = Column(String, default="medium")  # low, medium, high, critical
    active = Column(Boolean, default=True)

    cooldown_seconds = Column(Integer, nullable=True)
    last_triggered_at = Column(BigInteger, nullable=True)  # epoch ms

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "symbols": self.symbols or [],
            "conditions": self.conditions or [],
            "logic": self.logic or "AND",
            "priority": self.priority or "medium",
            "active": bool(self.active),
            "cooldownSeconds": self.cooldown_seconds,
            "lastTriggeredAt": self.last_triggered_at,
        }

class AlertSettings(Base):
    """Delivery channels for server-side alerts (single row)"""
    __tablename__ = "alert_settings"

    id = Column(Integer, primary_key=True, index=True)
    discord_enabled = Column(Boolean, default=False)
    discord_webhook_url = Column(Text, nullable=True)
    discord_mention_on_critical = Column(Boolean, default=False)
    discord_mention_role = Column(String, nullable=True)
    telegram_enabled = Column(Boolean, default=False)
    telegram_bot_token = Column(Text, nullable=True)
    telegram_chat_id = Column(String, nullable=True)
    telegram_silent = Column(Boolean, default=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "discordEnabled": bool(self.discord_enabled),
            "discordWebhookUrl": self.discord_webhook_url,
            "discordMentionOnCritical": bool(self.discord_mention_on_critical),
            "discordMentionRole": self.discord_mention_role,
            "telegramEnabled": bool(self.telegram_enabled),
            "telegramBotToken": self.telegram_bot_token,
            "telegramChatId": self.telegram_chat_id,
            "telegramSilent": bool(self.telegram_silent),
        }
