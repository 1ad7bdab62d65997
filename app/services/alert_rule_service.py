from typing import Any, Dict, List

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import ApiError, ApiErrorCode, missing_parameters
from app.models.alert import AlertRule, AlertSettings

CONDITION_TYPES = ("price_above", "price_below", "chg_5m", "chg_15m", "rvol")
CONDITION_OPERATORS = ("gt", "lt", "outside")
PRIORITIES = ("low", "medium", "high", "critical")

_RULE_FIELDS = {
    "name": "name",
    "symbol": "symbol",
    "symbols": "symbols",
    "conditions": "conditions",
    "logic": "logic",
    "priority": "priority",
    "active": "active",
    "cooldownSeconds": "cooldown_seconds",
}

_SETTINGS_FIELDS = {
    "discordEnabled": "discord_enabled",
    "discordWebhookUrl": "discord_webhook_url",
    "discordMentionOnCritical": "discord_mention_on_critical",
    "discordMentionRole": "discord_mention_role",
    "telegramEnabled": "telegram_enabled",
    "telegramBotToken": "telegram_bot_token",
    "telegramChatId": "telegram_chat_id",
    "telegramSilent": "telegram_silent",
}


def validate_rule(data: Dict[str, Any]):
    if "symbol" in data or "symbols" in data:
        if not data.get("symbol") and not data.get("symbols"):
            raise missing_parameters("symbol or symbols required")
    for condition in data.get("conditions") or []:
        if condition.get("type") not in CONDITION_TYPES:
            raise missing_parameters(f"Unknown condition type: {condition.get('type')}")
        if (condition.get("operator") or "gt") not in CONDITION_OPERATORS:
            raise missing_parameters(f"Unknown operator: {condition.get('operator')}")
    if data.get("logic") and data["logic"] not in ("AND", "OR"):
        raise missing_parameters("logic must be AND or OR")
    if data.get("priority") and data["priority"] not in PRIORITIES:
        raise missing_parameters(f"Unknown priority: {data['priority']}")


class AlertRuleService:
    """CRUD for server-side alert rules and the delivery settings row"""

    def __init__(self, db: Session):
        self.db = db

    def list_rules(self) -> List[Dict[str, Any]]:
        return [rule.to_dict() for rule in self.db.query(AlertRule).order_by(AlertRule.id).all()]

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error {action}: {e}")
            raise

    def create_rule(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("symbol") and not data.get("symbols"):
            raise missing_parameters("symbol or symbols required")
        if not data.get("conditions"):
            raise missing_parameters("At least one condition required")
        validate_rule(data)
        rule = AlertRule(symbols=[], conditions=[], logic="AND", priority="medium", active=True)
        for key, column in _RULE_FIELDS.items():
            if data.get(key) is not None:
                setattr(rule, column, data[key])
        self.db.add(rule)
        self._commit("creating alert rule")
        self.db.refresh(rule)
        logger.info(f"Created alert rule {rule.id} for {rule.symbol or rule.symbols}")
        return rule.to_dict()

    def get_rule(self, rule_id: int) -> AlertRule:
        rule = self.db.get(AlertRule, rule_id)
        if rule is None:
            raise ApiError("Alert rule not found", ApiErrorCode.NOT_FOUND)
        return rule

    def update_rule(self, rule_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        validate_rule(data)
        rule = self.get_rule(rule_id)
        for key, column in _RULE_FIELDS.items():
            if key in data:
                setattr(rule, column, data[key])
        self._commit(f"updating alert rule {rule_id}")
        self.db.refresh(rule)
        return rule.to_dict()

    def delete_rule(self, rule_id: int):
        rule = self.get_rule(rule_id)
        self.db.delete(rule)
        self._commit(f"deleting alert rule {rule_id}")

    def get_settings_row(self) -> AlertSettings:
        row = self.db.query(AlertSettings).order_by(AlertSettings.id).first()
        if row is None:
            row = AlertSettings(discord_enabled=False, telegram_enabled=False, telegram_silent=False)
            self.db.add(row)
            self._commit("creating alert settings")
            self.db.refresh(row)
        return row

    def get_settings(self) -> Dict[str, Any]:
        return self.get_settings_row().to_dict()

    def update_settings(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = self.get_settings_row()
        for key, column in _SETTINGS_FIELDS.items():
            if key in data:
                setattr(row, column, data[key])
        self._commit("updating alert settings")
        self.db.refresh(row)
        return row.to_dict()


def get_alert_rule_service(db: Session = Depends(get_db)) -> AlertRuleService:
    return AlertRuleService(db)
