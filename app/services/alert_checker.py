"""
Server-side screener alerts.

Active :class:`AlertRule` rows are evaluated against Binance 24h USDT
tickers; triggered rules are delivered through the configured Discord and
Telegram channels so alerts fire even when no client is open.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.models.alert import AlertRule
from app.services.alert_rule_service import AlertRuleService
from app.services.alert_service import AlertService
from app.services.http_client import managed_client
from app.services.normalization import now_ms, to_float

BINANCE_TICKER_URL = "https://api.binance.com/api/v3/ticker/24hr"
ALERT_TITLE = "Screener Alert"


async def fetch_binance_tickers(http_client: Optional[httpx.AsyncClient] = None) -> Dict[str, Dict[str, Any]]:
    """``{"prices": {BASE: price}, "metrics": {BASE: {price, change24h, volume24h}}}`` for USDT pairs."""
    async with managed_client(http_client) as client:
        response = await client.get(BINANCE_TICKER_URL)
    response.raise_for_status()

    prices: Dict[str, float] = {}
    metrics: Dict[str, Dict[str, float]] = {}
    for row in response.json():
        symbol = row.get("symbol") or ""
        if not symbol.endswith("USDT"):
            continue
        base = symbol.replace("USDT", "", 1)
        price = to_float(row.get("lastPrice"))
        prices[base] = price
        metrics[base] = {
            "price": price,
            "change24h": to_float(row.get("priceChangePercent")),
            "volume24h": to_float(row.get("volume")),
        }
    return {"prices": prices, "metrics": metrics}


def evaluate_condition(condition: Dict[str, Any], price: float, metric: Optional[Dict[str, float]]) -> bool:
    condition_type = condition.get("type")
    target = to_float(condition.get("target"))
    operator = condition.get("operator") or "gt"

    if condition_type == "price_above":
        return price >= target
    if condition_type == "price_below":
        return price <= target
    if not metric:
        return False
    # short-window changes are approximated by the 24h change
    if condition_type in ("chg_5m", "chg_15m"):
        value = metric.get("change24h") or 0.0
        if operator == "gt":
            return value >= target
        if operator == "lt":
            return value <= target
        low = to_float(condition.get("targetMin"), -999.0)
        high = to_float(condition.get("targetMax"), 999.0)
        return value < low or value > high
    if condition_type == "rvol" and metric.get("volume24h") is not None:
        return metric["volume24h"] >= target
    return False


def evaluate_alert(rule: Dict[str, Any], prices: Dict[str, float],
                   metrics: Dict[str, Dict[str, float]]) -> Dict[str, Any]:
    """Return the first symbol that satisfies the rule, if any."""
    conditions = rule.get("conditions") or []
    if not rule.get("active") or not conditions:
        return {"triggered": False}

    if rule.get("symbols"):
        targets = [s.replace("USDT", "", 1) for s in rule["symbols"]]
    elif rule.get("symbol") == "GLOBAL":
        targets = list(prices.keys())
    else:
        targets = [rule.get("symbol")]

    for symbol in targets:
        price = prices.get(symbol)
        if price is None:
            continue
        results = [evaluate_condition(c, price, metrics.get(symbol)) for c in conditions]
        triggered = all(results) if rule.get("logic") == "AND" else any(results)
        if triggered:
            if rule.get("symbol") == "GLOBAL":
                message = f"Global Alert ({symbol}) triggered!"
            else:
                message = f"{rule.get('symbol') or symbol} triggered!"
            return {"triggered": True, "symbol": symbol, "message": message, "price": price}
    return {"triggered": False}


def is_throttled(rule: AlertRule, now: int) -> bool:
    cooldown = rule.cooldown_seconds if rule.cooldown_seconds is not None else settings.alert_cooldown_seconds
    return bool(rule.last_triggered_at) and now - rule.last_triggered_at < cooldown * 1000


class AlertChecker:
    """Evaluates every active rule once per run and delivers the hits"""

    def __init__(self, alert_service: Optional[AlertService] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client
        self.alert_service = alert_service or AlertService(http_client)

    async def run_check(self, db: Optional[Session] = None) -> Dict[str, Any]:
        owns_session = db is None
        db = db or SessionLocal()
        try:
            return await self._check(db)
        finally:
            if owns_session:
                db.close()

    async def _check(self, db: Session) -> Dict[str, Any]:
        service = AlertRuleService(db)
        delivery = service.get_settings_row()
        rules = db.query(AlertRule).filter(AlertRule.active.is_(True)).all()
        summary: Dict[str, Any] = {"checked": len(rules), "triggered": [], "delivered": 0, "errors": []}
        if not rules:
            return summary
        if not delivery.discord_enabled and not delivery.telegram_enabled:
            logger.debug("Alert check skipped: no delivery channel enabled")
            return summary

        tickers = await fetch_binance_tickers(self.http_client)
        now = now_ms()

        for rule in rules:
            if is_throttled(rule, now):
                continue
            result = evaluate_alert(rule.to_dict(), tickers["prices"], tickers["metrics"])
            if not result["triggered"]:
                continue

            rule.last_triggered_at = now
            summary["triggered"].append({"ruleId": rule.id, "symbol": result["symbol"], "price": result["price"]})
            payload = {
                "title": ALERT_TITLE,
                "message": result["message"],
                "priority": rule.priority or "high",
                "symbol": result["symbol"],
                "value": result["price"],
            }

            outcomes: List[Dict[str, Any]] = []
            if delivery.discord_enabled and delivery.discord_webhook_url:
                outcomes.append(await self.alert_service.send_discord({
                    **payload,
                    "webhookUrl": delivery.discord_webhook_url,
                    "mentionRole": delivery.discord_mention_role if delivery.discord_mention_on_critical else None,
                }))
            if delivery.telegram_enabled and delivery.telegram_bot_token and delivery.telegram_chat_id:
                outcomes.append(await self.alert_service.send_telegram({
                    **payload,
                    "botToken": delivery.telegram_bot_token,
                    "chatId": delivery.telegram_chat_id,
                    "silent": delivery.telegram_silent,
                }))
            for outcome in outcomes:
                if outcome["success"]:
                    summary["delivered"] += 1
                else:
                    logger.warning(f"Alert rule {rule.id} delivery failed: {outcome['error']}")
                    summary["errors"].append(outcome["error"])

        db.commit()
        if summary["triggered"]:
            logger.info(f"Alert check: {len(summary['triggered'])} triggered, {summary['delivered']} delivered")
        return summary


alert_checker = AlertChecker()
