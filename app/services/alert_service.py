"""
Discord and Telegram alert delivery.

Delivery helpers return ``{"success": bool, "error": str}`` instead of
raising so callers (routes, the scheduled checker) decide how a failed
delivery surfaces.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from app.core.errors import ApiError, missing_parameters
from app.services.http_client import managed_client

TELEGRAM_API = "https://api.telegram.org"
HEALTH_TIMEOUT_SECONDS = 6.0
FOOTER_TEXT = "Trade Marathon® Alert System"

PRIORITY_COLORS = {
    "low": 0x71717A,
    "medium": 0x3B82F6,
    "high": 0xF59E0B,
    "critical": 0xEF4444,
}
PRIORITY_EMOJI = {"low": "ℹ️", "medium": "🔔", "high": "⚠️", "critical": "🚨"}
TEST_SUCCESS_COLOR = 0x10B981

ALERT_TYPES = ("discord", "telegram")


def format_usd(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return "$" + f"{value:,.3f}".rstrip("0").rstrip(".")
    return str(value)


def build_discord_embed(payload: Dict[str, Any]) -> Dict[str, Any]:
    priority = payload.get("priority") or "medium"
    fields = []
    if payload.get("symbol"):
        fields.append({"name": "Symbol", "value": payload["symbol"], "inline": True})
    if payload.get("value") is not None:
        fields.append({"name": "Value", "value": format_usd(payload["value"]), "inline": True})
    fields.append({"name": "Priority", "value": priority.upper(), "inline": True})
    return {
        "title": payload.get("title") or "🔔 Portfolio Alert",
        "description": payload.get("message"),
        "color": PRIORITY_COLORS.get(priority, PRIORITY_COLORS["medium"]),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "footer": {"text": FOOTER_TEXT},
        "fields": fields,
    }


def build_telegram_text(payload: Dict[str, Any]) -> str:
    priority = payload.get("priority") or "medium"
    text = f"{PRIORITY_EMOJI.get(priority, '🔔')} *{payload.get('title') or 'Portfolio Alert'}*\n\n{payload.get('message')}"
    if payload.get("symbol"):
        text += f"\n\n📊 *Symbol:* `{payload['symbol']}`"
    if payload.get("value") is not None:
        text += f"\n💰 *Value:* {format_usd(payload['value'])}"
    text += f"\n\n_Priority: {priority.upper()}_"
    return text


class AlertService:
    """Sends, tests and health-checks notification channels"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    async def send_discord(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        webhook_url = payload.get("webhookUrl")
        if not webhook_url:
            return {"success": False, "error": "Discord webhook URL not provided"}
        body: Dict[str, Any] = {"embeds": [build_discord_embed(payload)]}
        if payload.get("priority") == "critical" and payload.get("mentionRole"):
            body["content"] = f"<@&{payload['mentionRole']}> 🚨 **CRITICAL ALERT**"
        try:
            async with managed_client(self.http_client) as client:
                response = await client.post(webhook_url, json=body)
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e) or "Failed to send Discord webhook"}
        if response.status_code >= 400:
            return {"success": False, "error": f"Discord API error: {response.status_code} - {response.text}"}
        return {"success": True}

    async def send_telegram(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        bot_token, chat_id = payload.get("botToken"), payload.get("chatId")
        if not bot_token or not chat_id:
            return {"success": False, "error": "Telegram bot token or chat ID not provided"}
        body = {
            "chat_id": chat_id,
            "text": build_telegram_text(payload),
            "parse_mode": "Markdown",
            "disable_notification": bool(payload.get("silent")),
        }
        try:
            async with managed_client(self.http_client) as client:
                response = await client.post(f"{TELEGRAM_API}/bot{bot_token}/sendMessage", json=body)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"success": False, "error": str(e) or "Failed to send Telegram message"}
        if not data.get("ok"):
            return {"success": False, "error": f"Telegram API error: {data.get('description')}"}
        return {"success": True}

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not payload.get("type"):
            raise missing_parameters("Alert type required")
        if not payload.get("message"):
            raise missing_parameters("Message required")
        if payload["type"] == "discord":
            result = await self.send_discord(payload)
        elif payload["type"] == "telegram":
            result = await self.send_telegram(payload)
        else:
            raise missing_parameters("Invalid alert type")
        if not result["success"]:
            logger.error(f"Alert delivery via {payload['type']} failed: {result['error']}")
            raise ApiError(result["error"])
        return {"success": True}

    async def test_discord(self, webhook_url: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        embed = {
            "title": "✅ Connection Test Successful",
            "description": "Your Discord webhook is configured correctly!",
            "color": TEST_SUCCESS_COLOR,
            "timestamp": now.isoformat(),
            "footer": {"text": FOOTER_TEXT},
            "fields": [
                {"name": "Status", "value": "Ready to receive alerts", "inline": True},
                {"name": "Test Time", "value": now.strftime("%Y-%m-%d %H:%M:%S UTC"), "inline": True},
            ],
        }
        try:
            async with managed_client(self.http_client) as client:
                response = await client.post(
                    webhook_url, json={"content": "🔔 **Trade Marathon® Alert Test**", "embeds": [embed]}
                )
        except httpx.TransportError:
            return {"success": False, "error": "Could not reach Discord. Check your internet connection."}
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e) or "Failed to test Discord webhook"}
        if response.status_code in (401, 404):
            return {"success": False, "error": "Invalid webhook URL. Please check and try again."}
        if response.status_code >= 400:
            return {"success": False, "error": f"Discord error: {response.status_code} - {response.text}"}
        return {"success": True}

    async def test_telegram(self, bot_token: str, chat_id: str) -> Dict[str, Any]:
        try:
            async with managed_client(self.http_client) as client:
                me = (await client.get(f"{TELEGRAM_API}/bot{bot_token}/getMe")).json()
                if not me.get("ok"):
                    return {"success": False, "error": "Invalid bot token. Please check and try again."}
                bot_name = (me.get("result") or {}).get("username")
                message = "\n".join([
                    "✅ *Connection Test Successful*",
                    "",
                    f"Your Telegram bot (@{bot_name}) is configured correctly!",
                    "",
                    "📊 *Status:* Ready to receive alerts",
                    f"🕐 *Test Time:* {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}",
                    "",
                    "_Trade Marathon® Alert System_",
                ])
                data = (await client.post(
                    f"{TELEGRAM_API}/bot{bot_token}/sendMessage",
                    json={"chat_id": chat_id, "text": message, "parse_mode": "Markdown"},
                )).json()
        except httpx.TransportError:
            return {"success": False, "error": "Could not reach Telegram. Check your internet connection."}
        except (httpx.HTTPError, ValueError) as e:
            return {"success": False, "error": str(e) or "Failed to test Telegram bot"}

        if not data.get("ok"):
            description = data.get("description") or ""
            if "chat not found" in description:
                return {"success": False, "error": "Chat not found. Make sure you've started a conversation with the bot first."}
            if "bot was blocked" in description:
                return {"success": False, "error": "Bot was blocked by the user. Please unblock the bot first."}
            return {"success": False, "error": f"Telegram error: {description}"}
        return {"success": True}

    async def test(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        alert_type = payload.get("type")
        if not alert_type:
            raise missing_parameters("Type required (discord or telegram)")
        if alert_type == "discord":
            if not payload.get("webhookUrl"):
                raise missing_parameters("Webhook URL required")
            result = await self.test_discord(payload["webhookUrl"])
        elif alert_type == "telegram":
            if not payload.get("botToken") or not payload.get("chatId"):
                raise missing_parameters("Bot token and chat ID required")
            result = await self.test_telegram(payload["botToken"], payload["chatId"])
        else:
            raise missing_parameters("Invalid type")
        return result if not result["success"] else {"success": True}

    async def _health_get(self, url: str, params: Optional[Dict[str, Any]] = None):
        async with managed_client(self.http_client, timeout=HEALTH_TIMEOUT_SECONDS) as client:
            return await client.get(url, params=params, timeout=HEALTH_TIMEOUT_SECONDS)

    async def check_discord(self, webhook_url: str) -> Dict[str, Any]:
        url = (webhook_url or "").strip()
        if not url:
            return {"healthy": False, "latencyMs": 0, "error": "Discord webhook URL is missing."}
        started = time.monotonic()
        try:
            response = await self._health_get(url)
        except httpx.HTTPError as e:
            return {"healthy": False, "latencyMs": _elapsed_ms(started), "error": str(e) or "Discord webhook check failed."}
        if response.status_code >= 400:
            return {
                "healthy": False,
                "statusCode": response.status_code,
                "latencyMs": _elapsed_ms(started),
                "error": f"Discord webhook check failed ({response.status_code}).",
            }
        return {"healthy": True, "statusCode": response.status_code, "latencyMs": _elapsed_ms(started),
                "detail": "Webhook reachable."}

    async def check_telegram(self, bot_token: str, chat_id: Optional[str] = None) -> Dict[str, Any]:
        token = (bot_token or "").strip()
        chat = (chat_id or "").strip()
        if not token:
            return {"healthy": False, "latencyMs": 0, "error": "Telegram bot token is missing."}

        started = time.monotonic()
        try:
            me_response = await self._health_get(f"{TELEGRAM_API}/bot{token}/getMe")
            me = _json_or_empty(me_response)
            if me_response.status_code >= 400 or me.get("ok") is not True:
                return {
                    "healthy": False,
                    "statusCode": me_response.status_code,
                    "latencyMs": _elapsed_ms(started),
                    "error": me.get("description") or f"Telegram token check failed ({me_response.status_code}).",
                }
            if not chat:
                return {"healthy": True, "statusCode": me_response.status_code, "latencyMs": _elapsed_ms(started),
                        "detail": "Bot token valid. Add Chat ID for full routing checks."}

            chat_response = await self._health_get(f"{TELEGRAM_API}/bot{token}/getChat", {"chat_id": chat})
            chat_data = _json_or_empty(chat_response)
            if chat_response.status_code >= 400 or chat_data.get("ok") is not True:
                return {
                    "healthy": False,
                    "statusCode": chat_response.status_code,
                    "latencyMs": _elapsed_ms(started),
                    "error": chat_data.get("description") or f"Telegram chat check failed ({chat_response.status_code}).",
                }
            return {"healthy": True, "statusCode": chat_response.status_code, "latencyMs": _elapsed_ms(started),
                    "detail": "Bot token and Chat ID validated."}
        except httpx.HTTPError as e:
            return {"healthy": False, "latencyMs": _elapsed_ms(started), "error": str(e) or "Telegram health check failed."}

    async def health(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        integration = payload.get("type")
        if integration not in ALERT_TYPES:
            raise ApiError("type must be discord or telegram", status_code=400, extra={"ok": False})
        if integration == "discord":
            result = await self.check_discord(payload.get("webhookUrl") or "")
        else:
            result = await self.check_telegram(payload.get("botToken") or "", payload.get("chatId") or "")
        return {"ok": True, "integration": integration, **result}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_alert_service() -> AlertService:
    return AlertService()
