from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.alerts import AlertPayload, AlertRuleIn, AlertSettingsIn
from app.schemas.base import to_wire
from app.services.alert_checker import alert_checker
from app.services.alert_rule_service import AlertRuleService, get_alert_rule_service
from app.services.alert_service import AlertService, get_alert_service

router = APIRouter()


@router.post("/alerts/send")
async def send_alert(body: AlertPayload, alerts: AlertService = Depends(get_alert_service)):
    """Deliver an alert through Discord or Telegram"""
    return await alerts.send(to_wire(body))


@router.post("/alerts/test")
async def test_alert(body: AlertPayload, alerts: AlertService = Depends(get_alert_service)):
    """Send a test message to check a channel configuration"""
    return await alerts.test(to_wire(body))


@router.post("/integrations/health")
async def integration_health(body: AlertPayload, alerts: AlertService = Depends(get_alert_service)):
    """Check that a Discord webhook or Telegram bot is reachable"""
    return await alerts.health(to_wire(body))


@router.get("/alerts/rules")
def list_alert_rules(rules: AlertRuleService = Depends(get_alert_rule_service)):
    """List server-side alert rules"""
    return {"rules": rules.list_rules()}


@router.post("/alerts/rules", status_code=201)
def create_alert_rule(body: AlertRuleIn, rules: AlertRuleService = Depends(get_alert_rule_service)):
    """Create an alert rule"""
    return rules.create_rule(to_wire(body))


@router.put("/alerts/rules/{rule_id}")
def update_alert_rule(rule_id: int, body: AlertRuleIn, rules: AlertRuleService = Depends(get_alert_rule_service)):
    """Update an alert rule"""
    return rules.update_rule(rule_id, to_wire(body))


@router.delete("/alerts/rules/{rule_id}")
def delete_alert_rule(rule_id: int, rules: AlertRuleService = Depends(get_alert_rule_service)):
    """Delete an alert rule"""
    rules.delete_rule(rule_id)
    return {"success": True}


@router.get("/alerts/settings")
def get_alert_settings(rules: AlertRuleService = Depends(get_alert_rule_service)):
    """Delivery channels used by the alert checker"""
    return rules.get_settings()


@router.put("/alerts/settings")
def update_alert_settings(body: AlertSettingsIn, rules: AlertRuleService = Depends(get_alert_rule_service)):
    """Update delivery channels"""
    return rules.update_settings(to_wire(body))


@router.post("/alerts/check")
async def run_alert_check(db: Session = Depends(get_db)):
    """Evaluate all active rules now"""
    try:
        return await alert_checker.run_check(db)
    except Exception as e:
        logger.error(f"Manual alert check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Alert check failed: {str(e)}")
