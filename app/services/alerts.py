from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

SLACK_COLORS = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}


@dataclass(frozen=True)
class AlertRule:
    severity: str
    channels: tuple[str, ...] = ("generic",)
    summary_keys: tuple[str, ...] = ()


FALLBACK_RULE = AlertRule(severity="warning")
ALERT_RULES: dict[str, AlertRule] = {
    "referral_reward_escalated": AlertRule(
        severity="error",
        channels=("slack", "generic"),
        summary_keys=("escalated", "failed_reward_ids"),
    ),
    "referral_reward_retry_errors": AlertRule(
        severity="warning",
        channels=("slack", "generic"),
        summary_keys=("errors", "examined"),
    ),
    "referral_expiry_backlog": AlertRule(
        severity="warning",
        summary_keys=("expired", "rounds"),
    ),
    "billing_webhook_processing_failed": AlertRule(
        severity="critical",
        channels=("slack", "generic"),
        summary_keys=("event_type", "error_type"),
    ),
}


@dataclass(frozen=True)
class OpsAlert:
    event: str
    rule: AlertRule
    env: str
    sent_at: datetime
    payload: dict[str, object] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        parts = [f"{key}={self.payload[key]}" for key in self.rule.summary_keys if key in self.payload]
        headline = f"[{self.rule.severity.upper()}] {self.event}"
        return f"{headline} ({', '.join(parts)})" if parts else headline

    def webhook_body(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "severity": self.rule.severity,
            "env": self.env,
            "sent_at": self.sent_at.isoformat(),
            "summary": self.summary,
            "payload": self.payload,
        }

    def slack_body(self) -> dict[str, Any]:
        details = json.dumps(self.payload, sort_keys=True, separators=(",", ":"), default=str)
        return {
            "text": self.summary,
            "attachments": [
                {
                    "color": SLACK_COLORS.get(self.rule.severity, SLACK_COLORS["warning"]),
                    "fields": [
                        {"title": "Environment", "value": self.env, "short": True},
                        {"title": "Sent At", "value": self.sent_at.isoformat(), "short": True},
                        {"title": "Details", "value": details, "short": False},
                    ],
                }
            ],
        }

    def body_for(self, channel: str) -> dict[str, Any]:
        if channel == "slack":
            return self.slack_body()
        return self.webhook_body()


def _setting_text(settings: object, attr: str) -> str:
    value = getattr(settings, attr, "")
    return value.strip() if isinstance(value, str) else ""


def delivery_targets(*, rule: AlertRule, settings: object) -> list[tuple[str, str]]:
    """Returns (channel, url) pairs in rule order, skipping unconfigured channels.

    Falls back to the generic webhook when none of the rule's channels is configured.
    """
    urls = {
        "generic": _setting_text(settings, "ops_alert_webhook_url"),
        "slack": _setting_text(settings, "ops_alert_slack_webhook_url"),
    }
    targets = [(channel, urls[channel]) for channel in rule.channels if urls.get(channel)]
    if not targets and urls["generic"]:
        targets.append(("generic", urls["generic"]))
    return targets


async def _deliver(client: httpx.AsyncClient, *, alert: OpsAlert, channel: str, url: str) -> bool:
    try:
        response = await client.post(url, json=alert.body_for(channel))
        response.raise_for_status()
    except Exception:
        logger.exception("ops_alert_delivery_failed", alert_event=alert.event, provider=channel)
        return False
    return True


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    rule = ALERT_RULES.get(event, FALLBACK_RULE)
    targets = delivery_targets(rule=rule, settings=settings)
    if not targets:
        logger.warning("ops_alert_not_configured", alert_event=event)
        return False

    alert = OpsAlert(
        event=event,
        rule=rule,
        env=_setting_text(settings, "app_env") or "dev",
        sent_at=datetime.now(timezone.utc),
        payload=payload,
    )
    delivered_to: list[str] = []
    async with httpx.AsyncClient(timeout=5.0) as client:
        for channel, url in targets:
            if await _deliver(client, alert=alert, channel=channel, url=url):
                delivered_to.append(channel)

    if not delivered_to:
        logger.error("ops_alert_delivery_exhausted", alert_event=event, severity=rule.severity)
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=rule.severity,
        delivered_to=delivered_to,
    )
    return True
