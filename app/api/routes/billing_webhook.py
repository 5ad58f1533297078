from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.alerts import send_ops_alert
from app.services.billing_reconciliation import is_valid_billing_secret, reconcile_billing_event

router = APIRouter(tags=["billing"])
logger = structlog.get_logger(__name__)
BILLING_SECRET_HEADER = "X-Billing-Webhook-Secret"


@router.post("/webhooks/billing")
async def billing_webhook(request: Request) -> JSONResponse:
    settings = get_settings()
    if not is_valid_billing_secret(
        expected_secret=settings.billing_webhook_secret,
        received_secret=request.headers.get(BILLING_SECRET_HEADER),
    ):
        logger.warning("billing_webhook_invalid_secret")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "invalid_signature"},
        )

    try:
        payload = await request.json()
    except Exception:
        logger.warning("billing_webhook_invalid_json")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "invalid_payload"},
        )
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        logger.warning("billing_webhook_missing_type")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "invalid_payload"},
        )

    event_type = payload["type"]
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await reconcile_billing_event(session, payload=payload, now_utc=now_utc)
    except ValidationError as exc:
        logger.warning(
            "billing_webhook_invalid_event",
            event_type=event_type,
            errors=exc.error_count(),
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "invalid_payload"},
        )
    except Exception as exc:
        logger.exception("billing_webhook_processing_failed", event_type=event_type)
        await send_ops_alert(
            event="billing_webhook_processing_failed",
            payload={"event_type": event_type, "error_type": type(exc).__name__},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error"},
        )

    content: dict[str, object] = {
        "status": "processed" if result.entitlement.handled else "ignored",
        "event_type": event_type,
    }
    if result.entitlement.reason is not None:
        content["reason"] = result.entitlement.reason
    if result.conversion is not None:
        content["referral"] = {
            "processed": result.conversion.processed,
            "rewarded": result.conversion.rewarded,
            "reason": result.conversion.reason,
        }
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)
