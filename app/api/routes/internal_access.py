from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from app.services.internal_auth import evaluate_internal_access

logger = structlog.get_logger(__name__)


def assert_internal_access(request: Request, *, settings: object, scope: str) -> None:
    decision = evaluate_internal_access(
        request,
        expected_token=getattr(settings, "internal_api_token", ""),
        allowlist=getattr(settings, "internal_api_allowlist", ""),
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )
    if decision.allowed:
        return

    logger.warning(
        "internal_api_auth_failed",
        scope=scope,
        reason=decision.reason,
        client_ip=decision.client_ip,
    )
    raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
