from __future__ import annotations

from datetime import datetime


class EntitlementError(Exception):
    pass


class EntitlementLimitError(EntitlementError):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        tier: str,
        limit: int,
        current: int,
        resets_at: datetime | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.tier = tier
        self.limit = limit
        self.current = current
        self.resets_at = resets_at

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "tier": self.tier,
            "limit": self.limit,
            "current": self.current,
        }
        if self.resets_at is not None:
            payload["resets_at"] = self.resets_at.isoformat()
        return payload
