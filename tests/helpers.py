from __future__ import annotations

from types import SimpleNamespace
from typing import Any


class DummyTransaction:
    def __init__(self, session: DummySession) -> None:
        self._session = session

    async def __aenter__(self) -> DummySession:
        return self._session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._session.rollbacks += 1
        return False


class DummySession:
    """Stands in for AsyncSession where repositories and services are monkeypatched."""

    def __init__(self) -> None:
        self.savepoints = 0
        self.rollbacks = 0

    def begin_nested(self) -> DummyTransaction:
        self.savepoints += 1
        return DummyTransaction(self)


class DummySessionLocal:
    def __init__(self) -> None:
        self.sessions: list[DummySession] = []

    def begin(self) -> DummyTransaction:
        session = DummySession()
        self.sessions.append(session)
        return DummyTransaction(session)


def internal_settings(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "internal_api_token": "internal-secret",
        "internal_api_allowlist": "127.0.0.1/32",
        "internal_api_trusted_proxies": "",
    }
    values.update(overrides)
    return SimpleNamespace(**values)
