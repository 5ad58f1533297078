from __future__ import annotations

import ipaddress
import secrets
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Request

INTERNAL_TOKEN_HEADER = "X-Internal-Token"

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(frozen=True, slots=True)
class InternalAccessDecision:
    allowed: bool
    client_ip: str | None
    reason: str | None = None


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


def is_internal_request_authenticated(request: Request, *, expected_token: str) -> bool:
    return is_valid_internal_token(
        expected_token=expected_token,
        received_token=request.headers.get(INTERNAL_TOKEN_HEADER),
    )


@lru_cache(maxsize=32)
def _parse_networks(raw_networks: str) -> tuple[IpNetwork, ...]:
    networks: list[IpNetwork] = []
    for raw_entry in raw_networks.split(","):
        entry = raw_entry.strip()
        if not entry:
            continue
        try:
            # A bare address becomes a single-host network.
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def _parse_ip(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def extract_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    """Return the caller address, trusting X-Forwarded-For only behind a known proxy."""
    client_host = _parse_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and is_client_ip_allowed(client_ip=client_host, allowlist=trusted_proxies):
        return _parse_ip(forwarded_for.split(",", maxsplit=1)[0])
    return client_host


def is_client_ip_allowed(*, client_ip: str | None, allowlist: str) -> bool:
    if client_ip is None:
        return False
    try:
        parsed_ip = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(parsed_ip in network for network in _parse_networks(allowlist))


def evaluate_internal_access(
    request: Request,
    *,
    expected_token: str,
    allowlist: str,
    trusted_proxies: str = "",
) -> InternalAccessDecision:
    client_ip = extract_client_ip(request, trusted_proxies=trusted_proxies)
    if not is_client_ip_allowed(client_ip=client_ip, allowlist=allowlist):
        return InternalAccessDecision(allowed=False, client_ip=client_ip, reason="ip_not_allowed")
    if not is_internal_request_authenticated(request, expected_token=expected_token):
        return InternalAccessDecision(allowed=False, client_ip=client_ip, reason="invalid_credentials")
    return InternalAccessDecision(allowed=True, client_ip=client_ip)
