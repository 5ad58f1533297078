from __future__ import annotations

from types import SimpleNamespace

from app.services.internal_auth import (
    evaluate_internal_access,
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
    is_valid_internal_token,
)


def _request(*, headers: dict[str, str] | None = None, host: str | None = "127.0.0.1") -> SimpleNamespace:
    client = SimpleNamespace(host=host) if host is not None else None
    return SimpleNamespace(headers=headers or {}, client=client)


def test_is_valid_internal_token_requires_exact_match() -> None:
    assert is_valid_internal_token(expected_token="secret", received_token="secret") is True
    assert is_valid_internal_token(expected_token="secret", received_token="wrong") is False
    assert is_valid_internal_token(expected_token="secret", received_token=None) is False
    assert is_valid_internal_token(expected_token="", received_token="") is False


def test_is_internal_request_authenticated_reads_token_header() -> None:
    assert is_internal_request_authenticated(_request(headers={"X-Internal-Token": "secret"}), expected_token="secret")
    assert not is_internal_request_authenticated(_request(), expected_token="secret")


def test_is_client_ip_allowed_supports_exact_ip_and_cidr() -> None:
    allowlist = "127.0.0.1,10.0.0.0/8, not-a-network"
    assert is_client_ip_allowed(client_ip="127.0.0.1", allowlist=allowlist) is True
    assert is_client_ip_allowed(client_ip="10.12.33.1", allowlist=allowlist) is True
    assert is_client_ip_allowed(client_ip="192.168.1.5", allowlist=allowlist) is False
    assert is_client_ip_allowed(client_ip="testclient", allowlist=allowlist) is False
    assert is_client_ip_allowed(client_ip="127.0.0.1", allowlist="") is False


def test_extract_client_ip_uses_forwarded_header_only_for_trusted_proxy() -> None:
    request = _request(headers={"X-Forwarded-For": "10.1.1.8, 127.0.0.1"})
    assert extract_client_ip(request, trusted_proxies="127.0.0.1/32") == "10.1.1.8"


def test_extract_client_ip_ignores_forwarded_header_for_untrusted_proxy() -> None:
    request = _request(headers={"X-Forwarded-For": "10.1.1.8, 127.0.0.1"}, host="198.51.100.10")
    assert extract_client_ip(request, trusted_proxies="127.0.0.1/32") == "198.51.100.10"


def test_extract_client_ip_rejects_invalid_forwarded_header_for_trusted_proxy() -> None:
    request = _request(headers={"X-Forwarded-For": "not-an-ip, 127.0.0.1"})
    assert extract_client_ip(request, trusted_proxies="127.0.0.1/32") is None


def test_extract_client_ip_supports_ipv6_forwarded_header() -> None:
    request = _request(headers={"X-Forwarded-For": "2001:db8::10, 127.0.0.1"})
    assert extract_client_ip(request, trusted_proxies="127.0.0.1/32") == "2001:db8::10"


def test_extract_client_ip_falls_back_to_client_host() -> None:
    assert extract_client_ip(_request()) == "127.0.0.1"
    assert extract_client_ip(_request(host=None)) is None


def test_evaluate_internal_access_checks_ip_before_token() -> None:
    denied_ip = evaluate_internal_access(
        _request(headers={"X-Internal-Token": "secret"}, host="203.0.113.9"),
        expected_token="secret",
        allowlist="127.0.0.1/32",
    )
    assert denied_ip.allowed is False
    assert denied_ip.reason == "ip_not_allowed"
    assert denied_ip.client_ip == "203.0.113.9"

    denied_token = evaluate_internal_access(
        _request(headers={"X-Internal-Token": "wrong"}),
        expected_token="secret",
        allowlist="127.0.0.1/32",
    )
    assert denied_token.reason == "invalid_credentials"

    allowed = evaluate_internal_access(
        _request(headers={"X-Internal-Token": "secret"}),
        expected_token="secret",
        allowlist="127.0.0.1/32",
    )
    assert allowed.allowed is True
    assert allowed.reason is None
