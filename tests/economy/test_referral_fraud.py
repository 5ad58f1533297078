from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.economy.referrals import fraud

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_hash_fingerprint_is_peppered_and_skips_empty_values() -> None:
    first = fraud.hash_fingerprint("203.0.113.7", pepper="pepper-a")
    assert first is not None
    assert len(first) == 64
    assert fraud.hash_fingerprint(" 203.0.113.7 ", pepper="pepper-a") == first
    assert fraud.hash_fingerprint("203.0.113.7", pepper="pepper-b") != first
    assert fraud.hash_fingerprint("   ", pepper="pepper-a") is None
    assert fraud.hash_fingerprint(None, pepper="pepper-a") is None


async def test_self_referral_without_fingerprints_skips_lookup(monkeypatch) -> None:
    async def fail_lookup(*args, **kwargs):
        raise AssertionError("lookup should not run")

    monkeypatch.setattr(fraud.ReferralsRepo, "list_fingerprint_matches", fail_lookup)

    result = await fraud.check_self_referral(object(), referrer_user_id=1, ip_hash=None, device_hash=None)
    assert result.suspicious is False


@pytest.mark.parametrize(
    ("matches", "expected_reason"),
    [
        ([SimpleNamespace(signup_ip_hash="ip-1", signup_device_hash="dev-x")], "ip_match_existing_referral"),
        ([SimpleNamespace(signup_ip_hash="ip-x", signup_device_hash="dev-1")], "device_match_existing_referral"),
        ([], None),
    ],
)
async def test_self_referral_matches_prior_referrals(monkeypatch, matches, expected_reason) -> None:
    async def fake_lookup(session, *, referrer_user_id: int, ip_hash, device_hash):
        assert referrer_user_id == 7
        return matches

    monkeypatch.setattr(fraud.ReferralsRepo, "list_fingerprint_matches", fake_lookup)

    result = await fraud.check_self_referral(object(), referrer_user_id=7, ip_hash="ip-1", device_hash="dev-1")
    assert result.suspicious is (expected_reason is not None)
    assert result.reason == expected_reason


@pytest.mark.parametrize(
    ("signal_type", "count", "blocked"),
    [
        ("ip_signup", 3, False),
        ("ip_signup", 4, True),
        ("device_signup", 2, False),
        ("device_signup", 3, True),
    ],
)
async def test_velocity_blocks_above_limit(monkeypatch, signal_type: str, count: int, blocked: bool) -> None:
    captured: dict[str, object] = {}

    async def fake_bump(session, *, identifier, signal_type, window_start_utc, now_utc) -> int:
        captured["window_start_utc"] = window_start_utc
        return count

    monkeypatch.setattr(fraud.FraudSignalsRepo, "bump_counter", fake_bump)

    result = await fraud.check_and_update_velocity(
        object(),
        identifier="hash",
        signal_type=signal_type,
        now_utc=NOW,
    )
    assert result.blocked is blocked
    assert result.count == count
    assert captured["window_start_utc"] == NOW - timedelta(days=7)


async def test_velocity_rejects_unknown_signal_type() -> None:
    with pytest.raises(ValueError):
        await fraud.check_and_update_velocity(object(), identifier="x", signal_type="email", now_utc=NOW)


@pytest.mark.parametrize(
    ("hour_count", "day_count", "reason"),
    [
        (9, 49, None),
        (10, 10, "hourly_limit_exceeded"),
        (2, 50, "daily_limit_exceeded"),
    ],
)
async def test_code_velocity_windows(monkeypatch, hour_count: int, day_count: int, reason) -> None:
    async def fake_count(session, *, referral_code_id: int, since_utc: datetime) -> int:
        if since_utc == NOW - timedelta(hours=1):
            return hour_count
        assert since_utc == NOW - timedelta(days=1)
        return day_count

    monkeypatch.setattr(fraud.ReferralsRepo, "count_for_code_since", fake_count)

    result = await fraud.check_code_velocity(object(), referral_code_id=3, now_utc=NOW)
    assert result.throttled is (reason is not None)
    assert result.reason == reason
