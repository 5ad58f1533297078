from __future__ import annotations

import re
import secrets

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DISCOUNT_CODE_PREFIX = "REF-"
DISCOUNT_CODE_LENGTH = 8
REFERRAL_CODE_SUFFIX_LENGTH = 4

_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")


def random_token(length: int) -> str:
    """Generates an uppercase token with low typo ambiguity (no I, O, 0, 1)."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def referral_code_prefix(name: str | None) -> str:
    cleaned = _NON_ALNUM_RE.sub("", (name if name is not None else "USER").upper())[:6]
    return cleaned.ljust(4, "X")


def generate_referral_code(name: str | None) -> str:
    """Shareable per-user code, e.g. `KEITH-A7X2`."""
    return f"{referral_code_prefix(name)}-{random_token(REFERRAL_CODE_SUFFIX_LENGTH)}"


def generate_discount_code() -> str:
    return f"{DISCOUNT_CODE_PREFIX}{random_token(DISCOUNT_CODE_LENGTH)}"
