from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

MIN_LENGTH = 8
BONUS_LENGTH = 12

_RULES = (
    (re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    (re.compile(r"\d"), "Password must contain a number"),
    (re.compile(r"[^A-Za-z0-9\s]"), "Password must contain a special character"),
)


@dataclass
class PasswordValidation:
    """Outcome of a password strength check."""
    is_valid: bool
    score: int
    strength: str
    errors: List[str] = field(default_factory=list)


def _strength_for(score: int) -> str:
    if score <= 2:
        return "weak"
    if score <= 4:
        return "medium"
    return "strong"


# PUBLIC_INTERFACE
def validate_password(password: str | None) -> PasswordValidation:
    """
    Score a password against the signup rules.

    One point per satisfied rule (length plus four character classes) and a
    bonus point for passwords of 12 or more characters.
    """
    value = password or ""
    errors: List[str] = []
    score = 0

    if len(value.strip()) >= MIN_LENGTH:
        score += 1
    else:
        errors.append(f"Password must be at least {MIN_LENGTH} characters")

    for pattern, message in _RULES:
        if pattern.search(value):
            score += 1
        else:
            errors.append(message)

    if len(value) >= BONUS_LENGTH:
        score += 1

    return PasswordValidation(
        is_valid=not errors,
        score=score,
        strength=_strength_for(score),
        errors=errors,
    )
