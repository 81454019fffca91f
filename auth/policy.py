"""
auth/policy.py -- Password strength policy.

evaluate() is total: it never raises and always reports every rule the
secret breaks, in a fixed order, so the registration form can show all
problems at once instead of one per round trip.

The rule set comes from PasswordRules (core/config.py), built once from
settings at startup.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from auth.errors import Result, SecretErrorKind, SecretFailure
from core.config import PasswordRules

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"\d")
_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")


@dataclass(frozen=True)
class PolicyResult:
    valid: bool
    violations: tuple[str, ...] = ()  # human-readable, one per broken rule
    rules: tuple[str, ...] = ()  # rule names, same order as violations


class SecretPolicy:
    def __init__(self, rules: PasswordRules | None = None) -> None:
        self.rules = rules or PasswordRules()

    def evaluate(self, secret: str) -> PolicyResult:
        rules = self.rules
        broken: list[tuple[str, str]] = []

        if len(secret) < rules.min_length:
            broken.append(("min_length", f"Password must be at least {rules.min_length} characters long"))
        if rules.require_uppercase and not _UPPER_RE.search(secret):
            broken.append(("uppercase", "Password must contain at least one uppercase letter"))
        if rules.require_lowercase and not _LOWER_RE.search(secret):
            broken.append(("lowercase", "Password must contain at least one lowercase letter"))
        if rules.require_digit and not _DIGIT_RE.search(secret):
            broken.append(("digit", "Password must contain at least one number"))
        if rules.require_special and not _SPECIAL_RE.search(secret):
            broken.append(("special", "Password must contain at least one special character"))

        return PolicyResult(
            valid=not broken,
            violations=tuple(message for _, message in broken),
            rules=tuple(name for name, _ in broken),
        )

    def enforce(self, secret: str) -> Result[str]:
        """Return the secret unchanged if it passes, else a policy_violation failure."""
        outcome = self.evaluate(secret)
        if outcome.valid:
            return Result.success(secret)
        return Result.fail(
            SecretFailure(
                kind=SecretErrorKind.policy_violation,
                message="Password validation failed.",
                violations=outcome.violations,
            )
        )
