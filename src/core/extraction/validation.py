"""Template validation rules applied to an extracted record."""

import logging
import re
from collections.abc import Iterable, Sized
from dataclasses import dataclass
from typing import Any

from src.core.models.enums import ValidationRuleKind
from src.core.schemas.template import ValidationRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleViolation:
    field: str
    kind: str
    message: str

    def __str__(self) -> str:
        return self.message


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric_bound(rule: ValidationRule) -> float | None:
    if _is_number(rule.value):
        return float(rule.value)
    if isinstance(rule.value, str):
        try:
            return float(rule.value)
        except ValueError:
            pass
    logger.warning(
        "Skipping %s rule on %s: bound %r is not numeric", rule.kind.value, rule.field, rule.value
    )
    return None


def _check_required(rule: ValidationRule, value: Any) -> str | None:
    if value is None or value == "":
        return rule.message or f"{rule.field} is required"
    return None


def _check_min(rule: ValidationRule, value: Any) -> str | None:
    if not _is_number(value):
        return None
    bound = _numeric_bound(rule)
    if bound is not None and value < bound:
        return rule.message or f"{rule.field} must be at least {rule.value}"
    return None


def _check_max(rule: ValidationRule, value: Any) -> str | None:
    if not _is_number(value):
        return None
    bound = _numeric_bound(rule)
    if bound is not None and value > bound:
        return rule.message or f"{rule.field} must be at most {rule.value}"
    return None


def _check_pattern(rule: ValidationRule, value: Any) -> str | None:
    if not isinstance(value, str) or rule.value is None:
        return None
    try:
        compiled = re.compile(str(rule.value))
    except re.error as e:
        logger.warning(
            "Skipping pattern rule on %s: invalid regex %r (%s)", rule.field, rule.value, e
        )
        return None
    if not compiled.search(value):
        return rule.message or f"{rule.field} does not match required pattern"
    return None


def _check_length(rule: ValidationRule, value: Any) -> str | None:
    if value is None or not isinstance(value, Sized) or isinstance(value, (bytes, bytearray)):
        return None
    bound = _numeric_bound(rule)
    if bound is not None and len(value) != bound:
        return rule.message or f"{rule.field} must be exactly {rule.value} characters"
    return None


_CHECKS = {
    ValidationRuleKind.required: _check_required,
    ValidationRuleKind.min: _check_min,
    ValidationRuleKind.max: _check_max,
    ValidationRuleKind.pattern: _check_pattern,
    ValidationRuleKind.length: _check_length,
}


def apply_validation_rules(
    record: dict[str, Any], rules: Iterable[ValidationRule]
) -> list[RuleViolation]:
    """Run rules in order and return every violation (empty list means valid)."""
    violations: list[RuleViolation] = []
    for rule in rules:
        check = _CHECKS.get(rule.kind)
        if check is None:
            logger.warning("Skipping rule with unknown kind %s on %s", rule.kind, rule.field)
            continue
        message = check(rule, record.get(rule.field))
        if message:
            violations.append(
                RuleViolation(field=rule.field, kind=rule.kind.value, message=message)
            )
    return violations
