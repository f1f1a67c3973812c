"""Format and range validators for extracted fields.

Single-field validators are chosen by field-name substring; pair validators
by exact field names. Both live in one ordered rule registry. Validation
findings are returned to the caller, never raised.
"""

import logging
import re
from datetime import date
from typing import Any, Callable, Iterator, NamedTuple, Optional

from contract_engine.amendments.dates import normalize_date
from contract_engine.fields.models import ExtractedField, FieldValidation, ValidationResult

logger = logging.getLogger(__name__)

_NUMBER_PREFIX_RE = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NDC_RE = re.compile(r"\d{5}-\d{4}-\d{2}|\d{5}-\d{3}-\d{2}|\d{4}-\d{4}-\d{2}")

MAX_PLAUSIBLE_AMOUNT = 10_000_000
DATE_WINDOW_YEARS = 10


def _parse_number(value: Any) -> Optional[float]:
    """Numeric prefix of `value` ("12.5%" -> 12.5), or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_PREFIX_RE.match(value)
        if match:
            return float(match.group(0))
    return None


# ── Single-field Validators ──────────────────────────────────────────


def validate_percentage(value: Any) -> ValidationResult:
    number = _parse_number(value)
    if number is None:
        return ValidationResult.error("Invalid format. Please enter a number.")
    if number < 0 or number > 100:
        return ValidationResult.error("Percentage must be between 0 and 100.")
    if number > 50:
        return ValidationResult.warning(
            "Unusual value: Most rebates are between 0-50%. Are you sure this is correct?"
        )
    if number == 0:
        return ValidationResult.warning("0% rebate detected. Please verify this is intentional.")
    return ValidationResult.ok()


def validate_date(value: Any, today: Optional[date] = None) -> ValidationResult:
    """ISO YYYY-MM-DD shape plus a plus/minus ten year plausibility window."""
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        return ValidationResult.error("Invalid date format. Use YYYY-MM-DD (e.g., 2024-12-31).")
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return ValidationResult.error("Invalid date. Please check the day/month combination.")

    years = (parsed - (today or date.today())).days / 365
    if years > DATE_WINDOW_YEARS:
        return ValidationResult.warning("Date is more than 10 years in the future. Please verify.")
    if years < -DATE_WINDOW_YEARS:
        return ValidationResult.warning("Date is more than 10 years in the past. Please verify.")
    return ValidationResult.ok()


def validate_ndc(value: Any) -> ValidationResult:
    """5-4-2, 5-3-2 or 4-4-2 digit groups with dashes."""
    cleaned = re.sub(r"\s", "", str(value))
    if not _NDC_RE.fullmatch(cleaned):
        return ValidationResult.error(
            "Invalid NDC format. Expected format: XXXXX-XXXX-XX (with dashes)."
        )
    return ValidationResult.ok()


def validate_amount(value: Any) -> ValidationResult:
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "")
    number = _parse_number(value)
    if number is None:
        return ValidationResult.error("Invalid amount. Please enter a valid number.")
    if number < 0:
        return ValidationResult.error("Amount cannot be negative.")
    if number > MAX_PLAUSIBLE_AMOUNT:
        return ValidationResult.warning("Very large amount detected. Please verify this is correct.")
    return ValidationResult.ok()


# ── Pair Validators ──────────────────────────────────────────────────


def _to_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(normalize_date(value))
    except ValueError:
        return None


def validate_date_range(effective: Any, expiration: Any) -> ValidationResult:
    start, end = _to_date(effective), _to_date(expiration)
    if start is None or end is None:
        return ValidationResult.error("Both dates must be valid before checking range.")
    if start >= end:
        return ValidationResult.error("Effective date must be before expiration date.")

    days = (end - start).days
    if days < 30:
        return ValidationResult.warning("Contract duration is less than 30 days. Please verify.")
    if days > 3650:
        return ValidationResult.warning("Contract duration exceeds 10 years. Please verify.")
    return ValidationResult.ok()


# ── Rule Registry ────────────────────────────────────────────────────


class ValidatorRule(NamedTuple):
    """Arity-1 rules match name substrings; arity-2 rules name two exact fields."""

    keys: tuple[str, ...]
    check: Callable[..., ValidationResult]
    arity: int = 1
    takes_today: bool = False


# Order matters: "rebate_percentage" must hit the percentage rule before "date" etc.
VALIDATOR_RULES: tuple[ValidatorRule, ...] = (
    ValidatorRule(("percentage",), validate_percentage),
    ValidatorRule(("date",), validate_date, takes_today=True),
    ValidatorRule(("ndc",), validate_ndc),
    ValidatorRule(("amount", "threshold", "cap", "price"), validate_amount),
    ValidatorRule(("effective_date", "expiration_date"), validate_date_range, arity=2),
)


def _find_rule(name: str) -> Optional[ValidatorRule]:
    lowered = name.lower()
    for rule in VALIDATOR_RULES:
        if rule.arity == 1 and any(key in lowered for key in rule.keys):
            return rule
    return None


def get_validator(field_name: str) -> Optional[Callable[..., ValidationResult]]:
    """Single-field validator for `field_name`, or None when no rule applies."""
    rule = _find_rule(field_name)
    return rule.check if rule else None


def _leaves(name: str, value: Any) -> Iterator[tuple[str, str, Any]]:
    """Yield (qualified name, key, value) for every scalar inside a JSON value."""
    if isinstance(value, dict):
        for key, item in value.items():
            yield from _descend(f"{name}.{key}", str(key), item)
    elif isinstance(value, list):
        for i, item in enumerate(value):
            yield from _leaves(f"{name}[{i}]", item)


def _descend(name: str, key: str, value: Any) -> Iterator[tuple[str, str, Any]]:
    if isinstance(value, (dict, list)):
        yield from _leaves(name, value)
    else:
        yield name, key, value


def validate_fields(
    fields: list[ExtractedField], today: Optional[date] = None
) -> list[FieldValidation]:
    """Run every applicable rule over `fields`.

    JSON values (tiers, products, facilities...) are walked and each scalar
    is judged by its own key name. Empty values are skipped.
    """
    findings: list[FieldValidation] = []

    for field in fields:
        if isinstance(field.value, (dict, list)):
            targets = list(_leaves(field.name, field.value))
        else:
            targets = [(field.name, field.name, field.value)]

        for qualified, key, value in targets:
            if value is None or value == "":
                continue
            rule = _find_rule(key)
            if rule is None:
                continue
            kwargs = {"today": today} if rule.takes_today else {}
            findings.append(
                FieldValidation(field_names=[qualified], result=rule.check(value, **kwargs))
            )

    by_name = {f.name: f.value for f in fields}
    for rule in VALIDATOR_RULES:
        if rule.arity != 2:
            continue
        values = [by_name.get(key) for key in rule.keys]
        if all(v not in (None, "") for v in values):
            findings.append(
                FieldValidation(field_names=list(rule.keys), result=rule.check(*values))
            )

    errors = sum(1 for f in findings if f.result.level == "error")
    if errors:
        logger.info("Validation: %d findings, %d errors", len(findings), errors)
    return findings
