"""Detect disagreeing field values across several files of one contract."""

import json
import logging
from difflib import SequenceMatcher
from typing import Any

from pydantic import BaseModel

from contract_engine.fields.models import ExtractedField

logger = logging.getLogger(__name__)


# ── Result Models ────────────────────────────────────────────────────


class SourcedField(BaseModel):
    """An extracted field tagged with the file it came from."""

    file_name: str
    field: ExtractedField


class FieldConflictGroup(BaseModel):
    """Fields sharing category and name but carrying different values."""

    category: str
    name: str
    label: str
    fields: list[SourcedField]
    recommended: SourcedField
    min_similarity: float


# ── Public API ───────────────────────────────────────────────────────


def value_similarity(a: Any, b: Any) -> float:
    """Case-insensitive similarity ratio (0-1) of two values' text forms.

    High ratios usually mean OCR noise rather than a real disagreement.
    """
    left, right = _display(a).lower().strip(), _display(b).lower().strip()
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    return SequenceMatcher(None, left, right).ratio()


def detect_field_conflicts(
    fields_by_file: dict[str, list[ExtractedField]],
) -> list[FieldConflictGroup]:
    """Group fields from every file by `category:name` and report disagreements.

    Empty values are ignored. The highest-confidence field in a group is
    recommended; ties keep the earliest file.
    """
    groups: dict[str, list[SourcedField]] = {}
    for file_name, fields in fields_by_file.items():
        for field in fields:
            key = f"{field.category}:{field.name}"
            groups.setdefault(key, []).append(SourcedField(file_name=file_name, field=field))

    conflicts = []
    for members in groups.values():
        if len(members) < 2:
            continue
        distinct = {
            _canonical(m.field.value)
            for m in members
            if m.field.value is not None and m.field.value != ""
        }
        if len(distinct) < 2:
            continue

        values = [m.field.value for m in members if m.field.value not in (None, "")]
        min_similarity = min(
            value_similarity(a, b) for i, a in enumerate(values) for b in values[i + 1 :]
        )
        first = members[0].field
        conflicts.append(
            FieldConflictGroup(
                category=first.category,
                name=first.name,
                label=first.label,
                fields=members,
                recommended=max(members, key=lambda m: m.field.confidence),
                min_similarity=min_similarity,
            )
        )

    if conflicts:
        logger.info(
            "Cross-file conflicts: %d fields disagree across %d files",
            len(conflicts),
            len(fields_by_file),
        )
    return conflicts


# ── Helpers ──────────────────────────────────────────────────────────


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _display(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return _canonical(value)
    return str(value)
