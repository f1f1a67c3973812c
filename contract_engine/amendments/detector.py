"""Heuristic amendment detection over raw contract text.

Finds heading-anchored amendment sections, drops overlapping duplicates,
runs a battery of typed pattern extractors over each surviving section,
and scans the whole document for looser inline changes. Pure functions
only; the same text always yields the same amendments in the same order.
"""

import logging
import re
from bisect import bisect_left
from statistics import mean
from typing import Optional

from contract_engine.amendments.dates import DATE_PATTERN, normalize_date
from contract_engine.amendments.models import (
    CONFLICT_TYPES,
    INLINE_AMENDMENT_NUMBER,
    Amendment,
    AmendmentDetectionResult,
    AmendmentSection,
)
from contract_engine.core.config import DetectorConfig
from contract_engine.core.document import RawDocument

logger = logging.getLogger(__name__)

# Fixed per extractor family; reflects how literal the source phrase must be.
EXTRACTOR_CONFIDENCE: dict[str, float] = {
    "tier_rate_change": 0.9,
    "date_change": 0.85,
    "payment_term_change": 0.85,
    "facility_addition": 0.8,
    "facility_removal": 0.8,
    "product_addition": 0.8,
    "product_removal": 0.8,
    "other": 0.6,
}

REVIEW_CONFIDENCE = 0.7

_NUM = r"\d+(?:\.\d+)?"
_DATE = rf"(?:{DATE_PATTERN})"


# ── Section Discovery ────────────────────────────────────────────────

HEADING_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(rf"\b{word}\b(?:\s*(?:no\.?|number|#)?\s*(\d+))?", re.IGNORECASE)
    for word in ("amendment", "addendum", "revision", "modification")
)

_SECTION_DATE_RE = re.compile(rf"(?:\bdated?:?|\beffective)\s*({_DATE})", re.IGNORECASE)


def is_heading(text: str, match: re.Match) -> bool:
    """A numbered match, or an unnumbered one that opens its line.

    Keeps prose such as "changes made by this Amendment:" from splitting
    the numbered section it sits in.
    """
    if match.group(1):
        return True
    line_start = text.rfind("\n", 0, match.start()) + 1
    return not text[line_start : match.start()].strip()


def find_amendment_sections(
    text: str, config: Optional[DetectorConfig] = None
) -> list[AmendmentSection]:
    """Candidate sections in discovery order (pattern order, then position).

    Each window starts at its heading and runs `section_window` characters,
    cut short by the next heading found at least `heading_skip` characters
    after the start.
    """
    config = config or DetectorConfig()
    headings = [
        [match for match in pattern.finditer(text) if is_heading(text, match)]
        for pattern in HEADING_PATTERNS
    ]
    heading_starts = sorted(match.start() for matches in headings for match in matches)

    sections = []
    for matches in headings:
        for ordinal, match in enumerate(matches, start=1):
            start = match.start()
            end = min(len(text), start + config.section_window)

            idx = bisect_left(heading_starts, start + config.heading_skip)
            if idx < len(heading_starts) and heading_starts[idx] < end:
                end = heading_starts[idx]

            captured = int(match.group(1)) if match.group(1) else 0
            sections.append(
                AmendmentSection(
                    text=text[start:end],
                    start_offset=start,
                    end_offset=end,
                    number=captured or ordinal,
                )
            )
    return sections


def overlap_ratio(a: AmendmentSection, b: AmendmentSection) -> float:
    """Overlap length divided by the shorter section's length."""
    overlap = max(0, min(a.end_offset, b.end_offset) - max(a.start_offset, b.start_offset))
    shorter = min(a.length, b.length)
    if shorter <= 0:
        return 0.0
    return overlap / shorter


def deduplicate_sections(
    sections: list[AmendmentSection], threshold: float = 0.5
) -> list[AmendmentSection]:
    """Drop sections overlapping an earlier kept one by more than `threshold`."""
    kept: list[AmendmentSection] = []
    for section in sections:
        if all(overlap_ratio(section, existing) <= threshold for existing in kept):
            kept.append(section)
    return kept


def section_date(section_text: str) -> Optional[str]:
    """First 'dated D' / 'date: D' / 'effective D' inside a section, normalized."""
    match = _SECTION_DATE_RE.search(section_text)
    if not match:
        return None
    return normalize_date(match.group(1))


# ── Typed Extractors ─────────────────────────────────────────────────

# (pattern, needs tier/rebate wording just before the match)
_TIER_PATTERNS: tuple[tuple[re.Pattern, bool], ...] = (
    (
        re.compile(
            rf"\btier\s+(\d+|[a-z]+)\s+(?:increased|decreased|reduced|changed|revised)\s+"
            rf"(?:from|to)\s+({_NUM})%?\s+to\s+({_NUM})%?",
            re.IGNORECASE,
        ),
        False,
    ),
    (
        re.compile(
            rf"({_NUM})%\s+(?:changed|revised|increased|decreased|reduced)\s+to\s+({_NUM})%",
            re.IGNORECASE,
        ),
        True,
    ),
    (
        re.compile(
            rf"\brebate\s+(?:rate|percentage)\s+(?:of|for)\s+tier\s+(\d+|[a-z]+)"
            rf".*?({_NUM})%\s+to\s+({_NUM})%",
            re.IGNORECASE,
        ),
        False,
    ),
)

_TIER_CONTEXT_RE = re.compile(r"\b(?:tier|rebate)", re.IGNORECASE)

_DATE_CHANGE_RE = re.compile(
    rf"\b(?:effective|expiration|termination)\s+date\s+(?:changed|revised|extended)\s+"
    rf"(?:from|to)\s+({_DATE})\s+to\s+({_DATE})",
    re.IGNORECASE,
)
_DATE_EXTEND_RE = re.compile(
    rf"\bextend(?:ed|s)?\s+(?:through|to|until)\s+({_DATE})", re.IGNORECASE
)

_ADD_VERBS = r"(?:add(?:s|ed)?|include[sd]?|append(?:s|ed)?)"
_REMOVE_VERBS = r"(?:remove[sd]?|delete[sd]?|exclude[sd]?)"

_FACILITY_RES: dict[str, re.Pattern] = {
    kind: re.compile(
        rf"\b{verbs}\s+(?:the\s+following\s+)?facilit(?:y|ies):\s*([^\n.]+)", re.IGNORECASE
    )
    for kind, verbs in (("facility_addition", _ADD_VERBS), ("facility_removal", _REMOVE_VERBS))
}

_PRODUCT_RES: dict[str, re.Pattern] = {
    kind: re.compile(
        rf"\b{verbs}\s+(?:the\s+following\s+)?products?\b.*?\b(?:ndc|sku)\b[^\d\n]*(\d[\d-]*\d)",
        re.IGNORECASE,
    )
    for kind, verbs in (("product_addition", _ADD_VERBS), ("product_removal", _REMOVE_VERBS))
}

_PAYMENT_TERMS_RE = re.compile(
    r"\bpayment\s+(?:due|terms)\s+(?:changed|revised)\s+(?:from|to)\s+([^\n]+?)\s+to\s+([^\n.]+)",
    re.IGNORECASE,
)
_NET_DAYS_RE = re.compile(
    r"\b(?:net|due)\s+(\d+)\s+days\s+(?:changed|revised)\s+to\s+(?:net\s+)?(\d+)\s+days",
    re.IGNORECASE,
)

_INLINE_RES: tuple[re.Pattern, ...] = (
    re.compile(
        rf"({_NUM}%?)\s+(?:revised|changed|amended|modified)\s+to\s+({_NUM}%?)", re.IGNORECASE
    ),
    re.compile(r"\bfrom\s+(\S+)\s+to\s+(\S+)", re.IGNORECASE),
)


class _SectionScan:
    """Accumulates typed amendments for one section, one per overlapping span per type."""

    def __init__(
        self,
        section: AmendmentSection,
        amendment_date: Optional[str],
        document: Optional[RawDocument],
    ):
        self.section = section
        self.amendment_date = amendment_date
        self.document = document
        self.amendments: list[Amendment] = []
        self._spans: dict[str, list[tuple[int, int]]] = {}

    def emit(self, match: re.Match, amendment_type: str, affected_field: str, **values) -> None:
        start, end = match.span()
        spans = self._spans.setdefault(amendment_type, [])
        if any(start < s_end and s_start < end for s_start, s_end in spans):
            return
        spans.append((start, end))

        offset = self.section.start_offset + start
        self.amendments.append(
            Amendment(
                amendment_number=self.section.number,
                amendment_date=self.amendment_date,
                amendment_type=amendment_type,
                affected_field=affected_field,
                source_quote=match.group(0).strip(),
                source_page=self.document.page_for_offset(offset) if self.document else None,
                confidence=EXTRACTOR_CONFIDENCE[amendment_type],
                **values,
            )
        )


def _scan_tier_rates(scan: _SectionScan, config: DetectorConfig) -> None:
    text = scan.section.text
    for pattern, needs_context in _TIER_PATTERNS:
        for match in pattern.finditer(text):
            if needs_context:
                window = text[max(0, match.start() - config.rate_context_chars) : match.start()]
                if not _TIER_CONTEXT_RE.search(window):
                    continue
            # Rates are always the last two groups
            original, revised = float(match.groups()[-2]), float(match.groups()[-1])
            scan.emit(
                match,
                "tier_rate_change",
                "rebate_tier_rate",
                original_value=original,
                revised_value=revised,
                description=(
                    f"Tier rebate rate changed from {_fmt_rate(original)}% "
                    f"to {_fmt_rate(revised)}%"
                ),
            )


def _scan_dates(scan: _SectionScan) -> None:
    text = scan.section.text
    for match in _DATE_CHANGE_RE.finditer(text):
        original, revised = normalize_date(match.group(1)), normalize_date(match.group(2))
        scan.emit(
            match,
            "date_change",
            "contract_dates",
            original_value=original,
            revised_value=revised,
            description=f"Contract date changed from {original} to {revised}",
        )
    for match in _DATE_EXTEND_RE.finditer(text):
        revised = normalize_date(match.group(1))
        scan.emit(
            match,
            "date_change",
            "contract_dates",
            revised_value=revised,
            description=f"Contract date extended to {revised}",
        )


def _scan_list_changes(scan: _SectionScan) -> None:
    text = scan.section.text
    for patterns, field, noun in (
        (_FACILITY_RES, "facilities", "Facility"),
        (_PRODUCT_RES, "products", "Product"),
    ):
        for kind, pattern in patterns.items():
            verb = "added" if kind.endswith("addition") else "removed"
            for match in pattern.finditer(text):
                value = match.group(1).strip()
                scan.emit(
                    match,
                    kind,
                    field,
                    revised_value=value,
                    description=f"{noun} {verb}: {value}",
                )


def _scan_payment_terms(scan: _SectionScan) -> None:
    text = scan.section.text
    for match in _PAYMENT_TERMS_RE.finditer(text):
        original, revised = match.group(1).strip(), match.group(2).strip()
        scan.emit(
            match,
            "payment_term_change",
            "payment_terms",
            original_value=original,
            revised_value=revised,
            description=f'Payment terms changed from "{original}" to "{revised}"',
        )
    for match in _NET_DAYS_RE.finditer(text):
        original, revised = f"Net {match.group(1)} days", f"Net {match.group(2)} days"
        scan.emit(
            match,
            "payment_term_change",
            "payment_terms",
            original_value=original,
            revised_value=revised,
            description=f'Payment terms changed from "{original}" to "{revised}"',
        )


def analyze_section(
    section: AmendmentSection,
    config: Optional[DetectorConfig] = None,
    document: Optional[RawDocument] = None,
) -> list[Amendment]:
    """Run every typed extractor over one section. A section may yield several amendments."""
    config = config or DetectorConfig()
    scan = _SectionScan(section, section_date(section.text), document)
    _scan_tier_rates(scan, config)
    _scan_dates(scan)
    _scan_list_changes(scan)
    _scan_payment_terms(scan)
    return scan.amendments


# ── Inline Changes ───────────────────────────────────────────────────


def detect_inline_changes(
    text: str, document: Optional[RawDocument] = None
) -> list[Amendment]:
    """Loose 'X changed to Y' / 'from X to Y' phrases anywhere in the text."""
    amendments = []
    for pattern in _INLINE_RES:
        for match in pattern.finditer(text):
            original, revised = match.group(1), match.group(2)
            amendments.append(
                Amendment(
                    amendment_number=INLINE_AMENDMENT_NUMBER,
                    amendment_type="other",
                    affected_field="unknown",
                    original_value=original,
                    revised_value=revised,
                    description=f"Inline change: {original} → {revised}",
                    source_quote=match.group(0),
                    source_page=document.page_for_offset(match.start()) if document else None,
                    confidence=EXTRACTOR_CONFIDENCE["other"],
                )
            )
    return amendments


# ── Entry Point ──────────────────────────────────────────────────────


def detect_amendments(
    text: str,
    config: Optional[DetectorConfig] = None,
    document: Optional[RawDocument] = None,
) -> AmendmentDetectionResult:
    """Find and type every amendment in `text`.

    `conflict_count` counts amendments of the reconcilable types before any
    baseline comparison; the reconciler decides which are real conflicts.
    """
    config = config or DetectorConfig()
    candidates = find_amendment_sections(text, config)
    sections = sorted(
        deduplicate_sections(candidates, config.overlap_threshold),
        key=lambda s: s.start_offset,
    )
    logger.debug(
        "Amendment sections: %d candidates, %d after dedup", len(candidates), len(sections)
    )

    amendments: list[Amendment] = []
    for section in sections:
        amendments.extend(analyze_section(section, config, document))
    amendments.extend(detect_inline_changes(text, document))

    detection_confidence = mean(a.confidence for a in amendments) if amendments else 0.0
    conflict_count = sum(1 for a in amendments if a.amendment_type in CONFLICT_TYPES)

    if amendments:
        logger.info(
            "Detected %d amendments across %d sections (confidence %.2f)",
            len(amendments),
            len(sections),
            detection_confidence,
        )

    return AmendmentDetectionResult(
        has_amendments=bool(amendments),
        amendments=amendments,
        conflict_count=conflict_count,
        requires_review=conflict_count > 0 or detection_confidence < REVIEW_CONFIDENCE,
        detection_confidence=detection_confidence,
    )


def _fmt_rate(value: float) -> str:
    return f"{value:g}"
