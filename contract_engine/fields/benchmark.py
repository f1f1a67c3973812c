"""Score an extraction against hand-labeled expected data for a known contract."""

import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from contract_engine.agents.models import ExtractionBundle

logger = logging.getLogger(__name__)

PASS_SCORE = 70.0


# ── Expected Data (YAML) ─────────────────────────────────────────────


class ExpectedProducts(BaseModel):
    expected_count: int = Field(ge=0)
    sample_ndcs: list[str] = Field(default_factory=list)


class ExpectedTiers(BaseModel):
    expected_count: int = Field(ge=0)
    tier_names: list[str] = Field(default_factory=list)


class ExpectedCount(BaseModel):
    expected_count: int = Field(ge=0)


class ExpectedImportantFields(BaseModel):
    """Substring expectations against GeneralFields attributes of the same name."""

    contract_number: Optional[str] = None
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    manufacturer_name: Optional[str] = None
    purchaser_name: Optional[str] = None
    gpo_affiliation: Optional[str] = None


class ExpectedExtraction(BaseModel):
    """Ground truth for one contract file."""

    contract_name: str
    products: ExpectedProducts
    tiers: ExpectedTiers
    facilities: ExpectedCount
    bundles: ExpectedCount
    important_fields: ExpectedImportantFields = Field(default_factory=ExpectedImportantFields)


def load_expected_extraction(path: str | Path) -> ExpectedExtraction:
    """Load an expected-extraction YAML file and return a validated model."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f)
    return ExpectedExtraction.model_validate(raw)


# ── Score Models ─────────────────────────────────────────────────────


class BenchmarkIssue(BaseModel):
    severity: Literal["critical", "warning", "info"]
    category: str
    message: str


class CategoryScore(BaseModel):
    score: float = Field(ge=0.0, le=100.0)
    passed: bool
    expected_count: int
    actual_count: int
    match_rate: Optional[float] = None


class BenchmarkResult(BaseModel):
    contract_name: str
    overall_score: float
    passed: bool
    categories: dict[str, CategoryScore]
    issues: list[BenchmarkIssue]
    summary: str


# ── Scoring ──────────────────────────────────────────────────────────


def _count_score(actual: int, expected: int) -> float:
    if expected == 0:
        return 100.0 if actual == 0 else 0.0
    return max(0.0, 100.0 - abs(actual - expected) / expected * 100.0)


def _category(score: float, expected: int, actual: int, match_rate=None) -> CategoryScore:
    return CategoryScore(
        score=score,
        passed=score >= PASS_SCORE,
        expected_count=expected,
        actual_count=actual,
        match_rate=match_rate,
    )


def _score_products(
    expected: ExpectedProducts, bundle: ExtractionBundle, issues: list[BenchmarkIssue]
) -> CategoryScore:
    products = bundle.products.products if bundle.products else []
    actual = len(products)
    match_score = 100.0

    if expected.sample_ndcs:
        found = [p.ndc for p in products if p.ndc]
        matched = [
            ndc for ndc in expected.sample_ndcs if any(ndc in f or f in ndc for f in found)
        ]
        match_score = len(matched) / len(expected.sample_ndcs) * 100.0
        if len(matched) < len(expected.sample_ndcs):
            issues.append(
                BenchmarkIssue(
                    severity="warning",
                    category="products",
                    message=f"Only {len(matched)}/{len(expected.sample_ndcs)} sample NDCs matched",
                )
            )

    if actual < expected.expected_count * 0.9:
        issues.append(
            BenchmarkIssue(
                severity="critical",
                category="products",
                message=f"Extracted only {actual}/{expected.expected_count} products",
            )
        )

    score = (_count_score(actual, expected.expected_count) + match_score) / 2
    return _category(score, expected.expected_count, actual, match_score / 100.0)


def _score_tiers(
    expected: ExpectedTiers, bundle: ExtractionBundle, issues: list[BenchmarkIssue]
) -> CategoryScore:
    tiers = bundle.financial.rebate_tiers if bundle.financial else []
    actual = len(tiers)
    match_score = 100.0

    if expected.tier_names:
        names = [t.tier_name.lower() for t in tiers]
        matched = [n for n in expected.tier_names if any(n.lower() in got for got in names)]
        match_score = len(matched) / len(expected.tier_names) * 100.0
        if len(matched) < len(expected.tier_names):
            issues.append(
                BenchmarkIssue(
                    severity="warning",
                    category="tiers",
                    message=f"Only {len(matched)}/{len(expected.tier_names)} tier names matched",
                )
            )

    if actual != expected.expected_count:
        issues.append(
            BenchmarkIssue(
                severity="critical" if actual == 0 else "warning",
                category="tiers",
                message=f"Extracted {actual}/{expected.expected_count} tiers",
            )
        )

    score = (_count_score(actual, expected.expected_count) + match_score) / 2
    return _category(score, expected.expected_count, actual, match_score / 100.0)


def _score_count(
    name: str, expected: int, actual: int, issues: list[BenchmarkIssue]
) -> CategoryScore:
    if expected > 0 and actual < expected:
        issues.append(
            BenchmarkIssue(
                severity="critical" if actual == 0 else "warning",
                category=name,
                message=f"Extracted only {actual}/{expected} {name}",
            )
        )
    return _category(_count_score(actual, expected), expected, actual)


def _score_important_fields(
    expected: ExpectedImportantFields, bundle: ExtractionBundle, issues: list[BenchmarkIssue]
) -> CategoryScore:
    wanted = expected.model_dump(exclude_none=True)
    matched = 0
    for key, value in wanted.items():
        actual = getattr(bundle.general, key, None) if bundle.general else None
        if actual and value.lower() in str(actual).lower():
            matched += 1
        else:
            issues.append(
                BenchmarkIssue(
                    severity="warning",
                    category="important_fields",
                    message=f'Field "{key}" mismatch: expected "{value}", got "{actual}"',
                )
            )
    score = matched / len(wanted) * 100.0 if wanted else 100.0
    return _category(score, len(wanted), matched, score / 100.0)


def score_extraction(expected: ExpectedExtraction, bundle: ExtractionBundle) -> BenchmarkResult:
    """Per-category scores (0-100), their mean, and issues by severity."""
    issues: list[BenchmarkIssue] = []
    categories = {
        "products": _score_products(expected.products, bundle, issues),
        "tiers": _score_tiers(expected.tiers, bundle, issues),
        "facilities": _score_count(
            "facilities",
            expected.facilities.expected_count,
            len(bundle.facilities.facilities) if bundle.facilities else 0,
            issues,
        ),
        "bundles": _score_count(
            "bundles",
            expected.bundles.expected_count,
            len(bundle.bundles.bundles) if bundle.bundles else 0,
            issues,
        ),
        "important_fields": _score_important_fields(expected.important_fields, bundle, issues),
    }

    overall = sum(c.score for c in categories.values()) / len(categories)
    passed = overall >= PASS_SCORE
    summary = _summarize(expected.contract_name, overall, passed, categories, issues)

    logger.info(
        "Benchmark %s: %.0f%% (%s)", expected.contract_name, overall, "PASSED" if passed else "FAILED"
    )
    return BenchmarkResult(
        contract_name=expected.contract_name,
        overall_score=overall,
        passed=passed,
        categories=categories,
        issues=issues,
        summary=summary,
    )


def _summarize(
    name: str,
    overall: float,
    passed: bool,
    categories: dict[str, CategoryScore],
    issues: list[BenchmarkIssue],
) -> str:
    lines = [
        f"Contract: {name}",
        f"Overall Score: {overall:.1f}% - {'PASSED' if passed else 'FAILED'}",
        "",
        "Category Scores:",
    ]
    for category, result in categories.items():
        mark = "ok" if result.passed else "FAIL"
        lines.append(
            f"  [{mark}] {category}: {result.score:.0f}% "
            f"({result.actual_count}/{result.expected_count})"
        )
    lines.append("")
    lines.append(f"Issues: {len(issues)}")
    for severity in ("critical", "warning"):
        count = sum(1 for i in issues if i.severity == severity)
        if count:
            lines.append(f"  - {severity.capitalize()}: {count}")
    return "\n".join(lines)
