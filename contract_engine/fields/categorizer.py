"""Flatten per-domain payloads into labeled fields grouped for review."""

import logging
from typing import Any, Optional

from contract_engine.agents.models import (
    BundlesData,
    ExtractionBundle,
    FacilitiesData,
    FinancialFields,
    GeneralFields,
    ProductList,
)
from contract_engine.amendments.dates import normalize_date
from contract_engine.fields.models import (
    FIELD_CATEGORIES,
    CategorizedFields,
    ExtractedField,
    FieldSummary,
    ValueType,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.9
MEDIUM_CONFIDENCE = 0.7

_PROVENANCE = {"source_quote", "source_page"}
_FACILITY_DATES = ("effective_date", "termination_date")

# (attribute, field name, label) for plain text fields of GeneralFields
_GENERAL_PENALTIES = (
    ("late_claim_penalty", "late_penalty", "Late Claim Penalty"),
    ("early_payment_discount", "early_discount", "Early Payment Discount"),
)

_GENERAL_TERMS = (
    ("manufacturer_name", "manufacturer", "Manufacturer"),
    ("purchaser_name", "purchaser", "Purchaser"),
    ("gpo_affiliation", "gpo", "GPO Affiliation"),
    ("purchaser_340b_id", "purchaser_340b_id", "Purchaser 340B ID"),
    ("government_programs_excluded", "govt_exclusions", "Government Program Exclusions"),
    ("governing_law_state", "governing_law", "Governing Law"),
    ("dispute_resolution", "dispute_resolution", "Dispute Resolution"),
    ("compliance_requirements", "compliance_req", "Compliance Requirements"),
    ("audit_rights", "audit_rights", "Audit Rights"),
    ("retroactive_provisions", "retroactive", "Retroactive Provisions"),
    ("price_protection", "price_protection", "Price Protection"),
    ("formulary_requirements", "formulary", "Formulary Requirements"),
)

_GENERAL_DATES = (
    ("execution_date", "Execution Date"),
    ("effective_date", "Effective Date"),
    ("expiration_date", "Expiration Date"),
)


class _FieldCollector:
    def __init__(self):
        self.groups: dict[str, list[ExtractedField]] = {c: [] for c in FIELD_CATEGORIES}

    def add(
        self,
        category: str,
        name: str,
        label: str,
        value: Any,
        confidence: float,
        value_type: ValueType = "text",
        source_quote: str = "",
        source_page: Optional[int] = None,
    ) -> None:
        self.groups[category].append(
            ExtractedField(
                category=category,
                name=name,
                label=label,
                value=value,
                value_type=value_type,
                source_quote=source_quote or "",
                source_page=source_page,
                confidence=confidence,
            )
        )


# ── Financial Terms ──────────────────────────────────────────────────


def _financial_terms(out: _FieldCollector, financial: FinancialFields) -> None:
    conf = financial.extraction_confidence
    for i, tier in enumerate(financial.rebate_tiers):
        out.add(
            "financial_terms",
            f"rebate_tier_{i}",
            tier.tier_name,
            tier.model_dump(exclude=_PROVENANCE),
            conf,
            value_type="json",
            source_quote=tier.source_quote,
            source_page=tier.source_page,
        )
        if tier.is_retroactive:
            out.add(
                "financial_terms",
                f"rebate_tier_{i}_retroactive",
                f"{tier.tier_name} - Retroactive",
                "Rebate is retroactive to first dollar upon achievement",
                conf,
                source_quote=tier.source_quote,
                source_page=tier.source_page,
            )
        if tier.special_terms:
            out.add(
                "financial_terms",
                f"rebate_tier_{i}_special",
                f"{tier.tier_name} - Special Terms",
                tier.special_terms,
                conf,
                source_quote=tier.source_quote,
                source_page=tier.source_page,
            )

    if financial.tier_structure_type and financial.tier_structure_type != "unknown":
        out.add(
            "financial_terms",
            "tier_structure_type",
            "Tier Calculation Method",
            financial.tier_structure_type,
            conf,
        )

    terms = financial.payment_terms
    if terms is not None:
        for attr, name, label in (
            ("frequency", "payment_frequency", "Payment Frequency"),
            # free text like "45 days after quarter end", not a calendar date
            ("due_date", "payment_due_terms", "Payment Due"),
            ("submission_deadline", "submission_deadline", "Claim Submission Deadline"),
            ("payment_method", "payment_method", "Payment Method"),
        ):
            value = getattr(terms, attr)
            if value:
                out.add("financial_terms", name, label, value, conf, source_quote=terms.source_quote)
        if terms.minimum_payment is not None:
            out.add(
                "financial_terms",
                "minimum_payment",
                "Minimum Payment Threshold",
                terms.minimum_payment,
                conf,
                value_type="number",
                source_quote=terms.source_quote,
            )

    if financial.minimum_purchase_requirement is not None:
        out.add(
            "financial_terms",
            "minimum_purchase",
            "Minimum Purchase Requirement",
            financial.minimum_purchase_requirement,
            conf,
            value_type="number",
        )
    if financial.maximum_rebate_cap is not None:
        out.add(
            "financial_terms",
            "maximum_rebate_cap",
            "Maximum Rebate Cap",
            financial.maximum_rebate_cap,
            conf,
            value_type="number",
        )


def _general_financial(out: _FieldCollector, general: GeneralFields) -> None:
    conf = general.extraction_confidence
    if general.payment_terms:
        out.add("financial_terms", "gen_payment_terms", "Payment Terms", general.payment_terms, conf)
    if general.claims_due_days is not None:
        out.add(
            "financial_terms",
            "gen_claims_due",
            "Claims Submission Deadline",
            f"{general.claims_due_days} days after quarter end",
            conf,
        )
    if general.payment_due_days is not None:
        out.add(
            "financial_terms",
            "gen_payment_due",
            "Payment Due",
            f"{general.payment_due_days} days after claim receipt",
            conf,
        )
    if general.growth_incentive_percentage is not None:
        out.add(
            "financial_terms",
            "growth_incentive_percentage",
            "Growth Incentive",
            general.growth_incentive_percentage,
            conf,
            value_type="number",
        )

    for attr, name, label in _GENERAL_PENALTIES:
        value = getattr(general, attr)
        if value:
            out.add("financial_terms", name, label, value, conf)


def _bundles(out: _FieldCollector, bundles: BundlesData) -> None:
    conf = bundles.extraction_confidence
    for i, bundle in enumerate(bundles.bundles):
        out.add(
            "financial_terms",
            f"bundle_{i}",
            f"Bundle: {bundle.category_name}",
            bundle.model_dump(exclude=_PROVENANCE),
            conf,
            value_type="json",
            source_quote=bundle.source_quote,
            source_page=bundle.source_page,
        )


# ── Products ─────────────────────────────────────────────────────────


def _products(out: _FieldCollector, product_list: ProductList) -> None:
    conf = product_list.extraction_confidence
    for i, product in enumerate(product_list.products):
        out.add(
            "products",
            f"product_{i}",
            product.ndc or "No NDC",
            product.model_dump(exclude=_PROVENANCE),
            conf,
            value_type="json",
            source_quote=product.source_quote,
            source_page=product.source_page,
        )
    out.add(
        "products",
        "total_products",
        "Total Products",
        len(product_list.products),
        conf,
        value_type="number",
    )
    if product_list.has_more_products:
        out.add(
            "products",
            "external_products",
            "Additional Products",
            product_list.external_reference or "See external product list",
            conf,
        )


# ── Terms & Conditions ───────────────────────────────────────────────


def _terms_and_conditions(out: _FieldCollector, general: GeneralFields) -> None:
    conf = general.extraction_confidence
    for attr, name, label in _GENERAL_TERMS:
        value = getattr(general, attr)
        if value:
            out.add("terms_and_conditions", name, label, value, conf)

    for attr, name, label in (
        ("medicaid_carve_out", "medicaid_carveout", "Medicaid Carve-Out"),
        ("medicare_part_d_excluded", "medicare_excluded", "Medicare Part D Excluded"),
    ):
        value = getattr(general, attr)
        if value is not None:
            out.add("terms_and_conditions", name, label, value, conf, value_type="boolean")

    if general.termination_notice_days is not None:
        out.add(
            "terms_and_conditions",
            "termination_notice_days",
            "Termination Notice (days)",
            general.termination_notice_days,
            conf,
            value_type="number",
        )


def _facilities(out: _FieldCollector, facilities: FacilitiesData) -> None:
    conf = facilities.extraction_confidence
    for i, facility in enumerate(facilities.facilities):
        value = facility.model_dump(exclude=_PROVENANCE)
        for key in _FACILITY_DATES:
            if value[key]:
                value[key] = normalize_date(value[key])
        out.add(
            "terms_and_conditions",
            f"facility_{i}",
            facility.facility_name,
            value,
            conf,
            value_type="json",
            source_quote=facility.source_quote,
            source_page=facility.source_page,
        )
    out.add(
        "terms_and_conditions",
        "total_facilities",
        "Total Facilities",
        len(facilities.facilities),
        conf,
        value_type="number",
    )
    if facilities.has_340b_entities:
        out.add(
            "terms_and_conditions",
            "340b_status",
            "340B Status",
            "Contract includes 340B covered entities",
            conf,
        )


def _exclusions(out: _FieldCollector, financial: FinancialFields) -> None:
    conf = financial.extraction_confidence
    for i, exclusion in enumerate(financial.exclusions):
        out.add(
            "terms_and_conditions",
            f"exclusion_{i}",
            f"Exclusion: {exclusion.exclusion_type}",
            exclusion.model_dump(exclude=_PROVENANCE),
            conf,
            value_type="json",
            source_quote=exclusion.source_quote,
        )


# ── Important Dates ──────────────────────────────────────────────────


def _important_dates(out: _FieldCollector, general: GeneralFields) -> None:
    conf = general.extraction_confidence
    if general.contract_number:
        out.add("important_dates", "contract_number", "Contract Number", general.contract_number, conf)

    for attr, label in _GENERAL_DATES:
        value = getattr(general, attr)
        if value:
            out.add("important_dates", attr, label, normalize_date(value), conf, value_type="date")

    if general.contract_term:
        out.add("important_dates", "contract_term", "Contract Term", general.contract_term, conf)
    if general.auto_renewal:
        out.add("important_dates", "auto_renewal", "Auto-Renewal Terms", general.auto_renewal, conf)

    if general.has_amendments:
        for i, amendment_date in enumerate(general.amendment_dates):
            summary = (
                general.amendment_summaries[i]
                if i < len(general.amendment_summaries)
                else "No details"
            )
            out.add(
                "important_dates",
                f"amendment_{i}",
                f"Amendment {i + 1}",
                {"date": normalize_date(amendment_date), "summary": summary},
                conf,
                value_type="json",
            )


def _financial_dates(out: _FieldCollector, financial: FinancialFields) -> None:
    conf = financial.extraction_confidence
    for attr, name, label in (
        ("effective_date", "fin_effective_date", "Rebate Schedule Effective"),
        ("expiration_date", "fin_expiration_date", "Rebate Schedule Expiration"),
    ):
        value = getattr(financial, attr)
        if value:
            out.add("important_dates", name, label, normalize_date(value), conf, value_type="date")


# ── Entry Point ──────────────────────────────────────────────────────


def summarize_fields(groups: dict[str, list[ExtractedField]]) -> FieldSummary:
    fields = [f for category in FIELD_CATEGORIES for f in groups[category]]
    high = sum(1 for f in fields if f.confidence >= HIGH_CONFIDENCE)
    medium = sum(1 for f in fields if MEDIUM_CONFIDENCE <= f.confidence < HIGH_CONFIDENCE)
    low = len(fields) - high - medium
    summary = " | ".join(
        [
            f"Total Fields: {len(fields)}",
            f"Financial Terms: {len(groups['financial_terms'])}",
            f"Products: {len(groups['products'])}",
            f"Terms & Conditions: {len(groups['terms_and_conditions'])}",
            f"Important Dates: {len(groups['important_dates'])}",
            f"Confidence: {high} high, {medium} medium, {low} low",
        ]
    )
    return FieldSummary(
        total_fields=len(fields),
        high_confidence=high,
        medium_confidence=medium,
        low_confidence=low,
        summary=summary,
    )


def categorize_fields(bundle: ExtractionBundle) -> CategorizedFields:
    """Flatten every present domain payload into the four review categories."""
    out = _FieldCollector()

    if bundle.financial is not None:
        _financial_terms(out, bundle.financial)
    if bundle.general is not None:
        _general_financial(out, bundle.general)
    if bundle.bundles is not None:
        _bundles(out, bundle.bundles)
    if bundle.products is not None:
        _products(out, bundle.products)
    if bundle.general is not None:
        _terms_and_conditions(out, bundle.general)
    if bundle.facilities is not None:
        _facilities(out, bundle.facilities)
    if bundle.financial is not None:
        _exclusions(out, bundle.financial)
    if bundle.general is not None:
        _important_dates(out, bundle.general)
    if bundle.financial is not None:
        _financial_dates(out, bundle.financial)

    metadata = summarize_fields(out.groups)
    logger.debug(metadata.summary)
    return CategorizedFields(**out.groups, metadata=metadata)
