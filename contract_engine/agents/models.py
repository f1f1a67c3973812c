"""Structured-output schemas for classification and per-domain extraction.

Each model doubles as the JSON schema handed to the completion service
(``Model.model_json_schema()``) and as the validator for its reply.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

DocumentType = Literal[
    "msa", "rebate_schedule", "amendment", "product_list", "terms", "compliance", "other"
]

DOCUMENT_TYPES: tuple[str, ...] = (
    "msa", "rebate_schedule", "amendment", "product_list", "terms", "compliance", "other"
)


# ── Classification ───────────────────────────────────────────────────


class DocumentClassification(BaseModel):
    """Document type label plus content flags."""

    document_type: DocumentType
    document_subtype: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    key_indicators: list[str] = Field(default_factory=list)
    contains_financial_data: bool = False
    contains_product_data: bool = False
    error: Optional[str] = Field(
        default=None, description="Set by the pipeline when classification degraded"
    )

    @field_validator("document_type", mode="before")
    @classmethod
    def unknown_type_is_other(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v in DOCUMENT_TYPES:
                return v
        return "other"

    @classmethod
    def fallback(cls, reason: str) -> "DocumentClassification":
        return cls(document_type="other", confidence=0.0, reasoning=reason, error=reason)


# ── General Fields ───────────────────────────────────────────────────


class GeneralFields(BaseModel):
    """Contract metadata, parties, payment and legal terms."""

    contract_number: Optional[str] = None
    contract_title: Optional[str] = None
    contract_type: Optional[str] = None
    execution_date: Optional[str] = None
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    contract_term: Optional[str] = None
    auto_renewal: Optional[str] = None

    manufacturer_name: Optional[str] = None
    purchaser_name: Optional[str] = None
    purchaser_340b_id: Optional[str] = None
    gpo_affiliation: Optional[str] = None

    payment_terms: Optional[str] = None
    claims_due_days: Optional[int] = None
    payment_due_days: Optional[int] = None
    payment_method: Optional[str] = None
    minimum_payment: Optional[float] = None

    growth_incentive_percentage: Optional[float] = None
    growth_incentive_threshold: Optional[float] = None
    late_claim_penalty: Optional[str] = None
    early_payment_discount: Optional[str] = None

    medicaid_carve_out: Optional[bool] = None
    medicaid_exclusion_description: Optional[str] = None
    medicare_part_d_excluded: Optional[bool] = None
    government_programs_excluded: Optional[str] = None

    governing_law_state: Optional[str] = None
    dispute_resolution: Optional[str] = None
    termination_notice_days: Optional[int] = None
    audit_rights: Optional[str] = None
    compliance_requirements: Optional[str] = None

    retroactive_provisions: Optional[str] = None
    price_protection: Optional[str] = None
    formulary_requirements: Optional[str] = None

    has_amendments: Optional[bool] = None
    amendment_dates: list[str] = Field(default_factory=list)
    amendment_summaries: list[str] = Field(default_factory=list)

    extraction_confidence: float = Field(ge=0.0, le=1.0)
    ambiguous_fields: list[str] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)


# ── Financial Fields ─────────────────────────────────────────────────


class RebateTier(BaseModel):
    tier_name: str
    tier_level: Optional[int] = None
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    rebate_percentage: Optional[float] = None
    rebate_amount: Optional[float] = None
    calculation_method: Optional[str] = None
    is_retroactive: Optional[bool] = None
    special_terms: Optional[str] = None
    source_quote: str = ""
    source_page: Optional[int] = None


class PaymentTerms(BaseModel):
    frequency: Optional[str] = None
    due_date: Optional[str] = None
    submission_deadline: Optional[str] = None
    payment_method: Optional[str] = None
    minimum_payment: Optional[float] = None
    source_quote: str = ""


class Exclusion(BaseModel):
    exclusion_type: str
    description: str
    impact: Optional[str] = None
    source_quote: str = ""


class FinancialFields(BaseModel):
    """Rebate tiers, payment terms, caps and exclusions."""

    rebate_tiers: list[RebateTier] = Field(default_factory=list)
    tier_structure_type: Optional[Literal["stepped", "marginal", "unknown"]] = None
    payment_terms: Optional[PaymentTerms] = None
    minimum_purchase_requirement: Optional[float] = None
    maximum_rebate_cap: Optional[float] = None
    exclusions: list[Exclusion] = Field(default_factory=list)
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    extraction_confidence: float = Field(ge=0.0, le=1.0)


# ── Products ─────────────────────────────────────────────────────────


class Product(BaseModel):
    product_name: str
    ndc: Optional[str] = None
    sku: Optional[str] = None
    strength: Optional[str] = None
    package_size: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    unit_price: Optional[float] = None
    rebate_percentage: Optional[float] = None
    source_quote: str = ""
    source_page: Optional[int] = None


class ProductList(BaseModel):
    """Products covered by the contract."""

    products: list[Product] = Field(default_factory=list)
    has_more_products: bool = False
    external_reference: Optional[str] = None
    extraction_confidence: float = Field(ge=0.0, le=1.0)


# ── Facilities ───────────────────────────────────────────────────────


class Facility(BaseModel):
    facility_name: str
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    facility_340b_id: Optional[str] = None
    facility_type: Optional[str] = None
    status: Optional[str] = None
    effective_date: Optional[str] = None
    termination_date: Optional[str] = None
    source_quote: str = ""
    source_page: Optional[int] = None


class FacilitiesData(BaseModel):
    """Covered entities and eligible locations."""

    facilities: list[Facility] = Field(default_factory=list)
    has_340b_entities: bool = False
    extraction_confidence: float = Field(ge=0.0, le=1.0)


# ── Bundles ──────────────────────────────────────────────────────────


class Bundle(BaseModel):
    category_name: str
    bundle_type: Literal[
        "therapeutic_category", "product_family", "cross_category", "volume_based", "other"
    ] = "other"
    minimum_spend: Optional[float] = None
    minimum_percentage: Optional[float] = None
    measurement_period: Optional[str] = None
    bundle_incentive: Optional[str] = None
    source_quote: str = ""
    source_page: Optional[int] = None


class BundlesData(BaseModel):
    """Bundle and cross-category purchase commitments."""

    bundles: list[Bundle] = Field(default_factory=list)
    bundles_are_required: Optional[bool] = None
    extraction_confidence: float = Field(ge=0.0, le=1.0)


DOMAIN_MODELS: dict[str, type[BaseModel]] = {
    "general": GeneralFields,
    "financial": FinancialFields,
    "products": ProductList,
    "facilities": FacilitiesData,
    "bundles": BundlesData,
}


# ── Fan-in Containers ────────────────────────────────────────────────


class DomainOutcome(BaseModel):
    """Result of one domain extraction: a payload, an error, or both for partial runs."""

    domain: str
    payload: Optional[BaseModel] = None
    error: Optional[str] = None

    @property
    def confidence(self) -> Optional[float]:
        if self.payload is None:
            return None
        return self.payload.extraction_confidence


class ExtractionBundle(BaseModel):
    """All domain payloads that survived the join. This is the baseline."""

    general: Optional[GeneralFields] = None
    financial: Optional[FinancialFields] = None
    products: Optional[ProductList] = None
    facilities: Optional[FacilitiesData] = None
    bundles: Optional[BundlesData] = None

    @classmethod
    def from_outcomes(cls, outcomes: list[DomainOutcome]) -> "ExtractionBundle":
        return cls(**{o.domain: o.payload for o in outcomes if o.payload is not None})
