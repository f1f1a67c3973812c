"""Flattened, provenance-carrying fields and their validation results."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

FieldCategory = Literal["financial_terms", "products", "terms_and_conditions", "important_dates"]

FIELD_CATEGORIES: tuple[str, ...] = (
    "financial_terms",
    "products",
    "terms_and_conditions",
    "important_dates",
)

ValueType = Literal["text", "number", "date", "json", "boolean"]


class ExtractedField(BaseModel):
    """One labeled value with its source quote and confidence."""

    model_config = ConfigDict(frozen=True)

    category: FieldCategory
    name: str
    label: str
    value: Any
    value_type: ValueType = "text"
    source_quote: str = ""
    source_page: Optional[int] = None
    confidence: float = Field(ge=0.0, le=1.0)


class FieldSummary(BaseModel):
    total_fields: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    summary: str = ""


class CategorizedFields(BaseModel):
    """Fields grouped by category, in extraction-domain order within each group."""

    financial_terms: list[ExtractedField] = Field(default_factory=list)
    products: list[ExtractedField] = Field(default_factory=list)
    terms_and_conditions: list[ExtractedField] = Field(default_factory=list)
    important_dates: list[ExtractedField] = Field(default_factory=list)
    metadata: FieldSummary = Field(default_factory=FieldSummary)

    def all_fields(self) -> list[ExtractedField]:
        return [f for category in FIELD_CATEGORIES for f in getattr(self, category)]


# ── Validation ───────────────────────────────────────────────────────


class ValidationResult(BaseModel):
    """Outcome of one validator. A warning never blocks acceptance."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    level: Literal["error", "warning", "info"]
    message: str = ""

    @model_validator(mode="after")
    def error_is_invalid(self) -> "ValidationResult":
        if self.level == "error" and self.is_valid:
            raise ValueError("An error-level result cannot be valid")
        return self

    @classmethod
    def ok(cls, message: str = "") -> "ValidationResult":
        return cls(is_valid=True, level="info", message=message)

    @classmethod
    def warning(cls, message: str) -> "ValidationResult":
        return cls(is_valid=True, level="warning", message=message)

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, level="error", message=message)


class FieldValidation(BaseModel):
    """A validation result paired with the field name(s) it judged."""

    field_names: list[str]
    result: ValidationResult
