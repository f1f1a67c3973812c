"""Data models for amendment detection and conflict reconciliation."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

AmendmentType = Literal[
    "tier_rate_change",
    "date_change",
    "facility_addition",
    "facility_removal",
    "product_addition",
    "product_removal",
    "term_modification",
    "payment_term_change",
    "other",
]

# Types with a baseline counterpart; only these may produce a Conflict.
CONFLICT_TYPES: frozenset[str] = frozenset(
    {"tier_rate_change", "date_change", "payment_term_change"}
)

INLINE_AMENDMENT_NUMBER = 0
MAX_OTHER_CONFIDENCE = 0.6


class Amendment(BaseModel):
    """One typed change found in the contract text."""

    model_config = ConfigDict(frozen=True)

    amendment_number: int = Field(ge=0)
    amendment_date: Optional[str] = None
    amendment_type: AmendmentType
    affected_field: str
    original_value: Optional[Union[float, str]] = None
    revised_value: Optional[Union[float, str]] = None
    description: str
    source_quote: str
    source_page: Optional[int] = None
    confidence: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def catch_all_is_low_confidence(self) -> "Amendment":
        if self.amendment_type == "other" and self.confidence > MAX_OTHER_CONFIDENCE:
            raise ValueError(
                f"'other' amendments must have confidence <= {MAX_OTHER_CONFIDENCE}, "
                f"got {self.confidence}"
            )
        return self


class AmendmentSection(BaseModel):
    """Raw heading-anchored span. Internal to the detector."""

    text: str
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    number: int = Field(ge=1)

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset


class AmendmentDetectionResult(BaseModel):
    """Aggregate output of the detector."""

    has_amendments: bool
    amendments: list[Amendment]
    conflict_count: int = Field(ge=0)
    requires_review: bool
    detection_confidence: float = Field(ge=0.0, le=1.0)


class Conflict(BaseModel):
    """Baseline still carries the value an amendment replaced."""

    amendment: Amendment
    conflict_description: str

    @model_validator(mode="after")
    def only_reconcilable_types(self) -> "Conflict":
        if self.amendment.amendment_type not in CONFLICT_TYPES:
            raise ValueError(
                f"Amendment type '{self.amendment.amendment_type}' cannot produce a conflict"
            )
        return self
