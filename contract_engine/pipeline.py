"""End-to-end extraction pipeline for one contract document.

Classification, per-domain extraction and amendment detection run
concurrently; categorization, conflict reconciliation, validation and
confidence aggregation run after the join. The caller always gets a
complete PipelineResult; degraded stages show up as errors and lower
confidence rather than exceptions.
"""

import asyncio
import logging
from datetime import date
from statistics import mean
from typing import Optional

from pydantic import BaseModel, Field

from contract_engine.agents.classifier import classify_document
from contract_engine.agents.extractor import extract_all_domains
from contract_engine.agents.models import DocumentClassification, DomainOutcome, ExtractionBundle
from contract_engine.amendments.detector import detect_amendments
from contract_engine.amendments.models import AmendmentDetectionResult, Conflict
from contract_engine.amendments.reconciler import check_amendment_conflicts
from contract_engine.core.completion import CompletionClient
from contract_engine.core.config import PipelineConfig
from contract_engine.core.document import RawDocument
from contract_engine.fields.categorizer import categorize_fields
from contract_engine.fields.models import CategorizedFields, FieldValidation
from contract_engine.fields.validation import validate_fields

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """Everything the pipeline learned about one document."""

    file_name: str
    config_hash: str
    classification: DocumentClassification
    extraction: ExtractionBundle
    fields: CategorizedFields
    amendments: AmendmentDetectionResult
    conflicts: list[Conflict] = Field(default_factory=list)
    validations: list[FieldValidation] = Field(default_factory=list)
    extraction_errors: dict[str, str] = Field(default_factory=dict)
    overall_confidence: float = Field(ge=0.0, le=1.0)
    requires_review: bool


# ── Confidence Aggregation ───────────────────────────────────────────


def aggregate_confidence(
    classification: DocumentClassification,
    outcomes: list[DomainOutcome],
    detection: AmendmentDetectionResult,
) -> float:
    """Unweighted mean of the stage confidences that were actually computed.

    A degraded classifier, a failed or empty domain, and a detector that
    found nothing contribute nothing rather than a zero.
    """
    values = []
    if classification.error is None and classification.confidence > 0:
        values.append(classification.confidence)
    for outcome in outcomes:
        if outcome.confidence:
            values.append(outcome.confidence)
    if detection.has_amendments and detection.detection_confidence > 0:
        values.append(detection.detection_confidence)
    return mean(values) if values else 0.0


def needs_review(
    overall_confidence: float,
    extraction_errors: dict[str, str],
    detection: AmendmentDetectionResult,
    threshold: float,
) -> bool:
    return (
        overall_confidence < threshold
        or bool(extraction_errors)
        or detection.requires_review
    )


# ── Entry Points ─────────────────────────────────────────────────────


async def run_extraction_pipeline(
    raw_text: str,
    file_name: str,
    client: CompletionClient,
    config: Optional[PipelineConfig] = None,
    *,
    page_offsets: Optional[list[int]] = None,
    today: Optional[date] = None,
) -> PipelineResult:
    """Run every stage over `raw_text` and return the aggregate result.

    `client` is the only collaborator that performs I/O. `today` pins the
    date plausibility window for reproducible validation.
    """
    if not isinstance(raw_text, str):
        raise TypeError(f"raw_text must be str, got {type(raw_text).__name__}")

    config = config or PipelineConfig()
    document = RawDocument(text=raw_text, file_name=file_name, page_offsets=page_offsets or [])
    logger.info("Processing '%s' (%d chars)", file_name, len(raw_text))

    classification, outcomes, detection = await asyncio.gather(
        classify_document(raw_text, file_name, client, config),
        extract_all_domains(raw_text, client, config),
        asyncio.to_thread(detect_amendments, raw_text, config.detector, document),
    )

    baseline = ExtractionBundle.from_outcomes(outcomes)
    fields = categorize_fields(baseline)
    conflicts = check_amendment_conflicts(detection.amendments, baseline)
    validations = validate_fields(fields.all_fields(), today=today)

    extraction_errors = {o.domain: o.error for o in outcomes if o.error}
    overall = aggregate_confidence(classification, outcomes, detection)
    requires_review = needs_review(overall, extraction_errors, detection, config.review_threshold)

    logger.info(
        "Finished '%s': %d fields, %d amendments, %d conflicts, confidence %.2f%s",
        file_name,
        fields.metadata.total_fields,
        len(detection.amendments),
        len(conflicts),
        overall,
        " (needs review)" if requires_review else "",
    )

    return PipelineResult(
        file_name=file_name,
        config_hash=config.config_hash(),
        classification=classification,
        extraction=baseline,
        fields=fields,
        amendments=detection,
        conflicts=conflicts,
        validations=validations,
        extraction_errors=extraction_errors,
        overall_confidence=overall,
        requires_review=requires_review,
    )


def run_pipeline(
    raw_text: str,
    file_name: str,
    client: CompletionClient,
    config: Optional[PipelineConfig] = None,
    **kwargs,
) -> PipelineResult:
    """Synchronous wrapper around run_extraction_pipeline."""
    return asyncio.run(run_extraction_pipeline(raw_text, file_name, client, config, **kwargs))
