"""End-to-end pipeline tests against a scripted completion service."""

import asyncio
from datetime import date

import pytest

from contract_engine.agents.models import (
    DocumentClassification,
    DomainOutcome,
    FacilitiesData,
    GeneralFields,
)
from contract_engine.amendments.models import AmendmentDetectionResult
from contract_engine.core.config import PipelineConfig
from contract_engine.pipeline import (
    PipelineResult,
    aggregate_confidence,
    needs_review,
    run_extraction_pipeline,
    run_pipeline,
)

from conftest import SAMPLE_CONTRACT, Delay, ScriptedClient, contract_replies

TODAY = date(2024, 6, 1)


def _no_amendments() -> AmendmentDetectionResult:
    return AmendmentDetectionResult(
        has_amendments=False,
        amendments=[],
        conflict_count=0,
        requires_review=True,
        detection_confidence=0.0,
    )


def _classification(confidence: float = 0.8) -> DocumentClassification:
    return DocumentClassification(document_type="msa", confidence=confidence)


# ── Scenarios ────────────────────────────────────────────────────────


def test_amended_contract_flags_stale_tier_rate(client):
    result = run_pipeline(SAMPLE_CONTRACT, "Contract_1.txt", client, today=TODAY)

    assert result.classification.document_type == "rebate_schedule"
    (amendment,) = result.amendments.amendments
    assert amendment.amendment_type == "tier_rate_change"
    assert (amendment.original_value, amendment.revised_value) == (5, 8)

    (conflict,) = result.conflicts
    assert conflict.amendment == amendment
    assert "5%" in conflict.conflict_description
    assert result.requires_review
    assert result.extraction_errors == {}


def test_fields_are_categorized_and_validated(client):
    result = run_pipeline(SAMPLE_CONTRACT, "Contract_1.txt", client, today=TODAY)

    names = [f.name for f in result.fields.all_fields()]
    assert "rebate_tier_0" in names
    assert "effective_date" in names
    dates = {f.name: f.value for f in result.fields.important_dates}
    assert dates["effective_date"] == "2024-01-01"

    pair = [v for v in result.validations if v.field_names == ["effective_date", "expiration_date"]]
    assert pair and pair[0].result.level == "info"
    assert not [v for v in result.validations if v.result.level == "error"]


def test_overall_confidence_is_mean_of_computed_stages(client):
    result = run_pipeline(SAMPLE_CONTRACT, "Contract_1.txt", client, today=TODAY)
    # classifier, general, financial, products, detector; keyword domains were skipped
    assert result.overall_confidence == pytest.approx((0.9 + 0.9 + 0.9 + 0.8 + 0.9) / 5)


def test_pipeline_is_idempotent():
    first = run_pipeline(SAMPLE_CONTRACT, "c.txt", ScriptedClient(contract_replies()), today=TODAY)
    second = run_pipeline(SAMPLE_CONTRACT, "c.txt", ScriptedClient(contract_replies()), today=TODAY)
    assert first.model_dump() == second.model_dump()


def test_result_survives_json_round_trip(client):
    result = run_pipeline(SAMPLE_CONTRACT, "Contract_1.txt", client, today=TODAY)
    restored = PipelineResult.model_validate_json(result.model_dump_json())
    assert restored.conflicts == result.conflicts
    assert restored.fields.metadata == result.fields.metadata


def test_config_hash_recorded(client):
    config = PipelineConfig(review_threshold=0.5)
    result = run_pipeline(SAMPLE_CONTRACT, "c.txt", client, config, today=TODAY)
    assert result.config_hash == config.config_hash()


def test_page_offsets_reach_amendments(client):
    offset = SAMPLE_CONTRACT.index("Amendment 1")
    result = run_pipeline(
        SAMPLE_CONTRACT, "c.txt", client, page_offsets=[0, offset], today=TODAY
    )
    assert result.amendments.amendments[0].source_page == 2


# ── Degradation ──────────────────────────────────────────────────────


def test_failed_domain_is_reported_not_raised(replies):
    replies["FinancialFields"] = "not json"
    result = run_pipeline(SAMPLE_CONTRACT, "c.txt", ScriptedClient(replies), today=TODAY)

    assert set(result.extraction_errors) == {"financial"}
    assert result.extraction.financial is None
    assert result.extraction.general is not None
    # no financial baseline, so the tier amendment has nothing to conflict with
    assert result.conflicts == []
    assert result.requires_review


def test_every_call_timing_out_still_returns_result(replies):
    for title in list(replies):
        replies[title] = Delay(5.0)
    config = PipelineConfig(request_timeout=0.05)
    result = run_pipeline(SAMPLE_CONTRACT, "c.txt", ScriptedClient(replies), config, today=TODAY)

    assert result.classification.document_type == "other"
    assert result.classification.confidence == 0.0
    assert set(result.extraction_errors) == {"general", "financial", "products"}
    assert all("Timed out" in e for e in result.extraction_errors.values())
    assert result.amendments.has_amendments
    assert result.overall_confidence == pytest.approx(0.9)
    assert result.requires_review


def test_non_text_input_is_rejected(client):
    with pytest.raises(TypeError):
        asyncio.run(run_extraction_pipeline(SAMPLE_CONTRACT.encode(), "c.txt", client))


# ── Aggregation ──────────────────────────────────────────────────────


def test_aggregate_skips_degraded_and_empty_stages():
    outcomes = [
        DomainOutcome(domain="general", payload=GeneralFields(extraction_confidence=0.6)),
        DomainOutcome(domain="financial", error="Timed out after 120s"),
        DomainOutcome(domain="facilities", payload=FacilitiesData(extraction_confidence=0.0)),
    ]
    degraded = DocumentClassification.fallback("Timed out")
    assert aggregate_confidence(degraded, outcomes, _no_amendments()) == pytest.approx(0.6)
    assert aggregate_confidence(_classification(0.8), outcomes, _no_amendments()) == pytest.approx(0.7)


def test_aggregate_with_nothing_computed_is_zero():
    degraded = DocumentClassification.fallback("down")
    assert aggregate_confidence(degraded, [], _no_amendments()) == 0.0


def test_needs_review_conditions():
    clean = _no_amendments().model_copy(update={"requires_review": False})
    assert needs_review(0.9, {}, clean, 0.7) is False
    assert needs_review(0.6, {}, clean, 0.7) is True
    assert needs_review(0.9, {"products": "chunk 1/1: boom"}, clean, 0.7) is True
    assert needs_review(0.9, {}, _no_amendments(), 0.7) is True
