"""Tests for document classification."""

import asyncio

from contract_engine.agents.classifier import build_classification_prompt, classify_document
from contract_engine.agents.models import DocumentClassification
from contract_engine.core.completion import CompletionResponse
from contract_engine.core.config import ClassifierSettings, PipelineConfig

from conftest import Delay, ScriptedClient


def _classify(reply, text: str = "Tier 1 rebate: 5%", config: PipelineConfig | None = None):
    client = ScriptedClient({"DocumentClassification": reply})
    result = asyncio.run(classify_document(text, "contract.txt", client, config or PipelineConfig()))
    return result, client


# ── Prompt ───────────────────────────────────────────────────────────


def test_prompt_lists_types_and_filename():
    prompt = build_classification_prompt("BODY_TEXT", "schedule_b.txt")
    for doc_type in ("msa", "rebate_schedule", "amendment", "product_list", "compliance"):
        assert doc_type in prompt
    assert "schedule_b.txt" in prompt
    assert prompt.endswith("BODY_TEXT")


def test_prompt_without_filename():
    assert "Filename: unknown" in build_classification_prompt("x", "")


# ── Classification ───────────────────────────────────────────────────


def test_classifies_document(replies):
    result, _ = _classify(replies["DocumentClassification"])
    assert result.document_type == "rebate_schedule"
    assert result.confidence == 0.9
    assert result.contains_financial_data
    assert result.error is None


def test_unknown_type_is_coerced_to_other():
    result, _ = _classify({"document_type": "invoice", "confidence": 0.8})
    assert result.document_type == "other"
    assert result.confidence == 0.8


def test_type_label_is_normalized():
    result, _ = _classify({"document_type": " MSA ", "confidence": 0.7})
    assert result.document_type == "msa"


def test_input_is_truncated():
    config = PipelineConfig(classifier=ClassifierSettings(max_chars=1000))
    text = "a" * 1000 + "TAIL_MARKER"
    _, client = _classify({"document_type": "msa", "confidence": 0.5}, text=text, config=config)
    ((_, prompt),) = client.calls
    assert "a" * 1000 in prompt
    assert "TAIL_MARKER" not in prompt


# ── Degradation ──────────────────────────────────────────────────────


def test_service_error_degrades_to_other():
    result, _ = _classify(CompletionResponse(ok=False, error="connection refused"))
    assert result == DocumentClassification.fallback("connection refused")
    assert result.confidence == 0.0
    assert result.error == "connection refused"


def test_malformed_output_degrades_to_other():
    result, _ = _classify("this is not json")
    assert result.document_type == "other"
    assert result.confidence == 0.0
    assert result.error.startswith("Malformed classification")


def test_out_of_range_confidence_is_malformed():
    result, _ = _classify({"document_type": "msa", "confidence": 1.5})
    assert result.document_type == "other"
    assert result.confidence == 0.0


def test_timeout_degrades_to_other():
    config = PipelineConfig(request_timeout=0.05)
    result, _ = _classify(Delay(5.0), config=config)
    assert result.document_type == "other"
    assert "Timed out" in result.error


def test_unexpected_exception_degrades_to_other():
    result, _ = _classify(RuntimeError("boom"))
    assert result.document_type == "other"
    assert result.error == "RuntimeError: boom"
