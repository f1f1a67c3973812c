"""Tests for per-domain extraction and the concurrent fan-out."""

import asyncio

import pytest

from contract_engine.agents.extractor import (
    KEYWORD_CONFIDENCE_CAP,
    build_domain_prompt,
    chunk_text,
    extract_all_domains,
    extract_domain,
    keyword_sections,
    merge_product_lists,
)
from contract_engine.agents.models import FacilitiesData, Product, ProductList
from contract_engine.core.config import ExtractionSettings, PipelineConfig

from conftest import SAMPLE_CONTRACT, Delay, ScriptedClient

CHUNKED_CONFIG = PipelineConfig(extraction=ExtractionSettings(product_chunk_chars=1000))
CHUNKED_TEXT = "CHUNK_A " + "x" * 992 + "CHUNK_B " + "y" * 992 + "CHUNK_C"


def _run(domain: str, text: str, replies: dict, config: PipelineConfig | None = None):
    client = ScriptedClient(replies)
    outcome = asyncio.run(extract_domain(domain, text, client, config or PipelineConfig()))
    return outcome, client


def _product_reply(by_marker: dict):
    def reply(prompt):
        for marker, value in by_marker.items():
            if marker in prompt:
                return value
        return {"products": [], "extraction_confidence": 0.0}

    return reply


# ── Prompts & Text Selection ─────────────────────────────────────────


def test_domain_prompt_contains_text():
    prompt = build_domain_prompt("financial", "CONTRACT_BODY")
    assert "rebate tier" in prompt
    assert prompt.endswith("CONTRACT_BODY")


def test_keyword_sections_collects_windows():
    text = "Intro. Facility: North Campus, Austin. Unrelated tail text here."
    excerpt = keyword_sections(text, ("facility",), window=20, max_chars=1000)
    assert excerpt == "Facility: North Campus, Aust"


def test_keyword_sections_joins_and_caps():
    text = "site A " + "-" * 50 + " location B"
    joined = keyword_sections(text, ("site", "location"), window=5, max_chars=1000)
    assert joined.split("\n\n---\n\n") == ["site A --", "location B"]
    assert len(keyword_sections(text, ("site", "location"), window=5, max_chars=4)) == 4


def test_keyword_sections_without_hits():
    assert keyword_sections("nothing relevant", ("facility",), window=100, max_chars=1000) == ""


def test_chunk_text():
    assert chunk_text("abc", 10) == ["abc"]
    assert chunk_text("abcdefg", 3) == ["abc", "def", "g"]


def test_merge_product_lists_deduplicates():
    merged = merge_product_lists(
        [
            ProductList(
                products=[Product(product_name="Lisinopril", ndc="12345-6789-01")],
                extraction_confidence=0.9,
            ),
            ProductList(
                products=[
                    Product(product_name="Lisinopril 10mg", ndc="12345-6789-01"),
                    Product(product_name="Atorvastatin"),
                ],
                has_more_products=True,
                extraction_confidence=0.7,
            ),
        ]
    )
    assert [p.product_name for p in merged.products] == ["Lisinopril", "Atorvastatin"]
    assert merged.has_more_products
    assert merged.extraction_confidence == pytest.approx(0.8)


# ── General & Financial ──────────────────────────────────────────────


def test_general_extraction(replies):
    outcome, client = _run("general", SAMPLE_CONTRACT, replies)
    assert outcome.error is None
    assert outcome.payload.contract_number == "PHR-2024-001"
    assert outcome.confidence == 0.9
    assert client.titles() == ["GeneralFields"]


def test_general_input_is_truncated(replies):
    config = PipelineConfig(extraction=ExtractionSettings(max_chars=1000))
    _, client = _run("general", "g" * 1000 + "TAIL_MARKER", replies, config)
    ((_, prompt),) = client.calls
    assert "TAIL_MARKER" not in prompt


def test_malformed_output_becomes_error():
    outcome, _ = _run("financial", SAMPLE_CONTRACT, {"FinancialFields": "not json"})
    assert outcome.payload is None
    assert outcome.error.startswith("Malformed financial output")


def test_timeout_becomes_error():
    config = PipelineConfig(request_timeout=0.05)
    outcome, _ = _run("general", SAMPLE_CONTRACT, {"GeneralFields": Delay(5.0)}, config)
    assert outcome.payload is None
    assert "Timed out" in outcome.error


def test_unknown_domain_raises():
    with pytest.raises(ValueError, match="Unknown extraction domain"):
        _run("pricing", SAMPLE_CONTRACT, {})


# ── Products ─────────────────────────────────────────────────────────


def test_products_are_chunked_and_merged():
    reply = _product_reply(
        {
            "CHUNK_A": {
                "products": [{"product_name": "Lisinopril", "ndc": "12345-6789-01"}],
                "extraction_confidence": 0.9,
            },
            "CHUNK_B": {
                "products": [
                    {"product_name": "Lisinopril", "ndc": "12345-6789-01"},
                    {"product_name": "Atorvastatin"},
                ],
                "extraction_confidence": 0.7,
            },
            "CHUNK_C": {
                "products": [{"product_name": "atorvastatin"}],
                "extraction_confidence": 0.8,
            },
        }
    )
    outcome, client = _run("products", CHUNKED_TEXT, {"ProductList": reply}, CHUNKED_CONFIG)

    assert client.titles() == ["ProductList"] * 3
    assert outcome.error is None
    assert [p.product_name for p in outcome.payload.products] == ["Lisinopril", "Atorvastatin"]
    assert outcome.confidence == pytest.approx(0.8)


def test_failed_chunk_keeps_partial_products():
    reply = _product_reply(
        {
            "CHUNK_A": {
                "products": [{"product_name": "Lisinopril", "ndc": "12345-6789-01"}],
                "extraction_confidence": 0.9,
            },
            "CHUNK_C": "not json",
        }
    )
    outcome, _ = _run("products", CHUNKED_TEXT, {"ProductList": reply}, CHUNKED_CONFIG)

    assert [p.product_name for p in outcome.payload.products] == ["Lisinopril"]
    assert outcome.error.startswith("chunk 3/3: Malformed products output")


def test_all_chunks_failing_gives_no_payload():
    outcome, _ = _run("products", CHUNKED_TEXT, {"ProductList": "not json"}, CHUNKED_CONFIG)
    assert outcome.payload is None
    assert outcome.error.count("chunk") == 3


# ── Keyword Domains ──────────────────────────────────────────────────


def test_facilities_skipped_without_keywords():
    outcome, client = _run("facilities", SAMPLE_CONTRACT, {})
    assert client.calls == []
    assert isinstance(outcome.payload, FacilitiesData)
    assert outcome.payload.facilities == []
    assert outcome.confidence == 0.0
    assert outcome.error is None


def test_bundles_skipped_without_keywords():
    outcome, client = _run("bundles", SAMPLE_CONTRACT, {})
    assert client.calls == []
    assert outcome.payload.bundles == []


def test_facility_confidence_is_capped():
    text = SAMPLE_CONTRACT + "\nCovered facility: North Campus, 340B ID DSH123456\n"
    facilities = {
        "facilities": [{"facility_name": "North Campus", "facility_340b_id": "DSH123456"}],
        "has_340b_entities": True,
        "extraction_confidence": 0.95,
    }
    outcome, client = _run("facilities", text, {"FacilitiesData": facilities})
    assert client.titles() == ["FacilitiesData"]
    assert outcome.confidence == KEYWORD_CONFIDENCE_CAP
    assert outcome.payload.facilities[0].facility_name == "North Campus"


def test_bundle_confidence_is_capped():
    text = "Each purchaser must meet a minimum spend of $50,000 in cardiology."
    bundles = {
        "bundles": [{"category_name": "Cardiology", "minimum_spend": 50000}],
        "extraction_confidence": 0.9,
    }
    outcome, _ = _run("bundles", text, {"BundlesData": bundles})
    assert outcome.confidence == KEYWORD_CONFIDENCE_CAP


def test_low_keyword_confidence_is_kept():
    text = "Covered facility: North Campus"
    facilities = {"facilities": [], "extraction_confidence": 0.4}
    outcome, _ = _run("facilities", text, {"FacilitiesData": facilities})
    assert outcome.confidence == 0.4


# ── Fan-out ──────────────────────────────────────────────────────────


def test_extract_all_domains_keeps_config_order(client):
    outcomes = asyncio.run(extract_all_domains(SAMPLE_CONTRACT, client, PipelineConfig()))
    assert [o.domain for o in outcomes] == ["general", "financial", "products", "facilities", "bundles"]
    assert sorted(client.titles()) == ["FinancialFields", "GeneralFields", "ProductList"]
    assert all(o.error is None for o in outcomes)


def test_one_failing_domain_does_not_sink_the_others(replies):
    replies["FinancialFields"] = RuntimeError("model crashed")
    client = ScriptedClient(replies)
    outcomes = asyncio.run(extract_all_domains(SAMPLE_CONTRACT, client, PipelineConfig()))
    by_domain = {o.domain: o for o in outcomes}
    assert by_domain["financial"].error == "RuntimeError: model crashed"
    assert by_domain["general"].payload is not None


def test_configured_domain_subset():
    config = PipelineConfig(extraction=ExtractionSettings(domains=["general"]))
    client = ScriptedClient({"GeneralFields": {"extraction_confidence": 0.5}})
    outcomes = asyncio.run(extract_all_domains(SAMPLE_CONTRACT, client, config))
    assert [o.domain for o in outcomes] == ["general"]
