"""Shared test doubles for the structured completion service."""

import asyncio
import json

import pytest

from contract_engine.core.completion import CompletionResponse

SAMPLE_CONTRACT = """PHARMACEUTICAL REBATE AGREEMENT
Contract No. PHR-2024-001

This agreement is made between PharmaCorp Inc. and Metro Health System.
Tier 1 rebate: 5% on quarterly purchases over $100,000.
Tier 2 rebate: 7% on quarterly purchases over $250,000.

Amendment 1 dated 03/01/2024
The rebate rate of 5% increased to 8% for Tier 1 purchases.
"""


class Delay:
    """Reply that never arrives within a short timeout."""

    def __init__(self, seconds: float = 5.0):
        self.seconds = seconds


class ScriptedClient:
    """CompletionClient double keyed on the requested schema's title.

    A reply may be a dict (sent as JSON), a str (sent verbatim), a
    CompletionResponse, an exception (raised), a Delay, or a callable
    taking the prompt and returning any of those.
    """

    def __init__(self, replies: dict):
        self.replies = replies
        self.calls: list[tuple[str, str]] = []

    async def complete(self, prompt, schema, *, system=None):
        title = schema.get("title", "")
        self.calls.append((title, prompt))
        reply = self.replies.get(title)
        if callable(reply) and not isinstance(reply, type):
            reply = reply(prompt)

        if reply is None:
            return CompletionResponse(ok=False, error=f"no scripted reply for {title}")
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, Delay):
            await asyncio.sleep(reply.seconds)
            return CompletionResponse(ok=True, text="{}")
        if isinstance(reply, CompletionResponse):
            return reply
        if isinstance(reply, dict):
            return CompletionResponse(ok=True, text=json.dumps(reply))
        return CompletionResponse(ok=True, text=reply)

    def titles(self) -> list[str]:
        return [title for title, _ in self.calls]


def contract_replies() -> dict:
    return {
        "DocumentClassification": {
            "document_type": "rebate_schedule",
            "confidence": 0.9,
            "reasoning": "Tiered rebate percentages",
            "key_indicators": ["Tier 1", "5% rebate"],
            "contains_financial_data": True,
            "contains_product_data": False,
        },
        "GeneralFields": {
            "contract_number": "PHR-2024-001",
            "manufacturer_name": "PharmaCorp Inc.",
            "purchaser_name": "Metro Health System",
            "effective_date": "01/01/2024",
            "expiration_date": "2026-12-31",
            "has_amendments": True,
            "amendment_dates": ["03/01/2024"],
            "amendment_summaries": ["Tier 1 rate increased to 8%"],
            "extraction_confidence": 0.9,
        },
        "FinancialFields": {
            "rebate_tiers": [
                {
                    "tier_name": "Tier 1",
                    "tier_level": 1,
                    "min_threshold": 100000,
                    "rebate_percentage": 5.0,
                    "source_quote": "Tier 1 rebate: 5% on quarterly purchases over $100,000.",
                },
                {
                    "tier_name": "Tier 2",
                    "tier_level": 2,
                    "min_threshold": 250000,
                    "rebate_percentage": 7.0,
                    "source_quote": "Tier 2 rebate: 7% on quarterly purchases over $250,000.",
                },
            ],
            "tier_structure_type": "stepped",
            "extraction_confidence": 0.9,
        },
        "ProductList": {
            "products": [],
            "extraction_confidence": 0.8,
        },
    }


@pytest.fixture()
def replies():
    return contract_replies()


@pytest.fixture()
def client(replies):
    return ScriptedClient(replies)
