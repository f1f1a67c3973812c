"""Document type classification via the structured completion service."""

import logging

from contract_engine.agents.models import DocumentClassification
from contract_engine.core.completion import (
    CompletionClient,
    CompletionFailed,
    SchemaError,
    request_structured,
)
from contract_engine.core.config import PipelineConfig

logger = logging.getLogger(__name__)

SYSTEM = (
    "You are an expert healthcare contract document classifier. "
    "Respond ONLY with JSON matching the requested schema."
)


def build_classification_prompt(text: str, file_name: str) -> str:
    return f"""Classify the contract document below into exactly one type:

- msa: master agreement with parties, terms and signature blocks
- rebate_schedule: rebate percentages, tiers, thresholds, payment terms
- amendment: modifications to an existing agreement
- product_list: catalog of products with NDCs or SKUs
- terms: legal terms and conditions
- compliance: regulatory requirements (340B, Medicaid)
- other: does not fit the types above

Set contains_financial_data=true if you see rebate percentages, tiers or payment terms.
Set contains_product_data=true if you see product names, NDCs or SKUs.
List the phrases that drove your decision in key_indicators.

Filename: {file_name or "unknown"}

## Document Text
{text}"""


async def classify_document(
    text: str,
    file_name: str,
    client: CompletionClient,
    config: PipelineConfig,
) -> DocumentClassification:
    """Label `text` with a document type. Degrades to 'other' with confidence 0, never raises."""
    excerpt = text[: config.classifier.max_chars]
    prompt = build_classification_prompt(excerpt, file_name)

    try:
        result = await request_structured(
            client,
            prompt,
            DocumentClassification,
            timeout=config.request_timeout,
            system=SYSTEM,
        )
    except CompletionFailed as exc:
        logger.error("Classification of '%s' failed: %s", file_name, exc)
        return DocumentClassification.fallback(str(exc))
    except Exception as exc:
        logger.error("Classification of '%s' failed unexpectedly: %s", file_name, exc)
        return DocumentClassification.fallback(f"{type(exc).__name__}: {exc}")

    if isinstance(result, SchemaError):
        logger.warning(
            "Classification of '%s' returned malformed output (%s): %.200s",
            file_name,
            result.message,
            result.raw,
        )
        return DocumentClassification.fallback(f"Malformed classification: {result.message}")

    classification = result.payload.model_copy(update={"error": None})
    logger.info(
        "Classified '%s' as %s (%.2f)",
        file_name,
        classification.document_type,
        classification.confidence,
    )
    return classification
