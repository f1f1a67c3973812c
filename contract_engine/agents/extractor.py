"""Per-domain field extraction fanned out over the structured completion service."""

import asyncio
import logging
import re
from statistics import mean

from pydantic import BaseModel

from contract_engine.agents.models import (
    DOMAIN_MODELS,
    BundlesData,
    DomainOutcome,
    FacilitiesData,
    Product,
    ProductList,
)
from contract_engine.core.completion import (
    CompletionClient,
    CompletionFailed,
    SchemaError,
    request_structured,
)
from contract_engine.core.config import PipelineConfig

logger = logging.getLogger(__name__)

FACILITY_KEYWORDS = ("facility", "covered entity", "340b", "location", "site")
BUNDLE_KEYWORDS = (
    "category requirement",
    "minimum spend",
    "therapeutic class",
    "cross-category",
    "bundle bonus",
    "category minimum",
    "product mix",
)

# Keyword windows are partial context, so their confidence is capped.
KEYWORD_CONFIDENCE_CAP = 0.7


# ── Prompts ──────────────────────────────────────────────────────────

_INSTRUCTIONS = {
    "general": """Extract the contract's general terms:
- identification: contract number, title, type, execution/effective/expiration dates, term, auto-renewal
- parties: manufacturer, purchaser, GPO affiliation, purchaser 340B id
- payment: payment terms, claims due days, payment due days, payment method, minimum payment
- incentives and penalties: growth incentive percentage and threshold, late claim penalty, early payment discount
- exclusions: Medicaid carve-out, Medicare Part D, other government programs
- legal: governing law state, dispute resolution, termination notice days, audit rights, compliance requirements
- special provisions: retroactive provisions, price protection, formulary requirements
- amendments: whether the contract has been amended, each amendment date and a one-line summary
Dates must be YYYY-MM-DD. Use null for anything not stated. List unclear fields in
ambiguous_fields and absent ones in missing_fields.""",
    "financial": """Extract every rebate tier with its name, level, min/max purchase thresholds,
rebate percentage or fixed amount, calculation method, whether it is retroactive and any
special terms. Say whether tiers are stepped (rate applies to all purchases) or marginal
(rate applies only to incremental volume). Also extract payment terms, minimum purchase
requirement, maximum rebate cap, exclusions and the schedule's effective/expiration dates.
Percentages are plain numbers (5.5 for 5.5%). Quote the source text for every tier.""",
    "products": """Extract every covered product: name, NDC (with dashes), SKU, strength,
package size, manufacturer, category, unit price and product-specific rebate percentage.
Set has_more_products=true if the text refers to a product list not included here,
and put that reference in external_reference.""",
    "facilities": """Extract every facility or covered entity: name, street address, city,
state, zip code, 340B id, facility type, status and effective/termination dates.
Set has_340b_entities=true if any facility is a 340B covered entity. Dates must be YYYY-MM-DD.""",
    "bundles": """Extract every bundle or cross-category purchase commitment: category name,
bundle type, minimum spend or minimum percentage, measurement period and the incentive
for meeting it. Set bundles_are_required=true if meeting the bundles is mandatory.""",
}


def build_domain_prompt(domain: str, text: str) -> str:
    """Prompt for one extraction domain over `text`."""
    return f"""{_INSTRUCTIONS[domain]}

Give each item a verbatim source_quote and, where visible, its source_page.
Rate extraction_confidence from 0.0 to 1.0 by how clearly the document states these terms.

## Contract Text
{text}"""


# ── Text Selection ───────────────────────────────────────────────────


def keyword_sections(
    text: str, keywords: tuple[str, ...], window: int, max_chars: int
) -> str:
    """Concatenate the `window` characters following each keyword hit, capped at `max_chars`.

    Returns an empty string when no keyword occurs.
    """
    sections = []
    for keyword in keywords:
        pattern = re.compile(rf"{re.escape(keyword)}[\s\S]{{0,{window}}}", re.IGNORECASE)
        sections.extend(m.group(0) for m in pattern.finditer(text))
    return "\n\n---\n\n".join(sections)[:max_chars]


def chunk_text(text: str, size: int) -> list[str]:
    """Split `text` into consecutive chunks of at most `size` characters."""
    if len(text) <= size:
        return [text]
    return [text[i : i + size] for i in range(0, len(text), size)]


def merge_product_lists(lists: list[ProductList]) -> ProductList:
    """Union chunk results, dropping repeats by NDC (or by name without an NDC)."""
    seen: set[str] = set()
    products: list[Product] = []
    for product_list in lists:
        for product in product_list.products:
            key = (product.ndc or product.product_name).strip().lower()
            if key in seen:
                continue
            seen.add(key)
            products.append(product)

    return ProductList(
        products=products,
        has_more_products=any(p.has_more_products for p in lists),
        external_reference=next(
            (p.external_reference for p in lists if p.external_reference), None
        ),
        extraction_confidence=mean(p.extraction_confidence for p in lists) if lists else 0.0,
    )


# ── Single Calls ─────────────────────────────────────────────────────


async def _request(
    domain: str, text: str, client: CompletionClient, config: PipelineConfig
) -> BaseModel:
    """Raise CompletionFailed on service errors, ValueError on malformed output."""
    model = DOMAIN_MODELS[domain]
    result = await request_structured(
        client, build_domain_prompt(domain, text), model, timeout=config.request_timeout
    )
    if isinstance(result, SchemaError):
        logger.warning(
            "Domain '%s' returned malformed output (%s): %.200s",
            domain,
            result.message,
            result.raw,
        )
        raise ValueError(f"Malformed {domain} output: {result.message}")
    return result.payload


async def _extract_products(
    text: str, client: CompletionClient, config: PipelineConfig
) -> DomainOutcome:
    chunks = chunk_text(text, config.extraction.product_chunk_chars)
    results = await asyncio.gather(
        *(_request("products", chunk, client, config) for chunk in chunks),
        return_exceptions=True,
    )

    payloads = [r for r in results if isinstance(r, ProductList)]
    failures = [
        f"chunk {i}/{len(chunks)}: {r}"
        for i, r in enumerate(results, 1)
        if isinstance(r, BaseException)
    ]
    for failure in failures:
        logger.error("Products extraction failed for %s", failure)

    return DomainOutcome(
        domain="products",
        payload=merge_product_lists(payloads) if payloads else None,
        error="; ".join(failures) or None,
    )


async def _extract_keyword_domain(
    domain: str,
    keywords: tuple[str, ...],
    text: str,
    client: CompletionClient,
    config: PipelineConfig,
) -> DomainOutcome:
    settings = config.extraction
    excerpt = keyword_sections(text, keywords, settings.keyword_window, settings.keyword_max_chars)
    if not excerpt:
        logger.info("No %s keywords found; skipping extraction", domain)
        empty = FacilitiesData if domain == "facilities" else BundlesData
        return DomainOutcome(domain=domain, payload=empty(extraction_confidence=0.0))

    payload = await _request(domain, excerpt, client, config)
    capped = min(payload.extraction_confidence, KEYWORD_CONFIDENCE_CAP)
    return DomainOutcome(
        domain=domain, payload=payload.model_copy(update={"extraction_confidence": capped})
    )


async def _dispatch(
    domain: str, text: str, client: CompletionClient, config: PipelineConfig
) -> DomainOutcome:
    if domain == "products":
        return await _extract_products(text, client, config)
    if domain == "facilities":
        return await _extract_keyword_domain(domain, FACILITY_KEYWORDS, text, client, config)
    if domain == "bundles":
        return await _extract_keyword_domain(domain, BUNDLE_KEYWORDS, text, client, config)

    payload = await _request(domain, text[: config.extraction.max_chars], client, config)
    return DomainOutcome(domain=domain, payload=payload)


# ── Public API ───────────────────────────────────────────────────────


async def extract_domain(
    domain: str, text: str, client: CompletionClient, config: PipelineConfig
) -> DomainOutcome:
    """Extract one domain. Failures come back as an error on the outcome, never raised."""
    if domain not in DOMAIN_MODELS:
        raise ValueError(f"Unknown extraction domain: {domain}")

    try:
        outcome = await _dispatch(domain, text, client, config)
    except (CompletionFailed, ValueError) as exc:
        logger.error("Domain '%s' extraction failed: %s", domain, exc)
        return DomainOutcome(domain=domain, error=str(exc))
    except Exception as exc:
        logger.error("Domain '%s' extraction failed unexpectedly: %s", domain, exc)
        return DomainOutcome(domain=domain, error=f"{type(exc).__name__}: {exc}")

    if outcome.payload is not None:
        logger.info(
            "Domain '%s' extracted (confidence %.2f)", domain, outcome.payload.extraction_confidence
        )
    return outcome


async def extract_all_domains(
    text: str, client: CompletionClient, config: PipelineConfig
) -> list[DomainOutcome]:
    """Fan out every configured domain concurrently; results keep configuration order."""
    return list(
        await asyncio.gather(
            *(extract_domain(domain, text, client, config) for domain in config.extraction.domains)
        )
    )
