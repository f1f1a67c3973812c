"""Structured completion service boundary: client protocol, Ollama adapter, parsing."""

import asyncio
import logging
import re
from typing import Generic, Optional, Protocol, TypeVar

import ollama
from pydantic import BaseModel, ValidationError

from contract_engine.core.config import CompletionSettings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert healthcare contract analyst. Always respond with valid "
    "JSON matching the requested schema. Never include markdown formatting or "
    "code blocks in your response."
)

M = TypeVar("M", bound=BaseModel)


# ── Client Protocol ──────────────────────────────────────────────────


class CompletionResponse(BaseModel):
    """Raw reply from the completion service. `ok=True` does not imply valid JSON."""

    text: str = ""
    ok: bool
    error: Optional[str] = None


class CompletionClient(Protocol):
    """Anything that can turn a prompt plus JSON schema into a JSON string."""

    async def complete(
        self, prompt: str, schema: dict, *, system: Optional[str] = None
    ) -> CompletionResponse: ...


# ── Ollama Adapter ───────────────────────────────────────────────────


class OllamaCompletionClient:
    """CompletionClient backed by an Ollama server with structured output."""

    def __init__(self, settings: CompletionSettings | None = None):
        self.settings = settings or CompletionSettings()
        self._client = ollama.AsyncClient(host=self.settings.host)

    async def complete(
        self, prompt: str, schema: dict, *, system: Optional[str] = None
    ) -> CompletionResponse:
        try:
            response = await self._client.chat(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": system or SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                format=schema,
                options={
                    "temperature": self.settings.temperature,
                    "num_predict": self.settings.max_tokens,
                },
            )
        except (ollama.ResponseError, ConnectionError) as exc:
            logger.error("Ollama call failed (%s): %s", self.settings.model, exc)
            return CompletionResponse(ok=False, error=str(exc))

        return CompletionResponse(text=response.message.content or "", ok=True)


# ── Tagged Parse Result ──────────────────────────────────────────────


class StructuredOk(BaseModel, Generic[M]):
    """Payload that passed schema validation."""

    payload: M


class SchemaError(BaseModel):
    """Reply that could not be parsed into the requested schema."""

    raw: str
    message: str


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    """Return the body of a ```json fenced block, or the trimmed text."""
    match = _FENCE_RE.search(raw)
    if match:
        return match.group(1).strip()
    return raw.strip()


def parse_structured(raw: str, model: type[M]) -> StructuredOk[M] | SchemaError:
    """Validate a completion reply against `model`. Never raises on bad input."""
    body = strip_code_fence(raw)
    if not body:
        return SchemaError(raw=raw, message="Empty response")
    try:
        payload = model.model_validate_json(body)
    except ValidationError as exc:
        return SchemaError(raw=raw, message=_summarize_errors(exc))
    return StructuredOk[model](payload=payload)


# ── Request Helper ───────────────────────────────────────────────────


class CompletionFailed(Exception):
    """The completion service errored or did not answer in time."""


async def request_structured(
    client: CompletionClient,
    prompt: str,
    model: type[M],
    *,
    timeout: float,
    system: Optional[str] = None,
) -> StructuredOk[M] | SchemaError:
    """One completion call under its own timeout, parsed against `model`.

    Raises CompletionFailed on service errors and timeouts; malformed
    replies come back as SchemaError.
    """
    try:
        response = await asyncio.wait_for(
            client.complete(prompt, model.model_json_schema(), system=system), timeout
        )
    except asyncio.TimeoutError:
        raise CompletionFailed(f"Timed out after {timeout:g}s") from None
    if not response.ok:
        raise CompletionFailed(response.error or "Completion service error")
    return parse_structured(response.text, model)


def _summarize_errors(exc: ValidationError, limit: int = 3) -> str:
    errors = exc.errors()
    parts = []
    for err in errors[:limit]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    if len(errors) > limit:
        parts.append(f"... {len(errors) - limit} more")
    return "; ".join(parts)
