"""Pipeline configuration: YAML loader, Pydantic models, and settings hashing."""

import hashlib
import json
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

Domain = Literal["general", "financial", "products", "facilities", "bundles"]

ALL_DOMAINS: tuple[str, ...] = ("general", "financial", "products", "facilities", "bundles")


# ── Completion Service ───────────────────────────────────────────────


class CompletionSettings(BaseModel):
    """Connection and sampling settings for the structured completion service."""

    model: str = "llama3.3:70b"
    host: Optional[str] = Field(
        default=None, description="Ollama host URL; None uses the client default"
    )
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=8192, ge=256)


# ── Stage Settings ───────────────────────────────────────────────────


class ClassifierSettings(BaseModel):
    """Document classification limits."""

    max_chars: int = Field(default=15_000, ge=1_000)


class ExtractionSettings(BaseModel):
    """Per-domain extraction limits."""

    domains: list[Domain] = Field(default_factory=lambda: list(ALL_DOMAINS))
    max_chars: int = Field(default=30_000, ge=1_000)
    product_chunk_chars: int = Field(default=50_000, ge=1_000)
    keyword_window: int = Field(default=1_000, ge=100)
    keyword_max_chars: int = Field(default=15_000, ge=1_000)

    @field_validator("domains")
    @classmethod
    def unique_domains(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate extraction domains: {v}")
        return v


class DetectorConfig(BaseModel):
    """Amendment section discovery and deduplication knobs."""

    section_window: int = Field(default=2_000, ge=100)
    heading_skip: int = Field(default=50, ge=0)
    overlap_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    rate_context_chars: int = Field(default=120, ge=0)


# ── Pipeline Config (top-level) ──────────────────────────────────────


class PipelineConfig(BaseModel):
    """Top-level configuration for one extraction pipeline invocation."""

    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    request_timeout: float = Field(
        default=120.0, gt=0, description="Seconds allowed per completion call"
    )
    review_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    def config_hash(self) -> str:
        """SHA-256 of the full configuration (canonical JSON)."""
        return _canonical_hash(self.model_dump())


# ── Helpers ──────────────────────────────────────────────────────────


def _canonical_hash(data: dict) -> str:
    """Deterministic SHA-256 hash of a dict via sorted-key JSON."""
    blob = json.dumps(data, sort_keys=True, default=str).encode()
    return hashlib.sha256(blob).hexdigest()


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    """Load a YAML pipeline config from disk and return a validated model."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return PipelineConfig.model_validate(raw)
