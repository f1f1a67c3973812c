"""Immutable pipeline input."""

from bisect import bisect_right
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RawDocument(BaseModel):
    """Full contract text plus optional page start offsets."""

    model_config = ConfigDict(frozen=True)

    text: str
    file_name: str = ""
    page_offsets: list[int] = Field(
        default_factory=list,
        description="Character offset where each page starts, ascending",
    )

    @field_validator("page_offsets")
    @classmethod
    def offsets_ascending(cls, v: list[int]) -> list[int]:
        if any(b < a for a, b in zip(v, v[1:])):
            raise ValueError("page_offsets must be ascending")
        return v

    def page_for_offset(self, offset: int) -> Optional[int]:
        """1-based page containing `offset`, or None without page data."""
        if not self.page_offsets or offset < self.page_offsets[0]:
            return None
        return bisect_right(self.page_offsets, offset)
