"""Structured warnings returned alongside primary pipeline outputs."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class WarningKind(str, Enum):
    PARSE_DEGRADED = "parse_degraded"
    ANCHOR_NOT_FOUND = "anchor_not_found"
    TEMPLATE_INCOMPATIBLE = "template_incompatible"
    COUNT_MISMATCH = "count_mismatch"
    RATE_LIMITED = "rate_limited"
    GENERATION_FAILURE = "generation_failure"
    BULLET_OVERFLOW = "bullet_overflow"
    UNSAFE_EDIT = "unsafe_edit"


class PipelineWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: WarningKind
    message: str
    key: str | None = None  # section kind, anchor key or company key

    def __str__(self) -> str:
        prefix = f"[{self.kind.value}]"
        if self.key:
            prefix += f" {self.key}:"
        return f"{prefix} {self.message}"
