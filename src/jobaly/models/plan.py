"""Pydantic model for the tailoring plan handed to the document patcher."""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from jobaly.models.warnings import PipelineWarning

_OCCURRENCE_SUFFIX = re.compile(r"^(?P<name>.*\S) \[(?P<n>\d+)\]$")


class TailoringPlan(BaseModel):
    """Frozen all the way down: the two mappings are read-only views over private copies."""

    model_config = ConfigDict(frozen=True)

    tailored_summary: str = ""
    per_category_skill_text: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    per_company_bullets: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, validate_default=True)
    keywords: tuple[str, ...] = ()
    degraded: bool = False
    warnings: tuple[PipelineWarning, ...] = ()

    @field_validator("per_category_skill_text", "per_company_bullets")
    @classmethod
    def _read_only(cls, v):
        return MappingProxyType(dict(v))

    @field_serializer("per_category_skill_text", "per_company_bullets")
    def _as_dict(self, v):
        return dict(v)


def company_key(company: str, occurrence: int = 1) -> str:
    """Stable key for the n-th experience entry at ``company``."""
    name = company.strip()
    return name if occurrence <= 1 else f"{name} [{occurrence}]"


def split_company_key(key: str) -> tuple[str, int]:
    """Inverse of :func:`company_key`."""
    m = _OCCURRENCE_SUFFIX.match(key)
    if m:
        return m.group("name"), int(m.group("n"))
    return key.strip(), 1


def experience_keys(companies: Iterable[str]) -> list[str]:
    """Company keys for experiences in source order (case-insensitive occurrence count)."""
    keys = []
    seen: dict[str, int] = {}
    for company in companies:
        name = company.strip()
        seen[name.casefold()] = seen.get(name.casefold(), 0) + 1
        keys.append(company_key(name, seen[name.casefold()]))
    return keys
