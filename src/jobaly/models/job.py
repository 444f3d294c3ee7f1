"""Pydantic model for a normalized job posting."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class EducationLevel(str, Enum):
    NONE = "none"
    ASSOCIATE = "associate"
    BACHELORS = "bachelors"
    MASTERS = "masters"
    PHD = "phd"


class JobModel(BaseModel):
    """Normalized job requirements.

    ``None`` for ``experience_years`` or ``education_level`` means the posting
    does not constrain it. It never means zero.
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    company: str = ""
    description: str = ""
    required_skills: frozenset[str] = frozenset()
    preferred_skills: frozenset[str] = frozenset()
    experience_years: float | None = None
    education_level: EducationLevel | None = None

    @field_validator("title", "company", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("required_skills", "preferred_skills", mode="before")
    @classmethod
    def _normalize_skills(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = v.split(",")
        return frozenset(s.strip().lower() for s in v if s and s.strip())

    @field_validator("experience_years")
    @classmethod
    def _non_negative_years(cls, v):
        if v is not None and v < 0:
            raise ValueError("experience_years must be >= 0")
        return v

    @property
    def all_skills(self) -> frozenset[str]:
        return self.required_skills | self.preferred_skills

    @property
    def preferred_only(self) -> frozenset[str]:
        return self.preferred_skills - self.required_skills
