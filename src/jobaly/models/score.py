"""Pydantic models for match scoring."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

WEIGHT_TOLERANCE = 1e-6


class ScoreWeights(BaseModel):
    """Sub-score weights. Validated when constructed, never at score time."""

    model_config = ConfigDict(frozen=True)

    skills: float = Field(default=0.40, ge=0.0)
    experience: float = Field(default=0.25, ge=0.0)
    title: float = Field(default=0.20, ge=0.0)
    keywords: float = Field(default=0.15, ge=0.0)

    @model_validator(mode="after")
    def _sum_to_one(self) -> ScoreWeights:
        total = self.skills + self.experience + self.title + self.keywords
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"weights must sum to 1.0, got {total:.6f}")
        return self


class ScoreDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched_skills: tuple[str, ...] = ()
    missing_skills: tuple[str, ...] = ()
    experience_gap_years: float = 0.0
    title_similarity_label: str = ""
    keyword_hit_count: int = 0
    keyword_total: int = 0


class MatchScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: int = Field(ge=0, le=100)
    skills: int = Field(ge=0, le=100)
    experience: int = Field(ge=0, le=100)
    title: int = Field(ge=0, le=100)
    keywords: int = Field(ge=0, le=100)
    details: ScoreDetails = ScoreDetails()
