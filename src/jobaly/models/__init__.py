"""Data models for the jobaly tailoring pipeline."""

from jobaly.models.document import (
    AnchorKind,
    DocumentAnchor,
    DocumentResult,
    Patched,
    Synthesized,
    TemplateIncompatible,
)
from jobaly.models.job import EducationLevel, JobModel
from jobaly.models.plan import TailoringPlan, company_key, experience_keys, split_company_key
from jobaly.models.resume import (
    ContactInfo,
    EducationEntry,
    MarkupLine,
    ResumeModel,
    Section,
    SectionKind,
    SkillCategory,
    WorkExperience,
)
from jobaly.models.score import MatchScore, ScoreDetails, ScoreWeights
from jobaly.models.warnings import PipelineWarning, WarningKind

__all__ = [
    "AnchorKind",
    "ContactInfo",
    "DocumentAnchor",
    "DocumentResult",
    "EducationEntry",
    "EducationLevel",
    "JobModel",
    "MarkupLine",
    "MatchScore",
    "Patched",
    "PipelineWarning",
    "ResumeModel",
    "ScoreDetails",
    "ScoreWeights",
    "Section",
    "SectionKind",
    "SkillCategory",
    "Synthesized",
    "TailoringPlan",
    "TemplateIncompatible",
    "WarningKind",
    "WorkExperience",
    "company_key",
    "experience_keys",
    "split_company_key",
]
