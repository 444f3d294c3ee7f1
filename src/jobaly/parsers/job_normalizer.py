"""Validation and defaults for job postings produced by an external normalizer."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from jobaly.lexicon import Lexicon, load_lexicon
from jobaly.models.job import EducationLevel, JobModel

logger = logging.getLogger(__name__)

_REQUIRED_YEARS_RE = re.compile(r"(\d+(?:\.\d+)?)\+?\s*years?\s*(?:of\s*)?(?:\w+\s+)?experience", re.IGNORECASE)
_EDUCATION_RE = re.compile(r"\b(bachelor'?s?|master'?s?|ph\.?d|doctorate|associate'?s?)(?:\s+degree)?\b", re.IGNORECASE)

# accepted spellings for each JobModel field, first match wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title", "job_title", "jobTitle", "position"),
    "company": ("company", "company_name", "companyName", "employer"),
    "description": ("description", "job_description", "jobDescription", "text"),
    "required_skills": ("required_skills", "requiredSkills", "skills", "requirements"),
    "preferred_skills": ("preferred_skills", "preferredSkills", "nice_to_have", "niceToHave"),
    "experience_years": (
        "experience_years",
        "experienceYears",
        "required_experience_years",
        "requiredExperienceYears",
    ),
    "education_level": ("education_level", "educationLevel", "education"),
}


def normalize_job(
    data: Mapping[str, Any] | JobModel,
    *,
    infer_missing: bool = True,
    lexicon: Lexicon | None = None,
) -> JobModel:
    """Build a validated :class:`JobModel` from loosely shaped posting data.

    Absent fields stay ``None`` (unconstrained). With ``infer_missing`` the
    years of experience and education level are read from the description
    when the posting does not state them, and required skills fall back to
    technology terms found in the description.
    """
    if isinstance(data, JobModel):
        return data
    fields: dict[str, Any] = {}
    for name, aliases in _ALIASES.items():
        for alias in aliases:
            if alias in data and data[alias] not in (None, ""):
                fields[name] = data[alias]
                break

    if "experience_years" in fields:
        fields["experience_years"] = _as_years(fields["experience_years"])
    if "education_level" in fields:
        fields["education_level"] = _as_education(str(fields["education_level"]))

    description = clean_description(str(fields.get("description", "")))
    fields["description"] = description
    if infer_missing and description:
        if fields.get("experience_years") is None:
            fields["experience_years"] = infer_experience_years(description)
        if fields.get("education_level") is None:
            fields["education_level"] = infer_education_level(description)
        if not fields.get("required_skills"):
            lexicon = lexicon or load_lexicon()
            found = lexicon.find_terms(description, lexicon.tech_terms)
            if found:
                logger.debug("Required skills inferred from description: %s", found)
                fields["required_skills"] = found

    return JobModel(**{k: v for k, v in fields.items() if v is not None})


def clean_description(text: str) -> str:
    """Collapse runs of spaces and blank lines in posting text."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\u00a0]+", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def infer_experience_years(text: str) -> float | None:
    m = _REQUIRED_YEARS_RE.search(text)
    return float(m.group(1)) if m else None


def infer_education_level(text: str) -> EducationLevel | None:
    m = _EDUCATION_RE.search(text)
    return _as_education(m.group(1)) if m else None


def _as_years(value: Any) -> float | None:
    if isinstance(value, (int, float)):
        return float(value)
    m = re.search(r"\d+(?:\.\d+)?", str(value))
    if not m:
        logger.warning("Ignoring unparsable experience_years %r", value)
        return None
    return float(m.group(0))


def _as_education(value: str) -> EducationLevel | None:
    v = value.strip().lower()
    if not v:
        return None
    if v.startswith("bachelor"):
        return EducationLevel.BACHELORS
    if v.startswith("master"):
        return EducationLevel.MASTERS
    if v.startswith(("phd", "ph.d", "doctor")):
        return EducationLevel.PHD
    if v.startswith("associate"):
        return EducationLevel.ASSOCIATE
    try:
        return EducationLevel(v)
    except ValueError:
        logger.warning("Unknown education level %r, treating as unconstrained", value)
        return None


def load_job_file(file_path: str | Path, **kwargs) -> JobModel:
    """Load a job from YAML, JSON or a plain-text posting."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    elif suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    else:
        text = clean_description(path.read_text(encoding="utf-8"))
        first_line = text.split("\n", 1)[0] if text else ""
        data = {"title": first_line if len(first_line) < 80 else "", "description": text}
    if not isinstance(data, Mapping):
        raise ValueError(f"Job file must contain a mapping: {path}")
    return normalize_job(data, **kwargs)
