"""Pydantic models for the structured resume produced by the parser."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SectionKind(str, Enum):
    HEADER = "header"
    SUMMARY = "summary"
    SKILLS = "skills"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    CERTIFICATIONS = "certifications"
    OTHER = "other"


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SectionKind
    title: str
    raw_content: str
    items: tuple[str, ...] = ()


class WorkExperience(BaseModel):
    model_config = ConfigDict(frozen=True)

    company: str
    title: str
    location: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    current: bool = False
    bullet_points: tuple[str, ...] = ()  # source order, never re-sorted


class EducationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    school: str
    degree: str
    field: str | None = None
    graduation_date: str | None = None


class SkillCategory(BaseModel):
    """One ``Category: item, item`` line from the skills section."""

    model_config = ConfigDict(frozen=True)

    label: str
    items: tuple[str, ...]
    raw_value: str  # text after the colon, exactly as written


class ContactInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    location: str | None = None
    links: tuple[str, ...] = ()


class MarkupLine(BaseModel):
    """Formatting flags for one extracted line, parallel to the raw text."""

    model_config = ConfigDict(frozen=True)

    text: str
    bold: bool = False
    italic: bool = False
    heading: bool = False
    list_item: bool = False


class ResumeModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_text: str
    sections: tuple[Section, ...] = ()
    contact: ContactInfo = ContactInfo()
    experiences: tuple[WorkExperience, ...] = ()
    education: tuple[EducationEntry, ...] = ()
    skill_categories: tuple[SkillCategory, ...] = ()
    uncategorized_skills: tuple[str, ...] = ()
    hard_skills: tuple[str, ...] = ()
    soft_skills: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    certifications: tuple[str, ...] = ()
    current_title: str | None = None
    years_of_experience: float | None = None

    def section(self, kind: SectionKind) -> Section | None:
        """Return the first section of the given kind, if any."""
        for s in self.sections:
            if s.kind == kind:
                return s
        return None

    def all_skills(self) -> set[str]:
        """Lower-cased union of every skill the resume declares or mentions."""
        skills: set[str] = set()
        for group in (self.hard_skills, self.soft_skills, self.tools, self.uncategorized_skills):
            skills.update(s.strip().lower() for s in group)
        for category in self.skill_categories:
            skills.update(s.strip().lower() for s in category.items)
        skills.discard("")
        return skills
