"""Structural resume parser: raw text (+ optional markup view) -> ResumeModel.

Parsing never raises. Missing sections are simply absent from the model and
reported as PARSE_DEGRADED warnings by :func:`parse_with_warnings`.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass, field
from typing import Sequence

from jobaly.lexicon import Lexicon, contains_term, load_lexicon
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
from jobaly.models.warnings import PipelineWarning, WarningKind
from jobaly.parsers.experience import parse_experiences
from jobaly.parsers.line_patterns import (
    DATE_RANGE_RE,
    EMAIL_RE,
    GITHUB_RE,
    LINKEDIN_RE,
    PHONE_RE,
    ROLE_WORDS_RE,
    SKILL_CATEGORY_RE,
    WEBSITE_RE,
    YEAR_RE,
    YEARS_OF_EXPERIENCE_RES,
    clean_markdown,
    is_bullet,
    strip_bullet,
)

logger = logging.getLogger(__name__)

EXPECTED_SECTIONS = (
    SectionKind.SUMMARY,
    SectionKind.EXPERIENCE,
    SectionKind.EDUCATION,
    SectionKind.SKILLS,
)
MAX_HEADER_CHARS = 50
_CURRENT_ROLE_RE = re.compile(r"current\s+(?:role|position|title):\s*([^\n]+)", re.IGNORECASE)
_LOCATION_PART_RE = re.compile(r"^[A-Z][A-Za-z.' -]+,\s*(?:[A-Z]{2}|[A-Z][a-z]+(?:\s[A-Z][a-z]+)*)(?:\s+\d{5})?$")
_FILLER_SKILL_RE = re.compile(r"^(?:and|or|&|\d+)$", re.IGNORECASE)
_FIELD_RE = re.compile(r"\bin\s+(?P<field>[A-Z][^,(|]*)")


@dataclass(frozen=True)
class ParseOutcome:
    resume: ResumeModel
    warnings: tuple[PipelineWarning, ...] = ()


@dataclass
class _RawSection:
    kind: SectionKind
    title: str
    lines: list[str] = field(default_factory=list)
    markup: list[MarkupLine | None] = field(default_factory=list)

    def to_model(self) -> Section:
        content = "\n".join(self.lines).strip()
        items = tuple(strip_bullet(l) for l in self.lines if l.strip())
        return Section(kind=self.kind, title=self.title, raw_content=content, items=items)


def parse(
    raw_text: str,
    markup: Sequence[MarkupLine] | None = None,
    *,
    reference_year: int | None = None,
    lexicon: Lexicon | None = None,
) -> ResumeModel:
    """Parse resume text into a :class:`ResumeModel`. Never raises."""
    return parse_with_warnings(
        raw_text, markup, reference_year=reference_year, lexicon=lexicon
    ).resume


def parse_with_warnings(
    raw_text: str,
    markup: Sequence[MarkupLine] | None = None,
    *,
    reference_year: int | None = None,
    lexicon: Lexicon | None = None,
) -> ParseOutcome:
    lexicon = lexicon or load_lexicon()
    raw_text = raw_text or ""
    try:
        return _parse(raw_text, markup, reference_year, lexicon)
    except Exception as e:  # heuristics must never take the pipeline down
        logger.warning("Resume parsing failed, returning unstructured model: %s", e, exc_info=True)
        text = clean_markdown(raw_text)
        fallback = ResumeModel(
            raw_text=raw_text,
            sections=(Section(kind=SectionKind.OTHER, title="", raw_content=text),) if text else (),
        )
        warning = PipelineWarning(kind=WarningKind.PARSE_DEGRADED, message=f"parser error: {e}")
        return ParseOutcome(resume=fallback, warnings=(warning,))


def _parse(
    raw_text: str,
    markup: Sequence[MarkupLine] | None,
    reference_year: int | None,
    lexicon: Lexicon,
) -> ParseOutcome:
    text = clean_markdown(raw_text)
    lines = text.split("\n") if text else []
    flags = _align_markup(lines, markup)
    raw_sections = _segment(lines, flags, lexicon)
    sections = tuple(s.to_model() for s in raw_sections if s.lines or s.kind is not SectionKind.HEADER)

    experiences: list[WorkExperience] = []
    categories: list[SkillCategory] = []
    uncategorized: list[str] = []
    education: list[EducationEntry] = []
    certifications: list[str] = []
    for raw in raw_sections:
        if raw.kind is SectionKind.EXPERIENCE:
            experiences.extend(parse_experiences(raw.lines, lexicon, raw.markup))
        elif raw.kind is SectionKind.SKILLS:
            cats, extra = parse_skills(raw.lines)
            categories.extend(cats)
            uncategorized.extend(extra)
        elif raw.kind is SectionKind.EDUCATION:
            education.extend(parse_education(raw.lines, lexicon))
        elif raw.kind is SectionKind.CERTIFICATIONS:
            certifications.extend(strip_bullet(l) for l in raw.lines if l.strip())

    if not any(s.kind is SectionKind.CERTIFICATIONS for s in raw_sections):
        certifications = _certification_lines(lines, lexicon)

    header_lines = next(
        (s.lines for s in raw_sections if s.kind is SectionKind.HEADER),
        lines[:8],
    )
    contact = extract_contact(text, header_lines, lexicon)

    parsed_items = [i for c in categories for i in c.items] + uncategorized
    hard_skills = _dedupe(parsed_items + lexicon.find_terms(text, lexicon.tech_terms))
    soft_skills = _dedupe(lexicon.find_terms(text, lexicon.soft_skills))
    tools = _dedupe(lexicon.find_terms(text, lexicon.tool_terms))

    resume = ResumeModel(
        raw_text=raw_text,
        sections=sections,
        contact=contact,
        experiences=tuple(experiences),
        education=tuple(education),
        skill_categories=tuple(categories),
        uncategorized_skills=tuple(_dedupe(uncategorized)),
        hard_skills=tuple(hard_skills),
        soft_skills=tuple(soft_skills),
        tools=tuple(tools),
        certifications=tuple(_dedupe(certifications)),
        current_title=_current_title(text, experiences),
        years_of_experience=years_of_experience(text, experiences, reference_year),
    )

    warnings: list[PipelineWarning] = []
    present = {s.kind for s in raw_sections}
    for kind in EXPECTED_SECTIONS:
        if kind not in present:
            warnings.append(
                PipelineWarning(
                    kind=WarningKind.PARSE_DEGRADED,
                    message=f"no {kind.value} section found",
                    key=kind.value,
                )
            )
    if SectionKind.EXPERIENCE in present and not experiences:
        warnings.append(
            PipelineWarning(
                kind=WarningKind.PARSE_DEGRADED,
                message="experience section has no recognizable entries",
                key=SectionKind.EXPERIENCE.value,
            )
        )
    logger.debug(
        "Parsed resume: %d sections, %d experiences, %d skill categories, %d warnings",
        len(sections), len(experiences), len(categories), len(warnings),
    )
    return ParseOutcome(resume=resume, warnings=tuple(warnings))


# -- segmentation -------------------------------------------------------------


def _align_markup(lines: list[str], markup: Sequence[MarkupLine] | None) -> list[MarkupLine | None]:
    """Match markup entries to cleaned lines by their normalized text."""
    if not markup:
        return [None] * len(lines)
    by_text: dict[str, MarkupLine] = {}
    for m in markup:
        key = clean_markdown(m.text)
        if key and key not in by_text:
            by_text[key] = m
    return [by_text.get(line) for line in lines]


def header_kind(line: str, flags: MarkupLine | None, lexicon: Lexicon) -> SectionKind | None:
    """Return the section kind if ``line`` is a section header, else None."""
    if not line or is_bullet(line):
        return None
    kind = lexicon.header_kind(line)
    if kind is not None:
        return SectionKind(kind)
    if flags is None or len(line) >= MAX_HEADER_CHARS:
        return None
    if not (flags.bold or flags.heading):
        return None
    # emphasized short lines: "Technical Skills & Tools", "Work Experience (Selected)"
    lowered = line.lower().replace("&", "and")
    for name, phrases in lexicon.section_headers.items():
        if any(lowered.startswith(p) for p in phrases):
            return SectionKind(name)
    return SectionKind.OTHER if flags.heading else None


def _segment(lines: list[str], flags: list[MarkupLine | None], lexicon: Lexicon) -> list[_RawSection]:
    sections: list[_RawSection] = [_RawSection(kind=SectionKind.HEADER, title="")]
    for line, flag in zip(lines, flags):
        kind = header_kind(line, flag, lexicon)
        if kind is not None:
            logger.debug("Section header %r -> %s", line, kind.value)
            sections.append(_RawSection(kind=kind, title=line.rstrip(":").strip()))
            continue
        if not line and not sections[-1].lines:
            continue
        sections[-1].lines.append(line)
        sections[-1].markup.append(flag)

    for s in sections:
        while s.lines and not s.lines[-1]:
            s.lines.pop()
            s.markup.pop()

    if len(sections) == 1:
        # no headers at all: everything is one best-effort section
        only = sections[0]
        return [_RawSection(kind=SectionKind.OTHER, title="", lines=only.lines, markup=only.markup)] if only.lines else []
    if not sections[0].lines:
        sections.pop(0)
    return sections


# -- skills -------------------------------------------------------------------


def parse_skills(lines: list[str]) -> tuple[list[SkillCategory], list[str]]:
    """Split SKILLS lines into ``Category: a, b`` groups and an overflow list."""
    categories: list[SkillCategory] = []
    overflow: list[str] = []
    for line in lines:
        text = strip_bullet(line) if is_bullet(line) else line.strip()
        if not text:
            continue
        m = SKILL_CATEGORY_RE.match(text)
        if m and "http" not in m.group("label").lower():
            value = m.group("value").strip()
            items = _split_items(value)
            categories.append(SkillCategory(label=m.group("label").strip(), items=tuple(items), raw_value=value))
        elif "," in text:
            overflow.extend(_split_items(text))
        elif is_bullet(line) and len(text) < 40:
            overflow.append(text)
    return categories, overflow


def _split_items(value: str) -> list[str]:
    parts = re.split(r"[,;]", value)
    return [
        p.strip().rstrip(".")
        for p in parts
        if p.strip() and len(p.strip()) < 100 and not _FILLER_SKILL_RE.match(p.strip())
    ]


# -- education ----------------------------------------------------------------


def parse_education(lines: list[str], lexicon: Lexicon) -> list[EducationEntry]:
    entries: list[EducationEntry] = []
    school = degree = ""
    field_: str | None = None
    grad: str | None = None

    def flush():
        if school or degree:
            entries.append(EducationEntry(school=school, degree=degree, field=field_, graduation_date=grad))

    for line in lines:
        text = strip_bullet(line) if is_bullet(line) else line.strip()
        if not text:
            continue
        has_school = any(contains_term(text, m) for m in lexicon.school_markers)
        has_degree = any(contains_term(text, m) for m in lexicon.degree_markers)
        date = _last_date(text)

        if has_school and has_degree:
            flush()
            parts = [p.strip() for p in re.split(r"\s*[,|–—]\s*", _strip_dates(text)) if p.strip()]
            school = next((p for p in parts if any(contains_term(p, m) for m in lexicon.school_markers)), "")
            degree = next((p for p in parts if p != school), "")
            field_ = _field_of(degree, parts, school)
            grad = date
        elif has_school:
            flush()
            school, degree, field_, grad = _strip_dates(text), "", None, date
        elif has_degree:
            if degree:
                flush()
                school, field_, grad = "", None, None
            parts = [p.strip() for p in _strip_dates(text).split(",") if p.strip()]
            degree = parts[0] if parts else text
            field_ = _field_of(degree, parts, "")
            grad = date or grad
        elif date:
            grad = date
    flush()
    return entries


def _field_of(degree: str, parts: list[str], school: str) -> str | None:
    m = _FIELD_RE.search(degree)
    if m:
        return m.group("field").strip()
    rest = [p for p in parts if p not in (degree, school)]
    return rest[0] if rest else None


def _last_date(text: str) -> str | None:
    matches = list(DATE_RANGE_RE.finditer(text))
    if not matches:
        return None
    m = matches[-1]
    end = m.group("end")
    if end and YEAR_RE.search(end):
        return end
    return m.group("start")


def _strip_dates(text: str) -> str:
    return DATE_RANGE_RE.sub("", text).strip(" ,|()–—-")


def _certification_lines(lines: list[str], lexicon: Lexicon) -> list[str]:
    found = []
    for line in lines:
        if is_bullet(line) or len(line) > 100:
            continue
        lowered = line.lower()
        if any(m in lowered for m in lexicon.certification_markers):
            found.append(line.strip())
    return found


# -- contact ------------------------------------------------------------------


def extract_contact(text: str, header_lines: list[str], lexicon: Lexicon | None = None) -> ContactInfo:
    """Pattern-match contact fields over the whole text, name from the header."""
    lexicon = lexicon or load_lexicon()
    email_m = EMAIL_RE.search(text)
    without_emails = EMAIL_RE.sub(" ", text)
    phone_m = PHONE_RE.search(without_emails)

    links: list[str] = []
    for pattern in (LINKEDIN_RE, GITHUB_RE):
        links.extend(m.group(0).rstrip("/") for m in pattern.finditer(without_emails))
    for m in WEBSITE_RE.finditer(without_emails):
        candidate = m.group(0).rstrip("/")
        if re.match(r"(?:https?://|www\.)", candidate, re.IGNORECASE) and not any(
            candidate.lower() in l.lower() or l.lower() in candidate.lower() for l in links
        ):
            links.append(candidate)

    return ContactInfo(
        name=_name_from_header(header_lines, lexicon),
        email=email_m.group(0) if email_m else None,
        phone=phone_m.group(0).strip() if phone_m else None,
        location=_location_from_header(header_lines),
        links=tuple(_dedupe(links)),
    )


def _name_from_header(header_lines: list[str], lexicon: Lexicon) -> str | None:
    for line in header_lines[:5]:
        text = line.strip()
        if not text or len(text) > 40 or is_bullet(text):
            continue
        if re.search(r"[\d@/|]", text) or lexicon.header_kind(text):
            continue
        if ROLE_WORDS_RE.fullmatch(text):
            continue
        words = text.split()
        if 1 <= len(words) <= 5 and all(w[0].isupper() for w in words if w[0].isalpha()):
            return text
    return None


def _location_from_header(header_lines: list[str]) -> str | None:
    for line in header_lines[:8]:
        for part in re.split(r"\s*[|•·]\s*", line):
            part = part.strip()
            if _LOCATION_PART_RE.match(part) and not EMAIL_RE.search(part):
                return part
    return None


# -- derived fields -----------------------------------------------------------


def _current_title(text: str, experiences: list[WorkExperience]) -> str | None:
    for exp in experiences:
        if exp.title:
            return exp.title
    m = _CURRENT_ROLE_RE.search(text)
    if m:
        return m.group(1).strip()
    for line in text.split("\n")[:20]:
        if len(line) < 60:
            m = ROLE_WORDS_RE.search(line)
            if m:
                return m.group(0).strip()
    return None


def years_of_experience(
    text: str,
    experiences: Sequence[WorkExperience],
    reference_year: int | None = None,
) -> float | None:
    """Explicit "N years of experience", else the span of dated roles."""
    for pattern in YEARS_OF_EXPERIENCE_RES:
        m = pattern.search(text)
        if m:
            return float(m.group(1))

    reference_year = reference_year or datetime.date.today().year
    starts: list[int] = []
    ends: list[int] = []
    for exp in experiences:
        start = _year_of(exp.start_date)
        if start is None:
            continue
        starts.append(start)
        end = reference_year if exp.current else _year_of(exp.end_date)
        ends.append(end if end is not None else start)
    if not starts:
        return None
    span = max(ends) - min(starts)
    if 0 < span < 50:
        return float(span)
    return None


def _year_of(value: str | None) -> int | None:
    if not value:
        return None
    m = YEAR_RE.search(value)
    return int(m.group(0)) if m else None


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        key = v.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(v.strip())
    return out
