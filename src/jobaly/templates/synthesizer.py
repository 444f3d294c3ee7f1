"""Generic DOCX layout used when the original package cannot be patched."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

from jobaly.models.document import Synthesized
from jobaly.models.plan import TailoringPlan, experience_keys
from jobaly.models.resume import ContactInfo, ResumeModel, SectionKind, WorkExperience
from jobaly.models.warnings import PipelineWarning

logger = logging.getLogger(__name__)

BASE_FONT = "Calibri"
BASE_SIZE = Pt(10.5)
HEADING_COLOR = RGBColor(0x1A, 0x1A, 0x1A)


def synthesize(
    resume: ResumeModel,
    plan: TailoringPlan,
    contact: ContactInfo,
    *,
    reason: str = "",
    warnings: Sequence[PipelineWarning] = (),
) -> Synthesized:
    """Render header, summary, skills, experience, education and certifications."""
    doc = Document()
    style = doc.styles["Normal"]
    style.font.name = BASE_FONT
    style.font.size = BASE_SIZE

    _render_header(doc, contact)

    section = resume.section(SectionKind.SUMMARY)
    summary = plan.tailored_summary or (section.raw_content.strip() if section else "")
    if summary:
        _heading(doc, "Summary")
        doc.add_paragraph(summary)

    _render_skills(doc, resume, plan)
    _render_experience(doc, resume, plan)

    if resume.education:
        _heading(doc, "Education")
        for edu in resume.education:
            p = doc.add_paragraph()
            p.add_run(edu.school).bold = True
            degree = edu.degree + (f" in {edu.field}" if edu.field else "")
            if degree:
                p.add_run(f" | {degree}")
            if edu.graduation_date:
                p.add_run(f" | {edu.graduation_date}")

    if resume.certifications:
        _heading(doc, "Certifications")
        for cert in resume.certifications:
            doc.add_paragraph(cert, style="List Bullet")

    buf = BytesIO()
    doc.save(buf)
    logger.info("Synthesized generic document%s", f" ({reason})" if reason else "")
    return Synthesized(package=buf.getvalue(), reason=reason, warnings=tuple(warnings))


def _heading(doc, text: str) -> None:
    heading = doc.add_heading(text, level=2)
    heading.runs[0].font.color.rgb = HEADING_COLOR


def _render_header(doc, contact: ContactInfo) -> None:
    if contact.name:
        title = doc.add_heading(contact.name, level=1)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    details = [v for v in (contact.email, contact.phone, contact.location) if v]
    details.extend(contact.links)
    if details:
        line = doc.add_paragraph(" | ".join(details))
        line.alignment = WD_ALIGN_PARAGRAPH.CENTER


def _render_skills(doc, resume: ResumeModel, plan: TailoringPlan) -> None:
    rows = [(c.label, plan.per_category_skill_text.get(c.label, c.raw_value)) for c in resume.skill_categories]
    # categories the plan adds that the resume never had
    known = {c.label for c in resume.skill_categories}
    rows.extend((label, text) for label, text in plan.per_category_skill_text.items() if label not in known)
    if not rows and not resume.uncategorized_skills:
        return

    _heading(doc, "Skills")
    for label, text in rows:
        p = doc.add_paragraph()
        p.add_run(f"{label}: ").bold = True
        p.add_run(text)
    if resume.uncategorized_skills:
        doc.add_paragraph(", ".join(resume.uncategorized_skills))


def _render_experience(doc, resume: ResumeModel, plan: TailoringPlan) -> None:
    if not resume.experiences:
        return
    _heading(doc, "Experience")
    keys = experience_keys(e.company for e in resume.experiences)
    for key, exp in zip(keys, resume.experiences):
        bullets = plan.per_company_bullets.get(key, exp.bullet_points)
        _render_role(doc, exp, bullets)


def _render_role(doc, exp: WorkExperience, bullets: Sequence[str]) -> None:
    p = doc.add_paragraph()
    p.add_run(exp.title).bold = True
    p.add_run(f" | {exp.company}")
    if exp.location:
        p.add_run(f" | {exp.location}")

    dates = _date_range(exp)
    if dates:
        d = doc.add_paragraph()
        run = d.add_run(dates)
        run.italic = True
        run.font.size = Pt(9.5)

    for bullet in bullets:
        doc.add_paragraph(bullet, style="List Bullet")


def _date_range(exp: WorkExperience) -> str:
    end = "Present" if exp.current else (exp.end_date or "")
    if exp.start_date and end:
        return f"{exp.start_date} - {end}"
    return exp.start_date or end

