"""Deterministic cover letters built from the parsed resume, the job and its score.

No model call is made here; the same inputs always produce the same letter.
"""

from __future__ import annotations

import logging

from jobaly.models.job import JobModel
from jobaly.models.resume import ResumeModel
from jobaly.models.score import MatchScore

logger = logging.getLogger(__name__)

COMPANY_PLACEHOLDER = "[Company Name]"
TITLE_PLACEHOLDER = "[Position Title]"
NAME_PLACEHOLDER = "[Your Name]"
DEFAULT_YEARS = 5
TOP_SKILLS = 3
STRONG_MATCH = 70
FALLBACK_SKILLS = ("problem solving", "communication", "teamwork")

# (description keywords, phrase), first hit wins
_COMPANY_VALUES = (
    (("innovation",), "innovation and cutting-edge technology"),
    (("customer", "client"), "customer-centric approach and quality service"),
    (("team", "collaborat"), "collaborative culture and teamwork"),
    (("growth", "scale"), "growth mindset and scalability"),
    (("quality",), "commitment to quality and excellence"),
)
_ACHIEVEMENTS = (
    (lambda s: "lead" in s, "leading cross-functional teams and delivering complex projects"),
    (lambda s: s in ("python", "javascript", "java"), "developing scalable software solutions"),
    (lambda s: "aws" in s or "cloud" in s, "architecting cloud-based infrastructure"),
    (lambda s: "data" in s, "analyzing data to drive business decisions"),
)
_STRENGTHS = (
    (("lead", "manage"), "lead teams and manage complex initiatives"),
    (("develop", "build"), "develop innovative solutions and build robust systems"),
    (("analyze", "data"), "analyze complex data and translate insights into action"),
    (("design",), "design elegant solutions to challenging problems"),
)


def top_skills(resume: ResumeModel, score: MatchScore | None = None, limit: int = TOP_SKILLS) -> list[str]:
    """Matched job skills when a score is given, else the resume's own hard skills."""
    if score is not None and score.details.matched_skills:
        return list(score.details.matched_skills[:limit])
    if resume.hard_skills:
        return [s.strip() for s in resume.hard_skills[:limit]]
    return list(FALLBACK_SKILLS)


def company_values(job: JobModel) -> str:
    description = job.description.lower()
    if not description:
        return "innovation and excellence"
    for words, phrase in _COMPANY_VALUES:
        if any(w in description for w in words):
            return phrase
    return "industry leadership and innovation"


def achievements(resume: ResumeModel) -> str:
    skills = [s.lower() for s in resume.hard_skills]
    for test, phrase in _ACHIEVEMENTS:
        if any(test(s) for s in skills):
            return phrase
    return "solving complex problems and driving measurable results"


def key_strengths(skills: list[str]) -> str:
    if not skills:
        return "adapt quickly and deliver results"
    first = skills[0].lower()
    for words, phrase in _STRENGTHS:
        if any(w in first for w in words):
            return phrase
    return f"leverage {skills[0]} to deliver impactful results"


def generate(resume: ResumeModel, job: JobModel, score: MatchScore | None = None) -> str:
    """Five paragraphs separated by blank lines.

    The fourth paragraph depends on the score: at ``STRONG_MATCH`` or above
    it names the two strongest overlaps, otherwise it picks up the posting's
    emphasis on the first two skills.
    """
    company = job.company.strip() or COMPANY_PLACEHOLDER
    position = job.title.strip() or TITLE_PLACEHOLDER
    current = (resume.current_title or "").strip() or "Professional"
    years = int(resume.years_of_experience) if resume.years_of_experience else DEFAULT_YEARS
    skills = top_skills(resume, score)

    paragraphs = [
        f"I am writing to express my strong interest in the {position} position at {company}. "
        f"As a {current} with {years}+ years of experience, I am excited about the opportunity to "
        f"contribute to your team and help drive {company}'s continued success.",
        f"Throughout my career, I have developed strong expertise in {', '.join(skills)}, which aligns "
        "closely with the requirements outlined in your job posting. My background has equipped me with "
        "the technical and collaborative skills needed to excel in this role.",
        f"I am particularly drawn to {company} because of its reputation for {company_values(job)}. "
        f"I am confident that my track record of {achievements(resume)} would enable me to make "
        f"immediate contributions to your team. My ability to {key_strengths(skills)} has consistently "
        "delivered results in fast-paced, collaborative environments.",
    ]
    if score is not None and score.overall >= STRONG_MATCH:
        paragraphs.append(
            f"My background aligns closely with your needs, particularly in areas such as "
            f"{' and '.join(skills[:2])}. I am eager to bring this expertise to {company} and "
            "contribute to your ongoing initiatives."
        )
    else:
        first = skills[0] if skills else "technical skills"
        second = skills[1] if len(skills) > 1 else "problem solving"
        paragraphs.append(
            f"While reviewing the position requirements, I was excited to see the emphasis on {first} "
            f"and {second}. These are areas where I have consistently excelled and developed "
            "solutions that drive business value."
        )
    paragraphs.append(
        f"I would welcome the opportunity to discuss how my skills and experience can benefit {company}. "
        "Thank you for considering my application. I look forward to the possibility of contributing "
        "to your team and am available for an interview at your earliest convenience."
    )
    logger.debug("Cover letter for %s/%s uses skills %s", position, company, skills)
    return "\n\n".join(paragraphs)


def generate_brief(resume: ResumeModel, job: JobModel) -> str:
    """A short salutation-to-signature note."""
    company = job.company.strip() or COMPANY_PLACEHOLDER
    position = job.title.strip() or TITLE_PLACEHOLDER
    current = (resume.current_title or "").strip() or "Professional"
    background = ", ".join(s.strip() for s in resume.hard_skills[:TOP_SKILLS]) or "relevant technologies"
    name = (resume.contact.name or "").strip() or NAME_PLACEHOLDER

    return (
        "Dear Hiring Manager,\n\n"
        f"I am excited to apply for the {position} position at {company}. As a {current}, I have the "
        "technical skills and professional experience needed to excel in this role.\n\n"
        f"My background in {background} aligns well with your requirements, and I am eager to "
        "contribute to your team's success.\n\n"
        f"I would appreciate the opportunity to discuss how I can add value to {company}. "
        "Thank you for your consideration.\n\n"
        f"Best regards,\n{name}"
    )
