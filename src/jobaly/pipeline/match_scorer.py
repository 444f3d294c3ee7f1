"""Deterministic resume-to-job match scoring.

Every sub-score is an integer in [0, 100]. When the signal a sub-score needs
is absent the result is ``NEUTRAL_SCORE``, never 0, so missing data does not
read as a poor fit.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from jobaly.lexicon import Lexicon, contains_term, load_lexicon
from jobaly.models.job import JobModel
from jobaly.models.resume import ResumeModel
from jobaly.models.score import MatchScore, ScoreDetails, ScoreWeights

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
MIN_DESCRIPTION_CHARS = 80
MAX_KEYWORDS = 20
MIN_KEYWORD_FREQUENCY = 2

REQUIRED_SHARE = 70
PREFERRED_SHARE = 30

# (max shortfall in years, score); larger gaps fall through to the floor
EXPERIENCE_STEPS = ((1, 80), (2, 60), (3, 40))
EXPERIENCE_FLOOR = 20

TITLE_EXACT = 100
TITLE_DESIRED = 100
TITLE_DOMAIN_BOOST = 85
TITLE_OVERLAP_BANDS = ((0.5, 90), (0.3, 70), (0.1, 50))
TITLE_SENIORITY = 60
TITLE_DEFAULT = 30

_KEYWORD_RE = re.compile(r"\b[a-z]{3,}\b")
_TITLE_WORD_RE = re.compile(r"[a-z0-9+#.]+")


def round_half_up(value: float | Decimal) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


class MatchScorer:
    """Scores a resume against a job with configurable weights.

    Weights are validated when :class:`ScoreWeights` is constructed, so
    scoring itself never raises.
    """

    def __init__(
        self,
        weights: ScoreWeights | None = None,
        desired_titles: Iterable[str] = (),
        min_description_chars: int = MIN_DESCRIPTION_CHARS,
        lexicon: Lexicon | None = None,
    ):
        self.weights = weights or ScoreWeights()
        self.desired_titles = tuple(t.strip().lower() for t in desired_titles if t and t.strip())
        self.min_description_chars = min_description_chars
        self.lexicon = lexicon or load_lexicon()

    def score(self, resume: ResumeModel, job: JobModel) -> MatchScore:
        skills, matched, missing = self.skills_score(resume, job)
        experience, gap = self.experience_score(resume, job)
        title, label = self.title_score(resume, job)
        keywords, hits, total = self.keyword_score(resume, job)

        w = self.weights
        weighted = (
            Decimal(str(w.skills)) * skills
            + Decimal(str(w.experience)) * experience
            + Decimal(str(w.title)) * title
            + Decimal(str(w.keywords)) * keywords
        )
        overall = max(0, min(100, round_half_up(weighted)))
        logger.debug(
            "Match score %s/%s: overall=%d skills=%d experience=%d title=%d keywords=%d",
            job.title, job.company, overall, skills, experience, title, keywords,
        )
        return MatchScore(
            overall=overall,
            skills=skills,
            experience=experience,
            title=title,
            keywords=keywords,
            details=ScoreDetails(
                matched_skills=tuple(matched),
                missing_skills=tuple(missing),
                experience_gap_years=gap,
                title_similarity_label=label,
                keyword_hit_count=hits,
                keyword_total=total,
            ),
        )

    def score_many(self, resume: ResumeModel, jobs: Iterable[JobModel]) -> list[tuple[JobModel, MatchScore]]:
        """Score every job, best first. Ties keep input order."""
        scored = [(job, self.score(resume, job)) for job in jobs]
        scored.sort(key=lambda pair: pair[1].overall, reverse=True)
        return scored

    # -- skills -----------------------------------------------------------

    def resume_skill_set(self, resume: ResumeModel) -> set[str]:
        skills = resume.all_skills()
        skills.update(t for t in self.lexicon.tech_terms if contains_term(resume.raw_text, t))
        return skills

    def skills_score(self, resume: ResumeModel, job: JobModel) -> tuple[int, list[str], list[str]]:
        job_skills = job.all_skills
        if not job_skills:
            return NEUTRAL_SCORE, [], []

        resume_skills = self.resume_skill_set(resume)
        matched = sorted(s for s in job_skills if _skill_matches(s, resume_skills))
        missing = sorted(s for s in job_skills if s not in matched)

        matched_set = set(matched)
        required = job.required_skills
        preferred_only = job.preferred_only
        required_hits = len(required & matched_set)
        preferred_hits = len(preferred_only & matched_set)
        raw = (
            REQUIRED_SHARE * required_hits / max(1, len(required))
            + PREFERRED_SHARE * preferred_hits / max(1, len(preferred_only))
        )
        return _clamp(raw), matched, missing

    # -- experience -------------------------------------------------------

    def experience_score(self, resume: ResumeModel, job: JobModel) -> tuple[int, float]:
        required = job.experience_years
        if required is None:
            return 100, 0.0
        have = resume.years_of_experience
        if have is None:
            return NEUTRAL_SCORE, 0.0
        gap = round(required - have, 2)
        if gap <= 0:
            return 100, gap
        steps_short = math.ceil(gap)
        for max_gap, value in EXPERIENCE_STEPS:
            if steps_short <= max_gap:
                return value, gap
        return EXPERIENCE_FLOOR, gap

    # -- title ------------------------------------------------------------

    def title_score(self, resume: ResumeModel, job: JobModel) -> tuple[int, str]:
        job_title = job.title.strip().lower()
        if not job_title:
            return NEUTRAL_SCORE, "No job title"
        resume_title = (resume.current_title or "").strip().lower()

        if resume_title and resume_title == job_title:
            return TITLE_EXACT, "Exact title match"
        for desired in self.desired_titles:
            if desired in job_title or job_title in desired:
                return TITLE_DESIRED, "Matches desired role"
        if not resume_title:
            return NEUTRAL_SCORE, "No current title"

        resume_words = self._title_words(resume_title)
        job_words = self._title_words(job_title)
        best, label = 0, ""
        union = resume_words | job_words
        if union:
            overlap = len(resume_words & job_words) / len(union)
            for threshold, value in TITLE_OVERLAP_BANDS:
                if overlap >= threshold:
                    best, label = value, _overlap_label(value)
                    break

        domain_hits = [
            d for d in self.lexicon.title_domain_words if d in resume_words and d in job_words
        ]
        if len(domain_hits) >= 2 and TITLE_DOMAIN_BOOST > best:
            best, label = TITLE_DOMAIN_BOOST, "Same domain, similar role"
        if best:
            return best, label

        resume_level = self._seniority(resume_title)
        job_level = self._seniority(job_title)
        if resume_level and resume_level == job_level:
            return TITLE_SENIORITY, "Same seniority level"
        return TITLE_DEFAULT, "Different role"

    def _title_words(self, title: str) -> set[str]:
        return {
            w for w in _TITLE_WORD_RE.findall(title)
            if len(w) > 2 and w not in self.lexicon.stop_words
        }

    def _seniority(self, title: str) -> str:
        words = set(_TITLE_WORD_RE.findall(title))
        found = ""
        for level in self.lexicon.seniority_levels:
            if level in words:
                found = level
        return found

    # -- keywords ---------------------------------------------------------

    def keyword_score(self, resume: ResumeModel, job: JobModel) -> tuple[int, int, int]:
        description = job.description or ""
        if len(description.strip()) < self.min_description_chars:
            return NEUTRAL_SCORE, 0, 0
        keywords = extract_keywords(description, self.lexicon)
        if not keywords:
            return NEUTRAL_SCORE, 0, 0
        resume_text = resume.raw_text.lower()
        hits = sum(1 for k in keywords if k in resume_text)
        return _clamp(100 * hits / len(keywords)), hits, len(keywords)


def _skill_matches(job_skill: str, resume_skills: set[str]) -> bool:
    return any(r in job_skill or job_skill in r for r in resume_skills)


def _overlap_label(value: int) -> str:
    return {90: "Very similar title", 70: "Somewhat similar title", 50: "Related title"}[value]


def extract_keywords(text: str, lexicon: Lexicon | None = None, limit: int = MAX_KEYWORDS) -> list[str]:
    """Frequent non-stop-word tokens, most frequent first, ties by first use."""
    lexicon = lexicon or load_lexicon()
    tokens = [t for t in _KEYWORD_RE.findall(text.lower()) if t not in lexicon.stop_words]
    counts = Counter(tokens)
    first_seen: dict[str, int] = {}
    for i, t in enumerate(tokens):
        first_seen.setdefault(t, i)
    ranked = sorted(
        (t for t, c in counts.items() if c >= MIN_KEYWORD_FREQUENCY),
        key=lambda t: (-counts[t], first_seen[t]),
    )
    return ranked[:limit]


def match_label(overall: int) -> str:
    """Human-readable band for an overall score."""
    if overall >= 80:
        return "Excellent Match"
    if overall >= 60:
        return "Good Match"
    if overall >= 40:
        return "Fair Match"
    return "Low Match"


def score(
    resume: ResumeModel,
    job: JobModel,
    weights: ScoreWeights | None = None,
    *,
    desired_titles: Iterable[str] = (),
    min_description_chars: int = MIN_DESCRIPTION_CHARS,
    lexicon: Lexicon | None = None,
) -> MatchScore:
    """Score ``resume`` against ``job``. Pure: same inputs, same output."""
    return MatchScorer(
        weights=weights,
        desired_titles=desired_titles,
        min_description_chars=min_description_chars,
        lexicon=lexicon,
    ).score(resume, job)
