"""Tailoring planner: resume x job x score -> TailoringPlan.

Experience bullets are sent to the rewriter one experience at a time, so a
resume with N roles costs at most N external calls (times the retry budget).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_chain, wait_fixed

from jobaly.clients.bullet_rewriter import BulletRewriter, RewriteContext
from jobaly.exceptions import GenerationFailure, RateLimited, TailoringCancelled
from jobaly.lexicon import Lexicon, contains_term, load_lexicon
from jobaly.models.job import JobModel
from jobaly.models.plan import TailoringPlan, experience_keys
from jobaly.models.resume import ResumeModel, WorkExperience
from jobaly.models.score import MatchScore
from jobaly.models.warnings import PipelineWarning, WarningKind

logger = logging.getLogger(__name__)

MAX_PLAN_KEYWORDS = 15
MAX_SUMMARY_SKILLS = 5
DEFAULT_BACKOFF = (1.0, 2.0)


def rank_keywords(job: JobModel, lexicon: Lexicon | None = None, limit: int = MAX_PLAN_KEYWORDS) -> list[str]:
    """Title words, then required and preferred skills, then tech terms in the description."""
    lexicon = lexicon or load_lexicon()
    ranked: list[str] = []
    for word in job.title.lower().split():
        word = word.strip(",.()/")
        if len(word) > 3 and word not in lexicon.stop_words:
            ranked.append(word)
    ranked.extend(sorted(job.required_skills))
    ranked.extend(sorted(job.preferred_only))
    if job.description:
        ranked.extend(t for t in lexicon.tech_terms if contains_term(job.description, t))

    seen: set[str] = set()
    unique = []
    for k in ranked:
        if k not in seen:
            seen.add(k)
            unique.append(k)
    return unique[:limit]


def build_summary(resume: ResumeModel, job: JobModel, matched_skills: Sequence[str]) -> str:
    """Two or three sentences aimed at the target role."""
    title = (resume.current_title or "Professional").strip()
    years = resume.years_of_experience
    skills = ", ".join(matched_skills[:MAX_SUMMARY_SKILLS])

    if years and skills:
        first = f"{title} with {_format_years(years)} years of experience and proven expertise in {skills}."
    elif skills:
        first = f"{title} with proven expertise in {skills}."
    elif years:
        first = f"{title} with {_format_years(years)} years of hands-on experience."
    else:
        first = f"{title} with a track record of delivering results."

    target = job.title.strip()
    company = job.company.strip()
    if target and company:
        second = f"Seeking to leverage this experience to contribute to {company} as {_article(target)} {target}."
    elif target:
        second = f"Seeking to contribute as {_article(target)} {target}."
    elif company:
        second = f"Seeking to leverage this experience to contribute to {company}."
    else:
        return first

    third = (
        "Demonstrated ability to deliver results in fast-paced environments "
        "while maintaining high standards of quality and collaboration."
    )
    return " ".join((first, second, third))


def merge_bullets(originals: Sequence[str], rewritten: Sequence[str]) -> tuple[tuple[str, ...], bool]:
    """Apply ``rewritten`` positionally over ``originals``.

    Returns the merged tuple (always ``len(originals)`` long) and whether the
    counts differed. Empty rewrites keep the original at that position.
    """
    merged = []
    for i, original in enumerate(originals):
        candidate = rewritten[i].strip() if i < len(rewritten) and isinstance(rewritten[i], str) else ""
        merged.append(candidate or original)
    return tuple(merged), len(rewritten) != len(originals)


class TailoringPlanner:
    """Builds a :class:`TailoringPlan`, calling the rewriter once per experience."""

    def __init__(
        self,
        rewriter: BulletRewriter | None = None,
        *,
        max_attempts: int = 3,
        backoff_seconds: Sequence[float] = DEFAULT_BACKOFF,
        call_timeout: float = 30.0,
        lexicon: Lexicon | None = None,
    ):
        self.rewriter = rewriter
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = tuple(backoff_seconds) or (0.0,)
        self.call_timeout = call_timeout
        self.lexicon = lexicon or load_lexicon()

    async def plan(
        self,
        resume: ResumeModel,
        job: JobModel,
        match: MatchScore,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TailoringPlan:
        keywords = rank_keywords(job, self.lexicon)
        summary = build_summary(resume, job, match.details.matched_skills)
        skill_text = {c.label: c.raw_value for c in resume.skill_categories}
        context = RewriteContext(job_title=job.title, company=job.company, keywords=tuple(keywords))

        per_company: dict[str, tuple[str, ...]] = {}
        warnings: list[PipelineWarning] = []
        degraded = False
        keys = experience_keys(e.company for e in resume.experiences)

        for key, exp in zip(keys, resume.experiences):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Tailoring cancelled before %s", exp.company)
                raise TailoringCancelled(f"cancelled before experience at {exp.company}")

            originals = tuple(exp.bullet_points)

            if not originals or self.rewriter is None:
                per_company[key] = originals
                continue

            bullets, warning = await self._rewrite_experience(exp, key, context)
            if warning is not None:
                warnings.append(warning)
                if warning.kind in (WarningKind.RATE_LIMITED, WarningKind.GENERATION_FAILURE):
                    degraded = True
            per_company[key] = bullets

        plan = TailoringPlan(
            tailored_summary=summary,
            per_category_skill_text=skill_text,
            per_company_bullets=per_company,
            keywords=tuple(keywords),
            degraded=degraded,
            warnings=tuple(warnings),
        )
        logger.info(
            "Plan built: %d experiences, %d warnings%s",
            len(per_company), len(warnings), " (degraded)" if degraded else "",
        )
        return plan

    async def _rewrite_experience(
        self,
        exp: WorkExperience,
        key: str,
        context: RewriteContext,
    ) -> tuple[tuple[str, ...], PipelineWarning | None]:
        originals = tuple(exp.bullet_points)
        ctx = RewriteContext(
            job_title=context.job_title,
            company=context.company,
            keywords=context.keywords,
            role_title=exp.title,
        )
        try:
            rewritten = await self._call_with_retry(list(originals), ctx)
        except (RateLimited, asyncio.TimeoutError) as e:
            logger.warning("Rewrite for %s gave up after %d attempts: %s", key, self.max_attempts, e)
            return originals, PipelineWarning(
                kind=WarningKind.RATE_LIMITED,
                message=f"kept original bullets after {self.max_attempts} attempts",
                key=key,
            )
        except GenerationFailure as e:
            logger.warning("Rewrite for %s failed: %s", key, e)
            return originals, PipelineWarning(
                kind=WarningKind.GENERATION_FAILURE, message=f"kept original bullets: {e}", key=key
            )
        except Exception as e:
            logger.warning("Rewriter raised unexpectedly for %s", key, exc_info=True)
            return originals, PipelineWarning(
                kind=WarningKind.GENERATION_FAILURE, message=f"kept original bullets: {e!r}", key=key
            )

        merged, mismatch = merge_bullets(originals, rewritten)
        if mismatch:
            logger.warning(
                "Rewriter returned %d bullets for %d at %s", len(rewritten), len(originals), key
            )
            return merged, PipelineWarning(
                kind=WarningKind.COUNT_MISMATCH,
                message=f"expected {len(originals)} bullets, got {len(rewritten)}",
                key=key,
            )
        return merged, None

    async def _call_with_retry(self, bullets: list[str], context: RewriteContext) -> list[str]:
        waits = [wait_fixed(s) for s in self.backoff_seconds]
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_chain(*waits),
            retry=retry_if_exception_type((RateLimited, asyncio.TimeoutError)),
            reraise=True,
        ):
            with attempt:
                n = attempt.retry_state.attempt_number
                if n > 1:
                    logger.info("Retrying rewrite (attempt %d/%d)", n, self.max_attempts)
                return await asyncio.wait_for(
                    self.rewriter.rewrite(bullets, context), timeout=self.call_timeout
                )


def _format_years(years: float) -> str:
    return str(int(years)) if float(years).is_integer() else f"{years:g}"


def _article(word: str) -> str:
    return "an" if word[:1].lower() in "aeiou" else "a"
