"""Bullet-rewriting collaborators used by the tailoring planner."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

import anthropic

from jobaly.cache.rewrite_cache import RewriteCache, rewrite_key
from jobaly.clients.llm_client import LLMClient
from jobaly.exceptions import GenerationFailure, RateLimited
from jobaly.utils.json_parser import extract_string_list

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a professional resume writer. You rewrite the bullet points of one
job entry so they speak to a specific job posting.

Rules:
1. Keep every fact. Never invent employers, numbers, tools or outcomes.
2. Return exactly one rewritten bullet per input bullet, in the same order.
3. Start each bullet with a strong action verb; keep it to one sentence.
4. Work in the posting's keywords only where the original supports them.
5. Keep roughly the original length.

Respond with a JSON array of strings only."""

_TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


@dataclass(frozen=True)
class RewriteContext:
    """What the rewriter knows about the target job."""

    job_title: str = ""
    company: str = ""
    keywords: tuple[str, ...] = ()
    role_title: str = ""  # the candidate's title for this entry


class BulletRewriter(Protocol):
    """Rewrites one experience's bullets in a single call.

    Must return a list with the same length as ``bullets`` on success.
    Raises :class:`RateLimited` for transient failures and
    :class:`GenerationFailure` for permanent ones.
    """

    async def rewrite(self, bullets: list[str], context: RewriteContext) -> list[str]: ...


class LLMBulletRewriter:
    """Claude-backed rewriter."""

    def __init__(self, llm: LLMClient, model: str | None = None, temperature: float = 0.3):
        self.llm = llm
        self.model = model
        self.temperature = temperature

    async def rewrite(self, bullets: list[str], context: RewriteContext) -> list[str]:
        if not bullets:
            return []
        prompt = self._build_prompt(bullets, context)
        try:
            response = await self.llm.generate(
                prompt=prompt,
                system=SYSTEM_PROMPT,
                model=self.model,
                temperature=self.temperature,
            )
        except _TRANSIENT_ERRORS as e:
            raise RateLimited(f"rewrite call throttled or unavailable: {e}") from e
        except anthropic.APIError as e:
            raise GenerationFailure(f"rewrite call rejected: {e}") from e

        try:
            rewritten = extract_string_list(response.text)
        except ValueError as e:
            raise GenerationFailure(f"unusable rewrite response: {e}") from e
        logger.debug("Rewrote %d bullets into %d", len(bullets), len(rewritten))
        return rewritten

    @staticmethod
    def _build_prompt(bullets: Sequence[str], context: RewriteContext) -> str:
        target = context.job_title or "the target role"
        if context.company:
            target += f" at {context.company}"
        keywords = ", ".join(context.keywords) if context.keywords else "(none)"
        role = f"Role: {context.role_title}\n" if context.role_title else ""
        return f"""Target job: {target}
Priority keywords: {keywords}
{role}
Bullets ({len(bullets)}):
{json.dumps(list(bullets), ensure_ascii=False, indent=2)}

Return a JSON array with exactly {len(bullets)} strings."""


class CachedBulletRewriter:
    """Wraps another rewriter with the SQLite rewrite cache."""

    def __init__(self, inner: BulletRewriter, cache: RewriteCache):
        self.inner = inner
        self.cache = cache

    async def rewrite(self, bullets: list[str], context: RewriteContext) -> list[str]:
        key = rewrite_key(bullets, context.job_title, context.company, context.keywords)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Rewrite cache hit for %d bullets", len(bullets))
            return cached
        rewritten = await self.inner.rewrite(bullets, context)
        # only complete answers are worth replaying
        if len(rewritten) == len(bullets) and all(rewritten):
            self.cache.put(key, rewritten)
        return rewritten
