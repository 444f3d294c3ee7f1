"""Main pipeline orchestrator: parse -> score -> plan -> export."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from jobaly.cache.rewrite_cache import RewriteCache
from jobaly.clients.bullet_rewriter import BulletRewriter, CachedBulletRewriter, LLMBulletRewriter
from jobaly.clients.llm_client import LLMClient
from jobaly.config import AppConfig
from jobaly.lexicon import Lexicon, load_lexicon
from jobaly.models.document import Patched, Synthesized
from jobaly.models.job import JobModel
from jobaly.models.plan import TailoringPlan
from jobaly.models.resume import ContactInfo, MarkupLine, ResumeModel
from jobaly.models.score import MatchScore
from jobaly.models.warnings import PipelineWarning, WarningKind
from jobaly.parsers.job_normalizer import normalize_job
from jobaly.parsers.structure import parse_with_warnings
from jobaly.pipeline.match_scorer import MatchScorer
from jobaly.pipeline.tailoring_planner import TailoringPlanner
from jobaly.templates.document_patcher import DocumentPatcher, export_document

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    SYNTHESIZED = "synthesized"


@dataclass
class PipelineResult:
    """Complete result from the tailoring pipeline."""

    resume: ResumeModel
    job: JobModel
    score: MatchScore
    plan: TailoringPlan
    document: Patched | Synthesized
    outcome: Outcome
    warnings: list[PipelineWarning] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    metadata: dict = field(default_factory=dict)


def merge_contact(base: ContactInfo, override: ContactInfo | None) -> ContactInfo:
    """Fields set on ``override`` win; everything else comes from ``base``."""
    if override is None:
        return base
    return ContactInfo(
        name=override.name or base.name,
        email=override.email or base.email,
        phone=override.phone or base.phone,
        location=override.location or base.location,
        links=override.links or base.links,
    )


def decide_outcome(document: Patched | Synthesized, plan: TailoringPlan, warnings: Sequence[PipelineWarning]) -> Outcome:
    if isinstance(document, Synthesized):
        return Outcome.SYNTHESIZED
    if plan.degraded or any(w.kind != WarningKind.PARSE_DEGRADED for w in warnings):
        return Outcome.PARTIAL
    return Outcome.FULL


def build_rewriter(config: AppConfig, llm: LLMClient | None = None) -> BulletRewriter:
    """Claude-backed rewriter, behind the SQLite cache unless the TTL is 0."""
    llm = llm or LLMClient(
        timeout=config.llm.timeout,
        max_retries=config.llm.max_retries,
        model=config.llm.model,
    )
    rewriter: BulletRewriter = LLMBulletRewriter(llm)
    if config.cache.ttl_days > 0:
        cache = RewriteCache(config.cache.resolved_db_path, ttl_days=config.cache.ttl_days)
        rewriter = CachedBulletRewriter(rewriter, cache)
    return rewriter


class TailoringPipeline:
    """Runs one resume against one job and produces a document.

    One instance handles one document at a time; independent instances can
    run concurrently.
    """

    def __init__(
        self,
        *,
        scorer: MatchScorer | None = None,
        planner: TailoringPlanner | None = None,
        patcher: DocumentPatcher | None = None,
        lexicon: Lexicon | None = None,
    ):
        self.lexicon = lexicon or load_lexicon()
        self.scorer = scorer or MatchScorer(lexicon=self.lexicon)
        self.planner = planner or TailoringPlanner(lexicon=self.lexicon)
        self.patcher = patcher or DocumentPatcher(lexicon=self.lexicon)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        rewriter: BulletRewriter | None = None,
        overflow_policy: str | None = None,
    ) -> TailoringPipeline:
        """Wire every stage from ``config``.

        ``rewriter`` is used as given; pass ``None`` with ``rewrite.enabled``
        false to keep original bullets.
        """
        lexicon = load_lexicon(config.lexicon_path)
        scorer = MatchScorer(
            weights=config.scoring.weights,
            desired_titles=config.scoring.desired_titles,
            min_description_chars=config.scoring.min_description_chars,
            lexicon=lexicon,
        )
        planner = TailoringPlanner(
            rewriter if config.rewrite.enabled else None,
            max_attempts=config.rewrite.max_attempts,
            backoff_seconds=config.rewrite.backoff_seconds,
            call_timeout=config.rewrite.call_timeout,
            lexicon=lexicon,
        )
        patcher = DocumentPatcher(
            overflow_policy=overflow_policy or config.patch.overflow_policy,
            terminal_sections=config.patch.terminal_sections,
            placeholders=config.patch.placeholders,
            lexicon=lexicon,
        )
        return cls(scorer=scorer, planner=planner, patcher=patcher, lexicon=lexicon)

    async def run(
        self,
        resume_text: str,
        job: JobModel | Mapping[str, Any],
        *,
        markup: Sequence[MarkupLine] | None = None,
        package_bytes: bytes | None = None,
        contact: ContactInfo | None = None,
        cancel_event: asyncio.Event | None = None,
        on_phase: Callable[[str, str], None] | None = None,
    ) -> PipelineResult:
        """Run the full tailoring pipeline.

        Args:
            resume_text: Resume as plain text.
            job: Job posting, normalized or as loose key/value data.
            markup: Optional per-line formatting flags for ``resume_text``.
            package_bytes: Original DOCX/HWPX to patch; ``None`` synthesizes.
            contact: Contact values to write; unset fields keep the parsed ones.
            cancel_event: Checked between experiences while planning.
            on_phase: Optional callback(phase_name, detail) for progress.

        Raises:
            InvalidPackage: ``package_bytes`` is not a usable package.
            TailoringCancelled: ``cancel_event`` was set during planning.
        """
        start = time.monotonic()

        def _notify(phase: str, detail: str = ""):
            if on_phase:
                on_phase(phase, detail)

        _notify("parse", "parsing resume")
        parsed = parse_with_warnings(resume_text, markup, lexicon=self.lexicon)
        resume = parsed.resume
        job_model = normalize_job(job, lexicon=self.lexicon)

        _notify("score", f"scoring against {job_model.title or 'job'}")
        match = self.scorer.score(resume, job_model)

        _notify("plan", f"{len(resume.experiences)} experiences")
        plan = await self.planner.plan(resume, job_model, match, cancel_event=cancel_event)

        _notify("export", "patching template" if package_bytes is not None else "synthesizing")
        document = export_document(
            package_bytes,
            resume,
            plan,
            merge_contact(resume.contact, contact),
            patcher=self.patcher,
        )

        warnings = [*parsed.warnings, *plan.warnings, *document.warnings]
        outcome = decide_outcome(document, plan, warnings)
        elapsed = time.monotonic() - start
        logger.info(
            "Pipeline finished: score=%d outcome=%s warnings=%d (%.1fs)",
            match.overall, outcome.value, len(warnings), elapsed,
        )
        return PipelineResult(
            resume=resume,
            job=job_model,
            score=match,
            plan=plan,
            document=document,
            outcome=outcome,
            warnings=warnings,
            elapsed_seconds=elapsed,
            metadata={"path": document.path, "anchors_found": getattr(document, "anchors_found", 0)},
        )
