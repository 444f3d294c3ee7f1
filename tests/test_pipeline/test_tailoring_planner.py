"""Tests for the tailoring planner."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from jobaly.exceptions import GenerationFailure, RateLimited, TailoringCancelled
from jobaly.models.job import JobModel
from jobaly.models.resume import ResumeModel, WorkExperience
from jobaly.models.warnings import WarningKind
from jobaly.pipeline.match_scorer import score
from jobaly.pipeline.tailoring_planner import (
    TailoringPlanner,
    build_summary,
    merge_bullets,
    rank_keywords,
)


@pytest.fixture
def match(sample_resume, sample_job):
    return score(sample_resume, sample_job)


def _planner(rewriter, **kwargs) -> TailoringPlanner:
    kwargs.setdefault("backoff_seconds", (0.0,))
    return TailoringPlanner(rewriter, **kwargs)


class TestPlan:
    async def test_rewrites_every_experience(self, sample_resume, sample_job, match, mock_rewriter):
        plan = await _planner(mock_rewriter).plan(sample_resume, sample_job, match)

        assert plan.per_company_bullets == {
            "Acme Corp": (
                "Tailored Built REST APIs in Python serving 2M requests per day",
                "Tailored Led migration of services to Kubernetes",
            ),
            "Globex": ("Tailored Developed data pipelines with SQL and Airflow",),
        }
        assert plan.degraded is False
        assert plan.warnings == ()
        assert mock_rewriter.rewrite.await_count == 2

    async def test_context_carries_job_and_role(self, sample_resume, sample_job, match, mock_rewriter):
        await _planner(mock_rewriter).plan(sample_resume, sample_job, match)
        bullets, context = mock_rewriter.rewrite.await_args_list[0].args
        assert bullets == list(sample_resume.experiences[0].bullet_points)
        assert context.job_title == "Senior Backend Engineer"
        assert context.company == "Initech"
        assert context.role_title == "Senior Software Engineer"
        assert "python" in context.keywords

    async def test_skill_text_is_preserved(self, sample_resume, sample_job, match, mock_rewriter):
        plan = await _planner(mock_rewriter).plan(sample_resume, sample_job, match)
        assert plan.per_category_skill_text == {
            "Languages": "Python, Go, SQL",
            "Tools": "Docker, Kubernetes, Git",
        }

    async def test_without_rewriter_keeps_originals(self, sample_resume, sample_job, match):
        plan = await TailoringPlanner().plan(sample_resume, sample_job, match)
        assert plan.per_company_bullets["Globex"] == ("Developed data pipelines with SQL and Airflow",)
        assert plan.tailored_summary.startswith("Senior Software Engineer with 6 years of experience")

    async def test_count_mismatch_keeps_length(self, sample_resume, sample_job, match):
        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(return_value=["Only one"])
        plan = await _planner(rewriter).plan(sample_resume, sample_job, match)

        acme = plan.per_company_bullets["Acme Corp"]
        assert acme == ("Only one", "Led migration of services to Kubernetes")
        mismatches = [w for w in plan.warnings if w.kind is WarningKind.COUNT_MISMATCH]
        assert [w.key for w in mismatches] == ["Acme Corp"]
        assert plan.degraded is False

    async def test_rate_limited_retries_then_succeeds(self, sample_resume, sample_job, match):
        calls = {"n": 0}

        async def flaky(bullets, context):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RateLimited("slow down")
            return [b.upper() for b in bullets]

        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(side_effect=flaky)
        plan = await _planner(rewriter).plan(sample_resume, sample_job, match)

        assert plan.per_company_bullets["Acme Corp"][0].isupper()
        assert plan.warnings == ()
        assert rewriter.rewrite.await_count == 3  # two for Acme, one for Globex

    async def test_rate_limited_exhausted_degrades(self, sample_resume, sample_job, match):
        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(side_effect=RateLimited("slow down"))
        plan = await _planner(rewriter, max_attempts=2).plan(sample_resume, sample_job, match)

        assert plan.degraded is True
        assert plan.per_company_bullets["Acme Corp"] == sample_resume.experiences[0].bullet_points
        assert {w.kind for w in plan.warnings} == {WarningKind.RATE_LIMITED}
        assert rewriter.rewrite.await_count == 4

    async def test_generation_failure_is_not_retried(self, sample_resume, sample_job, match):
        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(side_effect=GenerationFailure("refused"))
        plan = await _planner(rewriter).plan(sample_resume, sample_job, match)

        assert plan.degraded is True
        assert rewriter.rewrite.await_count == 2
        assert all(w.kind is WarningKind.GENERATION_FAILURE for w in plan.warnings)

    async def test_timeout_counts_as_transient(self, sample_resume, sample_job, match):
        async def hang(bullets, context):
            await asyncio.sleep(10)

        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(side_effect=hang)
        planner = _planner(rewriter, max_attempts=1, call_timeout=0.01)
        plan = await planner.plan(sample_resume, sample_job, match)

        assert plan.degraded is True
        assert {w.kind for w in plan.warnings} == {WarningKind.RATE_LIMITED}

    async def test_cancel_event_stops_before_next_experience(self, sample_resume, sample_job, match):
        cancel = asyncio.Event()

        async def cancel_after_first(bullets, context):
            cancel.set()
            return bullets

        rewriter = AsyncMock()
        rewriter.rewrite = AsyncMock(side_effect=cancel_after_first)
        with pytest.raises(TailoringCancelled):
            await _planner(rewriter).plan(sample_resume, sample_job, match, cancel_event=cancel)
        assert rewriter.rewrite.await_count == 1

    async def test_repeated_company_gets_suffixed_key(self, sample_job, match, mock_rewriter):
        resume = ResumeModel(
            raw_text="",
            experiences=(
                WorkExperience(company="Acme", title="Lead", bullet_points=("a",)),
                WorkExperience(company="Acme", title="Dev", bullet_points=("b",)),
            ),
        )
        plan = await _planner(mock_rewriter).plan(resume, sample_job, match)
        assert plan.per_company_bullets == {"Acme": ("Tailored a",), "Acme [2]": ("Tailored b",)}

    async def test_experience_without_bullets_skips_rewriter(self, sample_job, match, mock_rewriter):
        resume = ResumeModel(raw_text="", experiences=(WorkExperience(company="Acme", title="Dev"),))
        plan = await _planner(mock_rewriter).plan(resume, sample_job, match)
        assert plan.per_company_bullets == {"Acme": ()}
        mock_rewriter.rewrite.assert_not_awaited()


class TestMergeBullets:
    def test_same_length(self):
        assert merge_bullets(["a", "b"], ["A", "B"]) == (("A", "B"), False)

    def test_longer_rewrite_is_truncated(self):
        assert merge_bullets(["a"], ["A", "B"]) == (("A",), True)

    def test_blank_rewrite_keeps_original(self):
        assert merge_bullets(["a", "b"], ["", " B "]) == (("a", "B"), False)


class TestKeywordsAndSummary:
    def test_rank_keywords_order(self, sample_job):
        keywords = rank_keywords(sample_job)
        assert keywords[:2] == ["senior", "backend"]
        assert keywords.index("aws") < keywords.index("docker")
        assert len(keywords) == len(set(keywords))

    def test_summary_mentions_target(self, sample_resume, sample_job):
        summary = build_summary(sample_resume, sample_job, ["python", "docker"])
        assert summary.startswith(
            "Senior Software Engineer with 6 years of experience and proven expertise in python, docker."
        )
        assert "contribute to Initech as a Senior Backend Engineer" in summary

    def test_summary_without_job_is_one_sentence(self):
        summary = build_summary(ResumeModel(raw_text=""), JobModel(), [])
        assert summary == "Professional with a track record of delivering results."
