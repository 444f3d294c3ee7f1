"""Tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from jobaly.models import (
    ContactInfo,
    JobModel,
    MatchScore,
    PipelineWarning,
    ResumeModel,
    ScoreWeights,
    SectionKind,
    SkillCategory,
    TailoringPlan,
    WarningKind,
    company_key,
    experience_keys,
    split_company_key,
)


class TestScoreWeights:
    def test_defaults_sum_to_one(self):
        w = ScoreWeights()
        assert w.skills + w.experience + w.title + w.keywords == pytest.approx(1.0)

    def test_custom_weights(self):
        w = ScoreWeights(skills=0.5, experience=0.2, title=0.2, keywords=0.1)
        assert w.skills == 0.5

    def test_sum_not_one_rejected(self):
        with pytest.raises(ValidationError, match="sum to 1.0"):
            ScoreWeights(skills=0.5, experience=0.5, title=0.5, keywords=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            ScoreWeights(skills=1.2, experience=-0.2, title=0.0, keywords=0.0)

    def test_frozen(self):
        w = ScoreWeights()
        with pytest.raises(ValidationError):
            w.skills = 0.9


class TestJobModel:
    def test_skills_lowercased_and_stripped(self):
        job = JobModel(title="Dev", required_skills=[" Python ", "SQL", ""])
        assert job.required_skills == frozenset({"python", "sql"})

    def test_comma_separated_skills(self):
        job = JobModel(preferred_skills="Docker, Terraform")
        assert job.preferred_skills == frozenset({"docker", "terraform"})

    def test_unconstrained_by_default(self):
        job = JobModel()
        assert job.experience_years is None
        assert job.education_level is None

    def test_negative_years_rejected(self):
        with pytest.raises(ValidationError, match="experience_years"):
            JobModel(experience_years=-1)

    def test_preferred_only_excludes_required(self):
        job = JobModel(required_skills={"python"}, preferred_skills={"python", "go"})
        assert job.preferred_only == frozenset({"go"})
        assert job.all_skills == frozenset({"python", "go"})

    def test_none_text_fields_become_empty(self):
        job = JobModel(title=None, company=None)
        assert job.title == ""
        assert job.company == ""


class TestResumeModel:
    def test_all_skills_unions_every_group(self):
        resume = ResumeModel(
            raw_text="",
            hard_skills=("Python",),
            tools=("Git",),
            uncategorized_skills=("Excel",),
            skill_categories=(SkillCategory(label="Cloud", items=("AWS", " GCP "), raw_value="AWS,  GCP "),),
        )
        assert resume.all_skills() == {"python", "git", "excel", "aws", "gcp"}

    def test_section_lookup_missing(self):
        assert ResumeModel(raw_text="x").section(SectionKind.SKILLS) is None

    def test_contact_defaults_empty(self):
        resume = ResumeModel(raw_text="")
        assert resume.contact == ContactInfo()
        assert resume.contact.links == ()


class TestMatchScore:
    def test_bounds_enforced(self):
        with pytest.raises(ValidationError):
            MatchScore(overall=101, skills=0, experience=0, title=0, keywords=0)


class TestCompanyKeys:
    def test_first_occurrence_is_plain_name(self):
        assert company_key("Acme Corp") == "Acme Corp"
        assert company_key("  Acme Corp ", 1) == "Acme Corp"

    def test_later_occurrences_are_suffixed(self):
        assert company_key("Acme Corp", 2) == "Acme Corp [2]"

    def test_split_is_inverse(self):
        assert split_company_key("Acme Corp [3]") == ("Acme Corp", 3)
        assert split_company_key("Acme Corp") == ("Acme Corp", 1)

    def test_experience_keys_count_case_insensitively(self):
        keys = experience_keys(["Acme", "Globex", "ACME", "acme"])
        assert keys == ["Acme", "Globex", "ACME [2]", "acme [3]"]


class TestWarningsAndPlan:
    def test_warning_str_includes_kind_and_key(self):
        w = PipelineWarning(kind=WarningKind.BULLET_OVERFLOW, message="1 dropped", key="Acme")
        assert str(w) == "[bullet_overflow] Acme: 1 dropped"

    def test_warning_str_without_key(self):
        w = PipelineWarning(kind=WarningKind.TEMPLATE_INCOMPATIBLE, message="no anchors")
        assert str(w) == "[template_incompatible] no anchors"

    def test_plan_defaults(self):
        plan = TailoringPlan()
        assert plan.degraded is False
        assert plan.per_company_bullets == {}
        assert plan.warnings == ()

    def test_plan_mappings_are_read_only(self):
        skills = {"Languages": "Python"}
        plan = TailoringPlan(per_category_skill_text=skills, per_company_bullets={"Acme": ("Shipped",)})

        with pytest.raises(TypeError):
            plan.per_category_skill_text["Languages"] = "Go"
        with pytest.raises(TypeError):
            plan.per_company_bullets["Hooli"] = ("Joined",)
        with pytest.raises(TypeError):
            TailoringPlan().per_company_bullets["Acme"] = ()

        # the caller's dict is copied, not shared
        skills["Languages"] = "Go"
        assert plan.per_category_skill_text == {"Languages": "Python"}
        assert plan.model_dump()["per_company_bullets"] == {"Acme": ("Shipped",)}
