"""Tests for patching DOCX/HWPX packages and the synthesis fallback."""

from io import BytesIO

import pytest
from docx import Document

from jobaly.exceptions import InvalidPackage
from jobaly.models.document import AnchorKind, Patched, Synthesized, TemplateIncompatible
from jobaly.models.plan import TailoringPlan
from jobaly.models.resume import ContactInfo
from jobaly.models.warnings import WarningKind
from jobaly.pipeline.orchestrator import merge_contact
from jobaly.templates.document_patcher import DocumentPatcher, export_document

DOCUMENT = "word/document.xml"


@pytest.fixture
def tailored_plan(sample_resume) -> TailoringPlan:
    return TailoringPlan(
        per_category_skill_text={c.label: c.raw_value for c in sample_resume.skill_categories},
        per_company_bullets={
            "Acme Corp": (
                "Designed REST APIs in Python handling 2M daily requests",
                "Moved core services onto Kubernetes",
            ),
            "Globex": ("Built SQL and Airflow data pipelines",),
        },
    )


def _kinds(result) -> list:
    return [w.kind for w in result.warnings]


def _paragraph(package: bytes, startswith: str):
    return next(p for p in Document(BytesIO(package)).paragraphs if p.text.startswith(startswith))


def _saved(doc) -> bytes:
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


class TestPatch:
    def test_bullets_replaced_in_place(self, sample_docx, sample_resume, tailored_plan, read_docx):
        result = DocumentPatcher().patch(sample_docx, tailored_plan, sample_resume.contact, sample_resume)

        assert isinstance(result, Patched)
        assert result.warnings == ()
        texts = read_docx(result.package)
        assert "Designed REST APIs in Python handling 2M daily requests" in texts
        assert "Moved core services onto Kubernetes" in texts
        assert "Built SQL and Airflow data pipelines" in texts
        assert "Led migration of services to Kubernetes" not in texts
        # headings, dates and summary are untouched
        assert "Senior Software Engineer | Jan 2020 - Present" in texts
        assert "Backend engineer with 6 years of experience building APIs." in texts

    def test_anchor_count(self, sample_docx, sample_resume, tailored_plan):
        result = DocumentPatcher().patch(sample_docx, tailored_plan, sample_resume.contact, sample_resume)
        # name, email, phone, location, one link; two skill labels; two companies
        assert result.anchors_found == 9

    def test_list_numbering_and_styles_kept(self, sample_docx, sample_resume, tailored_plan, zip_entry):
        result = DocumentPatcher().patch(sample_docx, tailored_plan, sample_resume.contact, sample_resume)
        before, after = zip_entry(sample_docx, DOCUMENT), zip_entry(result.package, DOCUMENT)
        assert after.count("<w:numPr>") == before.count("<w:numPr>") == 3
        assert after.count('w:val="Heading1"') == before.count('w:val="Heading1"')

    def test_unchanged_plan_returns_original_bytes(self, sample_docx, sample_resume):
        plan = TailoringPlan(
            per_category_skill_text={c.label: c.raw_value for c in sample_resume.skill_categories},
            per_company_bullets={"Acme Corp": sample_resume.experiences[0].bullet_points},
        )
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)
        assert result.package == sample_docx

    def test_special_characters_escaped(self, sample_docx, sample_resume, read_docx, zip_entry):
        plan = TailoringPlan(per_company_bullets={"Globex": ("Cut R&D costs <30% in Q1",)})
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)
        assert "Cut R&D costs <30% in Q1" in read_docx(result.package)
        assert "Cut R&amp;D costs &lt;30% in Q1" in zip_entry(result.package, DOCUMENT)

    def test_contact_replaced(self, sample_docx, sample_resume, read_docx):
        contact = merge_contact(sample_resume.contact, ContactInfo(email="jane@new.dev", name="Jane Q. Doe"))
        result = DocumentPatcher().patch(sample_docx, TailoringPlan(), contact, sample_resume)
        texts = read_docx(result.package)
        assert "jane@new.dev | (555) 123-4567 | San Francisco, CA" in texts
        assert "Jane Q. Doe" in texts
        assert not any("jane.doe@example.com" in t for t in texts)

    def test_contact_in_header_replaced(self, sample_resume):
        doc = Document()
        doc.sections[0].header.paragraphs[0].text = "jane.doe@example.com | (555) 123-4567"
        doc.add_paragraph("Jane Doe")
        contact = merge_contact(sample_resume.contact, ContactInfo(email="jane@new.dev"))

        result = DocumentPatcher().patch(_saved(doc), TailoringPlan(), contact, sample_resume)

        header = Document(BytesIO(result.package)).sections[0].header
        assert header.paragraphs[0].text == "jane@new.dev | (555) 123-4567"

    def test_skill_value_in_table_cell_replaced(self, sample_resume):
        doc = Document()
        doc.add_paragraph("Jane Doe")
        table = doc.add_table(rows=1, cols=2)
        table.cell(0, 0).text = "Languages: Python, Go, SQL"
        table.cell(0, 1).text = "Tools: Docker, Kubernetes, Git"
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Rust"})

        result = DocumentPatcher().patch(_saved(doc), plan, sample_resume.contact, sample_resume)

        cells = Document(BytesIO(result.package)).tables[0].rows[0].cells
        assert [c.text for c in cells] == ["Languages: Python, Rust", "Tools: Docker, Kubernetes, Git"]

    def test_placeholder_values_replaced(self, make_docx, docx_para, sample_resume, read_docx):
        template = make_docx([docx_para("Your Name"), docx_para("you@example.com")])
        patcher = DocumentPatcher(placeholders={"name": ["Your Name"], "email": ["you@example.com"]})
        result = patcher.patch(template, TailoringPlan(), sample_resume.contact, sample_resume)
        assert read_docx(result.package) == ["Jane Doe", "jane.doe@example.com"]
        assert result.anchors_found == 2

    def test_missing_contact_anchor_warns(self, make_docx, docx_para, sample_resume):
        template = make_docx([docx_para("Jane Doe")])
        result = DocumentPatcher().patch(template, TailoringPlan(), sample_resume.contact, sample_resume)
        missing = {w.key for w in result.warnings if w.kind is WarningKind.ANCHOR_NOT_FOUND}
        assert {"email", "phone", "location", "links[0]"} <= missing

    def test_skill_values_replaced(self, sample_docx, sample_resume):
        plan = TailoringPlan(
            per_category_skill_text={"Languages": "Python, Go, SQL, Rust", "Tools": "Docker, Terraform"}
        )
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)

        languages = _paragraph(result.package, "Languages")
        assert [r.text for r in languages.runs] == ["Languages:", " Python, Go, SQL, Rust"]
        assert languages.runs[0].bold
        assert _paragraph(result.package, "Tools").text == "Tools: Docker, Terraform"

    def test_skill_value_split_over_runs_left_alone_when_unchanged(self, make_docx, docx_para, sample_resume):
        template = make_docx([docx_para("Jane Doe"), docx_para("Languages:", " Python, ", "Go, SQL")])
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Go, SQL"})

        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        assert result.package == template
        assert _paragraph(result.package, "Languages").text == "Languages: Python, Go, SQL"

    def test_skill_value_split_over_runs_rewritten_once(self, make_docx, docx_para, sample_resume):
        template = make_docx([docx_para("Jane Doe"), docx_para("Languages:", " Python, ", "Go, SQL")])
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Rust"})

        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        languages = _paragraph(result.package, "Languages")
        assert languages.text == "Languages: Python, Rust"
        assert [r.text for r in languages.runs] == ["Languages:", " Python, Rust", ""]

    def test_skill_value_sharing_label_run(self, make_docx, docx_para, sample_resume):
        template = make_docx([docx_para("Jane Doe"), docx_para("Languages: Python, ", "Go, SQL")])
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Go, SQL, Rust"})

        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        languages = _paragraph(result.package, "Languages")
        assert [r.text for r in languages.runs] == ["Languages: Python, Go, SQL, Rust", ""]
        assert languages.runs[0].bold

    def test_label_without_value_does_not_touch_next_label(self, make_docx, docx_para, sample_resume, read_docx):
        template = make_docx(
            [docx_para("Jane Doe"), docx_para("Languages:"), docx_para("Tools: Docker, Kubernetes, Git")]
        )
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Go, SQL"})

        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        assert read_docx(result.package) == ["Jane Doe", "Languages:", "Tools: Docker, Kubernetes, Git"]
        assert (WarningKind.ANCHOR_NOT_FOUND, "Languages") in [(w.kind, w.key) for w in result.warnings]

    def test_label_heading_takes_next_paragraph_as_value(self, make_docx, docx_para, sample_resume, read_docx):
        template = make_docx([docx_para("Jane Doe"), docx_para("Languages:"), docx_para("Python, Go, SQL")])
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Go, SQL, Rust"})

        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        assert read_docx(result.package)[1:] == ["Languages:", "Python, Go, SQL, Rust"]

    def test_unknown_skill_category_warns(self, sample_docx, sample_resume):
        plan = TailoringPlan(per_category_skill_text={"Frameworks": "Django"})
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)
        (warning,) = result.warnings
        assert warning.kind is WarningKind.ANCHOR_NOT_FOUND
        assert warning.key == "Frameworks"

    def test_unknown_company_warns(self, sample_docx, sample_resume):
        plan = TailoringPlan(per_company_bullets={"Hooli": ("Did things",)})
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)
        assert [(w.kind, w.key) for w in result.warnings] == [(WarningKind.ANCHOR_NOT_FOUND, "Hooli")]

    def test_overflow_dropped_by_default(self, sample_docx, sample_resume, read_docx):
        plan = TailoringPlan(per_company_bullets={"Globex": ("First bullet", "Second bullet")})
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)
        texts = read_docx(result.package)
        assert "First bullet" in texts
        assert "Second bullet" not in texts
        assert [(w.kind, w.key) for w in result.warnings] == [(WarningKind.BULLET_OVERFLOW, "Globex")]

    def test_overflow_appended(self, sample_docx, sample_resume, read_docx, zip_entry):
        plan = TailoringPlan(per_company_bullets={"Globex": ("First bullet", "Second bullet", "Third bullet")})
        result = DocumentPatcher(overflow_policy="append").patch(
            sample_docx, plan, sample_resume.contact, sample_resume
        )
        texts = read_docx(result.package)
        assert result.warnings == ()
        assert texts.index("First bullet") < texts.index("Second bullet") < texts.index("Third bullet")
        assert texts.index("Third bullet") < texts.index("Skills")
        xml = zip_entry(result.package, DOCUMENT)
        assert xml.count("<w:numPr>") == zip_entry(sample_docx, DOCUMENT).count("<w:numPr>") + 2
        # cloned paragraphs do not reuse paragraph ids
        assert xml.count("w14:paraId") == zip_entry(sample_docx, DOCUMENT).count("w14:paraId")

    def test_plain_paragraph_bullets_found_by_text(self, make_docx, docx_para, sample_resume, read_docx):
        template = make_docx(
            [
                docx_para("Jane Doe"),
                docx_para("Experience"),
                docx_para("Globex"),
                docx_para("Developed data pipelines with SQL and Airflow"),
                docx_para("Education"),
            ]
        )
        plan = TailoringPlan(per_company_bullets={"Globex": ("Built SQL pipelines",)})
        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)
        texts = read_docx(result.package)
        assert "Built SQL pipelines" in texts
        assert "Developed data pipelines with SQL and Airflow" not in texts

    def test_bullets_stop_at_terminal_section(self, make_docx, docx_para, sample_resume, read_docx):
        template = make_docx(
            [
                docx_para("Jane Doe"),
                docx_para("Globex"),
                docx_para("Developed data pipelines with SQL and Airflow", bullet=True),
                docx_para("Certifications"),
                docx_para("AWS Certified Developer", bullet=True),
            ]
        )
        plan = TailoringPlan(per_company_bullets={"Globex": ("One", "Two")})
        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)
        assert "AWS Certified Developer" in read_docx(result.package)
        assert [w.kind for w in result.warnings if w.key == "Globex"] == [WarningKind.BULLET_OVERFLOW]

    def test_no_anchors_is_incompatible(self, make_docx, docx_para, sample_resume, tailored_plan):
        template = make_docx([docx_para("Hello"), docx_para("World")])
        result = DocumentPatcher().patch(template, tailored_plan, sample_resume.contact, sample_resume)
        assert isinstance(result, TemplateIncompatible)
        assert "no contact or skill-category anchors" in result.reason

    def test_unsafe_edit_rolls_back_only_its_anchor(self, sample_docx, sample_resume, read_docx):
        plan = TailoringPlan(
            per_category_skill_text={"Tools": "Docker, Terraform"},
            per_company_bullets={
                # the first Acme bullet is written before the second one fails
                "Acme Corp": ("Designed REST APIs in Python handling 2M daily requests", "Moved\x0bservices"),
                "Globex": ("Built SQL and Airflow data pipelines",),
            },
        )
        result = DocumentPatcher().patch(sample_docx, plan, sample_resume.contact, sample_resume)

        assert isinstance(result, Patched)
        assert [(w.kind, w.key) for w in result.warnings] == [(WarningKind.UNSAFE_EDIT, "Acme Corp")]
        texts = read_docx(result.package)
        assert "Built REST APIs in Python serving 2M requests per day" in texts
        assert "Led migration of services to Kubernetes" in texts
        assert "Built SQL and Airflow data pipelines" in texts
        assert "Tools: Docker, Terraform" in texts

    def test_unsafe_contact_value_rolled_back(self, sample_docx, sample_resume, read_docx):
        contact = merge_contact(sample_resume.contact, ContactInfo(email="jane\x00@new.dev", name="Jane Q. Doe"))
        result = DocumentPatcher().patch(sample_docx, TailoringPlan(), contact, sample_resume)

        assert [(w.kind, w.key) for w in result.warnings] == [(WarningKind.UNSAFE_EDIT, "email")]
        texts = read_docx(result.package)
        assert "Jane Q. Doe" in texts
        assert "jane.doe@example.com | (555) 123-4567 | San Francisco, CA" in texts

    def test_invalid_package_raises(self, sample_resume, tailored_plan):
        with pytest.raises(InvalidPackage):
            DocumentPatcher().patch(b"PK\x03\x04broken", tailored_plan, sample_resume.contact, sample_resume)

    def test_bad_overflow_policy(self):
        with pytest.raises(ValueError, match="overflow_policy"):
            DocumentPatcher(overflow_policy="squeeze")


class TestHwpx:
    @pytest.fixture
    def hwpx_template(self, make_hwpx):
        return make_hwpx(
            [
                "Jane Doe",
                "jane.doe@example.com",
                "Experience",
                "Acme Corp",
                "• Built REST APIs in Python serving 2M requests per day",
                "• Led migration of services to Kubernetes",
                "Skills",
                "Languages: Python, Go, SQL",
            ]
        )

    def test_bullets_keep_glyph(self, hwpx_template, sample_resume, tailored_plan, read_hwpx):
        result = DocumentPatcher().patch(hwpx_template, tailored_plan, sample_resume.contact, sample_resume)
        texts = read_hwpx(result.package)
        assert "• Designed REST APIs in Python handling 2M daily requests" in texts
        assert "• Moved core services onto Kubernetes" in texts
        assert "• Led migration of services to Kubernetes" not in texts

    def test_skill_and_contact_replaced(self, hwpx_template, sample_resume, read_hwpx):
        contact = merge_contact(sample_resume.contact, ContactInfo(email="jane@new.dev"))
        plan = TailoringPlan(per_category_skill_text={"Languages": "Python, Go, SQL, Rust"})
        result = DocumentPatcher().patch(hwpx_template, plan, contact, sample_resume)
        texts = read_hwpx(result.package)
        assert "Languages: Python, Go, SQL, Rust" in texts
        assert "jane@new.dev" in texts

    def test_company_missing_from_template_warns(self, hwpx_template, sample_resume, tailored_plan):
        result = DocumentPatcher().patch(hwpx_template, tailored_plan, sample_resume.contact, sample_resume)
        assert (WarningKind.ANCHOR_NOT_FOUND, "Globex") in [(w.kind, w.key) for w in result.warnings]

    def test_append_policy_cannot_insert(self, hwpx_template, sample_resume, read_hwpx):
        plan = TailoringPlan(per_company_bullets={"Acme Corp": ("One", "Two", "Three")})
        result = DocumentPatcher(overflow_policy="append").patch(
            hwpx_template, plan, sample_resume.contact, sample_resume
        )
        assert [(w.kind, w.key) for w in result.warnings if w.key == "Acme Corp"] == [
            (WarningKind.BULLET_OVERFLOW, "Acme Corp")
        ]
        assert "Three" not in " ".join(read_hwpx(result.package))

    def test_repeated_text_is_not_rewritten(self, make_hwpx, sample_resume, read_hwpx):
        template = make_hwpx(
            [
                "Jane Doe",
                "Experience",
                "Globex",
                "• Developed data pipelines with SQL and Airflow",
                "Education",
                "• Developed data pipelines with SQL and Airflow",
            ]
        )
        plan = TailoringPlan(per_company_bullets={"Globex": ("Built SQL pipelines",)})
        result = DocumentPatcher().patch(template, plan, sample_resume.contact, sample_resume)

        assert (WarningKind.UNSAFE_EDIT, "Globex") in [(w.kind, w.key) for w in result.warnings]
        assert read_hwpx(result.package).count("• Developed data pipelines with SQL and Airflow") == 2


class TestLocate:
    def test_lists_every_anchor_kind(self, sample_docx, sample_resume):
        anchors = DocumentPatcher().locate(sample_docx, sample_resume)
        kinds = {a.kind for a in anchors}
        assert kinds == {AnchorKind.CONTACT, AnchorKind.SKILL_CATEGORY, AnchorKind.COMPANY, AnchorKind.TERMINAL}
        companies = [(a.key, a.start) for a in anchors if a.kind is AnchorKind.COMPANY]
        assert companies == [("Acme Corp", 6), ("Globex", 10)]


class TestExportDocument:
    def test_no_template_synthesizes(self, sample_resume, tailored_plan):
        result = export_document(None, sample_resume, tailored_plan, sample_resume.contact)
        assert isinstance(result, Synthesized)
        assert result.reason == "no template supplied"

    def test_incompatible_template_synthesizes(self, make_docx, docx_para, sample_resume, tailored_plan):
        template = make_docx([docx_para("Hello")])
        result = export_document(template, sample_resume, tailored_plan, sample_resume.contact)
        assert isinstance(result, Synthesized)
        assert WarningKind.TEMPLATE_INCOMPATIBLE in _kinds(result)

    def test_compatible_template_is_patched(self, sample_docx, sample_resume, tailored_plan):
        result = export_document(sample_docx, sample_resume, tailored_plan, sample_resume.contact)
        assert isinstance(result, Patched)
        assert result.path == "patched"

    def test_invalid_package_is_not_synthesized(self, sample_resume, tailored_plan):
        with pytest.raises(InvalidPackage):
            export_document(b"garbage", sample_resume, tailored_plan, sample_resume.contact)
