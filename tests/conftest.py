"""Shared test fixtures."""

from __future__ import annotations

import tempfile
import zipfile
from io import BytesIO
from pathlib import Path
from unittest.mock import AsyncMock
from xml.sax.saxutils import escape

import pytest
from docx import Document
from hwpx.document import HwpxDocument

from jobaly.clients.llm_client import LLMClient, LLMResponse
from jobaly.models.job import JobModel
from jobaly.parsers.structure import parse

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
W14_NS = "http://schemas.microsoft.com/office/word/2010/wordml"

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)
ROOT_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)


def _t(tag: str, text: str) -> str:
    space = ' xml:space="preserve"' if text != text.strip() else ""
    return f"<{tag}{space}>{escape(text)}</{tag}>"


def w_para(*runs: str, bullet: bool = False, style: str | None = None) -> str:
    """One ``w:p`` with a run per string; ``bullet`` adds list numbering."""
    props = ""
    if style:
        props += f'<w:pStyle w:val="{style}"/>'
    if bullet:
        props += '<w:numPr><w:ilvl w:val="0"/><w:numId w:val="1"/></w:numPr>'
    ppr = f"<w:pPr>{props}</w:pPr>" if props else ""
    body = ""
    for i, text in enumerate(runs):
        # a leading label run is bold, as in "Languages:" + " Python, Go"
        rpr = "<w:rPr><w:b/></w:rPr>" if i == 0 and len(runs) > 1 else ""
        body += f"<w:r>{rpr}{_t('w:t', text)}</w:r>"
    return f'<w:p w14:paraId="1A2B3C4D" w14:textId="77777777">{ppr}{body}</w:p>'


def docx_document(paragraphs: list[str]) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:document xmlns:w="{W_NS}" xmlns:w14="{W14_NS}"><w:body>'
        + "".join(paragraphs)
        + '<w:sectPr><w:pgSz w:w="12240" w:h="15840"/></w:sectPr></w:body></w:document>'
    )


def build_zip(entries: list[tuple[str, bytes | str]]) -> bytes:
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, data in entries:
            info = zipfile.ZipInfo(name, date_time=(2024, 1, 2, 3, 4, 6))
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, data)
    return buf.getvalue()


def build_docx(paragraphs: list[str]) -> bytes:
    return build_zip(
        [
            ("[Content_Types].xml", CONTENT_TYPES),
            ("_rels/.rels", ROOT_RELS),
            ("word/document.xml", docx_document(paragraphs)),
        ]
    )


def build_hwpx(texts: list[str]) -> bytes:
    """A HWPX with one paragraph per string, written by python-hwpx."""
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "template.hwpx"
        doc = HwpxDocument.new()
        for text in texts:
            doc.add_paragraph(text)
        doc.save_to_path(str(path))
        doc.close()
        return path.read_bytes()


def docx_texts(package: bytes) -> list[str]:
    """Body paragraph texts of a DOCX, read back with python-docx."""
    return [p.text for p in Document(BytesIO(package)).paragraphs]


def hwpx_texts(package: bytes) -> list[str]:
    """Non-empty paragraph texts of a HWPX, read back with python-hwpx."""
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "patched.hwpx"
        path.write_bytes(package)
        doc = HwpxDocument.open(str(path))
        try:
            return [p.text for p in doc.paragraphs if p.text]
        finally:
            doc.close()


def read_entry(package: bytes, name: str) -> str:
    with zipfile.ZipFile(BytesIO(package)) as archive:
        return archive.read(name).decode("utf-8")


@pytest.fixture
def sample_resume_text() -> str:
    return """Jane Doe
jane.doe@example.com | (555) 123-4567 | San Francisco, CA
linkedin.com/in/janedoe

Summary
Backend engineer with 6 years of experience building APIs.

Experience
Acme Corp
Senior Software Engineer
Jan 2020 - Present
- Built REST APIs in Python serving 2M requests per day
- Led migration of services to Kubernetes

Globex
Software Engineer
2016 - 2019
- Developed data pipelines with SQL and Airflow

Skills
Languages: Python, Go, SQL
Tools: Docker, Kubernetes, Git

Education
State University, B.S. in Computer Science, 2016
"""


@pytest.fixture
def sample_resume(sample_resume_text):
    return parse(sample_resume_text, reference_year=2024)


@pytest.fixture
def sample_job() -> JobModel:
    return JobModel(
        title="Senior Backend Engineer",
        company="Initech",
        description=(
            "Backend platform role. You will build Python services and run them on Kubernetes. "
            "Strong Python skills and hands-on Kubernetes operations are expected. "
            "Experience with Terraform and Terraform modules is a plus."
        ),
        required_skills={"python", "kubernetes", "aws"},
        preferred_skills={"terraform", "docker"},
        experience_years=5,
    )


@pytest.fixture
def template_paragraphs() -> list[str]:
    """A DOCX body laid out like the sample resume."""
    return [
        w_para("Jane Doe", style="Title"),
        w_para("jane.doe@example.com | (555) 123-4567 | San Francisco, CA"),
        w_para("linkedin.com/in/janedoe"),
        w_para("Summary", style="Heading1"),
        w_para("Backend engineer with 6 years of experience building APIs."),
        w_para("Experience", style="Heading1"),
        w_para("Acme Corp"),
        w_para("Senior Software Engineer | Jan 2020 - Present"),
        w_para("Built REST APIs in Python serving 2M requests per day", bullet=True),
        w_para("Led migration of services to Kubernetes", bullet=True),
        w_para("Globex"),
        w_para("Software Engineer | 2016 - 2019"),
        w_para("Developed data pipelines with SQL and Airflow", bullet=True),
        w_para("Skills", style="Heading1"),
        w_para("Languages:", " Python, Go, SQL"),
        w_para("Tools: Docker, Kubernetes, Git"),
        w_para("Education", style="Heading1"),
        w_para("State University, B.S. in Computer Science, 2016"),
    ]


@pytest.fixture
def sample_docx(template_paragraphs) -> bytes:
    return build_docx(template_paragraphs)


@pytest.fixture
def make_docx():
    return build_docx


@pytest.fixture
def make_hwpx():
    return build_hwpx


@pytest.fixture
def docx_para():
    return w_para


@pytest.fixture
def read_docx():
    return docx_texts


@pytest.fixture
def read_hwpx():
    return hwpx_texts


@pytest.fixture
def zip_entry():
    return read_entry


@pytest.fixture
def mock_rewriter():
    """Rewriter that prefixes every bullet, one output per input."""
    rewriter = AsyncMock()
    rewriter.rewrite = AsyncMock(
        side_effect=lambda bullets, context: [f"Tailored {b}" for b in bullets]
    )
    return rewriter


@pytest.fixture
def mock_llm_client() -> LLMClient:
    """Create a mock LLM client."""
    client = AsyncMock(spec=LLMClient)
    client.generate = AsyncMock(
        return_value=LLMResponse(text="[]", input_tokens=100, output_tokens=50)
    )
    client.generate_json = AsyncMock(return_value=[])
    return client
