"""Reference text + markup extraction for resume files (DOCX, PDF, TXT, MD)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from jobaly.models.resume import MarkupLine

logger = logging.getLogger(__name__)

_LIST_STYLE_PREFIXES = ("list", "bullet")


@dataclass(frozen=True)
class ExtractedText:
    text: str
    markup: list[MarkupLine] = field(default_factory=list)


def extract_resume(file_path: str | Path) -> ExtractedText:
    """Extract plain text and per-line formatting flags from a resume file."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return _extract_pdf(path)
    elif suffix == ".docx":
        return _extract_docx(path)
    elif suffix in (".txt", ".md"):
        return ExtractedText(text=path.read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Unsupported file format: {path.suffix}")


def _extract_pdf(path: Path) -> ExtractedText:
    import fitz  # pymupdf

    lines: list[str] = []
    markup: list[MarkupLine] = []
    doc = fitz.open(str(path))
    try:
        for page in doc:
            for block in page.get_text("dict").get("blocks", []):
                for line in block.get("lines", []):
                    spans = [s for s in line.get("spans", []) if s.get("text", "").strip()]
                    if not spans:
                        continue
                    text = "".join(s["text"] for s in line["spans"]).strip()
                    # flags bit 4 is bold in PyMuPDF span flags
                    bold = all(s.get("flags", 0) & 16 for s in spans)
                    italic = all(s.get("flags", 0) & 2 for s in spans)
                    lines.append(text)
                    markup.append(MarkupLine(text=text, bold=bold, italic=italic))
    finally:
        doc.close()
    return ExtractedText(text="\n".join(lines), markup=markup)


def _extract_docx(path: Path) -> ExtractedText:
    from docx import Document

    doc = Document(str(path))
    lines: list[str] = []
    markup: list[MarkupLine] = []

    # contact details often live in the page header, outside the body flow
    for section in doc.sections:
        for paragraph in section.header.paragraphs:
            _add_paragraph(paragraph, lines, markup)

    for paragraph in doc.paragraphs:
        _add_paragraph(paragraph, lines, markup)

    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                for paragraph in cell.paragraphs:
                    _add_paragraph(paragraph, lines, markup)

    logger.debug("Extracted %d lines from %s", len(lines), path.name)
    return ExtractedText(text="\n".join(lines), markup=markup)


def _add_paragraph(paragraph, lines: list[str], markup: list[MarkupLine]) -> None:
    text = paragraph.text.strip()
    if not text:
        return
    style_name = (paragraph.style.name if paragraph.style is not None else "") or ""
    heading = style_name.lower().startswith(("heading", "title"))
    runs = [r for r in paragraph.runs if r.text.strip()]
    bold = bool(runs) and all(r.bold for r in runs)
    italic = bool(runs) and all(r.italic for r in runs)
    p_pr = paragraph._p.pPr
    list_item = (p_pr is not None and p_pr.numPr is not None) or style_name.lower().startswith(
        _LIST_STYLE_PREFIXES
    )
    lines.append(text)
    markup.append(MarkupLine(text=text, bold=bold, italic=italic, heading=heading, list_item=list_item))
