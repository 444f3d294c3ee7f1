"""Text-node index over one document part, anchor locators, and scoped edits.

For DOCX a text node is a python-docx run (hyperlink runs included), so an
edit rewrites the run's text and keeps its formatting. python-hwpx exposes
text per paragraph, so an HWPX node is a whole paragraph and edits go
through ``HwpxDocument.replace_text_in_runs``.

Anchor ``start``/``end`` are paragraph positions within the part.
"""

from __future__ import annotations

import logging
import re
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence

from docx.text.hyperlink import Hyperlink
from docx.text.paragraph import Paragraph as DocxParagraph

from jobaly.exceptions import UnsafeEdit
from jobaly.models.document import AnchorKind, DocumentAnchor
from jobaly.models.plan import company_key

logger = logging.getLogger(__name__)

_LEADING_GLYPH_RE = re.compile(r"^\s*(?:[\u2022\u25cf\u25cb\u25a0\u25a1\u25aa\u25ab\u25e6\u2023\u2043]|[\u2013*-](?=\s|$))\s*")
_XML_ILLEGAL_RE = re.compile(r"[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")
_LIST_STYLE_MARKERS = ("list", "bullet")
_PARA_IDS = (
    "{http://schemas.microsoft.com/office/word/2010/wordml}paraId",
    "{http://schemas.microsoft.com/office/word/2010/wordml}textId",
)


def check_text(text: str) -> None:
    """Raise :class:`UnsafeEdit` if ``text`` cannot be stored as XML character data."""
    m = _XML_ILLEGAL_RE.search(text)
    if m:
        raise UnsafeEdit(f"character U+{ord(m.group(0)):04X} is not allowed in XML")


@dataclass
class Paragraph:
    index: int
    is_list: bool = False
    node_indices: list[int] = field(default_factory=list)
    element: Any = None


@dataclass
class TextNode:
    index: int
    text: str
    paragraph: int | None
    run: Any = None


class MarkupIndex:
    """Paragraphs and text nodes of one part, in document order."""

    def __init__(self, nodes: list[TextNode], paragraphs: list[Paragraph]):
        self.nodes = nodes
        self.paragraphs = paragraphs

    @classmethod
    def from_docx(cls, paragraphs: Iterable[DocxParagraph]) -> MarkupIndex:
        nodes: list[TextNode] = []
        paras: list[Paragraph] = []
        for para in paragraphs:
            entry = Paragraph(index=len(paras), is_list=_docx_is_list(para), element=para)
            for item in para.iter_inner_content():
                runs = item.runs if isinstance(item, Hyperlink) else [item]
                for run in runs:
                    node = TextNode(index=len(nodes), text=run.text, paragraph=entry.index, run=run)
                    nodes.append(node)
                    entry.node_indices.append(node.index)
            paras.append(entry)
        return cls._finish(nodes, paras)

    @classmethod
    def from_hwpx(cls, paragraphs: Iterable[Any]) -> MarkupIndex:
        nodes: list[TextNode] = []
        paras: list[Paragraph] = []
        for para in paragraphs:
            entry = Paragraph(index=len(paras), element=para)
            node = TextNode(index=len(nodes), text=para.text or "", paragraph=entry.index)
            nodes.append(node)
            entry.node_indices.append(node.index)
            paras.append(entry)
        return cls._finish(nodes, paras)

    @classmethod
    def _finish(cls, nodes: list[TextNode], paragraphs: list[Paragraph]) -> MarkupIndex:
        index = cls(nodes, paragraphs)
        for para in paragraphs:
            if not para.is_list and _LEADING_GLYPH_RE.match(index.paragraph_text(para)):
                para.is_list = True
        logger.debug("Indexed %d paragraphs, %d text nodes", len(paragraphs), len(nodes))
        return index

    def paragraph_text(self, para: Paragraph) -> str:
        return "".join(self.nodes[i].text for i in para.node_indices)

    def nodes_in(self, para: Paragraph) -> list[TextNode]:
        return [self.nodes[i] for i in para.node_indices]

    def paragraph_of(self, node: TextNode) -> Paragraph | None:
        return self.paragraphs[node.paragraph] if node.paragraph is not None else None


def _docx_is_list(para: DocxParagraph) -> bool:
    p = para._p
    if p.pPr is not None and p.pPr.numPr is not None:
        return True
    style = (p.style or "").lower()
    return any(marker in style for marker in _LIST_STYLE_MARKERS)


# ---------------------------------------------------------------------------
# Anchor locators
# ---------------------------------------------------------------------------

class AnchorLocator(Protocol):
    """Finds anchors of one kind in an indexed part."""

    def locate(self, index: MarkupIndex, part: str) -> list[DocumentAnchor]: ...


def _node_anchor(key: str, kind: AnchorKind, part: str, node: TextNode) -> DocumentAnchor:
    para = node.paragraph if node.paragraph is not None else -1
    return DocumentAnchor(key=key, kind=kind, part=part, start=para, end=para + 1, node_index=node.index)


def _paragraph_anchor(key: str, kind: AnchorKind, part: str, para: Paragraph) -> DocumentAnchor:
    first = para.node_indices[0] if para.node_indices else -1
    return DocumentAnchor(key=key, kind=kind, part=part, start=para.index, end=para.index + 1, node_index=first)


def norm_label(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip().rstrip(":").strip()).casefold()


class ContactLocator:
    """Text nodes containing any of the candidate values for one field."""

    def __init__(self, field_name: str, candidates: Iterable[str]):
        self.field_name = field_name
        self.candidates = [c for c in candidates if c and c.strip()]

    def locate(self, index: MarkupIndex, part: str) -> list[DocumentAnchor]:
        return [
            _node_anchor(self.field_name, AnchorKind.CONTACT, part, node)
            for node in index.nodes
            if any(c in node.text for c in self.candidates)
        ]


class SkillCategoryLocator:
    """Label nodes (``Label`` or ``Label:``) or ``Label: value`` nodes."""

    def __init__(self, labels: Iterable[str]):
        self.labels = list(labels)

    def locate(self, index: MarkupIndex, part: str) -> list[DocumentAnchor]:
        anchors = []
        for label in self.labels:
            wanted = norm_label(label)
            matches = [n for n in index.nodes if norm_label(n.text.split(":", 1)[0]) == wanted]
            if not matches:
                continue
            # "Languages:" beats a bare "Languages" heading elsewhere
            best = next((n for n in matches if ":" in n.text or self._colon_follows(index, n)), matches[0])
            anchors.append(_node_anchor(label, AnchorKind.SKILL_CATEGORY, part, best))
        return anchors

    @staticmethod
    def _colon_follows(index: MarkupIndex, node: TextNode) -> bool:
        nxt = node.index + 1
        return (
            nxt < len(index.nodes)
            and index.nodes[nxt].paragraph == node.paragraph
            and index.nodes[nxt].text.lstrip().startswith(":")
        )


class TerminalSectionLocator:
    """Paragraphs whose whole text is a section label that ends experience."""

    def __init__(self, labels: Iterable[str]):
        self.labels = {norm_label(label): label for label in labels}

    def locate(self, index: MarkupIndex, part: str) -> list[DocumentAnchor]:
        anchors = []
        for para in index.paragraphs:
            label = self.labels.get(norm_label(index.paragraph_text(para)))
            if label is not None:
                anchors.append(_paragraph_anchor(label, AnchorKind.TERMINAL, part, para))
        return anchors


class CompanyLocator:
    """Short, non-list paragraphs that name a company, in document order.

    Keys carry an occurrence suffix, so the second paragraph naming the same
    company is keyed ``"<company> [2]"``. When ``section_labels`` are given,
    only paragraphs after the first such heading are considered.
    """

    max_line_chars = 120

    def __init__(self, companies: Iterable[str], section_labels: Sequence[str] = ()):
        self.companies = sorted({c.strip() for c in companies if c.strip()}, key=len, reverse=True)
        self.section_labels = {norm_label(s) for s in section_labels}

    def locate(self, index: MarkupIndex, part: str) -> list[DocumentAnchor]:
        anchors = []
        seen: dict[str, int] = {}
        patterns = [
            (c, re.compile(rf"(?<![\w]){re.escape(c)}(?![\w])", re.IGNORECASE)) for c in self.companies
        ]
        first = 0
        if self.section_labels:
            first = next(
                (p.index + 1 for p in index.paragraphs if norm_label(index.paragraph_text(p)) in self.section_labels),
                0,
            )
        for para in index.paragraphs[first:]:
            text = index.paragraph_text(para).strip()
            if not text or para.is_list or len(text) > self.max_line_chars:
                continue
            for company, pattern in patterns:
                if pattern.search(text):
                    n = seen.get(company.casefold(), 0) + 1
                    seen[company.casefold()] = n
                    anchors.append(_paragraph_anchor(company_key(company, n), AnchorKind.COMPANY, part, para))
                    break
        return anchors


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------

class TextEdits:
    """Applied text changes for one :class:`MarkupIndex`, journaled for rollback.

    ``mark()`` returns a position in the journal and ``rollback(mark)``
    undoes everything applied after it.
    """

    can_insert = False

    def __init__(self, index: MarkupIndex):
        self.index = index
        self._current: dict[int, str] = {}
        self._journal: list[tuple] = []

    def __bool__(self) -> bool:
        return bool(self._journal)

    def text_of(self, node_index: int) -> str:
        return self._current.get(node_index, self.index.nodes[node_index].text)

    def mark(self) -> int:
        return len(self._journal)

    def set_text(self, node_index: int, text: str) -> None:
        old = self.text_of(node_index)
        if text == old:
            return
        check_text(text)
        self._write(node_index, old, text)
        self._current[node_index] = text
        self._journal.append(("text", node_index, old, text))

    def rollback(self, mark: int) -> None:
        while len(self._journal) > mark:
            entry = self._journal.pop()
            if entry[0] == "text":
                _, node_index, old, new = entry
                self._undo(node_index, old, new)
                self._current[node_index] = old
            else:
                self._undo_insert(entry[1])

    def insert_after(self, para: Paragraph, text: str) -> Paragraph:
        raise UnsafeEdit("this format cannot insert paragraphs")

    def _write(self, node_index: int, old: str, new: str) -> None:
        raise NotImplementedError

    def _undo(self, node_index: int, old: str, new: str) -> None:
        self._write(node_index, new, old)

    def _undo_insert(self, payload: Any) -> None:
        raise NotImplementedError


class RunEdits(TextEdits):
    """Edits on python-docx runs; formatting of each run is kept."""

    can_insert = True

    def _write(self, node_index: int, old: str, new: str) -> None:
        try:
            self.index.nodes[node_index].run.text = new
        except ValueError as e:
            raise UnsafeEdit(str(e)) from e

    def insert_after(self, para: Paragraph, text: str) -> Paragraph:
        """Clone ``para`` after itself with ``text`` as its body.

        The clone drops Word's paragraph ids so they stay unique. It is not
        added to the index; the returned :class:`Paragraph` carries its own
        nodes.
        """
        check_text(text)
        source = para.element
        new_p = deepcopy(source._p)
        for attr in _PARA_IDS:
            new_p.attrib.pop(attr, None)
        source._p.addnext(new_p)
        self._journal.append(("insert", new_p))

        clone = DocxParagraph(new_p, source._parent)
        sub = MarkupIndex.from_docx([clone])
        try:
            set_paragraph_text(RunEdits(sub), sub.paragraphs[0], text)
        except UnsafeEdit:
            self.rollback(self.mark() - 1)
            raise
        return sub.paragraphs[0]

    def _undo_insert(self, element: Any) -> None:
        parent = element.getparent()
        if parent is not None:
            parent.remove(element)


class HwpxEdits(TextEdits):
    """Edits through ``HwpxDocument.replace_text_in_runs``.

    The replacement is document-wide, so a change is refused unless the old
    text occurs exactly once across every paragraph and table cell.
    """

    def __init__(self, index: MarkupIndex, document: Any):
        super().__init__(index)
        self.document = document

    def _write(self, node_index: int, old: str, new: str) -> None:
        if not old.strip():
            raise UnsafeEdit("empty paragraph has no run to rewrite")
        seen = sum(text.count(old) for text in _hwpx_texts(self.document))
        if seen != 1:
            raise UnsafeEdit(f"text occurs {seen} times in the document")
        if self.document.replace_text_in_runs(old, new) == 0:
            raise UnsafeEdit("text spans several runs")

    def _undo(self, node_index: int, old: str, new: str) -> None:
        try:
            self._write(node_index, new, old)
        except UnsafeEdit as e:
            logger.warning("Could not undo HWPX edit of node %d: %s", node_index, e)


def _hwpx_texts(document: Any) -> list[str]:
    texts = []
    for para in document.paragraphs:
        texts.append(para.text or "")
        for table in getattr(para, "tables", None) or ():
            for ri in range(table.row_count):
                for ci in range(table.column_count):
                    texts.append(table.cell(ri, ci).text or "")
    return texts


def bullet_body_nodes(index: MarkupIndex, para: Paragraph) -> tuple[list[TextNode], str]:
    """Split a bullet paragraph into its content nodes and a glyph prefix.

    A node that holds only a bullet glyph is left out of the content nodes.
    When the glyph leads the first content node, it is returned as the prefix
    to keep in front of the new text.
    """
    nodes = index.nodes_in(para)
    while nodes and _LEADING_GLYPH_RE.fullmatch(nodes[0].text):
        nodes = nodes[1:]
    while nodes and not nodes[0].text.strip():
        nodes = nodes[1:]
    prefix = ""
    if nodes:
        m = _LEADING_GLYPH_RE.match(nodes[0].text)
        if m and m.end() < len(nodes[0].text):
            prefix = m.group(0)
    return nodes, prefix


def set_paragraph_text(edits: TextEdits, para: Paragraph, text: str) -> None:
    """Write ``text`` into the first body node of ``para`` and blank the rest."""
    nodes, prefix = bullet_body_nodes(edits.index, para)
    if not nodes:
        raise UnsafeEdit("paragraph has no text to replace")
    first = nodes[0]
    if not prefix:
        prefix = first.text[: len(first.text) - len(first.text.lstrip())]
    edits.set_text(first.index, prefix + text)
    for node in nodes[1:]:
        edits.set_text(node.index, "")


def strip_glyph(text: str) -> str:
    return _LEADING_GLYPH_RE.sub("", text, count=1).strip()
