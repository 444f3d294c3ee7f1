"""Opening DOCX and HWPX packages for patching.

DOCX goes through python-docx and HWPX through python-hwpx. Before either
library sees the bytes, the primary markup part is read with defusedxml so a
template carrying entity declarations or broken XML is rejected up front.
"""

from __future__ import annotations

import logging
import tempfile
import zipfile
import zlib
from io import BytesIO
from pathlib import Path
from typing import Iterator

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException
from docx import Document
from docx.document import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph
from hwpx.document import HwpxDocument

from jobaly.exceptions import InvalidPackage

logger = logging.getLogger(__name__)

DOCX_PRIMARY = "word/document.xml"
HWPX_PRIMARY = "Contents/section0.xml"
HWPX_BODY = "body"


def check_xml(xml: str | bytes) -> None:
    """Raise ``ParseError`` (or a defusedxml error) if ``xml`` is not well formed."""
    ET.fromstring(xml.encode("utf-8") if isinstance(xml, str) else xml)


def sniff_format(data: bytes) -> str:
    """Return ``"docx"`` or ``"hwpx"`` after checking the primary part.

    Raises:
        InvalidPackage: not a zip, no primary markup part, or the primary
            part is not well-formed XML.
    """
    try:
        with zipfile.ZipFile(BytesIO(data)) as archive:
            names = set(archive.namelist())
            if DOCX_PRIMARY in names:
                fmt, primary = "docx", DOCX_PRIMARY
            elif HWPX_PRIMARY in names:
                fmt, primary = "hwpx", HWPX_PRIMARY
            else:
                raise InvalidPackage(f"no {DOCX_PRIMARY} or {HWPX_PRIMARY} entry")
            raw = archive.read(primary)
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as e:
        raise InvalidPackage(f"not a readable zip package: {e}") from e

    try:
        check_xml(raw)
    except (ET.ParseError, DefusedXmlException) as e:
        raise InvalidPackage(f"{primary} is not well-formed XML: {e}") from e
    return fmt


def iter_block_paragraphs(container) -> Iterator[Paragraph]:
    """Paragraphs of a python-docx container in order, table cells included."""
    for block in container.iter_inner_content():
        if isinstance(block, Table):
            seen: set = set()
            for row in block.rows:
                for cell in row.cells:
                    # merged cells come back once per grid column
                    if cell._tc in seen:
                        continue
                    seen.add(cell._tc)
                    yield from iter_block_paragraphs(cell)
        else:
            yield block


class DocxPackage:
    """A DOCX opened with python-docx."""

    format = "docx"

    def __init__(self, document: DocxDocument):
        self.document = document

    @classmethod
    def from_bytes(cls, data: bytes) -> DocxPackage:
        try:
            document = Document(BytesIO(data))
        except Exception as e:
            raise InvalidPackage(f"python-docx could not open the package: {e}") from e
        return cls(document)

    def part_paragraphs(self) -> list[tuple[str, list[Paragraph]]]:
        """Body first, then each defined header, then each defined footer."""
        doc = self.document
        parts = [(_partname(doc.part), list(iter_block_paragraphs(doc)))]
        headers, footers = [], []
        seen: set[str] = set()
        for section in doc.sections:
            for story, bucket in ((section.header, headers), (section.footer, footers)):
                # a linked story has no part of its own; asking for .part would add one
                if story.is_linked_to_previous:
                    continue
                name = _partname(story.part)
                if name in seen:
                    continue
                seen.add(name)
                bucket.append((name, list(iter_block_paragraphs(story))))
        return parts + headers + footers

    def to_bytes(self) -> bytes:
        buf = BytesIO()
        self.document.save(buf)
        return buf.getvalue()

    def close(self) -> None:
        pass

    def __enter__(self) -> DocxPackage:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class HwpxPackage:
    """A HWPX opened with python-hwpx from a scratch directory."""

    format = "hwpx"

    def __init__(self, document: HwpxDocument, workdir: tempfile.TemporaryDirectory):
        self.document = document
        self._workdir = workdir

    @classmethod
    def from_bytes(cls, data: bytes) -> HwpxPackage:
        workdir = tempfile.TemporaryDirectory(prefix="jobaly-")
        source = Path(workdir.name) / "template.hwpx"
        source.write_bytes(data)
        try:
            document = HwpxDocument.open(str(source))
        except Exception as e:
            workdir.cleanup()
            raise InvalidPackage(f"python-hwpx could not open the package: {e}") from e
        return cls(document, workdir)

    def part_paragraphs(self) -> list[tuple[str, list]]:
        return [(HWPX_BODY, list(self.document.paragraphs))]

    def to_bytes(self) -> bytes:
        target = Path(self._workdir.name) / "patched.hwpx"
        self.document.save_to_path(str(target))
        return target.read_bytes()

    def close(self) -> None:
        try:
            self.document.close()
        finally:
            self._workdir.cleanup()

    def __enter__(self) -> HwpxPackage:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_package(data: bytes) -> DocxPackage | HwpxPackage:
    """Open ``data`` with the library for its format.

    Raises:
        InvalidPackage: the bytes are not a usable DOCX/HWPX package.
    """
    fmt = sniff_format(data)
    package = DocxPackage.from_bytes(data) if fmt == "docx" else HwpxPackage.from_bytes(data)
    logger.debug("Opened %s package", fmt)
    return package


def _partname(part) -> str:
    return str(part.partname).lstrip("/")
