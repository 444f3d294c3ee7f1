"""Scoped edits on an existing DOCX/HWPX package, with synthesis as fallback.

The patcher only rewrites the text of nodes it has anchored (contact values,
skill values, experience bullets). Every anchor's edits are applied as one
unit: if any of them is unsafe, that anchor is rolled back and the rest of
the document is still patched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from jobaly.config import OVERFLOW_POLICIES
from jobaly.exceptions import UnsafeEdit
from jobaly.lexicon import Lexicon, load_lexicon
from jobaly.models.document import DocumentAnchor, Patched, Synthesized, TemplateIncompatible
from jobaly.models.plan import TailoringPlan, company_key, experience_keys, split_company_key
from jobaly.models.resume import ContactInfo, ResumeModel
from jobaly.models.warnings import PipelineWarning, WarningKind
from jobaly.parsers.line_patterns import SKILL_CATEGORY_RE
from jobaly.templates.anchors import (
    CompanyLocator,
    ContactLocator,
    HwpxEdits,
    MarkupIndex,
    Paragraph,
    RunEdits,
    SkillCategoryLocator,
    TerminalSectionLocator,
    TextEdits,
    TextNode,
    bullet_body_nodes,
    norm_label,
    set_paragraph_text,
    strip_glyph,
)
from jobaly.templates.package import DocxPackage, HwpxPackage, open_package
from jobaly.templates.synthesizer import synthesize

logger = logging.getLogger(__name__)

DEFAULT_TERMINAL_SECTIONS = ("Education", "Relevant Projects", "Certifications")
CONTACT_FIELDS = ("name", "email", "phone", "location")

_VALUE_PREFIX_RE = re.compile(r"^\s*:?\s*")


@dataclass
class _Part:
    name: str
    index: MarkupIndex
    edits: TextEdits
    companies: list[DocumentAnchor] = field(default_factory=list)
    terminals: list[DocumentAnchor] = field(default_factory=list)


class DocumentPatcher:
    """Locate anchors, apply scoped replacements, emit or abort.

    ``placeholders`` maps a contact field to extra old values to look for
    (for example ``{"email": ("you@example.com",)}``) in addition to the
    values parsed from the resume.
    """

    def __init__(
        self,
        overflow_policy: str = "drop",
        terminal_sections: Sequence[str] = DEFAULT_TERMINAL_SECTIONS,
        placeholders: Mapping[str, Sequence[str]] | None = None,
        lexicon: Lexicon | None = None,
    ):
        if overflow_policy not in OVERFLOW_POLICIES:
            raise ValueError(f"overflow_policy must be one of {OVERFLOW_POLICIES}, got {overflow_policy!r}")
        self.overflow_policy = overflow_policy
        self.lexicon = lexicon or load_lexicon()
        self.placeholders = {k: tuple(v) for k, v in (placeholders or {}).items()}
        headers = self.lexicon.section_headers
        self.experience_labels = tuple(headers.get("experience", ()))
        self.terminal_labels = tuple(terminal_sections) + tuple(
            phrase
            for kind in ("education", "certifications", "skills", "other")
            for phrase in headers.get(kind, ())
        )
        self._heading_labels = {norm_label(label) for label in self.terminal_labels + self.experience_labels}

    def patch(
        self,
        package_bytes: bytes,
        plan: TailoringPlan,
        contact: ContactInfo,
        resume: ResumeModel | None = None,
    ) -> Patched | TemplateIncompatible:
        """Apply ``plan`` and ``contact`` to the package.

        Raises:
            InvalidPackage: the bytes are not a usable DOCX/HWPX package.
        """
        with open_package(package_bytes) as package:
            parts = self._index_parts(package)
            warnings: list[PipelineWarning] = []
            old_contact = resume.contact if resume is not None else ContactInfo()

            contact_found = self._patch_contact(parts, old_contact, contact, warnings)
            skills_found = self._patch_skills(parts, plan.per_category_skill_text, warnings)

            if contact_found == 0 and skills_found == 0:
                reason = "no contact or skill-category anchors found in template"
                logger.warning("Template incompatible: %s", reason)
                return TemplateIncompatible(reason=reason, warnings=tuple(warnings))

            originals = _original_bullets(resume)
            companies_found = self._patch_experience(parts, plan.per_company_bullets, originals, warnings)

            edited = [part.name for part in parts if part.edits]
            # nothing changed: hand back the caller's bytes untouched
            output = package.to_bytes() if edited else package_bytes

        anchors_found = contact_found + skills_found + companies_found
        logger.info(
            "Patched %d of %d parts: %d anchors, %d warnings",
            len(edited), len(parts), anchors_found, len(warnings),
        )
        return Patched(package=output, anchors_found=anchors_found, warnings=tuple(warnings))

    def locate(self, package_bytes: bytes, resume: ResumeModel) -> list[DocumentAnchor]:
        """Every anchor the patcher can find for ``resume`` in the package."""
        locators = [
            ContactLocator(name, self._candidates(name, getattr(resume.contact, name)))
            for name in CONTACT_FIELDS
        ]
        locators.append(SkillCategoryLocator(c.label for c in resume.skill_categories))
        locators.append(CompanyLocator((e.company for e in resume.experiences), self.experience_labels))
        locators.append(TerminalSectionLocator(self.terminal_labels))

        anchors: list[DocumentAnchor] = []
        with open_package(package_bytes) as package:
            for part in self._index_parts(package):
                for locator in locators:
                    anchors.extend(locator.locate(part.index, part.name))
        return anchors

    # -- indexing ----------------------------------------------------------

    @staticmethod
    def _index_parts(package: DocxPackage | HwpxPackage) -> list[_Part]:
        parts = []
        for name, paragraphs in package.part_paragraphs():
            if isinstance(package, DocxPackage):
                index = MarkupIndex.from_docx(paragraphs)
                edits: TextEdits = RunEdits(index)
            else:
                index = MarkupIndex.from_hwpx(paragraphs)
                edits = HwpxEdits(index, package.document)
            parts.append(_Part(name=name, index=index, edits=edits))
        return parts

    def _candidates(self, field_name: str, old_value: str | None) -> list[str]:
        values = [old_value or ""] + list(self.placeholders.get(field_name, ()))
        unique = {v.strip() for v in values if v and v.strip()}
        return sorted(unique, key=lambda v: (-len(v), v))

    @staticmethod
    def _guarded(
        parts: list[_Part],
        key: str,
        warnings: list[PipelineWarning],
        apply: Callable[..., None],
        *args,
    ) -> bool:
        """Run ``apply(*args)``; on :class:`UnsafeEdit` undo what it changed."""
        marks = [(part, part.edits.mark()) for part in parts]
        try:
            apply(*args)
        except UnsafeEdit as e:
            for part, mark in marks:
                part.edits.rollback(mark)
            logger.warning("Edit for %s rolled back: %s", key, e)
            warnings.append(
                PipelineWarning(
                    kind=WarningKind.UNSAFE_EDIT,
                    message=f"{e}; anchor left unchanged",
                    key=key,
                )
            )
            return False
        return True

    # -- contact -----------------------------------------------------------

    def _patch_contact(
        self,
        parts: list[_Part],
        old: ContactInfo,
        new: ContactInfo,
        warnings: list[PipelineWarning],
    ) -> int:
        pairs: list[tuple[str, list[str], str | None]] = [
            (name, self._candidates(name, getattr(old, name)), getattr(new, name))
            for name in CONTACT_FIELDS
        ]
        for i, link in enumerate(new.links):
            old_link = old.links[i] if i < len(old.links) else None
            pairs.append((f"links[{i}]", self._candidates("links", old_link), link))

        found = 0
        for field_name, candidates, replacement in pairs:
            locator = ContactLocator(field_name, candidates)
            hits = [(part, anchor) for part in parts for anchor in locator.locate(part.index, part.name)]
            found += len(hits)
            if not hits:
                if replacement and replacement.strip():
                    logger.warning("Contact anchor not found for %s", field_name)
                    warnings.append(
                        PipelineWarning(
                            kind=WarningKind.ANCHOR_NOT_FOUND,
                            message="no text node holds the current value",
                            key=field_name,
                        )
                    )
                continue
            if replacement:
                pattern = re.compile("|".join(re.escape(c) for c in candidates))
                self._guarded(parts, field_name, warnings, _replace_contact, hits, pattern, replacement)
        return found

    # -- skills ------------------------------------------------------------

    def _patch_skills(self, parts: list[_Part], skill_text: Mapping[str, str], warnings: list[PipelineWarning]) -> int:
        found = 0
        for label, text in skill_text.items():
            locator = SkillCategoryLocator([label])
            hit = None
            for part in parts:
                anchors = locator.locate(part.index, part.name)
                if anchors:
                    hit = (part, anchors[0])
                    break
            segments = self._skill_value_segments(*hit) if hit is not None else None
            if not segments:
                logger.warning("Skill category anchor not found: %s", label)
                warnings.append(
                    PipelineWarning(
                        kind=WarningKind.ANCHOR_NOT_FOUND,
                        message="skill category label or its value not found",
                        key=label,
                    )
                )
                continue
            found += 1
            self._guarded(parts, label, warnings, _replace_value, hit[0].edits, segments, text)
        return found

    def _skill_value_segments(self, part: _Part, anchor: DocumentAnchor) -> list[tuple[TextNode, str]]:
        """Nodes holding the value after a skill label, each with the text it keeps.

        The value runs from the label to the end of its paragraph. A label
        standing alone takes the next paragraph as its value, unless that
        paragraph is itself a label or a section heading.
        """
        index, edits = part.index, part.edits
        label = index.nodes[anchor.node_index]
        para = index.paragraph_of(label)
        if para is None:
            return []
        head, colon, _ = edits.text_of(label.index).partition(":")
        segments = [(node, "") for node in index.nodes_in(para) if node.index > label.index]
        if colon:
            segments.insert(0, (label, head + colon))
        if _has_value(_joined_value(edits, segments)):
            return segments

        if para.index + 1 >= len(index.paragraphs):
            return []
        nxt = index.paragraphs[para.index + 1]
        text = index.paragraph_text(nxt).strip()
        if (
            not text
            or SKILL_CATEGORY_RE.match(text)
            or text.endswith(":")
            or norm_label(text) in self._heading_labels
        ):
            return []
        return [(node, "") for node in index.nodes_in(nxt)]

    # -- experience --------------------------------------------------------

    def _patch_experience(
        self,
        parts: list[_Part],
        per_company: Mapping[str, Sequence[str]],
        originals: Mapping[str, Sequence[str]],
        warnings: list[PipelineWarning],
    ) -> int:
        names = [split_company_key(key)[0] for key in per_company]
        company_locator = CompanyLocator(names, self.experience_labels)
        terminal_locator = TerminalSectionLocator(self.terminal_labels)
        by_key: dict[str, tuple[_Part, DocumentAnchor]] = {}
        for part in parts:
            part.companies = company_locator.locate(part.index, part.name)
            part.terminals = terminal_locator.locate(part.index, part.name)
            for anchor in part.companies:
                by_key.setdefault(_canonical(anchor.key), (part, anchor))

        found = 0
        for key, bullets in per_company.items():
            hit = by_key.get(_canonical(key))
            if hit is None:
                logger.warning("Company anchor not found: %s", key)
                warnings.append(
                    PipelineWarning(
                        kind=WarningKind.ANCHOR_NOT_FOUND,
                        message="company not found in template; bullets left unchanged",
                        key=key,
                    )
                )
                continue
            found += 1
            part, anchor = hit
            paragraphs = self._bullet_paragraphs(part, anchor, originals.get(key, ()))
            self._guarded(parts, key, warnings, self._replace_bullets, part, key, paragraphs, list(bullets), warnings)
        return found

    @staticmethod
    def _window_end(part: _Part, anchor: DocumentAnchor) -> int:
        later = [a.start for a in part.companies + part.terminals if a.start >= anchor.end]
        return min(later, default=len(part.index.paragraphs))

    def _bullet_paragraphs(self, part: _Part, anchor: DocumentAnchor, originals: Sequence[str]) -> list[Paragraph]:
        index = part.index
        window = index.paragraphs[anchor.end:self._window_end(part, anchor)]
        listed = [p for p in window if p.is_list and bullet_body_nodes(index, p)[0]]
        if listed or not originals:
            return listed
        # plain paragraphs: recognise bullets by their current text
        known = {strip_glyph(b) for b in originals}
        return [
            p for p in window
            if strip_glyph(index.paragraph_text(p)) in known and bullet_body_nodes(index, p)[0]
        ]

    def _replace_bullets(
        self,
        part: _Part,
        key: str,
        paragraphs: list[Paragraph],
        bullets: list[str],
        warnings: list[PipelineWarning],
    ) -> None:
        index, edits = part.index, part.edits
        for para, bullet in zip(paragraphs, bullets):
            if strip_glyph(index.paragraph_text(para)) == bullet.strip():
                continue
            set_paragraph_text(edits, para, bullet)

        extra = bullets[len(paragraphs):]
        if not extra:
            return
        if self.overflow_policy == "append" and paragraphs and edits.can_insert:
            anchor_para = paragraphs[-1]
            for bullet in extra:
                anchor_para = edits.insert_after(anchor_para, bullet)
            logger.info("Appended %d bullet paragraphs for %s", len(extra), key)
            return
        if self.overflow_policy == "append" and paragraphs:
            reason = "this format cannot insert paragraphs, so they were dropped"
        else:
            reason = "had no paragraph and were dropped"
        logger.warning("Dropping %d bullets for %s", len(extra), key)
        warnings.append(
            PipelineWarning(
                kind=WarningKind.BULLET_OVERFLOW,
                message=f"{len(extra)} of {len(bullets)} bullets {reason}",
                key=key,
            )
        )


def _replace_contact(hits: list[tuple[_Part, DocumentAnchor]], pattern: re.Pattern, replacement: str) -> None:
    for part, anchor in hits:
        # single pass; the new value may contain another candidate
        text = pattern.sub(lambda m: replacement, part.edits.text_of(anchor.node_index))
        part.edits.set_text(anchor.node_index, text)


def _joined_value(edits: TextEdits, segments: list[tuple[TextNode, str]]) -> str:
    return "".join(edits.text_of(node.index)[len(keep):] for node, keep in segments)


def _has_value(value: str) -> bool:
    return bool(value[_VALUE_PREFIX_RE.match(value).end():].strip())


def _replace_value(edits: TextEdits, segments: list[tuple[TextNode, str]], text: str) -> None:
    """Put ``text`` in the first segment holding value characters and blank the rest."""
    value = _joined_value(edits, segments)
    if value[_VALUE_PREFIX_RE.match(value).end():].strip() == text.strip():
        return
    written = False
    for node, keep in segments:
        current = edits.text_of(node.index)[len(keep):]
        if written:
            edits.set_text(node.index, keep)
            continue
        prefix = _VALUE_PREFIX_RE.match(current).group(0)
        if not current[len(prefix):].strip():
            continue
        edits.set_text(node.index, keep + prefix + text)
        written = True


def _canonical(key: str) -> str:
    name, n = split_company_key(key)
    return company_key(name.casefold(), n)


def _original_bullets(resume: ResumeModel | None) -> dict[str, tuple[str, ...]]:
    if resume is None:
        return {}
    keys = experience_keys(e.company for e in resume.experiences)
    return {key: exp.bullet_points for key, exp in zip(keys, resume.experiences)}


def export_document(
    package_bytes: bytes | None,
    resume: ResumeModel,
    plan: TailoringPlan,
    contact: ContactInfo,
    *,
    patcher: DocumentPatcher | None = None,
) -> Patched | Synthesized:
    """Patch the original package, or synthesize a new one when that is not possible.

    Raises:
        InvalidPackage: ``package_bytes`` is given but is not a usable package.
    """
    if package_bytes is None:
        return synthesize(resume, plan, contact, reason="no template supplied")

    patcher = patcher or DocumentPatcher()
    result = patcher.patch(package_bytes, plan, contact, resume)
    if isinstance(result, Patched):
        return result

    warning = PipelineWarning(kind=WarningKind.TEMPLATE_INCOMPATIBLE, message=result.reason)
    return synthesize(
        resume, plan, contact,
        reason=result.reason,
        warnings=result.warnings + (warning,),
    )
