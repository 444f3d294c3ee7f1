"""Line-driven state machine that turns an EXPERIENCE section into entries.

States:
    AWAITING_COMPANY        nothing pending; the next entry line opens an entry
    AWAITING_TITLE_OR_DATE  an entry is open but its title, company or dates are missing
    COLLECTING_BULLETS      bullets are appended to the open entry

Supported layouts (one entry each):
    Company / Title / Dates / bullets
    Company / Dates / Title / bullets
    Title / Company / Dates / bullets
    Title at Company  Dates / bullets
    Title | Company | Dates / bullets
    Company - Title / Dates / bullets
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from jobaly.lexicon import Lexicon
from jobaly.models.resume import MarkupLine, WorkExperience
from jobaly.parsers.line_patterns import (
    ROLE_WORDS_RE,
    DateSpan,
    LineKind,
    classify_line,
    find_date_span,
    split_title_company,
    starts_with_imperative,
    strip_bullet,
)

logger = logging.getLogger(__name__)

LOCATION_RE = re.compile(
    r"^(?:[A-Z][A-Za-z.' -]+,\s*(?:[A-Z]{2}|[A-Z][a-z]+(?:\s[A-Z][a-z]+)*)|Remote|Hybrid)$"
)
_WRAP_TAIL_RE = re.compile(
    r"(?:,|-|\b(?:and|or|with|of|to|the|for|in|on|by|a|an|using|across|from|into))$",
    re.IGNORECASE,
)


class ParserState(str, Enum):
    AWAITING_COMPANY = "awaiting_company"
    AWAITING_TITLE_OR_DATE = "awaiting_title_or_date"
    COLLECTING_BULLETS = "collecting_bullets"


@dataclass
class _PendingEntry:
    company: str = ""
    title: str = ""
    location: str | None = None
    dates: DateSpan | None = None
    bullets: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return bool(self.company and self.title)

    def to_model(self) -> WorkExperience:
        return WorkExperience(
            company=self.company,
            title=self.title,
            location=self.location,
            start_date=self.dates.start if self.dates else None,
            end_date=self.dates.end if self.dates else None,
            current=self.dates.current if self.dates else False,
            bullet_points=tuple(self.bullets),
        )


def looks_like_role(text: str) -> bool:
    return len(text) < 50 and ROLE_WORDS_RE.fullmatch(text.strip()) is not None


def looks_like_location(text: str) -> bool:
    return LOCATION_RE.match(text) is not None and ROLE_WORDS_RE.search(text) is None


class ExperienceStateMachine:
    """Feed lines one at a time with :meth:`feed`, then call :meth:`finish`."""

    def __init__(self, lexicon: Lexicon):
        self.lexicon = lexicon
        self.state = ParserState.AWAITING_COMPANY
        self._pending: _PendingEntry | None = None
        self._bullet: list[str] = []
        self._entries: list[WorkExperience] = []

    def feed(self, line: str, markup: MarkupLine | None = None) -> None:
        line = line.strip()
        if not line:
            return
        kind = self._classify(line, markup)
        logger.debug("experience %-22s %-12s %s", self.state.value, kind.value, line[:60])

        if kind is LineKind.BULLET:
            self._on_bullet(strip_bullet(line))
        elif kind is LineKind.DATE_RANGE:
            self._on_date(line)
        elif kind is LineKind.ENTRY_LINE:
            self._on_entry_line(line)
        else:
            self._on_continuation(line)

    def finish(self) -> list[WorkExperience]:
        self._emit()
        self.state = ParserState.AWAITING_COMPANY
        return list(self._entries)

    # -- classification ---------------------------------------------------

    def _classify(self, line: str, markup: MarkupLine | None) -> LineKind:
        kind = classify_line(line, self.lexicon)
        if kind is LineKind.BULLET:
            return kind
        if markup is not None and markup.list_item:
            return LineKind.BULLET
        if kind is LineKind.DATE_RANGE:
            return kind
        if looks_like_role(line):
            return LineKind.ENTRY_LINE
        if self._bullet and kind is LineKind.ENTRY_LINE and self._wraps_bullet(line, markup):
            return LineKind.CONTINUATION
        # extracted list paragraphs often lose their glyph
        if (
            self._pending is not None
            and self.state is ParserState.COLLECTING_BULLETS
            and starts_with_imperative(line, self.lexicon)
        ):
            return LineKind.BULLET
        return kind

    def _wraps_bullet(self, line: str, markup: MarkupLine | None) -> bool:
        if markup is not None and (markup.bold or markup.heading):
            return False
        if split_title_company(line) is not None:
            return False
        return _WRAP_TAIL_RE.search(self._bullet[-1].rstrip()) is not None

    # -- transitions ------------------------------------------------------

    def _on_bullet(self, text: str) -> None:
        self._flush_bullet()
        if self._pending is None:
            logger.debug("Bullet outside any entry dropped: %s", text[:60])
            return
        self._bullet = [text]
        self.state = ParserState.COLLECTING_BULLETS

    def _on_date(self, line: str) -> None:
        self._flush_bullet()
        span = find_date_span(line)
        residual = _without(line, span)
        split = split_title_company(residual) if residual else None

        if split is not None:
            self._start_entry(title=split[0], company=split[1], dates=span)
            return

        pending = self._pending
        if pending is None:
            if residual:
                self._start_entry(label=residual, dates=span)
            return

        if pending.dates is None and not pending.bullets:
            pending.dates = span
            if residual:
                self._fill(pending, residual)
            self._settle(pending)
            return

        # a second date block after bullets begins the next role
        self._start_entry(label=residual, dates=span)

    def _on_entry_line(self, line: str) -> None:
        self._flush_bullet()
        span = find_date_span(line)
        head = _without(line, span)
        split = split_title_company(head)
        if split is not None:
            self._start_entry(title=split[0], company=split[1], dates=span)
            return

        pending = self._pending
        if pending is None or self.state is ParserState.AWAITING_COMPANY:
            self._start_entry(label=head, dates=span)
            return

        if self.state is ParserState.AWAITING_TITLE_OR_DATE:
            self._fill(pending, head)
            if span is not None and pending.dates is None:
                pending.dates = span
            self._settle(pending)
            return

        # COLLECTING_BULLETS: a location line may still follow the title
        if not pending.bullets and pending.location is None and looks_like_location(head):
            pending.location = head
            return
        self._start_entry(label=head, dates=span)

    def _on_continuation(self, line: str) -> None:
        if self._bullet:
            self._bullet.append(line)
            return
        pending = self._pending
        if pending is None:
            logger.debug("Unattached experience line ignored: %s", line[:60])
            return
        if self.state is ParserState.AWAITING_TITLE_OR_DATE:
            self._fill(pending, line)
            self._settle(pending)
            return
        # a description paragraph without a glyph still belongs to the role
        self._bullet = [line]
        self.state = ParserState.COLLECTING_BULLETS

    # -- helpers ----------------------------------------------------------

    def _fill(self, pending: _PendingEntry, text: str) -> None:
        """Put a bare label into the first empty slot it plausibly belongs to."""
        if pending.location is None and looks_like_location(text):
            pending.location = text
        elif not pending.title and (pending.company or looks_like_role(text)):
            pending.title = text
        elif not pending.company:
            pending.company = text
        elif pending.location is None:
            pending.location = text

    def _settle(self, pending: _PendingEntry) -> None:
        self.state = (
            ParserState.COLLECTING_BULLETS if pending.complete else ParserState.AWAITING_TITLE_OR_DATE
        )

    def _start_entry(
        self,
        *,
        label: str = "",
        company: str = "",
        title: str = "",
        dates: DateSpan | None = None,
    ) -> None:
        self._emit()
        pending = _PendingEntry(company=company.strip(), title=title.strip(), dates=dates)
        if label:
            self._fill(pending, label.strip())
        self._pending = pending
        self._settle(pending)

    def _flush_bullet(self) -> None:
        if self._bullet and self._pending is not None:
            text = " ".join(part.strip() for part in self._bullet if part.strip())
            if text:
                self._pending.bullets.append(text)
        self._bullet = []

    def _emit(self) -> None:
        self._flush_bullet()
        pending = self._pending
        self._pending = None
        if pending is None:
            return
        if not pending.company and pending.title:
            pending.company, pending.title = pending.title, ""
        if not pending.company:
            logger.debug("Discarding entry without a company: %r", pending)
            return
        self._entries.append(pending.to_model())


def _without(line: str, span: DateSpan | None) -> str:
    if span is None:
        return line.strip()
    return line.replace(span.text, "", 1).strip(" ,|()–—-")


def parse_experiences(
    lines: list[str],
    lexicon: Lexicon,
    markup: list[MarkupLine | None] | None = None,
) -> list[WorkExperience]:
    """Run the state machine over the lines of one EXPERIENCE section."""
    machine = ExperienceStateMachine(lexicon)
    for i, line in enumerate(lines):
        flags = markup[i] if markup is not None and i < len(markup) else None
        machine.feed(line, flags)
    return machine.finish()
