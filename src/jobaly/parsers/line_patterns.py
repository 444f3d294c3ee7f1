"""Line-level patterns shared by the resume parsers.

Each helper looks at a single trimmed line and never at its neighbours;
context lives in the experience state machine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from jobaly.lexicon import Lexicon

# Shared emoji pattern for Google Docs / LLM output cleanup
EMOJI_PATTERN = (
    r"[\U0001f4e7\U0001f4de\U0001f4cd\U0001f4bc\U0001f4c5\U0001f393"
    r"\U0001f3e2\U0001f4dd\U0001f4c4\U0001f517\U0001f310\U0001f4f1"
    r"\u260e\u2709\u2706\u2702]\s*"
)

BULLET_GLYPHS = "•●○■□▪▫◦‣⁃–\\-*"
BULLET_RE = re.compile(rf"^[{BULLET_GLYPHS}]\s*")

MONTH = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_DATE_POINT = rf"(?:{MONTH}\s+)?(?:19|20)\d{{2}}"
DATE_RANGE_RE = re.compile(
    rf"(?P<start>{_DATE_POINT})"
    rf"(?:\s*(?:-|–|—|to)\s*(?P<end>present|current|now|{_DATE_POINT}))?",
    re.IGNORECASE,
)
YEAR_RE = re.compile(r"(?:19|20)\d{2}")

# "Title at Company", "Title @ Company", "Title | Company", "Company — Title"
TITLE_AT_COMPANY_RE = re.compile(r"^(?P<title>.+?)\s+(?:at|@)\s+(?P<company>.+)$", re.IGNORECASE)
PIPE_SPLIT_RE = re.compile(r"\s+(?:\||–|—)\s+|\s+-\s+")

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?<!\d)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)")
LINKEDIN_RE = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/in/[\w-]+/?", re.IGNORECASE)
GITHUB_RE = re.compile(r"(?:https?://)?(?:www\.)?github\.com/[\w-]+/?", re.IGNORECASE)
WEBSITE_RE = re.compile(
    r"(?:https?://)?(?:www\.)?[a-z0-9-]+\.(?:com|io|dev|net|org|me|co|app)(?:/[\w./-]*)?\b",
    re.IGNORECASE,
)

SKILL_CATEGORY_RE = re.compile(r"^(?P<label>[^:]{1,60}):\s*(?P<value>.+)$")
YEARS_OF_EXPERIENCE_RES = (
    re.compile(r"(\d+(?:\.\d+)?)\+?\s*years?\s+of\s+(?:\w+\s+)?experience", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\+?\s*years?\s+experience", re.IGNORECASE),
    re.compile(r"experience:\s*(\d+(?:\.\d+)?)\+?\s*years?", re.IGNORECASE),
)
ROLE_WORDS_RE = re.compile(
    r"(?:(?:senior|junior|lead|principal|staff)\s+)?(?:[A-Z][\w/+.-]*\s+){0,3}"
    r"(?:engineer|developer|analyst|manager|designer|architect|administrator|specialist|consultant)",
    re.IGNORECASE,
)


class LineKind(str, Enum):
    BULLET = "bullet"
    DATE_RANGE = "date_range"
    ENTRY_LINE = "entry_line"
    CONTINUATION = "continuation"


@dataclass(frozen=True)
class DateSpan:
    start: str
    end: str | None
    current: bool
    text: str  # exact matched slice of the line


def is_bullet(line: str) -> bool:
    # "-" only counts as a glyph when followed by whitespace; "-5%" is text
    if line.startswith("-") and len(line) > 1 and not line[1].isspace():
        return False
    return bool(BULLET_RE.match(line))


def strip_bullet(line: str) -> str:
    return BULLET_RE.sub("", line, count=1).strip()


def find_date_span(line: str) -> DateSpan | None:
    m = DATE_RANGE_RE.search(line)
    if not m:
        return None
    end = m.group("end")
    current = bool(end) and end.lower() in ("present", "current", "now")
    return DateSpan(start=m.group("start"), end=end, current=current, text=m.group(0))


def is_date_line(line: str) -> bool:
    """True when the line is dominated by a date range (allowing a short location)."""
    span = find_date_span(line)
    if span is None:
        return False
    rest = line.replace(span.text, "").strip(" ,|()–—-")
    return len(rest) <= 30 and not is_bullet(line)


def starts_with_imperative(line: str, lexicon: Lexicon) -> bool:
    first = re.split(r"[\s,;:]+", line.strip(), maxsplit=1)[0].lower()
    return first in lexicon.imperative_verbs


def is_entry_line(line: str, lexicon: Lexicon) -> bool:
    """Short capitalized line that names a company or title."""
    if not line or len(line) >= 60 or is_bullet(line):
        return False
    if not line[0].isupper():
        return False
    if line.rstrip().endswith("."):
        return False
    if find_date_span(line) is not None and is_date_line(line):
        return False
    return not starts_with_imperative(line, lexicon)


def classify_line(line: str, lexicon: Lexicon) -> LineKind:
    if is_bullet(line):
        return LineKind.BULLET
    if is_date_line(line):
        return LineKind.DATE_RANGE
    if is_entry_line(line, lexicon) or _has_title_company_split(line, lexicon):
        return LineKind.ENTRY_LINE
    return LineKind.CONTINUATION


def _has_title_company_split(line: str, lexicon: Lexicon) -> bool:
    if is_bullet(line) or starts_with_imperative(line, lexicon) or not line[:1].isupper():
        return False
    head = line
    span = find_date_span(line)
    if span is not None:
        head = line.replace(span.text, "").strip(" ,|()–—-")
    return len(head) < 80 and split_title_company(head) is not None


def split_title_company(line: str) -> tuple[str, str] | None:
    """Split ``Title at Company``, ``Title | Company`` or ``Company — Title``.

    Returns ``(title, company)`` or ``None`` when the line has no separator.
    """
    m = TITLE_AT_COMPANY_RE.match(line)
    if m:
        return m.group("title").strip(" ,"), m.group("company").strip(" ,")
    parts = [p.strip(" ,") for p in PIPE_SPLIT_RE.split(line) if p.strip(" ,")]
    if len(parts) < 2:
        return None
    first, second = parts[0], parts[1]
    if "|" in line:
        return first, second
    # dash separators are conventionally "Company — Title"
    if ROLE_WORDS_RE.search(first) and not ROLE_WORDS_RE.search(second):
        return first, second
    return second, first


def clean_markdown(text: str) -> str:
    """Clean Google Docs / markdown export artifacts.

    Handles: unicode artifacts, emoji icons, runs of spaces and tabs, and
    excessive blank lines. Bullet glyphs are kept so lines can still be
    classified.
    """
    # 1. Remove unicode artifacts (BOM, zero-width spaces, soft hyphens)
    text = text.lstrip("\ufeff")
    text = re.sub(r"[\u200b\u200c\u200d\u00ad\u2060\ufeff]", "", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    # 2. Remove emoji icons commonly used in Google Docs resumes
    text = re.sub(EMOJI_PATTERN, "", text)

    # 3. Collapse multiple spaces/tabs to a single space and trim each line
    lines = [re.sub(r"[ \t\u00a0]+", " ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)

    # 4. Remove excessive blank lines (3+ -> 2)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()
