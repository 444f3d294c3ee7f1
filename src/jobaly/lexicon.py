"""Heuristic term dictionaries loaded from YAML.

The bundled ``data/lexicon.yaml`` is the default; a user file given via
``lexicon_path`` in config.yaml replaces individual keys.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LEXICON_PATH = Path(__file__).parent / "data" / "lexicon.yaml"


@dataclass(frozen=True)
class Lexicon:
    tech_terms: tuple[str, ...] = ()
    tool_terms: tuple[str, ...] = ()
    soft_skills: tuple[str, ...] = ()
    stop_words: frozenset[str] = frozenset()
    title_domain_words: tuple[str, ...] = ()
    seniority_levels: tuple[str, ...] = ()
    imperative_verbs: frozenset[str] = frozenset()
    section_headers: dict[str, tuple[str, ...]] = field(default_factory=dict)
    degree_markers: tuple[str, ...] = ()
    school_markers: tuple[str, ...] = ()
    certification_markers: tuple[str, ...] = ()

    def header_kind(self, line: str) -> str | None:
        """Return the section kind whose vocabulary matches the whole line."""
        normalized = re.sub(r"\s+", " ", line.strip().rstrip(":").strip()).lower()
        normalized = normalized.replace("&", "and")
        for kind, phrases in self.section_headers.items():
            if normalized in phrases:
                return kind
        return None

    def find_terms(self, text: str, terms: tuple[str, ...]) -> list[str]:
        """Whole-word, case-insensitive search of ``terms`` in ``text``."""
        return [t for t in terms if contains_term(text, t)]


def contains_term(text: str, term: str) -> bool:
    """Whole-word match that also works for terms like ``c++`` or ``node.js``."""
    pattern = r"(?<![\w])" + re.escape(term) + r"(?![\w+#])"
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


def _as_tuple(values) -> tuple[str, ...]:
    return tuple(str(v).strip().lower() for v in (values or []) if str(v).strip())


def _build(raw: dict) -> Lexicon:
    headers = {
        kind: _as_tuple(phrases)
        for kind, phrases in (raw.get("section_headers") or {}).items()
    }
    return Lexicon(
        tech_terms=_as_tuple(raw.get("tech_terms")),
        tool_terms=_as_tuple(raw.get("tool_terms")),
        soft_skills=_as_tuple(raw.get("soft_skills")),
        stop_words=frozenset(_as_tuple(raw.get("stop_words"))),
        title_domain_words=_as_tuple(raw.get("title_domain_words")),
        seniority_levels=_as_tuple(raw.get("seniority_levels")),
        imperative_verbs=frozenset(_as_tuple(raw.get("imperative_verbs"))),
        section_headers=headers,
        degree_markers=_as_tuple(raw.get("degree_markers")),
        school_markers=_as_tuple(raw.get("school_markers")),
        certification_markers=_as_tuple(raw.get("certification_markers")),
    )


@lru_cache(maxsize=8)
def load_lexicon(path: str | Path | None = None) -> Lexicon:
    """Load the bundled lexicon, overlaid with ``path`` when given."""
    raw: dict = yaml.safe_load(DEFAULT_LEXICON_PATH.read_text(encoding="utf-8")) or {}
    if path is not None:
        p = Path(path).expanduser()
        if p.exists():
            override = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw.update(override)
            logger.debug("Lexicon overrides loaded from %s: %s", p, sorted(override))
        else:
            logger.warning("Lexicon override not found: %s (using defaults)", p)
    return _build(raw)
