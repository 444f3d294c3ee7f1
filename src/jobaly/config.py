"""Application configuration loaded from config.yaml."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from jobaly.models.score import ScoreWeights

OVERFLOW_POLICIES = ("drop", "append")


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")


@dataclass(frozen=True)
class LLMConfig:
    model: str = "claude-haiku-4-5-20251001"
    max_retries: int = 1
    timeout: int = 60

    def __post_init__(self):
        _check_range("llm.timeout", self.timeout, 1, 600)
        _check_range("llm.max_retries", self.max_retries, 1, 10)


@dataclass(frozen=True)
class ScoringConfig:
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    desired_titles: tuple[str, ...] = ()
    min_description_chars: int = 80

    def __post_init__(self):
        _check_range("scoring.min_description_chars", self.min_description_chars, 0, 100_000)


@dataclass(frozen=True)
class RewriteConfig:
    enabled: bool = True
    max_attempts: int = 3
    backoff_seconds: tuple[float, ...] = (1.0, 2.0)
    call_timeout: float = 30.0

    def __post_init__(self):
        _check_range("rewrite.max_attempts", self.max_attempts, 1, 10)
        _check_range("rewrite.call_timeout", self.call_timeout, 1, 600)
        for delay in self.backoff_seconds:
            _check_range("rewrite.backoff_seconds", delay, 0, 60)


@dataclass(frozen=True)
class PatchConfig:
    overflow_policy: str = "drop"
    terminal_sections: tuple[str, ...] = ("Education", "Relevant Projects", "Certifications")
    placeholders: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        if self.overflow_policy not in OVERFLOW_POLICIES:
            raise ValueError(
                f"patch.overflow_policy must be one of {OVERFLOW_POLICIES}, "
                f"got {self.overflow_policy!r}"
            )


@dataclass(frozen=True)
class CacheConfig:
    ttl_days: int = 30
    db_path: str = "~/.jobaly/cache.db"

    def __post_init__(self):
        _check_range("cache.ttl_days", self.ttl_days, 0, 365)

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()


@dataclass(frozen=True)
class AppConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    rewrite: RewriteConfig = field(default_factory=RewriteConfig)
    patch: PatchConfig = field(default_factory=PatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    lexicon_path: str | None = None


def _scoring(raw: dict) -> ScoringConfig:
    raw = dict(raw)
    if "weights" in raw:
        try:
            raw["weights"] = ScoreWeights(**(raw["weights"] or {}))
        except ValueError as e:
            raise ValueError(f"scoring.weights is invalid: {e}") from e
    if "desired_titles" in raw:
        raw["desired_titles"] = tuple(raw["desired_titles"] or ())
    return ScoringConfig(**raw)


def _rewrite(raw: dict) -> RewriteConfig:
    raw = dict(raw)
    if "backoff_seconds" in raw:
        raw["backoff_seconds"] = tuple(float(x) for x in raw["backoff_seconds"] or ())
    return RewriteConfig(**raw)


def _patch(raw: dict) -> PatchConfig:
    raw = dict(raw)
    if "terminal_sections" in raw:
        raw["terminal_sections"] = tuple(raw["terminal_sections"] or ())
    if "placeholders" in raw:
        placeholders = {}
        for name, values in (raw["placeholders"] or {}).items():
            if isinstance(values, str):
                values = [values]
            placeholders[name] = tuple(str(v) for v in values)
        raw["placeholders"] = placeholders
    return PatchConfig(**raw)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults.

    Raises ValueError naming the offending field when a value is out of range.
    """
    if path is None:
        # Look for config.yaml in the working directory, then the project root
        candidates = [
            Path.cwd() / "config.yaml",
            Path(__file__).resolve().parent.parent.parent / "config.yaml",
        ]
        for c in candidates:
            if c.exists():
                path = c
                break

    raw: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    return AppConfig(
        llm=LLMConfig(**raw.get("llm", {})),
        scoring=_scoring(raw.get("scoring", {})),
        rewrite=_rewrite(raw.get("rewrite", {})),
        patch=_patch(raw.get("patch", {})),
        cache=CacheConfig(**raw.get("cache", {})),
        lexicon_path=raw.get("lexicon_path"),
    )
