"""Models for document anchors and the two-path export result."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from jobaly.models.warnings import PipelineWarning


class AnchorKind(str, Enum):
    CONTACT = "contact"
    SKILL_CATEGORY = "skill_category"
    COMPANY = "company"
    TERMINAL = "terminal"


class DocumentAnchor(BaseModel):
    """A located paragraph or text node inside one part of a package.

    ``start``/``end`` are paragraph positions within the part and
    ``node_index`` is the text node (run) the anchor points at. They only
    describe the package as opened for the current patch run.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    kind: AnchorKind
    part: str
    start: int
    end: int
    node_index: int


class Patched(BaseModel):
    """The original package with scoped edits applied."""

    model_config = ConfigDict(frozen=True)

    path: Literal["patched"] = "patched"
    package: bytes
    anchors_found: int = 0
    warnings: tuple[PipelineWarning, ...] = ()


class Synthesized(BaseModel):
    """A freshly generated document using the generic layout."""

    model_config = ConfigDict(frozen=True)

    path: Literal["synthesized"] = "synthesized"
    package: bytes
    reason: str = ""
    warnings: tuple[PipelineWarning, ...] = ()


class TemplateIncompatible(BaseModel):
    """Signal from the patcher: too few anchors, use synthesis instead."""

    model_config = ConfigDict(frozen=True)

    reason: str
    warnings: tuple[PipelineWarning, ...] = ()


DocumentResult = Union[Patched, Synthesized]
