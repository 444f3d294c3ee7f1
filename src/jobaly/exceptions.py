"""Exceptions raised across the tailoring pipeline.

Only ``InvalidPackage`` is fatal to a pipeline run. The rewriter conditions
are raised by collaborators and recovered inside the planner.
"""

from __future__ import annotations


class JobalyError(Exception):
    """Base class for all jobaly errors."""


class InvalidPackage(JobalyError):
    """The document package is corrupt or not a supported zipped-XML format."""


class RewriteError(JobalyError):
    """Base class for bullet-rewriting collaborator failures."""


class RateLimited(RewriteError):
    """Transient failure; the call may be retried."""


class GenerationFailure(RewriteError):
    """Permanent failure for this request; retrying will not help."""


class TailoringCancelled(JobalyError):
    """The caller cancelled the run between experience batches."""


class UnsafeEdit(JobalyError):
    """A template edit that cannot be applied without touching text outside its anchor."""
