"""Usage log model for one tailoring run."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class RunLog(BaseModel):
    """Single usage log entry for a pipeline run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    job_title: str | None = None
    company_name: str | None = None
    overall_score: int | None = None
    outcome: str | None = None  # "full" | "partial" | "synthesized"
    warning_count: int = 0
    degraded: bool = False
    elapsed_seconds: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost_usd: float = 0.0
    success: bool = True
    error_message: str | None = None
