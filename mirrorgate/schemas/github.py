"""GitHub Actions payload schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WorkflowRun(BaseModel):
    """One execution of the caching workflow, as the Actions API reports it."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    status: str  # queued | in_progress | completed (plus waiting/requested/pending)
    conclusion: str | None = None  # success | failure | cancelled | timed_out | ...
    created_at: datetime
    url: str | None = Field(default=None, alias="html_url")
    event: str | None = None
    display_title: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_success(self) -> bool:
        return self.is_completed and self.conclusion == "success"
