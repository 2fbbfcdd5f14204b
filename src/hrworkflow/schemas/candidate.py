from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from .workflow import UTCDateTime

RecordStatus = Literal["NEW", "IN_PROCESS", "HIRED", "REJECTED"]


class CandidateRecord(BaseModel):
    """Candidate as supplied by the candidate record service."""

    candidate_id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    position_applied: str | None = None
    current_status: RecordStatus = "NEW"
    completed_interviews: int = 0
    application_date: UTCDateTime | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
