"""
Sweep Report Model
Pydantic model summarising one reaper pass for logs and the /status endpoint.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

SweepOutcome = Literal["ok", "error", "fault"]


class SweepReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    pending_seen: int = 0
    running_seen: int = 0
    candidates: int = 0
    cancelled: List[int] = []   # build ids
    skipped: List[int] = []     # candidates judged healthy
    outcome: SweepOutcome = "ok"
    error: str = ""
