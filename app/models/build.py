"""
Build Models
============
Pydantic snapshots of the records the reaper reads from the build server.

The reaper never mutates these. Timestamps arrive either as ISO strings or
as unix epoch seconds; both are normalised to UTC-aware datetimes, and an
epoch value of 0 is treated as "not set".
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from app.core.constants import ACTIVE_STAGE_STATUSES, DEFAULT_REPO_TIMEOUT


class BuildStatus(str, Enum):
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    DECLINED = "declined"
    WAITING = "waiting_on_dependencies"
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    KILLED = "killed"
    ERROR = "error"


def _from_epoch(value):
    if value is None or value == 0:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # runs after parsing, so naive ISO strings and naive datetimes both land here
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Build(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    repo_id: int
    number: int = 0
    status: BuildStatus
    created: datetime
    started: Optional[datetime] = None

    @field_validator("created", "started", mode="before")
    @classmethod
    def parse_epoch(cls, v):
        return _from_epoch(v)

    @field_validator("created", "started", mode="after")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    @property
    def is_pending(self) -> bool:
        return self.status == BuildStatus.PENDING


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    build_id: int
    number: int = 0
    name: str = ""
    status: BuildStatus
    started: Optional[datetime] = None
    stopped: Optional[datetime] = None

    @field_validator("started", "stopped", mode="before")
    @classmethod
    def parse_epoch(cls, v):
        return _from_epoch(v)

    @field_validator("started", "stopped", mode="after")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    @property
    def is_done(self) -> bool:
        """True for any terminal outcome (success, failure, skipped, killed...)."""
        return self.status.value not in ACTIVE_STAGE_STATUSES


class Repository(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    slug: str = ""
    timeout: int = DEFAULT_REPO_TIMEOUT  # minutes

    @field_validator("timeout")
    @classmethod
    def positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout must be a positive number of minutes")
        return v
