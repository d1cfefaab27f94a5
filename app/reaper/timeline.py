"""
Stage Timeline
==============
Finds the most recent start among the stages of a build that are still active.

The result is tagged: NoActiveStage means the build has no unfinished stage
that ever started, which the reaper treats the same as a build that died
before execution began.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Union

from app.models.build import Stage


@dataclass(frozen=True)
class NoActiveStage:
    pass


@dataclass(frozen=True)
class ActiveSince:
    started: datetime


StageTimeline = Union[NoActiveStage, ActiveSince]


def latest_active_start(stages: Iterable[Stage]) -> StageTimeline:
    latest = None
    for stage in stages:
        if stage.is_done or stage.started is None:
            continue
        if latest is None or stage.started > latest:
            latest = stage.started
    if latest is None:
        return NoActiveStage()
    return ActiveSince(latest)
