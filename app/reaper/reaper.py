"""
Build Reaper
============
Finds builds permanently stuck in a pending or running state and cancels them.

Pass flow:
    1. List pending builds. Every build created longer ago than the pending
       deadline (+ buffer) is handed to reap_maybe().
    2. List running builds. Every build started longer ago than the running
       deadline (+ buffer) is handed to reap_maybe().

reap_maybe() cancels pending candidates outright. For running candidates it
looks at the stages: no active stage means cancel, otherwise the latest
active stage start is compared against the repository's own timeout.

The first store or cancel failure ends the pass; the next tick starts over
from fresh store contents. Anything else that goes wrong inside a pass is
logged with a traceback and swallowed so the loop keeps ticking.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from app.core.constants import DEFAULT_BUFFER, DEFAULT_DEADLINE
from app.core.errors import ReaperError
from app.models.build import Build
from app.models.sweep_report import SweepReport
from app.reaper.deadline import is_exceeded, utcnow
from app.reaper.timeline import NoActiveStage, latest_active_start
from app.stores.base import BuildReader, Canceler, RepositoryReader, StageReader

logger = logging.getLogger(__name__)


def _next_tick(next_tick: float, now: float, interval: float) -> float:
    """Next slot of a fixed-rate schedule strictly after ``now``; missed slots are skipped."""
    next_tick += interval
    if next_tick <= now:
        next_tick += (int((now - next_tick) // interval) + 1) * interval
    return next_tick


class Decision(str, Enum):
    CANCEL = "cancel"
    NOOP = "noop"


class Reaper:
    """
    Sweeper that cancels zombie builds on a fixed interval.

    Deadlines are fixed at construction. A zero or missing deadline falls
    back to 24 hours.
    """

    def __init__(
        self,
        repos: RepositoryReader,
        builds: BuildReader,
        stages: StageReader,
        canceler: Canceler,
        running: Optional[timedelta] = None,
        pending: Optional[timedelta] = None,
        buffer: timedelta = DEFAULT_BUFFER,
    ) -> None:
        self.repos = repos
        self.builds = builds
        self.stages = stages
        self.canceler = canceler
        self._running = running or DEFAULT_DEADLINE
        self._pending = pending or DEFAULT_DEADLINE
        self._buffer = buffer
        self.last_report: Optional[SweepReport] = None
        # one pass at a time, whether from the loop or a manual trigger
        self._pass_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._stop_reason: Optional[str] = None

    @property
    def running(self) -> timedelta:
        return self._running

    @property
    def pending(self) -> timedelta:
        return self._pending

    @property
    def buffer(self) -> timedelta:
        return self._buffer

    def stop(self, reason: str = "stopped") -> None:
        """Ask a running start() loop to return ``reason`` after any in-flight pass."""
        self._stop_reason = reason
        self._stop_event.set()

    async def start(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> str:
        """
        Run one pass every ``interval`` seconds until stopped, then return why.

        Ticks sit on a fixed schedule measured from the call; a pass that
        overruns one or more ticks drops them instead of bunching up. The
        loop ends when stop() is called or ``stop_event`` is set, and returns
        the reason given to stop() ("stop event set" otherwise).

        Cancelling the task running this coroutine raises CancelledError
        with the cancel message as its reason. A pass already in flight is
        shielded and runs to completion.
        """
        if stop_event is not None:
            self._stop_event = stop_event
        stop_event = self._stop_event
        logger.info(
            "Reaper started (interval=%ss, pending=%s, running=%s, buffer=%s)",
            interval, self._pending, self._running, self._buffer,
        )
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, next_tick - loop.time()))
            except asyncio.TimeoutError:
                await asyncio.shield(self.reap_safely())
                next_tick = _next_tick(next_tick, loop.time(), interval)
        reason = self._stop_reason or "stop event set"
        logger.info("Reaper stopped: %s", reason)
        return reason

    async def reap_safely(self) -> SweepReport:
        """Run one pass; never raises anything but CancelledError."""
        async with self._pass_lock:
            try:
                return await self.reap()
            except ReaperError as e:
                report = self._current_report()
                report.outcome = "error"
                report.error = str(e)
            except Exception as e:
                logger.exception("reaper: unexpected fault during sweep")
                report = self._current_report()
                report.outcome = "fault"
                report.error = repr(e)
            report.finished_at = utcnow()
            return report

    async def reap(self) -> SweepReport:
        now = utcnow()
        report = SweepReport(started_at=now)
        self.last_report = report
        logger.debug("reaper: sweep started")

        try:
            pending = await self.builds.pending()
        except ReaperError as e:
            logger.error("reaper: cannot get pending builds: %s", e)
            raise
        report.pending_seen = len(pending)
        # pending builds are measured from creation
        await self._sweep(pending, self._pending, now, report, use_created=True)

        try:
            running = await self.builds.running()
        except ReaperError as e:
            logger.error("reaper: cannot get running builds: %s", e)
            raise
        report.running_seen = len(running)
        await self._sweep(running, self._running, now, report, use_created=False)

        report.finished_at = utcnow()
        logger.info(
            "reaper: sweep finished, %d candidates, %d cancelled",
            report.candidates, len(report.cancelled),
        )
        return report

    async def _sweep(
        self,
        builds: List[Build],
        deadline: timedelta,
        now: datetime,
        report: SweepReport,
        use_created: bool,
    ) -> None:
        for build in builds:
            reference = build.created if use_created else (build.started or build.created)
            if not is_exceeded(reference, deadline, self._buffer, now):
                continue
            report.candidates += 1
            try:
                decision = await self.reap_maybe(build, now)
            except ReaperError as e:
                logger.error("reaper: cannot reap build %s: %s", build.id, e)
                raise
            if decision == Decision.CANCEL:
                report.cancelled.append(build.id)
            else:
                report.skipped.append(build.id)

    async def reap_maybe(self, build: Build, now: Optional[datetime] = None) -> Decision:
        if now is None:
            now = utcnow()
        repo = await self.repos.find(build.repo_id)

        # a build still pending past its deadline never got picked up,
        # there is nothing else to inspect.
        if build.is_pending:
            logger.info("reaper: cancelling pending build %s (repo %s)", build.id, repo.id)
            await self.canceler.cancel(repo, build)
            return Decision.CANCEL

        stages = await self.stages.list(build.id)
        timeline = latest_active_start(stages)

        if isinstance(timeline, NoActiveStage):
            logger.info("reaper: cancelling build %s, no active stage", build.id)
            await self.canceler.cancel(repo, build)
            return Decision.CANCEL

        if is_exceeded(timeline.started, timedelta(minutes=repo.timeout), self._buffer, now):
            logger.info(
                "reaper: cancelling build %s, stage running since %s exceeds %sm timeout",
                build.id, timeline.started.isoformat(), repo.timeout,
            )
            await self.canceler.cancel(repo, build)
            return Decision.CANCEL

        logger.debug("reaper: build %s still within repository timeout", build.id)
        return Decision.NOOP

    def _current_report(self) -> SweepReport:
        if self.last_report is None:
            self.last_report = SweepReport(started_at=utcnow())
        return self.last_report
