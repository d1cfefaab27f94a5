"""
In-Memory Store
===============
Dict-backed implementation of every reaper collaborator.

Used by the test-suite and for running the service locally without a
build server. Records are immutable snapshots, so cancel() replaces them
with killed copies.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from app.core.errors import NotFoundError
from app.models.build import Build, BuildStatus, Repository, Stage

logger = logging.getLogger(__name__)


class MemoryStore:

    def __init__(
        self,
        repos: Iterable[Repository] = (),
        builds: Iterable[Build] = (),
        stages: Iterable[Stage] = (),
    ) -> None:
        self._repos: Dict[int, Repository] = {r.id: r for r in repos}
        self._builds: Dict[int, Build] = {b.id: b for b in builds}
        self._stages: Dict[int, Stage] = {s.id: s for s in stages}

    def add(self, *records) -> None:
        for record in records:
            if isinstance(record, Repository):
                self._repos[record.id] = record
            elif isinstance(record, Build):
                self._builds[record.id] = record
            elif isinstance(record, Stage):
                self._stages[record.id] = record
            else:
                raise TypeError(f"unsupported record type: {type(record).__name__}")

    def build(self, build_id: int) -> Build:
        return self._builds[build_id]

    # RepositoryReader
    async def find(self, repo_id: int) -> Repository:
        try:
            return self._repos[repo_id]
        except KeyError:
            raise NotFoundError(f"repository {repo_id} not found") from None

    # BuildReader
    async def pending(self) -> List[Build]:
        return [b for b in self._builds.values() if b.status == BuildStatus.PENDING]

    async def running(self) -> List[Build]:
        return [b for b in self._builds.values() if b.status == BuildStatus.RUNNING]

    # StageReader
    async def list(self, build_id: int) -> List[Stage]:
        stages = [s for s in self._stages.values() if s.build_id == build_id]
        return sorted(stages, key=lambda s: s.number)

    # Canceler
    async def cancel(self, repo: Repository, build: Build) -> None:
        current = self._builds.get(build.id)
        if current is None:
            raise NotFoundError(f"build {build.id} not found")
        if current.status not in (BuildStatus.PENDING, BuildStatus.RUNNING):
            logger.debug("Build %s already finished (%s), nothing to cancel", build.id, current.status.value)
            return

        now = datetime.now(timezone.utc)
        killed_stages = [
            s.model_copy(update={"status": BuildStatus.KILLED, "stopped": now})
            for s in self._stages.values()
            if s.build_id == build.id and not s.is_done
        ]
        # all records are swapped only after every copy was built
        self._builds[build.id] = current.model_copy(update={"status": BuildStatus.KILLED})
        for stage in killed_stages:
            self._stages[stage.id] = stage
        logger.info("Cancelled build %s of %s", build.id, repo.slug or repo.id)
