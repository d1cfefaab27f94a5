"""
Collaborator Interfaces
=======================
Async capabilities the reaper consumes but does not implement.

Readers raise StoreError (NotFoundError for a missing repository); the
canceler raises CancelError. Cancel must mark the build and all of its
stages killed in one step, or fail without partial effect, and must be
safe to call on a build that already finished.
"""
from typing import List, Protocol

from app.models.build import Build, Repository, Stage


class RepositoryReader(Protocol):
    async def find(self, repo_id: int) -> Repository: ...


class BuildReader(Protocol):
    async def pending(self) -> List[Build]: ...

    async def running(self) -> List[Build]: ...


class StageReader(Protocol):
    async def list(self, build_id: int) -> List[Stage]: ...


class Canceler(Protocol):
    async def cancel(self, repo: Repository, build: Build) -> None: ...
