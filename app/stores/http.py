"""
Build Server Client
===================
Implements the reaper collaborators against a build server REST API.

Endpoints:
    GET    /api/repos/{id}                         — repository lookup
    GET    /api/builds/incomplete?status=<status>  — pending / running builds
    GET    /api/builds/{id}/stages                 — stages of one build
    DELETE /api/repos/{repo_id}/builds/{number}    — cancel build + stages (409 = already finished)

Transport and HTTP failures are converted into StoreError (reads) or
CancelError (cancel) so the reaper can tell them apart from faults.
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from app.core.errors import CancelError, NotFoundError, StoreError
from app.models.build import Build, Repository, Stage

logger = logging.getLogger(__name__)


class BuildServerClient:
    """
    Async client holding one pooled httpx connection for the reaper's lifetime.

    Pass ``transport`` to swap in httpx.MockTransport under test.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "Accept": "application/json",
            "User-Agent": "build-reaper",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BuildServerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get(self, path: str, **params: Any) -> Any:
        try:
            response = await self._client.get(path, params=params or None)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as http_err:
            status_code = http_err.response.status_code
            if status_code == 404:
                raise NotFoundError(f"{path} not found") from http_err
            raise StoreError(f"GET {path} failed with HTTP {status_code}") from http_err
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"GET {path} failed: {e}") from e

    # RepositoryReader
    async def find(self, repo_id: int) -> Repository:
        data = await self._get(f"/api/repos/{repo_id}")
        try:
            return Repository.model_validate(data)
        except ValidationError as e:
            raise StoreError(f"invalid repository payload for {repo_id}: {e}") from e

    # BuildReader
    async def pending(self) -> List[Build]:
        return await self._list_builds("pending")

    async def running(self) -> List[Build]:
        return await self._list_builds("running")

    async def _list_builds(self, status: str) -> List[Build]:
        data = await self._get("/api/builds/incomplete", status=status)
        try:
            return [Build.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            raise StoreError(f"invalid {status} build payload: {e}") from e

    # StageReader
    async def list(self, build_id: int) -> List[Stage]:
        data = await self._get(f"/api/builds/{build_id}/stages")
        try:
            return [Stage.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            raise StoreError(f"invalid stage payload for build {build_id}: {e}") from e

    # Canceler
    async def cancel(self, repo: Repository, build: Build) -> None:
        if not build.number:
            # the endpoint is keyed by build number; the database id may name another build
            raise CancelError(f"build {build.id} has no build number, refusing to cancel")
        path = f"/api/repos/{repo.id}/builds/{build.number}"
        try:
            response = await self._client.delete(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as http_err:
            status_code = http_err.response.status_code
            if status_code == 409:
                # build reached a terminal status since it was listed
                logger.debug("Build %s already finished, nothing to cancel", build.id)
                return
            raise CancelError(
                f"cancel of build {build.id} failed with HTTP {status_code}"
            ) from http_err
        except httpx.HTTPError as e:
            raise CancelError(f"cancel of build {build.id} failed: {e}") from e
        logger.info("Cancel requested for build %s of repository %s", build.id, repo.slug or repo.id)
