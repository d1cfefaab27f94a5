import uvicorn
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.status import router as status_router
from app.api.reap import router as reap_router
from app.core.config import (
    BUILD_SERVER_TIMEOUT,
    BUILD_SERVER_TOKEN,
    BUILD_SERVER_URL,
    LOG_DIR,
    LOG_LEVEL,
    REAPER_BUFFER,
    REAPER_ENABLED,
    REAPER_INTERVAL,
    REAPER_PENDING_DEADLINE,
    REAPER_RUNNING_DEADLINE,
)
from app.reaper.reaper import Reaper
from app.stores.http import BuildServerClient
from app.utils.logging_config import setup_logging

setup_logging(level=getattr(logging, LOG_LEVEL, logging.INFO), log_dir=LOG_DIR)
logger = logging.getLogger("main")

# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {e}")
            raise
        process_time = (time.time() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.2f}ms"
        )
        return response


def build_reaper() -> Reaper:
    client = BuildServerClient(BUILD_SERVER_URL, BUILD_SERVER_TOKEN, timeout=BUILD_SERVER_TIMEOUT)
    return Reaper(
        repos=client,
        builds=client,
        stages=client,
        canceler=client,
        running=REAPER_RUNNING_DEADLINE,
        pending=REAPER_PENDING_DEADLINE,
        buffer=REAPER_BUFFER,
    )


def create_app(
    reaper: Optional[Reaper] = None,
    enabled: bool = REAPER_ENABLED,
    interval: float = REAPER_INTERVAL,
) -> FastAPI:
    reaper = reaper or build_reaper()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if enabled:
            task = asyncio.create_task(reaper.start(interval))
        else:
            logger.info("Reaper disabled, sweeps only run via POST /reap")
        try:
            yield
        finally:
            if task is not None:
                reaper.stop("application shutdown")
                await task
            closed = set()
            for collaborator in (reaper.repos, reaper.builds, reaper.stages, reaper.canceler):
                if isinstance(collaborator, BuildServerClient) and id(collaborator) not in closed:
                    closed.add(id(collaborator))
                    await collaborator.aclose()

    app = FastAPI(title="Build Reaper", lifespan=lifespan)
    app.state.reaper = reaper
    app.state.reaper_enabled = enabled
    app.add_middleware(LoggingMiddleware)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(status_router, tags=["Reaper"])
    app.include_router(reap_router, tags=["Reaper"])
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000)
