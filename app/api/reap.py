"""
POST /reap
Runs one sweep pass immediately, outside the regular interval.
The pass goes through the same fault boundary as the background loop.
"""
import logging

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/reap")
async def trigger_reap(request: Request):
    logger.info("Manual sweep requested")
    report = await request.app.state.reaper.reap_safely()
    return report.model_dump(mode="json")
