"""
GET /status
Reports the reaper's deadlines and the outcome of its most recent sweep pass.
"""
from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/status")
async def get_status(request: Request):
    reaper = request.app.state.reaper
    report = reaper.last_report
    return {
        "enabled": request.app.state.reaper_enabled,
        "pending_deadline_seconds": reaper.pending.total_seconds(),
        "running_deadline_seconds": reaper.running.total_seconds(),
        "buffer_seconds": reaper.buffer.total_seconds(),
        "last_sweep": report.model_dump(mode="json") if report else None,
    }
