"""Server-Sent Events streaming routes."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

router = APIRouter()


@router.get("/jobs/{job_id}/stream")
async def stream_job_progress(request: Request, job_id: str):
    """
    Stream batch evaluation progress via Server-Sent Events.

    Events:
    - progress: {"current": int, "total": int, "percentage": float, "message": str, "translation_id": str}
    - complete: {"complete": true, "result": {"processed", "succeeded", "failed", "errors"}}
    - error: {"error": str}
    """
    job_manager = request.app.state.job_manager

    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job not found")

    return StreamingResponse(
        job_manager.stream_progress(job_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
