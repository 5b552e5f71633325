"""REST API routes."""

import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ...exceptions import NotFoundError, ValidationError

router = APIRouter()


# Request models
class EvaluateRequest(BaseModel):
    force_ai: bool = False


class BatchEvaluateRequest(BaseModel):
    translation_ids: list[str] = Field(min_length=1)
    force_ai: bool = False


class BranchEvaluateRequest(BaseModel):
    translation_ids: Optional[list[str]] = None
    force_ai: bool = False


class ICUValidateRequest(BaseModel):
    text: str


class QualityConfigUpdate(BaseModel):
    ai_enabled: Optional[bool] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    provider_active: Optional[bool] = None
    auto_approve_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    flag_threshold: Optional[int] = Field(default=None, ge=0, le=100)


# Quality endpoints
@router.post("/quality/translations/{translation_id}/evaluate")
async def evaluate_translation(request: Request, translation_id: str, body: EvaluateRequest = None):
    """Evaluate one translation (cached score when its content is unchanged)."""
    quality_service = request.app.state.quality_service
    force_ai = body.force_ai if body else False

    try:
        score = await asyncio.to_thread(quality_service.evaluate, translation_id, force_ai)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValidationError as e:
        raise HTTPException(400, str(e))

    return score.to_dict()


@router.get("/quality/translations/{translation_id}")
async def get_cached_score(request: Request, translation_id: str):
    """Get the stored score without evaluating."""
    score = request.app.state.quality_service.get_cached_score(translation_id)
    if not score:
        raise HTTPException(404, "No quality score for this translation")
    return score.to_dict()


@router.post("/quality/batch")
async def evaluate_batch(request: Request, body: BatchEvaluateRequest):
    """Evaluate a list of translations and wait for the results."""
    quality_service = request.app.state.quality_service
    max_batch_size = request.app.state.batch_service.max_batch_size

    if len(body.translation_ids) > max_batch_size:
        raise HTTPException(400, f"Batch size exceeds maximum of {max_batch_size} translations")

    outcome = await asyncio.to_thread(quality_service.evaluate_batch, body.translation_ids, body.force_ai)

    return {
        "results": {tid: score.to_dict() for tid, score in outcome.results.items()},
        "failures": [{"translation_id": f.translation_id, "error": f.error} for f in outcome.failures],
        "succeeded": outcome.succeeded,
        "failed": outcome.failed,
    }


@router.post("/quality/branches/{branch_id}/evaluate")
async def evaluate_branch(request: Request, branch_id: str, body: BranchEvaluateRequest = None):
    """
    Queue a background evaluation of a branch.

    Returns the job id (empty when everything is already scored) and the
    cached/queued counts. Progress is streamed at /api/jobs/{job_id}/stream.
    """
    batch_service = request.app.state.batch_service
    body = body or BranchEvaluateRequest()

    try:
        plan = await asyncio.to_thread(batch_service.plan_branch, branch_id, body.translation_ids, body.force_ai)
    except ValidationError as e:
        raise HTTPException(400, str(e))

    # The job queue schedules on the running loop, so enqueue from here
    return batch_service.enqueue(plan).to_dict()


@router.get("/quality/branches/{branch_id}/summary")
async def branch_summary(request: Request, branch_id: str):
    """Score distribution and per-language averages for a branch."""
    summary = request.app.state.quality_service.get_branch_summary(branch_id)
    return summary.to_dict()


@router.get("/quality/keys/{key_id}/context")
async def key_context(request: Request, key_id: str, target_language: str, source_language: Optional[str] = None):
    """Related keys and rendered prompt context for a key."""
    quality_service = request.app.state.quality_service
    try:
        context = quality_service.build_context(key_id, target_language, source_language)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return context.to_dict()


@router.post("/quality/keys/{key_id}/evaluate")
async def evaluate_key(request: Request, key_id: str, body: EvaluateRequest = None):
    """Evaluate every target language of a key with one AI call."""
    quality_service = request.app.state.quality_service
    force_ai = body.force_ai if body else False

    try:
        results = await asyncio.to_thread(quality_service.evaluate_key_all_languages, key_id, force_ai)
    except NotFoundError as e:
        raise HTTPException(404, str(e))

    return {language: score.to_dict() for language, score in results.items()}


@router.post("/quality/icu/validate")
async def validate_icu(request: Request, body: ICUValidateRequest):
    """Check ICU message syntax."""
    result = request.app.state.quality_service.validate_icu_syntax(body.text)
    return {"valid": result.valid, "error": result.error, "arguments": result.arguments}


# Project endpoints
@router.get("/projects/{project_id}/quality/config")
async def get_quality_config(request: Request, project_id: str):
    """Quality settings of a project, thresholds resolved against the defaults."""
    try:
        settings = request.app.state.quality_service.get_quality_settings(project_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return settings.to_dict()


@router.put("/projects/{project_id}/quality/config")
async def update_quality_config(request: Request, project_id: str, body: QualityConfigUpdate):
    """Partially update a project's quality settings. Only the fields sent are changed."""
    changes = body.model_dump(exclude_unset=True)
    try:
        settings = request.app.state.quality_service.update_quality_settings(project_id, changes)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValidationError as e:
        raise HTTPException(400, str(e))
    return settings.to_dict()


# Job endpoints
@router.get("/jobs/{job_id}")
async def get_job(request: Request, job_id: str):
    """Get the status of a background job."""
    job = request.app.state.job_manager.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return job.to_dict()


@router.get("/jobs")
async def list_jobs(request: Request, branch_id: Optional[str] = None):
    return [job.to_dict() for job in request.app.state.job_manager.list_jobs(branch_id)]
