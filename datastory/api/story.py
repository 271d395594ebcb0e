"""
Story endpoints - generate and fetch narrative drafts.
"""
import logging
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from datastory.api.dependencies import get_pipeline
from datastory.core.schemas import DraftRecord
from datastory.services.pipeline import DataStoryPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/data-stories/{analysis_id}/generate-story", response_model=DraftRecord)
async def generate_story(analysis_id: str, pipeline: DataStoryPipeline = Depends(get_pipeline)):
    """
    Generate a story draft from a completed analysis.

    The primary story provider is tried first, then the configured fallback.
    A failed run is still recorded as a draft with status 'failed'.
    """
    draft = await run_in_threadpool(pipeline.generate_story, analysis_id)
    logger.info(f"Draft {draft.id} generated by {draft.provider}")
    return draft


@router.get("/data-stories/drafts/{draft_id}", response_model=DraftRecord)
async def get_draft(draft_id: str, pipeline: DataStoryPipeline = Depends(get_pipeline)):
    return await run_in_threadpool(pipeline.get_draft, draft_id)
