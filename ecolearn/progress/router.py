"""Watch progress API endpoints.

Provides routes for:
- Resume check for a single video
- Watch history and summary (dashboards, progress reports)
- Explicit progress reset
"""

from fastapi import APIRouter, Path

from ecolearn.auth.dependencies import CurrentUserId

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    MessageResponse,
    ProgressSummaryResponse,
    VideoProgressCheckResponse,
    VideoProgressListResponse,
    VideoProgressResponse,
)
from .service import ProgressError


router = APIRouter(prefix="/v1/progress", tags=["progress"])

VIDEO_PATH = "/videos/{level_id}/{topic_id}/{video_id}"


@router.get(
    "/videos",
    response_model=VideoProgressListResponse,
    summary="List watched videos",
)
async def list_video_progress(
    progress_service: ProgressServiceDep,
    user_id: CurrentUserId,
) -> VideoProgressListResponse:
    """All saved video progress of the current user, most recent first."""
    try:
        records = await progress_service.list_user_progress(user_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e

    items = [VideoProgressResponse.from_entity(r) for r in records]
    return VideoProgressListResponse(items=items, total=len(items))


@router.get(
    VIDEO_PATH,
    response_model=VideoProgressCheckResponse,
    summary="Check progress of a video",
)
async def get_video_progress(
    progress_service: ProgressServiceDep,
    user_id: CurrentUserId,
    level_id: str,
    video_id: str,
    topic_id: int = Path(..., ge=0),
) -> VideoProgressCheckResponse:
    """Resume position and completion of one video (zero when never watched)."""
    try:
        return await progress_service.get_video_progress(
            user_id, level_id, topic_id, video_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e


@router.delete(
    VIDEO_PATH,
    response_model=MessageResponse,
    summary="Reset progress of a video",
)
async def reset_video_progress(
    progress_service: ProgressServiceDep,
    user_id: CurrentUserId,
    level_id: str,
    video_id: str,
    topic_id: int = Path(..., ge=0),
) -> MessageResponse:
    """Clear saved progress and completion so the video can be rewatched."""
    try:
        await progress_service.reset_video_progress(
            user_id, level_id, topic_id, video_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return MessageResponse(message="Video progress reset")


@router.get(
    "/summary",
    response_model=ProgressSummaryResponse,
    summary="Watch progress summary",
)
async def get_progress_summary(
    progress_service: ProgressServiceDep,
    user_id: CurrentUserId,
) -> ProgressSummaryResponse:
    """Totals and per-level completion for the current user."""
    try:
        return await progress_service.get_progress_summary(user_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
