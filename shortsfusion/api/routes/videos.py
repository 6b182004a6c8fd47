"""
Video API Routes - Owner-scoped reads and two-phase slide editing
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from shortsfusion.api.dependencies import get_current_user, get_slide_editor
from shortsfusion.config.constants import DEFAULT_PAGE_SIZE
from shortsfusion.models import get_db
from shortsfusion.models.user import UserModel
from shortsfusion.models.video import VideoModel
from shortsfusion.services.admission import EnqueueFailedAfterCommit
from shortsfusion.services.editing import SlideEditor
from shortsfusion.services.storage import VideoDB
from shortsfusion.services.video_state import VideoNotFound


# Request/Response Models


class VideoSummaryResponse(BaseModel):
    """Video list item"""

    video_id: str
    topic: str
    style: str
    duration_s: int
    flow: str
    status: str
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    tokens_charged: int
    created_at: Optional[str] = None


class SceneResponse(BaseModel):
    sequence_index: int
    text: str
    image_prompt: str
    image_url: Optional[str] = None
    is_placeholder: bool
    is_animated: bool
    revision: int


class VideoDetailResponse(VideoSummaryResponse):
    """Video detail with scenes"""

    voice: str
    script_text: Optional[str] = None
    voiceover_url: Optional[str] = None
    animation_tokens: int
    regeneration_tokens: int
    tokens_refunded: int
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    status_transitions: List[Dict[str, Any]]
    scenes: List[SceneResponse]
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None


class RegenerateSlideRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sequence_index: int = Field(..., alias="sequenceIndex", ge=0)
    image_prompt: Optional[str] = Field(default=None, alias="imagePrompt")


class AnimateSlideRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sequence_index: int = Field(..., alias="sequenceIndex", ge=0)
    animated: bool = True


class FinalizeResponse(BaseModel):
    video_id: str
    status: str
    message: str


# Router
router = APIRouter()


def _summary(video: VideoModel) -> VideoSummaryResponse:
    data = video.to_dict()
    return VideoSummaryResponse(**{k: data[k] for k in VideoSummaryResponse.model_fields})


def _detail(video: VideoModel) -> VideoDetailResponse:
    data = video.to_dict()
    return VideoDetailResponse(**{k: data[k] for k in VideoDetailResponse.model_fields})


@router.get("/videos", response_model=List[VideoSummaryResponse])
async def list_videos(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
):
    """List the caller's videos, newest first"""
    videos = VideoDB.list_videos_for_owner(db, user.id, skip=offset, limit=limit)
    return [_summary(video) for video in videos]


@router.get("/videos/{video_id}", response_model=VideoDetailResponse)
async def get_video(
    video_id: str,
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
):
    """Get one of the caller's videos with its scenes"""
    video = VideoDB.get_video_for_owner(db, video_id, user.id)
    if video is None:
        raise VideoNotFound(video_id)
    return _detail(video)


@router.post("/videos/{video_id}/regenerate-slide", response_model=SceneResponse)
async def regenerate_slide(
    video_id: str,
    request: RegenerateSlideRequest,
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
    editor: SlideEditor = Depends(get_slide_editor),
):
    """Regenerate one slide image of a preview_ready video"""
    scene = await editor.regenerate_slide(
        db,
        user_id=user.id,
        video_id=video_id,
        sequence_index=request.sequence_index,
        image_prompt=request.image_prompt,
    )
    return SceneResponse(**scene.to_dict())


@router.post("/videos/{video_id}/animate-slide", response_model=SceneResponse)
async def animate_slide(
    video_id: str,
    request: AnimateSlideRequest,
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
    editor: SlideEditor = Depends(get_slide_editor),
):
    """Turn the zoom animation of a slide on or off"""
    scene = editor.set_slide_animation(
        db,
        user_id=user.id,
        video_id=video_id,
        sequence_index=request.sequence_index,
        animated=request.animated,
    )
    return SceneResponse(**scene.to_dict())


@router.post(
    "/videos/{video_id}/finalize",
    response_model=FinalizeResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def finalize_video(
    video_id: str,
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
    editor: SlideEditor = Depends(get_slide_editor),
):
    """Lock the slides and queue the voiceover and render"""
    try:
        video = editor.finalize(db, user_id=user.id, video_id=video_id)
    except EnqueueFailedAfterCommit as e:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=FinalizeResponse(
                video_id=e.video_id,
                status="finalizing",
                message="Render accepted; processing will start shortly.",
            ).model_dump(),
        )

    return FinalizeResponse(
        video_id=video.video_id,
        status=video.status,
        message="Render queued. Use GET /api/videos/{id} to track progress.",
    )
