"""
Generation API Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from shortsfusion.api.dependencies import (
    get_admission_service,
    get_current_user,
    get_rate_limiter,
)
from shortsfusion.config.constants import FLOW_SINGLE_SHOT
from shortsfusion.models import get_db
from shortsfusion.models.user import UserModel
from shortsfusion.models.video import VideoStatus
from shortsfusion.services.admission import AdmissionService, EnqueueFailedAfterCommit
from shortsfusion.services.observability import logger
from shortsfusion.services.rate_limiter import RateLimiter


# Request/Response Models


class GenerateVideoRequest(BaseModel):
    """Request for video generation"""

    model_config = ConfigDict(populate_by_name=True)

    topic: str = Field(..., description="What the video is about")
    visual_style: str = Field(..., alias="visualStyle", description="cinematic, animated, realistic or minimal")
    duration: int = Field(..., description="Target duration in seconds: 30, 60 or 90")
    voice: str = Field(default="default", description="Voice selector")
    flow: str = Field(default=FLOW_SINGLE_SHOT, description="single_shot or two_phase")


class GenerateVideoResponse(BaseModel):
    """Response for an admitted generation request"""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    tokens_charged: int = Field(..., alias="tokensCharged")
    status: str
    message: Optional[str] = None


# Router
router = APIRouter()


@router.post(
    "/videos/generate",
    response_model=GenerateVideoResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_video(
    request: GenerateVideoRequest,
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission_service),
    rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
):
    """
    Charge tokens and queue a video for generation

    Returns 202 once the charge is committed; poll GET /api/videos/{id}
    for progress.
    """
    logger.info(
        "generation_request",
        user_id=user.id,
        style=request.visual_style,
        duration=request.duration,
        flow=request.flow,
    )

    if rate_limiter is not None:
        rate_limiter.enforce(user.id)

    try:
        result = admission.submit(
            db,
            user_id=user.id,
            topic=request.topic,
            style=request.visual_style,
            duration_s=request.duration,
            voice=request.voice,
            flow=request.flow,
        )
    except EnqueueFailedAfterCommit as e:
        # Charge is durable; the reconciliation sweep schedules the job
        response = GenerateVideoResponse(
            video_id=e.video_id,
            tokens_charged=e.tokens_charged,
            status=VideoStatus.QUEUED.value,
            message="Video accepted; processing will start shortly.",
        )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=response.model_dump(by_alias=True),
        )

    return GenerateVideoResponse(
        video_id=result["video_id"],
        tokens_charged=result["tokens_charged"],
        status=result["status"],
        message="Video queued. Use GET /api/videos/{id} to track progress.",
    )
