"""
Video State Management Service
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from shortsfusion.models.video import VideoModel, VideoStatus
from shortsfusion.services.storage import VideoDB


class VideoStateError(Exception):
    """Exception raised for invalid state transitions"""

    pass


class VideoNotFound(LookupError):
    """Video does not exist or is not owned by the caller"""

    def __init__(self, video_id: str):
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}")


# Valid state transitions
VALID_TRANSITIONS = {
    VideoStatus.QUEUED.value: [VideoStatus.PROCESSING.value, VideoStatus.FAILED.value],
    VideoStatus.PROCESSING.value: [
        VideoStatus.PREVIEW_READY.value,
        VideoStatus.COMPLETED.value,
        VideoStatus.FAILED.value,
    ],
    VideoStatus.PREVIEW_READY.value: [VideoStatus.FINALIZING.value, VideoStatus.FAILED.value],
    VideoStatus.FINALIZING.value: [VideoStatus.COMPLETED.value, VideoStatus.FAILED.value],
    VideoStatus.COMPLETED.value: [],  # Terminal state
    VideoStatus.FAILED.value: [],  # Terminal state
}

TERMINAL_STATES = {VideoStatus.COMPLETED.value, VideoStatus.FAILED.value}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in VALID_TRANSITIONS.get(current_status, [])


def transition_state(
    db: Session,
    video_id: str,
    new_status: str,
    event: str,
    commit: bool = True,
) -> Optional[VideoModel]:
    """
    Transition video to new status with validation

    Args:
        db: Database session
        video_id: Video identifier
        new_status: Target status
        event: Event triggering the transition
        commit: Commit the session after the update

    Returns:
        Updated VideoModel or None if video not found

    Raises:
        VideoStateError: If transition is invalid
    """
    video = VideoDB.get_video(db, video_id)
    if not video:
        return None

    new_value = new_status.value if hasattr(new_status, "value") else new_status
    current_status = video.status

    if not can_transition(current_status, new_value):
        raise VideoStateError(
            f"Invalid state transition: {current_status} -> {new_value}. "
            f"Valid transitions from {current_status}: {VALID_TRANSITIONS.get(current_status, [])}"
        )

    return VideoDB.update_video_status(
        db=db,
        video_id=video_id,
        new_status=new_value,
        event=event,
        timestamp=datetime.utcnow(),
        commit=commit,
    )


def get_current_state(db: Session, video_id: str) -> Optional[str]:
    """
    Get current status of a video

    Args:
        db: Database session
        video_id: Video identifier

    Returns:
        Current status or None if video not found
    """
    video = VideoDB.get_video(db, video_id)
    return video.status if video else None


def is_terminal_state(status: str) -> bool:
    """
    Check if status is a terminal state

    Args:
        status: Video status

    Returns:
        True if status is completed or failed
    """
    return status in TERMINAL_STATES
