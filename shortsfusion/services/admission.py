"""
Request Admission Service - Validate, charge and enqueue generation requests
"""

from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from shortsfusion.config.constants import (
    DURATION_COSTS,
    FLOW_SINGLE_SHOT,
    REASON_GENERATE_VIDEO,
    STYLE_COSTS,
    SUPPORTED_FLOWS,
    VOICE_MAP,
)
from shortsfusion.models.video import VideoStatus
from shortsfusion.services import ledger
from shortsfusion.services.ledger import InsufficientBalance, UserNotFound
from shortsfusion.services.observability import log_admission, logger
from shortsfusion.services.storage import UserDB, VideoDB


class InvalidParameters(ValueError):
    """Request parameters are outside the supported set"""

    pass


class EnqueueFailedAfterCommit(Exception):
    """
    The charge and video row were committed but the job could not be enqueued

    The video stays `queued` and is picked up by the reconciliation sweep.
    """

    def __init__(self, video_id: str, tokens_charged: int, cause: Optional[Exception] = None):
        self.video_id = video_id
        self.tokens_charged = tokens_charged
        self.cause = cause
        super().__init__(f"Video {video_id} committed but enqueue failed: {cause}")


def compute_cost(style: str, duration_s: int) -> int:
    """
    Token cost for a style and duration

    Raises:
        InvalidParameters: If style or duration is not in the cost table
    """
    if style not in STYLE_COSTS:
        raise InvalidParameters(
            f"Unsupported visual style: {style}. Supported: {sorted(STYLE_COSTS)}"
        )
    if isinstance(duration_s, bool) or duration_s not in DURATION_COSTS:
        raise InvalidParameters(
            f"Unsupported duration: {duration_s}. Supported: {sorted(DURATION_COSTS)}"
        )
    return STYLE_COSTS[style] + DURATION_COSTS[duration_s]


def validate_request(topic: str, voice: str, flow: str) -> str:
    """Validate free-form parameters and return the normalized topic"""
    normalized = (topic or "").strip()
    if not normalized:
        raise InvalidParameters("Topic must not be empty")
    if voice not in VOICE_MAP:
        raise InvalidParameters(f"Unsupported voice: {voice}. Supported: {sorted(VOICE_MAP)}")
    if flow not in SUPPORTED_FLOWS:
        raise InvalidParameters(f"Unsupported flow: {flow}. Supported: {SUPPORTED_FLOWS}")
    return normalized


class AdmissionService:
    """
    Turns a generation request into a charged, queued video

    Debit and video insert share one transaction; the queue handoff happens
    only after that transaction commits.
    """

    def __init__(self, queue):
        self.queue = queue

    def submit(
        self,
        db: Session,
        user_id: str,
        topic: str,
        style: str,
        duration_s: int,
        voice: str = "default",
        flow: str = FLOW_SINGLE_SHOT,
    ) -> Dict[str, Any]:
        """
        Admit a generation request

        Args:
            db: Database session
            user_id: Requesting user
            topic: Video topic
            style: Visual style key
            duration_s: Target duration in seconds
            voice: Voice selector
            flow: "single_shot" or "two_phase"

        Returns:
            Dict with video_id, tokens_charged, status

        Raises:
            InvalidParameters: Bad request, nothing written
            UserNotFound: Unknown user, nothing written
            InsufficientBalance: Balance too low, nothing written
            EnqueueFailedAfterCommit: Charge committed, enqueue failed
        """
        normalized_topic = validate_request(topic, voice, flow)
        cost = compute_cost(style, duration_s)

        try:
            user = UserDB.lock_user(db, user_id)
            if user is None:
                raise UserNotFound(user_id)
            if user.tokens < cost:
                raise InsufficientBalance(required=cost, available=user.tokens)

            video = VideoDB.create_video(
                db,
                user_id=user_id,
                topic=normalized_topic,
                style=style,
                duration_s=duration_s,
                base_cost=cost,
                voice=voice,
                flow=flow,
                commit=False,
            )
            video_id = video.video_id

            ledger.debit(
                db,
                user_id,
                cost,
                REASON_GENERATE_VIDEO,
                f"gen:{user_id}:{video_id}",
                video_id=video_id,
                commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        balance_after = ledger.balance_of(db, user_id)
        log_admission(
            user_id=user_id,
            video_id=video_id,
            style=style,
            duration_s=duration_s,
            tokens_charged=cost,
            balance_after=balance_after,
        )

        try:
            self.queue.enqueue(video_id)
        except Exception as e:
            logger.warning(
                "enqueue_failed_after_commit",
                video_id=video_id,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EnqueueFailedAfterCommit(video_id, cost, e) from e

        return {
            "video_id": video_id,
            "tokens_charged": cost,
            "status": VideoStatus.QUEUED.value,
        }
