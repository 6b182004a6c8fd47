"""
Reconciliation Sweep - Recover charged videos whose queue handoff was lost
"""

from datetime import datetime, timedelta
from typing import Dict, Optional
from sqlalchemy.orm import Session

from shortsfusion.config.constants import REASON_REFUND_FAILED_VIDEO
from shortsfusion.config.settings import settings
from shortsfusion.models.video import VideoModel, VideoStatus
from shortsfusion.services import ledger
from shortsfusion.services.observability import log_refund, logger
from shortsfusion.services.storage import VideoDB
from shortsfusion.services.video_state import transition_state


# Status a stranded video sits in, and the job phase that moves it on.
# A processing video with no pending job lost its worker mid-pipeline.
RECOVERABLE_PHASES = {
    VideoStatus.QUEUED.value: "generate",
    VideoStatus.PROCESSING.value: "generate",
    VideoStatus.FINALIZING.value: "render",
}


def _refund_stranded(db: Session, video: VideoModel, reason_event: str) -> int:
    refund = video.refundable_tokens
    try:
        transition_state(db, video.video_id, VideoStatus.FAILED, reason_event, commit=False)
        VideoDB.update_video_error(
            db,
            video.video_id,
            error_message="Video could not be scheduled for processing",
            error_details={
                "code": "ENQUEUE_FAILED",
                "message": "Job handoff lost and not recoverable",
                "classification": "non_retryable",
                "retryable": False,
            },
            commit=False,
        )
        if refund > 0:
            ledger.credit(
                db,
                video.user_id,
                refund,
                REASON_REFUND_FAILED_VIDEO,
                f"refund:{video.video_id}",
                video_id=video.video_id,
                commit=False,
            )
            video.tokens_refunded = refund
        db.commit()
    except Exception:
        db.rollback()
        raise

    if refund > 0:
        log_refund(
            user_id=video.user_id,
            video_id=video.video_id,
            amount=refund,
            reason=REASON_REFUND_FAILED_VIDEO,
        )
    return refund


def reconcile(
    db: Session,
    queue,
    older_than_s: Optional[int] = None,
    refund_after_s: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Re-enqueue or refund charged videos that no queued job will move on

    Args:
        db: Database session
        queue: JobQueue
        older_than_s: Minimum age before a video is considered stranded
        refund_after_s: Age after which a stranded video is failed and refunded
        now: Reference time, injectable for tests

    Returns:
        Summary {"requeued": n, "refunded": n, "skipped": n}
    """
    older_than_s = older_than_s if older_than_s is not None else settings.reconcile_after_s
    refund_after_s = (
        refund_after_s if refund_after_s is not None else settings.reconcile_refund_after_s
    )
    now = now or datetime.utcnow()
    cutoff = now - timedelta(seconds=older_than_s)
    refund_cutoff = now - timedelta(seconds=refund_after_s)

    summary = {"requeued": 0, "refunded": 0, "skipped": 0}

    for status, phase in RECOVERABLE_PHASES.items():
        for video in VideoDB.list_stale_videos(db, status, older_than=cutoff):
            if queue.has_pending_job(video.video_id):
                summary["skipped"] += 1
                continue

            # Age in the current state, so a fresh finalize of an old video is requeued
            if video.updated_at < refund_cutoff:
                _refund_stranded(db, video, "reconcile_expired")
                summary["refunded"] += 1
                continue

            try:
                queue.enqueue(video.video_id, phase=phase)
            except Exception as e:
                logger.error(
                    "reconcile_enqueue_failed",
                    video_id=video.video_id,
                    error=str(e),
                )
                _refund_stranded(db, video, "reconcile_enqueue_failed")
                summary["refunded"] += 1
                continue

            summary["requeued"] += 1
            logger.info("video_requeued", video_id=video.video_id, phase=phase)

    logger.info("reconcile_completed", **summary)
    return summary
