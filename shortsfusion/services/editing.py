"""
Slide Editing Service - Two-phase flow operations on a preview_ready video
"""

from typing import Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from shortsfusion.config.constants import (
    ANIMATION_COST,
    REASON_ANIMATE_SLIDE,
    REASON_REGENERATE_SLIDE,
    REASON_REGENERATE_SLIDE_REFUND,
    REASON_UNANIMATE_SLIDE,
    SLIDE_REGENERATION_COST,
)
from shortsfusion.core.providers import ImageProvider, ProviderError
from shortsfusion.models.video import SceneModel, VideoModel, VideoStatus
from shortsfusion.services import ledger
from shortsfusion.services.admission import EnqueueFailedAfterCommit, InvalidParameters
from shortsfusion.services.observability import logger
from shortsfusion.services.storage import SceneDB, VideoDB
from shortsfusion.services.video_state import VideoNotFound, VideoStateError, transition_state


class SlideEditor:
    """
    Ledger-backed slide edits and finalization for two-phase videos
    """

    def __init__(self, queue, image_provider: Optional[ImageProvider] = None):
        self.queue = queue
        self.image_provider = image_provider

    def _load_editable(
        self,
        db: Session,
        user_id: str,
        video_id: str,
        sequence_index: Optional[int] = None,
    ):
        video = VideoDB.get_video_for_owner(db, video_id, user_id)
        if video is None:
            raise VideoNotFound(video_id)
        if video.status != VideoStatus.PREVIEW_READY.value:
            raise VideoStateError(
                f"Video {video_id} is {video.status}; slides can only be edited in preview_ready"
            )

        scene = None
        if sequence_index is not None:
            scene = SceneDB.get_scene(db, video_id, sequence_index)
            if scene is None:
                raise InvalidParameters(f"Video {video_id} has no slide {sequence_index}")
        return video, scene

    async def regenerate_slide(
        self,
        db: Session,
        user_id: str,
        video_id: str,
        sequence_index: int,
        image_prompt: Optional[str] = None,
    ) -> SceneModel:
        """
        Replace a slide image, charging SLIDE_REGENERATION_COST

        The charge is credited back if the image provider fails.

        Raises:
            VideoNotFound, VideoStateError, InvalidParameters,
            InsufficientBalance, ProviderError
        """
        video, scene = self._load_editable(db, user_id, video_id, sequence_index)
        prompt = (image_prompt or "").strip() or scene.image_prompt
        attempt = scene.regeneration_attempts + 1
        key_suffix = f"{video_id}:{sequence_index}:{attempt}"

        try:
            # Claim the attempt number; a concurrent edit of the same slide loses
            claimed = db.execute(
                update(SceneModel)
                .where(
                    SceneModel.id == scene.id,
                    SceneModel.regeneration_attempts == attempt - 1,
                )
                .values(regeneration_attempts=attempt)
            ).rowcount
            if claimed == 0:
                raise VideoStateError(
                    f"Slide {sequence_index} of video {video_id} is already being regenerated"
                )
            video.regeneration_tokens += SLIDE_REGENERATION_COST
            db.flush()
            ledger.debit(
                db,
                user_id,
                SLIDE_REGENERATION_COST,
                REASON_REGENERATE_SLIDE,
                f"regen:{key_suffix}",
                video_id=video_id,
                commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        try:
            url = await self.image_provider.generate(prompt, video.style)
        except ProviderError as e:
            logger.warning(
                "slide_regeneration_failed",
                video_id=video_id,
                sequence_index=sequence_index,
                error=str(e),
            )
            try:
                video.regeneration_tokens -= SLIDE_REGENERATION_COST
                db.flush()
                ledger.credit(
                    db,
                    user_id,
                    SLIDE_REGENERATION_COST,
                    REASON_REGENERATE_SLIDE_REFUND,
                    f"regen-refund:{key_suffix}",
                    video_id=video_id,
                    commit=False,
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
            raise

        scene.image_url = url
        scene.image_prompt = prompt
        scene.is_placeholder = False
        scene.revision += 1
        db.commit()
        db.refresh(scene)

        logger.info(
            "slide_regenerated",
            video_id=video_id,
            sequence_index=sequence_index,
            revision=scene.revision,
        )
        return scene

    def set_slide_animation(
        self,
        db: Session,
        user_id: str,
        video_id: str,
        sequence_index: int,
        animated: bool,
    ) -> SceneModel:
        """
        Turn the zoom animation of a slide on (debit) or off (credit back)

        No ledger write happens when the slide is already in the requested state.
        """
        video, scene = self._load_editable(db, user_id, video_id, sequence_index)
        if scene.is_animated == animated:
            return scene

        toggle = scene.animation_toggles + 1
        key = f"anim:{video_id}:{sequence_index}:{toggle}"

        try:
            claimed = db.execute(
                update(SceneModel)
                .where(
                    SceneModel.id == scene.id,
                    SceneModel.animation_toggles == toggle - 1,
                )
                .values(is_animated=animated, animation_toggles=toggle)
            ).rowcount
            if claimed == 0:
                raise VideoStateError(
                    f"Slide {sequence_index} of video {video_id} changed during the edit"
                )
            if animated:
                video.animation_tokens += ANIMATION_COST
                db.flush()
                ledger.debit(
                    db, user_id, ANIMATION_COST, REASON_ANIMATE_SLIDE, key,
                    video_id=video_id, commit=False,
                )
            else:
                video.animation_tokens -= ANIMATION_COST
                db.flush()
                ledger.credit(
                    db, user_id, ANIMATION_COST, REASON_UNANIMATE_SLIDE, key,
                    video_id=video_id, commit=False,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(scene)
        logger.info(
            "slide_animation_set",
            video_id=video_id,
            sequence_index=sequence_index,
            animated=animated,
            animation_tokens=video.animation_tokens,
        )
        return scene

    def finalize(self, db: Session, user_id: str, video_id: str) -> VideoModel:
        """
        Move a preview_ready video to finalizing and enqueue the render phase

        Raises:
            VideoNotFound, VideoStateError, EnqueueFailedAfterCommit
        """
        video, _ = self._load_editable(db, user_id, video_id)
        transition_state(db, video_id, VideoStatus.FINALIZING, "finalize_requested")

        try:
            self.queue.enqueue(video_id, phase="render")
        except Exception as e:
            logger.warning(
                "enqueue_failed_after_commit",
                video_id=video_id,
                user_id=user_id,
                phase="render",
                error=str(e),
            )
            raise EnqueueFailedAfterCommit(video_id, video.tokens_charged, e) from e

        logger.info("video_finalize_enqueued", video_id=video_id)
        return video
