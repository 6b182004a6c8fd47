"""
Pipeline Orchestrator - script, images, voiceover and render for one video
"""

import asyncio
import math
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from shortsfusion.config.constants import (
    FLOW_TWO_PHASE,
    PLACEHOLDER_IMAGE_URL,
    REASON_REFUND_FAILED_VIDEO,
    RENDER_FRAME_RATE,
    RENDER_HEIGHT,
    RENDER_WIDTH,
    SCENE_IMAGE_ATTEMPTS,
    SECONDS_PER_SCENE,
)
from shortsfusion.config.settings import settings
from shortsfusion.core.providers import (
    ProviderError,
    ProviderSet,
    Sleep,
    Timeline,
    TimelineScene,
    poll_render,
)
from shortsfusion.models.video import SceneModel, VideoModel, VideoStatus
from shortsfusion.services import ledger
from shortsfusion.services.error_classifier import ErrorClassifier
from shortsfusion.services.observability import (
    log_failure_classification,
    log_generation_duration,
    log_refund,
    log_stage_completed,
    logger,
)
from shortsfusion.services.storage import SceneDB, VideoDB
from shortsfusion.services.video_state import is_terminal_state, transition_state


def scene_count_for(duration_s: int) -> int:
    """Number of scenes for a target duration (30s: 3, 60s: 5, 90s: 8)"""
    return max(1, math.ceil(duration_s / SECONDS_PER_SCENE))


def placeholder_image_url(sequence_index: int) -> str:
    return PLACEHOLDER_IMAGE_URL.format(scene_number=sequence_index + 1)


class PipelineOrchestrator:
    """
    Runs the generation stages for a video, persisting after each stage

    All state is read from the store, so a re-delivered job resumes where the
    previous attempt stopped. Provider failures are terminal: the video is
    marked failed, unconsumed tokens are refunded and run() returns normally.
    """

    def __init__(
        self,
        providers: ProviderSet,
        sleep: Sleep = asyncio.sleep,
        poll_interval_s: Optional[float] = None,
        poll_max_attempts: Optional[int] = None,
    ):
        self.providers = providers
        self.sleep = sleep
        self.poll_interval_s = (
            poll_interval_s if poll_interval_s is not None else settings.render_poll_interval_s
        )
        self.poll_max_attempts = poll_max_attempts or settings.render_poll_max_attempts
        self.error_classifier = ErrorClassifier()

    async def run(
        self,
        db: Session,
        video_id: str,
        final_attempt: bool = True,
    ) -> Optional[str]:
        """
        Execute the pipeline for a video

        Args:
            db: Database session
            video_id: Video to process
            final_attempt: False while the queue still has retries left; a
                retryable unexpected error is then re-raised instead of
                failing the video

        Returns:
            Status the video ended in, or None if it does not exist
        """
        video = VideoDB.get_video(db, video_id)
        if video is None:
            logger.warning("pipeline_video_missing", video_id=video_id)
            return None

        if is_terminal_state(video.status) or video.status == VideoStatus.PREVIEW_READY.value:
            logger.info("pipeline_nothing_to_do", video_id=video_id, status=video.status)
            return video.status

        start_time = datetime.utcnow()
        VideoDB.increment_attempts(db, video_id)
        if video.status == VideoStatus.QUEUED.value:
            transition_state(db, video_id, VideoStatus.PROCESSING, "processing_started")

        stage = "script"
        try:
            if video.status == VideoStatus.PROCESSING.value:
                stage = "script"
                await self._run_script_stage(db, video)

                stage = "images"
                await self._run_image_stage(db, video)

                stage = "voiceover"
                await self._run_voice_stage(db, video)

                if video.flow == FLOW_TWO_PHASE:
                    transition_state(db, video_id, VideoStatus.PREVIEW_READY, "preview_ready")
                    self._log_duration(db, video, start_time)
                    return video.status

            stage = "render"
            await self._run_render_stage(db, video)

            self._log_duration(db, video, start_time)
            return video.status

        except ProviderError as e:
            self._fail(db, video_id, e, stage)
            return VideoStatus.FAILED.value

        except Exception as e:
            classification = self.error_classifier.classify(e)
            if classification["retryable"] and not final_attempt:
                db.rollback()
                log_failure_classification(
                    error_code=classification["code"],
                    classification=classification["classification"],
                    retryable=True,
                    video_id=video_id,
                    stage=stage,
                )
                logger.warning(
                    "pipeline_attempt_failed",
                    video_id=video_id,
                    stage=stage,
                    error=str(e),
                    will_retry=True,
                )
                raise

            logger.error(
                "pipeline_unexpected_error",
                video_id=video_id,
                stage=stage,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._fail(db, video_id, e, stage)
            return VideoStatus.FAILED.value

    async def _run_script_stage(self, db: Session, video: VideoModel) -> None:
        if video.script_text and SceneDB.list_scenes(db, video.video_id):
            logger.info("stage_skipped", video_id=video.video_id, stage="script")
            return

        stage_start = time.time()
        scene_count = scene_count_for(video.duration_s)
        result = await self.providers.script.generate(video.topic, video.duration_s, scene_count)

        scenes = result.scenes[:scene_count]
        if not scenes:
            raise ProviderError("script", "Script contained no scenes")

        video.script_text = result.narration_text
        SceneDB.replace_scenes(
            db,
            video.video_id,
            [{"text": s.text, "image_prompt": s.image_prompt} for s in scenes],
            commit=False,
        )
        db.commit()

        log_stage_completed(
            video.video_id,
            "script",
            time.time() - stage_start,
            {"scene_count": len(scenes)},
        )

    async def _generate_scene_image(
        self,
        sequence_index: int,
        prompt: str,
        style: str,
        video_id: str,
    ) -> Tuple[int, Dict[str, Any]]:
        for attempt in range(SCENE_IMAGE_ATTEMPTS):
            try:
                url = await self.providers.image.generate(prompt, style)
                return sequence_index, {"image_url": url, "is_placeholder": False}
            except ProviderError as e:
                logger.warning(
                    "scene_image_failed",
                    video_id=video_id,
                    sequence_index=sequence_index,
                    attempt=attempt + 1,
                    error=str(e),
                )

        logger.warning(
            "scene_image_placeholder",
            video_id=video_id,
            sequence_index=sequence_index,
        )
        return sequence_index, {
            "image_url": placeholder_image_url(sequence_index),
            "is_placeholder": True,
        }

    async def _run_image_stage(self, db: Session, video: VideoModel) -> None:
        scenes = SceneDB.list_scenes(db, video.video_id)
        pending = [scene for scene in scenes if not scene.image_url]
        if not pending:
            logger.info("stage_skipped", video_id=video.video_id, stage="images")
            return

        stage_start = time.time()
        tasks = [
            asyncio.create_task(
                self._generate_scene_image(
                    scene.sequence_index,
                    scene.image_prompt,
                    video.style,
                    video.video_id,
                )
            )
            for scene in pending
        ]
        results = await asyncio.gather(*tasks)

        SceneDB.update_scene_images(db, video.video_id, dict(results))

        placeholders = sum(1 for _, image in results if image["is_placeholder"])
        log_stage_completed(
            video.video_id,
            "images",
            time.time() - stage_start,
            {"generated": len(results) - placeholders, "placeholders": placeholders},
        )

    async def _run_voice_stage(self, db: Session, video: VideoModel) -> None:
        if video.voiceover_url:
            logger.info("stage_skipped", video_id=video.video_id, stage="voiceover")
            return

        stage_start = time.time()
        url = await self.providers.voice.synthesize(video.script_text, video.voice)
        VideoDB.update_video_fields(db, video.video_id, voiceover_url=url)

        log_stage_completed(video.video_id, "voiceover", time.time() - stage_start)

    def build_timeline(self, video: VideoModel, scenes: List[SceneModel]) -> Timeline:
        """
        Assemble the render input from persisted stage outputs

        Raises:
            ValueError: If scenes are missing or lack an image
        """
        if not scenes:
            raise ValueError(f"Video {video.video_id} has no scenes to render")

        per_scene_s = video.duration_s / len(scenes)
        timeline_scenes = []
        for position, scene in enumerate(scenes):
            if not scene.image_url:
                raise ValueError(
                    f"Scene {scene.sequence_index} of video {video.video_id} has no image"
                )
            timeline_scenes.append(
                TimelineScene(
                    text=scene.text,
                    image_url=scene.image_url,
                    start_s=position * per_scene_s,
                    duration_s=per_scene_s,
                    is_animated=scene.is_animated,
                )
            )

        return Timeline(
            width=RENDER_WIDTH,
            height=RENDER_HEIGHT,
            frame_rate=RENDER_FRAME_RATE,
            duration_s=float(video.duration_s),
            voiceover_url=video.voiceover_url,
            scenes=timeline_scenes,
        )

    async def _run_render_stage(self, db: Session, video: VideoModel) -> None:
        stage_start = time.time()

        if video.render_id:
            render_id = video.render_id
            logger.info("render_resumed", video_id=video.video_id, render_id=render_id)
        else:
            timeline = self.build_timeline(video, SceneDB.list_scenes(db, video.video_id))
            render_id = await self.providers.render.submit(timeline)
            # Persist before polling so a re-delivered job resumes instead of resubmitting
            VideoDB.update_video_fields(db, video.video_id, render_id=render_id)

        status = await poll_render(
            self.providers.render,
            render_id,
            interval_s=self.poll_interval_s,
            max_attempts=self.poll_max_attempts,
            sleep=self.sleep,
        )
        if status.status != "succeeded":
            raise ProviderError("render", status.error or "Render failed")
        if not status.url:
            raise ProviderError("render", f"Render {render_id} succeeded without a video URL")

        video.video_url = status.url
        video.thumbnail_url = status.thumbnail_url
        transition_state(db, video.video_id, VideoStatus.COMPLETED, "render_complete")

        log_stage_completed(
            video.video_id,
            "render",
            time.time() - stage_start,
            {"render_id": render_id},
        )

    def _fail(self, db: Session, video_id: str, error: Exception, stage: str) -> None:
        """Mark the video failed and refund everything not yet consumed"""
        db.rollback()
        video = VideoDB.get_video(db, video_id)
        if video is None or is_terminal_state(video.status):
            return

        classification = self.error_classifier.classify(error)
        classification["stage"] = stage
        log_failure_classification(
            error_code=classification["code"],
            classification=classification["classification"],
            retryable=classification["retryable"],
            video_id=video_id,
            stage=stage,
        )

        refund = video.refundable_tokens
        try:
            transition_state(db, video_id, VideoStatus.FAILED, f"{stage}_failed", commit=False)
            VideoDB.update_video_error(
                db,
                video_id,
                error_message=f"{stage} failed: {classification['message']}",
                error_details=classification,
                commit=False,
            )
            if refund > 0:
                ledger.credit(
                    db,
                    video.user_id,
                    refund,
                    REASON_REFUND_FAILED_VIDEO,
                    f"refund:{video_id}",
                    video_id=video_id,
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
                video_id=video_id,
                amount=refund,
                reason=REASON_REFUND_FAILED_VIDEO,
            )

    def _log_duration(self, db: Session, video: VideoModel, start_time: datetime) -> None:
        log_generation_duration(
            video_id=video.video_id,
            duration_s=(datetime.utcnow() - start_time).total_seconds(),
            scene_count=len(SceneDB.list_scenes(db, video.video_id)),
            status=video.status,
        )
