"""
Unit Tests for Two-Phase Slide Editing
"""

import pytest
from unittest.mock import AsyncMock, Mock

from shortsfusion.core.providers import ProviderError
from shortsfusion.models.video import VideoStatus
from shortsfusion.services import ledger
from shortsfusion.services.admission import (
    AdmissionService,
    EnqueueFailedAfterCommit,
    InvalidParameters,
)
from shortsfusion.services.editing import SlideEditor
from shortsfusion.services.ledger import InsufficientBalance
from shortsfusion.services.pipeline import PipelineOrchestrator
from shortsfusion.services.storage import SceneDB, VideoDB
from shortsfusion.services.video_state import VideoNotFound, VideoStateError, transition_state


def _make_preview(db, queue, user_id="user-1"):
    """Admit a two-phase minimal/30 video (6 tokens) and move it to preview_ready"""
    result = AdmissionService(queue).submit(
        db, user_id, "Volcanoes", "minimal", 30, flow="two_phase"
    )
    video_id = result["video_id"]
    transition_state(db, video_id, VideoStatus.PROCESSING, "processing_started")
    SceneDB.replace_scenes(
        db,
        video_id,
        [{"text": f"Caption {i}", "image_prompt": f"Prompt {i}"} for i in range(3)],
    )
    SceneDB.update_scene_images(
        db,
        video_id,
        {i: {"image_url": f"http://test/static/images/{i}.png"} for i in range(3)},
    )
    VideoDB.update_video_fields(
        db, video_id, script_text="Narration", voiceover_url="http://test/static/audio/voice.mp3"
    )
    transition_state(db, video_id, VideoStatus.PREVIEW_READY, "preview_ready")
    return video_id


@pytest.fixture
def image_provider():
    provider = Mock()
    provider.generate = AsyncMock(return_value="http://test/static/images/regenerated.png")
    return provider


@pytest.fixture
def editor(mock_queue, image_provider):
    return SlideEditor(mock_queue, image_provider=image_provider)


@pytest.fixture
def preview_video(test_db_session, make_user, mock_queue):
    make_user(tokens=20)
    video_id = _make_preview(test_db_session, mock_queue)
    mock_queue.enqueue.reset_mock()
    return video_id


class TestSlideAnimation:
    """Animation toggles"""

    def test_animate_charges_and_unanimate_credits(self, editor, test_db_session, preview_video):
        scene = editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, True)

        assert scene.is_animated
        assert ledger.balance_of(test_db_session, "user-1") == 13
        assert VideoDB.get_video(test_db_session, preview_video).animation_tokens == 1

        scene = editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, False)

        assert not scene.is_animated
        assert ledger.balance_of(test_db_session, "user-1") == 14
        assert VideoDB.get_video(test_db_session, preview_video).animation_tokens == 0
        keys = [e.idempotency_key for e in ledger.entries_for(test_db_session, "user-1")][:2]
        assert keys == [f"anim:{preview_video}:0:2", f"anim:{preview_video}:0:1"]

    def test_repeated_request_is_noop(self, editor, test_db_session, preview_video):
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 1, True)
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 1, True)

        assert ledger.balance_of(test_db_session, "user-1") == 13

    def test_animate_without_balance(self, editor, test_db_session, make_user, mock_queue):
        make_user(tokens=6)
        video_id = _make_preview(test_db_session, mock_queue)

        with pytest.raises(InsufficientBalance):
            editor.set_slide_animation(test_db_session, "user-1", video_id, 0, True)

        assert not SceneDB.get_scene(test_db_session, video_id, 0).is_animated
        assert VideoDB.get_video(test_db_session, video_id).animation_tokens == 0
        assert ledger.balance_of(test_db_session, "user-1") == 0

    def test_unknown_slide(self, editor, test_db_session, preview_video):
        with pytest.raises(InvalidParameters):
            editor.set_slide_animation(test_db_session, "user-1", preview_video, 7, True)

    def test_other_users_video(self, editor, test_db_session, make_user, preview_video):
        make_user(tokens=5, user_id="user-2")

        with pytest.raises(VideoNotFound):
            editor.set_slide_animation(test_db_session, "user-2", preview_video, 0, True)

    def test_not_in_preview(self, editor, test_db_session, preview_video):
        transition_state(test_db_session, preview_video, VideoStatus.FINALIZING, "finalize_requested")

        with pytest.raises(VideoStateError):
            editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, True)


class TestRegenerateSlide:
    """Slide image regeneration"""

    @pytest.mark.asyncio
    async def test_regenerate_replaces_image(
        self, editor, image_provider, test_db_session, preview_video
    ):
        scene = await editor.regenerate_slide(
            test_db_session, "user-1", preview_video, 2, image_prompt="A glowing lava flow"
        )

        assert scene.image_url == "http://test/static/images/regenerated.png"
        assert scene.image_prompt == "A glowing lava flow"
        assert scene.revision == 1
        image_provider.generate.assert_awaited_once_with("A glowing lava flow", "minimal")
        assert ledger.balance_of(test_db_session, "user-1") == 13
        assert VideoDB.get_video(test_db_session, preview_video).regeneration_tokens == 1

    @pytest.mark.asyncio
    async def test_provider_failure_refunds_charge(
        self, editor, image_provider, test_db_session, preview_video
    ):
        image_provider.generate.side_effect = ProviderError("image", "content filter")

        with pytest.raises(ProviderError):
            await editor.regenerate_slide(test_db_session, "user-1", preview_video, 0)

        assert ledger.balance_of(test_db_session, "user-1") == 14
        assert ledger.ledger_sum(test_db_session, "user-1") == 14
        assert VideoDB.get_video(test_db_session, preview_video).regeneration_tokens == 0
        scene = SceneDB.get_scene(test_db_session, preview_video, 0)
        assert scene.revision == 0
        assert scene.image_url == "http://test/static/images/0.png"

    @pytest.mark.asyncio
    async def test_retry_after_failure_is_charged(
        self, editor, image_provider, test_db_session, preview_video
    ):
        image_provider.generate.side_effect = [
            ProviderError("image", "content filter"),
            "http://test/static/images/regenerated.png",
        ]

        with pytest.raises(ProviderError):
            await editor.regenerate_slide(test_db_session, "user-1", preview_video, 0)
        scene = await editor.regenerate_slide(test_db_session, "user-1", preview_video, 0)

        assert scene.image_url == "http://test/static/images/regenerated.png"
        assert scene.revision == 1
        assert scene.regeneration_attempts == 2
        assert ledger.balance_of(test_db_session, "user-1") == 13
        assert VideoDB.get_video(test_db_session, preview_video).regeneration_tokens == 1
        keys = [
            e.idempotency_key
            for e in ledger.entries_for(test_db_session, "user-1", video_id=preview_video)
        ][:3]
        assert keys == [
            f"regen:{preview_video}:0:2",
            f"regen-refund:{preview_video}:0:1",
            f"regen:{preview_video}:0:1",
        ]


class TestEditingCounters:
    """Per-video token counters against the ledger"""

    @pytest.mark.asyncio
    async def test_counters_match_ledger_after_mixed_edits(
        self, editor, image_provider, test_db_session, preview_video
    ):
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, True)
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 1, True)
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, False)
        image_provider.generate.side_effect = [
            ProviderError("image", "timeout"),
            "http://test/static/images/a.png",
            "http://test/static/images/b.png",
        ]
        with pytest.raises(ProviderError):
            await editor.regenerate_slide(test_db_session, "user-1", preview_video, 1)
        await editor.regenerate_slide(test_db_session, "user-1", preview_video, 2)
        await editor.regenerate_slide(test_db_session, "user-1", preview_video, 2)

        video = VideoDB.get_video(test_db_session, preview_video)
        entries = ledger.entries_for(test_db_session, "user-1", video_id=preview_video)

        def spent(*reasons):
            return -sum(e.delta for e in entries if e.reason in reasons)

        assert video.animation_tokens == spent("ANIMATE_SLIDE", "UNANIMATE_SLIDE") == 1
        assert video.regeneration_tokens == spent(
            "REGENERATE_SLIDE", "REGENERATE_SLIDE_REFUND"
        ) == 2
        assert spent("GENERATE_VIDEO") == video.base_cost == 6
        assert -sum(e.delta for e in entries) == video.tokens_charged == 9
        assert ledger.balance_of(test_db_session, "user-1") == 11
        assert ledger.ledger_sum(test_db_session, "user-1") == 11


class TestFinalize:
    """Finalization and the render phase"""

    def test_finalize_enqueues_render_phase(self, editor, mock_queue, test_db_session, preview_video):
        video = editor.finalize(test_db_session, "user-1", preview_video)

        assert video.status == "finalizing"
        mock_queue.enqueue.assert_called_once_with(preview_video, phase="render")

    def test_finalize_twice_rejected(self, editor, test_db_session, preview_video):
        editor.finalize(test_db_session, "user-1", preview_video)

        with pytest.raises(VideoStateError):
            editor.finalize(test_db_session, "user-1", preview_video)

    def test_finalize_enqueue_failure(self, editor, mock_queue, test_db_session, preview_video):
        mock_queue.enqueue.side_effect = ConnectionError("redis down")

        with pytest.raises(EnqueueFailedAfterCommit):
            editor.finalize(test_db_session, "user-1", preview_video)

        assert VideoDB.get_video(test_db_session, preview_video).status == "finalizing"

    @pytest.mark.asyncio
    async def test_render_failure_refunds_base_and_animation(
        self, editor, fake_providers, no_sleep, test_db_session, preview_video
    ):
        editor.set_slide_animation(test_db_session, "user-1", preview_video, 0, True)
        editor.finalize(test_db_session, "user-1", preview_video)
        assert ledger.balance_of(test_db_session, "user-1") == 13

        fake_providers.render.submit.side_effect = ProviderError("render", "invalid source")
        orchestrator = PipelineOrchestrator(fake_providers, sleep=no_sleep, poll_interval_s=0)

        status = await orchestrator.run(test_db_session, preview_video)

        assert status == "failed"
        video = VideoDB.get_video(test_db_session, preview_video)
        assert video.tokens_refunded == 7
        assert ledger.balance_of(test_db_session, "user-1") == 20
        assert ledger.ledger_sum(test_db_session, "user-1") == 20
