"""
RQ task definitions for video generation jobs.
"""

import asyncio
from typing import Optional

from rq import get_current_job

from shortsfusion.core.image_provider import StabilityImageProvider
from shortsfusion.core.providers import ProviderSet
from shortsfusion.core.render_provider import CreatomateRenderProvider
from shortsfusion.core.script_provider import LLMScriptProvider
from shortsfusion.core.voice_provider import ElevenLabsVoiceProvider
from shortsfusion.models import SessionLocal
from shortsfusion.services.artifact_store import ArtifactStore
from shortsfusion.services.observability import logger
from shortsfusion.services.pipeline import PipelineOrchestrator


def build_providers() -> ProviderSet:
    artifact_store = ArtifactStore()
    return ProviderSet(
        script=LLMScriptProvider(),
        image=StabilityImageProvider(artifact_store),
        voice=ElevenLabsVoiceProvider(artifact_store),
        render=CreatomateRenderProvider(),
    )


async def close_providers(providers: ProviderSet) -> None:
    for adapter in (providers.image, providers.voice, providers.render):
        close = getattr(adapter, "close", None)
        if close is not None:
            await close()


async def _run_pipeline(video_id: str, final_attempt: bool) -> Optional[str]:
    # httpx clients are bound to the event loop, so adapters live per job
    providers = build_providers()
    db = SessionLocal()
    try:
        orchestrator = PipelineOrchestrator(providers)
        return await orchestrator.run(db, video_id, final_attempt=final_attempt)
    finally:
        db.close()
        await close_providers(providers)


def run_generation_job(video_id: str) -> Optional[str]:
    job = get_current_job()
    final_attempt = job is None or not job.retries_left
    logger.info(
        "video_worker_start",
        video_id=video_id,
        job_id=job.id if job else None,
        final_attempt=final_attempt,
    )
    try:
        status = asyncio.run(_run_pipeline(video_id, final_attempt))
    except Exception as exc:
        logger.error("video_worker_failed", video_id=video_id, error=str(exc))
        raise

    logger.info("video_worker_done", video_id=video_id, status=status)
    return status
