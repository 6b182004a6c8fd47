"""
Observability and Logging Service
"""

import logging

import structlog
from typing import Any, Dict, Optional

from shortsfusion.config.settings import settings


logging.basicConfig(level=getattr(logging, settings.log_level), format="%(message)s")

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# Get logger
logger = structlog.get_logger("shortsfusion")


def log_admission(
    user_id: str,
    video_id: str,
    style: str,
    duration_s: int,
    tokens_charged: int,
    balance_after: int,
) -> None:
    """
    Log an admitted generation request

    Args:
        user_id: Owner of the video
        video_id: Newly created video
        style: Visual style
        duration_s: Requested duration
        tokens_charged: Tokens debited at admission
        balance_after: User balance after the debit
    """
    logger.info(
        "video_admitted",
        user_id=user_id,
        video_id=video_id,
        style=style,
        duration_s=duration_s,
        tokens_charged=tokens_charged,
        balance_after=balance_after,
    )


def log_stage_completed(
    video_id: str,
    stage: str,
    duration_s: float,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log pipeline stage completion

    Args:
        video_id: Video being processed
        stage: Stage name (script, images, voiceover, render)
        duration_s: Wall time spent in the stage
        extra: Additional stage context
    """
    log_data: Dict[str, Any] = {
        "video_id": video_id,
        "stage": stage,
        "duration_s": round(duration_s, 3),
    }
    if extra:
        log_data.update(extra)

    logger.info("stage_completed", **log_data)


def log_failure_classification(
    error_code: str,
    classification: str,
    retryable: bool,
    video_id: Optional[str] = None,
    stage: Optional[str] = None,
) -> None:
    """
    Log failure classification event

    Args:
        error_code: Error code (e.g., "PROVIDER_TIMEOUT", "RENDER_TIMEOUT")
        classification: Error classification ("retryable" or "non_retryable")
        retryable: Whether error is retryable
        video_id: Optional video ID for context
        stage: Optional stage name
    """
    log_data = {
        "error_code": error_code,
        "classification": classification,
        "retryable": retryable,
    }
    if video_id:
        log_data["video_id"] = video_id
    if stage:
        log_data["stage"] = stage

    logger.error("failure_classified", **log_data)


def log_refund(
    user_id: str,
    video_id: str,
    amount: int,
    reason: str,
) -> None:
    logger.info(
        "tokens_refunded",
        user_id=user_id,
        video_id=video_id,
        amount=amount,
        reason=reason,
    )


def log_generation_duration(
    video_id: str,
    duration_s: float,
    scene_count: int,
    status: str,
) -> None:
    """
    Log end-to-end pipeline duration

    Args:
        video_id: Video ID
        duration_s: Total pipeline duration in seconds
        scene_count: Number of scenes produced
        status: Status the pipeline run ended in
    """
    logger.info(
        "generation_completed",
        video_id=video_id,
        duration_s=duration_s,
        scene_count=scene_count,
        status=status,
        avg_duration_per_scene=duration_s / scene_count if scene_count > 0 else 0,
    )
