"""
Video and Scene Models
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from shortsfusion.models import Base


class VideoStatus(str, Enum):
    """Video lifecycle states"""

    QUEUED = "queued"
    PROCESSING = "processing"
    PREVIEW_READY = "preview_ready"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoModel(Base):
    """
    Video - Lifecycle and artifact tracking for a single generation request

    Created in `queued` state by the admission service; mutated afterwards
    only by the pipeline orchestrator and the two-phase editing operations.
    """

    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)

    # Public video identifier
    video_id = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Request parameters
    topic = Column(String, nullable=False)
    style = Column(String, nullable=False)
    duration_s = Column(Integer, nullable=False)
    voice = Column(String, nullable=False, default="default")
    flow = Column(String, nullable=False, default="single_shot")  # "single_shot" or "two_phase"

    # Lifecycle
    status = Column(String, nullable=False, index=True)
    status_transitions = Column(JSON, nullable=False)  # [{"status": "queued", "timestamp": "...", "event": "video_admitted"}]
    attempts = Column(Integer, default=0, nullable=False)

    # Stage artifacts
    script_text = Column(Text, nullable=True)
    voiceover_url = Column(String, nullable=True)
    render_id = Column(String, nullable=True)
    video_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)

    # Token accounting (each column mirrors this video's ledger entries by reason)
    base_cost = Column(Integer, nullable=False)
    animation_tokens = Column(Integer, default=0, nullable=False)
    regeneration_tokens = Column(Integer, default=0, nullable=False)
    tokens_refunded = Column(Integer, default=0, nullable=False)

    # Error handling
    error_message = Column(String, nullable=True)
    error_details = Column(JSON, nullable=True)  # {"code": ..., "message": ..., "classification": ..., "retryable": ...}

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    processing_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    scenes = relationship(
        "SceneModel",
        order_by="SceneModel.sequence_index",
        cascade="all, delete-orphan",
        back_populates="video",
    )

    __table_args__ = (
        Index("idx_videos_user_created", "user_id", "created_at"),
        Index("idx_videos_status_created", "status", "created_at"),
    )

    @property
    def tokens_charged(self) -> int:
        return self.base_cost + self.animation_tokens + self.regeneration_tokens

    @property
    def refundable_tokens(self) -> int:
        """Tokens not yet consumed by delivered work."""
        return self.base_cost + self.animation_tokens

    def to_dict(self) -> dict:
        """Convert video model to dictionary"""
        return {
            "video_id": self.video_id,
            "user_id": self.user_id,
            "topic": self.topic,
            "style": self.style,
            "duration_s": self.duration_s,
            "voice": self.voice,
            "flow": self.flow,
            "status": self.status,
            "status_transitions": self.status_transitions,
            "attempts": self.attempts,
            "script_text": self.script_text,
            "voiceover_url": self.voiceover_url,
            "render_id": self.render_id,
            "video_url": self.video_url,
            "thumbnail_url": self.thumbnail_url,
            "base_cost": self.base_cost,
            "animation_tokens": self.animation_tokens,
            "regeneration_tokens": self.regeneration_tokens,
            "tokens_charged": self.tokens_charged,
            "tokens_refunded": self.tokens_refunded,
            "error_message": self.error_message,
            "error_details": self.error_details,
            "scenes": [scene.to_dict() for scene in self.scenes],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "processing_at": self.processing_at.isoformat() if self.processing_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }

    @staticmethod
    def generate_video_id() -> str:
        """Generate a unique video ID"""
        return str(uuid.uuid4())


class SceneModel(Base):
    """
    Scene - One ordered slide of a video
    """

    __tablename__ = "scenes"

    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(String, ForeignKey("videos.video_id"), nullable=False, index=True)
    sequence_index = Column(Integer, nullable=False)

    text = Column(Text, nullable=False)
    image_prompt = Column(Text, nullable=False)
    image_url = Column(String, nullable=True)
    is_placeholder = Column(Boolean, default=False, nullable=False)
    is_animated = Column(Boolean, default=False, nullable=False)
    animation_toggles = Column(Integer, default=0, nullable=False)
    regeneration_attempts = Column(Integer, default=0, nullable=False)
    revision = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    video = relationship("VideoModel", back_populates="scenes")

    __table_args__ = (
        UniqueConstraint("video_id", "sequence_index", name="uq_scene_video_sequence"),
    )

    def to_dict(self) -> dict:
        return {
            "sequence_index": self.sequence_index,
            "text": self.text,
            "image_prompt": self.image_prompt,
            "image_url": self.image_url,
            "is_placeholder": self.is_placeholder,
            "is_animated": self.is_animated,
            "revision": self.revision,
        }
