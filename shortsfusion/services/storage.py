"""
Storage Service - Database operations for Users, Videos and Scenes
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Dict, Any
from datetime import datetime

from shortsfusion.models.user import UserModel
from shortsfusion.models.video import SceneModel, VideoModel, VideoStatus


class UserDB:
    """User database operations"""

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        user_id: Optional[str] = None,
        plan: str = "free",
        commit: bool = True,
    ) -> UserModel:
        """Create a user with an empty balance (grants go through the ledger)"""
        user = UserModel(
            id=user_id or UserModel.generate_user_id(),
            email=email,
            tokens=0,
            plan=plan,
        )
        db.add(user)
        if commit:
            db.commit()
            db.refresh(user)
        else:
            db.flush()
        return user

    @staticmethod
    def get_user(db: Session, user_id: str) -> Optional[UserModel]:
        """Get user by ID"""
        return db.query(UserModel).filter(UserModel.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[UserModel]:
        return db.query(UserModel).filter(UserModel.email == email).first()

    @staticmethod
    def lock_user(db: Session, user_id: str) -> Optional[UserModel]:
        """
        Load the user row with an exclusive row lock (SELECT ... FOR UPDATE)

        The lock is held until the surrounding transaction ends.
        """
        return (
            db.query(UserModel)
            .filter(UserModel.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def update_plan(
        db: Session,
        user_id: str,
        plan: str,
        commit: bool = True,
    ) -> Optional[UserModel]:
        """Update the user's plan tier"""
        user = UserDB.get_user(db, user_id)
        if user:
            user.plan = plan
            user.updated_at = datetime.utcnow()
            if commit:
                db.commit()
                db.refresh(user)
            else:
                db.flush()
        return user


class VideoDB:
    """Video database operations"""

    @staticmethod
    def create_video(
        db: Session,
        user_id: str,
        topic: str,
        style: str,
        duration_s: int,
        base_cost: int,
        voice: str = "default",
        flow: str = "single_shot",
        video_id: Optional[str] = None,
        commit: bool = True,
    ) -> VideoModel:
        """Create a new video in queued state"""
        video = VideoModel(
            video_id=video_id or VideoModel.generate_video_id(),
            user_id=user_id,
            topic=topic,
            style=style,
            duration_s=duration_s,
            voice=voice,
            flow=flow,
            status=VideoStatus.QUEUED.value,
            status_transitions=[
                {
                    "status": VideoStatus.QUEUED.value,
                    "timestamp": datetime.utcnow().isoformat(),
                    "event": "video_admitted",
                }
            ],
            attempts=0,
            base_cost=base_cost,
            animation_tokens=0,
            regeneration_tokens=0,
            tokens_refunded=0,
        )
        db.add(video)
        if commit:
            db.commit()
            db.refresh(video)
        else:
            db.flush()
        return video

    @staticmethod
    def get_video(db: Session, video_id: str) -> Optional[VideoModel]:
        """Get video by ID"""
        return db.query(VideoModel).filter(VideoModel.video_id == video_id).first()

    @staticmethod
    def get_video_for_owner(db: Session, video_id: str, user_id: str) -> Optional[VideoModel]:
        """Get video by ID, scoped to its owner"""
        return (
            db.query(VideoModel)
            .filter(VideoModel.video_id == video_id, VideoModel.user_id == user_id)
            .first()
        )

    @staticmethod
    def list_videos_for_owner(
        db: Session,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> List[VideoModel]:
        """List a user's videos, newest first"""
        return (
            db.query(VideoModel)
            .filter(VideoModel.user_id == user_id)
            .order_by(VideoModel.created_at.desc(), VideoModel.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_stale_videos(
        db: Session,
        status: str,
        older_than: datetime,
        limit: int = 100,
    ) -> List[VideoModel]:
        """List videos in a status not updated since the cutoff"""
        return (
            db.query(VideoModel)
            .filter(VideoModel.status == status, VideoModel.updated_at < older_than)
            .order_by(VideoModel.created_at.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def update_video_status(
        db: Session,
        video_id: str,
        new_status: str,
        event: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        commit: bool = True,
    ) -> Optional[VideoModel]:
        """Update video status and record transition"""
        video = VideoDB.get_video(db, video_id)
        if video:
            status_value = new_status.value if hasattr(new_status, "value") else new_status
            video.status = status_value
            ts = timestamp or datetime.utcnow()
            transitions = list(video.status_transitions or [])
            transitions.append(
                {
                    "status": status_value,
                    "timestamp": ts.isoformat(),
                    "event": event or "status_updated",
                }
            )
            video.status_transitions = transitions

            # Update timestamp fields based on status
            if status_value == VideoStatus.PROCESSING.value:
                video.processing_at = ts
            elif status_value == VideoStatus.COMPLETED.value:
                video.completed_at = ts
            elif status_value == VideoStatus.FAILED.value:
                video.failed_at = ts

            if commit:
                db.commit()
                db.refresh(video)
            else:
                db.flush()
        return video

    @staticmethod
    def update_video_fields(
        db: Session,
        video_id: str,
        **fields: Any,
    ) -> Optional[VideoModel]:
        """Update stage artifact fields and commit"""
        video = VideoDB.get_video(db, video_id)
        if video:
            for key, value in fields.items():
                setattr(video, key, value)
            db.commit()
            db.refresh(video)
        return video

    @staticmethod
    def update_video_error(
        db: Session,
        video_id: str,
        error_message: str,
        error_details: Dict[str, Any],
        commit: bool = True,
    ) -> Optional[VideoModel]:
        """Update video with error details"""
        video = VideoDB.get_video(db, video_id)
        if video:
            video.error_message = error_message
            video.error_details = error_details
            if commit:
                db.commit()
                db.refresh(video)
            else:
                db.flush()
        return video

    @staticmethod
    def increment_attempts(db: Session, video_id: str) -> Optional[VideoModel]:
        video = VideoDB.get_video(db, video_id)
        if video:
            video.attempts = (video.attempts or 0) + 1
            db.commit()
            db.refresh(video)
        return video


class SceneDB:
    """Scene database operations"""

    @staticmethod
    def replace_scenes(
        db: Session,
        video_id: str,
        scenes: List[Dict[str, Any]],
        commit: bool = True,
    ) -> List[SceneModel]:
        """
        Write the ordered scene list for a video

        Existing rows at the same sequence index are updated in place so a
        repeated script stage never violates the (video_id, sequence_index)
        uniqueness.
        """
        existing = {scene.sequence_index: scene for scene in SceneDB.list_scenes(db, video_id)}
        written: List[SceneModel] = []
        for index, scene_data in enumerate(scenes):
            scene = existing.pop(index, None)
            if scene is None:
                scene = SceneModel(video_id=video_id, sequence_index=index)
                db.add(scene)
            scene.text = scene_data["text"]
            scene.image_prompt = scene_data["image_prompt"]
            scene.image_url = None
            scene.is_placeholder = False
            written.append(scene)

        for stale in existing.values():
            db.delete(stale)

        if commit:
            db.commit()
        else:
            db.flush()
        return written

    @staticmethod
    def list_scenes(db: Session, video_id: str) -> List[SceneModel]:
        """List scenes ordered by sequence index"""
        return (
            db.query(SceneModel)
            .filter(SceneModel.video_id == video_id)
            .order_by(SceneModel.sequence_index.asc())
            .all()
        )

    @staticmethod
    def get_scene(db: Session, video_id: str, sequence_index: int) -> Optional[SceneModel]:
        return (
            db.query(SceneModel)
            .filter(
                SceneModel.video_id == video_id,
                SceneModel.sequence_index == sequence_index,
            )
            .first()
        )

    @staticmethod
    def update_scene_images(
        db: Session,
        video_id: str,
        images: Dict[int, Dict[str, Any]],
    ) -> List[SceneModel]:
        """
        Persist generated image URLs keyed by sequence index

        Args:
            images: {sequence_index: {"image_url": str, "is_placeholder": bool}}
        """
        scenes = SceneDB.list_scenes(db, video_id)
        for scene in scenes:
            result = images.get(scene.sequence_index)
            if result is None:
                continue
            scene.image_url = result["image_url"]
            scene.is_placeholder = bool(result.get("is_placeholder", False))
        db.commit()
        return scenes
