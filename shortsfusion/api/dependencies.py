"""
FastAPI dependencies - current user and process-wide service instances
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from shortsfusion.config.settings import settings
from shortsfusion.core.image_provider import StabilityImageProvider
from shortsfusion.models import get_db
from shortsfusion.models.user import UserModel
from shortsfusion.services.admission import AdmissionService
from shortsfusion.services.artifact_store import ArtifactStore
from shortsfusion.services.editing import SlideEditor
from shortsfusion.services.identity import IdentityProvider, Unauthenticated
from shortsfusion.services.ledger import ensure_user
from shortsfusion.services.rate_limiter import RateLimiter
from shortsfusion.workers.queue import JobQueue


bearer_scheme = HTTPBearer(auto_error=False)

_identity_provider: Optional[IdentityProvider] = None
_job_queue: Optional[JobQueue] = None
_rate_limiter: Optional[RateLimiter] = None
_image_provider: Optional[StabilityImageProvider] = None


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = IdentityProvider()
    return _identity_provider


def get_job_queue() -> JobQueue:
    global _job_queue
    if _job_queue is None:
        _job_queue = JobQueue()
    return _job_queue


def get_rate_limiter() -> Optional[RateLimiter]:
    global _rate_limiter
    if not settings.rate_limit_enabled:
        return None
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def get_image_provider() -> StabilityImageProvider:
    global _image_provider
    if _image_provider is None:
        _image_provider = StabilityImageProvider(ArtifactStore())
    return _image_provider


def get_admission_service(queue: JobQueue = Depends(get_job_queue)) -> AdmissionService:
    return AdmissionService(queue)


def get_slide_editor(
    queue: JobQueue = Depends(get_job_queue),
    image_provider: StabilityImageProvider = Depends(get_image_provider),
) -> SlideEditor:
    return SlideEditor(queue, image_provider)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    db: Session = Depends(get_db),
) -> UserModel:
    """
    Resolve the bearer token to a user, creating the account on first login

    Raises:
        Unauthenticated: If no valid bearer token is present
    """
    if credentials is None:
        raise Unauthenticated("Missing bearer token")
    identity = identity_provider.verify(credentials.credentials)
    return ensure_user(db, identity.user_id, identity.email)
