"""
Application Settings Configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal
import os


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "shortsfusion-backend"

    # Database
    database_url: str = Field(default="sqlite:///./data/shortsfusion.db")

    # Redis / RQ
    redis_url: str = Field(default="redis://localhost:6379/0")
    rq_queue_name: str = Field(default="video")

    # Identity (bearer tokens issued by the auth service)
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_days: int = Field(default=7)

    # Tokens granted on first login
    signup_token_grant: int = Field(default=10, ge=0)

    # Payment webhook shared secret
    payment_webhook_secret: str = Field(default="")

    # CORS
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "https://vidsora.io",
            "https://www.vidsora.io",
            "http://localhost:3000",
            "http://localhost:5173",
        ]
    )

    # Script provider (OpenAI-compatible chat endpoint)
    llm_api_key: str = Field(default="")
    llm_base_url: str = Field(default="https://api.openai.com/v1")
    llm_model: str = Field(default="gpt-4o-mini")

    # Image provider
    stability_api_key: str = Field(default="")
    stability_api_url: str = Field(
        default="https://api.stability.ai/v2beta/stable-image/generate/sd3"
    )

    # Voice provider
    elevenlabs_api_key: str = Field(default="")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1")
    elevenlabs_model_id: str = Field(default="eleven_turbo_v2")

    # Render provider
    creatomate_api_key: str = Field(default="")
    creatomate_base_url: str = Field(default="https://api.creatomate.com/v1")

    # Provider HTTP timeout
    provider_timeout_s: float = Field(default=60.0)

    # Static artifact storage
    static_root: str = Field(default="./data/static")
    static_image_subdir: str = Field(default="images")
    static_audio_subdir: str = Field(default="audio")
    static_image_dir: str = ""
    static_audio_dir: str = ""
    static_url_prefix: str = "/static"
    public_base_url: str = Field(default="http://localhost:8080")

    # Worker
    worker_concurrency: int = Field(default=2, ge=1)
    job_max_attempts: int = Field(default=3, ge=1)
    job_backoff_initial_s: int = Field(default=8, ge=1)
    job_timeout_minutes: int = Field(default=20)

    # Render polling
    render_poll_interval_s: float = Field(default=5.0)
    render_poll_max_attempts: int = Field(default=60, ge=1)

    # Reconciliation sweep
    reconcile_after_s: int = Field(default=600)
    reconcile_refund_after_s: int = Field(default=86400)
    sweep_interval_s: int = Field(default=300)

    # Admission rate limit (per user)
    rate_limit_per_min: int = Field(default=10)
    rate_limit_enabled: bool = Field(default=True)

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Initialize static directory paths
        self.static_image_dir = os.path.join(self.static_root, self.static_image_subdir)
        self.static_audio_dir = os.path.join(self.static_root, self.static_audio_subdir)


# Global settings instance
settings = Settings()
