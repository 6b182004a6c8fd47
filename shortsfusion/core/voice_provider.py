"""
Voice Provider - ElevenLabs text-to-speech
"""

import asyncio
from typing import Optional
import httpx

from shortsfusion.config.constants import VOICE_MAP
from shortsfusion.config.settings import settings
from shortsfusion.core.providers import (
    ProviderError,
    Sleep,
    VoiceProvider,
    call_with_retry,
)
from shortsfusion.services.artifact_store import ArtifactStore
from shortsfusion.services.observability import logger


PROVIDER_NAME = "voice"


class ElevenLabsVoiceProvider(VoiceProvider):
    """
    Synthesizes narration audio and stores it in the artifact store
    """

    def __init__(
        self,
        artifact_store: ArtifactStore,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.artifact_store = artifact_store
        self.client = client or httpx.AsyncClient(timeout=settings.provider_timeout_s)
        self.sleep = sleep
        self.base_url = settings.elevenlabs_base_url.rstrip("/")
        self.api_key = settings.elevenlabs_api_key
        self.model_id = settings.elevenlabs_model_id

    async def _request_audio(self, text: str, voice_id: str) -> bytes:
        response = await self.client.post(
            f"{self.base_url}/text-to-speech/{voice_id}",
            headers={
                "xi-api-key": self.api_key,
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
            },
            json={
                "text": text,
                "model_id": self.model_id,
                "voice_settings": {
                    "stability": 0.5,
                    "similarity_boost": 0.75,
                    "style": 0.5,
                    "use_speaker_boost": True,
                },
            },
        )
        response.raise_for_status()
        return response.content

    async def synthesize(self, text: str, voice: str) -> str:
        """
        Synthesize narration and return the audio URL

        Args:
            text: Narration text
            voice: Voice selector (key of VOICE_MAP)

        Raises:
            ProviderError: If synthesis fails after retries
        """
        if not text or not text.strip():
            raise ProviderError(PROVIDER_NAME, "Narration text is empty")

        voice_id = VOICE_MAP.get(voice, VOICE_MAP["default"])
        audio = await call_with_retry(
            PROVIDER_NAME,
            self._request_audio,
            text,
            voice_id,
            sleep=self.sleep,
        )
        if not audio:
            raise ProviderError(PROVIDER_NAME, "Empty audio response")

        url = self.artifact_store.upload(audio, ArtifactStore.KIND_AUDIO, "mp3")
        logger.info(
            "voiceover_generated",
            voice=voice,
            text_length=len(text),
            audio_bytes=len(audio),
            url=url,
        )
        return url

    async def close(self):
        await self.client.aclose()
