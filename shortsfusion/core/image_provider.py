"""
Image Provider - Stability AI text-to-image
"""

import asyncio
from typing import Optional
import httpx

from shortsfusion.config.constants import STYLE_PRESETS
from shortsfusion.config.settings import settings
from shortsfusion.core.providers import (
    ImageProvider,
    ProviderError,
    Sleep,
    call_with_retry,
)
from shortsfusion.services.artifact_store import ArtifactStore
from shortsfusion.services.observability import logger


PROVIDER_NAME = "image"


class StabilityImageProvider(ImageProvider):
    """
    Generates vertical 9:16 images and stores them in the artifact store
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
        self.api_url = settings.stability_api_url
        self.api_key = settings.stability_api_key

    @staticmethod
    def build_prompt(prompt: str, style: str) -> str:
        modifier = STYLE_PRESETS.get(style, STYLE_PRESETS["cinematic"])
        return f"{prompt}, {modifier}"

    async def _request_image(self, prompt: str) -> str:
        response = await self.client.post(
            self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
            },
            # multipart/form-data, as the endpoint requires
            files={
                "prompt": (None, prompt),
                "output_format": (None, "png"),
                "aspect_ratio": (None, "9:16"),
            },
        )
        response.raise_for_status()

        payload = response.json()
        image_base64 = payload.get("image")
        if not image_base64:
            raise ProviderError(
                PROVIDER_NAME,
                f"No image in response (finish_reason={payload.get('finish_reason')})",
            )
        return image_base64

    async def generate(self, prompt: str, style: str) -> str:
        """
        Generate an image and return its public URL

        Raises:
            ProviderError: If generation fails after retries
        """
        full_prompt = self.build_prompt(prompt, style)
        image_base64 = await call_with_retry(
            PROVIDER_NAME,
            self._request_image,
            full_prompt,
            sleep=self.sleep,
        )

        try:
            url = self.artifact_store.upload(image_base64, ArtifactStore.KIND_IMAGE, "png")
        except ValueError as e:
            raise ProviderError(PROVIDER_NAME, f"Invalid image payload: {e}") from e

        logger.info(
            "image_generated",
            style=style,
            prompt_length=len(full_prompt),
            url=url,
        )
        return url

    async def close(self):
        await self.client.aclose()
