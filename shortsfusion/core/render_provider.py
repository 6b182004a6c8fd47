"""
Render Provider - Creatomate video assembly
"""

import asyncio
from typing import Any, Dict, List, Optional
import httpx

from shortsfusion.config.settings import settings
from shortsfusion.core.providers import (
    ProviderError,
    RenderProvider,
    RenderStatus,
    Sleep,
    Timeline,
    call_with_retry,
)
from shortsfusion.services.observability import logger


PROVIDER_NAME = "render"


def _fade(start: str, end: str, easing: str = "linear") -> Dict[str, Any]:
    return {
        "type": "fade",
        "fade": True,
        "easing": easing,
        "start": start,
        "end": end,
        "scope": "element",
    }


def build_composition(timeline: Timeline) -> Dict[str, Any]:
    """
    Build a Creatomate RenderScript source from a timeline

    One audio track for the narration, then an image and a caption element
    per scene. Animated scenes get a slow zoom in addition to the fades.
    """
    elements: List[Dict[str, Any]] = [
        {
            "type": "audio",
            "source": timeline.voiceover_url,
            "time": 0,
            "volume": "100%",
        }
    ]

    for scene in timeline.scenes:
        animations: List[Dict[str, Any]] = []
        if scene.is_animated:
            animations.append(
                {
                    "type": "scale",
                    "fade": False,
                    "easing": "linear",
                    "start": "0%",
                    "end": "100%",
                    "scope": "element",
                    "start_scale": "100%",
                    "end_scale": "120%",
                }
            )
        animations.append(_fade("0%", "5%"))
        animations.append(_fade("95%", "100%"))

        elements.append(
            {
                "type": "image",
                "source": scene.image_url,
                "time": scene.start_s,
                "duration": scene.duration_s,
                "width": "100%",
                "height": "100%",
                "fit": "cover",
                "animations": animations,
            }
        )
        elements.append(
            {
                "type": "text",
                "text": scene.text,
                "time": scene.start_s,
                "duration": scene.duration_s,
                "x": "50%",
                "y": "85%",
                "width": "90%",
                "x_alignment": "50%",
                "y_alignment": "50%",
                "fill_color": "#FFFFFF",
                "font_family": "Montserrat",
                "font_weight": "700",
                "font_size": "48px",
                "stroke_color": "#000000",
                "stroke_width": "4px",
                "animations": [
                    _fade("0%", "10%", "cubic-out"),
                    _fade("90%", "100%", "cubic-in"),
                ],
            }
        )

    return {
        "output_format": "mp4",
        "width": timeline.width,
        "height": timeline.height,
        "frame_rate": timeline.frame_rate,
        "duration": timeline.duration_s,
        "elements": elements,
    }


class CreatomateRenderProvider(RenderProvider):
    """
    Submits compositions to Creatomate and reads back render status
    """

    # Creatomate statuses that are still in flight
    PENDING_STATUSES = {"planned", "waiting", "transcribing", "rendering"}

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client or httpx.AsyncClient(timeout=settings.provider_timeout_s)
        self.sleep = sleep
        self.base_url = settings.creatomate_base_url.rstrip("/")
        self.api_key = settings.creatomate_api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post_render(self, source: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post(
            f"{self.base_url}/renders",
            headers=self._headers(),
            json={"source": source},
        )
        response.raise_for_status()
        payload = response.json()
        # The endpoint answers with a list of renders
        if isinstance(payload, list):
            if not payload:
                raise ProviderError(PROVIDER_NAME, "Render submission returned no renders")
            payload = payload[0]
        return payload

    async def _get_render(self, render_id: str) -> Dict[str, Any]:
        response = await self.client.get(
            f"{self.base_url}/renders/{render_id}",
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.json()

    async def submit(self, timeline: Timeline) -> str:
        """
        Submit a render and return its render id

        Raises:
            ProviderError: If submission fails after retries
        """
        source = build_composition(timeline)
        payload = await call_with_retry(
            PROVIDER_NAME,
            self._post_render,
            source,
            sleep=self.sleep,
        )

        render_id = payload.get("id")
        if not render_id:
            raise ProviderError(PROVIDER_NAME, "Render submission returned no id")

        logger.info(
            "render_submitted",
            render_id=render_id,
            scene_count=len(timeline.scenes),
            duration_s=timeline.duration_s,
        )
        return render_id

    async def poll_status(self, render_id: str) -> RenderStatus:
        """Fetch and normalize the current render status"""
        payload = await call_with_retry(
            PROVIDER_NAME,
            self._get_render,
            render_id,
            sleep=self.sleep,
        )
        raw_status = str(payload.get("status") or "").lower()

        if raw_status == "succeeded":
            if not payload.get("url"):
                return RenderStatus(
                    render_id=render_id,
                    status="failed",
                    error="Render succeeded without an output url",
                )
            return RenderStatus(
                render_id=render_id,
                status="succeeded",
                url=payload.get("url"),
                thumbnail_url=payload.get("snapshot_url"),
            )

        if raw_status == "failed":
            return RenderStatus(
                render_id=render_id,
                status="failed",
                error=payload.get("error_message") or "Unknown render error",
            )

        if raw_status not in self.PENDING_STATUSES:
            logger.warning(
                "render_status_unrecognized",
                render_id=render_id,
                status=raw_status,
            )

        return RenderStatus(render_id=render_id, status="pending")

    async def close(self):
        await self.client.aclose()
