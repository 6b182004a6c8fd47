"""
Script Provider - LangChain chat model writing narration and scene prompts
"""

import asyncio
import time
from typing import Any, Optional
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import PydanticOutputParser

from shortsfusion.config.settings import settings
from shortsfusion.core.providers import (
    ProviderError,
    ScriptProvider,
    ScriptResult,
    normalize_http_error,
)
from shortsfusion.services.observability import logger


PROVIDER_NAME = "script"


class LLMScriptProvider(ScriptProvider):
    """
    Generates a short-form video script with an OpenAI-compatible chat model
    """

    def __init__(self, llm: Optional[Any] = None):
        self.llm = llm
        self.parser = PydanticOutputParser(pydantic_object=ScriptResult)

    def _ensure_llm(self) -> None:
        if self.llm is None:
            from langchain_openai import ChatOpenAI
            self.llm = ChatOpenAI(
                model=settings.llm_model,
                api_key=settings.llm_api_key or None,
                base_url=settings.llm_base_url,
                temperature=0.7,
                timeout=settings.provider_timeout_s,
            )

    def build_prompt(self, topic: str, duration_s: int, scene_count: int) -> str:
        return f"""Create an engaging {duration_s}-second vertical short video script about: "{topic}"

Requirements:
- Create exactly {scene_count} scenes
- Each scene should be 10-12 seconds of narration
- Write concise, punchy narration in a conversational tone
- Each scene needs a short on-screen caption and a detailed image prompt
- Image prompts describe subject, lighting, composition and mood

{self.parser.get_format_instructions()}"""

    async def generate(self, topic: str, duration_s: int, scene_count: int) -> ScriptResult:
        """
        Generate narration and scenes

        Args:
            topic: Video topic
            duration_s: Target duration
            scene_count: Number of scenes to produce

        Returns:
            ScriptResult with exactly scene_count scenes

        Raises:
            ProviderError: On model, transport or parse failure
        """
        start_time = time.time()
        messages = [
            SystemMessage(content="You are a short-form video script writer."),
            HumanMessage(content=self.build_prompt(topic, duration_s, scene_count)),
        ]

        try:
            self._ensure_llm()
            response = await self.llm.ainvoke(messages)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "script_generation_failed",
                topic_length=len(topic),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise normalize_http_error(PROVIDER_NAME, e) from e

        try:
            result = self.parser.parse(response.content)
        except Exception as e:
            logger.error(
                "script_parse_failed",
                error=str(e),
            )
            raise ProviderError(PROVIDER_NAME, f"Unparseable script output: {e}") from e

        if len(result.scenes) < scene_count:
            raise ProviderError(
                PROVIDER_NAME,
                f"Expected {scene_count} scenes, got {len(result.scenes)}",
            )
        result.scenes = result.scenes[:scene_count]

        logger.info(
            "script_generated",
            scene_count=len(result.scenes),
            narration_length=len(result.narration_text),
            duration_s=round(time.time() - start_time, 3),
        )
        return result
