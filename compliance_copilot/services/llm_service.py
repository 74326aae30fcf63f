"""Gemini client used by the AI-assisted analyzer."""

import asyncio
import logging
from dataclasses import dataclass

from google import genai
from google.genai import types

from compliance_copilot.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class TokenUsage:
    """Running token totals for one LLMService instance (one analysis stage)."""

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, usage_metadata) -> None:
        self.requests += 1
        if usage_metadata is None:
            return
        self.input_tokens += usage_metadata.prompt_token_count or 0
        self.output_tokens += usage_metadata.candidates_token_count or 0


class LLMService:
    """Thin async wrapper over the blocking google-genai client."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.client = genai.Client(api_key=api_key or settings.gemini_api_key)
        self.model = model or settings.gemini_model
        self.usage = TokenUsage()

    @staticmethod
    def build_config(
        max_tokens: int,
        temperature: float,
        system_prompt: str | None,
        json_output: bool,
    ) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
            system_instruction=system_prompt,
            response_mime_type="application/json" if json_output else None,
        )

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
        system_prompt: str | None = None,
        json_output: bool = False,
    ) -> str:
        """Generate a completion for ``prompt``.

        Args:
            prompt: User prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-1)
            system_prompt: Optional system instruction
            json_output: Ask the model for an application/json reply

        Returns:
            Generated text, empty when the model returned no candidates

        Raises:
            Exception: whatever the client raised; callers decide containment
        """
        config = self.build_config(max_tokens, temperature, system_prompt, json_output)
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini request to {self.model} failed: {e}")
            raise

        self.usage.add(getattr(response, "usage_metadata", None))
        logger.debug(
            f"Gemini usage after {self.usage.requests} requests: "
            f"{self.usage.input_tokens} in / {self.usage.output_tokens} out"
        )
        return response.text or ""
