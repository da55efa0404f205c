"""SEOPULSE — OpenAI Provider."""

from openai import AsyncOpenAI

from seopulse.ai.base_provider import AIProvider, ENRICHMENT_SYSTEM_PROMPT, build_user_prompt
from seopulse.config import settings
from seopulse.core.logging import get_logger

logger = get_logger("ai.openai")


class OpenAIProvider(AIProvider):
    """OpenAI provider for report enrichment (gpt-4o-mini, JSON mode)."""

    name = "openai"

    def __init__(self, api_key: str | None = None):
        key = api_key or settings.openai_api_key
        self.client = AsyncOpenAI(api_key=key) if key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate(self, context: dict, instruction: str) -> str:
        if not self.is_available():
            raise RuntimeError("OpenAI provider not configured")

        try:
            response = await self.client.chat.completions.create(
                model="gpt-4o-mini",
                messages=[
                    {"role": "system", "content": ENRICHMENT_SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(context, instruction)},
                ],
                temperature=0.5,
                max_tokens=2000,
                response_format={"type": "json_object"},
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise
