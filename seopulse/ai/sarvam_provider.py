"""SEOPULSE — Sarvam AI Provider."""

from sarvamai import AsyncSarvamAI

from seopulse.ai.base_provider import AIProvider, ENRICHMENT_SYSTEM_PROMPT, build_user_prompt
from seopulse.config import settings
from seopulse.core.logging import get_logger

logger = get_logger("ai.sarvam")


class SarvamProvider(AIProvider):
    """Sarvam AI provider for report enrichment (model: sarvam-m)."""

    name = "sarvam"

    def __init__(self, api_key: str | None = None):
        key = api_key or settings.sarvam_api_key
        self.client = AsyncSarvamAI(api_subscription_key=key) if key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate(self, context: dict, instruction: str) -> str:
        if not self.is_available():
            raise RuntimeError("Sarvam provider not configured")

        try:
            response = await self.client.chat.completions(
                messages=[
                    {"role": "system", "content": ENRICHMENT_SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(context, instruction)},
                ],
                temperature=0.3,
                max_tokens=1500,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"Sarvam generation failed: {e}")
            raise
