"""SEOPULSE — Anthropic Claude Provider."""

from anthropic import AsyncAnthropic

from seopulse.ai.base_provider import AIProvider, ENRICHMENT_SYSTEM_PROMPT, build_user_prompt
from seopulse.config import settings
from seopulse.core.logging import get_logger

logger = get_logger("ai.claude")


class ClaudeProvider(AIProvider):
    """Anthropic Claude provider for report enrichment."""

    name = "claude"

    def __init__(self, api_key: str | None = None):
        key = api_key or settings.anthropic_api_key
        self.client = AsyncAnthropic(api_key=key) if key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate(self, context: dict, instruction: str) -> str:
        if not self.is_available():
            raise RuntimeError("Claude provider not configured")

        try:
            response = await self.client.messages.create(
                model="claude-sonnet-4-20250514",
                max_tokens=1500,
                system=ENRICHMENT_SYSTEM_PROMPT,
                messages=[
                    {"role": "user", "content": build_user_prompt(context, instruction)},
                ],
            )
            return response.content[0].text if response.content else ""
        except Exception as e:
            logger.error(f"Claude generation failed: {e}")
            raise
