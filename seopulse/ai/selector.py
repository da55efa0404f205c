"""SEOPULSE — AI Provider Selection."""

from typing import Optional

from seopulse.ai.base_provider import AIProvider
from seopulse.ai.claude_provider import ClaudeProvider
from seopulse.ai.openai_provider import OpenAIProvider
from seopulse.ai.sarvam_provider import SarvamProvider
from seopulse.config import settings
from seopulse.core.logging import get_logger

logger = get_logger("ai.selector")

PROVIDERS = {
    "sarvam": SarvamProvider,
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
}


def select_provider(provider_name: str = "auto") -> Optional[AIProvider]:
    """Return a configured provider, or None to run baseline-only.

    'auto' tries DEFAULT_AI_PROVIDER first, then the remaining providers.
    """
    if provider_name == "auto":
        order = [settings.default_ai_provider] + [
            n for n in PROVIDERS if n != settings.default_ai_provider
        ]
    elif provider_name in PROVIDERS:
        order = [provider_name]
    else:
        logger.warning(f"Unknown AI provider {provider_name!r}")
        return None

    for name in order:
        cls = PROVIDERS.get(name)
        if cls is None:
            continue
        provider = cls()
        if provider.is_available():
            return provider

    logger.info("No AI provider configured; reports use baseline insights only")
    return None
