"""Unified LLM client factory.

Provides a single ``generate_content`` interface over the supported providers
with provider selection driven by configuration.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from lifegraph.core.config import LLMSettings, settings
from lifegraph.core.llm_client import ChatCompletionsClient, GeminiClient
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    XAI = "xai"
    GEMINI = "gemini"


class UnifiedLLMClient:
    """Unified LLM client that wraps different providers."""

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 60,
        max_retries: int = 3,
    ):
        """Initialize unified LLM client.

        Args:
            provider: LLM provider to use ("xai" or "gemini")
            api_key: API key for the provider
            model: Model name to use
            base_url: Optional endpoint URL (chat completions providers only)
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts

        Raises:
            ValueError: If the provider is not supported
        """
        self.provider = LLMProvider(provider)
        self.model = model

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(
                api_key=api_key,
                model=model,
                timeout=timeout,
                max_retries=max_retries
            )
        else:
            self.client = ChatCompletionsClient(
                api_key=api_key,
                model=model,
                base_url=base_url or "https://api.x.ai/v1/chat/completions",
                timeout=timeout,
                max_retries=max_retries
            )

        LOGGER.info(f"Initialized unified LLM with {self.provider.value} provider (model: {model})")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured provider.

        Raises:
            APIClientError: If generation fails
        """
        return await self.client.generate_content(
            contents=contents,
            system_instruction=system_instruction,
            generation_config=generation_config,
        )


def create_llm_client(llm_settings: Optional[LLMSettings] = None) -> Optional[UnifiedLLMClient]:
    """Build the LLM client from settings.

    Args:
        llm_settings: Settings to use (defaults to the application settings)

    Returns:
        UnifiedLLMClient, or None when no credential is configured
    """
    llm_settings = llm_settings or settings.llm

    if not llm_settings.is_configured:
        LOGGER.warning(
            "LLM credential not configured; extraction is disabled",
            extra={"provider": llm_settings.provider},
        )
        return None

    if llm_settings.provider == LLMProvider.GEMINI.value:
        return UnifiedLLMClient(
            provider=LLMProvider.GEMINI,
            api_key=llm_settings.api_key,
            model=llm_settings.gemini_model,
            timeout=llm_settings.timeout_seconds,
            max_retries=llm_settings.max_retries,
        )

    return UnifiedLLMClient(
        provider=LLMProvider.XAI,
        api_key=llm_settings.api_key,
        model=llm_settings.xai_model,
        base_url=llm_settings.xai_api_url,
        timeout=llm_settings.timeout_seconds,
        max_retries=llm_settings.max_retries,
    )
