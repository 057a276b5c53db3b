"""Provider chain over language model clients.

Wraps an ordered list of ``ModelClient`` implementations behind the same
``complete`` capability. Providers are tried in priority order and the
first one that answers wins; there are no retries beyond this fallback.
"""

import asyncio
from collections import Counter
from enum import Enum
from typing import List, Optional, Sequence

from app.core.config import LLMSettings
from app.core.exceptions import (
    APIClientError,
    APITimeoutError,
    ConfigurationError,
    NoModelAvailableError,
)
from app.core.llm_client import GeminiClient, ModelClient, OllamaClient, OpenRouterClient
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    GEMINI = "gemini"


class ProviderChain:
    """Sequential fallback across model providers.

    Example usage:
        chain = ProviderChain([OllamaClient(...), OpenRouterClient(...)])
        text = await chain.complete(system_prompt, user_prompt, temperature=0.1)
    """

    def __init__(
        self,
        providers: Sequence[ModelClient],
        provider_timeout_seconds: Optional[float] = None,
    ):
        """Initialize the chain.

        Args:
            providers: Clients in priority order
            provider_timeout_seconds: Limit for one provider attempt; a provider
                that exceeds it counts as failed and the next one is tried
        """
        self.providers: List[ModelClient] = list(providers)
        self.provider_timeout_seconds = provider_timeout_seconds
        self._served: Counter = Counter()
        LOGGER.info(
            f"Initialized provider chain with {len(self.providers)} providers",
            extra={"providers": [p.model_name for p in self.providers]}
        )

    @property
    def model_name(self) -> str:
        """Model that answered most calls so far, else the primary provider's model."""
        if self._served:
            return self._served.most_common(1)[0][0]
        if self.providers:
            return self.providers[0].model_name
        return "none"

    @property
    def call_budget_seconds(self) -> Optional[float]:
        """Longest a single ``complete`` can take when every provider times out."""
        if self.provider_timeout_seconds is None:
            return None
        return self.provider_timeout_seconds * max(1, len(self.providers))

    def ensure_available(self) -> None:
        """Raise ``NoModelAvailableError`` when the chain is empty."""
        if not self.providers:
            raise NoModelAvailableError(
                "No language model provider is configured; set OLLAMA_API_URL, "
                "OPENROUTER_API_KEY or GEMINI_API_KEY"
            )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> str:
        """Return the first successful completion in provider order.

        Raises:
            NoModelAvailableError: If no provider is configured
            APIClientError: If every provider failed on this call
        """
        self.ensure_available()

        errors: List[str] = []
        for provider in self.providers:
            try:
                text = await self._attempt(provider, system_prompt, user_prompt, temperature)
            except APIClientError as e:
                LOGGER.warning(
                    f"Provider {provider.model_name} failed, trying next: {e}",
                    extra={"provider": provider.model_name}
                )
                errors.append(f"{provider.model_name}: {e}")
                continue

            self._served[provider.model_name] += 1
            return text

        raise APIClientError(
            f"All {len(self.providers)} model providers failed: " + "; ".join(errors)
        )

    async def _attempt(
        self,
        provider: ModelClient,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
    ) -> str:
        if self.provider_timeout_seconds is None:
            return await provider.complete(system_prompt, user_prompt, temperature)
        try:
            return await asyncio.wait_for(
                provider.complete(system_prompt, user_prompt, temperature),
                timeout=self.provider_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise APITimeoutError(
                f"No answer within {self.provider_timeout_seconds}s"
            ) from e


def create_provider(name: str, llm_settings: LLMSettings) -> Optional[ModelClient]:
    """Build one provider client from settings, or ``None`` if it is not configured.

    Raises:
        ConfigurationError: If the provider name is unknown
    """
    try:
        provider = LLMProvider(name.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {name}") from e

    timeout = llm_settings.timeout_seconds

    if provider == LLMProvider.OLLAMA:
        if not llm_settings.ollama_api_url.strip():
            return None
        return OllamaClient(
            model=llm_settings.ollama_model,
            base_url=llm_settings.ollama_api_url.strip(),
            timeout=timeout,
        )

    if provider == LLMProvider.OPENROUTER:
        if not llm_settings.openrouter_api_key.strip():
            return None
        return OpenRouterClient(
            api_key=llm_settings.openrouter_api_key.strip(),
            model=llm_settings.openrouter_model,
            base_url=llm_settings.openrouter_api_url,
            timeout=timeout,
        )

    if not llm_settings.gemini_api_key.strip():
        return None
    return GeminiClient(
        api_key=llm_settings.gemini_api_key.strip(),
        model=llm_settings.gemini_model,
    )


def create_llm_client_from_settings(
    llm_settings: LLMSettings,
    provider_timeout_seconds: Optional[float] = None,
) -> ProviderChain:
    """Create a provider chain following ``LLM_PROVIDER_ORDER``.

    Unconfigured providers are skipped; the chain may end up empty, in
    which case ``complete`` raises ``NoModelAvailableError``.

    Args:
        llm_settings: Provider configuration
        provider_timeout_seconds: Per-provider attempt limit, defaults to
            ``LLM_TIMEOUT_SECONDS``
    """
    providers: List[ModelClient] = []
    for name in llm_settings.providers:
        client = create_provider(name, llm_settings)
        if client is None:
            LOGGER.info(f"Skipping unconfigured provider: {name}")
            continue
        providers.append(client)
    return ProviderChain(
        providers,
        provider_timeout_seconds=provider_timeout_seconds or llm_settings.timeout_seconds,
    )
