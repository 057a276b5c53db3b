"""Language model provider clients.

Every client exposes the same capability:
``await client.complete(system_prompt, user_prompt, temperature) -> str``.
A client either returns the model's text (the provider answered with a
2xx response) or raises ``APIClientError``.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
import ollama
from google import genai
from google.genai import types
from httpx import HTTPStatusError, TimeoutException

from app.core.exceptions import APIClientError, APITimeoutError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

JSON_ONLY_INSTRUCTION = (
    "Respond with valid JSON only. Do not include markdown code blocks, "
    "explanatory text, or anything outside the JSON object."
)


@runtime_checkable
class ModelClient(Protocol):
    """Anything that can turn a prompt into text."""

    model_name: str

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> str:
        ...


def _build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}"})
    else:
        messages.append({"role": "system", "content": JSON_ONLY_INSTRUCTION})
    messages.append({"role": "user", "content": user_prompt})
    return messages


class JsonApiClient:
    """Single-attempt JSON POST to an HTTP LLM API.

    Failures are mapped to ``APIClientError`` (``APITimeoutError`` for
    timeouts). There are no retries; falling back to another provider is
    the provider chain's job.
    """

    def __init__(self, api_key: str, url: str, timeout: int = 60):
        """Initialize the client.

        Args:
            api_key: Bearer token for the API
            url: Endpoint to POST to
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    async def call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` and return the decoded JSON body.

        Raises:
            APIClientError: On a non-2xx status, transport error or invalid JSON
            APITimeoutError: If the request times out
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        LOGGER.debug(f"Calling LLM API: {self.url}", extra={"timeout": self.timeout})

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()

        except HTTPStatusError as e:
            status_code = e.response.status_code
            error_body = e.response.text
            LOGGER.warning(
                f"API HTTP error {status_code}",
                extra={"url": self.url, "error_body": error_body[:500]}
            )
            raise APIClientError(f"API HTTP Error {status_code}: {error_body[:200]}", original_error=e) from e

        except TimeoutException as e:
            LOGGER.warning("API Timeout", extra={"url": self.url})
            raise APITimeoutError(f"API Timeout after {self.timeout}s", original_error=e) from e

        except (httpx.HTTPError, ValueError) as e:
            LOGGER.warning("API Error", extra={"url": self.url, "error": str(e)})
            raise APIClientError(f"API Error: {e}", original_error=e) from e


class OllamaClient:
    """Client for a local or self-hosted Ollama server."""

    provider = "ollama"

    def __init__(
        self,
        model: str = "llama3.1:8b",
        base_url: str = "http://localhost:11434",
        timeout: int = 60,
        max_output_tokens: int = 200,
    ):
        """Initialize Ollama client.

        Args:
            model: Model name to use (e.g., "llama3.1:8b")
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            max_output_tokens: Cap on generated tokens per call
        """
        self.model = model
        self.model_name = f"{self.provider}:{model}"
        self.base_url = base_url
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.client = ollama.AsyncClient(host=base_url, timeout=timeout)
        LOGGER.info(f"Initialized Ollama client with model {model} at {base_url}")

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> str:
        """Generate a completion with the Ollama chat API.

        Raises:
            APIClientError: If the server is unreachable or answers with an error
        """
        try:
            response = await self.client.chat(
                model=self.model,
                messages=_build_messages(system_prompt, user_prompt),
                format="json",
                options={"temperature": temperature, "num_predict": self.max_output_tokens},
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise APIClientError(f"Ollama generation failed: {e}", original_error=e) from e

        message = getattr(response, "message", None)
        if message is None:
            LOGGER.error(
                "Unexpected Ollama response format",
                extra={"response_type": type(response).__name__}
            )
            raise APIClientError("Invalid response format from Ollama")

        content = message.content or ""
        if not content.strip():
            LOGGER.warning("Empty response from Ollama", extra={"model": self.model})
        return content


class OpenRouterClient:
    """Client for the OpenRouter chat completions API."""

    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-4o-mini",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        max_output_tokens: int = 200,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model name to use (e.g., "openai/gpt-4o-mini")
            base_url: OpenRouter chat completions URL
            timeout: Request timeout in seconds
            max_output_tokens: Cap on generated tokens per call
        """
        self.model = model
        self.model_name = f"{self.provider}:{model}"
        self.max_output_tokens = max_output_tokens
        self.client = JsonApiClient(api_key=api_key, url=base_url, timeout=timeout)
        LOGGER.info(f"Initialized OpenRouter client with model {model}")

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> str:
        """Generate a completion through OpenRouter.

        Raises:
            APIClientError: If the API call fails or the response is malformed
        """
        payload = {
            "model": self.model,
            "messages": _build_messages(system_prompt, user_prompt),
            "temperature": temperature,
            "max_tokens": self.max_output_tokens,
        }

        response = await self.client.call_api(payload=payload)

        choices = response.get("choices") if isinstance(response, dict) else None
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:300]}")
            raise APIClientError("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter", extra={"model": self.model})
        return content


class GeminiClient:
    """Client for the Google Gemini API."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_output_tokens: int = 200,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            max_output_tokens: Cap on generated tokens per call
        """
        self.model = model
        self.model_name = f"{self.provider}:{model}"
        self.max_output_tokens = max_output_tokens
        self.client = genai.Client(api_key=api_key)
        LOGGER.info(f"Initialized Gemini client with model {model}")

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
    ) -> str:
        """Generate a completion with the async Gemini SDK.

        Raises:
            APIClientError: If generation fails
        """
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=self.max_output_tokens,
            response_mime_type="application/json",
            system_instruction=system_prompt or None,
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=config,
            )
        except Exception as e:
            # The SDK raises its own error hierarchy plus transport errors
            raise APIClientError(f"Gemini generation failed: {e}", original_error=e) from e

        if not response.text:
            LOGGER.warning("Empty response from Gemini", extra={"model": self.model})
            return ""
        return response.text


__all__ = [
    "ModelClient",
    "JsonApiClient",
    "OllamaClient",
    "OpenRouterClient",
    "GeminiClient",
]
