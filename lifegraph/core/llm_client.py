"""Clients for the remote text generation services.

Both provider clients expose the same ``generate_content`` coroutine so the
extraction pipeline never has to know which one is configured.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import types

from lifegraph.core.exceptions import APIClientError, APITimeoutError
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RetryingJSONClient:
    """POSTs JSON to one bearer-authenticated endpoint with backoff.

    Client errors other than 429 fail on the first attempt; 429, 5xx,
    timeouts and transport errors are retried with exponential backoff.
    """

    def __init__(
        self,
        api_key: str,
        url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
    ):
        """Initialize the transport.

        Args:
            api_key: Bearer credential
            url: Endpoint every request is posted to
            timeout: Request timeout in seconds
            max_retries: Total attempts per request
            retry_delay: Base delay for exponential backoff
        """
        self.url = url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send ``payload`` and return the decoded JSON body.

        Raises:
            APIClientError: On a non-retryable status or when attempts run out
            APITimeoutError: If the last attempt timed out
        """
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(self.url, headers=self.headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    body = e.response.text[:500]
                    LOGGER.warning(
                        f"Generation API returned {status_code} (attempt {attempt}/{self.max_retries})",
                        extra={"url": self.url, "status_code": status_code, "error_body": body},
                    )
                    if 400 <= status_code < 500 and status_code != 429:
                        raise APIClientError(f"API Client Error {status_code}: {body[:200]}", e) from e
                    last_error = e

                except httpx.TimeoutException as e:
                    LOGGER.warning(
                        f"Generation API timed out (attempt {attempt}/{self.max_retries})",
                        extra={"url": self.url},
                    )
                    last_error = e

                except (httpx.HTTPError, ValueError) as e:
                    # ValueError covers an undecodable JSON body
                    LOGGER.warning(
                        f"Generation API call failed (attempt {attempt}/{self.max_retries})",
                        extra={"url": self.url, "error": str(e)},
                    )
                    last_error = e

                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))

        if isinstance(last_error, httpx.TimeoutException):
            raise APITimeoutError(
                f"API Timeout after {self.max_retries} attempts", last_error
            ) from last_error
        raise APIClientError(
            f"API call to {self.url} failed after {self.max_retries} attempts: {last_error}", last_error
        ) from last_error


class GeminiClient:
    """Google Gemini through the google-genai async API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 60,
        max_retries: int = 3,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Per-attempt timeout in seconds
            max_retries: Total attempts per request
        """
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

        try:
            self.client = genai.Client(api_key=api_key)
        except Exception as e:
            raise APIClientError(f"Failed to initialize Gemini client: {e}", e) from e
        LOGGER.info(f"Initialized Gemini client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate text for a single user message.

        Raises:
            APITimeoutError: If the last attempt timed out
            APIClientError: If generation fails after retries
        """
        options = generation_config or {}
        config = types.GenerateContentConfig(
            temperature=options.get("temperature", 0.0),
            max_output_tokens=options.get("max_output_tokens"),
            system_instruction=system_instruction,
        )

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.aio.models.generate_content(
                        model=self.model, contents=contents, config=config
                    ),
                    timeout=self.timeout,
                )
                return response.text or ""

            except asyncio.TimeoutError as e:
                LOGGER.warning(f"Gemini timed out (attempt {attempt}/{self.max_retries})")
                if attempt == self.max_retries:
                    raise APITimeoutError(f"Gemini generation timed out after {self.timeout}s", e) from e

            except Exception as e:
                LOGGER.warning(f"Gemini API error (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    raise APIClientError(f"Gemini generation failed: {e}", e) from e

            await asyncio.sleep(2 ** (attempt - 1))

        raise APIClientError("Gemini generation failed")


class ChatCompletionsClient:
    """Client for OpenAI-compatible chat completion APIs (x.ai by default).

    Provides the same ``generate_content`` interface as GeminiClient.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "grok-3-mini-beta",
        base_url: str = "https://api.x.ai/v1/chat/completions",
        timeout: int = 60,
        max_retries: int = 3,
    ):
        """Initialize chat completions client.

        Args:
            api_key: Bearer credential for the provider
            model: Model name to use
            base_url: Full chat completions endpoint URL
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
        """
        self.model = model
        self.transport = RetryingJSONClient(
            api_key=api_key,
            url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        LOGGER.info(f"Initialized chat completions client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content through the chat completions endpoint.

        Args:
            contents: User message
            system_instruction: Optional system message
            generation_config: ``temperature`` and ``max_output_tokens`` overrides

        Returns:
            Generated text response

        Raises:
            APIClientError: If generation fails or the response is malformed
        """
        messages: List[Dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        config = generation_config or {}
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": config.get("temperature", 0.0),
        }
        if "max_output_tokens" in config:
            payload["max_tokens"] = config["max_output_tokens"]

        response = await self.transport.post(payload)

        choices = response.get("choices") if isinstance(response, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            LOGGER.error(
                "Unexpected chat completions response format",
                extra={"response_keys": list(response.keys()) if isinstance(response, dict) else None},
            )
            raise APIClientError("Invalid response format from chat completions API")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise APIClientError("Invalid response format from chat completions API")
        if not content:
            LOGGER.warning("Empty response from chat completions API")
        return content
