"""OpenRouter chat completions client used for vision extraction."""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from app.core.exceptions import APIClientError, APITimeoutError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Statuses worth another attempt; 402 (no credits) and other 4xx are final.
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
MAX_RETRY_AFTER_SECONDS = 30


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Seconds requested by a ``Retry-After`` header, capped."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return min(float(value), MAX_RETRY_AFTER_SECONDS)
    except ValueError:
        return None


class OpenRouterClient:
    """Sends chat completion requests to an OpenAI-compatible endpoint.

    Rate limits and server errors are retried with exponential backoff,
    honoring ``Retry-After`` when the provider sends it.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout: int = 120,
        max_retries: int = 2,
        retry_delay: float = 2,
        app_title: Optional[str] = None,
    ):
        """
        Args:
            api_key: OpenRouter API key
            api_url: Full chat completions URL
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
            app_title: Sent as ``X-Title`` so usage shows up per application
        """
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.app_title = app_title

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.0,
    ) -> str:
        """Run one chat completion and return the first choice's text.

        Returns:
            The message content, or an empty string when the provider sent none.

        Raises:
            APIClientError: On a non-retryable status or when retries run out.
                ``status_code`` carries the last HTTP status.
            APITimeoutError: If every attempt timed out.
        """
        payload = {"model": model, "temperature": temperature, "messages": messages}
        body = await self._post(payload)

        choices = (body.get("choices") if isinstance(body, dict) else None) or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        LOGGER.debug(f"Calling {self.api_url}", extra={"model": payload.get("model")})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(1, self.max_retries + 1):
                last = attempt == self.max_retries
                try:
                    response = await client.post(self.api_url, headers=self._headers(), json=payload)
                except httpx.TimeoutException as e:
                    LOGGER.warning(f"Completion request timed out (attempt {attempt}/{self.max_retries})")
                    if last:
                        raise APITimeoutError(
                            f"Completion request timed out after {self.max_retries} attempts",
                            original_error=e,
                        )
                    await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))
                    continue
                except httpx.HTTPError as e:
                    raise APIClientError(f"Completion request failed: {e}", original_error=e)

                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise APIClientError(
                            "Completion response is not JSON",
                            original_error=e,
                            status_code=response.status_code,
                        )

                status_code = response.status_code
                LOGGER.warning(
                    f"Completion request returned {status_code} (attempt {attempt}/{self.max_retries})",
                    extra={"error_body": response.text[:500]},
                )
                if status_code not in RETRYABLE_STATUSES or last:
                    raise APIClientError(
                        f"Completion request failed with {status_code}: {response.text[:200]}",
                        status_code=status_code,
                    )
                delay = retry_after_seconds(response)
                await asyncio.sleep(delay if delay is not None else self.retry_delay * (2 ** (attempt - 1)))

        raise APIClientError("Completion request failed")
