"""LLM client for the intent classifier (OpenAI-compatible chat API)."""

import logging
import os

import httpx

logger = logging.getLogger(__name__)


class LLMClient:
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = (
            base_url or os.getenv("LLM_API_URL", "http://localhost:8000")
        ).rstrip("/")
        self.model = model or os.getenv("LLM_MODEL") or "gemini-2.5-flash"
        self.api_key = api_key or os.getenv("LLM_API_KEY")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int | None = None,
        json_output: bool = False,
    ) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_output: Ask the server for a JSON object response

        Returns:
            Full response dict
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if json_output:
            payload["response_format"] = {"type": "json_object"}

        endpoint = f"{self.base_url}/v1/chat/completions"
        client = await self.get_client()
        logger.debug(f"Making request to {endpoint}")
        response = await client.post(endpoint, json=payload, headers=self.headers)
        if not response.is_success:
            logger.error(f"LLM API error: {response.status_code} - {response.text}")
            raise httpx.HTTPStatusError(
                f"LLM API error: {response.status_code}",
                request=response.request,
                response=response,
            )
        return response.json()

    async def check_health(self) -> bool:
        """Check if the LLM API is reachable."""
        try:
            client = await self.get_client()
            response = await client.get(
                f"{self.base_url}/v1/models",
                headers=self.headers,
                timeout=5.0,
            )
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning(f"LLM health check failed: {e}")
            return False
