"""Generator backed by the Anthropic Messages API."""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from issue_intelligence.config import settings
from issue_intelligence.exceptions import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from issue_intelligence.providers.generation import BaseGenerator

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

# 529 is Anthropic's "overloaded"
TRANSIENT_STATUSES = frozenset({500, 502, 503, 504, 529})

JSON_PREFILL = "{"


class ClaudeGenerator(BaseGenerator):
    """Claude over raw httpx.

    The system prompt travels in the request's ``system`` field and the
    task in the user turn. JSON requests prefill the assistant turn with an
    opening brace so the reply starts inside the object.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.timeout = timeout or settings.GENERATION_TIMEOUT
        self.max_tokens = max_tokens
        self.temperature = temperature

        if not self.api_key:
            logger.warning("ANTHROPIC_API_KEY is empty, Claude generation disabled")

    @property
    def provider_name(self) -> str:
        return "claude"

    def is_available(self) -> bool:
        return bool(self.api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type((ProviderConnectionError, ProviderRateLimitError)),
        reraise=True,
    )
    async def generate(self, prompt: str, system: str | None = None, **kwargs: Any) -> str:
        """Send one user turn and return the concatenated text blocks.

        Keyword arguments ``max_tokens`` and ``temperature`` override the
        instance defaults. ``prefill`` seeds the assistant turn; the returned
        text is the continuation only.

        Raises:
            ProviderAuthenticationError: Missing key, or 401/403
            ProviderRateLimitError: 429, retried
            ProviderConnectionError: Transport failure, 5xx or overload, retried
            ProviderResponseError: Other 4xx, or a reply without text
        """
        if not self.api_key:
            raise ProviderAuthenticationError(
                "ANTHROPIC_API_KEY is not set", provider=self.provider_name
            )

        payload = self._build_payload(prompt, system, **kwargs)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    ANTHROPIC_API_URL,
                    headers={
                        "Content-Type": "application/json",
                        "x-api-key": self.api_key,
                        "anthropic-version": ANTHROPIC_VERSION,
                    },
                    json=payload,
                )
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Anthropic API unreachable: {e}", provider=self.provider_name
            ) from e

        self._check_status(response)
        return self._extract_text(response.json())

    async def generate_json(
        self, prompt: str, system: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        text = await self.generate(prompt, system=system, prefill=JSON_PREFILL, **kwargs)
        return self._parse_json_response(JSON_PREFILL + text)

    def _build_payload(
        self, prompt: str, system: str | None, **kwargs: Any
    ) -> dict[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        prefill = kwargs.get("prefill")
        if prefill:
            messages.append({"role": "assistant", "content": prefill})

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
            "temperature": kwargs.get("temperature", self.temperature),
            "messages": messages,
        }
        if system:
            payload["system"] = system
        return payload

    def _check_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise ProviderAuthenticationError(
                f"Anthropic API rejected the key (status {status})",
                provider=self.provider_name,
            )
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise ProviderRateLimitError(
                "Anthropic API rate limit hit",
                provider=self.provider_name,
                retry_after=float(retry_after) if retry_after else None,
            )
        if status in TRANSIENT_STATUSES:
            raise ProviderConnectionError(
                f"Anthropic API unavailable (status {status})", provider=self.provider_name
            )
        raise ProviderResponseError(
            f"Anthropic API returned status {status}", provider=self.provider_name
        )

    def _extract_text(self, data: dict[str, Any]) -> str:
        if data.get("stop_reason") == "max_tokens":
            logger.warning(f"Claude reply truncated at max_tokens ({self.model})")

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        if not text.strip():
            raise ProviderResponseError("Reply contained no text", provider=self.provider_name)
        return text
