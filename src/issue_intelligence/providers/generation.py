"""Structured generation providers and registry."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from issue_intelligence.config import settings
from issue_intelligence.exceptions import (
    ProviderConnectionError,
    ProviderNotConfiguredError,
    ProviderResponseError,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_INSTRUCTION = (
    "IMPORTANT: Respond ONLY with valid JSON. No markdown, no explanation, "
    "just the JSON object."
)


class BaseGenerator(ABC):
    """Base class for text generation providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'ollama', 'claude')."""
        pass

    @abstractmethod
    async def generate(self, prompt: str, system: str | None = None, **kwargs: Any) -> str:
        """Generate text from a prompt."""
        pass

    def is_available(self) -> bool:
        """Lightweight check if provider is configured.

        This checks configuration (e.g., API key exists) without making
        network requests. Override in subclasses as needed.
        """
        return True

    async def generate_json(
        self, prompt: str, system: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        """Generate a JSON response from a prompt.

        Returns:
            Parsed JSON response, or empty dict on parse failure
        """
        response_text = await self.generate(f"{prompt}\n\n{JSON_INSTRUCTION}", system=system, **kwargs)
        return self._parse_json_response(response_text)

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        output_shape: type[ModelT],
    ) -> ModelT:
        """Generate a response and validate it against a pydantic model.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request itself
            output_shape: Pydantic model the response must match

        Returns:
            Validated instance of ``output_shape``

        Raises:
            ProviderResponseError: If the response is not valid JSON or does
                not match ``output_shape``
        """
        schema = json.dumps(output_shape.model_json_schema())
        prompt = f"{user_prompt}\n\nRespond with JSON matching this schema:\n{schema}"

        data = await self.generate_json(prompt, system=system_prompt)
        if not data:
            raise ProviderResponseError(
                "Response did not contain a JSON object", provider=self.provider_name
            )

        try:
            return output_shape.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Invalid structured response: {data}")
            raise ProviderResponseError(
                f"Response does not match {output_shape.__name__}: {e.error_count()} errors",
                provider=self.provider_name,
            ) from e

    def _parse_json_response(self, response_text: str) -> dict[str, Any]:
        """Parse JSON from LLM response, handling common formatting issues.

        Args:
            response_text: Raw text response from LLM

        Returns:
            Parsed JSON object, or empty dict on parse failure
        """
        text = response_text.strip()

        # Remove markdown code blocks if present
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]

        if text.endswith("```"):
            text = text[:-3]

        text = text.strip()

        # Tolerate prose around the object
        if not text.startswith("{"):
            start, end = text.find("{"), text.rfind("}")
            if start != -1 and end > start:
                text = text[start : end + 1]

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse {self.provider_name} response as JSON: {e}")
            logger.debug(f"Raw response: {response_text}")
            return {}

        if not isinstance(parsed, dict):
            logger.warning(f"{self.provider_name} returned JSON that is not an object")
            return {}
        return parsed


class OllamaGenerator(BaseGenerator):
    """Ollama generation client."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 120.0,
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_LLM_MODEL
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama is configured (URL exists)."""
        return bool(self.base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ProviderConnectionError),
        reraise=True,
    )
    async def generate(self, prompt: str, system: str | None = None, **kwargs: Any) -> str:
        """Generate text from a prompt using Ollama."""
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            **kwargs,
        }
        if system:
            payload["system"] = system

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise ProviderConnectionError(
                f"Failed to reach Ollama: {e}", provider=self.provider_name
            ) from e

        return data.get("response", "")


# Provider registry: maps provider names to factory functions
_GENERATION_REGISTRY: dict[str, Callable[[], BaseGenerator]] = {}


def register_generation_provider(name: str):
    """Decorator to register a generation provider factory.

    Usage:
        @register_generation_provider("my_provider")
        def _create_my_provider():
            return MyGenerator()
    """

    def decorator(factory: Callable[[], BaseGenerator]):
        _GENERATION_REGISTRY[name.lower()] = factory
        logger.debug(f"Registered generation provider: {name}")
        return factory

    return decorator


@register_generation_provider("ollama")
def _create_ollama() -> BaseGenerator:
    return OllamaGenerator()


@register_generation_provider("claude")
def _create_claude() -> BaseGenerator:
    from issue_intelligence.providers.claude import ClaudeGenerator

    return ClaudeGenerator()


def get_available_generation_providers() -> list[str]:
    """Get list of registered provider names."""
    return list(_GENERATION_REGISTRY.keys())


def get_generator(name: str) -> BaseGenerator:
    """Get a generation provider instance by name.

    Raises:
        ProviderNotConfiguredError: If provider is not registered
    """
    name_lower = name.lower()
    if name_lower not in _GENERATION_REGISTRY:
        available = ", ".join(get_available_generation_providers())
        raise ProviderNotConfiguredError(
            f"Unknown provider '{name}'. Available: {available}",
            provider=name,
        )

    return _GENERATION_REGISTRY[name_lower]()


def resolve_generator(provider: str | None = None) -> BaseGenerator | None:
    """Get the generation provider to use, or None when nothing is configured.

    Selection order:
    1. Use specified provider if given
    2. Use LLM_PROVIDER from config if set
    3. Auto-select based on configuration (Claude if API key exists, else Ollama)

    Absence is not an error: services run their fallback paths.
    """
    provider_name = provider or settings.LLM_PROVIDER

    if provider_name:
        try:
            generator = get_generator(provider_name)
        except ProviderNotConfiguredError as e:
            logger.warning(f"{e}")
        else:
            if generator.is_available():
                logger.info(f"Using generation provider: {generator.provider_name}")
                return generator
            logger.warning(f"Configured provider '{provider_name}' not available")

    if settings.ANTHROPIC_API_KEY:
        generator = get_generator("claude")
        if generator.is_available():
            logger.info("Auto-selected Claude generation provider")
            return generator

    if settings.OLLAMA_BASE_URL:
        generator = get_generator("ollama")
        if generator.is_available():
            logger.info("Auto-selected Ollama generation provider")
            return generator

    logger.info("No generation provider configured; AI paths will use fallbacks")
    return None
