"""Embedding providers for semantic issue comparison."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

import httpx
import numpy as np
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
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderResponseError,
)

logger = logging.getLogger(__name__)

# Provider registry
_EMBEDDING_REGISTRY: dict[str, Callable[[], "BaseEmbeddings"]] = {}


def register_embedding_provider(name: str):
    """Decorator to register an embedding provider factory."""

    def decorator(factory: Callable[[], "BaseEmbeddings"]):
        _EMBEDDING_REGISTRY[name.lower()] = factory
        return factory

    return decorator


class BaseEmbeddings(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of texts to embed

        Returns:
            One vector per input text, in input order
        """
        pass

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    def is_available(self) -> bool:
        """Lightweight configuration check (no network requests)."""
        return True

    @staticmethod
    def cosine_similarity(a: list[float], b: list[float]) -> float:
        """Calculate cosine similarity between two vectors (-1.0 to 1.0).

        Zero vectors have no direction and score 0.0.
        """
        a_arr = np.asarray(a, dtype=float)
        b_arr = np.asarray(b, dtype=float)
        if a_arr.shape != b_arr.shape:
            raise ValueError(
                f"Vector dimensions differ: {a_arr.shape[0]} != {b_arr.shape[0]}"
            )

        norm = np.linalg.norm(a_arr) * np.linalg.norm(b_arr)
        if norm == 0:
            return 0.0
        return float(np.dot(a_arr, b_arr) / norm)


class OpenAIEmbeddings(BaseEmbeddings):
    """Embeddings using the OpenAI embeddings API (raw httpx, no SDK)."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
    ):
        """Initialize OpenAI embeddings.

        Args:
            api_key: API key (defaults to settings.OPENAI_API_KEY)
            model: Model name (defaults to settings.OPENAI_EMBEDDING_MODEL)
            base_url: API base URL (defaults to settings.OPENAI_BASE_URL)
            timeout: Request timeout in seconds
            batch_size: Max texts per request
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE

        if not self.api_key:
            logger.warning("OpenAI API key not configured")

    @property
    def provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        return bool(self.api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type((ProviderConnectionError, ProviderRateLimitError)),
        reraise=True,
    )
    async def _request(self, client: httpx.AsyncClient, batch: list[str]) -> list[list[float]]:
        """Embed one batch, mapping HTTP failures to provider errors."""
        try:
            response = await client.post(
                f"{self.base_url}/embeddings",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "input": batch},
            )
        except httpx.ConnectError as e:
            raise ProviderConnectionError(
                f"Failed to connect: {e}", provider=self.provider_name
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(
                f"Request timed out: {e}", provider=self.provider_name
            ) from e

        if response.status_code == 401:
            raise ProviderAuthenticationError("Invalid API key", provider=self.provider_name)
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise ProviderRateLimitError(
                "Rate limit exceeded",
                provider=self.provider_name,
                retry_after=float(retry_after) if retry_after else None,
            )
        response.raise_for_status()

        data = sorted(response.json().get("data", []), key=lambda item: item.get("index", 0))
        vectors = [item.get("embedding", []) for item in data]
        if len(vectors) != len(batch):
            raise ProviderResponseError(
                f"Expected {len(batch)} embeddings, got {len(vectors)}",
                provider=self.provider_name,
            )
        return vectors

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using the OpenAI API."""
        if not texts:
            return []
        if not self.api_key:
            raise ProviderAuthenticationError(
                "API key not configured", provider=self.provider_name
            )

        all_embeddings: list[list[float]] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for i in range(0, len(texts), self.batch_size):
                batch = texts[i : i + self.batch_size]
                all_embeddings.extend(await self._request(client, batch))

        return all_embeddings


class OllamaEmbeddings(BaseEmbeddings):
    """Embeddings using Ollama (requires Ollama server)."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize Ollama embeddings.

        Args:
            base_url: Ollama server URL (defaults to settings.OLLAMA_BASE_URL)
            model: Model name (defaults to settings.OLLAMA_EMBEDDING_MODEL)
            timeout: Request timeout in seconds
        """
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_EMBEDDING_MODEL
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT

    @property
    def provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        return bool(self.base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ProviderConnectionError),
        reraise=True,
    )
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using Ollama's batch embed endpoint."""
        if not texts:
            return []
        if not self.base_url:
            raise ProviderNotConfiguredError(
                "Ollama base URL not configured", provider=self.provider_name
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/api/embed",
                    json={"model": self.model, "input": texts},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise ProviderConnectionError(
                f"Failed to reach Ollama: {e}", provider=self.provider_name
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error while generating embeddings: {e}")
            raise

        embeddings = data.get("embeddings", [])
        if len(embeddings) != len(texts):
            raise ProviderResponseError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
                provider=self.provider_name,
            )
        return embeddings


class SentenceTransformerEmbeddings(BaseEmbeddings):
    """Embeddings using sentence-transformers (runs locally, no external API)."""

    def __init__(self, model: str | None = None):
        """Initialize sentence-transformer embeddings.

        Args:
            model: Model name (defaults to settings.EMBEDDING_MODEL)
        """
        self.model_name = model or settings.EMBEDDING_MODEL
        self._model = None

    @property
    def provider_name(self) -> str:
        return "sentence-transformer"

    def _load_model(self):
        """Lazy load the model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ProviderNotConfiguredError(
                    "sentence-transformers not installed. "
                    "Install with: pip install issue-intelligence[local]",
                    provider=self.provider_name,
                ) from e

            logger.info(f"Loading sentence-transformer model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using sentence-transformers."""
        if not texts:
            return []

        model = self._load_model()
        loop = asyncio.get_running_loop()
        # encode() is CPU-bound and synchronous
        embeddings = await loop.run_in_executor(
            None, lambda: model.encode(texts, convert_to_numpy=True)
        )
        return embeddings.tolist()


# Register providers
@register_embedding_provider("openai")
def _create_openai():
    return OpenAIEmbeddings()


@register_embedding_provider("ollama")
def _create_ollama():
    return OllamaEmbeddings()


@register_embedding_provider("sentence-transformer")
def _create_sentence_transformer():
    return SentenceTransformerEmbeddings()


def get_available_embedding_providers() -> list[str]:
    """Get list of registered embedding provider names."""
    return list(_EMBEDDING_REGISTRY.keys())


def get_embeddings(provider: str | None = None) -> BaseEmbeddings:
    """Get an embeddings instance.

    Args:
        provider: Provider name (defaults to settings.EMBEDDING_PROVIDER)

    Returns:
        Embeddings instance

    Raises:
        ProviderNotConfiguredError: If no provider is named or it is not registered
    """
    provider_name = (provider or settings.EMBEDDING_PROVIDER).lower()

    if not provider_name:
        raise ProviderNotConfiguredError(
            "No embedding provider configured. Set EMBEDDING_PROVIDER.",
            provider="none",
        )

    if provider_name not in _EMBEDDING_REGISTRY:
        available = ", ".join(get_available_embedding_providers())
        raise ProviderNotConfiguredError(
            f"Unknown embedding provider '{provider_name}'. Available: {available}",
            provider=provider_name,
        )

    return _EMBEDDING_REGISTRY[provider_name]()


def resolve_embeddings(provider: str | None = None) -> BaseEmbeddings | None:
    """Get the configured embedding provider, or None when there is none.

    Absence is not an error: services fall back to keyword similarity.
    """
    try:
        embeddings = get_embeddings(provider)
    except ProviderNotConfiguredError as e:
        logger.info(f"Embeddings disabled: {e}")
        return None

    if not embeddings.is_available():
        logger.warning(f"Embedding provider '{embeddings.provider_name}' is not configured")
        return None

    logger.info(f"Using embedding provider: {embeddings.provider_name}")
    return embeddings
