"""Embedding and generation providers."""

from issue_intelligence.providers.claude import ClaudeGenerator
from issue_intelligence.providers.embeddings import (
    BaseEmbeddings,
    OllamaEmbeddings,
    OpenAIEmbeddings,
    SentenceTransformerEmbeddings,
    get_available_embedding_providers,
    get_embeddings,
    register_embedding_provider,
    resolve_embeddings,
)
from issue_intelligence.providers.generation import (
    BaseGenerator,
    OllamaGenerator,
    get_available_generation_providers,
    get_generator,
    register_generation_provider,
    resolve_generator,
)

__all__ = [
    "BaseEmbeddings",
    "BaseGenerator",
    "ClaudeGenerator",
    "OllamaEmbeddings",
    "OllamaGenerator",
    "OpenAIEmbeddings",
    "SentenceTransformerEmbeddings",
    "get_available_embedding_providers",
    "get_available_generation_providers",
    "get_embeddings",
    "get_generator",
    "register_embedding_provider",
    "register_generation_provider",
    "resolve_embeddings",
    "resolve_generator",
]
