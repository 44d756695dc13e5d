"""Cache-aware embedding of issues and similarity helpers."""

import logging
import math

from issue_intelligence.cache import EmbeddingCache
from issue_intelligence.exceptions import ProviderResponseError
from issue_intelligence.models import IssueContent
from issue_intelligence.providers.embeddings import BaseEmbeddings

logger = logging.getLogger(__name__)

SIMILARITY_PRECISION = 6


async def embed_issues(
    embeddings: BaseEmbeddings,
    cache: EmbeddingCache,
    issues: list[IssueContent],
) -> dict[str, list[float]]:
    """Get a vector for every issue, embedding only cache misses.

    All misses go to the provider in a single ``embed_batch`` call and the
    new vectors are written back to the cache.

    Returns:
        Mapping of issue ID to vector
    """
    vectors: dict[str, list[float]] = {}
    missing: list[tuple[IssueContent, str]] = []
    pending: set[str] = set()

    for issue in issues:
        if issue.id in vectors or issue.id in pending:
            continue
        content_hash = EmbeddingCache.compute_content_hash(issue.title, issue.body)
        cached = cache.get(issue.id, content_hash)
        if cached is not None:
            vectors[issue.id] = cached
        else:
            missing.append((issue, content_hash))
            pending.add(issue.id)

    logger.debug(f"Embedding cache: {len(vectors)} hits, {len(missing)} misses")

    if missing:
        new_vectors = await embeddings.embed_batch([issue.text for issue, _ in missing])
        if len(new_vectors) != len(missing):
            raise ProviderResponseError(
                f"Returned {len(new_vectors)} vectors for {len(missing)} texts",
                provider=embeddings.provider_name,
            )
        for (issue, content_hash), vector in zip(missing, new_vectors):
            cache.put(issue.id, content_hash, vector)
            vectors[issue.id] = vector

    return vectors


def bounded_similarity(value: float) -> float:
    """Clamp a similarity to [0, 1] and round away floating-point noise.

    NaN, from a degenerate provider vector, counts as no similarity.
    """
    if math.isnan(value):
        return 0.0
    return round(max(0.0, min(1.0, value)), SIMILARITY_PRECISION)
