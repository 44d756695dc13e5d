"""Duplicate issue detection.

Compares a candidate issue against a corpus using embedding cosine
similarity, or keyword Jaccard similarity when no embedding provider is
available or it fails. Candidates are split into confidence tiers.
"""

import dataclasses
import logging
from dataclasses import dataclass

from issue_intelligence.analysis.keywords import extract_keywords, jaccard_similarity
from issue_intelligence.cache import EmbeddingCache
from issue_intelligence.confidence import ConfidenceScorer
from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import (
    ConfidenceTier,
    DuplicateCandidate,
    DuplicateDetectionResult,
    DuplicateMethodology,
    IssueContent,
    SectionConfidence,
)
from issue_intelligence.providers.embeddings import BaseEmbeddings
from issue_intelligence.services.similarity import bounded_similarity, embed_issues

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 10

# Self-assessment factor per methodology
EMBEDDING_SELF_ASSESSMENT = 0.85
FALLBACK_SELF_ASSESSMENT = 0.4

# Corpus size at which input completeness saturates
CORPUS_SATURATION = 100


@dataclass(frozen=True)
class DuplicateThresholds:
    """Similarity cut points for duplicate tiers (0-1)."""

    high: float = 0.92
    medium: float = 0.75

    def __post_init__(self):
        if not 0.0 <= self.medium <= self.high <= 1.0:
            raise ValueError(
                f"Invalid duplicate thresholds: need 0 <= medium ({self.medium}) "
                f"<= high ({self.high}) <= 1"
            )


DEFAULT_THRESHOLDS = DuplicateThresholds(high=0.92, medium=0.75)
FALLBACK_THRESHOLDS = DuplicateThresholds(high=0.8, medium=0.6)


class DuplicateDetectionService:
    """Find likely duplicates of an issue within a corpus."""

    def __init__(
        self,
        embeddings: BaseEmbeddings | None,
        cache: EmbeddingCache,
        thresholds: DuplicateThresholds = DEFAULT_THRESHOLDS,
        fallback_thresholds: DuplicateThresholds = FALLBACK_THRESHOLDS,
        max_results: int = DEFAULT_MAX_RESULTS,
        scorer: ConfidenceScorer | None = None,
    ):
        """Initialize the service.

        Args:
            embeddings: Embedding provider, or None to always use keywords
            cache: Shared embedding cache
            thresholds: Cut points for the embedding path
            fallback_thresholds: Cut points for the keyword path
            max_results: Maximum candidates returned across all tiers
            scorer: Confidence scorer (default cut points if not given)
        """
        self.embeddings = embeddings
        self.cache = cache
        self.thresholds = thresholds
        self.fallback_thresholds = fallback_thresholds
        self.max_results = max_results
        self.scorer = scorer or ConfidenceScorer()

    async def detect_duplicates(
        self,
        candidate: IssueContent,
        corpus: list[IssueContent],
        thresholds: DuplicateThresholds | None = None,
    ) -> DuplicateDetectionResult:
        """Detect duplicates of ``candidate`` in ``corpus``.

        Args:
            candidate: The new issue
            corpus: Existing issues to compare against
            thresholds: Override for the embedding-path cut points

        Returns:
            DuplicateDetectionResult with high and medium tiers populated.
            Matches below the medium threshold are omitted.

        Raises:
            InvalidIssueInputError: If the corpus is empty or the candidate has no title
        """
        if not candidate.title or not candidate.title.strip():
            raise InvalidIssueInputError("Candidate issue must have a title")
        if not corpus:
            raise InvalidIssueInputError("Corpus must contain at least one issue")

        others = [issue for issue in corpus if issue.id != candidate.id]

        if self.embeddings is not None:
            try:
                scored = await self._score_with_embeddings(candidate, others)
                return self._build_result(
                    scored,
                    thresholds or self.thresholds,
                    methodology="embedding",
                    corpus_size=len(others),
                )
            except Exception as e:
                logger.warning(
                    f"Embedding duplicate detection failed, using keyword fallback: {e}"
                )
        else:
            logger.debug("No embedding provider, using keyword duplicate detection")

        scored = self._score_with_keywords(candidate, others)
        return self._build_result(
            scored,
            self.fallback_thresholds,
            methodology="keyword-fallback",
            corpus_size=len(others),
        )

    async def _score_with_embeddings(
        self, candidate: IssueContent, others: list[IssueContent]
    ) -> list[tuple[IssueContent, float]]:
        vectors = await embed_issues(self.embeddings, self.cache, [candidate, *others])
        candidate_vector = vectors[candidate.id]

        return [
            (
                issue,
                bounded_similarity(
                    self.embeddings.cosine_similarity(candidate_vector, vectors[issue.id])
                ),
            )
            for issue in others
        ]

    def _score_with_keywords(
        self, candidate: IssueContent, others: list[IssueContent]
    ) -> list[tuple[IssueContent, float]]:
        candidate_keywords = extract_keywords(candidate.text)
        return [
            (
                issue,
                bounded_similarity(
                    jaccard_similarity(candidate_keywords, extract_keywords(issue.text))
                ),
            )
            for issue in others
        ]

    def _build_result(
        self,
        scored: list[tuple[IssueContent, float]],
        thresholds: DuplicateThresholds,
        methodology: DuplicateMethodology,
        corpus_size: int,
    ) -> DuplicateDetectionResult:
        """Tier scored issues and attach an overall confidence."""
        # sorted() is stable, so ties keep corpus order
        ranked = sorted(scored, key=lambda pair: pair[1], reverse=True)

        high: list[DuplicateCandidate] = []
        medium: list[DuplicateCandidate] = []
        for issue, similarity in ranked:
            if len(high) + len(medium) >= self.max_results:
                break
            if similarity >= thresholds.high:
                tier: ConfidenceTier = "high"
            elif similarity >= thresholds.medium:
                tier = "medium"
            else:
                continue

            entry = DuplicateCandidate(
                issue_id=issue.id,
                similarity=similarity,
                tier=tier,
                title=issue.title,
                number=issue.number,
                reasoning=self._reasoning(similarity, tier, methodology),
            )
            (high if tier == "high" else medium).append(entry)

        return DuplicateDetectionResult(
            high_confidence=high,
            medium_confidence=medium,
            low_confidence=[],
            methodology=methodology,
            confidence=self._confidence(corpus_size, len(high) + len(medium), methodology),
        )

    @staticmethod
    def _reasoning(
        similarity: float, tier: ConfidenceTier, methodology: DuplicateMethodology
    ) -> str:
        percent = f"{similarity * 100:.0f}%"
        if methodology == "keyword-fallback":
            return f"Keyword-based similarity: {percent} overlap in terms"
        if tier == "high":
            return f"{percent} semantic similarity - very likely duplicate"
        return f"{percent} semantic similarity - potential duplicate worth reviewing"

    def _confidence(
        self, corpus_size: int, found: int, methodology: DuplicateMethodology
    ) -> SectionConfidence:
        embedding_path = methodology == "embedding"
        factors = {
            "input_completeness": min(1.0, corpus_size / CORPUS_SATURATION) * 0.8 + 0.2,
            "ai_self_assessment": (
                EMBEDDING_SELF_ASSESSMENT if embedding_path else FALLBACK_SELF_ASSESSMENT
            ),
            "pattern_match": 0.8 if 0 < found < corpus_size * 0.5 else 0.5,
        }
        reasoning = (
            f"Semantic duplicate detection using embeddings. Scanned {corpus_size} issues."
            if embedding_path
            else f"Keyword-based fallback detection (embeddings unavailable). "
            f"Scanned {corpus_size} issues."
        )

        confidence = self.scorer.score(factors, reasoning=reasoning, section_name="duplicate detection")
        if not embedding_path:
            confidence = dataclasses.replace(confidence, needs_review=True)
        return confidence
