"""Issue intelligence engine: one entry point for the four operations."""

import logging

from issue_intelligence.cache import EmbeddingCache
from issue_intelligence.config import Settings, settings
from issue_intelligence.confidence import ConfidenceScorer, ConfidenceThresholds
from issue_intelligence.models import (
    DuplicateDetectionResult,
    EnrichedIssue,
    EnrichmentContext,
    IssueContent,
    IssueRelationship,
    LabeledIssue,
    LabelSuggestionResult,
    RepositoryLabel,
)
from issue_intelligence.providers.embeddings import BaseEmbeddings, resolve_embeddings
from issue_intelligence.providers.generation import BaseGenerator, resolve_generator
from issue_intelligence.services.duplicates import (
    DEFAULT_THRESHOLDS,
    FALLBACK_THRESHOLDS,
    DuplicateDetectionService,
    DuplicateThresholds,
)
from issue_intelligence.services.enrichment import SUBSTANTIAL_LENGTH, IssueEnrichmentService
from issue_intelligence.services.labels import (
    LabelSuggestionConfig,
    LabelSuggestionService,
    LabelThresholds,
)
from issue_intelligence.services.related import RelatedIssueConfig, RelatedIssueLinkingService

logger = logging.getLogger(__name__)


class IssueIntelligenceEngine:
    """Wires providers, one shared embedding cache and the four services.

    Either provider may be None; every operation then runs its fallback path.
    """

    def __init__(
        self,
        embeddings: BaseEmbeddings | None = None,
        generator: BaseGenerator | None = None,
        cache: EmbeddingCache | None = None,
        scorer: ConfidenceScorer | None = None,
        duplicate_thresholds: DuplicateThresholds = DEFAULT_THRESHOLDS,
        fallback_duplicate_thresholds: DuplicateThresholds = FALLBACK_THRESHOLDS,
        max_duplicate_results: int = 10,
        related_config: RelatedIssueConfig | None = None,
        label_config: LabelSuggestionConfig | None = None,
        substantial_length: int = SUBSTANTIAL_LENGTH,
    ):
        self.embeddings = embeddings
        self.generator = generator
        self.cache = cache if cache is not None else EmbeddingCache()
        self.scorer = scorer or ConfidenceScorer()

        self.duplicates = DuplicateDetectionService(
            embeddings,
            self.cache,
            thresholds=duplicate_thresholds,
            fallback_thresholds=fallback_duplicate_thresholds,
            max_results=max_duplicate_results,
            scorer=self.scorer,
        )
        self.related = RelatedIssueLinkingService(
            embeddings, generator, self.cache, config=related_config, scorer=self.scorer
        )
        self.labels = LabelSuggestionService(generator, config=label_config, scorer=self.scorer)
        self.enrichment = IssueEnrichmentService(
            generator, substantial_length=substantial_length, scorer=self.scorer
        )

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        embeddings: BaseEmbeddings | None = None,
        generator: BaseGenerator | None = None,
    ) -> "IssueIntelligenceEngine":
        """Build an engine from application settings.

        Providers not passed explicitly are resolved from configuration;
        an unconfigured provider is left as None.
        """
        config = config or settings

        if embeddings is None:
            embeddings = resolve_embeddings(config.EMBEDDING_PROVIDER or None)
        if generator is None:
            generator = resolve_generator(config.LLM_PROVIDER or None)

        return cls(
            embeddings=embeddings,
            generator=generator,
            cache=EmbeddingCache(
                ttl_seconds=config.EMBEDDING_CACHE_TTL_SECONDS,
                max_size=config.EMBEDDING_CACHE_MAX_SIZE,
            ),
            scorer=ConfidenceScorer(
                ConfidenceThresholds(
                    high=config.CONFIDENCE_HIGH_SCORE,
                    medium=config.CONFIDENCE_MEDIUM_SCORE,
                )
            ),
            duplicate_thresholds=DuplicateThresholds(
                high=config.DUPLICATE_HIGH_THRESHOLD,
                medium=config.DUPLICATE_MEDIUM_THRESHOLD,
            ),
            fallback_duplicate_thresholds=DuplicateThresholds(
                high=config.DUPLICATE_FALLBACK_HIGH_THRESHOLD,
                medium=config.DUPLICATE_FALLBACK_MEDIUM_THRESHOLD,
            ),
            max_duplicate_results=config.DUPLICATE_MAX_RESULTS,
            related_config=RelatedIssueConfig(
                semantic_threshold=config.RELATED_SEMANTIC_THRESHOLD,
                component_threshold=config.RELATED_COMPONENT_THRESHOLD,
                max_relationships=config.RELATED_MAX_RELATIONSHIPS,
            ),
            label_config=LabelSuggestionConfig(
                thresholds=LabelThresholds(
                    high=config.LABEL_HIGH_THRESHOLD,
                    medium=config.LABEL_MEDIUM_THRESHOLD,
                ),
                max_suggestions=config.LABEL_MAX_SUGGESTIONS,
            ),
            substantial_length=config.ENRICHMENT_SUBSTANTIAL_LENGTH,
        )

    async def enrich_issue(
        self, issue: IssueContent, context: EnrichmentContext | None = None
    ) -> EnrichedIssue:
        """Restructure an issue into five confidence-scored sections."""
        return await self.enrichment.enrich_issue(issue, context)

    async def suggest_labels(
        self,
        issue: IssueContent,
        existing_labels: list[RepositoryLabel],
        issue_history: list[LabeledIssue] | None = None,
    ) -> LabelSuggestionResult:
        """Suggest labels from the repository catalog."""
        return await self.labels.suggest_labels(issue, existing_labels, issue_history)

    async def detect_duplicates(
        self,
        candidate: IssueContent,
        corpus: list[IssueContent],
        thresholds: DuplicateThresholds | None = None,
    ) -> DuplicateDetectionResult:
        """Find likely duplicates of an issue."""
        return await self.duplicates.detect_duplicates(candidate, corpus, thresholds)

    async def find_related_issues(
        self,
        issue: IssueContent,
        corpus: list[IssueContent],
        config: RelatedIssueConfig | None = None,
    ) -> list[IssueRelationship]:
        """Find semantic, dependency and component relationships."""
        return await self.related.find_related_issues(issue, corpus, config)

    def provider_status(self) -> dict[str, str | None]:
        """Names of the active providers (None when running on fallbacks)."""
        return {
            "embeddings": self.embeddings.provider_name if self.embeddings else None,
            "generator": self.generator.provider_name if self.generator else None,
        }
