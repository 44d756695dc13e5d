"""Issue intelligence services."""

from issue_intelligence.services.duplicates import (
    DuplicateDetectionService,
    DuplicateThresholds,
)
from issue_intelligence.services.enrichment import IssueEnrichmentService
from issue_intelligence.services.labels import (
    LabelSuggestionConfig,
    LabelSuggestionService,
    LabelThresholds,
)
from issue_intelligence.services.related import (
    RelatedIssueConfig,
    RelatedIssueLinkingService,
)

__all__ = [
    "DuplicateDetectionService",
    "DuplicateThresholds",
    "IssueEnrichmentService",
    "LabelSuggestionConfig",
    "LabelSuggestionService",
    "LabelThresholds",
    "RelatedIssueConfig",
    "RelatedIssueLinkingService",
]
