"""Issue intelligence: duplicates, related issues, labels and enrichment."""

from issue_intelligence.engine import IssueIntelligenceEngine
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

__version__ = "0.1.0"

__all__ = [
    "DuplicateDetectionResult",
    "EnrichedIssue",
    "EnrichmentContext",
    "IssueContent",
    "IssueIntelligenceEngine",
    "IssueRelationship",
    "LabeledIssue",
    "LabelSuggestionResult",
    "RepositoryLabel",
]
