"""Issue intelligence data models.

Inputs and results are plain dataclasses so they can be passed around
without provider dependencies and serialized with ``dataclasses.asdict``.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

ConfidenceTier = Literal["high", "medium", "low"]
RelationshipType = Literal["semantic", "dependency", "component"]
DependencySubType = Literal["blocks", "blocked_by", "related_to"]
DuplicateMethodology = Literal["embedding", "keyword-fallback"]
LabelMethodology = Literal["ai", "keyword-fallback"]


@dataclass
class IssueContent:
    """An issue supplied by the caller. Never persisted."""

    id: str
    title: str
    body: str = ""
    labels: list[str] = field(default_factory=list)
    number: int | None = None
    state: Literal["open", "closed"] = "open"

    @property
    def text(self) -> str:
        """Title and body joined the way they are embedded."""
        return f"{self.title}\n\n{self.body or ''}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IssueContent":
        """Create from a dictionary (e.g. parsed JSON), tolerating missing optionals."""
        labels = data.get("labels") or []
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            body=data.get("body") or "",
            labels=[
                label["name"] if isinstance(label, dict) else str(label)
                for label in labels
            ],
            number=data.get("number"),
            state=data.get("state", "open"),
        )


@dataclass
class RepositoryLabel:
    """A label that already exists in the repository."""

    name: str
    description: str | None = None
    color: str | None = None


@dataclass
class LabeledIssue:
    """A historically labeled issue, used as a weak labeling signal."""

    title: str
    labels: list[str] = field(default_factory=list)


@dataclass
class SectionConfidence:
    """Confidence for one judgment, on a 0-100 scale."""

    score: int
    tier: ConfidenceTier
    factors: dict[str, float]
    reasoning: str
    needs_review: bool
    clarifying_questions: list[str] = field(default_factory=list)


@dataclass
class DuplicateCandidate:
    """One possible duplicate of the candidate issue."""

    issue_id: str
    similarity: float
    tier: ConfidenceTier
    title: str = ""
    number: int | None = None
    reasoning: str = ""


@dataclass
class DuplicateDetectionResult:
    """Tiered duplicate detection output."""

    high_confidence: list[DuplicateCandidate]
    medium_confidence: list[DuplicateCandidate]
    low_confidence: list[DuplicateCandidate]
    methodology: DuplicateMethodology
    confidence: SectionConfidence

    @property
    def all_candidates(self) -> list[DuplicateCandidate]:
        return self.high_confidence + self.medium_confidence + self.low_confidence


@dataclass
class IssueRelationship:
    """One edge between the source issue and a target issue."""

    source_id: str
    target_id: str
    relationship_type: RelationshipType
    confidence: float
    reasoning: str
    sub_type: DependencySubType | None = None
    target_title: str = ""
    target_number: int | None = None

    @property
    def pair_key(self) -> tuple[str, str]:
        """Unordered (source, target) key."""
        return tuple(sorted((self.source_id, self.target_id)))  # type: ignore[return-value]


@dataclass
class RelatedIssueResult:
    """Relationships plus an overall confidence for the analysis."""

    relationships: list[IssueRelationship]
    confidence: SectionConfidence


@dataclass
class LabelSuggestion:
    """One label recommendation."""

    label: str
    is_existing: bool
    confidence: float
    rationale: str
    matched_patterns: list[str] = field(default_factory=list)


@dataclass
class NewLabelProposal:
    """A label that does not exist yet but is worth creating."""

    name: str
    description: str
    color: str
    rationale: str


@dataclass
class LabelSuggestionResult:
    """Tiered label suggestions and separate new-label proposals."""

    high: list[LabelSuggestion]
    medium: list[LabelSuggestion]
    low: list[LabelSuggestion]
    new_label_proposals: list[NewLabelProposal]
    confidence: SectionConfidence
    methodology: LabelMethodology = "ai"

    @property
    def all_suggestions(self) -> list[LabelSuggestion]:
        return self.high + self.medium + self.low


@dataclass
class EnrichedSection:
    """One generated section with its confidence."""

    content: str
    confidence: SectionConfidence


SECTION_NAMES = ("problem", "solution", "context", "impact", "acceptance_criteria")

SECTION_TITLES = {
    "problem": "Problem",
    "solution": "Solution",
    "context": "Context",
    "impact": "Impact",
    "acceptance_criteria": "Acceptance Criteria",
}


@dataclass
class EnrichedSections:
    """The five structured sections of an enriched issue."""

    problem: EnrichedSection | None = None
    solution: EnrichedSection | None = None
    context: EnrichedSection | None = None
    impact: EnrichedSection | None = None
    acceptance_criteria: EnrichedSection | None = None

    def items(self) -> list[tuple[str, EnrichedSection]]:
        """Present sections in canonical order."""
        return [
            (name, getattr(self, name))
            for name in SECTION_NAMES
            if getattr(self, name) is not None
        ]


@dataclass
class EnrichmentContext:
    """Optional project context for enrichment."""

    project_context: str | None = None
    repository_labels: list[str] = field(default_factory=list)


@dataclass
class EnrichedIssue:
    """Full enrichment output."""

    preserve_original: bool
    sections: EnrichedSections
    suggested_labels: list[str]
    overall_confidence: SectionConfidence
    original_title: str = ""
    original_body: str = ""
    enriched_body: str = ""
    uncertain_areas: list[str] = field(default_factory=list)
