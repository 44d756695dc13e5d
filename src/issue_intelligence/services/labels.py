"""Label suggestions for issues.

The AI path asks the generator to pick labels from the repository catalog;
the fallback matches label names, descriptions and a small hint vocabulary
against the issue's keywords. Existing labels are always preferred, and the
fallback never proposes new labels.
"""

import logging
import re
from dataclasses import dataclass, field

from issue_intelligence.analysis.keywords import (
    extract_keywords,
    fuzzy_match,
    jaccard_similarity,
)
from issue_intelligence.confidence import FALLBACK_SCORE, ConfidenceScorer
from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import (
    IssueContent,
    LabeledIssue,
    LabelSuggestion,
    LabelSuggestionResult,
    NewLabelProposal,
    RepositoryLabel,
)
from issue_intelligence.providers.generation import BaseGenerator
from issue_intelligence.services.prompts import (
    LABEL_SUGGESTION_SYSTEM_PROMPT,
    format_label_prompt,
)
from issue_intelligence.services.schemas import LabelSuggestionOutput

logger = logging.getLogger(__name__)

DEFAULT_PROPOSAL_COLOR = "ededed"

# Words that commonly signal a label, keyed by canonical label name
LABEL_HINTS: dict[str, tuple[str, ...]] = {
    "bug": ("bug", "crash", "error", "broken", "fail", "exception", "regression", "wrong", "unresponsive"),
    "ui": ("button", "click", "screen", "layout", "display", "page", "modal", "style", "render", "dialog"),
    "docs": ("documentation", "readme", "typo", "guide", "tutorial", "docs", "docstring"),
    "performance": ("slow", "latency", "memory", "performance", "timeout", "lag", "speed", "cpu"),
    "security": ("security", "vulnerability", "xss", "csrf", "injection", "exploit", "leak", "cve"),
    "enhancement": ("feature", "support", "improve", "request", "enhancement", "allow", "option"),
    "test": ("test", "coverage", "flaky", "pytest", "assertion", "fixture"),
    "build": ("build", "compile", "pipeline", "workflow", "deploy", "docker", "makefile"),
    "dependencies": ("dependency", "dependencies", "upgrade", "bump", "version", "package"),
    "question": ("question", "help", "clarify", "unclear", "wondering", "explain"),
}

# Common label names that share a hint vocabulary
LABEL_ALIASES = {
    "defect": "bug",
    "frontend": "ui",
    "ux": "ui",
    "documentation": "docs",
    "doc": "docs",
    "perf": "performance",
    "feature": "enhancement",
    "feature-request": "enhancement",
    "tests": "test",
    "testing": "test",
    "ci": "build",
    "build/ci": "build",
    "dependency": "dependencies",
    "deps": "dependencies",
}

HINT_BASE_SCORE = 0.6
HINT_STEP = 0.1

HISTORY_BOOST = 0.1
HISTORY_TITLE_OVERLAP = 0.3

# Description length at which input completeness saturates
DESCRIPTION_SATURATION = 300


@dataclass(frozen=True)
class LabelThresholds:
    """Confidence cut points for label tiers (0-1)."""

    high: float = 0.8
    medium: float = 0.5

    def __post_init__(self):
        if not 0.0 <= self.medium <= self.high <= 1.0:
            raise ValueError(
                f"Invalid label thresholds: need 0 <= medium ({self.medium}) "
                f"<= high ({self.high}) <= 1"
            )


@dataclass
class LabelSuggestionConfig:
    """Label suggestion policy."""

    thresholds: LabelThresholds = field(default_factory=LabelThresholds)
    max_suggestions: int = 10
    include_new_proposals: bool = True
    fallback_confidence_cap: float = 0.8
    fallback_min_score: float = 0.3
    history_sample: int = 10


def hint_key(label_name: str) -> str | None:
    """Map a label name such as ``type: bug`` or ``kind/documentation`` to a hint key."""
    name = re.split(r"[:/]", label_name.lower())[-1].strip()
    name = LABEL_ALIASES.get(name, LABEL_ALIASES.get(label_name.lower().strip(), name))
    return name if name in LABEL_HINTS else None


class LabelSuggestionService:
    """Suggest labels for an issue from the repository's label catalog."""

    def __init__(
        self,
        generator: BaseGenerator | None,
        config: LabelSuggestionConfig | None = None,
        scorer: ConfidenceScorer | None = None,
    ):
        self.generator = generator
        self.config = config or LabelSuggestionConfig()
        self.scorer = scorer or ConfidenceScorer()

    async def suggest_labels(
        self,
        issue: IssueContent,
        existing_labels: list[RepositoryLabel],
        issue_history: list[LabeledIssue] | None = None,
    ) -> LabelSuggestionResult:
        """Suggest labels for ``issue``.

        Args:
            issue: The issue to label
            existing_labels: The repository's label catalog
            issue_history: Previously labeled issues (a sample is used)

        Returns:
            LabelSuggestionResult with tiered suggestions and new-label proposals

        Raises:
            InvalidIssueInputError: If the issue has no title
        """
        if not issue.title or not issue.title.strip():
            raise InvalidIssueInputError("Issue must have a title")

        history = (issue_history or [])[: self.config.history_sample]

        if self.generator is not None:
            try:
                output = await self.generator.generate_structured(
                    LABEL_SUGGESTION_SYSTEM_PROMPT,
                    format_label_prompt(issue, existing_labels, history, self.config.history_sample),
                    LabelSuggestionOutput,
                )
                return self._from_generated(output, issue, existing_labels)
            except Exception as e:
                logger.warning(f"Label suggestion generation failed, using keyword fallback: {e}")
        else:
            logger.debug("No generator, using keyword label matching")

        return self._fallback(issue, existing_labels, history)

    def _from_generated(
        self,
        output: LabelSuggestionOutput,
        issue: IssueContent,
        existing_labels: list[RepositoryLabel],
    ) -> LabelSuggestionResult:
        catalog = {label.name.lower(): label for label in existing_labels}

        suggestions: dict[str, LabelSuggestion] = {}
        proposals: dict[str, NewLabelProposal] = {}

        for generated in output.suggestions:
            key = generated.label.strip().lower()
            if not key:
                continue

            existing = catalog.get(key)
            if existing is None:
                # Only catalog labels are tiered; anything else is a proposal
                if key not in proposals:
                    proposals[key] = NewLabelProposal(
                        name=generated.label.strip(),
                        description=generated.rationale,
                        color=DEFAULT_PROPOSAL_COLOR,
                        rationale=generated.rationale,
                    )
                continue

            current = suggestions.get(key)
            if current is None or generated.confidence > current.confidence:
                suggestions[key] = LabelSuggestion(
                    label=existing.name,
                    is_existing=True,
                    confidence=round(generated.confidence, 6),
                    rationale=generated.rationale,
                    matched_patterns=list(generated.matched_patterns),
                )

        for proposal in output.new_label_proposals:
            key = proposal.name.strip().lower()
            if not key or key in catalog or key in proposals:
                continue
            proposals[key] = NewLabelProposal(
                name=proposal.name.strip(),
                description=proposal.description,
                color=proposal.color,
                rationale=proposal.rationale,
            )

        ranked = list(suggestions.values())
        avg_confidence = (
            sum(s.confidence for s in ranked) / len(ranked) if ranked else 0.5
        )
        factors = {
            "input_completeness": min(1.0, len(issue.body or "") / DESCRIPTION_SATURATION),
            "ai_self_assessment": output.overall_confidence,
            "pattern_match": avg_confidence,
        }
        confidence = self.scorer.score(
            factors,
            reasoning=(
                f"Generated {len(ranked)} label suggestions from "
                f"{len(existing_labels)} available labels"
            ),
            section_name="labels",
        )

        high, medium, low = self._tier(ranked)
        return LabelSuggestionResult(
            high=high,
            medium=medium,
            low=low,
            new_label_proposals=(
                list(proposals.values()) if self.config.include_new_proposals else []
            ),
            confidence=confidence,
            methodology="ai",
        )

    def _fallback(
        self,
        issue: IssueContent,
        existing_labels: list[RepositoryLabel],
        history: list[LabeledIssue],
    ) -> LabelSuggestionResult:
        suggestions = self.keyword_match_labels(issue, existing_labels, history)
        high, medium, low = self._tier(suggestions)

        factors = {
            "input_completeness": min(1.0, len(issue.body or "") / DESCRIPTION_SATURATION),
            "ai_self_assessment": 0.4,
            "pattern_match": 0.3,
        }
        return LabelSuggestionResult(
            high=high,
            medium=medium,
            low=low,
            new_label_proposals=[],
            confidence=self.scorer.fixed(
                FALLBACK_SCORE, factors, "AI unavailable, using keyword matching"
            ),
            methodology="keyword-fallback",
        )

    def keyword_match_labels(
        self,
        issue: IssueContent,
        existing_labels: list[RepositoryLabel],
        history: list[LabeledIssue] | None = None,
    ) -> list[LabelSuggestion]:
        """Score catalog labels by keyword, fuzzy and hint matches.

        Returns:
            Suggestions at or above the fallback minimum score, most confident first
        """
        issue_words = extract_keywords(issue.text)
        boosted = self._history_labels(issue, history or [])

        suggestions = []
        for label in existing_labels:
            label_words = extract_keywords(f"{label.name} {label.description or ''}")
            matched = [word for word in sorted(label_words) if fuzzy_match(word, issue_words)]
            keyword_score = len(matched) / len(label_words) if label_words else 0.0

            hint_score = 0.0
            hint_matches: list[str] = []
            key = hint_key(label.name)
            if key is not None:
                hint_matches = [hint for hint in LABEL_HINTS[key] if fuzzy_match(hint, issue_words)]
                if hint_matches:
                    hint_score = HINT_BASE_SCORE + HINT_STEP * (len(hint_matches) - 1)

            score = max(keyword_score, hint_score)
            reasons = []
            if matched:
                reasons.append(f"Keyword match: {', '.join(matched[:3])}")
            if hint_matches:
                reasons.append(f"Common {key} terms: {', '.join(hint_matches[:3])}")
            if label.name.lower() in boosted:
                score += HISTORY_BOOST
                reasons.append("Used on similar past issues")

            score = round(min(self.config.fallback_confidence_cap, score), 6)
            if score < self.config.fallback_min_score or not (matched or hint_matches):
                continue

            suggestions.append(
                LabelSuggestion(
                    label=label.name,
                    is_existing=True,
                    confidence=score,
                    rationale="; ".join(reasons),
                    matched_patterns=matched + [h for h in hint_matches if h not in matched],
                )
            )

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions

    @staticmethod
    def _history_labels(issue: IssueContent, history: list[LabeledIssue]) -> set[str]:
        """Lower-cased labels of past issues whose titles overlap this one."""
        title_words = extract_keywords(issue.title)
        labels: set[str] = set()
        for item in history:
            if jaccard_similarity(title_words, extract_keywords(item.title)) >= HISTORY_TITLE_OVERLAP:
                labels.update(label.lower() for label in item.labels)
        return labels

    def _tier(
        self, suggestions: list[LabelSuggestion]
    ) -> tuple[list[LabelSuggestion], list[LabelSuggestion], list[LabelSuggestion]]:
        """Split into tiers, each sorted descending, limited high-first."""
        thresholds = self.config.thresholds
        ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
        ranked = ranked[: self.config.max_suggestions]

        high = [s for s in ranked if s.confidence >= thresholds.high]
        medium = [s for s in ranked if thresholds.medium <= s.confidence < thresholds.high]
        low = [s for s in ranked if s.confidence < thresholds.medium]
        return high, medium, low
