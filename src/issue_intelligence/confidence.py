"""Confidence scoring shared by all issue intelligence services.

Turns named factors (each 0.0-1.0) into a 0-100 score, a tier and a
review flag. Pure computation: no I/O, no state.
"""

from dataclasses import dataclass

from issue_intelligence.models import ConfidenceTier, SectionConfidence

# Factor weights (normalized by their sum)
DEFAULT_WEIGHTS = {
    "input_completeness": 0.3,
    "ai_self_assessment": 0.4,
    "pattern_match": 0.3,
}

# Any single factor below this flags the judgment for review
REVIEW_FACTOR_FLOOR = 0.3

# Score used by every fallback path
FALLBACK_SCORE = 40

MAX_CLARIFYING_QUESTIONS = 5


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Score cut points for confidence tiers (0-100)."""

    high: int = 80
    medium: int = 50


def description_completeness(text: str | None) -> float:
    """Score how complete a free-text description is, by length.

    Returns 0.0-1.0 in coarse steps.
    """
    if not text:
        return 0.0

    length = len(text)
    if length >= 500:
        return 1.0
    if length >= 200:
        return 0.7
    if length >= 100:
        return 0.5
    if length >= 50:
        return 0.3
    return 0.1


def clarifying_questions(
    section_name: str,
    factors: dict[str, float],
    uncertain_areas: list[str] | None = None,
) -> list[str]:
    """Generate follow-up questions for a low-confidence judgment."""
    questions: list[str] = []
    name = section_name.lower()

    if factors.get("input_completeness", 1.0) < 0.5:
        questions.append(f"Can you provide more details about the {name}?")
        questions.append(f"Are there specific examples or use cases for the {name} you can share?")

    if factors.get("pattern_match", 1.0) < 0.5:
        questions.append(f"Does the {name} follow any existing conventions or patterns?")

    for area in uncertain_areas or []:
        questions.append(f"Could you clarify: {area}?")

    return questions[:MAX_CLARIFYING_QUESTIONS]


class ConfidenceScorer:
    """Compute SectionConfidence values from weighted factors."""

    def __init__(
        self,
        thresholds: ConfidenceThresholds | None = None,
        review_factor_floor: float = REVIEW_FACTOR_FLOOR,
    ):
        self.thresholds = thresholds or ConfidenceThresholds()
        self.review_factor_floor = review_factor_floor

    def tier_for(self, score: int | float) -> ConfidenceTier:
        """Map a 0-100 score to its tier."""
        if score >= self.thresholds.high:
            return "high"
        if score >= self.thresholds.medium:
            return "medium"
        return "low"

    def weighted_score(
        self,
        factors: dict[str, float],
        weights: dict[str, float] | None = None,
    ) -> int:
        """Weighted mean of the factors, scaled to 0-100.

        Raises:
            KeyError: If a weighted factor is missing from ``factors``
        """
        weights = weights or DEFAULT_WEIGHTS
        total_weight = sum(weights.values())
        if total_weight <= 0:
            raise ValueError("Factor weights must sum to a positive value")

        weighted_sum = sum(factors[name] * weight for name, weight in weights.items())
        score = round(weighted_sum / total_weight * 100)
        return max(0, min(100, score))

    def score(
        self,
        factors: dict[str, float],
        weights: dict[str, float] | None = None,
        reasoning: str = "",
        section_name: str = "result",
        uncertain_areas: list[str] | None = None,
    ) -> SectionConfidence:
        """Score a set of factors.

        Args:
            factors: Named sub-scores, each 0.0-1.0
            weights: Weight per factor name (defaults to DEFAULT_WEIGHTS)
            reasoning: Human-readable explanation
            section_name: Used in clarifying questions for low tiers
            uncertain_areas: Areas the provider reported as uncertain

        Returns:
            SectionConfidence for the judgment
        """
        value = self.weighted_score(factors, weights)
        tier = self.tier_for(value)
        needs_review = tier == "low" or any(
            factor < self.review_factor_floor for factor in factors.values()
        )
        questions = (
            clarifying_questions(section_name, factors, uncertain_areas)
            if tier == "low"
            else []
        )

        return SectionConfidence(
            score=value,
            tier=tier,
            factors=dict(factors),
            reasoning=reasoning,
            needs_review=needs_review,
            clarifying_questions=questions,
        )

    def fixed(
        self,
        score: int,
        factors: dict[str, float],
        reasoning: str,
        needs_review: bool = True,
    ) -> SectionConfidence:
        """Build a SectionConfidence with a predetermined score."""
        return SectionConfidence(
            score=score,
            tier=self.tier_for(score),
            factors=dict(factors),
            reasoning=reasoning,
            needs_review=needs_review,
        )

    def aggregate(
        self, confidences: list[SectionConfidence], reasoning: str = ""
    ) -> SectionConfidence:
        """Combine several judgments into one by averaging their scores."""
        if not confidences:
            return SectionConfidence(
                score=0,
                tier="low",
                factors={},
                reasoning=reasoning or "Nothing to aggregate",
                needs_review=True,
            )

        value = round(sum(c.score for c in confidences) / len(confidences))
        tier = self.tier_for(value)
        return SectionConfidence(
            score=value,
            tier=tier,
            factors={},
            reasoning=reasoning,
            needs_review=tier == "low" or any(c.needs_review for c in confidences),
        )
