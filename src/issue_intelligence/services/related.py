"""Related issue linking.

Three independent detectors propose edges between a source issue and the
rest of the corpus:

- semantic: embedding cosine similarity above a threshold
- dependency: cue phrases and ``#N`` references, refined by the generator
- component: overlap of the two issues' label sets

Edges for the same unordered pair are merged by keeping the most
confident one. A failing detector contributes nothing; the others still run.
"""

import logging
import re
from dataclasses import dataclass, replace

from issue_intelligence.analysis.keywords import jaccard_similarity, keyword_overlap
from issue_intelligence.cache import EmbeddingCache
from issue_intelligence.confidence import ConfidenceScorer
from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import (
    DependencySubType,
    IssueContent,
    IssueRelationship,
    RelatedIssueResult,
    SectionConfidence,
)
from issue_intelligence.providers.embeddings import BaseEmbeddings
from issue_intelligence.providers.generation import BaseGenerator
from issue_intelligence.services.prompts import (
    DEPENDENCY_SYSTEM_PROMPT,
    format_dependency_prompt,
)
from issue_intelligence.services.schemas import DependencyAnalysisOutput
from issue_intelligence.services.similarity import bounded_similarity, embed_issues

logger = logging.getLogger(__name__)

# Cue phrases meaning "the source must happen first"
BLOCKS_CUES = (
    "blocks",
    "enables",
    "unblocks",
    "required for",
    "prerequisite for",
    "needed for",
    "must be done before",
)

# Cue phrases meaning "the source waits on the other issue"
BLOCKED_BY_CUES = (
    "requires",
    "depends on",
    "blocked by",
    "waiting for",
    "needs",
    "prerequisite",
    "cannot start until",
)

# Longest phrase first so "prerequisite for" wins over "prerequisite"
_CUE_PATTERN = re.compile(
    r"\b("
    + "|".join(
        re.escape(cue) for cue in sorted(BLOCKS_CUES + BLOCKED_BY_CUES, key=len, reverse=True)
    )
    + r")\b"
)

_SENTENCE_BREAK = re.compile(r"[.!?\n]")

EXPLICIT_REFERENCE_CONFIDENCE = 0.6

# Implicit dependency: a cue phrase plus enough keyword overlap
IMPLICIT_OVERLAP_THRESHOLD = 0.4
IMPLICIT_BASE_CONFIDENCE = 0.3
IMPLICIT_OVERLAP_WEIGHT = 0.2

# Applied to keyword-only dependency results
KEYWORD_ONLY_CONFIDENCE_FACTOR = 0.8

COMPONENT_CONFIDENCE_BOOST = 0.1

# Candidate count at which input completeness saturates
CANDIDATE_SATURATION = 50

# Self-assessment when an enabled AI stage was missing or failed
DEGRADED_SELF_ASSESSMENT = 0.4

_REVERSED: dict[DependencySubType, DependencySubType] = {
    "blocks": "blocked_by",
    "blocked_by": "blocks",
    "related_to": "related_to",
}


@dataclass
class RelatedIssueConfig:
    """Detector toggles and cut points for related issue linking."""

    include_semantic: bool = True
    include_dependencies: bool = True
    include_components: bool = True
    semantic_threshold: float = 0.75
    component_threshold: float = 0.3
    min_confidence: float = 0.0
    max_relationships: int = 20


def _cue_direction(cue: str) -> DependencySubType:
    return "blocks" if cue in BLOCKS_CUES else "blocked_by"


def _reference_pattern(number: int) -> re.Pattern:
    return re.compile(rf"(?:#|\bissue\s*#?){number}\b", re.IGNORECASE)


def _cue_before(text: str, position: int) -> str | None:
    """Nearest cue phrase in the same sentence, before ``position``."""
    sentence_start = 0
    for match in _SENTENCE_BREAK.finditer(text, 0, position):
        sentence_start = match.end()

    cues = _CUE_PATTERN.findall(text, sentence_start, position)
    return cues[-1] if cues else None


def find_reference(text: str, number: int) -> tuple[int, DependencySubType, str | None] | None:
    """Find an explicit reference to issue ``number`` in ``text``.

    Returns:
        (position, sub_type, cue) for the first reference, or None. The
        sub-type is read from the nearest preceding cue phrase and is
        ``related_to`` when there is none.
    """
    lowered = text.lower()
    match = _reference_pattern(number).search(lowered)
    if match is None:
        return None

    cue = _cue_before(lowered, match.start())
    sub_type: DependencySubType = _cue_direction(cue) if cue else "related_to"
    return match.start(), sub_type, cue


def has_dependency_cue(text: str) -> bool:
    return _CUE_PATTERN.search(text.lower()) is not None


class RelatedIssueLinkingService:
    """Find issues related to a source issue."""

    def __init__(
        self,
        embeddings: BaseEmbeddings | None,
        generator: BaseGenerator | None,
        cache: EmbeddingCache,
        config: RelatedIssueConfig | None = None,
        scorer: ConfidenceScorer | None = None,
    ):
        self.embeddings = embeddings
        self.generator = generator
        self.cache = cache
        self.config = config or RelatedIssueConfig()
        self.scorer = scorer or ConfidenceScorer()

    async def find_related_issues(
        self,
        source: IssueContent,
        corpus: list[IssueContent],
        config: RelatedIssueConfig | None = None,
    ) -> list[IssueRelationship]:
        """Find related issues.

        Args:
            source: The issue to find relations for
            corpus: Issues to consider (the source itself is skipped)
            config: Override for the service configuration

        Returns:
            Relationships sorted by confidence, highest first, at most one per pair

        Raises:
            InvalidIssueInputError: If the corpus is empty
        """
        result = await self.analyze(source, corpus, config)
        return result.relationships

    async def analyze(
        self,
        source: IssueContent,
        corpus: list[IssueContent],
        config: RelatedIssueConfig | None = None,
    ) -> RelatedIssueResult:
        """Find related issues and score the analysis as a whole."""
        if not corpus:
            raise InvalidIssueInputError("Corpus must contain at least one issue")

        config = config or self.config
        candidates = [issue for issue in corpus if issue.id != source.id]
        if not candidates:
            return RelatedIssueResult(
                relationships=[],
                confidence=self.scorer.fixed(
                    100,
                    {"input_completeness": 1.0, "ai_self_assessment": 1.0, "pattern_match": 1.0},
                    "No candidate issues to analyze.",
                    needs_review=False,
                ),
            )

        detected: list[IssueRelationship] = []
        strategies_used = 0
        # AI stages that were enabled but did not run
        degraded: list[str] = []

        if config.include_semantic:
            semantic = None
            if self.embeddings is not None:
                semantic = await self._detect_semantic(source, candidates, config)
            if semantic is None:
                degraded.append("semantic")
            else:
                detected.extend(semantic)
                strategies_used += 1

        if config.include_dependencies:
            dependencies, classified = await self._detect_dependencies(source, candidates)
            detected.extend(dependencies)
            strategies_used += 1
            if not classified:
                degraded.append("dependency classification")

        if config.include_components:
            detected.extend(self._detect_components(source, candidates, config))
            strategies_used += 1

        relationships = self.merge(detected)
        relationships = [r for r in relationships if r.confidence >= config.min_confidence]
        relationships.sort(key=lambda r: r.confidence, reverse=True)
        relationships = relationships[: config.max_relationships]

        logger.info(
            f"Found {len(relationships)} related issues for {source.id} "
            f"({strategies_used} detectors, {len(candidates)} candidates)"
        )

        return RelatedIssueResult(
            relationships=relationships,
            confidence=self._confidence(
                len(candidates), len(relationships), strategies_used, degraded
            ),
        )

    @staticmethod
    def merge(relationships: list[IssueRelationship]) -> list[IssueRelationship]:
        """Keep the most confident edge per unordered pair.

        On equal confidence the edge seen first wins.
        """
        best: dict[tuple[str, str], IssueRelationship] = {}
        for relationship in relationships:
            key = relationship.pair_key
            current = best.get(key)
            if current is None or relationship.confidence > current.confidence:
                best[key] = relationship
        return list(best.values())

    async def _detect_semantic(
        self,
        source: IssueContent,
        candidates: list[IssueContent],
        config: RelatedIssueConfig,
    ) -> list[IssueRelationship] | None:
        """Embedding similarity detector. Returns None if the provider failed."""
        try:
            vectors = await embed_issues(self.embeddings, self.cache, [source, *candidates])
            source_vector = vectors[source.id]
            similarities = [
                (
                    candidate,
                    bounded_similarity(
                        self.embeddings.cosine_similarity(source_vector, vectors[candidate.id])
                    ),
                )
                for candidate in candidates
            ]
        except Exception as e:
            logger.warning(f"Semantic relation detection failed: {e}")
            return None

        relationships = []
        for candidate, similarity in similarities:
            if similarity >= config.semantic_threshold:
                relationships.append(
                    IssueRelationship(
                        source_id=source.id,
                        target_id=candidate.id,
                        relationship_type="semantic",
                        confidence=similarity,
                        reasoning=(
                            f"{similarity * 100:.0f}% semantic similarity - "
                            "similar topic or feature area"
                        ),
                        target_title=candidate.title,
                        target_number=candidate.number,
                    )
                )
        return relationships

    async def _detect_dependencies(
        self, source: IssueContent, candidates: list[IssueContent]
    ) -> tuple[list[IssueRelationship], bool]:
        """Returns the edges and whether the AI stage classified them."""
        found = self._scan_dependency_keywords(source, candidates)
        if not found:
            return [], True

        if self.generator is None:
            logger.debug("No generator, keeping keyword dependency results")
            return [self._discounted(r) for r in found], False

        try:
            return await self._classify_dependencies(source, candidates, found), True
        except Exception as e:
            logger.warning(f"Dependency classification failed, using keyword results: {e}")
            return [self._discounted(r) for r in found], False

    def _scan_dependency_keywords(
        self, source: IssueContent, candidates: list[IssueContent]
    ) -> list[IssueRelationship]:
        """Keyword stage: explicit references and cue phrases."""
        source_text = source.text
        source_has_cue = has_dependency_cue(source_text)
        relationships = []

        for candidate in candidates:
            relationship = None

            if candidate.number is not None:
                reference = find_reference(source_text, candidate.number)
                if reference is not None:
                    _, sub_type, cue = reference
                    relationship = self._dependency(
                        source,
                        candidate,
                        sub_type,
                        EXPLICIT_REFERENCE_CONFIDENCE,
                        f"Source issue references #{candidate.number}"
                        + (f" after '{cue}'" if cue else ""),
                    )

            if relationship is None and source.number is not None:
                reference = find_reference(candidate.text, source.number)
                if reference is not None:
                    _, sub_type, cue = reference
                    relationship = self._dependency(
                        source,
                        candidate,
                        _REVERSED[sub_type],
                        EXPLICIT_REFERENCE_CONFIDENCE,
                        f"Candidate issue references #{source.number}"
                        + (f" after '{cue}'" if cue else ""),
                    )

            if relationship is None and source_has_cue:
                overlap = keyword_overlap(source_text, candidate.text)
                if overlap > IMPLICIT_OVERLAP_THRESHOLD:
                    relationship = self._dependency(
                        source,
                        candidate,
                        "related_to",
                        IMPLICIT_BASE_CONFIDENCE + IMPLICIT_OVERLAP_WEIGHT * overlap,
                        f"Potential dependency based on keyword overlap "
                        f"({overlap * 100:.0f}% overlap)",
                    )

            if relationship is not None:
                relationships.append(relationship)

        return relationships

    async def _classify_dependencies(
        self,
        source: IssueContent,
        candidates: list[IssueContent],
        found: list[IssueRelationship],
    ) -> list[IssueRelationship]:
        """AI stage: refine sub-type and confidence of keyword pairs."""
        by_id = {candidate.id: candidate for candidate in candidates}
        pair_candidates = [by_id[r.target_id] for r in found]

        output = await self.generator.generate_structured(
            DEPENDENCY_SYSTEM_PROMPT,
            format_dependency_prompt(source, pair_candidates),
            DependencyAnalysisOutput,
        )
        classified = {item.target_id: item for item in output.relationships}

        refined = []
        for relationship in found:
            item = classified.get(relationship.target_id)
            if item is None:
                refined.append(self._discounted(relationship))
                continue
            refined.append(
                IssueRelationship(
                    source_id=relationship.source_id,
                    target_id=relationship.target_id,
                    relationship_type="dependency",
                    confidence=round(item.confidence, 6),
                    reasoning=item.reasoning or relationship.reasoning,
                    sub_type=item.sub_type,
                    target_title=relationship.target_title,
                    target_number=relationship.target_number,
                )
            )
        return refined

    def _detect_components(
        self,
        source: IssueContent,
        candidates: list[IssueContent],
        config: RelatedIssueConfig,
    ) -> list[IssueRelationship]:
        source_labels = {label.lower() for label in source.labels}
        if not source_labels:
            return []

        relationships = []
        for candidate in candidates:
            candidate_labels = {label.lower() for label in candidate.labels}
            overlap = jaccard_similarity(source_labels, candidate_labels)
            if overlap > 0 and overlap >= config.component_threshold:
                shared = sorted(source_labels & candidate_labels)
                relationships.append(
                    IssueRelationship(
                        source_id=source.id,
                        target_id=candidate.id,
                        relationship_type="component",
                        confidence=round(min(1.0, overlap + COMPONENT_CONFIDENCE_BOOST), 6),
                        reasoning=f"Shared labels: {', '.join(shared)}",
                        target_title=candidate.title,
                        target_number=candidate.number,
                    )
                )
        return relationships

    @staticmethod
    def _dependency(
        source: IssueContent,
        candidate: IssueContent,
        sub_type: DependencySubType,
        confidence: float,
        reasoning: str,
    ) -> IssueRelationship:
        return IssueRelationship(
            source_id=source.id,
            target_id=candidate.id,
            relationship_type="dependency",
            confidence=round(confidence, 6),
            reasoning=reasoning,
            sub_type=sub_type,
            target_title=candidate.title,
            target_number=candidate.number,
        )

    @staticmethod
    def _discounted(relationship: IssueRelationship) -> IssueRelationship:
        return IssueRelationship(
            source_id=relationship.source_id,
            target_id=relationship.target_id,
            relationship_type=relationship.relationship_type,
            confidence=round(relationship.confidence * KEYWORD_ONLY_CONFIDENCE_FACTOR, 6),
            reasoning=f"{relationship.reasoning} (keyword match only)",
            sub_type=relationship.sub_type,
            target_title=relationship.target_title,
            target_number=relationship.target_number,
        )

    def _confidence(
        self,
        candidate_count: int,
        found: int,
        strategies_used: int,
        degraded: list[str],
    ) -> SectionConfidence:
        ratio = found / candidate_count if candidate_count else 0.0
        if degraded:
            self_assessment = DEGRADED_SELF_ASSESSMENT
        else:
            self_assessment = 0.8 if strategies_used >= 2 else 0.6
        factors = {
            "input_completeness": min(1.0, candidate_count / CANDIDATE_SATURATION) * 0.8 + 0.2,
            "ai_self_assessment": self_assessment,
            "pattern_match": 0.8 if 0 < ratio < 0.5 else 0.5,
        }
        reasoning = (
            f"Analyzed {candidate_count} candidates using {strategies_used} "
            f"detection strategies. Found {found} relationships."
        )
        if degraded:
            reasoning += f" Unavailable: {', '.join(degraded)}."

        confidence = self.scorer.score(
            factors, reasoning=reasoning, section_name="related issues"
        )
        if degraded:
            confidence = replace(confidence, needs_review=True)
        return confidence
