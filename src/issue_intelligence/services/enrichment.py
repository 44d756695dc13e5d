"""Issue enrichment: restructure an issue into scored sections."""

import logging

from issue_intelligence.confidence import (
    FALLBACK_SCORE,
    ConfidenceScorer,
    description_completeness,
)
from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import (
    SECTION_NAMES,
    SECTION_TITLES,
    EnrichedIssue,
    EnrichedSection,
    EnrichedSections,
    EnrichmentContext,
    IssueContent,
)
from issue_intelligence.providers.generation import BaseGenerator
from issue_intelligence.services.prompts import (
    ENRICHMENT_SYSTEM_PROMPT,
    format_enrichment_prompt,
)
from issue_intelligence.services.schemas import EnrichmentOutput

logger = logging.getLogger(__name__)

# Body length above which the original text is kept verbatim
SUBSTANTIAL_LENGTH = 200

FALLBACK_PLACEHOLDERS = {
    "solution": "_No proposed solution yet. Describe how this could be fixed._",
    "context": "_Add background: affected components, versions or environment._",
    "impact": "_Describe who is affected and how severely._",
    "acceptance_criteria": "- [ ] _Define how to verify that this issue is resolved._",
}


def content_richness(content: str) -> float:
    """Rough pattern-match factor for a generated section, by length."""
    length = len(content.strip())
    if length >= 100:
        return 0.9
    if length >= 30:
        return 0.6
    return 0.3


def render_enriched_body(
    original_body: str, sections: EnrichedSections, preserve_original: bool
) -> str:
    """Render sections as markdown, below the original body when it is kept."""
    rendered = "\n\n".join(
        f"## {SECTION_TITLES[name]}\n\n{section.content.strip()}"
        for name, section in sections.items()
        if section.content.strip()
    )
    if not preserve_original:
        return rendered
    if not rendered:
        return original_body
    return f"{original_body}\n\n---\n\n{rendered}"


class IssueEnrichmentService:
    """Produce a structured, confidence-scored version of an issue."""

    def __init__(
        self,
        generator: BaseGenerator | None,
        substantial_length: int = SUBSTANTIAL_LENGTH,
        scorer: ConfidenceScorer | None = None,
    ):
        self.generator = generator
        self.substantial_length = substantial_length
        self.scorer = scorer or ConfidenceScorer()

    def should_preserve(self, body: str | None) -> bool:
        return len(body or "") > self.substantial_length

    async def enrich_issue(
        self, issue: IssueContent, context: EnrichmentContext | None = None
    ) -> EnrichedIssue:
        """Enrich an issue.

        Args:
            issue: The issue to enrich
            context: Optional project context and label catalog

        Returns:
            EnrichedIssue; the fallback result when no generator is available
            or generation fails

        Raises:
            InvalidIssueInputError: If the issue has no title
        """
        if not issue.title or not issue.title.strip():
            raise InvalidIssueInputError("Issue must have a title")

        context = context or EnrichmentContext()
        preserve_original = self.should_preserve(issue.body)

        if self.generator is not None:
            try:
                output = await self.generator.generate_structured(
                    ENRICHMENT_SYSTEM_PROMPT,
                    format_enrichment_prompt(
                        issue,
                        preserve_original,
                        project_context=context.project_context,
                        repository_labels=context.repository_labels,
                    ),
                    EnrichmentOutput,
                )
                return self._from_generated(output, issue, context, preserve_original)
            except Exception as e:
                logger.warning(f"Issue enrichment failed, using basic structure: {e}")
        else:
            logger.debug("No generator, using basic issue structure")

        return self._fallback(issue, preserve_original)

    def _from_generated(
        self,
        output: EnrichmentOutput,
        issue: IssueContent,
        context: EnrichmentContext,
        preserve_original: bool,
    ) -> EnrichedIssue:
        completeness = description_completeness(issue.body)
        sections = EnrichedSections()
        self_assessments = []

        for name in SECTION_NAMES:
            generated = getattr(output, name)
            if not generated.content.strip():
                continue

            confidence = self.scorer.score(
                {
                    "input_completeness": completeness,
                    "ai_self_assessment": generated.confidence,
                    "pattern_match": content_richness(generated.content),
                },
                reasoning=f"Generated {SECTION_TITLES[name].lower()} section",
                section_name=SECTION_TITLES[name],
                uncertain_areas=output.uncertain_areas,
            )
            setattr(sections, name, EnrichedSection(content=generated.content.strip(), confidence=confidence))
            self_assessments.append(generated.confidence)

        coverage = len(self_assessments) / len(SECTION_NAMES)
        avg_section = sum(self_assessments) / len(self_assessments) if self_assessments else 0.5
        overall = self.scorer.score(
            {
                "input_completeness": completeness,
                "ai_self_assessment": output.overall_confidence,
                "pattern_match": (coverage + avg_section) / 2,
            },
            reasoning=(
                f"Enrichment based on {len(issue.body or '')} char description, "
                f"generated {len(self_assessments)}/{len(SECTION_NAMES)} sections"
            ),
            section_name="issue",
            uncertain_areas=output.uncertain_areas,
        )

        return EnrichedIssue(
            preserve_original=preserve_original,
            sections=sections,
            suggested_labels=self._filter_labels(output.suggested_labels, context.repository_labels),
            overall_confidence=overall,
            original_title=issue.title,
            original_body=issue.body or "",
            enriched_body=render_enriched_body(issue.body or "", sections, preserve_original),
            uncertain_areas=list(output.uncertain_areas),
        )

    @staticmethod
    def _filter_labels(suggested: list[str], catalog: list[str]) -> list[str]:
        """Keep catalog labels only (catalog spelling) when a catalog is given."""
        known = {label.lower(): label for label in catalog}
        labels: list[str] = []
        for label in suggested:
            name = label.strip()
            if not name:
                continue
            if known:
                name = known.get(name.lower())
                if name is None:
                    continue
            if name not in labels:
                labels.append(name)
        return labels

    def _fallback(self, issue: IssueContent, preserve_original: bool) -> EnrichedIssue:
        body = issue.body or ""
        factors = {
            "input_completeness": description_completeness(body),
            "ai_self_assessment": 0.4,
            "pattern_match": 0.3,
        }

        def section(content: str) -> EnrichedSection:
            return EnrichedSection(
                content=content,
                confidence=self.scorer.fixed(
                    FALLBACK_SCORE, factors, "AI unavailable, section not generated"
                ),
            )

        sections = EnrichedSections(
            problem=section(body.strip() or issue.title.strip()),
            **{name: section(text) for name, text in FALLBACK_PLACEHOLDERS.items()},
        )

        return EnrichedIssue(
            preserve_original=preserve_original,
            sections=sections,
            suggested_labels=[],
            overall_confidence=self.scorer.fixed(
                FALLBACK_SCORE, factors, "AI unavailable, using basic structure"
            ),
            original_title=issue.title,
            original_body=body,
            enriched_body=render_enriched_body(body, sections, preserve_original),
        )
