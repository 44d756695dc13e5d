"""Pydantic schemas for structured generation output."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class GeneratedSection(BaseModel):
    """One enrichment section as produced by the model."""

    content: str = Field(default="", description="Markdown content of the section")
    confidence: float = Field(
        default=0.5, description="Self-reported confidence 0-1 for this section"
    )

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class EnrichmentOutput(BaseModel):
    """Schema for an issue enrichment response."""

    problem: GeneratedSection = Field(default_factory=GeneratedSection)
    solution: GeneratedSection = Field(default_factory=GeneratedSection)
    context: GeneratedSection = Field(default_factory=GeneratedSection)
    impact: GeneratedSection = Field(default_factory=GeneratedSection)
    acceptance_criteria: GeneratedSection = Field(default_factory=GeneratedSection)
    suggested_labels: list[str] = Field(
        default_factory=list, description="Labels that fit the issue"
    )
    overall_confidence: float = Field(default=0.5, description="Confidence 0-1 overall")
    uncertain_areas: list[str] = Field(
        default_factory=list, description="Aspects the model was unsure about"
    )
    reasoning: str = Field(default="", description="Short explanation of the enrichment")

    @field_validator("overall_confidence")
    @classmethod
    def clamp_overall_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class GeneratedLabel(BaseModel):
    """One label suggestion as produced by the model."""

    label: str = Field(description="Label name")
    confidence: float = Field(default=0.5, description="Confidence 0-1")
    rationale: str = Field(default="", description="Why the label fits")
    matched_patterns: list[str] = Field(
        default_factory=list, description="Words or phrases from the issue that matched"
    )

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class GeneratedLabelProposal(BaseModel):
    """A label the model proposes creating."""

    name: str
    description: str = ""
    color: str = Field(default="ededed", description="Hex color without #")
    rationale: str = ""

    @field_validator("color")
    @classmethod
    def strip_hash(cls, value: str) -> str:
        return value.lstrip("#") or "ededed"


class LabelSuggestionOutput(BaseModel):
    """Schema for a label suggestion response."""

    suggestions: list[GeneratedLabel] = Field(default_factory=list)
    new_label_proposals: list[GeneratedLabelProposal] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.5, description="Confidence 0-1 overall")
    reasoning: str = ""

    @field_validator("overall_confidence")
    @classmethod
    def clamp_overall_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class GeneratedDependency(BaseModel):
    """Dependency classification for one candidate pair."""

    target_id: str = Field(description="ID of the candidate issue")
    sub_type: Literal["blocks", "blocked_by", "related_to"] = Field(
        description="Direction as seen from the source issue"
    )
    confidence: float = Field(default=0.5, description="Confidence 0-1")
    reasoning: str = ""

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class DependencyAnalysisOutput(BaseModel):
    """Schema for a dependency classification response."""

    relationships: list[GeneratedDependency] = Field(default_factory=list)
