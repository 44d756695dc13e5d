"""Tests for label suggestion."""

import pytest

from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import LabeledIssue, RepositoryLabel
from issue_intelligence.services.labels import (
    LabelSuggestionConfig,
    LabelSuggestionService,
    LabelThresholds,
    hint_key,
)
from tests.fakes import FakeGenerator, make_issue

CATALOG = [
    RepositoryLabel("bug", "Something isn't working"),
    RepositoryLabel("ui", "User interface"),
    RepositoryLabel("docs"),
]


@pytest.fixture
def crash_issue():
    return make_issue("i1", "Save button crashes", "The button crashes on click.")


class TestHintKey:
    """Tests for hint vocabulary lookup."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("bug", "bug"),
            ("type: bug", "bug"),
            ("kind/documentation", "docs"),
            ("Feature", "enhancement"),
            ("wontfix", None),
        ],
    )
    def test_hint_key(self, name, expected):
        """Test mapping label names onto hint keys."""
        assert hint_key(name) == expected


class TestKeywordFallback:
    """Tests for keyword-based suggestions."""

    @pytest.mark.asyncio
    async def test_crash_report(self, crash_issue):
        """Test that a crash report on a button suggests bug and ui."""
        service = LabelSuggestionService(None)

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert result.methodology == "keyword-fallback"
        labels = {s.label: s.confidence for s in result.all_suggestions}
        assert labels == {"ui": pytest.approx(0.7), "bug": pytest.approx(0.6)}
        assert [s.label for s in result.medium] == ["ui", "bug"]
        assert result.high == []
        assert result.new_label_proposals == []
        assert result.confidence.score == 40
        assert result.confidence.needs_review is True

    @pytest.mark.asyncio
    async def test_confidence_capped(self):
        """Test that fallback confidence never exceeds the cap."""
        issue = make_issue("i", "Login error", "Login error after crash")
        service = LabelSuggestionService(None)

        result = await service.suggest_labels(issue, [RepositoryLabel("login error")])

        assert result.all_suggestions[0].confidence == 0.8
        assert result.all_suggestions[0].label == "login error"

    @pytest.mark.asyncio
    async def test_history_boost(self):
        """Test that labels used on similar past issues score higher."""
        issue = make_issue("i", "Session token expires early", "Tokens expire after five minutes.")
        labels = [RepositoryLabel("session storage")]
        history = [LabeledIssue("Session token expires too soon", ["session storage"])]
        service = LabelSuggestionService(None)

        without = await service.suggest_labels(issue, labels)
        with_history = await service.suggest_labels(issue, labels, history)

        assert without.all_suggestions[0].confidence == pytest.approx(0.5)
        assert with_history.all_suggestions[0].confidence == pytest.approx(0.6)
        assert "Used on similar past issues" in with_history.all_suggestions[0].rationale

    @pytest.mark.asyncio
    async def test_no_match(self):
        """Test that unrelated labels are not suggested."""
        service = LabelSuggestionService(None)
        result = await service.suggest_labels(make_issue("i", "Translate emails"), CATALOG)
        assert result.all_suggestions == []

    @pytest.mark.asyncio
    async def test_generator_failure_falls_back(self, crash_issue, failing_generator):
        """Test that a failing generator never surfaces an error."""
        service = LabelSuggestionService(failing_generator)

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert failing_generator.calls == 1
        assert result.methodology == "keyword-fallback"


class TestGeneratedSuggestions:
    """Tests for the AI path."""

    @pytest.fixture
    def generator(self):
        return FakeGenerator({
            "suggestions": [
                {"label": "Bug", "confidence": 0.9, "rationale": "Crash", "matched_patterns": ["crashes"]},
                {"label": "ui", "confidence": 0.6, "rationale": "Button"},
                {"label": "crash-report", "confidence": 0.7, "rationale": "Crash reports"},
                {"label": "docs", "confidence": 0.2, "rationale": "Unlikely"},
            ],
            "new_label_proposals": [
                {"name": "UI", "description": "dup", "color": "#000000"},
                {"name": "regression", "description": "Worked before", "color": "#d73a4a", "rationale": "Recurring"},
            ],
            "overall_confidence": 0.8,
        })

    @pytest.mark.asyncio
    async def test_catalog_labels_are_tiered(self, crash_issue, generator):
        """Test tiering of catalog labels using catalog spelling."""
        service = LabelSuggestionService(generator)

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert result.methodology == "ai"
        assert [s.label for s in result.high] == ["bug"]
        assert result.high[0].matched_patterns == ["crashes"]
        assert [s.label for s in result.medium] == ["ui"]
        assert [s.label for s in result.low] == ["docs"]
        assert all(s.is_existing for s in result.all_suggestions)

    @pytest.mark.asyncio
    async def test_unknown_labels_become_proposals(self, crash_issue, generator):
        """Test that non-catalog labels are proposals and catalog collisions dropped."""
        service = LabelSuggestionService(generator)

        result = await service.suggest_labels(crash_issue, CATALOG)

        names = [p.name for p in result.new_label_proposals]
        assert names == ["crash-report", "regression"]
        assert result.new_label_proposals[1].color == "d73a4a"
        assert "crash-report" not in [s.label for s in result.all_suggestions]

    @pytest.mark.asyncio
    async def test_proposals_disabled(self, crash_issue, generator):
        """Test that proposals can be turned off."""
        service = LabelSuggestionService(
            generator, config=LabelSuggestionConfig(include_new_proposals=False)
        )

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert result.new_label_proposals == []

    @pytest.mark.asyncio
    async def test_max_suggestions_keeps_most_confident(self, crash_issue, generator):
        """Test that the limit drops the least confident suggestions first."""
        service = LabelSuggestionService(generator, config=LabelSuggestionConfig(max_suggestions=2))

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert [s.label for s in result.all_suggestions] == ["bug", "ui"]

    @pytest.mark.asyncio
    async def test_history_in_prompt(self, crash_issue, generator):
        """Test that only the history sample is sent to the generator."""
        history = [LabeledIssue(f"Issue {i}", ["bug"]) for i in range(15)]
        service = LabelSuggestionService(generator, config=LabelSuggestionConfig(history_sample=3))

        await service.suggest_labels(crash_issue, CATALOG, history)

        prompt = generator.calls[0][0]
        assert '3. "Issue 2" -> [bug]' in prompt
        assert "Issue 3" not in prompt

    @pytest.mark.asyncio
    async def test_custom_thresholds(self, crash_issue, generator):
        """Test that label thresholds move suggestions between tiers."""
        service = LabelSuggestionService(
            generator, config=LabelSuggestionConfig(thresholds=LabelThresholds(high=0.5, medium=0.1))
        )

        result = await service.suggest_labels(crash_issue, CATALOG)

        assert [s.label for s in result.high] == ["bug", "ui"]
        assert [s.label for s in result.medium] == ["docs"]


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.asyncio
    async def test_missing_title(self):
        """Test that an issue without a title is rejected."""
        with pytest.raises(InvalidIssueInputError):
            await LabelSuggestionService(None).suggest_labels(make_issue("i", ""), CATALOG)

    def test_invalid_thresholds(self):
        """Test that inverted thresholds are rejected."""
        with pytest.raises(ValueError):
            LabelThresholds(high=0.4, medium=0.6)
