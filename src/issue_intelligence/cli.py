"""CLI commands for the issue intelligence engine."""

import asyncio
import dataclasses
import json
import logging
import re
import sys
from typing import Any

import click

from issue_intelligence.config import settings
from issue_intelligence.engine import IssueIntelligenceEngine
from issue_intelligence.exceptions import InvalidIssueInputError
from issue_intelligence.models import (
    EnrichmentContext,
    IssueContent,
    LabeledIssue,
    RepositoryLabel,
)
from issue_intelligence.providers.embeddings import get_available_embedding_providers
from issue_intelligence.providers.generation import get_available_generation_providers
from issue_intelligence.services.duplicates import DuplicateThresholds


class SecretRedactingFilter(logging.Filter):
    """Filter to redact sensitive information from logs."""

    # Patterns for common secrets
    SECRET_PATTERNS = [
        (re.compile(r"(api[_-]?key[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(x-api-key[\s:=]+)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(token[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(bearer\s+)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"\bsk-[\w-]{20,}"), "[REDACTED]"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log messages."""
        if isinstance(record.msg, str):
            for pattern, replacement in self.SECRET_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


# Configure logging with secret redaction
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(SecretRedactingFilter())
logger = logging.getLogger(__name__)


def _load_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidIssueInputError(f"{path} is not valid JSON: {e}") from e


def _load_issue(path: str) -> IssueContent:
    data = _load_json(path)
    if not isinstance(data, dict):
        raise InvalidIssueInputError(f"{path} must contain a JSON object")
    try:
        return IssueContent.from_dict(data)
    except KeyError as e:
        raise InvalidIssueInputError(f"{path} is missing field {e}") from e


def _load_corpus(path: str) -> list[IssueContent]:
    data = _load_json(path)
    if not isinstance(data, list):
        raise InvalidIssueInputError(f"{path} must contain a JSON array of issues")
    try:
        return [IssueContent.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise InvalidIssueInputError(f"{path} contains an invalid issue: {e}") from e


def _load_labels(path: str) -> list[RepositoryLabel]:
    data = _load_json(path)
    if not isinstance(data, list):
        raise InvalidIssueInputError(f"{path} must contain a JSON array of labels")

    labels = []
    for item in data:
        if isinstance(item, str):
            labels.append(RepositoryLabel(name=item))
        elif isinstance(item, dict) and item.get("name"):
            labels.append(
                RepositoryLabel(
                    name=item["name"],
                    description=item.get("description"),
                    color=item.get("color"),
                )
            )
        else:
            raise InvalidIssueInputError(f"{path} contains an invalid label: {item!r}")
    return labels


def _load_history(path: str) -> list[LabeledIssue]:
    data = _load_json(path)
    if not isinstance(data, list):
        raise InvalidIssueInputError(f"{path} must contain a JSON array of issues")
    return [
        LabeledIssue(
            title=item.get("title", ""),
            labels=[
                label["name"] if isinstance(label, dict) else str(label)
                for label in item.get("labels", [])
            ],
        )
        for item in data
        if isinstance(item, dict)
    ]


def _emit(result: Any) -> None:
    """Print a dataclass result (or list of them) as JSON."""
    if isinstance(result, list):
        payload = [dataclasses.asdict(item) for item in result]
    else:
        payload = dataclasses.asdict(result)
    click.echo(json.dumps(payload, indent=2))


def _run(coro) -> Any:
    """Run an operation, turning input errors into exit status 1."""
    try:
        return asyncio.run(coro)
    except InvalidIssueInputError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Issue Intelligence CLI."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command("detect-duplicates")
@click.argument("issue_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("corpus_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--high", type=float, help="Similarity for high-confidence duplicates")
@click.option("--medium", type=float, help="Similarity for medium-confidence duplicates")
def detect_duplicates(
    issue_file: str, corpus_file: str, high: float | None, medium: float | None
) -> None:
    """Find likely duplicates of ISSUE_FILE among CORPUS_FILE."""

    async def _detect():
        issue = _load_issue(issue_file)
        corpus = _load_corpus(corpus_file)
        thresholds = None
        if high is not None or medium is not None:
            try:
                thresholds = DuplicateThresholds(
                    high=high if high is not None else settings.DUPLICATE_HIGH_THRESHOLD,
                    medium=medium if medium is not None else settings.DUPLICATE_MEDIUM_THRESHOLD,
                )
            except ValueError as e:
                raise InvalidIssueInputError(str(e)) from e

        engine = IssueIntelligenceEngine.from_settings()
        return await engine.detect_duplicates(issue, corpus, thresholds)

    _emit(_run(_detect()))


@cli.command("find-related")
@click.argument("issue_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("corpus_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--no-semantic", is_flag=True, help="Skip embedding similarity")
@click.option("--no-dependencies", is_flag=True, help="Skip dependency detection")
@click.option("--no-components", is_flag=True, help="Skip label overlap")
def find_related(
    issue_file: str,
    corpus_file: str,
    no_semantic: bool,
    no_dependencies: bool,
    no_components: bool,
) -> None:
    """Find issues in CORPUS_FILE related to ISSUE_FILE."""

    async def _find():
        issue = _load_issue(issue_file)
        corpus = _load_corpus(corpus_file)
        engine = IssueIntelligenceEngine.from_settings()
        config = dataclasses.replace(
            engine.related.config,
            include_semantic=not no_semantic,
            include_dependencies=not no_dependencies,
            include_components=not no_components,
        )
        return await engine.find_related_issues(issue, corpus, config)

    _emit(_run(_find()))


@cli.command("suggest-labels")
@click.argument("issue_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("labels_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--history",
    "history_file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON array of previously labeled issues",
)
def suggest_labels(issue_file: str, labels_file: str, history_file: str | None) -> None:
    """Suggest labels from LABELS_FILE for ISSUE_FILE."""

    async def _suggest():
        issue = _load_issue(issue_file)
        labels = _load_labels(labels_file)
        history = _load_history(history_file) if history_file else None
        engine = IssueIntelligenceEngine.from_settings()
        return await engine.suggest_labels(issue, labels, history)

    _emit(_run(_suggest()))


@cli.command()
@click.argument("issue_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project-context", help="Free-text description of the project")
@click.option("--labels", help="Comma-separated list of repository labels")
def enrich(issue_file: str, project_context: str | None, labels: str | None) -> None:
    """Restructure ISSUE_FILE into confidence-scored sections."""

    async def _enrich():
        issue = _load_issue(issue_file)
        context = EnrichmentContext(
            project_context=project_context,
            repository_labels=[name.strip() for name in labels.split(",") if name.strip()] if labels else [],
        )
        engine = IssueIntelligenceEngine.from_settings()
        return await engine.enrich_issue(issue, context)

    _emit(_run(_enrich()))


@cli.command()
def providers() -> None:
    """List registered providers and the active selection."""
    engine = IssueIntelligenceEngine.from_settings()
    status = engine.provider_status()

    click.echo("Embedding providers: " + ", ".join(get_available_embedding_providers()))
    click.echo("Generation providers: " + ", ".join(get_available_generation_providers()))
    click.echo(f"Active embeddings: {status['embeddings'] or 'none (keyword fallback)'}")
    click.echo(f"Active generator: {status['generator'] or 'none (fallback)'}")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
