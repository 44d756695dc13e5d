"""Prompt templates for enrichment, label suggestion and dependency analysis."""

from issue_intelligence.models import IssueContent, LabeledIssue, RepositoryLabel

# Max characters of a candidate body quoted in a prompt
CANDIDATE_BODY_PREVIEW = 300

# Max history items quoted in a label prompt
HISTORY_PROMPT_LIMIT = 10

NO_DESCRIPTION = "(No description provided)"

ENRICHMENT_SYSTEM_PROMPT = """You are an issue analysis assistant that improves issue quality.

Analyze the issue and produce structured sections that make it clearer and more actionable:
- problem: what is wrong or needs to change, with symptoms, errors or observed behavior
- solution: a proposed fix or approach, with technical detail only when the issue supports it
- context: relevant background such as affected components, versions or dependencies
- impact: who or what is affected, and how severely and how often
- acceptance_criteria: testable conditions that show the issue is resolved

Rate each section's confidence from 0 to 1:
- 0.9-1.0: stated explicitly in the issue
- 0.7-0.9: strongly implied by the issue
- 0.5-0.7: inferred with reasonable certainty
- 0.3-0.5: speculative but plausible
- 0.0-0.3: guessed

Never drop information from the original issue. List anything you were unsure about in uncertain_areas.
Suggest labels only from the repository labels when they are given."""

ENRICHMENT_PROMPT = """Analyze and enrich the following issue.

Issue Title: {title}

Issue Description:
{body}
{project_section}{labels_section}
Instructions:
- {preserve_instruction}
- Generate the sections problem, solution, context, impact and acceptance_criteria
- Give each section a confidence between 0 and 1"""

PRESERVE_INSTRUCTION = (
    "The original description is substantial. It will be kept as-is; "
    "write sections that add to it."
)
REWRITE_INSTRUCTION = (
    "The original description is brief. Write sections that fully replace it, "
    "integrating everything it says."
)

LABEL_SUGGESTION_SYSTEM_PROMPT = """You are a repository label analyst who categorizes issues.

Rules:
1. Always prefer labels that already exist in the repository over proposing new ones.
2. Use the exact spelling of existing labels.
3. Rate each suggestion from 0 to 1:
   - 0.8-1.0: direct keyword match or explicit category
   - 0.5-0.8: related concept or contextual fit
   - 0.3-0.5: weak signal that needs verification
4. Explain why each label fits and quote the words from the issue that matched.
5. Learn from the labeling history when it is provided.

Propose a new label only when no existing label covers the category and the category is likely to recur.
Give proposals a hex color without # and a one-line description."""

LABEL_SUGGESTION_PROMPT = """Suggest labels for the following issue.

Issue Title: {title}

Issue Description:
{body}

Available Repository Labels:
{labels_section}
{history_section}"""

DEPENDENCY_SYSTEM_PROMPT = """You are an issue relationship analyst who classifies dependencies between issues.

For each candidate, decide the direction as seen from the source issue:
- blocks: the source must be completed before the candidate can start
- blocked_by: the source cannot proceed until the candidate is resolved
- related_to: the issues are connected but neither blocks the other

Rate each classification from 0 to 1:
- 0.9-1.0: the relationship is stated explicitly
- 0.7-0.9: strong implicit relationship
- 0.5-0.7: probable relationship
- 0.3-0.5: weak signal

Only return candidates you believe are actually related, using their exact IDs."""

DEPENDENCY_PROMPT = """Classify the dependency between the source issue and each candidate.

Source Issue:
{source_section}

Candidate Issues:
{candidates_section}"""


def _body_or_placeholder(body: str | None) -> str:
    return body.strip() if body and body.strip() else NO_DESCRIPTION


def _preview(text: str | None, limit: int = CANDIDATE_BODY_PREVIEW) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def format_enrichment_prompt(
    issue: IssueContent,
    preserve_original: bool,
    project_context: str | None = None,
    repository_labels: list[str] | None = None,
) -> str:
    """Build the user prompt for issue enrichment."""
    project_section = f"\nProject Context:\n{project_context}\n" if project_context else ""
    labels_section = (
        f"\nAvailable repository labels: {', '.join(repository_labels)}\n"
        if repository_labels
        else ""
    )

    return ENRICHMENT_PROMPT.format(
        title=issue.title,
        body=_body_or_placeholder(issue.body),
        project_section=project_section,
        labels_section=labels_section,
        preserve_instruction=PRESERVE_INSTRUCTION if preserve_original else REWRITE_INSTRUCTION,
    )


def format_label_prompt(
    issue: IssueContent,
    existing_labels: list[RepositoryLabel],
    issue_history: list[LabeledIssue] | None = None,
    history_limit: int = HISTORY_PROMPT_LIMIT,
) -> str:
    """Build the user prompt for label suggestions.

    Only the first ``history_limit`` history items are included.
    """
    labels_section = "\n".join(
        f"- {label.name}: {label.description}" if label.description else f"- {label.name}"
        for label in existing_labels
    )

    history_section = ""
    if issue_history:
        lines = [
            f'{i}. "{item.title}" -> [{", ".join(item.labels)}]'
            for i, item in enumerate(issue_history[:history_limit], start=1)
        ]
        history_section = "\nIssue History (past labeling patterns):\n" + "\n".join(lines)

    return LABEL_SUGGESTION_PROMPT.format(
        title=issue.title,
        body=_body_or_placeholder(issue.body),
        labels_section=labels_section or "(No labels defined)",
        history_section=history_section,
    )


def format_dependency_prompt(source: IssueContent, candidates: list[IssueContent]) -> str:
    """Build the user prompt for dependency classification."""
    source_lines = [
        f"ID: {source.id}",
        f"Title: {source.title}",
        f"Description: {_preview(source.body, 1000) or NO_DESCRIPTION}",
    ]
    if source.labels:
        source_lines.append(f"Labels: {', '.join(source.labels)}")

    blocks = []
    for i, issue in enumerate(candidates, start=1):
        number = f"[#{issue.number}] " if issue.number is not None else ""
        lines = [
            f"{i}. {number}{issue.title} ({issue.state})",
            f"   ID: {issue.id}",
            f"   Description: {_preview(issue.body) or NO_DESCRIPTION}",
        ]
        if issue.labels:
            lines.append(f"   Labels: {', '.join(issue.labels)}")
        blocks.append("\n".join(lines))

    return DEPENDENCY_PROMPT.format(
        source_section="\n".join(source_lines),
        candidates_section="\n\n".join(blocks),
    )
