"""Discussion summary generated for the voting comment."""

from __future__ import annotations

from pydantic import BaseModel, Field

from hive_queen.models.domain import Comment, Issue

MAX_PROMPT_COMMENTS = 50


class DiscussionSummary(BaseModel):
    """Structured summary of a proposal's discussion."""

    proposal: str = Field(description="One or two sentences stating what is proposed")
    aligned_on: list[str] = Field(default_factory=list, description="Points the discussion agreed on")
    open_for_pr: list[str] = Field(default_factory=list, description="Details left to the implementer")
    not_included: list[str] = Field(default_factory=list, description="Ideas explicitly ruled out")

    def render(self) -> str:
        lines = [self.proposal.strip()]
        for heading, items in (
            ("Aligned on", self.aligned_on),
            ("Open for the PR", self.open_for_pr),
            ("Not included", self.not_included),
        ):
            if items:
                lines += ["", f"**{heading}:**", *(f"- {item}" for item in items)]
        return "\n".join(lines)


def build_summary_prompt(issue: Issue, comments: list[Comment]) -> str:
    human_comments = [c for c in comments if not c.author_is_bot][-MAX_PROMPT_COMMENTS:]
    thread = "\n\n".join(f"@{c.author}:\n{c.body}" for c in human_comments) or "(no comments)"
    return (
        "Summarize this proposal discussion for voters. Be neutral and concise.\n\n"
        f"# {issue.title}\n\n{issue.body or '(no description)'}\n\n## Discussion\n\n{thread}"
    )


def repair_json_text(text: str) -> str | None:
    """Recover a JSON payload wrapped in a code fence or preceded by prose.

    Returns None when there is nothing safer to try than the original text.
    """
    trimmed = text.strip()
    if not trimmed:
        return None

    if "```" in trimmed:
        start = trimmed.index("```") + 3
        end = trimmed.find("```", start)
        candidate = trimmed[start:end if end != -1 else None]
        if candidate.lower().startswith("json"):
            candidate = candidate[4:]
        candidate = candidate.strip()
        return candidate or None

    starts = [i for i in (trimmed.find("{"), trimmed.find("[")) if i != -1]
    if starts and min(starts) > 0:
        return trimmed[min(starts):].strip()
    return None
