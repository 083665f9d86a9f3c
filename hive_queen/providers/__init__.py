"""Collaborator interfaces and their GitHub / OpenAI-compatible implementations."""

from hive_queen.providers.base import (
    GenerationResult,
    IssueTracker,
    LinkedIssuesClient,
    RepairHook,
    TextGenerator,
)

__all__ = [
    "GenerationResult",
    "IssueTracker",
    "LinkedIssuesClient",
    "RepairHook",
    "TextGenerator",
]
