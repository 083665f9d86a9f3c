"""Process settings and per-repository governance configuration."""

from hive_queen.config.repo_config import (
    CONFIG_PATH,
    DiscussionConfig,
    DiscussionExit,
    IntakeMethod,
    MergeReadyConfig,
    PRConfig,
    RepoConfig,
    VotingConfig,
    VotingExit,
    parse_repo_config,
)
from hive_queen.config.settings import AppSettings, LabelsConfig, LLMSettings, load_app_settings

__all__ = [
    "CONFIG_PATH",
    "AppSettings",
    "DiscussionConfig",
    "DiscussionExit",
    "IntakeMethod",
    "LLMSettings",
    "LabelsConfig",
    "MergeReadyConfig",
    "PRConfig",
    "RepoConfig",
    "VotingConfig",
    "VotingExit",
    "load_app_settings",
    "parse_repo_config",
]
