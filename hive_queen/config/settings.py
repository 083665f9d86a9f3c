"""
Process-level configuration using pydantic-settings.

Global settings (app credentials, label taxonomy, text-generation endpoint)
are resolved once at process start by ``load_app_settings`` into a frozen
``AppSettings`` value, which is then passed by parameter into every
component. Nothing below the CLI or webhook entry points reads the
environment.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hive_queen.exceptions import ConfigurationError

LLM_MAX_TOKENS_MIN = 500
LLM_MAX_TOKENS_MAX = 8000


class LabelsConfig(BaseModel):
    """Label taxonomy encoding proposal phases and pull request state."""

    model_config = {"frozen": True}

    discussion: str = Field(default="hivemoot:discussion", description="Proposal is under discussion")
    voting: str = Field(default="hivemoot:voting", description="Proposal is being voted on")
    extended_voting: str = Field(default="hivemoot:extended-voting", description="Tied vote, voting extended")
    ready_to_implement: str = Field(
        default="hivemoot:ready-to-implement", description="Proposal accepted, open for implementation"
    )
    rejected: str = Field(default="hivemoot:rejected", description="Proposal rejected by vote")
    inconclusive: str = Field(default="hivemoot:inconclusive", description="Extended voting ended without a result")
    candidate: str = Field(default="hivemoot:candidate", description="PR admitted as an implementation candidate")
    merge_ready: str = Field(default="hivemoot:merge-ready", description="All blocking preflight checks pass")
    needs_human: str = Field(default="hivemoot:needs-human", description="Escalated for human attention")

    @property
    def phase_labels(self) -> tuple[str, ...]:
        return (self.discussion, self.voting, self.extended_voting, self.ready_to_implement)


class LLMSettings(BaseModel):
    """OpenAI-compatible text-generation endpoint.

    Generation is disabled unless ``model`` is set.
    """

    model_config = {"frozen": True}

    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    model: str | None = Field(default=None, description="Model identifier; unset disables generation")
    api_key: str | None = Field(default=None, description="Bearer token for the endpoint")
    max_tokens: int = Field(default=2000, description="Maximum tokens per completion")
    timeout: float = Field(default=60.0, gt=0, description="Request timeout in seconds")

    @field_validator("max_tokens")
    @classmethod
    def clamp_max_tokens(cls, value: int) -> int:
        return max(LLM_MAX_TOKENS_MIN, min(LLM_MAX_TOKENS_MAX, value))

    @property
    def enabled(self) -> bool:
        return bool(self.model)


class AppSettings(BaseSettings):
    """Application settings read from the environment.

    ``PRIVATE_KEY`` and ``APP_PRIVATE_KEY`` are both accepted for the app's
    private key. Nested sections use ``__`` (``LABELS__VOTING``,
    ``LLM__MODEL``).
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    app_id: int | None = Field(default=None, validation_alias=AliasChoices("app_id", "APP_ID"))
    private_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("private_key", "PRIVATE_KEY", "APP_PRIVATE_KEY"),
    )
    webhook_secret: str | None = Field(default=None, validation_alias=AliasChoices("webhook_secret", "WEBHOOK_SECRET"))
    github_api_url: str = Field(default="https://api.github.com", description="GitHub REST base URL")
    github_graphql_url: str = Field(default="https://api.github.com/graphql", description="GitHub GraphQL endpoint")
    log_level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(default=True, description="Render logs as JSON lines")
    labels: LabelsConfig = Field(default_factory=LabelsConfig)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    @field_validator("private_key")
    @classmethod
    def unescape_newlines(cls, value: str | None) -> str | None:
        # Keys pasted into single-line env vars arrive with literal "\n"
        if value and "\\n" in value:
            return value.replace("\\n", "\n")
        return value


def load_app_settings(require_webhook_secret: bool = False, **overrides: object) -> AppSettings:
    """Resolve process settings once and validate the app credentials.

    Args:
        require_webhook_secret: Also require ``WEBHOOK_SECRET`` (webhook server)
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Frozen AppSettings

    Raises:
        ConfigurationError: If a credential is missing or malformed. Every
            missing variable is listed, not just the first.
    """
    try:
        settings = AppSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid application settings: {e}") from e

    missing: list[str] = []
    if settings.app_id is None:
        missing.append("APP_ID")
    if not settings.private_key:
        missing.append("PRIVATE_KEY or APP_PRIVATE_KEY")
    if require_webhook_secret and not settings.webhook_secret:
        missing.append("WEBHOOK_SECRET")

    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing,
        )

    if settings.app_id is not None and settings.app_id <= 0:
        raise ConfigurationError(f"APP_ID must be a positive number, got: {settings.app_id}")

    key = settings.private_key or ""
    if "-----BEGIN" not in key or "-----END" not in key:
        raise ConfigurationError("Private key does not appear to be a valid PEM-encoded key")

    return settings
