"""
Batch reconciliation across installations and repositories.

The runner walks installations, then each installation's repositories,
then the units of work a job loads for a repository, strictly one at a
time. A unit that raises is recorded and the batch moves on; once every
unit has been attempted, any recorded failures surface together as one
``ReconciliationError``.

A job signals that a repository is out of scope (feature disabled in its
config) by returning None from ``load_units``; such a repository is never
passed to ``process_unit``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

import structlog

from hive_queen.config.repo_config import RepoConfig
from hive_queen.config.settings import LabelsConfig
from hive_queen.exceptions import ReconciliationError, UnitFailure
from hive_queen.models.domain import Installation, Repository
from hive_queen.providers.base import IssueTracker, LinkedIssuesClient, TextGenerator
from hive_queen.utils.logging_config import log_group

log = structlog.get_logger(__name__)

REPOSITORY_UNIT = "<repository>"
INSTALLATION_UNIT = "<installation>"


@dataclass
class RepoContext:
    """Everything a job needs to work on one repository."""

    installation: Installation
    repository: Repository
    tracker: IssueTracker
    linked: LinkedIssuesClient
    config: RepoConfig
    labels: LabelsConfig
    generator: TextGenerator | None = None


@dataclass(frozen=True)
class WorkUnit:
    """One independently processed piece of repository work."""

    id: str
    number: int
    payload: Any = None


@dataclass
class RepoSummary:
    repo_full_name: str
    processed: int = 0
    failed: int = 0
    skipped: bool = False


@dataclass
class BatchResult:
    """Outcome of one run: per-repository summaries, successes and failures."""

    job_name: str
    summaries: list[RepoSummary] = field(default_factory=list)
    results: list[tuple[str, str, Any]] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(s.processed for s in self.summaries)

    @property
    def failed(self) -> int:
        return len(self.failures)


class RepositorySource(ABC):
    """Where the runner gets installations, repositories and repo contexts."""

    @abstractmethod
    async def list_installations(self) -> list[Installation]:
        pass

    @abstractmethod
    async def list_repositories(self, installation: Installation) -> list[Repository]:
        pass

    @abstractmethod
    def open_repository(
        self, installation: Installation, repository: Repository
    ) -> AbstractAsyncContextManager[RepoContext]:
        """Async context manager yielding a ready ``RepoContext``."""
        pass


class ReconciliationJob(ABC):
    """A scheduled job applied to every repository."""

    name: str = "reconciliation"

    @abstractmethod
    async def load_units(self, ctx: RepoContext) -> list[WorkUnit] | None:
        """Units to process, or None when the job does not apply to the repository."""
        pass

    @abstractmethod
    async def process_unit(self, ctx: RepoContext, unit: WorkUnit) -> Any:
        pass


class ReconciliationRunner:
    """Runs a job over every installation repository with per-unit isolation."""

    def __init__(self, source: RepositorySource):
        self.source = source

    async def run(self, job: ReconciliationJob) -> BatchResult:
        """Run ``job`` everywhere.

        Returns:
            BatchResult when every unit succeeded

        Raises:
            ReconciliationError: After all units were attempted, if any failed
        """
        result = BatchResult(job_name=job.name)
        log.info("reconciliation_started", job=job.name)

        for installation in await self.source.list_installations():
            with log_group("installation", installation_id=installation.id, account=installation.account_login):
                try:
                    repositories = await self.source.list_repositories(installation)
                except Exception as e:
                    log.error("installation_failed", installation_id=installation.id, job=job.name, error=str(e))
                    result.failures.append(UnitFailure(f"installation:{installation.id}", INSTALLATION_UNIT, e))
                    continue

                for repository in repositories:
                    with log_group("repository", repo=repository.full_name):
                        summary = await self._run_repository(job, installation, repository, result)
                    result.summaries.append(summary)

        log.info(
            "reconciliation_finished",
            job=job.name,
            repositories=len(result.summaries),
            processed=result.processed,
            failed=result.failed,
        )

        if result.failures:
            raise ReconciliationError(result.failures, job_name=job.name)
        return result

    async def _run_repository(
        self,
        job: ReconciliationJob,
        installation: Installation,
        repository: Repository,
        result: BatchResult,
    ) -> RepoSummary:
        summary = RepoSummary(repo_full_name=repository.full_name)

        try:
            async with self.source.open_repository(installation, repository) as ctx:
                units = await job.load_units(ctx)
                if units is None:
                    summary.skipped = True
                    log.info("repository_skipped", repo=repository.full_name, job=job.name)
                    return summary

                for unit in units:
                    await self._run_unit(job, ctx, unit, summary, result)
        except Exception as e:
            log.error("repository_failed", repo=repository.full_name, job=job.name, error=str(e))
            summary.failed += 1
            result.failures.append(UnitFailure(repository.full_name, REPOSITORY_UNIT, e))

        log.info(
            "repository_summary",
            repo=repository.full_name,
            job=job.name,
            processed=summary.processed,
            failed=summary.failed,
        )
        return summary

    async def _run_unit(
        self,
        job: ReconciliationJob,
        ctx: RepoContext,
        unit: WorkUnit,
        summary: RepoSummary,
        result: BatchResult,
    ) -> None:
        repo = ctx.repository.full_name
        try:
            outcome = await job.process_unit(ctx, unit)
        except Exception as e:
            log.error("unit_failed", repo=repo, unit=unit.id, job=job.name, error=str(e), exc_info=True)
            summary.failed += 1
            result.failures.append(UnitFailure(repo, unit.id, e))
            return

        summary.processed += 1
        result.results.append((repo, unit.id, outcome))

