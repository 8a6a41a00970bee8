"""Compliance engine: fan checks out over the target repositories.

Repositories are processed by a fixed pool of asyncio workers pulling from a
shared iterator. Checks for one repository run sequentially in registration
order; results land in the slot of their repository so the final report keeps
listing order regardless of completion order.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import logging
import time
import typing as typ

from .checks import CheckContext, build_registry
from .listing import ListingOptions
from .models import (
    CheckExecution,
    CheckResult,
    ExecutionStatus,
    RepositoryReport,
    RunnerReport,
)

if typ.TYPE_CHECKING:
    from .checks import BaseCheck, CheckRegistry
    from .config import ComplianceConfig
    from .forge import ForgeClient
    from .models import Repository

_logger = logging.getLogger(__name__)

ERROR_CONCURRENCY = "concurrency must be at least 1, got {value}"
SUMMARY_RULE = "=" * 60


@dataclasses.dataclass(frozen=True)
class RunnerOptions:
    """Knobs controlling one compliance run."""

    dry_run: bool = False
    checks: tuple[str, ...] | None = None
    include_archived: bool = False
    repos: tuple[str, ...] | None = None
    concurrency: int = 5

    def __post_init__(self) -> None:
        """Reject a worker pool that could never make progress."""
        if self.concurrency < 1:
            raise ValueError(ERROR_CONCURRENCY.format(value=self.concurrency))


class ComplianceRunner:
    """Run every applicable check against every target repository."""

    def __init__(  # noqa: PLR0913 - collaborators are injected for tests
        self,
        client: ForgeClient,
        config: ComplianceConfig,
        options: RunnerOptions | None = None,
        *,
        registry: CheckRegistry | None = None,
        logger: logging.Logger | None = None,
        clock: typ.Callable[[], float] = time.perf_counter,
    ) -> None:
        """Bind the forge client, policy and run options."""
        self.client = client
        self.config = config
        self.options = options or RunnerOptions()
        self.registry = registry or build_registry()
        self.logger = logger or _logger
        self._clock = clock

    async def run(self) -> RunnerReport:
        """Execute the run and return its aggregated report."""
        started = self._clock()
        self.logger.info(
            "Starting compliance checks%s", " (dry run)" if self.options.dry_run else ""
        )

        repositories = await self._target_repositories()
        self.logger.info("Found %d repositories to check", len(repositories))
        checks = self._target_checks()
        self.logger.info(
            "Will run %d checks: %s",
            len(checks),
            ", ".join(check.name for check in checks),
        )

        slots: list[RepositoryReport | None] = [None] * len(repositories)
        pending = enumerate(repositories)
        progress = 0

        async def worker() -> None:
            nonlocal progress
            for index, repository in pending:
                slots[index] = await self._check_repository(repository, checks)
                progress += 1
                self.logger.info(
                    "Progress: %d/%d repositories processed",
                    progress,
                    len(repositories),
                )

        worker_count = min(self.options.concurrency, len(repositories))
        await asyncio.gather(*(worker() for _ in range(worker_count)))

        reports = [report for report in slots if report is not None]
        report = RunnerReport.build(
            reports,
            execution_time_ms=(self._clock() - started) * 1000,
            timestamp=dt.datetime.now(tz=dt.UTC).isoformat(),
        )
        self._log_summary(report)
        return report

    async def _target_repositories(self) -> list[Repository]:
        listed = await self.client.list_repositories(
            ListingOptions(include_archived=self.options.include_archived)
        )
        repositories = [
            repository
            for repository in listed
            if self.options.include_archived or not repository.archived
        ]
        if self.options.repos:
            wanted = set(self.options.repos)
            repositories = [
                repository
                for repository in repositories
                if repository.name in wanted or repository.full_name in wanted
            ]
        return repositories

    def _target_checks(self) -> list[BaseCheck]:
        requested = self.options.checks
        if not requested:
            return self.registry.select()
        unknown = [name for name in requested if name not in self.registry]
        if unknown:
            self.logger.warning("Invalid checks requested: %s", ", ".join(unknown))
        return self.registry.select(name for name in requested if name in self.registry)

    async def _check_repository(
        self, repository: Repository, checks: list[BaseCheck]
    ) -> RepositoryReport:
        self.logger.info("Checking %s", repository.full_name)
        executions: list[CheckExecution] = []
        for check in checks:
            context = CheckContext(
                client=self.client,
                config=self.config,
                dry_run=self.options.dry_run,
                repository=repository,
                logger=self.logger,
            )
            if not check.should_run(context):
                self.logger.debug(
                    "Skipping %s for %s (no policy)", check.name, repository.full_name
                )
                continue
            executions.append(await self._execute(check, context))

        report = RepositoryReport.from_executions(repository, executions)
        if report.compliant:
            self.logger.info("%s is compliant", repository.full_name)
        else:
            self.logger.warning(
                "%s is not compliant: %d failed, %d errored",
                repository.full_name,
                report.checks_failed,
                report.checks_errored,
            )
        return report

    async def _execute(self, check: BaseCheck, context: CheckContext) -> CheckExecution:
        repository = context.repository
        self.logger.debug("Running %s for %s", check.name, repository.full_name)
        started = self._clock()
        try:
            result = await check.fix(context)
        except Exception as error:  # noqa: BLE001 - any check failure is recorded
            duration = (self._clock() - started) * 1000
            self.logger.error(  # noqa: TRY400 - the traceback goes to debug
                "Failed to run %s for %s: %s", check.name, repository.full_name, error
            )
            self.logger.debug("Check failure traceback", exc_info=error)
            return CheckExecution(
                check_name=check.name,
                repository=repository,
                result=CheckResult.errored(f"Check {check.name} failed", str(error)),
                duration_ms=duration,
                error=str(error),
            )

        execution = CheckExecution(
            check_name=check.name,
            repository=repository,
            result=result,
            duration_ms=(self._clock() - started) * 1000,
        )
        self._log_execution(execution)
        return execution

    def _log_execution(self, execution: CheckExecution) -> None:
        result = execution.result
        match execution.status:
            case ExecutionStatus.FIXED:
                self.logger.info("Fixed: %s - %s", execution.check_name, result.message)
            case ExecutionStatus.PASSED:
                self.logger.debug("Pass: %s - %s", execution.check_name, result.message)
            case ExecutionStatus.ERRORED:
                self.logger.error(
                    "Error: %s - %s: %s",
                    execution.check_name,
                    result.message,
                    result.error,
                )
            case ExecutionStatus.FAILED:
                self.logger.warning(
                    "Fail: %s - %s", execution.check_name, result.message
                )

    def _log_summary(self, report: RunnerReport) -> None:
        log = self.logger
        log.info(SUMMARY_RULE)
        log.info("COMPLIANCE CHECK SUMMARY")
        log.info(SUMMARY_RULE)
        log.info("Total repositories: %d", report.total_repositories)
        log.info("Compliant: %d", report.compliant_repositories)
        log.info("Non-compliant: %d", report.non_compliant_repositories)
        log.info("Fixed: %d", report.fixed_repositories)
        log.info("Errors: %d", report.error_repositories)
        log.info("Compliance rate: %d%%", report.compliance_percentage)
        log.info("Execution time: %.2fs", report.execution_time_ms / 1000)
        log.info(SUMMARY_RULE)

        failing = [entry for entry in report.repositories if not entry.compliant]
        if failing:
            log.warning("Non-compliant repositories:")
            for entry in failing:
                log.warning(
                    "  %s: %d failed, %d errored",
                    entry.repository.full_name,
                    entry.checks_failed,
                    entry.checks_errored,
                )


def exit_code(report: RunnerReport, *, dry_run: bool) -> int:
    """Return the process exit status for a finished run."""
    if dry_run:
        return 0
    if report.non_compliant_repositories > 0 or report.error_repositories > 0:
        return 1
    return 0
