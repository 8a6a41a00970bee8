"""Shared data structures for compliance runs."""

from __future__ import annotations

import dataclasses
import enum
import math
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

ERROR_FIXED_NOT_COMPLIANT = "A fixed result must also be compliant."


@dataclasses.dataclass(frozen=True)
class Repository:
    """Repository snapshot fetched from the GitHub API."""

    owner: str
    name: str
    full_name: str
    private: bool = False
    archived: bool = False
    default_branch: str = "main"
    updated_at: str | None = None
    pushed_at: str | None = None
    payload: cabc.Mapping[str, typ.Any] = dataclasses.field(
        default_factory=dict, compare=False, repr=False
    )

    @classmethod
    def from_payload(cls, payload: cabc.Mapping[str, typ.Any]) -> Repository:
        """Build a snapshot from a raw `GET /repos/{owner}/{repo}` payload."""
        full_name = str(payload.get("full_name") or "")
        owner_data = payload.get("owner") or {}
        owner = str(owner_data.get("login") or full_name.partition("/")[0])
        name = str(payload.get("name") or full_name.partition("/")[2])
        return cls(
            owner=owner,
            name=name,
            full_name=full_name or f"{owner}/{name}",
            private=bool(payload.get("private", False)),
            archived=bool(payload.get("archived", False)),
            default_branch=str(payload.get("default_branch") or "main"),
            updated_at=payload.get("updated_at"),
            pushed_at=payload.get("pushed_at"),
            payload=dict(payload),
        )

    def setting(self, key: str, default: typ.Any = None) -> typ.Any:  # noqa: ANN401
        """Return a raw repository attribute from the API payload."""
        return self.payload.get(key, default)

    def summary(self) -> RepositorySummary:
        """Return the subset of attributes copied into reports."""
        return RepositorySummary(
            name=self.name,
            full_name=self.full_name,
            private=self.private,
            archived=self.archived,
        )


@dataclasses.dataclass(frozen=True)
class RepositorySummary:
    """Repository identity recorded in reports."""

    name: str
    full_name: str
    private: bool
    archived: bool


class ExecutionStatus(enum.StrEnum):
    """Outcome class of a single check execution."""

    PASSED = "passed"
    FIXED = "fixed"
    FAILED = "failed"
    ERRORED = "errored"


@dataclasses.dataclass(frozen=True)
class CheckResult:
    """Canonical result shape returned by every check."""

    compliant: bool
    message: str
    details: dict[str, typ.Any] | None = None
    fixed: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        """Reject results that claim a fix without compliance."""
        if self.fixed and not self.compliant:
            raise ValueError(ERROR_FIXED_NOT_COMPLIANT)

    @classmethod
    def passed(
        cls, message: str, details: dict[str, typ.Any] | None = None
    ) -> CheckResult:
        """Return a compliant result."""
        return cls(compliant=True, message=message, details=details)

    @classmethod
    def failed(
        cls, message: str, details: dict[str, typ.Any] | None = None
    ) -> CheckResult:
        """Return a policy violation."""
        return cls(compliant=False, message=message, details=details)

    @classmethod
    def remediated(
        cls, message: str, details: dict[str, typ.Any] | None = None
    ) -> CheckResult:
        """Return a result for a violation that has been fixed."""
        return cls(compliant=True, message=message, details=details, fixed=True)

    @classmethod
    def errored(cls, message: str, error: str) -> CheckResult:
        """Return a result for an execution that could not complete."""
        return cls(compliant=False, message=message, error=error)

    @property
    def actions_needed(self) -> list[dict[str, typ.Any]]:
        """Return the remediation actions recorded by the check."""
        if not self.details:
            return []
        actions = self.details.get("actions_needed")
        return list(actions) if isinstance(actions, list) else []

    def as_dict(self) -> dict[str, typ.Any]:
        """Serialise the result for JSON output."""
        payload: dict[str, typ.Any] = {
            "compliant": self.compliant,
            "message": self.message,
        }
        if self.details is not None:
            payload["details"] = self.details
        if self.fixed:
            payload["fixed"] = True
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclasses.dataclass(frozen=True)
class RemediationOutcome:
    """Result of applying one remediation action."""

    action: dict[str, typ.Any]
    succeeded: bool
    detail: str | None = None

    def as_dict(self) -> dict[str, typ.Any]:
        """Serialise the outcome for result details."""
        payload = dict(self.action)
        if self.detail:
            payload["detail" if self.succeeded else "error"] = self.detail
        return payload


@dataclasses.dataclass(frozen=True)
class CheckExecution:
    """Record of one check executed against one repository."""

    check_name: str
    repository: Repository
    result: CheckResult
    duration_ms: float
    error: str | None = None

    @property
    def status(self) -> ExecutionStatus:
        """Classify the execution into exactly one outcome."""
        if self.error is not None or self.result.error is not None:
            return ExecutionStatus.ERRORED
        if self.result.compliant:
            return (
                ExecutionStatus.FIXED if self.result.fixed else ExecutionStatus.PASSED
            )
        return ExecutionStatus.FAILED

    def as_dict(self) -> dict[str, typ.Any]:
        """Serialise the execution for JSON output."""
        payload: dict[str, typ.Any] = {
            "check_name": self.check_name,
            "repository": self.repository.full_name,
            "status": str(self.status),
            "result": self.result.as_dict(),
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclasses.dataclass(frozen=True)
class RepositoryReport:
    """Aggregated outcome of every check run against one repository."""

    repository: RepositorySummary
    compliant: bool
    checks_run: int
    checks_passed: int
    checks_failed: int
    checks_fixed: int
    checks_errored: int
    checks: tuple[CheckExecution, ...]

    @classmethod
    def from_executions(
        cls,
        repository: Repository,
        executions: cabc.Sequence[CheckExecution],
    ) -> RepositoryReport:
        """Derive the per-repository counters from check executions."""
        counts = dict.fromkeys(ExecutionStatus, 0)
        for execution in executions:
            counts[execution.status] += 1
        failed = counts[ExecutionStatus.FAILED]
        errored = counts[ExecutionStatus.ERRORED]
        return cls(
            repository=repository.summary(),
            compliant=failed == 0 and errored == 0,
            checks_run=len(executions),
            checks_passed=counts[ExecutionStatus.PASSED],
            checks_failed=failed,
            checks_fixed=counts[ExecutionStatus.FIXED],
            checks_errored=errored,
            checks=tuple(executions),
        )

    def as_dict(self) -> dict[str, typ.Any]:
        """Serialise the report for JSON output."""
        return {
            "repository": dataclasses.asdict(self.repository),
            "compliant": self.compliant,
            "checks_run": self.checks_run,
            "checks_passed": self.checks_passed,
            "checks_failed": self.checks_failed,
            "checks_fixed": self.checks_fixed,
            "checks_errored": self.checks_errored,
            "checks": [execution.as_dict() for execution in self.checks],
        }


def compliance_percentage(compliant: int, total: int) -> int:
    """Return the rounded share of compliant repositories.

    Halves round up so that, for example, one compliant repository out of
    eight reports 13 rather than 12.
    """
    if total == 0:
        return 100
    return math.floor(100 * compliant / total + 0.5)


@dataclasses.dataclass(frozen=True)
class RunnerReport:
    """Summary of a whole compliance run."""

    total_repositories: int
    compliant_repositories: int
    non_compliant_repositories: int
    fixed_repositories: int
    error_repositories: int
    repositories: tuple[RepositoryReport, ...]
    compliance_percentage: int
    execution_time_ms: float
    timestamp: str

    @classmethod
    def build(
        cls,
        reports: cabc.Sequence[RepositoryReport],
        *,
        execution_time_ms: float,
        timestamp: str,
    ) -> RunnerReport:
        """Derive the run counters from the per-repository reports."""
        total = len(reports)
        compliant = sum(1 for report in reports if report.compliant)
        return cls(
            total_repositories=total,
            compliant_repositories=compliant,
            non_compliant_repositories=total - compliant,
            fixed_repositories=sum(1 for report in reports if report.checks_fixed),
            error_repositories=sum(1 for report in reports if report.checks_errored),
            repositories=tuple(reports),
            compliance_percentage=compliance_percentage(compliant, total),
            execution_time_ms=execution_time_ms,
            timestamp=timestamp,
        )

    def as_dict(self) -> dict[str, typ.Any]:
        """Serialise the report for JSON output."""
        return {
            "total_repositories": self.total_repositories,
            "compliant_repositories": self.compliant_repositories,
            "non_compliant_repositories": self.non_compliant_repositories,
            "fixed_repositories": self.fixed_repositories,
            "error_repositories": self.error_repositories,
            "compliance_percentage": self.compliance_percentage,
            "execution_time_ms": round(self.execution_time_ms, 3),
            "timestamp": self.timestamp,
            "repositories": [report.as_dict() for report in self.repositories],
        }
