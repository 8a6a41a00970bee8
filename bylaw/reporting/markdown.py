"""Markdown rendering of a run report, suitable for job summaries."""

from __future__ import annotations

import typing as typ

from bylaw.models import ExecutionStatus

if typ.TYPE_CHECKING:
    from bylaw.models import RepositoryReport, RunnerReport

STATUS_LABELS = {
    ExecutionStatus.PASSED: "pass",
    ExecutionStatus.FIXED: "fixed",
    ExecutionStatus.FAILED: "fail",
    ExecutionStatus.ERRORED: "error",
}
MESSAGE_LIMIT = 120


def _truncate(text: str, limit: int = MESSAGE_LIMIT) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[: limit - 3]}..."


def _cell(text: str) -> str:
    return text.replace("|", "\\|")


def _repository_status(entry: RepositoryReport) -> str:
    if entry.checks_errored:
        return "error"
    if not entry.compliant:
        return "non-compliant"
    if entry.checks_fixed:
        return "fixed"
    return "compliant"


def render_markdown(report: RunnerReport) -> str:
    """Return a Markdown document describing the run."""
    lines = [
        "# Repository Compliance Report",
        "",
        f"Generated: {report.timestamp}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "| --- | --- |",
        f"| Total repositories | {report.total_repositories} |",
        f"| Compliant | {report.compliant_repositories} |",
        f"| Non-compliant | {report.non_compliant_repositories} |",
        f"| Fixed | {report.fixed_repositories} |",
        f"| Errors | {report.error_repositories} |",
        f"| Compliance rate | {report.compliance_percentage}% |",
        f"| Execution time | {report.execution_time_ms / 1000:.2f}s |",
    ]

    if report.repositories:
        lines += [
            "",
            "## Repositories",
            "",
            "| Repository | Status | Passed | Fixed | Failed | Errored |",
            "| --- | --- | --- | --- | --- | --- |",
        ]
        lines += [
            f"| {_cell(entry.repository.full_name)} | {_repository_status(entry)} "
            f"| {entry.checks_passed} | {entry.checks_fixed} "
            f"| {entry.checks_failed} | {entry.checks_errored} |"
            for entry in report.repositories
        ]

    failing = [entry for entry in report.repositories if not entry.compliant]
    if failing:
        lines += ["", "## Details"]
        for entry in failing:
            lines += ["", f"### {entry.repository.full_name}", ""]
            for execution in entry.checks:
                if execution.status in {ExecutionStatus.PASSED, ExecutionStatus.FIXED}:
                    continue
                label = STATUS_LABELS[execution.status]
                message = execution.result.message
                error = execution.error or execution.result.error
                if error and error not in message:
                    message = f"{message}: {error}"
                lines.append(f"- **{execution.check_name}** ({label}): {_truncate(message)}")

    return "\n".join(lines) + "\n"
