"""JSON renderings of a run report."""

from __future__ import annotations

import json
import typing as typ

from bylaw.models import ExecutionStatus

if typ.TYPE_CHECKING:
    from bylaw.models import RunnerReport


def render_json(report: RunnerReport) -> str:
    """Return the full report as indented JSON."""
    return json.dumps(report.as_dict(), indent=2)


def render_json_summary(report: RunnerReport) -> str:
    """Return the counters plus the failing checks of each failing repository."""
    summary = {
        "timestamp": report.timestamp,
        "compliance_percentage": report.compliance_percentage,
        "total_repositories": report.total_repositories,
        "compliant_repositories": report.compliant_repositories,
        "non_compliant_repositories": report.non_compliant_repositories,
        "fixed_repositories": report.fixed_repositories,
        "error_repositories": report.error_repositories,
        "execution_time_ms": round(report.execution_time_ms, 3),
        "non_compliant": [
            {
                "name": entry.repository.full_name,
                "failed_checks": [
                    execution.check_name
                    for execution in entry.checks
                    if execution.status
                    in {ExecutionStatus.FAILED, ExecutionStatus.ERRORED}
                ],
            }
            for entry in report.repositories
            if not entry.compliant
        ],
    }
    return json.dumps(summary, indent=2)
