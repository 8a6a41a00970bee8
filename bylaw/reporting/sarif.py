"""SARIF log builder for compliance runs."""

from __future__ import annotations

import datetime as dt
import hashlib
import json
import pathlib
import typing as typ

from bylaw.models import ExecutionStatus

if typ.TYPE_CHECKING:
    from bylaw.checks import BaseCheck
    from bylaw.models import CheckExecution, RunnerReport

INFORMATION_URI = "https://docs.github.com/en/rest/repos"


class SarifBuilder:
    """Helper for constructing SARIF 2.1.0 payloads."""

    def __init__(
        self,
        *,
        tool_name: str = "bylaw",
        tool_version: str = "0.1.0",
        information_uri: str | None = None,
    ) -> None:
        """Store metadata for the SARIF run."""
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.information_uri = information_uri or INFORMATION_URI
        self._rules: dict[str, type[BaseCheck]] = {}
        self._results: list[dict[str, object]] = []

    def register_rules(self, checks: typ.Iterable[type[BaseCheck]]) -> None:
        """Register one rule per check before adding results."""
        for check in checks:
            self._rules[check.name] = check

    def add_report(self, report: RunnerReport) -> None:
        """Add a result for every failed or errored execution."""
        for entry in report.repositories:
            for execution in entry.checks:
                if execution.status in {ExecutionStatus.FAILED, ExecutionStatus.ERRORED}:
                    self._results.append(self._serialize_execution(execution))

    def build(self) -> dict[str, object]:
        """Return the SARIF document."""
        run = {
            "tool": {
                "driver": {
                    "name": self.tool_name,
                    "version": self.tool_version,
                    "informationUri": self.information_uri,
                    "rules": [
                        self._serialize_rule(rule) for rule in self._rules.values()
                    ],
                }
            },
            "results": self._results,
            "invocations": [
                {
                    "executionSuccessful": True,
                    "endTimeUtc": dt.datetime.now(tz=dt.UTC).isoformat(),
                }
            ],
        }
        return {
            "version": "2.1.0",
            "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
            "runs": [run],
        }

    def render(self) -> str:
        """Return the SARIF document as indented JSON."""
        return json.dumps(self.build(), indent=2)

    def write(self, path: pathlib.Path) -> pathlib.Path:
        """Persist the SARIF log to disk."""
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        return path

    def _serialize_execution(self, execution: CheckExecution) -> dict[str, object]:
        errored = execution.status is ExecutionStatus.ERRORED
        message = execution.result.message
        error = execution.error or execution.result.error
        if error and error not in message:
            message = f"{message}: {error}"
        fingerprint_source = (
            f"{execution.check_name}-{execution.repository.full_name}-{message}"
        )
        fingerprint = hashlib.sha256(fingerprint_source.encode()).hexdigest()
        serialized: dict[str, object] = {
            "ruleId": execution.check_name,
            "level": "warning" if errored else "error",
            "message": {"text": message},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {
                            "uri": f"repo:{execution.repository.full_name}"
                        }
                    }
                }
            ],
            "partialFingerprints": {"findingId": fingerprint},
        }
        actions = execution.result.actions_needed
        if actions:
            serialized["properties"] = {"actions_needed": actions}
        return serialized

    def _serialize_rule(self, check: type[BaseCheck]) -> dict[str, object]:
        return {
            "id": check.name,
            "name": check.__name__,
            "shortDescription": {"text": check.description},
            "defaultConfiguration": {"level": "error"},
            "properties": {"policyKey": check.config_key},
        }
