"""Behavioural tests for end-to-end compliance runs."""

from __future__ import annotations

import asyncio
import io
import typing as typ
from contextlib import redirect_stdout

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from bylaw import cli
from bylaw.runner import ComplianceRunner, RunnerOptions
from tests.bdd.conftest import RunResult
from tests.helpers.forge import FakeForgeClient, make_config, make_repository

if typ.TYPE_CHECKING:
    from bylaw.config import ComplianceConfig
    from bylaw.models import RepositoryReport, RunnerReport

scenarios("features/compliance.feature")


@pytest.fixture
def run_state() -> dict[str, typ.Any]:
    """Scenario state for compliance runs."""
    return {}


@given("a policy that only allows squash merges", target_fixture="policy")
def given_squash_policy() -> ComplianceConfig:
    """Build a policy that disables merge commits and rebases."""
    return make_config(
        {
            "merge_methods": {
                "allow_merge_commit": False,
                "allow_squash_merge": True,
                "allow_rebase_merge": False,
            }
        }
    )


@given(
    parsers.cfparse('repositories "{names}" where "{drifting}" allows merge commits'),
    target_fixture="forge",
)
def given_repositories(names: str, drifting: str) -> FakeForgeClient:
    """Seed the fake forge with one drifting repository."""
    repositories = [
        make_repository(
            name,
            allow_merge_commit=name == drifting,
            allow_squash_merge=True,
            allow_rebase_merge=False,
        )
        for name in (item.strip() for item in names.split(","))
        if name
    ]
    return FakeForgeClient(repositories)


@given("repository updates are rejected by the forge")
def given_rejected_updates(forge: FakeForgeClient) -> None:
    """Make every settings patch fail."""
    forge.failing_writes.add("update_repository")


def _run(
    forge: FakeForgeClient,
    policy: ComplianceConfig,
    run_state: dict[str, typ.Any],
    *,
    dry_run: bool,
) -> None:
    runner = ComplianceRunner(
        typ.cast("typ.Any", forge),
        policy,
        RunnerOptions(dry_run=dry_run, concurrency=2),
    )
    run_state["report"] = asyncio.run(runner.run())


@when("I run the compliance checks")
def when_run_checks(
    forge: FakeForgeClient,
    policy: ComplianceConfig,
    run_state: dict[str, typ.Any],
) -> None:
    """Run every check with remediation."""
    _run(forge, policy, run_state, dry_run=False)


@when("I run the compliance checks as a dry run")
def when_run_dry(
    forge: FakeForgeClient,
    policy: ComplianceConfig,
    run_state: dict[str, typ.Any],
) -> None:
    """Run every check without remediation."""
    _run(forge, policy, run_state, dry_run=True)


@when("I run bylaw checks")
def when_run_bylaw_checks(cli_invocation: dict[str, RunResult]) -> None:
    """Invoke the `checks` command in-process."""
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        returncode = cli.main(["checks"])
    cli_invocation["result"] = RunResult(
        stdout=buffer.getvalue(), stderr="", returncode=returncode
    )


def _entry(run_state: dict[str, typ.Any], full_name: str) -> RepositoryReport:
    report: RunnerReport = run_state["report"]
    return next(
        entry for entry in report.repositories if entry.repository.full_name == full_name
    )


@then(parsers.cfparse("the report lists {count:d} repositories"))
def then_report_count(run_state: dict[str, typ.Any], count: int) -> None:
    """Assert the number of checked repositories."""
    assert run_state["report"].total_repositories == count


@then(parsers.cfparse('repository "{full_name}" is reported as fixed'))
def then_fixed(run_state: dict[str, typ.Any], full_name: str) -> None:
    """Assert the repository was remediated."""
    entry = _entry(run_state, full_name)
    assert entry.compliant
    assert entry.checks_fixed == 1


@then(parsers.cfparse('repository "{full_name}" is reported as non-compliant'))
def then_non_compliant(run_state: dict[str, typ.Any], full_name: str) -> None:
    """Assert the repository failed a check."""
    entry = _entry(run_state, full_name)
    assert not entry.compliant
    assert entry.checks_failed == 1


@then(parsers.cfparse('repository "{full_name}" is reported as errored'))
def then_errored(run_state: dict[str, typ.Any], full_name: str) -> None:
    """Assert the repository recorded an errored check."""
    assert _entry(run_state, full_name).checks_errored == 1


@then(parsers.cfparse('repository "{full_name}" is reported as compliant'))
def then_compliant(run_state: dict[str, typ.Any], full_name: str) -> None:
    """Assert the repository passed untouched."""
    entry = _entry(run_state, full_name)
    assert entry.compliant
    assert entry.checks_fixed == 0


@then("no settings were written")
def then_no_writes(forge: FakeForgeClient) -> None:
    """Assert the dry run left the forge untouched."""
    assert forge.writes == []


@then(parsers.cfparse("the compliance rate is {percentage:d} percent"))
def then_rate(run_state: dict[str, typ.Any], percentage: int) -> None:
    """Assert the overall compliance percentage."""
    assert run_state["report"].compliance_percentage == percentage


@then("the command succeeds")
def then_command_succeeds(cli_invocation: dict[str, RunResult]) -> None:
    """Assert the CLI exited cleanly."""
    assert cli_invocation["result"].returncode == 0


@then(parsers.cfparse('the output lists "{name}"'))
def then_output_lists(cli_invocation: dict[str, RunResult], name: str) -> None:
    """Assert a check name appears in the output."""
    assert name in cli_invocation["result"].stdout
