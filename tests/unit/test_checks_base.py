"""Unit tests for the check contract and remediation flow."""

from __future__ import annotations

import typing as typ

import pytest

from bylaw.checks.base import (
    ERROR_ALL_ACTIONS_FAILED,
    MESSAGE_NO_ACTIONS,
    BaseCheck,
    CheckContext,
    RemediatingCheck,
    manual_action_required,
)
from bylaw.errors import ForgeError, RemediationActionError
from bylaw.models import CheckResult
from tests.helpers.forge import FakeForgeClient, make_config, make_repository


class ReadOnlyCheck(BaseCheck):
    name = "read-only"
    description = "Always passes"

    def __init__(self) -> None:
        self.calls = 0

    async def check(self, context: CheckContext) -> CheckResult:
        self.calls += 1
        return CheckResult.passed("ok")


class ScriptedCheck(RemediatingCheck):
    """Report the scripted actions and replay scripted outcomes."""

    name = "scripted"
    description = "Replays canned actions"
    config_key = "merge_methods"

    def __init__(
        self,
        actions: list[dict[str, typ.Any]] | None,
        failures: dict[str, Exception] | None = None,
        *,
        compliant: bool = False,
    ) -> None:
        self.actions = actions
        self.failures = failures or {}
        self.compliant = compliant
        self.applied: list[str] = []

    async def check(self, context: CheckContext) -> CheckResult:
        details = None if self.actions is None else {"actions_needed": self.actions}
        if self.compliant:
            return CheckResult.passed("fine")
        return CheckResult.failed("drift", details)

    async def apply_action(
        self, context: CheckContext, action: dict[str, typ.Any]
    ) -> str | None:
        name = action["action"]
        if name in self.failures:
            raise self.failures[name]
        self.applied.append(name)
        return f"{name} done"


@pytest.fixture
def context(make_context: typ.Callable[..., CheckContext]) -> CheckContext:
    config = make_config({"merge_methods": {"allow_squash_merge": True}})
    return make_context(FakeForgeClient(), make_repository("service"), config)


def test_should_run_without_config_key(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """Checks without a policy key always apply."""
    context = make_context(FakeForgeClient(), make_repository("service"), make_config())
    assert ReadOnlyCheck().should_run(context) is True


def test_should_run_follows_resolved_policy(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """A keyed check applies only when its policy resolves."""
    check = ScriptedCheck([])
    repository = make_repository("service")
    with_policy = make_context(
        FakeForgeClient(),
        repository,
        make_config({"merge_methods": {"allow_squash_merge": True}}),
    )
    without_policy = make_context(FakeForgeClient(), repository, make_config())

    assert check.should_run(with_policy) is True
    assert check.should_run(without_policy) is False


@pytest.mark.asyncio
async def test_default_fix_delegates_to_check(context: CheckContext) -> None:
    """Read-only checks answer `fix` with their check result."""
    check = ReadOnlyCheck()
    result = await check.fix(context)
    assert result.compliant is True
    assert check.calls == 1


@pytest.mark.asyncio
async def test_dry_run_never_applies_actions(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """Dry runs report drift without touching the forge."""
    check = ScriptedCheck([{"action": "one"}])
    context = make_context(
        FakeForgeClient(),
        make_repository("service"),
        make_config({"merge_methods": {}}),
        dry_run=True,
    )

    result = await check.fix(context)

    assert result.compliant is False
    assert check.applied == []


@pytest.mark.asyncio
async def test_compliant_result_is_returned_unchanged(context: CheckContext) -> None:
    """Nothing is applied when the repository already complies."""
    check = ScriptedCheck([{"action": "one"}], compliant=True)
    result = await check.fix(context)
    assert result.message == "fine"
    assert check.applied == []


@pytest.mark.asyncio
async def test_partial_failure_still_counts_as_fixed(context: CheckContext) -> None:
    """One failing action does not stop its siblings."""
    check = ScriptedCheck(
        [{"action": "one"}, {"action": "two"}, {"action": "three"}],
        {"two": ForgeError("PUT /x failed: 500")},
    )

    result = await check.fix(context)

    assert result.compliant is True
    assert result.fixed is True
    assert check.applied == ["one", "three"]
    details = typ.cast("dict[str, typ.Any]", result.details)
    assert details["total_actions"] == 3
    assert [entry["action"] for entry in details["applied_actions"]] == ["one", "three"]
    assert details["failed_actions"] == [
        {"action": "two", "error": "PUT /x failed: 500"}
    ]


@pytest.mark.asyncio
async def test_all_actions_failing_is_an_error(context: CheckContext) -> None:
    """When no action succeeds the result carries an error."""
    check = ScriptedCheck(
        [{"action": "one"}, {"action": "two"}],
        {
            "one": RemediationActionError("manual"),
            "two": ForgeError("denied"),
        },
    )

    result = await check.fix(context)

    assert result.compliant is False
    assert result.fixed is False
    assert result.error == ERROR_ALL_ACTIONS_FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize("actions", [None, []])
async def test_no_actions_is_compliant(
    context: CheckContext, actions: list[dict[str, typ.Any]] | None
) -> None:
    """A violation without recorded actions has nothing to apply."""
    check = ScriptedCheck(actions)
    result = await check.fix(context)
    assert result.compliant is True
    assert result.fixed is False
    assert result.message == MESSAGE_NO_ACTIONS


@pytest.mark.asyncio
async def test_unexpected_errors_propagate(context: CheckContext) -> None:
    """Errors outside the remediation taxonomy escape to the runner."""
    check = ScriptedCheck([{"action": "one"}], {"one": KeyError("bug")})
    with pytest.raises(KeyError):
        await check.fix(context)


def test_manual_action_required_raises() -> None:
    """Manual actions surface their reason."""
    with pytest.raises(RemediationActionError, match="Manual intervention required"):
        manual_action_required({"action": "x", "reason": "needs an owner"})


def test_fixed_result_must_be_compliant() -> None:
    """A fixed yet non-compliant result is rejected."""
    with pytest.raises(ValueError, match="fixed"):
        CheckResult(compliant=False, message="bad", fixed=True)
