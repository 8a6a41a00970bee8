"""Contract shared by every compliance check.

A check inspects one repository against its effective policy and returns a
`CheckResult`. Checks that can remediate drift derive from
`RemediatingCheck`, which applies each recorded action independently and
folds the per-action outcomes into a single fixed or errored result.
"""

from __future__ import annotations

import abc
import dataclasses
import typing as typ

from bylaw.errors import ForgeError, RemediationActionError
from bylaw.models import CheckResult, RemediationOutcome
from bylaw.policy import resolve_setting

if typ.TYPE_CHECKING:
    import logging

    from bylaw.config import ComplianceConfig
    from bylaw.forge import ForgeClient
    from bylaw.models import Repository

ERROR_ALL_ACTIONS_FAILED = "All actions failed or require manual intervention"
MESSAGE_NO_ACTIONS = "No actions needed to apply"

Action = dict[str, typ.Any]


@dataclasses.dataclass(frozen=True)
class CheckContext:
    """Everything a check needs to evaluate one repository."""

    client: ForgeClient
    config: ComplianceConfig
    dry_run: bool
    repository: Repository
    logger: logging.Logger

    def setting(self, key: str) -> typ.Any:  # noqa: ANN401 - free-form policy
        """Return the effective policy for `key`, or None when undeclared."""
        return resolve_setting(self.config, self.repository, key)

    @property
    def owner_and_name(self) -> tuple[str, str]:
        """Return the `(owner, name)` pair addressed by forge calls."""
        return self.repository.owner, self.repository.name


class BaseCheck(abc.ABC):
    """A read-only policy check."""

    name: typ.ClassVar[str]
    description: typ.ClassVar[str]
    config_key: typ.ClassVar[str | None] = None

    def should_run(self, context: CheckContext) -> bool:
        """Return True when a policy applies to the repository."""
        if self.config_key is None:
            return True
        return context.setting(self.config_key) is not None

    @abc.abstractmethod
    async def check(self, context: CheckContext) -> CheckResult:
        """Compare live state against the effective policy."""

    async def fix(self, context: CheckContext) -> CheckResult:
        """Return the check result; read-only checks never remediate."""
        return await self.check(context)

    def create_result(
        self,
        *,
        compliant: bool,
        message: str,
        details: dict[str, typ.Any] | None = None,
    ) -> CheckResult:
        """Build a pass or failure result."""
        if compliant:
            return CheckResult.passed(message, details)
        return CheckResult.failed(message, details)


class RemediatingCheck(BaseCheck):
    """A check able to apply the actions it records in `actions_needed`."""

    @abc.abstractmethod
    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Apply one action; raise `RemediationActionError` when it cannot."""

    async def fix(self, context: CheckContext) -> CheckResult:
        """Check the repository and apply the recorded actions."""
        if context.dry_run:
            return await self.check(context)

        result = await self.check(context)
        if result.compliant or result.error is not None:
            return result

        actions = result.actions_needed
        if not actions:
            return CheckResult.passed(MESSAGE_NO_ACTIONS)

        outcomes = [await self._apply(context, action) for action in actions]
        applied = [outcome.as_dict() for outcome in outcomes if outcome.succeeded]
        failed = [outcome.as_dict() for outcome in outcomes if not outcome.succeeded]

        if not applied:
            return CheckResult(
                compliant=False,
                message=f"Failed to fix {self.name} for {context.repository.full_name}",
                details={"failed_actions": failed, "total_actions": len(actions)},
                error=ERROR_ALL_ACTIONS_FAILED,
            )

        return CheckResult.remediated(
            f"Applied {len(applied)} of {len(actions)} actions",
            {
                "applied_actions": applied,
                "failed_actions": failed,
                "total_actions": len(actions),
            },
        )

    async def _apply(self, context: CheckContext, action: Action) -> RemediationOutcome:
        try:
            detail = await self.apply_action(context, action)
        except (ForgeError, RemediationActionError) as error:
            context.logger.warning(
                "%s: action %s failed on %s: %s",
                self.name,
                action.get("action"),
                context.repository.full_name,
                error,
            )
            return RemediationOutcome(action=action, succeeded=False, detail=str(error))
        context.logger.info(
            "%s: applied %s on %s",
            self.name,
            action.get("action"),
            context.repository.full_name,
        )
        return RemediationOutcome(action=action, succeeded=True, detail=detail)


def manual_action_required(action: Action) -> typ.NoReturn:
    """Raise for an action that cannot be automated."""
    reason = action.get("reason") or action.get("action")
    message = f"Manual intervention required: {reason}"
    raise RemediationActionError(message)
