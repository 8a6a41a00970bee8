"""Merge strategy check."""

from __future__ import annotations

import typing as typ

from bylaw.errors import RemediationActionError

from .base import Action, CheckContext, RemediatingCheck

if typ.TYPE_CHECKING:
    from bylaw.models import CheckResult

MERGE_SETTINGS = ("allow_merge_commit", "allow_squash_merge", "allow_rebase_merge")
LABELS = {
    "allow_merge_commit": "Merge commits",
    "allow_squash_merge": "Squash merges",
    "allow_rebase_merge": "Rebase merges",
}


def _state(value: object) -> str:
    return "enabled" if value else "disabled"


class MergeMethodsCheck(RemediatingCheck):
    """Verify which merge strategies a repository allows."""

    name = "merge-methods"
    description = "Verify repository merge methods configuration"
    config_key = "merge_methods"

    async def check(self, context: CheckContext) -> CheckResult:
        """Compare the allowed merge strategies against policy."""
        config = context.setting("merge_methods") or {}
        owner, repo = context.owner_and_name
        repository = await context.client.get_repository(owner, repo)

        current = {key: repository.setting(key) for key in MERGE_SETTINGS}
        desired = {
            key: bool(config[key]) for key in MERGE_SETTINGS if config.get(key) is not None
        }
        issues = [
            f"{LABELS[key]} should be {_state(expected)} but is {_state(current[key])}"
            for key, expected in desired.items()
            if bool(current[key]) != expected
        ]
        details: dict[str, typ.Any] = {"current": current, "expected": dict(config)}
        if not issues:
            return self.create_result(
                compliant=True,
                message="Repository merge methods are configured correctly",
                details=details,
            )
        details["actions_needed"] = [
            {"action": "update_merge_methods", "settings": desired}
        ]
        return self.create_result(
            compliant=False,
            message=f"Merge methods configuration issues: {', '.join(issues)}",
            details=details,
        )

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Patch the repository with the desired merge settings."""
        if action.get("action") != "update_merge_methods":
            message = f"Unsupported action: {action.get('action')}"
            raise RemediationActionError(message)
        owner, repo = context.owner_and_name
        await context.client.update_repository(owner, repo, action["settings"])
        return "Merge methods configuration has been updated"
