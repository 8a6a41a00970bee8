"""Repository feature, visibility and template check."""

from __future__ import annotations

import typing as typ

from bylaw.errors import RemediationActionError

from .base import Action, CheckContext, RemediatingCheck, manual_action_required

if typ.TYPE_CHECKING:
    from bylaw.forge import ForgeClient
    from bylaw.models import CheckResult, Repository

FEATURE_KEYS = ("has_issues", "has_projects", "has_wiki", "has_discussions", "has_pages")
GENERAL_KEYS = (
    "allow_auto_merge",
    "delete_branch_on_merge",
    "allow_update_branch",
    "use_squash_pr_title_as_default",
    "allow_merge_commit",
    "allow_squash_merge",
    "allow_rebase_merge",
)
ISSUE_TEMPLATE_PATHS = (
    ".github/ISSUE_TEMPLATE",
    ".github/ISSUE_TEMPLATE.md",
    "ISSUE_TEMPLATE.md",
)
PULL_REQUEST_TEMPLATE_PATHS = (
    ".github/pull_request_template.md",
    ".github/PULL_REQUEST_TEMPLATE.md",
    "PULL_REQUEST_TEMPLATE.md",
    ".github/PULL_REQUEST_TEMPLATE",
)


def _state(value: object) -> str:
    return "enabled" if value else "disabled"


def _compare_toggles(
    declared: typ.Mapping[str, typ.Any],
    keys: tuple[str, ...],
    live: Repository,
    issues: list[str],
    patch: dict[str, typ.Any],
) -> dict[str, typ.Any]:
    state = {key: live.setting(key) for key in keys}
    for key, expected in declared.items():
        if expected is None:
            continue
        current = state.get(key)
        if current is None:
            issues.append(f"Unable to determine current value for {key}")
            continue
        if bool(current) != bool(expected):
            label = key.replace("_", " ")
            issues.append(
                f"{label} should be {_state(expected)} but is {_state(current)}"
            )
            patch[key] = bool(expected)
    return state


async def _any_path_exists(
    client: ForgeClient, owner: str, repo: str, paths: tuple[str, ...]
) -> bool:
    for path in paths:
        if await client.path_exists(owner, repo, path):
            return True
    return False


class RepositorySettingsCheck(RemediatingCheck):
    """Verify feature toggles, general settings, visibility and templates."""

    name = "repository-settings"
    description = "Verify repository feature toggles, visibility, and workflow settings"
    config_key = "repository_settings"

    async def check(self, context: CheckContext) -> CheckResult:
        """Compare repository settings against policy."""
        config = context.setting("repository_settings") or {}
        owner, repo = context.owner_and_name
        live = await context.client.get_repository(owner, repo)
        issues: list[str] = []
        patch: dict[str, typ.Any] = {}
        actions: list[Action] = []

        features = _compare_toggles(
            config.get("features") or {}, FEATURE_KEYS, live, issues, patch
        )
        general = _compare_toggles(
            config.get("general") or {}, GENERAL_KEYS, live, issues, patch
        )

        visibility = {
            "private": live.private,
            "visibility": live.setting("visibility")
            or ("private" if live.private else "public"),
        }
        visibility_policy = config.get("visibility") or {}
        if visibility_policy.get("enforce_private") and not visibility["private"]:
            issues.append("Repository must be private but is not")
            patch["private"] = True
        elif (
            visibility_policy.get("allow_public") is False
            and visibility["visibility"] == "public"
        ):
            issues.append("Public repositories are not allowed by policy")
            patch["private"] = True

        if patch:
            actions.append({"action": "update_settings", "settings": patch})

        templates = await self._check_templates(
            context, config.get("templates") or {}, issues, actions
        )

        details: dict[str, typ.Any] = {
            "current": {
                "features": features,
                "visibility": visibility,
                "general": general,
                "templates": templates,
            },
            "expected": dict(config),
            "actions_needed": actions,
        }
        if not issues:
            return self.create_result(
                compliant=True,
                message="Repository settings comply with policy",
                details=details,
            )
        return self.create_result(
            compliant=False,
            message=f"Repository settings configuration issues: {'; '.join(issues)}",
            details=details,
        )

    async def _check_templates(
        self,
        context: CheckContext,
        policy: typ.Mapping[str, typ.Any],
        issues: list[str],
        actions: list[Action],
    ) -> dict[str, bool]:
        owner, repo = context.owner_and_name
        state: dict[str, bool] = {}
        if policy.get("require_issue_templates") is not None:
            present = await _any_path_exists(
                context.client, owner, repo, ISSUE_TEMPLATE_PATHS
            )
            state["issue_templates_present"] = present
            if policy["require_issue_templates"] and not present:
                issues.append("Issue templates are required but were not found")
                actions.append(
                    {
                        "action": "create_issue_templates",
                        "reason": "issue templates must be added to the repository",
                        "recommended_paths": list(ISSUE_TEMPLATE_PATHS),
                    }
                )
        if policy.get("require_pr_template") is not None:
            present = await _any_path_exists(
                context.client, owner, repo, PULL_REQUEST_TEMPLATE_PATHS
            )
            state["pull_request_template_present"] = present
            if policy["require_pr_template"] and not present:
                issues.append("Pull request template is required but was not found")
                actions.append(
                    {
                        "action": "create_pull_request_template",
                        "reason": "a pull request template must be added to the repository",
                        "recommended_paths": list(PULL_REQUEST_TEMPLATE_PATHS),
                    }
                )
        return state

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Patch repository settings; template actions need a human."""
        owner, repo = context.owner_and_name
        match action.get("action"):
            case "update_settings":
                await context.client.update_repository(owner, repo, action["settings"])
                return "Repository settings configuration has been updated"
            case "create_issue_templates" | "create_pull_request_template":
                manual_action_required(action)
            case other:
                message = f"Unsupported action: {other}"
                raise RemediationActionError(message)
