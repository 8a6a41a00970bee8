"""Branch protection check."""

from __future__ import annotations

import typing as typ

from bylaw.errors import RemediationActionError

from .base import Action, CheckContext, RemediatingCheck

if typ.TYPE_CHECKING:
    from bylaw.models import CheckResult

REQUIRED_FIELDS = (
    "required_status_checks",
    "enforce_admins",
    "required_pull_request_reviews",
    "restrictions",
)
TOGGLE_FIELDS = {
    "enforce_admins": "admin enforcement",
    "allow_force_pushes": "force pushes",
    "allow_deletions": "deletions",
    "required_conversation_resolution": "conversation resolution",
}
OPTIONAL_FIELDS = ("allow_force_pushes", "allow_deletions", "required_conversation_resolution")
REVIEW_TOGGLES = {
    "dismiss_stale_reviews": "dismiss stale reviews",
    "require_code_owner_reviews": "code owner reviews",
}


def _state(value: object) -> str:
    return "enabled" if value else "disabled"


def _enabled(value: object) -> bool:
    if isinstance(value, dict):
        return bool(value.get("enabled"))
    return bool(value)


def build_protection_payload(rules: typ.Mapping[str, typ.Any]) -> dict[str, typ.Any]:
    """Return a full `PUT .../protection` body for the desired rules.

    The forge requires the four core fields on every update; undeclared ones
    are sent as null.
    """
    payload: dict[str, typ.Any] = {field: rules.get(field) for field in REQUIRED_FIELDS}
    if payload["enforce_admins"] is None:
        payload["enforce_admins"] = False
    for field in OPTIONAL_FIELDS:
        if rules.get(field) is not None:
            payload[field] = bool(rules[field])
    return payload


def compare_protection(
    branch: str,
    current: typ.Mapping[str, typ.Any],
    expected: typ.Mapping[str, typ.Any],
) -> list[str]:
    """Return human-readable drift between live and desired protection."""
    issues: list[str] = []
    issues.extend(_compare_status_checks(branch, current, expected))
    issues.extend(_compare_reviews(branch, current, expected))

    for field, label in TOGGLE_FIELDS.items():
        if field not in expected or expected[field] is None:
            continue
        want = bool(expected[field])
        have = _enabled(current.get(field))
        if want != have:
            issues.append(
                f"Branch '{branch}' {label} should be {_state(want)} but is {_state(have)}"
            )

    if "restrictions" in expected:
        want_restrictions = bool(expected["restrictions"])
        have_restrictions = bool(current.get("restrictions"))
        if want_restrictions and not have_restrictions:
            issues.append(f"Branch '{branch}' should have push restrictions")
        elif have_restrictions and not want_restrictions:
            issues.append(
                f"Branch '{branch}' should not have push restrictions but does"
            )
    return issues


def _compare_status_checks(
    branch: str,
    current: typ.Mapping[str, typ.Any],
    expected: typ.Mapping[str, typ.Any],
) -> list[str]:
    if "required_status_checks" not in expected:
        return []
    want = expected["required_status_checks"]
    have = current.get("required_status_checks")
    if want and not have:
        return [f"Branch '{branch}' should require status checks"]
    if have and not want:
        return [f"Branch '{branch}' should not require status checks but does"]
    if not want:
        return []

    issues: list[str] = []
    strict = want.get("strict")
    if strict is not None and bool(have.get("strict")) != bool(strict):
        issues.append(
            f"Branch '{branch}' strict status checks should be {_state(strict)} "
            f"but is {_state(have.get('strict'))}"
        )
    contexts = want.get("contexts") or []
    missing = [ctx for ctx in contexts if ctx not in (have.get("contexts") or [])]
    if missing:
        issues.append(
            f"Branch '{branch}' missing required status check contexts: "
            f"{', '.join(missing)}"
        )
    return issues


def _compare_reviews(
    branch: str,
    current: typ.Mapping[str, typ.Any],
    expected: typ.Mapping[str, typ.Any],
) -> list[str]:
    if "required_pull_request_reviews" not in expected:
        return []
    want = expected["required_pull_request_reviews"]
    have = current.get("required_pull_request_reviews")
    if want and not have:
        return [f"Branch '{branch}' should require pull request reviews"]
    if have and not want:
        return [f"Branch '{branch}' should not require pull request reviews but does"]
    if not want:
        return []

    issues: list[str] = []
    count = want.get("required_approving_review_count")
    current_count = have.get("required_approving_review_count")
    if count is not None and current_count != count:
        issues.append(
            f"Branch '{branch}' should require {count} approving reviews "
            f"but requires {current_count}"
        )
    for field, label in REVIEW_TOGGLES.items():
        value = want.get(field)
        if value is not None and bool(have.get(field)) != bool(value):
            issues.append(
                f"Branch '{branch}' {label} should be {_state(value)} "
                f"but is {_state(have.get(field))}"
            )
    return issues


class BranchProtectionCheck(RemediatingCheck):
    """Verify protection rules on the branches named by policy."""

    name = "branch-protection"
    description = "Verify repository branch protection rules"
    config_key = "branch_protection"

    async def check(self, context: CheckContext) -> CheckResult:
        """Compare live protection of each declared branch against policy."""
        config = dict(context.setting("branch_protection") or {})
        patterns = config.pop("patterns", None) or []
        if not patterns:
            context.logger.warning(
                "No branch patterns declared for %s", context.repository.full_name
            )
            return self.create_result(
                compliant=True, message="No branch patterns to protect"
            )

        owner, repo = context.owner_and_name
        issues: list[str] = []
        actions: list[Action] = []
        branches: dict[str, typ.Any] = {}
        for branch in patterns:
            if await context.client.get_branch(owner, repo, branch) is None:
                context.logger.warning(
                    "Branch %r does not exist in %s, skipping",
                    branch,
                    context.repository.full_name,
                )
                continue

            current = await context.client.get_branch_protection(owner, repo, branch)
            branches[branch] = {"current": current, "expected": config}
            if current is None:
                if config:
                    issues.append(
                        f"Branch '{branch}' should have protection rules but has none"
                    )
                    actions.append(
                        {"action": "enable_protection", "branch": branch, "rules": config}
                    )
                continue

            drift = compare_protection(branch, current, config)
            if drift:
                issues.extend(drift)
                actions.append(
                    {"action": "update_protection", "branch": branch, "rules": config}
                )

        details = {"branches": branches, "expected": config, "actions_needed": actions}
        if not issues:
            return self.create_result(
                compliant=True,
                message="Branch protection rules are configured correctly",
                details=details,
            )
        return self.create_result(
            compliant=False,
            message=f"Branch protection issues found: {'; '.join(issues)}",
            details=details,
        )

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Replace the protection of one branch with the desired rules."""
        if action.get("action") not in {"enable_protection", "update_protection"}:
            message = f"Unsupported action: {action.get('action')}"
            raise RemediationActionError(message)
        owner, repo = context.owner_and_name
        branch = action["branch"]
        await context.client.update_branch_protection(
            owner, repo, branch, build_protection_payload(action["rules"])
        )
        verb = "Enabled" if action["action"] == "enable_protection" else "Updated"
        return f"{verb} protection for {branch}"
