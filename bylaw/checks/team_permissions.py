"""Team and collaborator access check."""

from __future__ import annotations

import typing as typ

from bylaw.errors import RemediationActionError

from .base import Action, CheckContext, RemediatingCheck

if typ.TYPE_CHECKING:
    from bylaw.models import CheckResult

PERMISSION_ALIASES = {"read": "pull", "write": "push"}
KNOWN_PERMISSIONS = frozenset({"pull", "triage", "push", "maintain", "admin"})


def normalise_permission(permission: str) -> str:
    """Map the `read`/`write` aliases onto forge permission names."""
    lowered = permission.lower()
    mapped = PERMISSION_ALIASES.get(lowered, lowered)
    return mapped if mapped in KNOWN_PERMISSIONS else "pull"


def collaborator_permission(permissions: typ.Mapping[str, bool] | None) -> str:
    """Return the highest permission flagged in a collaborator payload."""
    flags = permissions or {}
    for level in ("admin", "maintain", "push", "triage"):
        if flags.get(level):
            return level
    return "pull"


class TeamPermissionsCheck(RemediatingCheck):
    """Verify team assignments and direct collaborator access."""

    name = "team-permissions"
    description = "Verify repository team permissions and collaborator access"
    config_key = "permissions"

    async def check(self, context: CheckContext) -> CheckResult:
        """Diff the assigned teams and collaborators against policy."""
        config = context.setting("permissions") or {}
        owner, repo = context.owner_and_name
        teams = await context.client.list_team_permissions(owner, repo)
        collaborators = await context.client.list_collaborators(owner, repo)

        issues: list[str] = []
        actions: list[Action] = []
        expected_teams = config.get("teams")
        if expected_teams is not None:
            self._diff_teams(context, expected_teams, teams, issues, actions)

        if config.get("remove_individual_collaborators"):
            individuals = [entry for entry in collaborators if entry.get("type") == "User"]
            if individuals:
                logins = ", ".join(str(entry.get("login")) for entry in individuals)
                issues.append(f"Individual collaborators should be removed: {logins}")
                actions.extend(
                    {
                        "action": "remove_collaborator",
                        "username": entry.get("login"),
                        "current_permission": collaborator_permission(
                            entry.get("permissions")
                        ),
                    }
                    for entry in individuals
                )

        details: dict[str, typ.Any] = {
            "current": {
                "teams": [
                    {"slug": team.get("slug"), "permission": team.get("permission")}
                    for team in teams
                ],
                "collaborators": [entry.get("login") for entry in collaborators],
            },
            "expected": dict(config),
            "actions_needed": actions,
        }
        if not issues:
            return self.create_result(
                compliant=True,
                message="Repository permissions are configured correctly",
                details=details,
            )
        return self.create_result(
            compliant=False,
            message=f"Permission issues found: {'; '.join(issues)}",
            details=details,
        )

    def _diff_teams(
        self,
        context: CheckContext,
        expected_teams: list[dict[str, typ.Any]],
        teams: typ.Sequence[dict[str, typ.Any]],
        issues: list[str],
        actions: list[Action],
    ) -> None:
        current = {str(team.get("slug")): str(team.get("permission")) for team in teams}
        expected_slugs: set[str] = set()
        for entry in expected_teams:
            slug = str(entry.get("team"))
            declared = str(entry.get("permission", "pull"))
            permission = normalise_permission(declared)
            expected_slugs.add(slug)
            assigned = current.get(slug)
            if assigned is None:
                issues.append(
                    f"Team '{slug}' should have '{declared}' permission but is not assigned"
                )
                actions.append(
                    {"action": "add_team", "team": slug, "permission": permission}
                )
            elif normalise_permission(assigned) != permission:
                issues.append(
                    f"Team '{slug}' should have '{declared}' permission "
                    f"but has '{assigned}'"
                )
                actions.append(
                    {
                        "action": "update_team",
                        "team": slug,
                        "current_permission": assigned,
                        "permission": permission,
                    }
                )

        for slug, assigned in current.items():
            if slug in expected_slugs:
                continue
            issues.append(f"Team '{slug}' has unauthorized access and should be removed")
            context.logger.warning(
                "Team %r has access to %s but is not in the policy",
                slug,
                context.repository.full_name,
            )
            actions.append(
                {"action": "remove_team", "team": slug, "current_permission": assigned}
            )

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Grant, update or revoke one team or collaborator."""
        owner, repo = context.owner_and_name
        client = context.client
        match action.get("action"):
            case "add_team" | "update_team":
                permission = typ.cast("typ.Any", action["permission"])
                await client.add_team_to_repository(
                    owner, repo, action["team"], permission
                )
                return f"Team {action['team']} granted {permission}"
            case "remove_team":
                await client.remove_team_from_repository(owner, repo, action["team"])
                return f"Team {action['team']} removed"
            case "remove_collaborator":
                await client.remove_collaborator(owner, repo, action["username"])
                return f"Collaborator {action['username']} removed"
            case other:
                message = f"Unsupported action: {other}"
                raise RemediationActionError(message)
