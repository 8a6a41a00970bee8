"""Repository archival check."""

from __future__ import annotations

import datetime as dt
import typing as typ

from bylaw.errors import RemediationActionError
from bylaw.policy import glob_match

from .base import Action, CheckContext, RemediatingCheck

if typ.TYPE_CHECKING:
    from bylaw.models import CheckResult

DEFAULT_INACTIVE_DAYS = 365
STALE_RECOMMENDATION_DAYS = 180


def _parse_timestamp(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    parsed = dt.datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.UTC)


def _first_match(name: str, patterns: typ.Iterable[str]) -> str | None:
    return next((pattern for pattern in patterns if glob_match(name, pattern)), None)


class ArchivedReposCheck(RemediatingCheck):
    """Verify that repositories are archived, or kept active, per policy."""

    name = "archived-repos"
    description = "Verify repository archival status and cleanup"
    config_key = "archived_repos"

    def __init__(self, *, clock: typ.Callable[[], dt.datetime] | None = None) -> None:
        """Use `clock` to measure inactivity; defaults to the current UTC time."""
        self._clock = clock or (lambda: dt.datetime.now(tz=dt.UTC))

    async def check(self, context: CheckContext) -> CheckResult:
        """Compare archival state against inactivity, patterns and overrides."""
        config = context.setting("archived_repos") or {}
        repository = context.repository
        issues: list[str] = []
        actions: list[Action] = []
        current: dict[str, typ.Any] = {
            "archived": repository.archived,
            "updated_at": repository.updated_at,
            "pushed_at": repository.pushed_at,
        }
        expected: dict[str, typ.Any] = dict(config)

        def want(action: str, **fields: typ.Any) -> None:
            if not any(entry["action"] == action for entry in actions):
                actions.append({"action": action, **fields})

        if config.get("archive_inactive"):
            declared = config.get("inactive_days")
            threshold = DEFAULT_INACTIVE_DAYS if declared is None else int(declared)
            expected["inactive_threshold_days"] = threshold
            last_activity = _parse_timestamp(repository.pushed_at or repository.updated_at)
            if last_activity is not None:
                days = (self._clock() - last_activity).days
                current["days_since_activity"] = days
                if days >= threshold and not repository.archived:
                    issues.append(
                        f"Repository has been inactive for {days} days "
                        f"(threshold: {threshold}) and should be archived"
                    )
                    want("archive_repository", reason="inactive", days_inactive=days)

        archive_pattern = _first_match(repository.name, config.get("archive_patterns") or [])
        if archive_pattern and not repository.archived:
            issues.append("Repository name matches archival pattern but is not archived")
            want("archive_repository", reason="name_pattern", matched_pattern=archive_pattern)

        keep_pattern = _first_match(
            repository.name, config.get("keep_active_patterns") or []
        )
        if keep_pattern and repository.archived:
            issues.append("Repository name matches keep-active pattern but is archived")
            want(
                "unarchive_repository",
                reason="keep_active_pattern",
                matched_pattern=keep_pattern,
            )

        specific = (config.get("specific_repos") or {}).get(repository.name)
        if isinstance(specific, dict) and specific.get("archived") is not None:
            should_archive = bool(specific["archived"])
            if should_archive != repository.archived:
                issues.append(
                    f"Repository should be {'archived' if should_archive else 'unarchived'} "
                    f"but is {'archived' if repository.archived else 'active'}"
                )
                want(
                    "archive_repository" if should_archive else "unarchive_repository",
                    reason="specific_configuration",
                )

        details: dict[str, typ.Any] = {
            "current": current,
            "expected": expected,
            "actions_needed": actions,
        }
        if not repository.archived:
            await self._add_metrics(context, details)

        if not issues:
            return self.create_result(
                compliant=True,
                message="Repository archival status is configured correctly",
                details=details,
            )
        return self.create_result(
            compliant=False,
            message=f"Repository archival issues found: {'; '.join(issues)}",
            details=details,
        )

    async def _add_metrics(self, context: CheckContext, details: dict[str, typ.Any]) -> None:
        owner, repo = context.owner_and_name
        live = await context.client.get_repository(owner, repo)
        stars = int(live.setting("stargazers_count") or 0)
        forks = int(live.setting("forks_count") or 0)
        details["current"]["metrics"] = {
            "stars": stars,
            "forks": forks,
            "open_issues": int(live.setting("open_issues_count") or 0),
            "size": int(live.setting("size") or 0),
            "language": live.setting("language"),
        }
        idle_days = details["current"].get("days_since_activity") or 0
        if stars == 0 and forks == 0 and idle_days > STALE_RECOMMENDATION_DAYS:
            recommendation = (
                "Repository has no stars or forks and has been inactive for "
                "6+ months; consider archiving"
            )
            details["recommendations"] = [recommendation]
            context.logger.info("%s: %s", context.repository.full_name, recommendation)

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Archive or unarchive the repository."""
        owner, repo = context.owner_and_name
        match action.get("action"):
            case "archive_repository":
                archived = True
            case "unarchive_repository":
                archived = False
            case other:
                message = f"Unsupported action: {other}"
                raise RemediationActionError(message)
        await context.client.update_repository(owner, repo, {"archived": archived})
        verb = "Archived" if archived else "Unarchived"
        return f"{verb} repository (reason: {action.get('reason')})"
