"""Unit tests for the team permission check."""

from __future__ import annotations

import typing as typ

import pytest

from bylaw.checks import TeamPermissionsCheck
from bylaw.checks.team_permissions import collaborator_permission, normalise_permission
from tests.helpers.forge import FakeForgeClient, make_config, make_repository

if typ.TYPE_CHECKING:
    from bylaw.checks import CheckContext


@pytest.mark.parametrize(
    ("declared", "expected"),
    [("read", "pull"), ("write", "push"), ("Admin", "admin"), ("bogus", "pull")],
)
def test_normalise_permission(declared: str, expected: str) -> None:
    """Aliases map onto forge permission names."""
    assert normalise_permission(declared) == expected


def test_collaborator_permission_picks_highest_flag() -> None:
    """The highest granted level wins."""
    assert collaborator_permission({"push": True, "maintain": True}) == "maintain"
    assert collaborator_permission(None) == "pull"


def _setup() -> tuple[FakeForgeClient, typ.Any]:
    repository = make_repository("service")
    client = FakeForgeClient([repository])
    client.teams["acme/service"] = [
        {"slug": "core", "permission": "push"},
        {"slug": "ops", "permission": "pull"},
        {"slug": "contractors", "permission": "admin"},
    ]
    client.collaborators["acme/service"] = [
        {"login": "alice", "type": "User", "permissions": {"push": True}},
        {"login": "ci-bot", "type": "Bot", "permissions": {"pull": True}},
    ]
    return client, repository


POLICY = {
    "permissions": {
        "teams": [
            {"team": "core", "permission": "write"},
            {"team": "ops", "permission": "maintain"},
            {"team": "security", "permission": "read"},
        ],
        "remove_individual_collaborators": True,
    }
}


@pytest.mark.asyncio
async def test_check_diffs_teams_and_collaborators(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """Missing, mismatched and extra access all become actions."""
    client, repository = _setup()

    result = await TeamPermissionsCheck().check(
        make_context(client, repository, make_config(POLICY))
    )

    assert result.compliant is False
    actions = [
        (entry["action"], entry.get("team") or entry.get("username"))
        for entry in result.actions_needed
    ]
    assert actions == [
        ("update_team", "ops"),
        ("add_team", "security"),
        ("remove_team", "contractors"),
        ("remove_collaborator", "alice"),
    ]


@pytest.mark.asyncio
async def test_fix_applies_every_action(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """Remediation grants, updates and revokes access."""
    client, repository = _setup()

    result = await TeamPermissionsCheck().fix(
        make_context(client, repository, make_config(POLICY))
    )

    assert result.fixed is True
    assert client.writes == [
        ("add_team_to_repository", "acme", "service", "ops", "maintain"),
        ("add_team_to_repository", "acme", "service", "security", "pull"),
        ("remove_team_from_repository", "acme", "service", "contractors"),
        ("remove_collaborator", "acme", "service", "alice"),
    ]


@pytest.mark.asyncio
async def test_failed_grant_does_not_block_other_actions(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """A rejected team grant leaves the removals in place."""
    client, repository = _setup()
    client.failing_writes.add("add_team_to_repository")

    result = await TeamPermissionsCheck().fix(
        make_context(client, repository, make_config(POLICY))
    )

    assert result.fixed is True
    details = typ.cast("dict[str, typ.Any]", result.details)
    assert len(details["failed_actions"]) == 2
    assert [write[0] for write in client.writes] == [
        "remove_team_from_repository",
        "remove_collaborator",
    ]


@pytest.mark.asyncio
async def test_matching_access_is_compliant(
    make_context: typ.Callable[..., CheckContext],
) -> None:
    """Equivalent aliases count as a match."""
    repository = make_repository("service")
    client = FakeForgeClient([repository])
    client.teams["acme/service"] = [{"slug": "core", "permission": "push"}]
    config = make_config(
        {"permissions": {"teams": [{"team": "core", "permission": "write"}]}}
    )

    result = await TeamPermissionsCheck().check(make_context(client, repository, config))

    assert result.compliant is True
