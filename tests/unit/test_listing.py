"""Unit tests for repository listing helpers."""

from __future__ import annotations

import types
import typing as typ
import unittest.mock as mock

import pytest
from github3.exceptions import ConnectionError as GitHubConnectionError
from github3.exceptions import ForbiddenError, NotFoundError
from requests import exceptions as requests_exceptions

from bylaw import listing
from bylaw.errors import ListingError
from bylaw.models import Repository


def _fake_response(status_code: int = 404, reason: str = "Not Found") -> object:
    payload = {"message": reason, "errors": []}
    return types.SimpleNamespace(
        status_code=status_code,
        reason=reason,
        headers={},
        history=(),
        url="https://api.github.com/mock",
        json=lambda: payload,
        content="",
    )


def _entry(name: str, *, owner: str = "acme", archived: bool = False) -> object:
    payload = {
        "name": name,
        "full_name": f"{owner}/{name}",
        "owner": {"login": owner},
        "private": False,
        "archived": archived,
    }
    return types.SimpleNamespace(as_dict=lambda: payload)


async def runner(func: typ.Callable[[], list[Repository]]) -> list[Repository]:
    return func()


@pytest.mark.asyncio
async def test_list_repositories_for_organisation() -> None:
    """List an organisation's repositories and drop archived ones."""
    client = mock.Mock()
    organization = client.organization.return_value
    organization.repositories.return_value = [
        _entry("service"),
        _entry("legacy", archived=True),
    ]

    results = await listing.list_repositories(
        "acme",
        listing.ListingOptions(),
        runner=runner,
        client_factory=lambda: client,
    )

    assert [repository.full_name for repository in results] == ["acme/service"]
    client.organization.assert_called_once_with("acme")
    organization.repositories.assert_called_once_with(type="all", number=-1)


@pytest.mark.asyncio
async def test_list_repositories_keeps_archived_when_requested() -> None:
    """Archived repositories survive when the options include them."""
    client = mock.Mock()
    client.organization.return_value.repositories.return_value = [
        _entry("legacy", archived=True),
    ]

    results = await listing.list_repositories(
        "acme",
        listing.ListingOptions(include_archived=True),
        runner=runner,
        client_factory=lambda: client,
    )

    assert [repository.archived for repository in results] == [True]


@pytest.mark.asyncio
async def test_list_repositories_for_authenticated_user() -> None:
    """Without an owner, list the authenticated user's repositories."""
    client = mock.Mock()
    client.repositories.return_value = [_entry("dotfiles", owner="octocat")]

    results = await listing.list_repositories(
        None,
        listing.ListingOptions(),
        runner=runner,
        client_factory=lambda: client,
    )

    assert results[0].owner == "octocat"
    client.repositories.assert_called_once_with(
        type="owner", sort="updated", direction="desc", number=-1
    )


@pytest.mark.asyncio
async def test_list_repositories_raises_when_namespace_missing() -> None:
    """Translate GitHub not-found errors into listing errors."""
    client = mock.Mock()
    client.organization.side_effect = NotFoundError(_fake_response())

    with pytest.raises(ListingError) as caught:
        await listing.list_repositories(
            "unknown",
            listing.ListingOptions(),
            runner=runner,
            client_factory=lambda: client,
        )

    assert "unknown" in str(caught.value)


@pytest.mark.asyncio
async def test_list_repositories_raises_when_forbidden() -> None:
    """Translate GitHub forbidden errors into listing errors."""
    client = mock.Mock()
    client.organization.return_value.repositories.side_effect = ForbiddenError(
        _fake_response(403, "Forbidden")
    )

    with pytest.raises(ListingError, match="forbidden"):
        await listing.list_repositories(
            "acme",
            listing.ListingOptions(),
            runner=runner,
            client_factory=lambda: client,
        )


@pytest.mark.asyncio
async def test_list_repositories_formats_connection_error() -> None:
    """Return a helpful message when TLS negotiation fails."""
    underlying = requests_exceptions.SSLError("unknown error (_ssl.c:3113)")
    client = mock.Mock()
    client.organization.return_value.repositories.side_effect = (
        GitHubConnectionError(underlying)
    )

    with pytest.raises(ListingError) as caught:
        await listing.list_repositories(
            "acme",
            listing.ListingOptions(),
            runner=runner,
            client_factory=lambda: client,
        )

    message = str(caught.value)
    assert "Unable to contact GitHub" in message
    assert "unknown error" in message
