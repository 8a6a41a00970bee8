"""Helpers for enumerating the repositories a run targets."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from github3 import GitHub
from github3.exceptions import (
    ConnectionError as GitHubConnectionError,
)
from github3.exceptions import (
    ForbiddenError,
    GitHubError,
    NotFoundError,
)

from .errors import ListingError
from .models import Repository

Runner = typ.Callable[
    [typ.Callable[[], list[Repository]]], typ.Awaitable[list[Repository]]
]


@dataclasses.dataclass(frozen=True)
class ListingOptions:
    """Filters applied when listing repositories."""

    include_archived: bool = False
    type: str | None = None
    sort: str | None = None
    direction: str | None = None

    def as_parameters(self) -> dict[str, typ.Any]:
        """Return the options as cache key parameters."""
        return dataclasses.asdict(self)


def _namespace_not_found_error(namespace: str) -> ListingError:
    message = f"Namespace {namespace!r} was not found on GitHub."
    return ListingError(message)


def _namespace_forbidden_error(namespace: str) -> ListingError:
    message = f"Access to namespace {namespace!r} is forbidden."
    return ListingError(message)


def _github_api_error(error: Exception) -> ListingError:
    message = f"Failed to list repositories: {error}"
    return ListingError(message)


def _connection_error(error: Exception) -> ListingError:
    parts: list[str] = []
    current: BaseException | None = error
    seen: set[int] = set()
    while current and id(current) not in seen:
        seen.add(id(current))
        text = str(current).strip()
        if text and text not in parts:
            parts.append(text)
        current = current.__cause__ or current.__context__

    detail = "; caused by: ".join(parts) if parts else repr(error)
    suggestion = (
        "Unable to contact GitHub over HTTPS. Check the network path and the "
        "certificate store; behind an intercepting proxy, export "
        "REQUESTS_CA_BUNDLE with the proxy's root certificate."
    )
    return ListingError(f"{suggestion}\nOriginal error: {detail}")


async def list_repositories(
    owner: str | None,
    options: ListingOptions,
    *,
    token: str | None = None,
    runner: Runner | None = None,
    client_factory: typ.Callable[[], GitHub] | None = None,
) -> list[Repository]:
    """Return the repositories of `owner`, or of the authenticated user."""
    runner_fn = runner or (lambda thunk: asyncio.to_thread(thunk))
    factory = client_factory or (lambda: GitHub(token=token))
    client = factory()
    namespace = owner or "authenticated user"

    def fetch() -> list[Repository]:
        if owner:
            organization = client.organization(owner)
            generator = organization.repositories(type=options.type or "all", number=-1)
        else:
            generator = client.repositories(
                type=options.type or "owner",
                sort=options.sort or "updated",
                direction=options.direction or "desc",
                number=-1,
            )
        repositories: list[Repository] = []
        for entry in generator:
            repository = Repository.from_payload(entry.as_dict())
            if repository.archived and not options.include_archived:
                continue
            repositories.append(repository)
        return repositories

    try:
        return await runner_fn(fetch)
    except NotFoundError as error:
        raise _namespace_not_found_error(namespace) from error
    except ForbiddenError as error:
        raise _namespace_forbidden_error(namespace) from error
    except GitHubConnectionError as error:
        raise _connection_error(error) from error
    except GitHubError as error:
        raise _github_api_error(error) from error
