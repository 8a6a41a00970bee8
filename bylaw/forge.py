"""Thin GitHub REST client tailored for compliance checks.

Reads go through the optional `CacheManager`; every write invalidates the
cache namespaces it can stale as soon as the forge accepts it. Blocking HTTP
calls run on worker threads so that concurrent repository workers are not
held up by each other's network round-trips.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import requests

from .cache import CacheKeyDescriptor, CacheNamespace
from .errors import ForgeError, ForgeForbiddenError, ForgeNotFoundError
from .listing import ListingOptions, list_repositories
from .models import Repository

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .cache import CacheManager

DEFAULT_API_URL = "https://api.github.com"
SELF_CACHE_OWNER = "__self__"

Permission = typ.Literal["pull", "triage", "push", "maintain", "admin"]
BlockingRunner = typ.Callable[[typ.Callable[[], typ.Any]], typ.Awaitable[typ.Any]]
Lister = typ.Callable[[str | None, ListingOptions], typ.Awaitable[list[Repository]]]


@dataclasses.dataclass(frozen=True)
class SecuritySettings:
    """Security feature state of a repository.

    Fields are None when the token cannot see the corresponding setting.
    """

    vulnerability_alerts: bool | None = None
    secret_scanning: str | None = None
    secret_scanning_push_protection: str | None = None
    advanced_security: str | None = None
    dependabot_security_updates: str | None = None


def _status(payload: cabc.Mapping[str, typ.Any], feature: str) -> str | None:
    entry = payload.get(feature) or {}
    status = entry.get("status") if isinstance(entry, dict) else None
    return str(status) if status else None


class ForgeClient:
    """Minimal GitHub client using the REST API."""

    def __init__(  # noqa: PLR0913 - transport knobs are all keyword-only
        self,
        *,
        token: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        cache: CacheManager | None = None,
        owner: str | None = None,
        runner: BlockingRunner | None = None,
        session: requests.Session | None = None,
        lister: Lister | None = None,
    ) -> None:
        """Configure a GitHub session scoped to the provided token."""
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "User-Agent": "bylaw",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self._cache = cache
        self._owner = owner
        self._runner: BlockingRunner = runner or (
            lambda thunk: asyncio.to_thread(thunk)
        )
        self._lister: Lister = lister or (
            lambda list_owner, options: list_repositories(
                list_owner, options, token=token
            )
        )

    @property
    def owner(self) -> str | None:
        """Return the organisation subsequent calls are scoped to."""
        return self._owner

    # Reads ------------------------------------------------------------

    async def list_repositories(
        self,
        options: ListingOptions | None = None,
        *,
        owner: str | None = None,
    ) -> list[Repository]:
        """List repositories of the organisation, or of the current user."""
        resolved_options = options or ListingOptions()
        target = owner or self._owner
        descriptor = CacheKeyDescriptor(
            namespace=CacheNamespace.REPOSITORY_LIST,
            owner=self._cache_owner(target),
            identifier="organization" if target else "authenticated-user",
            parameters=resolved_options.as_parameters(),
        )
        return await self._cached(
            descriptor, lambda: self._lister(target, resolved_options)
        )

    async def get_repository(self, owner: str, repo: str) -> Repository:
        """Return full repository metadata."""
        descriptor = self._descriptor(CacheNamespace.REPOSITORY, owner, repo, "details")

        def fetch() -> Repository:
            return Repository.from_payload(self._get_json(f"/repos/{owner}/{repo}"))

        return await self._cached(descriptor, lambda: self._blocking(fetch))

    async def get_branch(
        self, owner: str, repo: str, branch: str
    ) -> dict[str, typ.Any] | None:
        """Return branch metadata, or None when the branch does not exist."""
        descriptor = self._descriptor(CacheNamespace.BRANCH, owner, repo, branch)
        path = f"/repos/{owner}/{repo}/branches/{branch}"
        return await self._cached(
            descriptor, lambda: self._blocking(lambda: self._get_optional(path))
        )

    async def get_branch_protection(
        self, owner: str, repo: str, branch: str
    ) -> dict[str, typ.Any] | None:
        """Return branch protection, or None when the branch is unprotected."""
        descriptor = self._descriptor(
            CacheNamespace.BRANCH_PROTECTION, owner, repo, branch
        )
        path = f"/repos/{owner}/{repo}/branches/{branch}/protection"
        return await self._cached(
            descriptor, lambda: self._blocking(lambda: self._get_optional(path))
        )

    async def list_collaborators(
        self, owner: str, repo: str, *, affiliation: str = "direct"
    ) -> tuple[dict[str, typ.Any], ...]:
        """Return collaborators granted access directly, not through teams."""
        descriptor = self._descriptor(
            CacheNamespace.COLLABORATORS, owner, repo, affiliation
        )
        path = f"/repos/{owner}/{repo}/collaborators"
        params = {"per_page": 100, "affiliation": affiliation}
        return await self._cached(
            descriptor,
            lambda: self._blocking(lambda: tuple(self._paginate(path, params=params))),
        )

    async def list_team_permissions(
        self, owner: str, repo: str
    ) -> tuple[dict[str, typ.Any], ...]:
        """Return the teams with access to the repository."""
        descriptor = self._descriptor(
            CacheNamespace.TEAM_PERMISSIONS, owner, repo, "teams"
        )
        path = f"/repos/{owner}/{repo}/teams"
        return await self._cached(
            descriptor,
            lambda: self._blocking(
                lambda: tuple(self._paginate(path, params={"per_page": 100}))
            ),
        )

    async def list_vulnerability_alerts(
        self, owner: str, repo: str
    ) -> tuple[dict[str, typ.Any], ...]:
        """Return Dependabot alerts; empty when the token lacks access."""
        descriptor = self._descriptor(
            CacheNamespace.VULNERABILITY_ALERTS, owner, repo, "alerts"
        )
        path = f"/repos/{owner}/{repo}/dependabot/alerts"

        def fetch() -> tuple[dict[str, typ.Any], ...]:
            try:
                return tuple(
                    self._paginate(path, params={"per_page": 100, "state": "open"})
                )
            except ForgeForbiddenError:
                return ()

        return await self._cached(descriptor, lambda: self._blocking(fetch))

    async def get_security_settings(self, owner: str, repo: str) -> SecuritySettings:
        """Return the security feature state of the repository."""
        descriptor = self._descriptor(
            CacheNamespace.SECURITY_SETTINGS, owner, repo, "settings"
        )

        async def load() -> SecuritySettings:
            repository = await self.get_repository(owner, repo)
            analysis = repository.setting("security_and_analysis") or {}
            alerts = await self._blocking(
                lambda: self._vulnerability_alerts_enabled(owner, repo)
            )
            return SecuritySettings(
                vulnerability_alerts=alerts,
                secret_scanning=_status(analysis, "secret_scanning"),
                secret_scanning_push_protection=_status(
                    analysis, "secret_scanning_push_protection"
                ),
                advanced_security=_status(analysis, "advanced_security"),
                dependabot_security_updates=_status(
                    analysis, "dependabot_security_updates"
                ),
            )

        return await self._cached(descriptor, load)

    async def path_exists(self, owner: str, repo: str, path: str) -> bool:
        """Return True when `path` exists on the default branch."""
        descriptor = self._descriptor(CacheNamespace.CONTENTS, owner, repo, path)
        url_path = f"/repos/{owner}/{repo}/contents/{path}"
        return await self._cached(
            descriptor,
            lambda: self._blocking(lambda: self._get_optional(url_path) is not None),
        )

    # Writes -----------------------------------------------------------

    async def update_repository(
        self, owner: str, repo: str, settings: cabc.Mapping[str, typ.Any]
    ) -> Repository:
        """Patch repository settings such as merge methods or archival."""
        path = f"/repos/{owner}/{repo}"
        payload = await self._blocking(lambda: self._send("PATCH", path, dict(settings)))
        self._invalidate(CacheNamespace.REPOSITORY, owner, repo)
        self._invalidate(CacheNamespace.SECURITY_SETTINGS, owner, repo)
        self._invalidate(CacheNamespace.REPOSITORY_LIST, owner)
        self._invalidate(CacheNamespace.REPOSITORY_LIST, self._cache_owner())
        return Repository.from_payload(payload or {"full_name": f"{owner}/{repo}"})

    async def update_branch_protection(
        self,
        owner: str,
        repo: str,
        branch: str,
        protection: cabc.Mapping[str, typ.Any],
    ) -> dict[str, typ.Any]:
        """Replace the protection of `branch` with `protection`."""
        path = f"/repos/{owner}/{repo}/branches/{branch}/protection"
        payload = await self._blocking(lambda: self._send("PUT", path, dict(protection)))
        self._invalidate(CacheNamespace.BRANCH_PROTECTION, owner, repo)
        self._invalidate(CacheNamespace.BRANCH, owner, repo)
        return payload or {}

    async def add_team_to_repository(
        self, owner: str, repo: str, team_slug: str, permission: Permission
    ) -> None:
        """Grant or update a team's permission on the repository."""
        path = f"/orgs/{owner}/teams/{team_slug}/repos/{owner}/{repo}"
        await self._blocking(
            lambda: self._send("PUT", path, {"permission": permission})
        )
        self._invalidate(CacheNamespace.TEAM_PERMISSIONS, owner, repo)

    async def remove_team_from_repository(
        self, owner: str, repo: str, team_slug: str
    ) -> None:
        """Revoke a team's access to the repository."""
        path = f"/orgs/{owner}/teams/{team_slug}/repos/{owner}/{repo}"
        await self._blocking(lambda: self._send("DELETE", path))
        self._invalidate(CacheNamespace.TEAM_PERMISSIONS, owner, repo)

    async def remove_collaborator(self, owner: str, repo: str, username: str) -> None:
        """Remove a direct collaborator."""
        path = f"/repos/{owner}/{repo}/collaborators/{username}"
        await self._blocking(lambda: self._send("DELETE", path))
        self._invalidate(CacheNamespace.COLLABORATORS, owner, repo)

    async def update_vulnerability_alerts(
        self, owner: str, repo: str, *, enabled: bool
    ) -> None:
        """Enable or disable Dependabot vulnerability alerts."""
        path = f"/repos/{owner}/{repo}/vulnerability-alerts"
        method = "PUT" if enabled else "DELETE"
        await self._blocking(lambda: self._send(method, path))
        self._invalidate(CacheNamespace.VULNERABILITY_ALERTS, owner, repo)
        self._invalidate(CacheNamespace.SECURITY_SETTINGS, owner, repo)

    async def update_secret_scanning(
        self, owner: str, repo: str, *, enabled: bool
    ) -> None:
        """Enable or disable secret scanning."""
        await self._update_security_feature(owner, repo, "secret_scanning", enabled)

    async def update_secret_scanning_push_protection(
        self, owner: str, repo: str, *, enabled: bool
    ) -> None:
        """Enable or disable secret scanning push protection."""
        await self._update_security_feature(
            owner, repo, "secret_scanning_push_protection", enabled
        )

    # Internal helpers -------------------------------------------------

    def _cache_owner(self, owner: str | None = None) -> str:
        return owner or self._owner or SELF_CACHE_OWNER

    def _descriptor(
        self, namespace: CacheNamespace, owner: str, repo: str, identifier: str
    ) -> CacheKeyDescriptor:
        return CacheKeyDescriptor(
            namespace=namespace,
            owner=self._cache_owner(owner),
            repo=repo,
            identifier=identifier,
        )

    async def _cached[T](
        self,
        descriptor: CacheKeyDescriptor,
        loader: typ.Callable[[], cabc.Awaitable[T]],
    ) -> T:
        if self._cache is None:
            return await loader()
        return await self._cache.get_or_load(descriptor, loader)

    def _invalidate(
        self, namespace: CacheNamespace, owner: str, repo: str | None = None
    ) -> None:
        if self._cache is not None:
            self._cache.invalidate_namespace(namespace, owner, repo)

    async def _blocking[T](self, thunk: typ.Callable[[], T]) -> T:
        return await self._runner(thunk)

    async def _update_security_feature(
        self, owner: str, repo: str, feature: str, enabled: bool
    ) -> None:
        status = "enabled" if enabled else "disabled"
        payload = {"security_and_analysis": {feature: {"status": status}}}
        path = f"/repos/{owner}/{repo}"
        await self._blocking(lambda: self._send("PATCH", path, payload))
        self._invalidate(CacheNamespace.SECURITY_SETTINGS, owner, repo)
        self._invalidate(CacheNamespace.REPOSITORY, owner, repo)

    def _vulnerability_alerts_enabled(self, owner: str, repo: str) -> bool | None:
        try:
            self._request("GET", f"/repos/{owner}/{repo}/vulnerability-alerts")
        except ForgeNotFoundError:
            return False
        except ForgeForbiddenError:
            return None
        return True

    def _get_json(self, path: str) -> dict[str, typ.Any]:
        response = self._request("GET", path)
        return response.json()

    def _get_optional(self, path: str) -> dict[str, typ.Any] | None:
        try:
            return self._get_json(path)
        except ForgeNotFoundError:
            return None

    def _send(
        self,
        method: str,
        path: str,
        payload: dict[str, typ.Any] | None = None,
    ) -> dict[str, typ.Any] | None:
        response = self._request(method, path, payload=payload)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, typ.Any] | None = None,
    ) -> requests.Response:
        url = f"{self.api_url}{path}"
        response = self.session.request(
            method, url, json=payload, timeout=self.timeout
        )
        if response.status_code == 404:
            message = f"{method} {path} returned 404."
            raise ForgeNotFoundError(message)
        if response.status_code == 403:
            detail = response.text[:400]
            message = f"{method} {path} is forbidden: {detail}"
            raise ForgeForbiddenError(message)
        if response.status_code >= 400:
            detail = response.text[:400]
            message = f"{method} {path} failed: {response.status_code} {detail}"
            raise ForgeError(message)
        return response

    def _paginate(
        self, path: str, *, params: dict[str, typ.Any] | None = None
    ) -> typ.Iterator[dict[str, typ.Any]]:
        next_url: str | None = f"{self.api_url}{path}"
        next_params = params
        while next_url:
            response = self.session.get(
                next_url, params=next_params, timeout=self.timeout
            )
            if response.status_code == 403:
                message = f"GET {next_url} is forbidden: {response.text[:400]}"
                raise ForgeForbiddenError(message)
            if response.status_code >= 400:
                detail = response.text[:400]
                message = f"GET {next_url} failed: {response.status_code} {detail}"
                raise ForgeError(message)
            yield from response.json()
            next_url = response.links.get("next", {}).get("url")
            next_params = None
