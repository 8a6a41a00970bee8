"""Policy document loading."""

from __future__ import annotations

import dataclasses
import pathlib
import types
import typing as typ

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

yaml = YAML(typ="safe")

POLICY_KEYS = (
    "merge_methods",
    "branch_protection",
    "security",
    "permissions",
    "archived_repos",
    "repository_settings",
)

DEFAULT_CACHE_TTLS: dict[str, int] = {
    "default": 900,
    "repository_list": 300,
    "repository": 300,
    "branch": 300,
    "branch_protection": 300,
    "collaborators": 300,
    "team_permissions": 300,
    "security_settings": 600,
    "vulnerability_alerts": 600,
    "contents": 600,
}

ERROR_NOT_FOUND = "Configuration file not found: {path}"
ERROR_INVALID_YAML = "Invalid YAML syntax in {source}"
ERROR_INVALID_CONFIG = "Invalid configuration in {source}"


@dataclasses.dataclass(frozen=True)
class CacheConfig:
    """Cache toggle and per-namespace TTLs in seconds."""

    enabled: bool = False
    ttl: cabc.Mapping[str, int] = dataclasses.field(
        default_factory=lambda: types.MappingProxyType(dict(DEFAULT_CACHE_TTLS))
    )
    max_size_mb: float | None = None


@dataclasses.dataclass(frozen=True)
class MatchCriteria:
    """Repository selection criteria of a rule."""

    repositories: tuple[str, ...] | None = None
    only_private: bool | None = None


@dataclasses.dataclass(frozen=True)
class Rule:
    """Override applied to every repository matched by `match`."""

    match: MatchCriteria
    apply: cabc.Mapping[str, typ.Any]


@dataclasses.dataclass(frozen=True)
class ComplianceConfig:
    """Desired state for a fleet of repositories."""

    version: int
    defaults: cabc.Mapping[str, typ.Any]
    rules: tuple[Rule, ...] = ()
    organization: str | None = None
    checks_enabled: tuple[str, ...] | None = None
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)


def load_config(path: pathlib.Path | str) -> ComplianceConfig:
    """Load and validate the policy document at `path`."""
    target = pathlib.Path(path)
    if not target.is_file():
        raise ConfigError(ERROR_NOT_FOUND.format(path=target))
    return parse_config(target.read_text(encoding="utf-8"), source=str(target))


def parse_config(text: str, *, source: str = "<string>") -> ComplianceConfig:
    """Parse a policy document held in memory."""
    try:
        data = yaml.load(text)
    except YAMLError as error:
        message = ERROR_INVALID_YAML.format(source=source)
        raise ConfigError(message, (str(error),)) from error
    return config_from_mapping(data, source=source)


def config_from_mapping(data: object, *, source: str = "<mapping>") -> ComplianceConfig:
    """Validate the structure of a decoded policy document."""
    issues: list[str] = []
    if not isinstance(data, dict):
        raise ConfigError(
            ERROR_INVALID_CONFIG.format(source=source),
            ("root: expected a mapping",),
        )

    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        issues.append("version: expected an integer")

    organization = data.get("organization")
    if organization is not None and not isinstance(organization, str):
        issues.append("organization: expected a string")

    defaults = _policy_mapping(data.get("defaults") or {}, "defaults", issues)
    rules = _parse_rules(data.get("rules") or [], issues)
    checks_enabled = _parse_checks(data.get("checks"), issues)
    cache = _parse_cache(data.get("cache"), issues)

    if issues:
        raise ConfigError(ERROR_INVALID_CONFIG.format(source=source), tuple(issues))

    return ComplianceConfig(
        version=typ.cast("int", version),
        defaults=defaults,
        rules=rules,
        organization=organization,
        checks_enabled=checks_enabled,
        cache=cache,
    )


def _policy_mapping(
    value: object, path: str, issues: list[str]
) -> cabc.Mapping[str, typ.Any]:
    if not isinstance(value, dict):
        issues.append(f"{path}: expected a mapping")
        return types.MappingProxyType({})
    for key, settings in value.items():
        if key not in POLICY_KEYS:
            issues.append(f"{path}.{key}: unknown policy key")
        elif settings is not None and not isinstance(settings, dict):
            issues.append(f"{path}.{key}: expected a mapping")
    return types.MappingProxyType(dict(value))


def _parse_rules(value: object, issues: list[str]) -> tuple[Rule, ...]:
    if not isinstance(value, list):
        issues.append("rules: expected a list")
        return ()
    rules: list[Rule] = []
    for index, entry in enumerate(value):
        path = f"rules[{index}]"
        if not isinstance(entry, dict):
            issues.append(f"{path}: expected a mapping")
            continue
        match = _parse_match(entry.get("match") or {}, f"{path}.match", issues)
        apply = _policy_mapping(entry.get("apply") or {}, f"{path}.apply", issues)
        rules.append(Rule(match=match, apply=apply))
    return tuple(rules)


def _parse_match(value: object, path: str, issues: list[str]) -> MatchCriteria:
    if not isinstance(value, dict):
        issues.append(f"{path}: expected a mapping")
        return MatchCriteria()

    repositories = value.get("repositories")
    patterns: tuple[str, ...] | None = None
    if repositories is not None:
        if isinstance(repositories, list) and all(
            isinstance(item, str) for item in repositories
        ):
            patterns = tuple(repositories)
        else:
            issues.append(f"{path}.repositories: expected a list of strings")

    only_private = value.get("only_private")
    if only_private is not None and not isinstance(only_private, bool):
        issues.append(f"{path}.only_private: expected a boolean")
        only_private = None

    return MatchCriteria(repositories=patterns, only_private=only_private)


def _parse_checks(value: object, issues: list[str]) -> tuple[str, ...] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        issues.append("checks: expected a mapping")
        return None
    enabled = value.get("enabled")
    if enabled is None:
        return None
    if not isinstance(enabled, list) or not all(
        isinstance(item, str) for item in enabled
    ):
        issues.append("checks.enabled: expected a list of check names")
        return None
    return tuple(enabled)


def _parse_cache(value: object, issues: list[str]) -> CacheConfig:
    if value is None:
        return CacheConfig()
    if not isinstance(value, dict):
        issues.append("cache: expected a mapping")
        return CacheConfig()

    enabled = value.get("enabled", False)
    if not isinstance(enabled, bool):
        issues.append("cache.enabled: expected a boolean")
        enabled = False

    raw_ttl = value.get("ttl")
    ttl: dict[str, int] = {}
    if raw_ttl is None:
        ttl.update(DEFAULT_CACHE_TTLS)
    elif isinstance(raw_ttl, dict):
        for namespace, seconds in raw_ttl.items():
            if isinstance(seconds, bool) or not isinstance(seconds, int):
                issues.append(f"cache.ttl.{namespace}: expected an integer")
                continue
            ttl[str(namespace)] = seconds
    else:
        issues.append("cache.ttl: expected a mapping")

    max_size = value.get("max_size_mb")
    if max_size is not None and (
        isinstance(max_size, bool) or not isinstance(max_size, int | float)
    ):
        issues.append("cache.max_size_mb: expected a number")
        max_size = None

    return CacheConfig(
        enabled=enabled,
        ttl=types.MappingProxyType(ttl),
        max_size_mb=max_size,
    )
