"""Effective policy resolution for a single repository.

Each policy key starts from `defaults` and is then overridden by every rule
that matches the repository, in declared order. An override replaces the
previous value for that key wholesale; settings are never merged field by
field, neither across rules nor with the defaults.
"""

from __future__ import annotations

import functools
import re
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import ComplianceConfig, MatchCriteria
    from .models import Repository


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def glob_match(name: str, pattern: str) -> bool:
    """Return True when `name` matches the `*`/`?` glob `pattern`.

    Matching is case-insensitive and anchored at both ends.
    """
    return _compile_glob(pattern).fullmatch(name) is not None


def matches_pattern(name: str, patterns: cabc.Iterable[str]) -> bool:
    """Return True when any pattern matches; an empty list never matches."""
    return any(glob_match(name, pattern) for pattern in patterns)


def rule_matches(repository: Repository, match: MatchCriteria) -> bool:
    """Return True when the repository satisfies every declared criterion."""
    patterns_ok = match.repositories is None or matches_pattern(
        repository.name, match.repositories
    )
    privacy_ok = match.only_private is None or match.only_private == repository.private
    return patterns_ok and privacy_ok


def resolve_setting(
    config: ComplianceConfig,
    repository: Repository,
    key: str,
) -> typ.Any:  # noqa: ANN401 - settings are free-form policy mappings
    """Return the effective setting for `key`, or None when undeclared."""
    effective = config.defaults.get(key)
    for rule in config.rules:
        declared = rule.apply.get(key)
        if declared is not None and rule_matches(repository, rule.match):
            effective = declared
    return effective
