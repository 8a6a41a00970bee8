"""Unit tests for policy document loading."""

from __future__ import annotations

import typing as typ

import pytest

from bylaw.config import DEFAULT_CACHE_TTLS, load_config, parse_config
from bylaw.errors import ConfigError

if typ.TYPE_CHECKING:
    from pathlib import Path

VALID = """\
version: 1
organization: acme
defaults:
  merge_methods:
    allow_squash_merge: true
rules:
  - match:
      repositories: ["api-*"]
      only_private: true
    apply:
      security:
        secret_scanning: enabled
checks:
  enabled: [merge-methods, security-scanning]
cache:
  enabled: true
  ttl:
    repository: 60
"""


def test_load_valid_document(tmp_path: Path) -> None:
    """A well-formed document is loaded into typed structures."""
    path = tmp_path / "policy.yaml"
    path.write_text(VALID, encoding="utf-8")

    config = load_config(path)

    assert config.version == 1
    assert config.organization == "acme"
    assert config.defaults["merge_methods"] == {"allow_squash_merge": True}
    assert config.rules[0].match.repositories == ("api-*",)
    assert config.rules[0].match.only_private is True
    assert config.checks_enabled == ("merge-methods", "security-scanning")
    assert config.cache.enabled is True
    assert config.cache.ttl["repository"] == 60
    assert "branch" not in config.cache.ttl


def test_missing_file(tmp_path: Path) -> None:
    """A missing document is a configuration error."""
    with pytest.raises(ConfigError, match="Configuration file not found"):
        load_config(tmp_path / "absent.yaml")


def test_invalid_yaml() -> None:
    """Malformed YAML is reported with the source name."""
    with pytest.raises(ConfigError, match="Invalid YAML syntax in policy.yaml"):
        parse_config("defaults: [unclosed", source="policy.yaml")


def test_every_issue_is_collected() -> None:
    """Validation reports all problems at once."""
    document = """\
version: one
defaults:
  unknown_policy: {}
rules:
  - match:
      repositories: api-*
      only_private: "yes"
cache:
  enabled: maybe
"""
    with pytest.raises(ConfigError) as excinfo:
        parse_config(document)

    assert excinfo.value.issues == (
        "version: expected an integer",
        "defaults.unknown_policy: unknown policy key",
        "rules[0].match.repositories: expected a list of strings",
        "rules[0].match.only_private: expected a boolean",
        "cache.enabled: expected a boolean",
    )


def test_root_must_be_mapping() -> None:
    """Scalars and lists are not policy documents."""
    with pytest.raises(ConfigError, match="root: expected a mapping"):
        parse_config("- 1\n- 2\n")


def test_cache_defaults() -> None:
    """Omitting the cache block leaves caching off with default TTLs."""
    config = parse_config("version: 1\n")

    assert config.cache.enabled is False
    assert dict(config.cache.ttl) == DEFAULT_CACHE_TTLS
    assert config.checks_enabled is None
    assert config.rules == ()


def test_cache_without_ttl_uses_builtin_ttls() -> None:
    """Enabling the cache without listing TTLs applies the built-ins."""
    config = parse_config("version: 1\ncache:\n  enabled: true\n")

    assert config.cache.enabled is True
    assert dict(config.cache.ttl) == DEFAULT_CACHE_TTLS


def test_empty_enabled_checks_means_no_filter() -> None:
    """An empty `checks.enabled` list is kept for the runner to expand."""
    config = parse_config("version: 1\nchecks:\n  enabled: []\n")

    assert config.checks_enabled == ()
