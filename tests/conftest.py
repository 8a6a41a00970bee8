"""Shared pytest fixtures for bylaw tests."""

from __future__ import annotations

import logging
import typing as typ

import pytest

from bylaw.checks import CheckContext
from tests.helpers.forge import FakeForgeClient

if typ.TYPE_CHECKING:
    from bylaw.config import ComplianceConfig
    from bylaw.models import Repository


@pytest.fixture
def logger() -> logging.Logger:
    """Return a logger dedicated to the test."""
    return logging.getLogger("bylaw.tests")


@pytest.fixture
def fake_client() -> FakeForgeClient:
    """Return an empty fake forge client."""
    return FakeForgeClient()


@pytest.fixture
def make_context(
    logger: logging.Logger,
) -> typ.Callable[..., CheckContext]:
    """Return a factory building check contexts around a fake client."""

    def factory(
        client: FakeForgeClient,
        repository: Repository,
        config: ComplianceConfig,
        *,
        dry_run: bool = False,
    ) -> CheckContext:
        return CheckContext(
            client=typ.cast("typ.Any", client),
            config=config,
            dry_run=dry_run,
            repository=repository,
            logger=logger,
        )

    return factory
