"""Command line entry points for bylaw."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
import sys
import typing as typ
from pathlib import Path
from typing import Annotated  # noqa: ICN003

from cyclopts import App, Parameter

from .cache import CacheManager
from .checks import build_registry
from .config import load_config
from .errors import BylawError
from .forge import DEFAULT_API_URL, ForgeClient
from .reporting import (
    SarifBuilder,
    render_json,
    render_json_summary,
    render_markdown,
)
from .runner import ERROR_CONCURRENCY, ComplianceRunner, RunnerOptions, exit_code

if typ.TYPE_CHECKING:
    from .config import ComplianceConfig
    from .models import RunnerReport

app = App(help="Audit and remediate configuration drift across GitHub repositories.")

ReportFormat = typ.Literal["markdown", "json", "summary", "sarif"]

ERROR_VERBOSE_QUIET = "--verbose and --quiet cannot be used together."
ERROR_MISSING_TOKEN = (
    "GITHUB_TOKEN is required; "  # noqa: S105 - descriptive error message
    "pass --token or export the environment variable."
)
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclasses.dataclass(frozen=True, slots=True)
class RunConfig:
    """Options for the run command."""

    config: Path
    token: str | None = None
    org: str | None = None
    api_url: str | None = None
    dry_run: bool = False
    repos: str | None = None
    checks: str | None = None
    include_archived: bool = False
    format: ReportFormat = "markdown"
    output: Path | None = None
    concurrency: int = 5
    verbose: bool = False
    quiet: bool = False


def _split_names(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    names = tuple(part.strip() for part in value.split(",") if part.strip())
    return names or None


def configure_logging(*, verbose: bool, quiet: bool) -> None:
    """Install the root handler at the level selected on the command line."""
    if verbose and quiet:
        raise BylawError(ERROR_VERBOSE_QUIET)
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def build_sarif(report: RunnerReport) -> SarifBuilder:
    """Return a SARIF log with one rule per registered check."""
    sarif = SarifBuilder()
    sarif.register_rules(build_registry().rules)
    sarif.add_report(report)
    return sarif


def render_report(report: RunnerReport, report_format: ReportFormat) -> str:
    """Render the finished run in the requested format."""
    if report_format == "json":
        return render_json(report)
    if report_format == "summary":
        return render_json_summary(report)
    if report_format == "sarif":
        return build_sarif(report).render()
    return render_markdown(report)


def build_client(options: RunConfig, policy: ComplianceConfig) -> ForgeClient:
    """Create the forge client and its cache for a run."""
    token = options.token or os.getenv("GITHUB_TOKEN")
    if not token:
        raise BylawError(ERROR_MISSING_TOKEN)
    api_url = options.api_url or os.getenv("GITHUB_API_URL") or DEFAULT_API_URL
    cache = CacheManager(policy.cache) if policy.cache.enabled else None
    return ForgeClient(
        token=token,
        api_url=api_url,
        cache=cache,
        owner=options.org or policy.organization,
    )


@app.command()
def run(options: Annotated[RunConfig, Parameter(name="*")]) -> int:
    """Check every target repository against the policy document."""
    configure_logging(verbose=options.verbose, quiet=options.quiet)
    policy = load_config(options.config)
    client = build_client(options, policy)
    requested = _split_names(options.checks)
    if options.concurrency < 1:
        raise BylawError(ERROR_CONCURRENCY.format(value=options.concurrency))
    runner_options = RunnerOptions(
        dry_run=options.dry_run,
        checks=requested if requested is not None else policy.checks_enabled,
        include_archived=options.include_archived,
        repos=_split_names(options.repos),
        concurrency=options.concurrency,
    )
    runner = ComplianceRunner(client, policy, runner_options)
    report = asyncio.run(runner.run())

    if options.output is None:
        print(render_report(report, options.format))
    elif options.format == "sarif":
        print(f"wrote {build_sarif(report).write(options.output)}")
    else:
        options.output.parent.mkdir(parents=True, exist_ok=True)
        options.output.write_text(
            render_report(report, options.format), encoding="utf-8"
        )
        print(f"wrote {options.output}")
    return exit_code(report, dry_run=options.dry_run)


@app.command()
def validate(path: Path) -> None:
    """Load a policy document and summarise it."""
    policy = load_config(path)
    print(f"{path}: valid (version {policy.version})")
    if policy.organization:
        print(f"organization: {policy.organization}")
    print(f"defaults: {', '.join(sorted(policy.defaults)) or 'none'}")
    print(f"rules: {len(policy.rules)}")
    if policy.checks_enabled is not None:
        print(f"enabled checks: {', '.join(policy.checks_enabled)}")
    print(f"cache: {'enabled' if policy.cache.enabled else 'disabled'}")


@app.command()
def checks() -> None:
    """List the registered checks in execution order."""
    for check in build_registry().rules:
        print(f"{check.name}\t{check.config_key}\t{check.description}")


def main(argv: list[str] | tuple[str, ...] | None = None) -> int:
    """Entry point for the bylaw CLI."""
    try:
        result = app(argv)
    except BylawError as error:
        print(f"bylaw: {error}")
        return 1
    return int(result or 0)


if __name__ == "__main__":
    raise SystemExit(main())
