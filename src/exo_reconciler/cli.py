"""Exoscale reconciler CLI (exo-reconcile).

Usage:
    exo-reconcile apply plan.yaml --state state.yaml     # Converge the plan
    exo-reconcile refresh plan.yaml --state state.yaml   # Re-read recorded resources
    exo-reconcile destroy plan.yaml --state state.yaml   # Delete in reverse order
    exo-reconcile show --state state.yaml                # Print recorded state

Exit codes: 0 success, 1 reconciliation or input failure, 2 configuration error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterator
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any

import click
import yaml

from .client import ExoscaleComputeClient, ExoscaleDNSClient
from .config import Config, ConfigurationError
from .dependency import DependencyError
from .kinds import CloudAPI, build_kinds
from .main import setup_logging
from .runner import PlanRunner, RunResult
from .spec_loader import Plan, SpecLoadError, load_plan
from .state_store import StateStore, StateStoreError
from .timeouts import OperationTimeouts

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "exoscale.state.yaml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigurationFailure(click.ClickException):
    """Configuration problem; exits with status 2."""

    exit_code = 2


@contextmanager
def open_api(ctx: click.Context) -> Iterator[tuple[CloudAPI, OperationTimeouts]]:
    """Yield API collaborators and base timeouts.

    Tests inject ``api`` (and optionally ``timeouts``) through ``ctx.obj``;
    otherwise real clients are built from the environment and closed on exit.
    """
    injected = ctx.obj or {}
    if "api" in injected:
        yield injected["api"], injected.get("timeouts") or OperationTimeouts()
        return

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise ConfigurationFailure(str(e)) from e

    with (
        closing(ExoscaleComputeClient.from_config(config)) as compute,
        closing(ExoscaleDNSClient.from_config(config)) as dns,
    ):
        yield CloudAPI(compute=compute, dns=dns), config.timeouts


def _load_plan(path: Path) -> Plan:
    try:
        return load_plan(path)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def _open_store(path: Path) -> StateStore:
    try:
        return StateStore(path)
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e


def _run(
    ctx: click.Context,
    plan_path: Path,
    state_path: Path,
    operation: Callable[[PlanRunner, Plan], Coroutine[Any, Any, RunResult]],
) -> None:
    plan = _load_plan(plan_path)
    store = _open_store(state_path)

    with open_api(ctx) as (api, timeouts):
        runner = PlanRunner(build_kinds(api), store, timeouts)
        try:
            result = asyncio.run(operation(runner, plan))
        except DependencyError as e:
            raise click.ClickException(str(e)) from e

    _report(result)
    if not result.success:
        failed = result.failed
        address = failed.address if failed else "plan"
        raise click.ClickException(f"{result.operation} failed at {address}: {result.error}")


def _report(result: RunResult) -> None:
    for outcome in result.outcomes:
        if outcome.success:
            action = outcome.action.value if outcome.action else "-"
            suffix = f" ({', '.join(outcome.drift)})" if outcome.drift else ""
            click.echo(f"{outcome.address}: {action}{suffix}")
        else:
            click.secho(f"{outcome.address}: failed", fg="red")
    if result.success:
        click.secho(
            f"{result.operation} complete: {len(result.outcomes)} resource(s)", fg="green"
        )


# =============================================================================
# Main CLI Group
# =============================================================================


state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="State file holding reconciled records.",
)
plan_argument = click.argument(
    "plan_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


@click.group()
@click.version_option(version="0.1.0", prog_name="exo-reconcile")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Exoscale reconciler (exo-reconcile).

    Converges the resources declared in a plan file with the Exoscale account.

    \b
    Credentials come from EXOSCALE_API_KEY and EXOSCALE_API_SECRET.
    """
    setup_logging(log_level)


@cli.command()
@plan_argument
@state_option
@click.pass_context
def apply(ctx: click.Context, plan_path: Path, state_path: Path) -> None:
    """Create, update or replace resources until they match the plan."""
    _run(ctx, plan_path, state_path, lambda runner, plan: runner.apply(plan))


@cli.command()
@plan_argument
@state_option
@click.pass_context
def refresh(ctx: click.Context, plan_path: Path, state_path: Path) -> None:
    """Re-read every recorded resource."""
    _run(ctx, plan_path, state_path, lambda runner, plan: runner.refresh(plan))


@cli.command()
@plan_argument
@state_option
@click.confirmation_option(prompt="Delete every recorded resource of this plan?")
@click.pass_context
def destroy(ctx: click.Context, plan_path: Path, state_path: Path) -> None:
    """Delete recorded resources, dependents first."""
    _run(ctx, plan_path, state_path, lambda runner, plan: runner.destroy(plan))


@cli.command()
@state_option
def show(state_path: Path) -> None:
    """Print the recorded state."""
    store = _open_store(state_path)
    records = {name: record.to_dict() for name, record in sorted(store.records().items())}
    if not records:
        click.echo("No resources recorded.")
        return
    click.echo(yaml.safe_dump(records, sort_keys=False, default_flow_style=False).rstrip())


if __name__ == "__main__":
    cli()
