"""
poolshift command line.

Commands:
    apply   Create a pool from a spec file, or migrate an existing one to it
    show    Print a pool as a declarative spec
    delete  Delete a pool (its workers are orphaned)
    config  Manage the configuration file
"""

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .client.base import PoolClient
from .client.kubernetes_client import KubernetesPoolClient
from .config.loader import create_default_config, load_config
from .config.models import PoolShiftConfig
from .exceptions import PoolShiftError
from .logging_config import configure_logging
from .migration.state import MigrationResult, MigrationStep
from .resource import PoolResource
from .spec_writer import SpecWriter
from .utils.identity import split_id

console = Console()
err_console = Console(stderr=True)

ClientFactory = Callable[[PoolShiftConfig], PoolClient]


def _default_client_factory(config: PoolShiftConfig) -> PoolClient:
    return KubernetesPoolClient.from_config(config.cluster)


def _fail(error: Exception) -> None:
    if isinstance(error, PoolShiftError):
        text = error.message
        if error.context:
            text += " (" + ", ".join(f"{k}={v}" for k, v in error.context.items()) + ")"
    else:
        text = str(error)
    err_console.print(f"[red]❌ {escape(text)}[/red]")
    if isinstance(error, PoolShiftError) and error.recovery_suggestion:
        err_console.print(f"[yellow]💡 {escape(error.recovery_suggestion)}[/yellow]")
    sys.exit(1)



def _load(ctx: click.Context) -> PoolShiftConfig:
    cli_args = {"logging": {"level": ctx.obj.get("log_level")}}
    config = load_config(ctx.obj.get("config_path"), cli_args=cli_args)
    configure_logging(config.logging.level, config.logging.json_output)
    return config


def _resource(ctx: click.Context, config: PoolShiftConfig) -> PoolResource:
    factory: ClientFactory = ctx.obj.get("client_factory", _default_client_factory)
    client = factory(config)
    close = getattr(client, "close", None)
    if close is not None:
        ctx.call_on_close(close)
    return PoolResource(
        client,
        config=config.migration,
        spec_writer=SpecWriter(default_namespace=config.cluster.namespace),
    )


def _check_identity(identity: str) -> str:
    try:
        split_id(identity)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    return identity


def _print_step(step: MigrationStep) -> None:
    if step.skipped:
        console.print(f"[dim]  #{step.iteration}: {step.pool} already at target[/dim]")
        return
    console.print(
        f"  #{step.iteration}: {step.pool} -> {step.target} "
        f"[dim](original {step.original_target}, "
        f"replacement {step.replacement_target})[/dim]"
    )


def _print_result(result: MigrationResult) -> None:
    table = Table(title=f"Pool {result.pool.identity}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Path", result.run.path.value if result.run.path else "-")
    table.add_row("Generation", result.run.generation or "-")
    table.add_row("Replicas", str(result.pool.replicas))
    table.add_row("Iterations", str(len(result.run.steps)))
    if result.run.duration_seconds is not None:
        table.add_row("Duration", f"{result.run.duration_seconds:.1f}s")
    console.print(table)


@click.group()
@click.option(
    "--log-level",
    default=None,
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ~/.config/poolshift/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], config_path: Optional[Path]):
    """poolshift - zero-downtime replica pool migrations."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option(
    "-f",
    "--file",
    "spec_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file holding the pool spec",
)
@click.option("--namespace", default=None, help="Override the spec's namespace")
@click.option("--name", default=None, help="Override the spec's name")
@click.pass_context
def apply(
    ctx: click.Context,
    spec_file: Path,
    namespace: Optional[str],
    name: Optional[str],
):
    """Create the pool described by a spec file, or migrate it if it exists."""
    try:
        config = _load(ctx)
        with open(spec_file) as f:
            tree: Any = yaml.safe_load(f) or {}
        if not isinstance(tree, dict):
            raise click.BadParameter(
                "spec file must contain a mapping", param_hint="--file"
            )
        if namespace:
            tree["namespace"] = namespace
        if name:
            tree["name"] = name

        resource = _resource(ctx, config)
        spec = resource.parse(tree)
        identity = f"{spec.namespace}/{spec.name}"

        if not resource.exists(identity):
            resource.create(spec)
            console.print(f"[green]✅ Created pool {identity}[/green]")
            return

        console.print(f"[blue]🚀 Updating pool {identity}...[/blue]")
        result = resource.update(identity, spec, progress_callback=_print_step)
    except (PoolShiftError, OSError, yaml.YAMLError) as e:
        _fail(e)
        return

    _print_result(result)
    console.print(f"[green]✅ Pool {identity} is up to date[/green]")


@cli.command()
@click.argument("identity", callback=lambda ctx, param, value: _check_identity(value))
@click.pass_context
def show(ctx: click.Context, identity: str):
    """Print pool NAMESPACE/NAME as a YAML spec."""
    try:
        config = _load(ctx)
        tree = _resource(ctx, config).read(identity)
    except PoolShiftError as e:
        _fail(e)
        return
    click.echo(yaml.safe_dump(tree, sort_keys=False, default_flow_style=False))


@cli.command()
@click.argument("identity", callback=lambda ctx, param, value: _check_identity(value))
@click.pass_context
def delete(ctx: click.Context, identity: str):
    """Delete pool NAMESPACE/NAME."""
    try:
        config = _load(ctx)
        _resource(ctx, config).delete(identity)
    except PoolShiftError as e:
        _fail(e)
        return
    console.print(f"[green]✅ Deleted pool {identity}[/green]")


@cli.group(name="config")
def config_group():
    """Manage the poolshift configuration file."""


@config_group.command(name="init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx: click.Context, force: bool):
    """Write a commented default configuration file."""
    try:
        path = create_default_config(ctx.obj.get("config_path"), force=force)
    except PoolShiftError as e:
        _fail(e)
        return
    console.print(f"[green]✅ Wrote configuration to {path}[/green]")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
