import os

import click
from rich.console import Console
from rich.table import Table

from mdscope.types import MDScopeError
from mdscope.util import DEFAULT_FILE_PREFIX, DEFAULT_LOGLEVEL, format_error_response


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


def log_options(f):
    """Logging options shared by the commands that run acquisitions."""
    options = [
        click.option(
            "--log-to-file/--no-log-to-file",
            "-ltf/",
            default=True,
            help="Enable/disable logging to file (default: enabled)",
        ),
        click.option(
            "--log-to-stdout/--no-log-to-stdout",
            "-lts/",
            default=False,
            help="Enable/disable console logging (default: disabled)",
        ),
        click.option(
            "--log-path",
            "-lp",
            default="",
            help="Custom path for log file (default: ~/.mdscope/mdscope.log)",
        ),
        click.option(
            "--clear-prev-log/--no-clear-prev-log",
            "-c/",
            default=True,
            help="Clear previous log file on startup (default: enabled)",
        ),
        click.option(
            "--log-level",
            "-ll",
            default=DEFAULT_LOGLEVEL,
            help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR) (default: INFO)",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


@click.group()
@tree_option
def cli():
    """mdscope - multi-dimensional microscope acquisition.

    - Acquire z-stacks over channels, stage positions and time points

    - Inspect and recover datasets from their metadata journal

    - Manage scope configurations
    """
    pass


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--prefix",
    "-p",
    default=DEFAULT_FILE_PREFIX,
    help=f"File prefix of the dataset (default: {DEFAULT_FILE_PREFIX})",
)
def info(directory: str, prefix: str):
    """Describe a dataset reconstructed from its metadata journal.

    DIRECTORY: Dataset directory
    """
    from mdscope.store import read_journal, reconstruct_from_journal
    from mdscope.types import JOURNAL_SUFFIX

    try:
        records = read_journal(os.path.join(directory, prefix + JOURNAL_SUFFIX))
        dataset = reconstruct_from_journal(records)
    except MDScopeError as e:
        raise click.ClickException(str(e)) from None

    console = Console(highlight=False)
    table = Table(title=f"{prefix} in {directory}")
    table.add_column("Axis")
    table.add_column("Size", justify="right")
    table.add_column("Values")
    table.add_row("slices", str(dataset.sizes.slices), _fmt(dataset.z_offsets_um))
    table.add_row(
        "channels",
        str(dataset.sizes.channels),
        ", ".join(str(c) for c in dataset.channels),
    )
    table.add_row(
        "positions", str(dataset.sizes.positions), _fmt(dataset.positions_um)
    )
    table.add_row("times", str(dataset.sizes.times), _fmt(dataset.time_delays_s))
    console.print(table)
    console.print(f"Acquisition order: [bold]{dataset.acquisition_order}[/bold]")
    console.print(f"Frames: {dataset.n_frames} of {dataset.n_records} records")
    if not dataset.exact:
        console.print("[yellow]![/yellow] Journal incomplete, trailing frames dropped")
    for warning in dataset.warnings:
        console.print(f"[yellow]![/yellow] {warning}")


def _fmt(values, limit=6) -> str:
    shown = ", ".join(str(v) for v in values[:limit])
    return shown + (", ..." if len(values) > limit else "")


@cli.group()
@tree_option
def config():
    """Manage scope configurations."""
    pass


@config.command(name="list")
def list_scopes():
    """List available scope configurations."""
    from mdscope.system import list_available_scopes

    scopes = list_available_scopes()

    click.echo("\nAvailable scope configurations:")
    click.echo("-------------------------------")

    if not scopes:
        click.echo("No scope configurations found")
        click.echo("")
        return

    package_scopes = [name for name, src in scopes.items() if src == "package"]
    user_scopes = [name for name, src in scopes.items() if src == "user"]

    if package_scopes:
        click.echo("\nPackage defaults:")
        for name in sorted(package_scopes):
            click.echo(f"  - {name}")

    if user_scopes:
        click.echo("\nUser configurations:")
        for name in sorted(user_scopes):
            click.echo(f"  - {name}")
    click.echo("")


@config.command()
@click.argument("name")
def install(name: str):
    """Install a package scope config to the user directory.

    NAME: Name of scope configuration to install
    """
    from mdscope.system import install_scope_config

    try:
        install_scope_config(name)
        click.echo(f"Installed scope configuration '{name}' to user directory")
    except (FileNotFoundError, ValueError):
        click.echo(f"Error: {format_error_response()}", err=True)
