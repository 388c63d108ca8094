import click
from click_option_group import optgroup
from loguru import logger

from mdscope.types import ACQ_ORDER, ORDER_NESTING, PERSIST, AcquisitionPlan, MDScopeError
from mdscope.util import start_log

from .base import log_options


def build_plan(
    frame_shape: tuple[int, int],
    slices: int,
    z_step: float,
    channels: tuple[str, ...],
    positions: int,
    position_spacing: float,
    times: int,
    interval: float,
    order: str,
) -> AcquisitionPlan:
    """Regular grid plan: slices centred on each position, positions along x."""
    z_offsets = (
        [(i - (slices - 1) / 2) * z_step for i in range(slices)] if slices > 1 else []
    )
    return AcquisitionPlan(
        positions_um=[(i * position_spacing, 0.0, 0.0) for i in range(positions)],
        z_offsets_um=z_offsets,
        time_delays_s=[i * interval for i in range(times)] if times > 1 else [],
        channels=channels,
        frame_shape=frame_shape,
        acquisition_order=order,
    )


@click.command()
@click.option(
    "--scope-name",
    "-n",
    default="mock",
    help='Scope configuration to use (default: "mock")',
)
@optgroup.group("Plan")
@optgroup.option(
    "--slices", "-s", type=click.IntRange(min=1), default=1, help="Slices per z-stack"
)
@optgroup.option("--z-step", "-dz", type=float, default=1.0, help="Slice spacing in um")
@optgroup.option(
    "--channel",
    "-ch",
    "channels",
    multiple=True,
    help="Channel preset name, repeat for several channels",
)
@optgroup.option(
    "--positions",
    "-p",
    type=click.IntRange(min=1),
    default=1,
    help="Number of stage positions",
)
@optgroup.option(
    "--position-spacing",
    type=float,
    default=100.0,
    help="Spacing of positions along x in um (default: 100)",
)
@optgroup.option(
    "--times", "-t", type=click.IntRange(min=1), default=1, help="Number of time points"
)
@optgroup.option(
    "--interval", "-i", type=float, default=0.0, help="Time between time points in s"
)
@optgroup.option(
    "--order",
    "-o",
    type=click.Choice(list(ORDER_NESTING)),
    default=ACQ_ORDER.ZCXYT,
    help="Acquisition order (default: ZCXYT)",
)
@optgroup.group("Storage")
@optgroup.option(
    "--save-dir", "-d", default=None, help="Override the scope's save directory"
)
@optgroup.option(
    "--presets", default=None, help="Override the scope's channel preset file"
)
@optgroup.option(
    "--persist",
    type=click.Choice([PERSIST.NONE, PERSIST.PER_FRAME, PERSIST.APPEND_RAW]),
    default=None,
    help="Override the scope's persist mode",
)
@optgroup.option(
    "--track-focus",
    is_flag=True,
    default=False,
    help="Track focus at each new position, whatever the scope's setting",
)
@log_options
def acquire(
    scope_name: str,
    slices: int,
    z_step: float,
    channels: tuple[str, ...],
    positions: int,
    position_spacing: float,
    times: int,
    interval: float,
    order: str,
    save_dir: str | None,
    presets: str | None,
    persist: str | None,
    track_focus: bool,
    log_to_file: bool,
    log_to_stdout: bool,
    log_path: str,
    clear_prev_log: bool,
    log_level: str,
):
    """Run an acquisition on a configured scope.

    Frames, the metadata journal and the store state are written to a new
    timestamped directory under the scope's save directory.
    """
    import dataclasses

    from mdscope.system import ScopeSystem, load_scope_config

    start_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )
    try:
        config = load_scope_config(scope_name)
    except ValueError as e:
        raise click.ClickException(str(e)) from None
    overrides = {
        "save_dir": save_dir,
        "presets_path": presets,
        "persist": persist,
        "track_focus": track_focus or None,
    }
    config = dataclasses.replace(
        config, **{k: v for k, v in overrides.items() if v is not None}
    )

    system = ScopeSystem(config)
    unknown = [c for c in channels if c not in system.presets]
    if unknown:
        raise click.UsageError(
            f"Unknown channel preset(s) {unknown}, scope '{config.scope_name}' has "
            + f"{list(system.presets.channels)}"
        )
    frame_shape = tuple(getattr(system.driver, "frame_shape", (64, 64)))
    plan = build_plan(
        frame_shape,
        slices,
        z_step,
        channels,
        positions,
        position_spacing,
        times,
        interval,
        order,
    )

    system.startup()
    try:
        store = system.acquire(plan, progress=True)
    except KeyboardInterrupt:
        click.echo("Acquisition interrupted.", err=True)
        raise click.Abort() from None
    except MDScopeError as e:
        logger.exception("Acquisition failed.")
        raise click.ClickException(str(e)) from None
    finally:
        system.packdown()
    click.echo(f"Acquired {store.n_written} frames into {store.directory}")
