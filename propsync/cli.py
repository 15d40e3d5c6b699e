"""
CLI interface for propsync.

Provides commands to inspect a building's buckets and to roll out the
day's task templates, using the same engine the editors use.

Commands:
- init: write a default config.yaml
- buckets: load every bucket of a layout once and print it
- rollout: create today's tasks from a weekday's templates
"""

import asyncio
from datetime import date

import click
from rich.markup import escape
from rich.table import Table

from propsync import __version__
from propsync.draft import BucketView
from propsync.engine import SyncEngine
from propsync.errors import ConfigError, PropsyncError
from propsync.schemas import DAY_LABELS, DAYS, SCHEDULER, CollectionLayout, get_layout
from propsync.schemas.layouts import LAYOUTS
from propsync.utils import console, print_error, print_success, print_warning, setup_logging


def _make_store(config, loop):
    """Firestore store bound to the running loop."""
    from propsync.store.firestore import FirestoreDocumentStore

    return FirestoreDocumentStore(loop=loop, project=config.project, database=config.database)


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'propsync init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _resolve_building(config, building: str | None) -> str:
    building = building or config.default_building
    if not building:
        raise click.UsageError("No building given and no default_building configured")
    return building


def render_bucket(view: BucketView, layout: CollectionLayout) -> Table:
    """Render one bucket as a rich table."""
    label = DAY_LABELS.get(view.key, view.key)
    status = []
    if view.loading:
        status.append("loading")
    if view.error is not None:
        status.append("offline")
    suffix = f" - {', '.join(status)}" if status else ""
    table = Table(title=f"{label} ({len(view.items)} items){suffix}")
    table.add_column("#", justify="right")
    table.add_column("id")
    table.add_column("title" if layout.name == SCHEDULER.name else "place")
    table.add_column("description")
    table.add_column("active")
    for item in view.items:
        name = item.get("title") if layout.name == SCHEDULER.name else item.get("place")
        table.add_row(
            str(item.order),
            escape(item.id),
            escape(name or ""),
            escape(item.get("description") or ""),
            "yes" if item.active else "no",
        )
    return table


@click.group()
@click.version_option(version=__version__, prog_name="propsync")
@click.option(
    "--log-format",
    type=click.Choice(["pretty", "structured"]),
    default="pretty",
    help="Log output format",
)
@click.pass_context
def main(ctx, log_format: str):
    """
    propsync - Draft/commit sync for building schedules and checklists.
    """
    from propsync.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except (FileNotFoundError, ConfigError) as e:
        # init works without a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)

    level = ctx.obj["config"].log_level if "config" in ctx.obj else "INFO"
    setup_logging(level, log_format)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize propsync configuration."""
    from propsync.config import get_propsync_home
    import yaml

    home = get_propsync_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "project": "propsync-dev",
        "database": "(default)",
        "google_application_credentials": None,
        "env_file": str(home / ".env"),
        "log_level": "INFO",
        "default_building": None,
        "actor": {"id": None, "name": None, "role": "manager"},
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# GOOGLE_APPLICATION_CREDENTIALS=...\n# GOOGLE_CLOUD_PROJECT=...\n")

    click.echo(f"Initialized propsync config at {cfg_path}")


@main.command("buckets")
@click.option("--building", "-b", help="Building id (defaults to default_building)")
@click.option(
    "--layout",
    "layout_name",
    type=click.Choice(sorted(LAYOUTS)),
    default=SCHEDULER.name,
    show_default=True,
)
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait for snapshots")
@click.pass_context
def buckets(ctx, building: str | None, layout_name: str, timeout: float):
    """Print every bucket of a building."""
    config = _require_config(ctx)
    building = _resolve_building(config, building)
    layout = get_layout(layout_name)

    async def _load() -> list[BucketView]:
        store = _make_store(config, asyncio.get_running_loop())
        engine = SyncEngine(store, layout, scope=building, actor=config.actor)
        try:
            await engine.wait_until_loaded(timeout)
        except asyncio.TimeoutError:
            print_warning(f"Timed out after {timeout}s; showing what has loaded")
        finally:
            engine.close()
        return [engine.get_bucket(key) for key in layout.keys]

    for view in asyncio.run(_load()):
        console.print(render_bucket(view, layout))
        if view.error is not None:
            print_warning(f"{view.key}: {escape(str(view.error))}")


@main.command("rollout")
@click.option("--building", "-b", help="Building id (defaults to default_building)")
@click.option("--day", type=click.Choice(DAYS), help="Weekday templates to use (defaults to today)")
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Task date (defaults to today)")
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait for templates")
@click.pass_context
def rollout(ctx, building: str | None, day: str | None, on_date, timeout: float):
    """Create today's tasks from a weekday's templates."""
    from propsync.rollout import rollout_day

    config = _require_config(ctx)
    building = _resolve_building(config, building)
    today = on_date.date() if on_date else date.today()
    day = day or DAYS[today.weekday()]

    async def _run():
        store = _make_store(config, asyncio.get_running_loop())
        engine = SyncEngine(store, SCHEDULER, scope=building, actor=config.actor)
        try:
            await engine.wait_until_loaded(timeout)
            return await rollout_day(engine, day, today=today)
        finally:
            engine.close()

    try:
        result = asyncio.run(_run())
    except (PropsyncError, asyncio.TimeoutError) as e:
        print_error(f"Rollout failed: {escape(str(e)) or 'timed out waiting for templates'}")
        raise SystemExit(1)

    print_success(
        f"Cleared {result.cleared} existing task(s) from {result.date}; "
        f"rolled out {result.created} new task(s) from {DAY_LABELS[day]}"
    )


if __name__ == "__main__":
    main()
