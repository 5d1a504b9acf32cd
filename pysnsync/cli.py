"""CLI interface for syncing ServiceNow scripts with local files."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from .api import ServiceNowClient
from .config import config
from .exceptions import SNConfigError, SNError
from .output import OutputFormatter
from .sync import (
    SCRIPT_TYPES,
    SyncEngine,
    SyncRequest,
    SyncResult,
    generate_file_name,
    parse_file_name,
    sync_all_scripts,
    watch_scripts,
)

logger = logging.getLogger(__name__)

SCRIPT_TYPE_CHOICE = click.Choice(list(SCRIPT_TYPES))


def _create_engine(ctx: Any, out: OutputFormatter) -> SyncEngine:
    """Build a sync engine for the selected instance, exiting on bad config."""
    try:
        instance = config.get_instance_or_default(ctx.obj["instance"])
    except SNConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker
    ctx.obj["instance_name"] = instance.name
    logger.debug("Using instance %s (%s)", instance.name, instance.url)
    client = ServiceNowClient.from_instance(instance)
    ctx.call_on_close(client.close)
    return SyncEngine(client)


def _print_result(out: OutputFormatter, result: SyncResult) -> None:
    if result.success:
        out.success(f"✓ {result.message}")
        if result.sys_id:
            out.info(f"  sys_id: {result.sys_id}")
    else:
        out.error(f"{result.file_path.name}: {result.message}")


@click.group()
@click.option(
    "--instance",
    "-i",
    envvar="SERVICENOW_INSTANCE",
    help="Configured instance to use (default: the default instance)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pysnsync")
@click.pass_context
def main(
    ctx: Any,
    instance: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PySNSync - Keep ServiceNow scripts in local files under version control."""
    ctx.ensure_object(dict)
    ctx.obj["instance"] = instance
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pysnsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.pass_context
def instances(ctx: Any) -> None:
    """List configured ServiceNow instances."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        summaries = config.list_instances()
    except SNConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"instances": summaries})
        return

    out.print_table(
        ["Name", "URL", "Default", "Description"],
        [
            [s["name"], s["url"], "yes" if s["default"] else "", s["description"]]
            for s in summaries
        ],
    )


@main.command("types")
@click.pass_context
def list_types(ctx: Any) -> None:
    """List the script types that can be synced."""
    out: OutputFormatter = ctx.obj["out"]

    if out.json_output:
        out.output_json(
            {
                type_id: {
                    "table": st.table,
                    "label": st.label,
                    "name_field": st.name_field,
                    "script_field": st.script_field,
                    "extension": st.extension,
                }
                for type_id, st in SCRIPT_TYPES.items()
            }
        )
        return

    out.print_table(
        ["Type", "Label", "Table", "Extension"],
        [
            [type_id, st.label, st.table, st.extension]
            for type_id, st in SCRIPT_TYPES.items()
        ],
    )


@main.command()
@click.argument("name")
@click.argument("script_type", metavar="TYPE", type=SCRIPT_TYPE_CHOICE)
def filename(name: str, script_type: str) -> None:
    """Print the local file name for script NAME of type TYPE."""
    click.echo(generate_file_name(name, script_type))


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--name", "-n", help="Script name (default: taken from the file name)")
@click.option(
    "--type",
    "-t",
    "script_type",
    type=SCRIPT_TYPE_CHOICE,
    help="Script type (default: taken from the file name)",
)
@click.option(
    "--push", "direction", flag_value="push", help="Upload the local file"
)
@click.option(
    "--pull", "direction", flag_value="pull", help="Download into the local file"
)
@click.pass_context
def sync(
    ctx: Any,
    path: Path,
    name: Optional[str],
    script_type: Optional[str],
    direction: Optional[str],
) -> None:
    """Sync one script between PATH and ServiceNow.

    Without --push or --pull the direction is inferred: an existing file is
    pushed, a missing file is pulled. If PATH is a directory, --name and
    --type are required and the file name is generated inside it.

    Examples:
        pysnsync sync scripts/Util.sys_script_include.js
        pysnsync sync scripts --name Util --type sys_script_include --pull
        pysnsync sync MyRule.sys_script.js --push
    """
    out: OutputFormatter = ctx.obj["out"]

    if path.is_dir():
        if not (name and script_type):
            out.error("--name and --type are required when PATH is a directory")
            ctx.exit(1)
            return
        path = path / generate_file_name(name, script_type)
    elif not (name and script_type):
        token = parse_file_name(path.name)
        if not token.is_valid:
            out.error(
                f"Cannot derive script name and type from '{path.name}'. "
                "Use <name>.<type>.js or pass --name and --type."
            )
            ctx.exit(1)
            return
        name = name or token.script_name
        script_type = script_type or token.script_type

    engine = _create_engine(ctx, out)
    result = engine.sync(
        SyncRequest(
            script_name=name,
            script_type=script_type,
            file_path=path,
            direction=direction,
            instance=ctx.obj.get("instance_name"),
        )
    )

    if out.json_output:
        out.output_json(result.to_dict())
    else:
        _print_result(out, result)

    if not result.success:
        ctx.exit(1)


@main.command("sync-all")
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--type",
    "-t",
    "script_types",
    type=SCRIPT_TYPE_CHOICE,
    multiple=True,
    help="Only sync this script type (repeatable, default: all)",
)
@click.pass_context
def sync_all(ctx: Any, directory: Path, script_types: tuple[str, ...]) -> None:
    """Push every script file in DIRECTORY to ServiceNow.

    Only files named <name>.<type>.js are considered. Records must already
    exist on the instance.

    Examples:
        pysnsync sync-all scripts
        pysnsync sync-all scripts -t sys_script_include -t sys_ui_script
    """
    out: OutputFormatter = ctx.obj["out"]
    engine = _create_engine(ctx, out)

    report = sync_all_scripts(
        engine,
        directory,
        script_types=script_types or None,
        instance=ctx.obj.get("instance_name"),
    )

    if out.json_output:
        out.output_json(report.to_dict())
    else:
        if report.error:
            out.error(f"Cannot sync {directory}: {report.error}")
        for result in report.results:
            if result.success:
                out.success(f"✓ {result.script_name} ({result.script_type})")
            else:
                out.error(
                    f"{result.script_name} ({result.script_type}): {result.error}"
                )
        out.print("")
        out.print(
            f"Synced {report.synced}/{report.total_files} file(s), "
            f"{report.failed} failed"
        )

    if report.error or report.failed:
        ctx.exit(1)


@main.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--type",
    "-t",
    "script_types",
    type=SCRIPT_TYPE_CHOICE,
    multiple=True,
    help="Only watch this script type (repeatable, default: all)",
)
@click.option(
    "--no-auto-sync",
    is_flag=True,
    help="Only report changes, do not push them",
)
@click.pass_context
def watch(
    ctx: Any,
    directory: Path,
    script_types: tuple[str, ...],
    no_auto_sync: bool,
) -> None:
    """Watch DIRECTORY and push script files whenever they are saved.

    Runs until interrupted with Ctrl+C.
    """
    out: OutputFormatter = ctx.obj["out"]
    engine = _create_engine(ctx, out)

    try:
        settings = config.watch_settings()
    except SNConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    def on_sync(result: SyncResult) -> None:
        if out.json_output:
            out.output_json(result.to_dict())
        else:
            _print_result(out, result)

    def on_error(error: Exception) -> None:
        out.warning(f"Watcher error: {error}")

    try:
        watcher = watch_scripts(
            engine,
            directory,
            script_types=script_types or None,
            auto_sync=not no_auto_sync,
            on_sync=on_sync,
            on_error=on_error,
            instance=ctx.obj.get("instance_name"),
            settings=settings,
        )
    except (OSError, SNError) as e:
        out.error(f"Cannot watch {directory}: {e}")
        ctx.exit(1)
        return

    out.info(f"Watching {directory} for changes... (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        out.info("\nStopping watcher")
    finally:
        watcher.stop()


if __name__ == "__main__":
    main()
