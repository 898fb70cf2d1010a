from __future__ import annotations
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.status import Status as RichStatus
from rich.table import Table
from rich.text import Text

from .backends import zabbix_base
from .backends.memory import DryRunBackend
from .core import config as cfg
from .core.base import TemplateBackend
from .core.cycles import check_circular_references
from .core.errors import ImportConfigError, ImportCycleError, TemplateImportError
from .core.importer import TemplateImporter
from .core.loader import load_exports
from .core.models import ImportReport
from .core.referencer import Referencer
from .core.reporting import summary_line, to_json, to_markdown

app = typer.Typer(
    help="zbximport – Import Zabbix templates in dependency order.",
    invoke_without_command=True,
)
console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool, color: bool) -> None:
    """Route stdlib logging (ours and zabbix_utils') through rich."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True, no_color=not color),
        show_path=False,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def _fail(message: str, code: int = 1) -> None:
    err_console.print(message, style="red", markup=False, highlight=False)
    raise typer.Exit(code=code)


def _render_table(report: ImportReport, *, color: bool, dry_run: bool) -> None:
    display_console = Console(force_terminal=color, no_color=not color)
    title = "Template Import" + (" (dry run)" if dry_run else "")
    table = Table(
        title=title,
        title_style="bold cyan" if color else "",
        show_lines=True,
        box=box.SQUARE,
    )
    table.add_column("Pass", justify="right")
    table.add_column("Template", style="bold")
    table.add_column("Action")
    table.add_column("Template ID")
    action_styles = {"created": "green", "updated": "yellow", "skipped": "dim"}
    for it in report.iterations:
        rows = [("created", n) for n in it.created] + [("updated", n) for n in it.updated]
        rows += [("skipped", n) for n in it.skipped]
        for action, name in rows:
            action_cell = Text(action)
            if color:
                action_cell.stylize(action_styles[action])
            table.add_row(str(it.index), name, action_cell, it.created_ids.get(name, "-"))
    display_console.print(table)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.command.get_help(ctx))
        raise typer.Exit(code=0)


@app.command("import")
def import_(
    files: List[Path] = typer.Argument(..., help="Zabbix configuration export(s) in YAML or JSON"),
    config_files: List[Path] = typer.Option(
        [],
        "--config",
        help="Configuration file(s) to load after defaults (can be passed multiple times)",
    ),
    vars_file: Optional[Path] = typer.Option(None, "--vars-file", help="YAML overrides with secrets"),
    set_kv: List[str] = typer.Option([], "--set", help="Override key=val (deep)"),
    ask_secrets: bool = typer.Option(False, "--ask-secrets", help="Prompt for missing secrets"),
    create_missing: Optional[bool] = typer.Option(
        None,
        "--create-missing/--no-create-missing",
        help="Create templates that do not exist yet (rules.templates.createMissing)",
    ),
    update_existing: Optional[bool] = typer.Option(
        None,
        "--update-existing/--no-update-existing",
        help="Update templates that already exist (rules.maps.updateExisting)",
    ),
    link_templates: Optional[bool] = typer.Option(
        None,
        "--link-templates/--no-link-templates",
        help="Keep parent template links (rules.templateLinkage.createMissing)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve against Zabbix but do not create or update"),
    format: str = typer.Option("table", help="Output format: table|json|md"),
    output: Optional[Path] = typer.Option(None, help="Write report to file instead of STDOUT"),
    color: bool = typer.Option(True, "--color/--no-color", help="Colorize table output"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show progress messages during execution"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log API calls"),
):
    """Import templates from export files into Zabbix."""
    _setup_logging(verbose, color)
    fmt = format.lower().strip()
    if fmt not in {"table", "json", "md", "markdown"}:
        raise typer.BadParameter("--format must be one of: table, json, md", param_hint="--format")

    status_spinner: RichStatus | None = None
    if progress:
        progress_console = Console(stderr=True, force_terminal=color, no_color=not color)
        status_spinner = progress_console.status("Preparing import…", spinner="dots")
        status_spinner.start()

    def emit_progress(message: str) -> None:
        if status_spinner is not None:
            status_spinner.update(status=message)

    def stop_status_spinner() -> None:
        nonlocal status_spinner
        if status_spinner is not None:
            status_spinner.stop()
            status_spinner = None

    backend: TemplateBackend | None = None
    start_time = time.perf_counter()
    try:
        emit_progress("Loading configuration...")
        cfg_raw = cfg.load_project_config(explicit_files=config_files or None)
        cfg_raw = cfg.merge_overrides(cfg_raw, vars_file=vars_file, set_kv=set_kv, env=os.environ)
        cfg_resolved = cfg.resolve_secrets(cfg_raw, ask=ask_secrets)
        options = cfg.import_options(
            cfg_resolved,
            create_missing=create_missing,
            update_existing=update_existing,
            link_templates=link_templates,
        )

        emit_progress(f"Reading {len(files)} export file(s)...")
        templates = load_exports(files)
        if not templates:
            stop_status_spinner()
            console.print("[yellow]No templates found in the given export(s).[/]")
            raise typer.Exit(code=0)

        # Fail on loops before opening a connection
        check_circular_references(templates)

        backend = zabbix_base.connect(cfg_resolved.get("zabbix") or {}, progress=emit_progress)
        if dry_run:
            backend = DryRunBackend(backend)
        importer = TemplateImporter(Referencer(backend), backend, options, progress=emit_progress)
        report = importer.import_templates(templates)
    except ImportConfigError as err:
        stop_status_spinner()
        _fail(str(err), code=2)
    except ImportCycleError as err:
        stop_status_spinner()
        _fail(str(err))
    except TemplateImportError as err:
        stop_status_spinner()
        _fail(f"Import aborted: {err}")
    finally:
        stop_status_spinner()
        if backend is not None:
            backend.close()

    elapsed = time.perf_counter() - start_time

    data: str | None
    if fmt == "json":
        data = to_json(report, dry_run=dry_run)
    elif fmt in {"md", "markdown"}:
        data = to_markdown(report, dry_run=dry_run)
    else:
        _render_table(report, color=color, dry_run=dry_run)
        data = None

    if data is not None:
        if output:
            output.write_text(data)
            console.print(f"Wrote report to {output}")
        else:
            typer.echo(data)

    if data is None or output:
        err_console.print(f"{summary_line(report)} ({elapsed:.2f}s)", style="dim", highlight=False)


@app.command()
def check(
    files: List[Path] = typer.Argument(..., help="Zabbix configuration export(s) in YAML or JSON"),
):
    """Validate exports offline: parse them and look for circular template links."""
    try:
        templates = load_exports(files)
        check_circular_references(templates)
    except TemplateImportError as err:
        _fail(str(err))

    linked = sum(1 for definition in templates.values() if definition.parents)
    console.print(
        f"[green]OK[/] {len(templates)} template(s), {linked} with parent templates, no circular references.",
        highlight=False,
    )


@app.command()
def init(
    path: Path = typer.Option(Path("config") / "zbximport.yaml", "--path", help="Where to write the configuration"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a starter configuration file."""
    try:
        written = cfg.write_default_config(path, force=force)
    except ImportConfigError as err:
        _fail(str(err))
    console.print(f"Wrote configuration template to {written}")


if __name__ == "__main__":
    app()
