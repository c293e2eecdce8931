"""
vpsprov — CLI entrypoint.

Usage:
    vpsprov --help
    vpsprov provision --domain example.com --database postgresql --yes
    vpsprov provision --config answers.yml --dry-run
    vpsprov steps
    vpsprov report ~/.local/share/vpsprov/reports/run-....json
    vpsprov history -n 5
"""

from __future__ import annotations

import contextlib
import json
import signal
import sys
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import click

from vpsprov import __version__
from vpsprov.core.observability.logging_config import level_from_flags, setup_from_env

_OUTCOME_COLORS = {
    "provisioned": "green",
    "dry_run": "cyan",
    "partial": "yellow",
    "rolled_back": "yellow",
    "rollback_incomplete": "red",
    "in_progress": "yellow",
}


@click.group()
@click.version_option(version=__version__, prog_name="vpsprov")
@click.option("--verbose", "-v", is_flag=True, help="Show progress for every step.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """vpsprov — provision an Ubuntu VPS for a Node.js web application."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_env(level_from_flags(debug=debug, verbose=verbose, quiet=quiet))


# ── Provision ───────────────────────────────────────────────────


@cli.command()
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML answers file.",
)
@click.option("--user", "app_user", default=None, help="Application user [default: app].")
@click.option("--app-dir", default=None, help="Application directory [default: /var/www/<user>].")
@click.option("--domain", default=None, help="Domain name, e.g. example.com.")
@click.option("--node-version", default=None, help="Node.js version: 16.x/18.x/20.x/21.x or menu number.")
@click.option("--database", default=None, help="postgresql, mysql, mongodb, none, or menu number.")
@click.option("--web-server", default=None, help="nginx, apache, or menu number.")
@click.option("--addon", "addons", multiple=True, help="docker, redis, tls, fail2ban (repeatable).")
@click.option(
    "--mongodb-via",
    "mongodb_install",
    type=click.Choice(["auto", "docker", "repository"]),
    default=None,
    help="How to install MongoDB [default: auto, Docker if the docker addon is selected].",
)
@click.option(
    "--interactive/--non-interactive",
    default=None,
    help="Ask the setup questions [default: when run from a terminal without --config].",
)
@click.option("--dry-run", is_flag=True, help="Print the commands without running anything.")
@click.option(
    "--resume",
    "resume_from",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Skip steps completed in this earlier report.",
)
@click.option(
    "--report-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to save the run report [default: state directory].",
)
@click.option("--step-timeout", type=click.IntRange(min=1), default=None, help="Seconds per step [default: 600].")
@click.option("--continue-on-failure", is_flag=True, help="Continue past failed non-fatal steps.")
@click.option(
    "--enable-firewall/--no-enable-firewall",
    default=None,
    help="Answer the firewall question up front.",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask 'Proceed with installation?'.")
@click.option("--skip-preflight", is_flag=True, help="Don't check for root and Ubuntu.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    config_path: Path | None,
    app_user: str | None,
    app_dir: str | None,
    domain: str | None,
    node_version: str | None,
    database: str | None,
    web_server: str | None,
    addons: tuple[str, ...],
    mongodb_install: str | None,
    interactive: bool | None,
    dry_run: bool,
    resume_from: Path | None,
    report_file: Path | None,
    step_timeout: int | None,
    continue_on_failure: bool,
    enable_firewall: bool | None,
    assume_yes: bool,
    skip_preflight: bool,
    as_json: bool,
) -> None:
    """Provision this host: runtime, database, web server, firewall."""
    from vpsprov.core.config import ConfigResolver, env_secrets, load_answers, merge_answers
    from vpsprov.core.errors import ValidationError
    from vpsprov.core.use_cases.provision import EXIT_ABORTED, EXIT_VALIDATION, provision as run
    from vpsprov.ui.cli import prompts

    if interactive is None:
        interactive = config_path is None and not as_json and sys.stdin.isatty()

    flags: dict[str, Any] = {
        "app_user": app_user,
        "app_dir": app_dir,
        "domain": domain,
        "node_version": node_version,
        "database": database,
        "web_server": web_server,
        "addons": list(addons) or None,
        "mongodb_install": mongodb_install,
        "step_timeout": step_timeout,
    }

    # ── Resolve configuration ────────────────────────────────────
    try:
        from_file = load_answers(config_path) if config_path else {}
        answers = merge_answers(from_file, env_secrets(), flags)

        if interactive:
            prompts.banner()
            answers = prompts.ask_answers(answers)
            answers = prompts.ask_secrets(answers)
            resolver = ConfigResolver(reprompt_domain=prompts.ask_domain, strict_menus=False)
        else:
            resolver = ConfigResolver()
        config = resolver.resolve(answers)
    except ValidationError as e:
        _fail(f"Invalid {e.field}: {e.message}", EXIT_VALIDATION, as_json)
        return

    if not as_json:
        prompts.show_summary(config)

    if interactive and not assume_yes and not dry_run:
        if not click.confirm("Proceed with installation?", default=False):
            _fail("Installation aborted by user", EXIT_ABORTED, as_json)
            return

    # ── Confirmation for steps that need it ──────────────────────
    if enable_firewall is not None:
        def confirm(step):
            return enable_firewall
    elif interactive:
        confirm = prompts.confirm_step
    else:
        confirm = None

    # ── Run (first Ctrl-C cancels between steps) ─────────────────
    cancel = threading.Event()
    with cancel_on_interrupt(cancel):
        result = run(
            config,
            dry_run=dry_run,
            confirm=confirm,
            continue_on_failure=continue_on_failure,
            cancel_event=cancel,
            resume_from=resume_from,
            report_path=report_file,
            skip_preflight=skip_preflight,
        )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        _fail(result.error, result.exit_code, as_json)
        return

    _print_report(result.report, quiet=ctx.obj.get("quiet", False))
    if result.report_path:
        click.secho(f"   💾 Report saved to {result.report_path}", fg="cyan")
    sys.exit(result.exit_code)


@contextlib.contextmanager
def cancel_on_interrupt(cancel: threading.Event) -> Iterator[None]:
    """Route Ctrl-C to ``cancel`` while the block runs.

    The first interrupt sets the event so the executor stops before the
    next step and rolls back. A second one raises KeyboardInterrupt.
    The previous handler is restored on exit.
    """

    def _interrupt(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        click.secho(
            "\n⚠️  Interrupt received: stopping after the current step and rolling back "
            "(press Ctrl-C again to abort immediately)",
            fg="yellow",
            err=True,
        )

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(message: str, exit_code: int, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps({"error": message, "exit_code": exit_code}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(exit_code)


def _print_report(report, quiet: bool = False, show_commands: bool = False) -> None:
    from vpsprov.core.engine.reporter import next_steps, render_failures, render_text, summary_line

    status = report.status.value
    if not quiet:
        click.echo()
        click.echo(render_text(report, show_commands=show_commands))
        click.echo()
    else:
        # failures are shown even when quiet
        failures = render_failures(report)
        if failures:
            click.echo(failures, err=True)
    icon = "✅" if report.ok else "⚠️ " if status == "partial" else "❌"
    click.secho(f"{icon} {summary_line(report)}", fg=_OUTCOME_COLORS.get(status, "white"), bold=True)

    guidance = next_steps(report)
    if guidance and not quiet:
        click.echo()
        click.secho("Next Steps:", fg="blue", bold=True)
        for line in guidance:
            click.echo(line)


# ── Catalog ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def steps(as_json: bool) -> None:
    """List every provisioning step vpsprov knows about."""
    from vpsprov.core.catalog import build_default_registry

    registry = build_default_registry()

    if as_json:
        data = [
            {
                "id": step.id,
                "label": step.label,
                "category": step.category.value,
                "depends_on": list(step.depends_on),
                "after": list(step.after),
                "rollback": step.reversible,
                "fatal": step.fatal,
                "auto_include": step.auto_include,
                "description": step.description,
            }
            for step in registry
        ]
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"📋 Provisioning steps ({len(registry)})", fg="cyan", bold=True)
    for step in registry:
        undo = "↺" if step.reversible else " "
        click.secho(f"   {undo} {step.id:<32}", fg="white", bold=True, nl=False)
        click.echo(f" {step.category.value:<10} {step.label}")
        if step.depends_on:
            click.echo(f"       needs: {', '.join(step.depends_on)}")
        if step.after:
            click.echo(f"       after: {', '.join(step.after)}")
        if step.description:
            click.echo(f"       note:  {step.description}")
    click.echo()
    click.echo("   ↺ = can be rolled back")


# ── Report ──────────────────────────────────────────────────────


@cli.command()
@click.argument("report_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--commands", "show_commands", is_flag=True, help="Show every command each step ran.")
@click.pass_context
def report(ctx: click.Context, report_file: Path, as_json: bool, show_commands: bool) -> None:
    """Show a saved run report."""
    from vpsprov.core.engine.reporter import render_json
    from vpsprov.core.errors import ReportFileError
    from vpsprov.core.persistence.report_file import load_report
    from vpsprov.core.use_cases.provision import EXIT_VALIDATION

    try:
        saved = load_report(report_file)
    except ReportFileError as e:
        _fail(str(e), EXIT_VALIDATION, as_json)
        return

    if as_json:
        click.echo(render_json(saved))
        return

    _print_report(saved, quiet=ctx.obj.get("quiet", False), show_commands=show_commands)


# ── History ─────────────────────────────────────────────────────


@cli.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, show_default=True, help="Runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def history(limit: int, as_json: bool) -> None:
    """Show the most recent provisioning runs on this host."""
    from vpsprov.core.persistence.audit import AuditWriter, default_audit_path

    ledger = AuditWriter(default_audit_path())
    entries = ledger.read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo(f"No runs recorded in {ledger.path}")
        return

    click.secho(f"📜 Recent runs ({len(entries)})", fg="cyan", bold=True)
    for entry in entries:
        color = _OUTCOME_COLORS.get(entry.status, "white")
        click.secho(f"   {entry.timestamp[:19]}  {entry.status:<20}", fg=color, nl=False)
        click.echo(f" {entry.domain:<24} {entry.run_id}")

        detail = f"applied {entry.steps_applied}/{entry.steps_planned}"
        if entry.failed_step:
            detail += f", failed at {entry.failed_step}"
        if entry.rollback_failures:
            detail += f", manual cleanup: {', '.join(entry.rollback_failures)}"
        click.echo(f"       {detail}")
        if entry.report_path:
            click.echo(f"       report: {entry.report_path}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
