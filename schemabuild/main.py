"""
schemabuild — CLI entrypoint.

Usage:
    schemabuild --help
    schemabuild generate
    schemabuild plan --json
    schemabuild config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from schemabuild import __version__
from schemabuild.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="schemabuild")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to schemabuild.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """schemabuild — incremental schema code generation."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(verbose=verbose, quiet=quiet, debug=debug),
        log_file=os.environ.get("SCHEMABUILD_LOG_FILE"),
        log_file_level=os.environ.get("SCHEMABUILD_LOG_FILE_LEVEL"),
        compiler_level=os.environ.get("SCHEMABUILD_COMPILER_LOG_LEVEL"),
    )


def _echo_plan(plan) -> None:
    kind_color = {"full": "yellow", "partial": "cyan", "skip": "green"}.get(plan.kind, "white")
    click.echo("   Plan: ", nl=False)
    click.secho(plan.kind, fg=kind_color, bold=True, nl=False)
    click.echo(f" ({plan.reason})" if plan.reason else "")
    for schema in plan.changed:
        click.echo(f"     • {schema.logical_path}")
    for schema in plan.dependents:
        click.echo(f"     • {schema.logical_path} (dependent)")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--role",
    type=click.Choice(["main", "test"]),
    default=None,
    help="Source role to build (default: from config).",
)
@click.option("--no-incremental", is_flag=True, help="Regenerate every source.")
@click.option("--dry-run", is_flag=True, help="Decide what to generate, then stop.")
@click.pass_context
def generate(
    ctx: click.Context,
    as_json: bool,
    role: str | None,
    no_incremental: bool,
    dry_run: bool,
) -> None:
    """Generate code from schema sources.

    Examples:

        schemabuild generate

        schemabuild generate --role test

        schemabuild generate --no-incremental --json
    """
    from schemabuild.core.use_cases.generate import run_generate

    result = run_generate(
        config_path=ctx.obj.get("config_path"),
        role=role,
        incremental=False if no_incremental else None,
        dry_run=dry_run,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    mode_label = "[dry-run] " if dry_run else ""

    if result.status == "nothing_to_do":
        if not quiet:
            click.secho(f"⊘ {mode_label}Nothing to do", fg="yellow")
        return

    if result.status == "disabled":
        if not quiet:
            click.secho("⊘ Generation is disabled (skip: true)", fg="yellow")
        return

    if not quiet:
        click.secho(f"\n⚡ {mode_label}generate ({result.role})", fg="cyan", bold=True)
        if result.discovery is not None:
            click.echo(
                f"   Sources: {result.discovery.source_count} | "
                f"Include roots: {len(result.discovery.include_roots)}"
            )
        if result.plan is not None:
            _echo_plan(result.plan)

    report = result.report
    if report is not None and not quiet:
        for receipt in report.receipts:
            timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
            click.secho(f"   ✓ {receipt.action_id}", fg="green", nl=False)
            click.echo(timing)

    for directory in result.registered:
        click.echo(f"   ↳ source root: {directory}")

    if not quiet:
        click.echo()
        if result.status == "skipped":
            click.secho("✅ Up to date", fg="green", bold=True)
        elif report is not None:
            click.secho(
                f"✅ {report.files_generated} file(s) generated "
                f"in {report.invocations} invocation(s)",
                fg="green",
                bold=True,
            )
        click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--role",
    type=click.Choice(["main", "test"]),
    default=None,
    help="Source role to plan (default: from config).",
)
@click.pass_context
def plan(ctx: click.Context, as_json: bool, role: str | None) -> None:
    """Show what the next generate would do, without running anything."""
    from schemabuild.core.use_cases.generate import run_generate

    result = run_generate(config_path=ctx.obj.get("config_path"), role=role, dry_run=True)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    if result.plan is None:
        click.secho("⊘ Nothing to do", fg="yellow")
        return

    click.secho(f"\n📋 plan ({result.role})", fg="cyan", bold=True)
    _echo_plan(result.plan)
    click.echo()


@cli.group()
def config() -> None:
    """Build configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate schemabuild.yml configuration."""
    from schemabuild.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        if result.config.name:
            click.echo(f"   Name: {result.config.name}")
        click.echo(f"   Role: {result.config.role}")
        click.echo(f"   Output: {result.config.effective_output_directory}")
        click.echo(f"   Plugins: {len(result.config.plugins)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.group()
def state() -> None:
    """Persisted build state commands."""


@state.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--role", type=click.Choice(["main", "test"]), default=None)
@click.pass_context
def state_show(ctx: click.Context, as_json: bool, role: str | None) -> None:
    """Show the state recorded by the last successful build."""
    from schemabuild.core.use_cases.state import show_state

    result = show_state(config_path=ctx.obj.get("config_path"), role=role)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    if result.state is None:
        click.secho("⊘ No build state recorded yet", fg="yellow")
        click.echo(f"   {result.state_path}")
        return

    st = result.state
    click.secho(f"\n📋 {result.state_path}", fg="cyan", bold=True)
    click.echo(f"   Updated: {st.updated_at}")
    click.echo(f"   Files: {len(st.files)}")
    for record in st.generated_outputs:
        click.echo(
            f"     • {record.pass_id} → {record.directory} ({len(record.files)} file(s))"
        )

    if result.history:
        click.echo()
        click.secho("   Recent runs:", fg="white", bold=True)
        for entry in result.history:
            status_color = {"ok": "green", "skipped": "green", "failed": "red"}.get(
                entry.status, "yellow"
            )
            click.echo(f"     {entry.timestamp} {entry.plan or '-'} ", nl=False)
            click.secho(entry.status, fg=status_color)
    click.echo()


@state.command("clear")
@click.option("--role", type=click.Choice(["main", "test"]), default=None)
@click.pass_context
def state_clear(ctx: click.Context, role: str | None) -> None:
    """Forget the last build so the next generate is a full build."""
    from schemabuild.core.use_cases.state import clear_state

    result = clear_state(config_path=ctx.obj.get("config_path"), role=role)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    if result.cleared:
        click.secho(f"✅ Cleared {result.state_path}", fg="green")
    else:
        click.echo("⊘ No build state to clear")


if __name__ == "__main__":
    cli()
