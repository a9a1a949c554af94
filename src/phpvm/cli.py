"""Typer-powered command line interface for ``phpvm``."""
from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .audit import InstallationAuditor, InstallationInconsistentError
from .catalog import UnsupportedVersionError, VersionCatalog, default_catalog
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .extensions import ExtensionToggler
from .layout import PhpLayout
from .linked import UndeterminedCurrentVersionError, try_linked_version
from .logging import OperationScope, StructuredLogger
from .providers import BrewError, BrewProvider, PeclCustomProvider, PeclError, PeclProvider
from .reconcile import ConfigReconcileError, ConfigReconciler, EnvironmentFacts
from .service import PhpFpmService
from .switcher import LinkFailureError, VersionSwitcher
from .templates import TemplateEngine

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to phpvm's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Manage parallel Homebrew PHP versions for local development.

        Switch the linked PHP, keep every version's PHP-FPM pool and php.ini
        in line with this workstation, and toggle extensions per version.
        """
    ).strip(),
)
ext_app = typer.Typer(help="Enable, disable and inspect PHP extensions.")
xdebug_app = typer.Typer(help="Toggle xdebug remote autostart.")
config_app = typer.Typer(help="Inspect phpvm configuration.")

app.add_typer(ext_app, name="ext")
app.add_typer(xdebug_app, name="xdebug")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    catalog: VersionCatalog
    layout: PhpLayout
    logger: StructuredLogger
    templates: TemplateEngine
    brew: BrewProvider
    pecl: PeclProvider
    pecl_custom: PeclCustomProvider
    reconciler: ConfigReconciler
    service: PhpFpmService
    switcher: VersionSwitcher
    toggler: ExtensionToggler
    auditor: InstallationAuditor


def _info(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]", highlight=False)


def _warning(message: str) -> None:
    console.print(f"[yellow]{escape(message)}[/yellow]", highlight=False)


def _build_runtime(config: AppConfig) -> RuntimeContext:
    catalog = default_catalog()
    layout = PhpLayout(etc_root=config.etc_root)
    logger = StructuredLogger(config.logs_dir)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    brew = BrewProvider(user=config.user, brew_bin=config.brew.brew_bin)
    pecl = PeclProvider(
        layout=layout,
        user=config.user,
        extensions=config.extensions.pecl,
        pecl_bin=config.brew.pecl_bin,
    )
    pecl_custom = PeclCustomProvider(brew=brew, extensions=config.extensions.custom)
    facts = EnvironmentFacts(
        user=config.user,
        group=config.group,
        socket_path=config.socket_path,
        socket_mode=config.fpm.socket_mode,
        error_log_path=config.error_log_path,
    )
    reconciler = ConfigReconciler(
        layout=layout,
        facts=facts,
        templates=templates,
        extension_source=pecl,
        localtime_path=config.localtime_path,
    )
    service = PhpFpmService(
        catalog=catalog,
        brew=brew,
        reconciler=reconciler,
        pecl=pecl,
        pecl_custom=pecl_custom,
        php_bin=config.php_bin,
        var_log_dir=config.var_log_dir,
        user=config.user,
        tap=config.brew.tap,
        notify=_info,
    )
    switcher = VersionSwitcher(
        catalog=catalog,
        brew=brew,
        service=service,
        php_bin=config.php_bin,
        notify=_info,
        warn=_warning,
    )
    toggler = ExtensionToggler(
        catalog=catalog,
        brew=brew,
        layout=layout,
        php_bin=config.php_bin,
        notify=_info,
    )
    auditor = InstallationAuditor(
        catalog=catalog,
        brew=brew,
        layout=layout,
        notify=_info,
        warn=_warning,
    )
    return RuntimeContext(
        config=config,
        catalog=catalog,
        layout=layout,
        logger=logger,
        templates=templates,
        brew=brew,
        pecl=pecl,
        pecl_custom=pecl_custom,
        reconciler=reconciler,
        service=service,
        switcher=switcher,
        toggler=toggler,
        auditor=auditor,
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    runtime = _build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the phpvm version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"phpvm {__version__}")
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: list[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]", highlight=False)
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _exit_code_for(exc: Exception) -> ExitCode:
    if isinstance(exc, (UnsupportedVersionError, ConfigError)):
        return ExitCode.VALIDATION
    if isinstance(
        exc,
        (
            UndeterminedCurrentVersionError,
            InstallationInconsistentError,
            ConfigReconcileError,
            OSError,
        ),
    ):
        return ExitCode.ENVIRONMENT
    return ExitCode.PROVIDER


_HANDLED_ERRORS = (
    UnsupportedVersionError,
    ConfigError,
    UndeterminedCurrentVersionError,
    InstallationInconsistentError,
    ConfigReconcileError,
    LinkFailureError,
    BrewError,
    PeclError,
    OSError,
)


def _handle_error(op: OperationScope, exc: Exception) -> NoReturn:
    errors = [str(exc)]
    if isinstance(exc, InstallationInconsistentError):
        for finding in exc.findings:
            console.print(f"  - {escape(finding.message)}", highlight=False)
        errors.extend(finding.id for finding in exc.findings)
    _command_error(op, str(exc), rc=_exit_code_for(exc), errors=errors)


@app.command()
def install(ctx: typer.Context) -> None:
    """Install (when needed), configure and start PHP-FPM for the linked version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("install", target={"kind": "php"}) as op:
        try:
            runtime.auditor.check()
            op.add_step("audit.check", status="success")
            result = runtime.service.install()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        op.add_step("reconcile", status="success", detail=str(result.reconcile.pool_config))
        _info(f"PHP {result.version} ({result.package}) is installed and running.")
        changed = int(result.reconcile.pool_changed) + int(result.reconcile.php_ini_changed)
        op.success("Install completed.", changed=changed, context={"version": result.version})


@app.command()
def switch(
    ctx: typer.Context,
    version: str = typer.Argument(..., help="PHP version to link, e.g. 7.4."),
) -> None:
    """Switch the linked PHP version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "switch",
        args={"version": version},
        target={"kind": "php", "version": version},
    ) as op:
        try:
            report = runtime.switcher.switch_to(version)
        except LinkFailureError as exc:
            for state in exc.report.states:
                op.add_step(f"switch.{state.value}", status="info")
            if exc.report.rolled_back is False:
                _warning("Rollback failed; relink the previous PHP version manually.")
            _handle_error(op, exc)
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        for state in report.states:
            op.add_step(f"switch.{state.value}", status="success")
        if report.warnings:
            op.warning(
                "Switch completed with warnings.",
                warnings=report.warnings,
                changed=int(report.changed),
            )
        else:
            op.success("Switch completed.", changed=int(report.changed))


@app.command()
def current(ctx: typer.Context) -> None:
    """Print the linked PHP version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("current") as op:
        version = try_linked_version(runtime.config.php_bin, runtime.catalog)
        if version is None:
            _command_error(
                op,
                "Unable to determine linked PHP. Run `phpvm install` to reinstall.",
                rc=ExitCode.ENVIRONMENT,
            )
        console.print(version)
        op.success("Reported linked version.", context={"version": version})


@app.command("list")
def list_versions(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List the PHP versions phpvm can manage."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("list") as op:
        linked = try_linked_version(runtime.config.php_bin, runtime.catalog)
        rows = [
            {
                "version": entry.identifier,
                "package": entry.package_name,
                "eol": entry.is_end_of_life,
                "linked": entry.identifier == linked,
                "default": entry.identifier == runtime.catalog.default,
            }
            for entry in runtime.catalog.entries()
        ]
        if json_output:
            console.print_json(json.dumps({"versions": rows}))
        else:
            table = Table(title="PHP versions")
            table.add_column("Version")
            table.add_column("Formula")
            table.add_column("EOL")
            table.add_column("Linked")
            for row in rows:
                table.add_row(
                    f"{row['version']}{' (default)' if row['default'] else ''}",
                    str(row["package"]),
                    "[yellow]yes[/yellow]" if row["eol"] else "no",
                    "[green]*[/green]" if row["linked"] else "",
                )
            console.print(table)
        op.success("Listed versions.", context={"linked": linked})


@app.command()
def restart(ctx: typer.Context) -> None:
    """Restart PHP-FPM for the linked version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("restart") as op:
        try:
            package = runtime.service.restart()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        _info(f"Restarted {package}.")
        op.success("Restart completed.", changed=1)


@app.command()
def stop(ctx: typer.Context) -> None:
    """Stop PHP-FPM for every version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("stop") as op:
        try:
            runtime.service.stop()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        _info("Stopped PHP-FPM services.")
        op.success("Stop completed.", changed=1)


@app.command()
def check(ctx: typer.Context) -> None:
    """Check the installation for leftovers of deprecated PHP packages."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("check") as op:
        try:
            runtime.auditor.check()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        _info("No problems found.")
        op.success("Check completed.")


@app.command()
def fix(
    ctx: typer.Context,
    reinstall: bool = typer.Option(
        False,
        "--reinstall",
        help="Also force-uninstall every PHP formula before reinstalling the default.",
    ),
) -> None:
    """Try to repair a broken PHP installation."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("fix", args={"reinstall": reinstall}) as op:
        report = runtime.auditor.fix(reinstall=reinstall)
        for outcome in report.outcomes:
            op.add_step(
                outcome.step_id,
                status="success" if outcome.succeeded else "warning",
                detail=outcome.detail or outcome.description,
            )
        failures = report.failures
        if failures:
            op.warning(
                "Fix completed with failures.",
                warnings=[f"{item.description}: {item.detail}" for item in failures],
                changed=len(report.outcomes) - len(failures),
            )
        else:
            op.success("Fix completed.", changed=len(report.outcomes))


@ext_app.command("enable")
def ext_enable(
    ctx: typer.Context,
    module: str = typer.Argument(..., help="Extension name, e.g. xdebug."),
) -> None:
    """Enable an extension for the linked version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("ext enable", args={"module": module}) as op:
        try:
            changed = runtime.toggler.enable(module)
            if changed:
                runtime.service.restart()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        op.success("Extension enable completed.", changed=int(changed))


@ext_app.command("disable")
def ext_disable(
    ctx: typer.Context,
    module: str = typer.Argument(..., help="Extension name, e.g. xdebug."),
) -> None:
    """Disable an extension for the linked version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("ext disable", args={"module": module}) as op:
        try:
            changed = runtime.toggler.disable(module)
            if changed:
                runtime.service.restart()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        op.success("Extension disable completed.", changed=int(changed))


@ext_app.command("status")
def ext_status(
    ctx: typer.Context,
    module: str = typer.Argument(..., help="Extension name, e.g. xdebug."),
) -> None:
    """Report whether an extension is enabled for the linked version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("ext status", args={"module": module}) as op:
        try:
            enabled = runtime.toggler.is_enabled(module)
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        op.success("Reported extension state.", context={"enabled": enabled})


def _set_autostart(ctx: typer.Context, enabled: bool) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("xdebug autostart", args={"enabled": enabled}) as op:
        try:
            changed = runtime.toggler.set_xdebug_autostart(enabled)
            if changed:
                runtime.service.restart()
        except _HANDLED_ERRORS as exc:
            _handle_error(op, exc)
        if not changed:
            op.warning("Performance configuration missing.", changed=0)
            raise typer.Exit(code=ExitCode.ENVIRONMENT)
        op.success("xdebug autostart updated.", changed=1)


@xdebug_app.command("on")
def xdebug_on(ctx: typer.Context) -> None:
    """Enable xdebug remote autostart."""
    _set_autostart(ctx, True)


@xdebug_app.command("off")
def xdebug_off(ctx: typer.Context) -> None:
    """Disable xdebug remote autostart."""
    _set_autostart(ctx, False)


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Show the resolved configuration."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("config show") as op:
        data = runtime.config.to_dict()
        if json_output:
            console.print_json(json.dumps(data))
        else:
            table = Table(title="phpvm configuration")
            table.add_column("Key")
            table.add_column("Value")
            for key, value in data.items():
                rendered = json.dumps(value) if isinstance(value, dict) else str(value)
                table.add_row(key, escape(rendered))
            console.print(table)
        op.success("Displayed configuration.")


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
