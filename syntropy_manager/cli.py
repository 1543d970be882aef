"""
Command Line Interface entry point using Typer.
"""
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.panel import Panel

from . import __version__
from .config import Settings
from .errors import SyntropyError
from .log import init_logging
from .models import (
    BackupFilter,
    InterfaceType,
    Pagination,
    SetupOptions,
    SetupRequest,
    SortOptions,
    ValidationOptions,
    ValidationRequest,
)
from .ui import (
    confirm,
    console,
    render_banner,
    render_error,
    render_findings,
    render_progress,
    render_status,
    render_summary,
    render_table,
    render_warning,
)
from .utils import human_size

app = typer.Typer(
    help=(
        "[bold cyan]SYNTROPY MANAGER[/] [dim]v1.0[/]\n\n"
        "Node bootstrap and environment validation for the Syntropy grid.\n"
    ),
    no_args_is_help=True,
    rich_markup_mode="rich",
)

HOME_OPTION = typer.Option(None, "--home", help="User home to manage (defaults to the OS home)")
INTERFACE_OPTION = typer.Option(InterfaceType.CLI.value, "--interface", "-i", help="Interface type")


def _settings(home: Optional[Path], **overrides) -> Settings:
    values = dict(overrides)
    if home is not None:
        values["home_dir"] = home.expanduser()
    return Settings(**values)


def _services(settings: Settings, verbose: bool = False):
    from .api.deps import build_services
    init_logging(base_dir=settings.logs_dir, level=settings.log_level, verbose=verbose)
    return build_services(settings)


def _interface(value: str) -> InterfaceType:
    try:
        return InterfaceType(value)
    except ValueError:
        render_error(f"Invalid interface '{value}'. Expected one of: {', '.join(i.value for i in InterfaceType)}")
        raise typer.Exit(2)


@app.command(name="serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8080, "--port", "-p", help="Bind port"),
    home: Optional[Path] = HOME_OPTION,
    log_level: str = typer.Option("info", "--log-level", help="debug, info, warning or error"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run the HTTP API."""
    import uvicorn

    from .api import create_app

    settings = _settings(home, api_host=host, api_port=port, log_level=log_level)
    services = _services(settings, verbose)
    render_banner()
    render_status("service", f"Serving on http://{host}:{port} (home {settings.home_dir})")
    uvicorn.run(create_app(settings, services=services), host=host, port=port, log_level=log_level)


@app.command(name="validate")
def validate(
    category: Optional[List[str]] = typer.Option(None, "--category", "-c", help="Limit to a category (repeatable)"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-x", help="Skip a category (repeatable)"),
    parallel: bool = typer.Option(False, "--parallel", help="Run probes concurrently"),
    skip_optional: bool = typer.Option(False, "--skip-optional", help="Skip optional checks and benchmarks"),
    timeout: int = typer.Option(0, "--timeout", help="Overall timeout in seconds (0 = default)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format."),
    home: Optional[Path] = HOME_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Validate this host for running a Syntropy node."""
    services = _services(_settings(home), verbose)
    request = ValidationRequest(
        type="all",
        options=ValidationOptions(
            skip_optional=skip_optional,
            categories=category or [],
            exclude_categories=exclude or [],
            timeout=timeout,
            parallel=parallel,
        ),
    )
    try:
        if json_output:
            result = services.validation.validate_all(request)
            print(result.model_dump_json(indent=2))
            raise typer.Exit(0 if result.valid else 1)
        render_banner()
        with render_progress("Validating environment..."):
            result = services.validation.validate_all(request)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)

    render_findings(result)
    stats = {"Valid": result.valid, "Errors": len(result.errors), "Warnings": len(result.warnings),
             "Duration": f"{result.duration:.2f}s"}
    if result.environment is not None and result.environment.os:
        stats["OS"] = f"{result.environment.os} {result.environment.os_version} ({result.environment.architecture})"
    if result.performance is not None and result.performance.overall_score:
        stats["Performance"] = f"{result.performance.overall_score:.1f}/100"
    render_summary("Validation", stats, ok=result.valid)
    if not result.valid:
        raise typer.Exit(1)


@app.command(name="setup")
def setup(
    interface: str = INTERFACE_OPTION,
    user_id: str = typer.Option("", "--user", "-u", help="User id"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing setup (backed up first)"),
    install_service: bool = typer.Option(False, "--install-service", help="Write the OS service definition"),
    encrypt: bool = typer.Option(False, "--encrypt", help="Encrypt the owner key with a keyring-held passphrase"),
    home: Optional[Path] = HOME_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create the manager directories, owner key and configuration."""
    render_banner()
    settings = _settings(home)
    services = _services(settings, verbose)
    request = SetupRequest(
        interface=_interface(interface),
        user_id=user_id,
        options=SetupOptions(
            force=force,
            install_service=install_service,
            encrypt=encrypt,
            home_dir=str(settings.home_dir),
        ),
    )
    try:
        with render_progress("Running setup..."):
            result = services.setup.execute_setup(request)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)

    rows = [
        [("[bold green]OK[/]" if s.success else "[bold red]FAIL[/]"), s.step, s.state.value, s.detail]
        for s in result.steps
    ]
    render_table("Setup Steps", ["Status", "Step", "State", "Details"], rows)
    if not result.success:
        render_error(f"{result.message}: {result.error}")
        raise typer.Exit(1)
    render_summary("Setup complete", {
        "Config": result.config_path,
        "Owner key": result.config.owner_key.path if result.config else "",
        "Checksum": result.config.metadata.checksum if result.config else "",
        "Duration": f"{result.duration:.2f}s",
    })


@app.command(name="status")
def status(
    interface: str = INTERFACE_OPTION,
    user_id: str = typer.Option("", "--user", "-u"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format."),
    home: Optional[Path] = HOME_OPTION,
):
    """Show the state of the installed setup."""
    services = _services(_settings(home))
    try:
        info = services.setup.get_status(interface, user_id)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)
    if json_output:
        print(json.dumps(info, indent=2, default=str))
        return
    render_summary(f"Setup {info['status']}", info, ok=info["status"] == "completed")


@app.command(name="reset")
def reset(
    interface: str = INTERFACE_OPTION,
    user_id: str = typer.Option("", "--user", "-u"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    home: Optional[Path] = HOME_OPTION,
):
    """Remove the configuration, owner key and service definition."""
    render_banner()
    settings = _settings(home)
    render_warning("This removes the manager configuration and shreds the owner key. Backups are kept.")
    if not yes and not confirm("Reset the setup?"):
        raise typer.Exit(0)
    services = _services(settings)
    request = SetupRequest(interface=_interface(interface), user_id=user_id,
                           options=SetupOptions(home_dir=str(settings.home_dir)))
    try:
        data = services.setup.reset(request)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)
    if not data["removed"]:
        render_status("info", "Nothing to remove.")
        return
    for path in data["removed"]:
        render_status("success", f"Removed {path}", "green")


@app.command(name="history")
def history(
    interface: str = INTERFACE_OPTION,
    user_id: str = typer.Option("", "--user", "-u"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent entries to show"),
    home: Optional[Path] = HOME_OPTION,
):
    """Show recent setup, reset and restore events."""
    services = _services(_settings(home))
    try:
        entries = services.setup.history_entries(interface, user_id, limit)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)
    if not entries:
        render_status("history", "No history entries found.")
        return
    rows = [
        [e.timestamp.strftime("%Y-%m-%d %H:%M:%S"), e.action,
         "[green]success[/]" if e.status == "success" else "[red]failed[/]",
         f"{e.duration:.2f}s", e.detail]
        for e in entries
    ]
    render_table("Setup History", ["Timestamp", "Action", "Status", "Duration", "Details"], rows)


@app.command(name="template")
def template(
    interface: str = INTERFACE_OPTION,
    environment: str = typer.Option(..., "--environment", "-e", help="windows, linux or darwin"),
    name: str = typer.Option("", "--name", help="Template name (default, minimal, secure)"),
    render: bool = typer.Option(False, "--render", help="Substitute variable defaults"),
):
    """Print a configuration template."""
    from .templates import TemplateProvider

    provider = TemplateProvider()
    try:
        found = provider.get(interface, environment, name or None)
    except SyntropyError as e:
        render_error(str(e))
        raise typer.Exit(1)
    content = provider.render(found) if render else found.content
    console.print(Panel(content, title=f"{found.name} ({found.interface}/{found.environment})",
                        border_style="cyan", expand=False))


@app.command(name="backups")
def backups(
    interface: str = typer.Option("", "--interface", "-i", help="Filter by interface"),
    page: int = typer.Option(1, "--page"),
    page_size: int = typer.Option(20, "--page-size"),
    home: Optional[Path] = HOME_OPTION,
):
    """List configuration backups."""
    services = _services(_settings(home))
    summaries, total = services.configs.list_backups(
        BackupFilter(interface=interface), Pagination(page=page, page_size=page_size), SortOptions(),
    )
    if not summaries:
        render_status("backup", "No backups found.")
        return
    rows = [
        [s.id, s.interface, s.version, s.created_at.strftime("%Y-%m-%d %H:%M:%S"), human_size(s.size), s.checksum[:16]]
        for s in summaries
    ]
    render_table(f"Backups ({total})", ["ID", "Interface", "Version", "Created", "Size", "Checksum"], rows)


@app.command(name="version")
def version_cmd():
    """Display version information."""
    console.print(Panel(f"[bold cyan]SYNTROPY MANAGER[/] v{__version__}", border_style="cyan", expand=False))


if __name__ == "__main__":
    app()
