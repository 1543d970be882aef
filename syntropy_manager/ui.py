"""
Rich terminal UI components for the manager CLI.
Unicode icons with an ASCII fallback for terminals that cannot encode them.
"""
import sys
from contextlib import contextmanager
from typing import Any, Dict, Generator, List

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

# Detect ASCII fallback
try:
    "\U0001f6e0".encode(sys.stdout.encoding if sys.stdout and sys.stdout.encoding else "utf-8")
    HAS_UNICODE = True
except (UnicodeEncodeError, LookupError):
    HAS_UNICODE = False

ICONS: Dict[str, str] = {
    "validate": "\U0001f9ea",
    "setup": "\U0001f6e0",
    "key": "\U0001f511",
    "config": "\U0001f4dd",
    "backup": "\U0001f4e6",
    "service": "⚙",
    "history": "\U0001f4dc",
    "success": "✅",
    "error": "❌",
    "warn": "⚠",
    "info": "ℹ",
}

ASCII_ICONS: Dict[str, str] = {
    "validate": "[CHK]",
    "setup": "[SET]",
    "key": "[KEY]",
    "config": "[CFG]",
    "backup": "[BAK]",
    "service": "[SVC]",
    "history": "[HIS]",
    "success": "[OK]",
    "error": "[ERR]",
    "warn": "[WARN]",
    "info": "[INF]",
}

SEVERITY_STYLES = {
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "critical": "bold red",
}


def icon(name: str) -> str:
    return ICONS.get(name, "") if HAS_UNICODE else ASCII_ICONS.get(name, "")

console = Console(width=120)
err_console = Console(stderr=True, width=120)

def render_banner() -> None:
    """Render the manager banner."""
    banner_text = Text("SYNTROPY NODE MANAGER", style="bold color(39)")
    banner_text.append("\nbootstrap | validation | owner keys | backups", style="dim magenta")
    console.print(Panel(
        banner_text,
        border_style="cyan",
        expand=False,
        title="[bold color(51)]syntropy-manager[/]",
        title_align="left",
    ))

def render_status(action: str, message: str, style: str = "white") -> None:
    """Print a single line status update."""
    i = icon(action)
    console.print(f"{i} [{style}]{message}[/]")

def render_error(message: str) -> None:
    """Print a styled error panel."""
    i = icon("error")
    err_console.print()
    err_console.print(Panel(Text(message, style="red"), border_style="red", expand=False, title=f"{i} ERROR"))

def render_warning(message: str) -> None:
    """Print a styled warning panel."""
    i = icon("warn")
    console.print()
    console.print(Panel(Text(message, style="yellow"), border_style="yellow", expand=False, title=f"{i} WARNING"))

def confirm(prompt_text: str) -> bool:
    """Interactive confirmation prompt."""
    i = icon("warn")
    return typer.confirm(f"{i} {prompt_text}", default=False)

def render_table(title: str, headers: List[str], rows: List[List[str]]) -> None:
    """Render a structured Rich Table."""
    console.print()
    table = Table(
        title=title,
        border_style="cyan",
        header_style="bold magenta",
        show_lines=True,
        box=box.ROUNDED if HAS_UNICODE else box.ASCII,
    )
    if headers:
        table.add_column(headers[0], justify="center", no_wrap=True)
        for h in headers[1:]:
            table.add_column(h, justify="left", overflow="fold")
    for r in rows:
        table.add_row(*r)
    console.print(table)
    console.print()

def render_findings(result: Any) -> None:
    """Render the errors and warnings of a ValidationResult."""
    items = list(result.errors) + list(result.warnings)
    if not items:
        render_status("success", "No findings.", "green")
        return
    rows = []
    for item in items:
        style = SEVERITY_STYLES.get(item.severity.value, "white")
        fix = ""
        if item.auto_fix is not None:
            fix = item.auto_fix.command or item.auto_fix.manual or item.auto_fix.script
        rows.append([
            f"[{style}]{item.severity.value}[/]",
            item.code,
            item.category.value,
            item.message,
            fix,
        ])
    render_table("Findings", ["Severity", "Code", "Category", "Message", "Fix"], rows)

def render_summary(title: str, stats: Dict[str, Any], ok: bool = True) -> None:
    """Render a key/value summary panel."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta")
    for k, v in stats.items():
        table.add_row(str(k), str(v))
    style = "green" if ok else "red"
    i = icon("success" if ok else "error")
    console.print(Panel(table, title=f"[bold {style}]{i} {title}[/]", border_style=style, expand=False))

@contextmanager
def render_progress(title: str = "Operation in progress...") -> Generator[Progress, None, None]:
    """Provide a unified spinner for long-running operations."""
    progress = Progress(
        SpinnerColumn(spinner_name="dots2", style="cyan"),
        TextColumn("[bold blue]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    console.print(f"[{title}]", style="bold cyan")
    with progress:
        yield progress
