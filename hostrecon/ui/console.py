"""
ConsoleUI - Rich-based console interface.

Provides progress lines, probe tables, the final summary and the
interactive prompts. Nothing below the CLI prints; everything visible
goes through here.
"""

from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich import box

from ..protocol.result import Mode, ModuleResult, Outcome

OUTCOME_STYLES = {
    Outcome.SUCCEEDED: ("green", ":heavy_check_mark:"),
    Outcome.FAILED: ("red", ":x:"),
    Outcome.SKIPPED: ("yellow", "-"),
}


class ConsoleUI:
    """
    Rich console interface for hostrecon.
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        self.quiet = quiet
        self.console = console or Console()

    def print(self, *args, **kwargs):
        """Print to console."""
        if self.quiet:
            return
        self.console.print(*args, **kwargs)

    def print_header(self, title: str):
        """Print a section header."""
        if self.quiet:
            return
        self.console.print()
        self.console.rule(f"[bold blue]{title}[/]")

    def print_banner(self, version: str, root: str = "/"):
        """Print application banner."""
        if self.quiet:
            return

        banner = f"[bold cyan]hostrecon[/] [dim]v{version}[/]\n[dim]Host configuration reconciler[/]"
        if root != "/":
            banner += f"\n[yellow]Host root: {root}[/]"
        self.console.print(Panel(banner, border_style="cyan"))

    def print_error(self, message: str, exception: Optional[Exception] = None):
        """Display error message. Shown even in quiet mode."""
        self.console.print(f"[bold red]Error:[/] {escape(message)}")
        if exception:
            self.console.print(f"[dim]{type(exception).__name__}: {escape(str(exception))}[/]")

    # =========================================================================
    # Module progress
    # =========================================================================

    def print_module_start(self, name: str, mode: Mode):
        if self.quiet:
            return
        self.console.print(f"[bold]{name}[/] [dim]{Mode(mode).value}...[/]")

    def print_module_result(self, result: ModuleResult):
        """One line per module plus its notes and failure details."""
        if self.quiet:
            return

        color, icon = OUTCOME_STYLES[result.outcome]
        suffix = ""
        if result.succeeded and result.mode == Mode.APPLY.value and not result.changed:
            suffix = " [dim](unchanged)[/]"
        self.console.print(f"  [{color}]{icon}[/] {result.module}: {result.outcome.value}{suffix}")

        for note in result.notes:
            self.console.print(f"    [dim]{note}[/]")
        if result.failure:
            self.console.print(f"    [{color}]{result.failure.kind}[/] {result.failure.one_line}")
            for line in result.failure.details:
                self.console.print(f"      [dim]{line}[/]")

        if result.mode == Mode.STATUS.value and result.probes:
            self.print_probes(result)

    def print_probes(self, result: ModuleResult):
        """Display probe observations for one module."""
        table = Table(box=box.SIMPLE, show_edge=False, padding=(0, 1))
        table.add_column("Probe", style="dim")
        table.add_column("Value")
        table.add_column("Expected", style="dim")
        table.add_column("")

        for probe in result.probes:
            if probe.expected is None:
                mark = ""
            elif probe.advisory:
                mark = "[dim]advisory[/]"
            else:
                mark = "[green]ok[/]" if probe.matches else "[red]mismatch[/]"
            table.add_row(probe.key, probe.display_value, probe.expected or "", mark)

        self.console.print(table)

    # =========================================================================
    # Summary
    # =========================================================================

    def print_summary(self, results: List[ModuleResult], interrupted: bool = False,
                      status_path: Optional[str] = None):
        """Display the aggregate outcome of a run. Shown even in quiet mode."""
        self.console.print()
        table = Table(title="Summary", box=box.ROUNDED)
        table.add_column("Module", style="bold")
        table.add_column("Outcome")
        table.add_column("Error")
        table.add_column("Cause", overflow="fold")

        for result in results:
            color, _ = OUTCOME_STYLES[result.outcome]
            table.add_row(
                result.module,
                f"[{color}]{result.outcome.value}[/]",
                result.error_kind or "",
                result.cause,
            )

        self.console.print(table)

        if interrupted:
            self.console.print("[yellow]Interrupted: remaining modules were skipped[/]")
        if status_path:
            self.console.print(f"[dim]Run record: {status_path}[/]")

    def print_module_list(self, modules: Dict[str, object]):
        """Display the registry."""
        table = Table(title="Modules", box=box.SIMPLE)
        table.add_column("Name", style="bold")
        table.add_column("Description")
        table.add_column("Managed files", style="dim")

        for name, module in modules.items():
            table.add_row(name, module.description, "\n".join(module.files))

        self.console.print(table)

    # =========================================================================
    # Prompts
    # =========================================================================

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for confirmation."""
        if self.quiet:
            return default
        return Confirm.ask(message, default=default, console=self.console)

    def choose_mode(self, default: Mode = Mode.APPLY) -> Mode:
        """Ask which operation to run."""
        if self.quiet:
            return default
        answer = Prompt.ask(
            "Operation",
            choices=[m.value for m in Mode],
            default=default.value,
            console=self.console,
        )
        return Mode(answer)

    def select_modules(self, defaults: Dict[str, bool], descriptions: Dict[str, str]) -> List[str]:
        """
        Per-module confirmation.

        Args:
            defaults: name -> default answer (True = run)
            descriptions: name -> one-line description
        """
        self.print_header("Select modules")
        chosen = []
        for name, default in defaults.items():
            hint = "" if default else " [dim](default: skip)[/]"
            if self.confirm(f"Run [bold]{name}[/] - {descriptions.get(name, '')}{hint}?", default=default):
                chosen.append(name)
        return chosen
