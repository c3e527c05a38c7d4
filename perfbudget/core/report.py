"""
Report Formatter для результатов Assertion Engine.

- Сводная строка — в stdout
- Провалы уровня error — в stderr, уровня warn — в stdout
- Успешные результаты не выводятся
"""

import json
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from perfbudget.core.assertions import AssertionOutcome, AssertionResult
from perfbudget.core.types import Severity


def format_value(value: float) -> str:
    """1.0 → '1', 0.25 → '0.25', 1234.5678 → '1234.568'."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_failure(result: AssertionResult) -> str:
    """Блок одного провала в rich markup."""
    if result.level is Severity.ERROR:
        icon = "[red]✘[/red]"
    else:
        icon = "[yellow]⚠[/yellow]"

    label = f"[bold]{escape(result.audit_id)}[/bold]"
    if result.audit_property:
        label += escape("." + ".".join(result.audit_property))

    values = ", ".join(format_value(v) for v in result.values)
    lines = [
        f"{icon} {label} failure for [bold]{escape(result.assertion)}[/bold] assertion",
        f"      expected: {escape(result.operator)}[green]{format_value(result.expected)}[/green]",
        f"         found: [red]{format_value(result.actual)}[/red]",
        f"    [dim]all values: {values}[/dim]",
    ]
    return "\n".join(lines)


class AssertionReporter:
    """Выводит AssertionOutcome и возвращает код выхода."""

    def __init__(self, console: Optional[Console] = None, error_console: Optional[Console] = None):
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)

    def render(self, outcome: AssertionOutcome) -> int:
        self.console.print(f"Checking assertions against {outcome.run_count} run(s)", soft_wrap=True)

        show_urls = len(outcome.urls) > 1
        for result in outcome.failures:
            target = self.error_console if result.level is Severity.ERROR else self.console
            target.print()
            if show_urls:
                target.print(f"[dim]{escape(result.url)}[/dim]", soft_wrap=True)
            target.print(render_failure(result), soft_wrap=True)
            target.print()

        if outcome.failed:
            self.error_console.print(
                f"Assertion failed. Exiting with status code {outcome.exit_code}.", soft_wrap=True
            )
        return outcome.exit_code


def write_results_json(outcome: AssertionOutcome, results_dir: Path) -> Path:
    """Сохранить результаты в assertion-results.json."""
    results_dir.mkdir(parents=True, exist_ok=True)
    path = results_dir / "assertion-results.json"
    path.write_text(
        json.dumps([result.to_dict() for result in outcome.results], indent=2),
        encoding="utf-8",
    )
    return path
