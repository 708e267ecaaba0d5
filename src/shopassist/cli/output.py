"""Output formatting for CLI commands."""

import json
from dataclasses import asdict
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shopassist.core.types import GatewayResponse, Intent, SafetyVerdict
from shopassist.exceptions import ShopAssistError

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        self.json_mode = json_mode

    def print_json(self, data: Any) -> None:
        print(json.dumps(data, default=str, indent=2))

    def print_table(self, title: str, data: list[dict[str, Any]], columns: list[str]) -> None:
        """Print rows as a Rich table or a JSON array."""
        if self.json_mode:
            self.print_json(data)
            return
        table = Table(title=title, show_header=True, header_style="bold magenta")
        for col in columns:
            table.add_column(col)
        for row in data:
            table.add_row(*[str(row.get(col, "")) for col in columns])
        console.print(table)

    def print_intent(self, intent: Intent) -> None:
        fields = asdict(intent)
        if self.json_mode:
            self.print_json({"intent": intent.name.value, **fields})
            return
        console.print(f"[bold]Intent:[/bold] {intent.name.value}")
        for key, value in fields.items():
            console.print(f"  {key}: {value}", style="dim")

    def print_verdict(self, verdict: SafetyVerdict) -> None:
        """Print a safety verdict with every violation."""
        if self.json_mode:
            self.print_json(verdict.model_dump(mode="json"))
            return
        if verdict.safe:
            console.print("✓ Query is safe", style="green")
        else:
            console.print(f"✗ Query rejected ({len(verdict.violations)} violations)", style="red")
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Rule")
            table.add_column("Detail")
            for violation in verdict.violations:
                table.add_row(violation.rule.value, violation.detail)
            console.print(table)
        if verdict.tables_accessed:
            console.print(f"Tables: {', '.join(verdict.tables_accessed)}", style="dim")
        for warning in verdict.warnings:
            console.print(f"⚠️  {warning}", style="yellow")

    def print_response(self, response: GatewayResponse) -> None:
        """Print a gateway response; search results are shown as a table."""
        payload = response.to_payload()
        if self.json_mode:
            self.print_json(payload)
            return
        console.print(f"[bold]{response.intent}[/bold]: {response.message}")
        if response.action:
            console.print(f"Action: {response.action}", style="dim")
        if response.url:
            console.print(f"URL: {response.url}", style="dim")
        if response.data:
            console.print(f"Data: {response.data}", style="dim")
        action_data = response.action_data or {}
        rows = action_data.get("results")
        if rows:
            self.print_table(f"{action_data.get('count', len(rows))} results", rows, list(rows[0]))
        if action_data.get("sql"):
            console.print(f"SQL: {action_data['sql']}", style="dim")

    def print_error(self, error: Exception) -> None:
        if self.json_mode:
            if isinstance(error, ShopAssistError):
                self.print_json(error.to_dict())
            else:
                self.print_json({"error": str(error)})
            return
        error_text = str(error)
        if isinstance(error, ShopAssistError) and error.context:
            context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
            error_text = f"{error_text}\n\n{context_str}"
        console.print(Panel(error_text, title="[red]Error[/red]", border_style="red"))
