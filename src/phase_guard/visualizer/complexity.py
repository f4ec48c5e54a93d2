"""Rich view for a complexity score."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..analyzer import ComplexityScore
from .utils import LEVEL_STYLES, format_tokens


def render_complexity_score(score: ComplexityScore, console: Optional[Console] = None) -> None:
	"""Render a score as a metrics table inside a panel."""
	console = console or Console()
	style = LEVEL_STYLES.get(score.level, "white")
	metrics = score.metrics

	table = Table(show_header=False, box=None, padding=(0, 1))
	table.add_column("Metric", style="bold")
	table.add_column("Value")

	table.add_row("Score", f"[{style}]{score.score}/100 ({score.level.value.upper()})[/{style}]")
	table.add_row("Recommendation", score.recommendation.value)
	table.add_row("Estimated tokens", format_tokens(score.estimated_tokens))
	if score.suggested_phase_count:
		table.add_row("Suggested phases", str(score.suggested_phase_count))
	table.add_row("Features", str(metrics.feature_count))
	table.add_row("Estimated files", str(metrics.estimated_file_count))
	if metrics.technical_domains:
		table.add_row("Domains", ", ".join(metrics.technical_domains))
	if metrics.risk_factors:
		table.add_row("Risks", ", ".join(metrics.risk_factors))
	if metrics.scope_indicators:
		table.add_row("Scope", ", ".join(metrics.scope_indicators))

	console.print(Panel(table, title="Complexity Analysis", border_style=style))

	if metrics.features:
		console.print("[bold]Features:[/bold]")
		for feature in metrics.features:
			console.print(f"  - {feature}")
