"""Shared utilities for visualizer views."""

from datetime import datetime
from typing import Optional

from ..analyzer import ComplexityLevel
from ..budget.monitor import BudgetStatus

LEVEL_STYLES = {
	ComplexityLevel.LOW: "green",
	ComplexityLevel.MEDIUM: "yellow",
	ComplexityLevel.HIGH: "red",
	ComplexityLevel.EXTREME: "bold red",
}

BUDGET_STYLES = {
	BudgetStatus.HEALTHY: "green",
	BudgetStatus.WARNING: "yellow",
	BudgetStatus.CRITICAL: "red",
	BudgetStatus.EXHAUSTED: "bold red",
}


def format_timestamp(iso_str: Optional[str]) -> str:
	"""Format an ISO timestamp as relative time (e.g. '2m ago') or absolute."""
	if not iso_str:
		return "-"
	try:
		dt = datetime.fromisoformat(iso_str)
		total_secs = int((datetime.now() - dt).total_seconds())

		if total_secs < 0:
			return iso_str[:19]
		if total_secs < 60:
			return f"{total_secs}s ago"
		if total_secs < 3600:
			return f"{total_secs // 60}m ago"
		if total_secs < 86400:
			return f"{total_secs // 3600}h ago"
		return f"{total_secs // 86400}d ago"
	except (ValueError, TypeError):
		return str(iso_str)[:19]


def format_tokens(tokens: int) -> str:
	"""Compact token count, e.g. '850', '12.5k'."""
	if tokens < 1000:
		return str(tokens)
	return f"{tokens / 1000:.1f}k"


def budget_bar(percent: float, status: BudgetStatus, width: int = 20) -> str:
	"""Rich markup bar for a budget percentage."""
	percent = max(0.0, min(percent, 100.0))
	filled = round(width * percent / 100)
	style = BUDGET_STYLES.get(status, "white")
	return f"[{style}]{'#' * filled}[/{style}][dim]{'.' * (width - filled)}[/dim] {percent:.1f}%"
