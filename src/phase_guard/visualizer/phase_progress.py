"""Rich views for phased mission progress."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..budget.monitor import ContextBudget
from ..phases.models import PhaseExecutionState, PhasePlan, PhaseStatus
from .utils import budget_bar, format_timestamp, format_tokens

STATUS_ICONS = {
	PhaseStatus.PENDING: "[dim][ ][/dim]",
	PhaseStatus.IN_PROGRESS: "[yellow][~][/yellow]",
	PhaseStatus.COMPLETED: "[green]\\[x][/green]",
	PhaseStatus.FAILED: "[red][!][/red]",
	PhaseStatus.SKIPPED: "[dim][-][/dim]",
}


def render_phase_plan(plan: PhasePlan, console: Optional[Console] = None) -> None:
	"""Render a plan preview as a tree of phases and their requirement items."""
	console = console or Console()

	tree = Tree(
		f"[bold]{plan.total_phases} phases[/bold]  "
		f"[dim]({plan.strategy_used.value}, ~{format_tokens(plan.estimated_total_tokens)} tokens)[/dim]"
	)
	for phase in plan.phases:
		branch = tree.add(
			f"[bold]{phase.name}[/bold] [dim]- ~{format_tokens(phase.estimated_tokens)} tokens[/dim]"
		)
		for item in phase.requirements:
			branch.add(item)
		if phase.dependencies:
			branch.add(f"[dim]depends on: {', '.join(phase.dependencies)}[/dim]")

	console.print(tree)


def render_phase_progress(state: PhaseExecutionState, console: Optional[Console] = None) -> None:
	"""Render mission phases as a Rich Tree with status icons and results."""
	console = console or Console()

	progress = state.get_progress()
	tree = Tree(
		f"[bold]{state.task_id}[/bold]  "
		f"[dim]({progress['completed_phases']}/{progress['total_phases']} phases, "
		f"{progress['percent_complete']:.0f}%, {state.status.value})[/dim]"
	)

	for index, phase in enumerate(state.phases):
		icon = STATUS_ICONS.get(phase.status, "[ ]")
		current = " [cyan]<- current[/cyan]" if index == state.current_phase_index and state.is_active else ""
		branch = tree.add(f"{icon} [bold]{phase.name}[/bold] [dim]- {phase.description}[/dim]{current}")

		result = state.get_result(phase.id)
		if result:
			branch.add(f"tokens: {format_tokens(result.token_usage)}")
			if result.summary:
				branch.add(result.summary)
			if result.error_message:
				branch.add(f"[red]{result.error_message}[/red]")

	console.print(tree)


def render_phase_summary(
	state: PhaseExecutionState,
	console: Optional[Console] = None,
	budget: Optional[ContextBudget] = None,
) -> None:
	"""Render a summary panel for a mission, with the open phase budget if given."""
	console = console or Console()

	progress = state.get_progress()
	lines = [
		f"[bold]Requirement:[/bold] {state.requirement}",
		f"[bold]Mode:[/bold] {state.mode.value}",
		f"[bold]Status:[/bold] {state.status.value}",
		f"[bold]Strategy:[/bold] {state.strategy_used.value}",
		"",
		f"[bold]Phases:[/bold] {progress['completed_phases']}/{progress['total_phases']} complete"
		f" ({progress['skipped_phases']} skipped, {progress['failed_phases']} failed)",
		f"[bold]Tokens:[/bold] {state.actual_tokens_used:,} used / {state.estimated_total_tokens:,} estimated",
		f"[bold]Updated:[/bold] {format_timestamp(state.updated_at)}",
	]

	if budget is not None:
		lines.append(
			f"[bold]Phase budget:[/bold] {budget_bar(budget.percent_used, budget.status)} "
			f"({budget.used_tokens:,}/{budget.total_budget:,})"
		)

	if state.pending_approval:
		lines.append("")
		lines.append(f"[yellow]Awaiting approval for {state.pending_approval.phase.name}[/yellow]")

	if state.approvals:
		lines.append("")
		lines.append(f"[bold]Approvals:[/bold] {len(state.approvals)}")
		for record in state.approvals[-3:]:
			verdict = "approved" if record.approved else "rejected"
			suffix = f" ({record.feedback})" if record.feedback else ""
			lines.append(f"  - {record.phase_id}: {verdict}{suffix}")

	if state.abort_reason:
		lines.append("")
		lines.append(f"[red]Aborted:[/red] {state.abort_reason}")

	console.print(Panel("\n".join(lines), title=f"Mission: {state.task_id}", border_style="cyan"))


def render_phase_history(history: list[PhaseExecutionState], console: Optional[Console] = None) -> None:
	"""Render saved versions of a mission, newest first."""
	console = console or Console()

	if not history:
		console.print("[dim]No saved versions.[/dim]")
		return

	table = Table(title=f"History: {history[0].task_id}")
	table.add_column("#", justify="right")
	table.add_column("Status")
	table.add_column("Phase")
	table.add_column("Tokens", justify="right")
	table.add_column("Updated")

	for number, state in zip(range(len(history), 0, -1), history):
		current = state.current_phase()
		table.add_row(
			str(number),
			state.status.value,
			current.name if current else "-",
			format_tokens(state.actual_tokens_used),
			format_timestamp(state.updated_at),
		)

	console.print(table)
