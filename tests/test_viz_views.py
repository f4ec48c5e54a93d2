"""Tests for visualizer Rich views."""

from datetime import datetime, timedelta
from io import StringIO

from rich.console import Console

from phase_guard.analyzer import ComplexityAnalyzer
from phase_guard.budget.monitor import BudgetStatus, TokenBudgetMonitor
from phase_guard.phases.controller import PhaseExecutionController
from phase_guard.visualizer.complexity import render_complexity_score
from phase_guard.visualizer.phase_progress import (
	render_phase_history,
	render_phase_plan,
	render_phase_progress,
	render_phase_summary,
)
from phase_guard.visualizer.utils import budget_bar, format_timestamp, format_tokens

from .helpers import AUTH_REQUIREMENT, make_plan


def _render(view, *args, **kwargs) -> str:
	console = Console(file=StringIO(), width=120)
	view(*args, console=console, **kwargs)
	return console.file.getvalue()


def _controller() -> PhaseExecutionController:
	controller = PhaseExecutionController()
	controller.start_phased_execution("task-1", "Build the thing", make_plan(3))
	controller.begin_phase_execution()
	return controller


# -- utils tests --

def test_format_tokens():
	assert format_tokens(850) == "850"
	assert format_tokens(12500) == "12.5k"


def test_format_timestamp_recent():
	result = format_timestamp(datetime.now().isoformat())
	assert result.endswith("s ago")


def test_format_timestamp_days():
	result = format_timestamp((datetime.now() - timedelta(days=3)).isoformat())
	assert result == "3d ago"


def test_format_timestamp_invalid():
	assert format_timestamp("not-a-date") == "not-a-date"
	assert format_timestamp(None) == "-"


def test_budget_bar_clamps():
	bar = budget_bar(150.0, BudgetStatus.EXHAUSTED, width=10)
	assert "#" * 10 in bar
	assert bar.endswith("100.0%")


def test_budget_bar_partial():
	bar = budget_bar(50.0, BudgetStatus.HEALTHY, width=10)
	assert "#" * 5 in bar
	assert "." * 5 in bar


# -- view tests --

def test_render_complexity_score():
	score = ComplexityAnalyzer().analyze_sync(AUTH_REQUIREMENT)
	output = _render(render_complexity_score, score)

	assert "Complexity Analysis" in output
	assert f"{score.score}/100" in output
	assert "split_phases" in output


def test_render_phase_plan():
	output = _render(render_phase_plan, make_plan(3))

	assert "3 phases" in output
	assert "Phase 2" in output
	assert "depends on: phase-1" in output


def test_render_phase_progress_marks_current():
	controller = _controller()
	controller.complete_phase("Built the models")
	controller.provide_approval(True)

	output = _render(render_phase_progress, controller.get_state())

	assert "[x] Phase 1" in output
	assert "Built the models" in output
	assert "Phase 2" in output
	assert "<- current" in output


def test_render_phase_progress_shows_abort_error():
	controller = _controller()
	controller.abort_mission("user cancelled")

	output = _render(render_phase_progress, controller.get_state())

	assert "user cancelled" in output
	assert "<- current" not in output


def test_render_phase_summary():
	controller = _controller()
	controller.complete_phase("one")
	controller.provide_approval(False, "wrong approach")

	output = _render(render_phase_summary, controller.get_state())

	assert "Mission: task-1" in output
	assert "phase-1: rejected (wrong approach)" in output
	assert "Aborted:" in output


def test_render_phase_summary_with_budget():
	controller = _controller()
	monitor = TokenBudgetMonitor()
	budget = monitor.get_budget_with_estimate(15000)

	output = _render(render_phase_summary, controller.get_state(), budget=budget)

	assert "Phase budget:" in output
	assert "50.0%" in output


def test_render_phase_history():
	controller = _controller()
	first = controller.get_state()
	controller.complete_phase("one")
	second = controller.get_state()

	output = _render(render_phase_history, [second, first])

	assert "History: task-1" in output
	assert "awaiting_approval" in output
	assert "running" in output


def test_render_phase_history_empty():
	assert "No saved versions." in _render(render_phase_history, [])
