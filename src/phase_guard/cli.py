"""CLI for phase-guard: analyze, plan, status, history, and serve commands."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import Config, load_config
from .logging_config import setup_logging


def _read_requirement(args: argparse.Namespace) -> str:
	"""Requirement text from --file, the positional argument, or stdin."""
	if getattr(args, "file", None):
		return Path(args.file).read_text(encoding="utf-8")
	if getattr(args, "requirement", None):
		return args.requirement
	if not sys.stdin.isatty():
		return sys.stdin.read()
	print("Provide a requirement as an argument, with --file, or on stdin.")
	sys.exit(1)


def _db_path(args: argparse.Namespace, config: Config) -> Path:
	from .phases.store import resolve_db_path

	if getattr(args, "db", None):
		return resolve_db_path(args.db)
	return config.state_db_path


def cmd_analyze(args: argparse.Namespace) -> None:
	"""Score a requirement's complexity."""
	from .analyzer import ComplexityAnalyzer
	from .visualizer.complexity import render_complexity_score

	config = load_config()
	requirement = _read_requirement(args)
	score = ComplexityAnalyzer(config.phases.analyzer_config()).analyze_sync(requirement)

	if args.json:
		print(json.dumps(score.to_dict(), indent=2))
	else:
		render_complexity_score(score)


def cmd_plan(args: argparse.Namespace) -> None:
	"""Preview the phase plan for a requirement."""
	from .analyzer import ComplexityAnalyzer
	from .phases.planner import PhasePlanner
	from .visualizer.phase_progress import render_phase_plan

	config = load_config()
	requirement = _read_requirement(args)
	score = ComplexityAnalyzer(config.phases.analyzer_config()).analyze_sync(requirement)
	plan = PhasePlanner(config.phases.planner_config()).plan(requirement, score)

	if args.json:
		print(plan.model_dump_json(indent=2))
	else:
		render_phase_plan(plan)
		print()
		print(plan.summary)


async def _load_state(db_path: Path, task_id: str):
	from .phases.store import PhaseStateStore

	store = PhaseStateStore(db_path)
	try:
		return await store.get_state(task_id)
	finally:
		await store.close()


async def _load_history(db_path: Path, task_id: str):
	from .phases.store import PhaseStateStore

	store = PhaseStateStore(db_path)
	try:
		return await store.get_state_history(task_id)
	finally:
		await store.close()


def cmd_status(args: argparse.Namespace) -> None:
	"""Render the persisted state of a mission."""
	from .visualizer.phase_progress import render_phase_progress, render_phase_summary

	config = load_config()
	db_path = _db_path(args, config)
	if not db_path.exists():
		print(f"No state database at {db_path}")
		sys.exit(1)

	state = asyncio.run(_load_state(db_path, args.task_id))
	if state is None:
		print(f"No mission '{args.task_id}' found in {db_path}")
		sys.exit(1)

	if args.markdown:
		print(state.to_markdown())
	elif args.summary:
		budget = None
		if state.is_active:
			from .budget.monitor import TokenBudgetMonitor

			monitor = TokenBudgetMonitor(config.phases.monitor_config())
			budget = monitor.get_budget_with_estimate(state.phase_tokens_used)
		render_phase_summary(state, budget=budget)
	else:
		render_phase_progress(state)


def cmd_history(args: argparse.Namespace) -> None:
	"""List saved versions of a mission."""
	from .visualizer.phase_progress import render_phase_history

	config = load_config()
	db_path = _db_path(args, config)
	if not db_path.exists():
		print(f"No state database at {db_path}")
		sys.exit(1)

	render_phase_history(asyncio.run(_load_history(db_path, args.task_id)))


def cmd_serve(args: argparse.Namespace) -> None:
	"""Run the MCP server (stdio transport)."""
	from .server import mcp
	mcp.run()


def main() -> None:
	"""CLI entry point."""
	parser = argparse.ArgumentParser(
		prog="phase-guard",
		description="Complexity analysis, token budgets, and phased execution for agent missions",
	)
	parser.add_argument("--log-level", type=str, default=None, help="Override log level")
	subparsers = parser.add_subparsers(dest="command")

	# analyze
	analyze_parser = subparsers.add_parser("analyze", help="Score a requirement's complexity")
	analyze_parser.add_argument("requirement", nargs="?", default=None, help="Requirement text")
	analyze_parser.add_argument("--file", type=str, default=None, help="Read the requirement from a file")
	analyze_parser.add_argument("--json", action="store_true", help="Print JSON instead of a panel")
	analyze_parser.set_defaults(func=cmd_analyze)

	# plan
	plan_parser = subparsers.add_parser("plan", help="Preview the phase plan for a requirement")
	plan_parser.add_argument("requirement", nargs="?", default=None, help="Requirement text")
	plan_parser.add_argument("--file", type=str, default=None, help="Read the requirement from a file")
	plan_parser.add_argument("--json", action="store_true", help="Print the plan as JSON")
	plan_parser.set_defaults(func=cmd_plan)

	# status
	status_parser = subparsers.add_parser("status", help="Show a persisted mission")
	status_parser.add_argument("task_id", help="Mission task id")
	status_parser.add_argument("--db", type=str, default=None, help="Mission folder or .db file")
	status_parser.add_argument("--summary", action="store_true", help="Show summary panel instead of tree")
	status_parser.add_argument("--markdown", action="store_true", help="Print the markdown report")
	status_parser.set_defaults(func=cmd_status)

	# history
	history_parser = subparsers.add_parser("history", help="List saved versions of a mission")
	history_parser.add_argument("task_id", help="Mission task id")
	history_parser.add_argument("--db", type=str, default=None, help="Mission folder or .db file")
	history_parser.set_defaults(func=cmd_history)

	# serve
	serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio)")
	serve_parser.set_defaults(func=cmd_serve)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	config = load_config()
	setup_logging(level=args.log_level or config.log_level, log_dir=config.log_dir)

	args.func(args)


if __name__ == "__main__":
	main()
