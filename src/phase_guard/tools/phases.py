"""Phase execution tools - analysis, planning, and mission control."""

import json
import logging

from mcp.server.fastmcp import FastMCP

from ..analyzer import ComplexityAnalyzer
from ..config import Config
from ..phases.coordinator import get_coordinator
from ..phases.planner import PhasePlanner

logger = logging.getLogger(__name__)


def _split_list(value: str, sep: str = ",") -> list[str]:
	return [item.strip() for item in value.split(sep) if item.strip()]


def _missing(task_id: str) -> str:
	return json.dumps({"error": f"No phase execution for task: {task_id}"})


def register_phase_tools(mcp: FastMCP, config: Config) -> None:
	"""Register phase execution tools."""

	@mcp.tool()
	async def analyze_requirement(requirement: str, context_files: str = "") -> str:
		"""
		Score a requirement's complexity without starting a mission.

		Args:
			requirement: Free-text work request
			context_files: Comma-separated paths already known to be involved
		"""
		analyzer = ComplexityAnalyzer(config.phases.analyzer_config())
		score = await analyzer.analyze(requirement, _split_list(context_files) or None)
		return json.dumps(score.to_dict(), indent=2)

	@mcp.tool()
	async def plan_phases(requirement: str) -> str:
		"""
		Preview the phase plan a requirement would get.

		Args:
			requirement: Free-text work request
		"""
		analyzer = ComplexityAnalyzer(config.phases.analyzer_config())
		score = await analyzer.analyze(requirement)
		plan = PhasePlanner(config.phases.planner_config()).plan(requirement, score)
		return json.dumps({
			"recommendation": score.recommendation.value,
			"strategy": plan.strategy_used.value,
			"total_phases": plan.total_phases,
			"estimated_total_tokens": plan.estimated_total_tokens,
			"execution_order": plan.execution_order,
			"phases": [p.model_dump() for p in plan.phases],
			"summary": plan.summary,
		}, indent=2)

	@mcp.tool()
	async def start_mission(task_id: str, requirement: str, persistence_location: str = "") -> str:
		"""
		Analyze a requirement and start its first phase.

		Args:
			task_id: Mission identifier
			requirement: Free-text work request
			persistence_location: Mission folder for state snapshots (defaults to the data dir)
		"""
		coordinator = get_coordinator()
		prepared = await coordinator.analyze_and_prepare(task_id, requirement, persistence_location or None)
		return json.dumps(prepared.to_dict(), indent=2)

	@mcp.tool()
	async def resume_mission(task_id: str, persistence_location: str = "") -> str:
		"""
		Reload a persisted mission.

		Args:
			task_id: Mission identifier
			persistence_location: Mission folder the state was saved to
		"""
		coordinator = get_coordinator()
		state = await coordinator.resume(task_id, persistence_location or None)
		if state is None:
			return json.dumps({"error": f"No persisted state for task: {task_id}"})
		return json.dumps(coordinator.get_phase_info(task_id), indent=2)

	@mcp.tool()
	async def get_phase_context(task_id: str) -> str:
		"""
		Get the prompt context block for the mission's current phase.

		Args:
			task_id: Mission identifier
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)
		return coordinator.get_prompt_context(task_id)

	@mcp.tool()
	async def track_phase_tokens(task_id: str, tokens: int = 0, text: str = "", source: str = "agent") -> str:
		"""
		Record token usage for the current phase.

		Args:
			task_id: Mission identifier
			tokens: Token count to record (ignored when text is given)
			text: Text whose estimated tokens should be recorded
			source: Usage source tag
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)

		if text:
			event = coordinator.track_text(task_id, text, source)
		else:
			event = coordinator.track_tokens(task_id, tokens, source)

		budget = coordinator.get_budget(task_id)
		return json.dumps({
			"recorded": event.tokens if event else 0,
			"budget": budget.to_dict() if budget else None,
			"should_end_phase": coordinator.should_end_phase(task_id),
		}, indent=2)

	@mcp.tool()
	async def should_end_phase(task_id: str) -> str:
		"""
		Check whether the current phase must stop.

		Args:
			task_id: Mission identifier
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)
		budget = coordinator.get_budget(task_id)
		return json.dumps({
			"should_end_phase": coordinator.should_end_phase(task_id),
			"budget": budget.to_dict() if budget else None,
		}, indent=2)

	@mcp.tool()
	async def complete_phase(
		task_id: str,
		summary: str,
		files_created: str = "",
		files_modified: str = "",
		verification_results: str = "",
	) -> str:
		"""
		Mark the current phase complete.

		Args:
			task_id: Mission identifier
			summary: What was accomplished
			files_created: Comma-separated created file paths
			files_modified: Comma-separated modified file paths
			verification_results: Semicolon-separated claims, e.g. "Tests pass: PASS; Lint: PASS"
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)

		outcome = await coordinator.complete_current_phase(
			task_id,
			summary,
			_split_list(files_created),
			_split_list(files_modified),
			_split_list(verification_results, ";") or None,
		)
		return json.dumps({
			"accepted": outcome.accepted,
			"continue_to_next": outcome.continue_to_next,
			"is_complete": outcome.is_complete,
			"awaiting_approval": outcome.awaiting_approval,
		}, indent=2)

	@mcp.tool()
	async def approve_phase(task_id: str, approved: bool = True, feedback: str = "") -> str:
		"""
		Approve or reject the phase waiting at the approval gate.

		Rejecting aborts the mission.

		Args:
			task_id: Mission identifier
			approved: True to continue, False to abort
			feedback: Optional reviewer feedback
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)
		if not coordinator.has_pending_approval(task_id):
			return json.dumps({"error": f"No approval pending for task: {task_id}"})

		await coordinator.provide_approval(task_id, approved, feedback or None)
		return json.dumps(coordinator.get_phase_info(task_id), indent=2)

	@mcp.tool()
	async def skip_phase(task_id: str, reason: str = "") -> str:
		"""
		Skip the current phase.

		Args:
			task_id: Mission identifier
			reason: Why the phase is skipped
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)
		await coordinator.skip_phase(task_id, reason)
		return json.dumps(coordinator.get_phase_info(task_id), indent=2)

	@mcp.tool()
	async def abort_mission(task_id: str, reason: str = "") -> str:
		"""
		Abort a mission. This cannot be undone.

		Args:
			task_id: Mission identifier
			reason: Why the mission is aborted
		"""
		coordinator = get_coordinator()
		if not coordinator.has_phase_execution(task_id):
			return _missing(task_id)
		await coordinator.abort_mission(task_id, reason)
		return json.dumps(coordinator.get_phase_info(task_id), indent=2)

	@mcp.tool()
	async def get_phase_info(task_id: str) -> str:
		"""
		Get mode, phase list, current phase and budget for a mission.

		Args:
			task_id: Mission identifier
		"""
		coordinator = get_coordinator()
		info = coordinator.get_phase_info(task_id)
		if not info:
			return _missing(task_id)
		return json.dumps(info, indent=2)

	@mcp.tool()
	async def get_mission_report(task_id: str) -> str:
		"""
		Get a markdown progress report for a mission.

		Args:
			task_id: Mission identifier
		"""
		return get_coordinator().generate_report(task_id)
