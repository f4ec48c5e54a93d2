"""
Phase Coordinator - per-task entry point for orchestration callers.

Keeps one PhaseExecutionController per task id, forwards controller events
with the task id attached, and persists mission state after every
state-changing call. Every query on an unknown task id returns an empty
sentinel (None, "", False, {}) instead of raising.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..analyzer import ComplexityLevel, ComplexityMetrics, ComplexityScore, Recommendation
from ..budget.monitor import ContextBudget, UsageEvent
from ..config import PhaseSettings
from ..events import EventBus, PhaseEvent, TaskEvent
from .controller import CompletionOutcome, PhaseExecutionController
from .models import (
	ApprovalRequest,
	ExecutionMode,
	Phase,
	PhaseExecutionState,
	PhasePlan,
)
from .store import PhaseStateStore, resolve_db_path

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION = ["Code compiles: PASS"]
DISABLED_ESTIMATE = 10000


@dataclass
class PreparedMission:
	mode: ExecutionMode
	score: ComplexityScore
	plan: Optional[PhasePlan]
	prompt_context: str

	def to_dict(self) -> dict:
		return {
			"mode": self.mode.value,
			"score": self.score.to_dict(),
			"phases": [p.model_dump() for p in self.plan.phases] if self.plan else None,
			"strategy": self.plan.strategy_used.value if self.plan else None,
			"prompt_context": self.prompt_context,
		}


class PhaseCoordinator:
	"""
	Manages phased execution for many independent missions.

	Usage:
		coordinator = PhaseCoordinator(PhaseSettings())
		coordinator.events.subscribe(on_event, TaskEvent)

		prepared = await coordinator.analyze_and_prepare("task-1", text, "/path/to/mission")
		coordinator.track_text("task-1", response_text, "assistant")
		if coordinator.should_end_phase("task-1"):
			await coordinator.complete_current_phase("task-1", summary, created, modified)
	"""

	def __init__(
		self,
		settings: Optional[PhaseSettings] = None,
		default_db_path: Optional[str | Path] = None,
	):
		self.settings = settings or PhaseSettings()
		self.default_db_path = Path(default_db_path) if default_db_path else None
		self.events = EventBus()

		self._controllers: dict[str, PhaseExecutionController] = {}
		self._unsubscribe: dict[str, Callable[[], None]] = {}
		self._db_paths: dict[str, Path] = {}
		self._stores: dict[Path, PhaseStateStore] = {}
		self._stores_lock = asyncio.Lock()

	# ------------------------------------------------------------------
	# Mission setup
	# ------------------------------------------------------------------

	async def analyze_and_prepare(
		self,
		task_id: str,
		requirement: str,
		persistence_location: Optional[str | Path] = None,
		context_files: Optional[list[str]] = None,
	) -> PreparedMission:
		"""
		Analyze a requirement, plan it if needed, and start the first phase.

		Args:
			task_id: Mission identifier
			requirement: Free-text work request
			persistence_location: Mission folder (or .db file) for state snapshots
			context_files: Files already known to be involved

		Returns:
			PreparedMission with mode, score, plan and the first prompt context
		"""
		if not self.settings.enabled:
			logger.info(f"Phase execution disabled; {task_id} runs as a single session")
			return PreparedMission(
				mode=ExecutionMode.SINGLE,
				score=_disabled_score(),
				plan=None,
				prompt_context="",
			)

		if task_id in self._controllers:
			logger.warning(f"Replacing existing mission for {task_id}")
			self.cleanup(task_id)

		controller = self._register(task_id, PhaseExecutionController(self.settings))
		self._remember_location(task_id, persistence_location)

		score = await controller.analyze_requirement(requirement, context_files)
		mode = controller.decide_mode(score)

		plan = None
		if mode == ExecutionMode.PHASED:
			plan = controller.plan_phases(requirement)
			controller.start_phased_execution(task_id, requirement, plan)
		else:
			controller.start_single_execution(task_id, requirement, score.estimated_tokens)
		controller.begin_phase_execution()

		await self._persist(task_id)
		return PreparedMission(
			mode=mode,
			score=score,
			plan=plan,
			prompt_context=controller.get_phase_prompt_context(),
		)

	async def resume(
		self,
		task_id: str,
		persistence_location: Optional[str | Path] = None,
	) -> Optional[PhaseExecutionState]:
		"""Reload a persisted mission and rebuild its controller."""
		self._remember_location(task_id, persistence_location)
		db_path = self._db_paths.get(task_id)
		if db_path is None:
			return None

		store = await self._get_store(db_path)
		state = await store.get_state(task_id)
		if state is None:
			logger.info(f"No persisted state for {task_id} at {db_path}")
			return None

		if task_id in self._controllers:
			self.cleanup(task_id)
			self._db_paths[task_id] = db_path
		controller = self._register(task_id, PhaseExecutionController.from_state(state, self.settings))
		controller.announce_budget()
		return controller.get_state()

	# ------------------------------------------------------------------
	# Agent loop calls
	# ------------------------------------------------------------------

	def get_prompt_context(self, task_id: str) -> str:
		controller = self._controllers.get(task_id)
		return controller.get_phase_prompt_context() if controller else ""

	def track_tokens(self, task_id: str, tokens: int, source: str = "agent") -> Optional[UsageEvent]:
		controller = self._controllers.get(task_id)
		return controller.track_tokens(tokens, source) if controller else None

	def track_text(self, task_id: str, text: str, source: str = "agent") -> Optional[UsageEvent]:
		controller = self._controllers.get(task_id)
		return controller.track_text(text, source) if controller else None

	def should_end_phase(self, task_id: str) -> bool:
		controller = self._controllers.get(task_id)
		return controller.should_trigger_phase_boundary() if controller else False

	def get_budget(self, task_id: str) -> Optional[ContextBudget]:
		controller = self._controllers.get(task_id)
		return controller.get_budget() if controller else None

	async def complete_current_phase(
		self,
		task_id: str,
		summary: str = "",
		files_created: Optional[list[str]] = None,
		files_modified: Optional[list[str]] = None,
		verification_results: Optional[list[str]] = None,
	) -> CompletionOutcome:
		controller = self._controllers.get(task_id)
		if controller is None:
			return CompletionOutcome(continue_to_next=False, is_complete=False, accepted=False)

		if verification_results is None:
			verification_results = list(DEFAULT_VERIFICATION)
		outcome = controller.complete_phase(summary, files_created, files_modified, verification_results)
		if outcome.accepted:
			await self._persist(task_id)
		return outcome

	async def provide_approval(
		self,
		task_id: str,
		approved: bool,
		feedback: Optional[str] = None,
	) -> Optional[PhaseExecutionState]:
		controller = self._controllers.get(task_id)
		if controller is None:
			return None
		if not controller.has_pending_approval():
			return controller.get_state()
		controller.provide_approval(approved, feedback)
		await self._persist(task_id)
		return controller.get_state()

	async def skip_phase(self, task_id: str, reason: str = "") -> Optional[PhaseExecutionState]:
		controller = self._controllers.get(task_id)
		if controller is None:
			return None
		controller.skip_current_phase(reason)
		await self._persist(task_id)
		return controller.get_state()

	async def abort_mission(self, task_id: str, reason: str = "") -> Optional[PhaseExecutionState]:
		controller = self._controllers.get(task_id)
		if controller is None:
			return None
		controller.abort_mission(reason)
		await self._persist(task_id)
		return controller.get_state()

	# ------------------------------------------------------------------
	# Read projections
	# ------------------------------------------------------------------

	def has_phase_execution(self, task_id: str) -> bool:
		return task_id in self._controllers

	def is_phased_mode(self, task_id: str) -> bool:
		state = self.get_state(task_id)
		return state is not None and state.mode == ExecutionMode.PHASED

	def has_pending_approval(self, task_id: str) -> bool:
		controller = self._controllers.get(task_id)
		return controller.has_pending_approval() if controller else False

	def get_pending_approval(self, task_id: str) -> Optional[ApprovalRequest]:
		controller = self._controllers.get(task_id)
		return controller.get_pending_approval() if controller else None

	def get_state(self, task_id: str) -> Optional[PhaseExecutionState]:
		controller = self._controllers.get(task_id)
		return controller.get_state() if controller else None

	def get_current_phase(self, task_id: str) -> Optional[Phase]:
		controller = self._controllers.get(task_id)
		return controller.get_current_phase() if controller else None

	def get_phase_info(self, task_id: str) -> dict:
		controller = self._controllers.get(task_id)
		state = controller.get_state() if controller else None
		if state is None:
			return {}

		current = state.current_phase()
		return {
			"enabled": self.settings.enabled,
			"task_id": task_id,
			"mode": state.mode.value,
			"status": state.status.value,
			"strategy": state.strategy_used.value,
			"current_phase_index": state.current_phase_index,
			"total_phases": state.total_phases,
			"current_phase": current.model_dump() if current else None,
			"phases": [
				{
					"id": p.id,
					"name": p.name,
					"status": p.status.value,
					"estimated_tokens": p.estimated_tokens,
				}
				for p in state.phases
			],
			"budget": controller.get_budget().to_dict(),
			"awaiting_approval": state.pending_approval is not None,
			"estimated_total_tokens": state.estimated_total_tokens,
			"actual_tokens_used": state.actual_tokens_used,
		}

	def generate_report(self, task_id: str) -> str:
		controller = self._controllers.get(task_id)
		if controller is None:
			return "No phase execution data available."
		return controller.generate_progress_report()

	def list_tasks(self) -> list[str]:
		return list(self._controllers)

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	def cleanup(self, task_id: str) -> None:
		"""Forget a mission. Persisted snapshots are kept."""
		unsubscribe = self._unsubscribe.pop(task_id, None)
		if unsubscribe:
			unsubscribe()
		self._controllers.pop(task_id, None)
		self._db_paths.pop(task_id, None)

	async def close(self) -> None:
		async with self._stores_lock:
			for store in self._stores.values():
				await store.close()
			self._stores.clear()

	def _register(self, task_id: str, controller: PhaseExecutionController) -> PhaseExecutionController:
		def forward(event: PhaseEvent) -> None:
			self.events.publish(TaskEvent(task_id=task_id, event=event))

		self._unsubscribe[task_id] = controller.events.subscribe(forward)
		self._controllers[task_id] = controller
		return controller

	def _remember_location(self, task_id: str, location: Optional[str | Path]) -> None:
		if location:
			self._db_paths[task_id] = resolve_db_path(location)
		elif self.default_db_path:
			self._db_paths[task_id] = self.default_db_path

	async def _get_store(self, db_path: Path) -> PhaseStateStore:
		# One connection per database file, even when missions start concurrently
		async with self._stores_lock:
			store = self._stores.get(db_path)
			if store is None:
				store = PhaseStateStore(db_path)
				await store.init()
				self._stores[db_path] = store
			return store

	async def _persist(self, task_id: str) -> None:
		db_path = self._db_paths.get(task_id)
		controller = self._controllers.get(task_id)
		if db_path is None or controller is None:
			return
		state = controller.get_state()
		if state is None:
			return
		store = await self._get_store(db_path)
		await store.save_state(state)


def _disabled_score() -> ComplexityScore:
	return ComplexityScore(
		level=ComplexityLevel.LOW,
		score=0,
		estimated_tokens=DISABLED_ESTIMATE,
		recommendation=Recommendation.PROCEED,
		explanation="Phase execution disabled",
		metrics=ComplexityMetrics(feature_count=0, estimated_file_count=0, text_length=0),
	)


# Global coordinator instance
_coordinator: Optional[PhaseCoordinator] = None


def get_coordinator() -> PhaseCoordinator:
	"""Get or create the global coordinator."""
	global _coordinator
	if _coordinator is None:
		from ..config import get_config
		config = get_config()
		_coordinator = PhaseCoordinator(config.phases, default_db_path=config.state_db_path)
	return _coordinator
