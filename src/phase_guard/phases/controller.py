"""
Phase Execution Controller - the per-mission state machine.

Responsibilities:
- Decide single vs. phased execution from the complexity score
- Begin phases and reset the token budget for each one
- Produce the prompt context injected into the agent's system prompt
- Track tokens and report when a phase boundary is reached
- Hold completed phases at the approval gate until a decision arrives
- Skip phases and abort missions

Invalid calls (completing a phase that is not running, approving when
nothing is pending, acting on a finished mission) are logged and ignored.
They never raise, so the agent loop can always keep driving the mission.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from ..analyzer import ComplexityAnalyzer, ComplexityScore, Recommendation
from ..budget.monitor import (
	BudgetAlert,
	ContextBudget,
	TokenBudgetMonitor,
	UsageEvent,
	UsageType,
)
from ..config import PhaseSettings
from ..events import EventBus, PhaseEvent
from .models import (
	TERMINAL_MISSION_STATUSES,
	ApprovalRecord,
	ApprovalRequest,
	ExecutionMode,
	MissionStatus,
	Phase,
	PhaseExecutionState,
	PhasePlan,
	PhaseResult,
	PhaseStatus,
	PlanningStrategy,
)
from .planner import PhasePlanner

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

@dataclass
class ModeDecided(PhaseEvent):
	mode: ExecutionMode
	score: ComplexityScore
	reason: str = ""


@dataclass
class PhaseUpdate(PhaseEvent):
	"""Published on every state change."""
	reason: str
	status: MissionStatus
	phase_index: int
	total_phases: int
	phase: Optional[Phase] = None


@dataclass
class PhaseStarted(PhaseEvent):
	phase: Phase
	phase_index: int
	total_phases: int


@dataclass
class PhaseCompleted(PhaseEvent):
	phase: Phase
	result: PhaseResult
	phase_index: int
	total_phases: int


@dataclass
class ApprovalNeeded(PhaseEvent):
	request: ApprovalRequest


@dataclass
class AllPhasesComplete(PhaseEvent):
	total_tokens: int
	results: list[PhaseResult] = field(default_factory=list)


@dataclass
class MissionAborted(PhaseEvent):
	reason: str
	phase_index: int


@dataclass
class CompletionOutcome:
	"""What happened after a completion call."""
	continue_to_next: bool
	is_complete: bool
	awaiting_approval: bool = False
	accepted: bool = True


# ----------------------------------------------------------------------
# Controller
# ----------------------------------------------------------------------

class PhaseExecutionController:
	"""
	Drives one mission through its phases.

	Usage:
		controller = PhaseExecutionController(PhaseSettings())
		controller.events.subscribe(on_approval, ApprovalNeeded)

		score = await controller.analyze_requirement(text)
		if controller.decide_mode(score) == ExecutionMode.PHASED:
			controller.start_phased_execution(task_id, text, controller.plan_phases(text))
		else:
			controller.start_single_execution(task_id, text, score.estimated_tokens)
		controller.begin_phase_execution()
	"""

	def __init__(
		self,
		settings: Optional[PhaseSettings] = None,
		analyzer: Optional[ComplexityAnalyzer] = None,
		planner: Optional[PhasePlanner] = None,
		monitor: Optional[TokenBudgetMonitor] = None,
	):
		self.settings = settings or PhaseSettings()
		self.analyzer = analyzer or ComplexityAnalyzer(self.settings.analyzer_config())
		self.planner = planner or PhasePlanner(self.settings.planner_config())
		self.monitor = monitor or TokenBudgetMonitor(self.settings.monitor_config())
		self.events = EventBus()

		self.score: Optional[ComplexityScore] = None
		self.plan: Optional[PhasePlan] = None
		self._state: Optional[PhaseExecutionState] = None

		self.monitor.events.subscribe(self._on_budget_alert, BudgetAlert)

	@classmethod
	def from_state(
		cls,
		state: PhaseExecutionState,
		settings: Optional[PhaseSettings] = None,
	) -> "PhaseExecutionController":
		"""Rebuild a controller around a persisted state."""
		controller = cls(settings)
		controller._state = state

		phase = state.current_phase()
		if phase and state.status in (MissionStatus.RUNNING, MissionStatus.AWAITING_APPROVAL):
			controller.monitor.reset(controller.settings.token_budget_per_phase, phase.id)
			if state.phase_tokens_used:
				controller.monitor.restore_usage(
					state.phase_tokens_used,
					description="Usage recorded before resume",
				)

		logger.info(f"Restored mission {state.task_id} ({state.status.value}, phase index {state.current_phase_index})")
		return controller

	def announce_budget(self) -> Optional[BudgetAlert]:
		"""Re-publish the current budget alert, e.g. once listeners attach after a restore."""
		if self._state is None or not self._state.is_active:
			return None
		return self.monitor.publish_status()

	# ------------------------------------------------------------------
	# Analysis and start
	# ------------------------------------------------------------------

	def decide_mode(self, score: ComplexityScore) -> ExecutionMode:
		if score.score >= self.settings.phased_execution_threshold:
			return ExecutionMode.PHASED
		if score.recommendation != Recommendation.PROCEED:
			return ExecutionMode.PHASED
		return ExecutionMode.SINGLE

	def mode_reason(self, score: ComplexityScore) -> str:
		threshold = self.settings.phased_execution_threshold
		if score.score >= threshold or score.recommendation == Recommendation.SPLIT_PHASES:
			return f"Complexity score {score.score} exceeds threshold {threshold}"
		if score.recommendation == Recommendation.REQUIRE_CLARIFICATION:
			return "Requirement is too broad and needs clarification or phasing"
		return f"Complexity score {score.score} is within single-execution threshold {threshold}"

	async def analyze_requirement(
		self,
		requirement: str,
		context_files: Optional[list[str]] = None,
	) -> ComplexityScore:
		"""Score the requirement and announce the execution mode."""
		score = await self.analyzer.analyze(requirement, context_files)
		self.score = score
		mode = self.decide_mode(score)
		logger.info(f"Requirement scored {score.score}/100 ({score.level.value}), mode={mode.value}")
		self._publish(ModeDecided(mode=mode, score=score, reason=self.mode_reason(score)))
		return score

	def plan_phases(self, requirement: str) -> PhasePlan:
		"""Build a phase plan from the last analysis."""
		if self.score is None:
			self.score = self.analyzer.analyze_sync(requirement)
		self.plan = self.planner.plan(requirement, self.score)
		return self.plan

	def start_phased_execution(
		self,
		task_id: str,
		requirement: str,
		plan: Union[PhasePlan, list[Phase]],
	) -> PhaseExecutionState:
		if self._state is not None:
			logger.warning(f"Mission {self._state.task_id} already started; ignoring phased start")
			return self._state

		if isinstance(plan, PhasePlan):
			phases = plan.phases
			strategy = plan.strategy_used
		else:
			phases = list(plan)
			strategy = PlanningStrategy.FEATURE_BASED

		if not phases:
			logger.warning(f"No phases supplied for {task_id}; falling back to single execution")
			estimate = self.score.estimated_tokens if self.score else 0
			return self.start_single_execution(task_id, requirement, estimate)

		self._state = PhaseExecutionState(
			task_id=task_id,
			requirement=requirement,
			mode=ExecutionMode.PHASED,
			status=MissionStatus.IDLE,
			strategy_used=strategy,
			phases=[p.model_copy(deep=True) for p in phases],
			estimated_total_tokens=sum(p.estimated_tokens for p in phases),
		)
		logger.info(f"Started phased execution for {task_id} with {len(phases)} phases")
		self._publish_update("mission-started")
		return self._state

	def start_single_execution(
		self,
		task_id: str,
		requirement: str,
		estimated_tokens: int,
	) -> PhaseExecutionState:
		if self._state is not None:
			logger.warning(f"Mission {self._state.task_id} already started; ignoring single start")
			return self._state

		phase = Phase(
			id="phase-1",
			order=0,
			name="Implementation",
			description="Complete the full requirement in a single session.",
			requirements=[requirement.strip()[:200]] if requirement.strip() else [],
			deliverables=["Complete implementation"],
			verification_criteria=["Code compiles/transpiles without errors", "Requirement is met"],
			estimated_tokens=max(0, estimated_tokens),
		)
		self._state = PhaseExecutionState(
			task_id=task_id,
			requirement=requirement,
			mode=ExecutionMode.SINGLE,
			status=MissionStatus.IDLE,
			strategy_used=PlanningStrategy.SINGLE,
			phases=[phase],
			estimated_total_tokens=phase.estimated_tokens,
		)
		logger.info(f"Started single execution for {task_id}")
		self._publish_update("mission-started")
		return self._state

	# ------------------------------------------------------------------
	# Phase lifecycle
	# ------------------------------------------------------------------

	def begin_phase_execution(self) -> Optional[Phase]:
		"""Mark the current phase in progress and give it a fresh budget."""
		state = self._state
		if state is None or state.status != MissionStatus.IDLE:
			status = state.status.value if state else "uninitialized"
			logger.warning(f"begin_phase_execution ignored: mission is {status}")
			return None

		phase = state.current_phase()
		if phase is None:
			return None

		phase.status = PhaseStatus.IN_PROGRESS
		phase.started_at = datetime.now().isoformat()
		self.monitor.reset(self.settings.token_budget_per_phase, phase.id)
		state.phase_tokens_used = 0
		state.status = MissionStatus.RUNNING
		state.touch()

		logger.info(f"[{state.task_id}] Phase {state.current_phase_index + 1}/{state.total_phases} started: {phase.name}")
		self._publish(PhaseStarted(
			phase=phase,
			phase_index=state.current_phase_index,
			total_phases=state.total_phases,
		))
		self._publish_update("phase-started")
		return phase

	def track_tokens(
		self,
		tokens: int,
		source: str,
		usage_type: UsageType = UsageType.CONTEXT,
		description: str = "",
	) -> Optional[UsageEvent]:
		state = self._state
		if state is None or state.status != MissionStatus.RUNNING:
			logger.debug(f"Token tracking ignored outside a running phase ({tokens} from {source})")
			return None

		event = self.monitor.track_usage(usage_type, tokens, source, description)
		state.actual_tokens_used += event.tokens
		state.phase_tokens_used += event.tokens
		state.touch()
		return event

	def track_text(
		self,
		text: str,
		source: str,
		usage_type: UsageType = UsageType.CONTEXT,
	) -> Optional[UsageEvent]:
		return self.track_tokens(self.monitor.estimate_tokens(text), source, usage_type)

	def should_trigger_phase_boundary(self) -> bool:
		if self._state is None:
			return False
		return self.monitor.should_trigger_phase_boundary()

	def complete_phase(
		self,
		summary: str = "",
		files_created: Optional[list[str]] = None,
		files_modified: Optional[list[str]] = None,
		verification_results: Optional[list[str]] = None,
	) -> CompletionOutcome:
		"""
		Record the current phase as completed.

		Args:
			summary: What the agent accomplished
			files_created: Paths created during the phase
			files_modified: Paths modified during the phase
			verification_results: Claims such as "Tests pass: PASS"

		Returns:
			CompletionOutcome; accepted is False when the call was ignored
		"""
		state = self._state
		if state is None or state.status != MissionStatus.RUNNING:
			status = state.status.value if state else "uninitialized"
			logger.warning(f"complete_phase ignored: mission is {status}")
			return self._outcome(accepted=False)

		phase = state.current_phase()
		checks = list(verification_results or [])
		result = PhaseResult(
			phase_id=phase.id,
			status=PhaseStatus.COMPLETED,
			token_usage=self.monitor.used_tokens,
			files_created=list(files_created or []),
			files_modified=list(files_modified or []),
			verification_results=checks,
			verification_passed=PhaseResult.verification_ok(checks),
			summary=summary,
		)
		state.phase_results.append(result)
		phase.status = PhaseStatus.COMPLETED
		phase.completed_at = result.completed_at
		state.touch()

		logger.info(
			f"[{state.task_id}] Phase {state.current_phase_index + 1}/{state.total_phases} completed "
			f"({result.token_usage:,} tokens, verification {'passed' if result.verification_passed else 'failed'})"
		)
		self._publish(PhaseCompleted(
			phase=phase,
			result=result,
			phase_index=state.current_phase_index,
			total_phases=state.total_phases,
		))

		gated = state.mode == ExecutionMode.PHASED and self.settings.require_approval_between_phases
		if gated and not self.settings.auto_approve:
			request = ApprovalRequest(
				phase=phase.model_copy(deep=True),
				result=result,
				phase_index=state.current_phase_index,
				total_phases=state.total_phases,
				budget=self.monitor.get_budget().to_dict(),
			)
			state.pending_approval = request
			state.status = MissionStatus.AWAITING_APPROVAL
			logger.info(f"[{state.task_id}] Awaiting approval for {phase.id}")
			self._publish(ApprovalNeeded(request=request))
			self._publish_update("approval-needed")
			return self._outcome()

		if gated:
			state.approvals.append(ApprovalRecord(phase_id=phase.id, approved=True, feedback="auto-approved"))
		self._advance()
		return self._outcome()

	def provide_approval(self, approved: bool, feedback: Optional[str] = None) -> Optional[PhaseExecutionState]:
		"""Resolve the pending approval. Rejection aborts the mission."""
		state = self._state
		if state is None or state.pending_approval is None:
			logger.warning("provide_approval ignored: no approval pending")
			return self._state

		request = state.pending_approval
		state.approvals.append(ApprovalRecord(phase_id=request.phase.id, approved=approved, feedback=feedback))
		state.pending_approval = None

		if approved:
			logger.info(f"[{state.task_id}] {request.phase.id} approved")
			self._advance()
		else:
			self._abort(feedback or "Rejected at approval gate")
		return state

	def skip_current_phase(self, reason: str = "") -> Optional[PhaseExecutionState]:
		"""Mark the current phase skipped and move on as if approved."""
		state = self._state
		if state is None or state.status not in (MissionStatus.IDLE, MissionStatus.RUNNING):
			status = state.status.value if state else "uninitialized"
			logger.warning(f"skip_current_phase ignored: mission is {status}")
			return state

		phase = state.current_phase()
		result = PhaseResult(
			phase_id=phase.id,
			status=PhaseStatus.SKIPPED,
			token_usage=0,
			summary=f"Phase skipped: {reason}" if reason else "Phase skipped",
		)
		state.phase_results.append(result)
		phase.status = PhaseStatus.SKIPPED
		phase.completed_at = result.completed_at
		logger.info(f"[{state.task_id}] Skipped {phase.id}: {reason or 'no reason given'}")

		self._advance()
		return state

	def abort_mission(self, reason: str = "") -> Optional[PhaseExecutionState]:
		"""Stop the mission for good."""
		state = self._state
		if state is None or state.status in TERMINAL_MISSION_STATUSES:
			return state
		self._abort(reason or "Aborted by caller")
		return state

	def _abort(self, reason: str) -> None:
		state = self._state
		phase = state.current_phase()
		if phase and phase.status == PhaseStatus.IN_PROGRESS and state.get_result(phase.id) is None:
			state.phase_results.append(PhaseResult(
				phase_id=phase.id,
				status=PhaseStatus.FAILED,
				token_usage=self.monitor.used_tokens,
				error_message=reason,
				summary="Phase interrupted by mission abort",
			))
			phase.status = PhaseStatus.FAILED
			phase.completed_at = datetime.now().isoformat()

		state.pending_approval = None
		state.status = MissionStatus.ABORTED
		state.abort_reason = reason
		state.touch()

		logger.info(f"[{state.task_id}] Mission aborted: {reason}")
		self._publish(MissionAborted(reason=reason, phase_index=state.current_phase_index))
		self._publish_update("mission-aborted")

	def _advance(self) -> None:
		state = self._state
		state.current_phase_index += 1
		state.phase_tokens_used = 0
		state.touch()

		if state.current_phase_index >= state.total_phases:
			state.current_phase_index = state.total_phases
			state.status = MissionStatus.COMPLETE
			logger.info(f"[{state.task_id}] All {state.total_phases} phases complete ({state.actual_tokens_used:,} tokens)")
			self._publish(AllPhasesComplete(
				total_tokens=state.actual_tokens_used,
				results=list(state.phase_results),
			))
			self._publish_update("all-phases-complete")
			return

		state.status = MissionStatus.IDLE
		self.begin_phase_execution()

	# ------------------------------------------------------------------
	# Projections
	# ------------------------------------------------------------------

	def has_pending_approval(self) -> bool:
		return self._state is not None and self._state.pending_approval is not None

	def get_pending_approval(self) -> Optional[ApprovalRequest]:
		if self._state is None or self._state.pending_approval is None:
			return None
		return self._state.pending_approval.model_copy(deep=True)

	def get_state(self) -> Optional[PhaseExecutionState]:
		if self._state is None:
			return None
		return self._state.model_copy(deep=True)

	def get_budget(self) -> ContextBudget:
		return self.monitor.get_budget()

	def get_current_phase(self) -> Optional[Phase]:
		if self._state is None:
			return None
		phase = self._state.current_phase()
		return phase.model_copy(deep=True) if phase else None

	@property
	def status(self) -> MissionStatus:
		return self._state.status if self._state else MissionStatus.UNINITIALIZED

	def get_progress_summary(self) -> dict:
		if self._state is None:
			return {}
		summary = self._state.get_progress()
		summary["budget"] = self.monitor.get_budget().to_dict()
		return summary

	def generate_progress_report(self) -> str:
		if self._state is None:
			return "No phase execution data available."
		report = self._state.to_markdown()
		if self._state.status in (MissionStatus.RUNNING, MissionStatus.AWAITING_APPROVAL):
			budget = self.monitor.get_budget()
			report += (
				f"\n\n**Current Phase Budget:** {budget.used_tokens:,}/{budget.total_budget:,} tokens "
				f"({budget.percent_used}%, {budget.status.value})"
			)
		return report

	def get_phase_prompt_context(self) -> str:
		"""Markdown block for the agent's system prompt. Built fresh on each call."""
		state = self._state
		if state is None:
			return ""
		if state.status == MissionStatus.COMPLETE:
			return "## PHASE EXECUTION CONTEXT\n\nAll phases are complete. Do not start new work."
		if state.status == MissionStatus.ABORTED:
			return f"## PHASE EXECUTION CONTEXT\n\nMission aborted: {state.abort_reason}. Do not continue."

		phase = state.current_phase()
		if phase is None:
			return ""

		budget = self.monitor.get_budget()
		lines = [
			"## PHASE EXECUTION CONTEXT",
			"",
			f"You are executing **Phase {state.current_phase_index + 1} of {state.total_phases}: {phase.name}**",
			"",
			"### Objective",
			phase.description,
		]

		if phase.requirements:
			lines += ["", "### Requirements for This Phase"]
			lines += [f"- {r}" for r in phase.requirements]
		if phase.deliverables:
			lines += ["", "### Expected Deliverables"]
			lines += [f"- {d}" for d in phase.deliverables]
		if phase.verification_criteria:
			lines += ["", "### Verification Criteria"]
			lines += [f"- {c}" for c in phase.verification_criteria]

		previous = [r for r in state.phase_results if r.phase_id != phase.id]
		if previous:
			lines += ["", "### Previous Phase Results"]
			names = {p.id: p.name for p in state.phases}
			for result in previous:
				line = f"- {names.get(result.phase_id, result.phase_id)}: {result.status.value}"
				if result.summary:
					line += f" - {result.summary[:200]}"
				files = len(result.files_created) + len(result.files_modified)
				if files:
					line += f" ({files} files)"
				lines.append(line)

		lines += [
			"",
			"### Token Budget",
			f"- Used: {budget.used_tokens:,} / {budget.total_budget:,} ({budget.percent_used}%)",
			f"- Remaining: {budget.remaining_tokens:,}",
			f"- Status: {budget.status.value}",
			f"- Recommended action: {budget.recommended_action.value}",
			"",
			"### IMPORTANT CONSTRAINTS",
			"1. Focus ONLY on this phase's requirements",
			"2. Do not start work that belongs to later phases",
			"3. When done, summarize what was built and list created/modified files",
			"4. If the budget status turns critical, stop and report progress",
		]
		if state.status == MissionStatus.AWAITING_APPROVAL:
			lines += ["", "**This phase is complete and waiting for approval. Do not continue.**"]

		return "\n".join(lines)

	# ------------------------------------------------------------------
	# Events
	# ------------------------------------------------------------------

	def _outcome(self, accepted: bool = True) -> CompletionOutcome:
		status = self.status
		return CompletionOutcome(
			continue_to_next=status == MissionStatus.RUNNING,
			is_complete=status == MissionStatus.COMPLETE,
			awaiting_approval=status == MissionStatus.AWAITING_APPROVAL,
			accepted=accepted,
		)

	def _publish(self, event: PhaseEvent) -> None:
		self.events.publish(event)

	def _publish_update(self, reason: str) -> None:
		state = self._state
		phase = state.current_phase() if state else None
		self._publish(PhaseUpdate(
			reason=reason,
			status=self.status,
			phase_index=state.current_phase_index if state else 0,
			total_phases=state.total_phases if state else 0,
			phase=phase.model_copy(deep=True) if phase else None,
		))

	def _on_budget_alert(self, alert: BudgetAlert) -> None:
		self._publish(alert)
		self._publish_update(f"budget-{alert.status.value}")
