"""
Phase Models - Pydantic schemas for phased mission execution.

Defines phases produced by the planner, per-phase results, approval
requests and decisions, and the per-mission execution state that the
controller owns and the state store persists.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PhaseStatus(str, Enum):
	"""Status of a single phase."""
	PENDING = "pending"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	FAILED = "failed"
	SKIPPED = "skipped"


class ExecutionMode(str, Enum):
	"""How a mission is executed."""
	SINGLE = "single"
	PHASED = "phased"


class MissionStatus(str, Enum):
	"""Where the mission is in its lifecycle."""
	UNINITIALIZED = "uninitialized"
	IDLE = "idle"
	RUNNING = "running"
	AWAITING_APPROVAL = "awaiting_approval"
	COMPLETE = "complete"
	ABORTED = "aborted"


TERMINAL_MISSION_STATUSES = {MissionStatus.COMPLETE, MissionStatus.ABORTED}


class PlanningStrategy(str, Enum):
	"""Partitioning strategy used to build a phase plan."""
	AUTO = "auto"
	FEATURE_BASED = "feature_based"
	DOMAIN_BASED = "domain_based"
	RISK_BASED = "risk_based"
	SINGLE = "single"


class Phase(BaseModel):
	"""A bounded unit of mission work with its own token budget."""
	id: str = Field(description="Phase identifier (e.g., 'phase-1')")
	order: int = Field(description="Zero-based position in the plan")
	name: str = Field(description="Phase name (e.g., 'Data Layer')")
	description: str = Field(description="What this phase accomplishes")
	requirements: list[str] = Field(default_factory=list, description="Requirement items covered")
	deliverables: list[str] = Field(default_factory=list, description="Expected outputs")
	verification_criteria: list[str] = Field(default_factory=list, description="How to verify the phase")
	estimated_tokens: int = Field(default=0, description="Estimated token cost")
	dependencies: list[str] = Field(default_factory=list, description="Phase IDs this depends on")
	domains: list[str] = Field(default_factory=list)
	risk_factors: list[str] = Field(default_factory=list)
	status: PhaseStatus = Field(default=PhaseStatus.PENDING)
	started_at: Optional[str] = Field(default=None)
	completed_at: Optional[str] = Field(default=None)


class PhaseResult(BaseModel):
	"""Outcome of a phase. Appended once per phase, never removed."""
	phase_id: str
	status: PhaseStatus
	token_usage: int = Field(default=0, ge=0)
	files_created: list[str] = Field(default_factory=list)
	files_modified: list[str] = Field(default_factory=list)
	verification_results: list[str] = Field(
		default_factory=list,
		description="Free-text pass/fail claims, e.g. 'Code compiles: PASS'",
	)
	verification_passed: bool = Field(default=True)
	summary: str = Field(default="")
	error_message: Optional[str] = Field(default=None)
	completed_at: str = Field(default_factory=lambda: datetime.now().isoformat())

	@staticmethod
	def verification_ok(results: list[str]) -> bool:
		"""True when no verification claim reports a failure."""
		return not any("fail" in r.lower() for r in results)


class ApprovalRequest(BaseModel):
	"""Raised when a completed phase waits at the approval gate."""
	phase: Phase
	result: PhaseResult
	phase_index: int
	total_phases: int
	budget: dict = Field(default_factory=dict, description="Budget snapshot at completion")
	requested_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class ApprovalRecord(BaseModel):
	"""A decision taken at the approval gate."""
	phase_id: str
	approved: bool
	feedback: Optional[str] = None
	decided_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class PhasePlan(BaseModel):
	"""Planner output: ordered phases for one requirement."""
	original_requirement: str
	phases: list[Phase] = Field(default_factory=list)
	execution_order: list[str] = Field(default_factory=list)
	estimated_total_tokens: int = 0
	strategy_used: PlanningStrategy = PlanningStrategy.FEATURE_BASED
	complexity_score: int = 0
	summary: str = ""

	@property
	def total_phases(self) -> int:
		return len(self.phases)


class PhaseExecutionState(BaseModel):
	"""
	Top-level per-mission aggregate.

	The controller is the only writer. Everything the UI, tools and
	reports show is a projection of this object.
	"""
	task_id: str
	requirement: str = ""
	mode: ExecutionMode = ExecutionMode.SINGLE
	status: MissionStatus = MissionStatus.UNINITIALIZED
	strategy_used: PlanningStrategy = PlanningStrategy.SINGLE

	phases: list[Phase] = Field(default_factory=list)
	current_phase_index: int = 0
	phase_results: list[PhaseResult] = Field(default_factory=list)
	approvals: list[ApprovalRecord] = Field(default_factory=list)
	pending_approval: Optional[ApprovalRequest] = None

	estimated_total_tokens: int = 0
	actual_tokens_used: int = 0
	phase_tokens_used: int = Field(default=0, description="Usage inside the open phase")

	abort_reason: Optional[str] = None
	started_at: str = Field(default_factory=lambda: datetime.now().isoformat())
	updated_at: str = Field(default_factory=lambda: datetime.now().isoformat())

	@property
	def is_active(self) -> bool:
		return self.status not in TERMINAL_MISSION_STATUSES and self.status != MissionStatus.UNINITIALIZED

	@property
	def total_phases(self) -> int:
		return len(self.phases)

	def current_phase(self) -> Optional[Phase]:
		if 0 <= self.current_phase_index < len(self.phases):
			return self.phases[self.current_phase_index]
		return None

	def get_result(self, phase_id: str) -> Optional[PhaseResult]:
		for result in self.phase_results:
			if result.phase_id == phase_id:
				return result
		return None

	def touch(self) -> None:
		self.updated_at = datetime.now().isoformat()

	def get_progress(self) -> dict:
		"""Calculate overall progress."""
		completed = len([p for p in self.phases if p.status == PhaseStatus.COMPLETED])
		skipped = len([p for p in self.phases if p.status == PhaseStatus.SKIPPED])
		failed = len([p for p in self.phases if p.status == PhaseStatus.FAILED])
		done = completed + skipped + failed
		total = len(self.phases)

		return {
			"task_id": self.task_id,
			"mode": self.mode.value,
			"status": self.status.value,
			"current_phase_index": self.current_phase_index,
			"total_phases": total,
			"completed_phases": completed,
			"skipped_phases": skipped,
			"failed_phases": failed,
			"percent_complete": round(done / total * 100, 1) if total > 0 else 0,
			"estimated_total_tokens": self.estimated_total_tokens,
			"actual_tokens_used": self.actual_tokens_used,
			"awaiting_approval": self.pending_approval is not None,
		}

	def to_markdown(self) -> str:
		"""Progress report with one row per phase; the current phase is marked."""
		progress = self.get_progress()
		lines = [
			f"# Phase Execution Report: {self.task_id}",
			"",
			f"**Mode:** {self.mode.value}",
			f"**Status:** {self.status.value}",
			f"**Strategy:** {self.strategy_used.value}",
			f"**Progress:** {progress['completed_phases']}/{progress['total_phases']} phases completed "
			f"({progress['percent_complete']}%)",
			f"**Tokens:** {self.actual_tokens_used:,} used / {self.estimated_total_tokens:,} estimated",
			"",
			"| | Phase | Status | Est. Tokens | Actual Tokens |",
			"|---|-------|--------|-------------|---------------|",
		]

		for index, phase in enumerate(self.phases):
			marker = "→" if index == self.current_phase_index and self.is_active else ""
			result = self.get_result(phase.id)
			actual = f"{result.token_usage:,}" if result else "-"
			lines.append(
				f"| {marker} | {phase.name} | {phase.status.value} | {phase.estimated_tokens:,} | {actual} |"
			)

		if self.phase_results:
			lines += ["", "## Phase Results", ""]
			for result in self.phase_results:
				check = "passed" if result.verification_passed else "FAILED"
				lines.append(f"### {result.phase_id} ({result.status.value}, verification {check})")
				if result.summary:
					lines.append(result.summary)
				files = result.files_created + result.files_modified
				if files:
					lines.append(f"Files: {', '.join(files)}")
				lines.append("")

		if self.abort_reason:
			lines += ["", f"**Aborted:** {self.abort_reason}"]

		return "\n".join(lines)
