"""Phase planning, execution control, and state persistence."""

from .controller import (
	AllPhasesComplete,
	ApprovalNeeded,
	CompletionOutcome,
	MissionAborted,
	ModeDecided,
	PhaseCompleted,
	PhaseExecutionController,
	PhaseStarted,
	PhaseUpdate,
)
from .coordinator import PhaseCoordinator, PreparedMission, get_coordinator
from .models import (
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
from .planner import PhasePlanner, PlannerConfig
from .store import PhaseStateStore, StateNotFoundError

__all__ = [
	"AllPhasesComplete",
	"ApprovalNeeded",
	"ApprovalRecord",
	"ApprovalRequest",
	"CompletionOutcome",
	"ExecutionMode",
	"MissionAborted",
	"MissionStatus",
	"ModeDecided",
	"Phase",
	"PhaseCompleted",
	"PhaseCoordinator",
	"PhaseExecutionController",
	"PhaseExecutionState",
	"PhasePlan",
	"PhasePlanner",
	"PhaseResult",
	"PhaseStarted",
	"PhaseStateStore",
	"PhaseStatus",
	"PhaseUpdate",
	"PlannerConfig",
	"PlanningStrategy",
	"PreparedMission",
	"StateNotFoundError",
	"get_coordinator",
]
