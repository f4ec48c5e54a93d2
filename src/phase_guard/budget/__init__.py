"""Token budget tracking and prompt compaction."""

from .compaction import ConversationTurn, TruncationResult
from .monitor import (
	BudgetAction,
	BudgetAlert,
	BudgetStatus,
	ContextBudget,
	MonitorConfig,
	TokenBudgetMonitor,
	UsageEvent,
	UsageType,
)

__all__ = [
	"BudgetAction",
	"BudgetAlert",
	"BudgetStatus",
	"ContextBudget",
	"ConversationTurn",
	"MonitorConfig",
	"TokenBudgetMonitor",
	"TruncationResult",
	"UsageEvent",
	"UsageType",
]
