"""
Token Budget Monitor - tracks token usage against the current phase budget.

Features:
- Typed usage ledger (prompt, response, tool calls, context, system)
- Budget snapshots with health status and a recommended action
- Alerts published only when the status changes
- Phase-boundary detection (critical/exhausted, or inside the wrap-up reserve)
- Compaction helpers (conversation summaries, truncation) sized by the same estimator
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from ..events import EventBus, PhaseEvent
from . import compaction
from .compaction import ConversationTurn, TruncationResult

logger = logging.getLogger(__name__)


class UsageType(str, Enum):
	PROMPT = "prompt"
	RESPONSE = "response"
	CONTEXT = "context"
	TOOL_CALL = "tool_call"
	TOOL_RESULT = "tool_result"
	SYSTEM = "system"


class BudgetStatus(str, Enum):
	HEALTHY = "healthy"
	WARNING = "warning"
	CRITICAL = "critical"
	EXHAUSTED = "exhausted"


class BudgetAction(str, Enum):
	CONTINUE = "continue"
	WRAP_UP = "wrap_up"
	CHECKPOINT = "checkpoint"
	STOP = "stop"


STATUS_ACTIONS = {
	BudgetStatus.HEALTHY: BudgetAction.CONTINUE,
	BudgetStatus.WARNING: BudgetAction.WRAP_UP,
	BudgetStatus.CRITICAL: BudgetAction.CHECKPOINT,
	BudgetStatus.EXHAUSTED: BudgetAction.STOP,
}

ALERT_MESSAGES = {
	BudgetStatus.WARNING: (
		"Token budget warning: approaching the phase limit",
		[
			"Complete the current task",
			"Avoid starting new large operations",
			"Consider creating a checkpoint",
		],
	),
	BudgetStatus.CRITICAL: (
		"Token budget critical: wrap up this phase now",
		[
			"Stop starting new tasks",
			"Save current progress",
			"Create a checkpoint now",
			"Prepare to transition to next phase",
		],
	),
	BudgetStatus.EXHAUSTED: (
		"Token budget exhausted: phase must end",
		[
			"Stop all operations",
			"Save state immediately",
			"Transition to next phase",
			"Report partial completion",
		],
	),
}


@dataclass
class MonitorConfig:
	total_budget: int = 30000
	warning_threshold: float = 70.0
	critical_threshold: float = 90.0
	wrap_up_reserve: int = 2000
	# Non-whitespace characters are token-dense, whitespace is cheap
	dense_chars_per_token: float = 3.5
	sparse_chars_per_token: float = 8.0


@dataclass
class UsageEvent:
	type: UsageType
	tokens: int
	source: str
	description: str = ""
	phase_id: Optional[str] = None
	timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class ContextBudget:
	"""Point-in-time view of the phase budget."""
	total_budget: int
	used_tokens: int
	remaining_tokens: int
	percent_used: float
	status: BudgetStatus
	recommended_action: BudgetAction

	def to_dict(self) -> dict:
		return {
			"total_budget": self.total_budget,
			"used_tokens": self.used_tokens,
			"remaining_tokens": self.remaining_tokens,
			"percent_used": self.percent_used,
			"status": self.status.value,
			"recommended_action": self.recommended_action.value,
		}


@dataclass
class BudgetAlert(PhaseEvent):
	status: BudgetStatus
	budget: ContextBudget
	message: str
	suggestions: list[str] = field(default_factory=list)
	phase_id: Optional[str] = None


class TokenBudgetMonitor:
	"""
	Tracks token usage for one phase at a time.

	Usage:
		monitor = TokenBudgetMonitor(MonitorConfig(total_budget=30000))
		monitor.events.subscribe(on_alert, BudgetAlert)

		monitor.track_prompt(prompt_text)
		if monitor.should_trigger_phase_boundary():
			...  # stop issuing LLM calls and complete the phase
	"""

	def __init__(self, config: Optional[MonitorConfig] = None):
		self.config = replace(config) if config else MonitorConfig()
		self.config.total_budget = max(0, self.config.total_budget)
		self.config.wrap_up_reserve = max(0, self.config.wrap_up_reserve)
		self.events = EventBus()

		self._history: list[UsageEvent] = []
		self._used = 0
		self._phase_id: Optional[str] = None
		self._last_status = self.get_budget().status

	# ------------------------------------------------------------------
	# Estimation
	# ------------------------------------------------------------------

	def estimate_tokens(self, text: str) -> int:
		"""Estimate tokens for text using blended dense/sparse character costs."""
		if not text:
			return 0
		whitespace = sum(1 for ch in text if ch.isspace())
		dense = len(text) - whitespace
		return math.ceil(
			dense / self.config.dense_chars_per_token
			+ whitespace / self.config.sparse_chars_per_token
		)

	# ------------------------------------------------------------------
	# Tracking
	# ------------------------------------------------------------------

	def track_usage(
		self,
		usage_type: UsageType,
		tokens: int,
		source: str,
		description: str = "",
		phase_id: Optional[str] = None,
	) -> UsageEvent:
		"""
		Record token usage and publish an alert if the status changed.

		Args:
			usage_type: Kind of usage
			tokens: Token count; negative values are recorded as 0
			source: Where the usage came from (e.g. "tool:read_file")
			description: Optional free text
			phase_id: Phase tag; defaults to the monitor's current phase

		Returns:
			The recorded UsageEvent
		"""
		event = UsageEvent(
			type=usage_type,
			tokens=max(0, int(tokens)),
			source=source,
			description=description,
			phase_id=phase_id or self._phase_id,
		)
		self._history.append(event)
		self._used += event.tokens
		logger.debug(f"Tracked {event.tokens} tokens ({usage_type.value}) from {source}")

		self._check_status()
		return event

	def restore_usage(self, tokens: int, source: str = "restored", description: str = "") -> UsageEvent:
		"""Carry usage over from a saved session. No alert is published."""
		event = UsageEvent(
			type=UsageType.CONTEXT,
			tokens=max(0, int(tokens)),
			source=source,
			description=description,
			phase_id=self._phase_id,
		)
		self._history.append(event)
		self._used += event.tokens
		self._last_status = self.get_budget().status
		return event

	def track_text(self, text: str, usage_type: UsageType, source: str, description: str = "") -> UsageEvent:
		return self.track_usage(usage_type, self.estimate_tokens(text), source, description)

	def track_prompt(self, prompt: str, source: str = "user") -> UsageEvent:
		return self.track_text(prompt, UsageType.PROMPT, source)

	def track_response(self, response: str, source: str = "assistant") -> UsageEvent:
		return self.track_text(response, UsageType.RESPONSE, source)

	def track_tool_call(self, tool_name: str, arguments: str) -> UsageEvent:
		return self.track_text(arguments, UsageType.TOOL_CALL, f"tool:{tool_name}")

	def track_tool_result(self, tool_name: str, result: str) -> UsageEvent:
		return self.track_text(result, UsageType.TOOL_RESULT, f"tool-result:{tool_name}")

	def track_context(self, context: str, source: str = "context") -> UsageEvent:
		return self.track_text(context, UsageType.CONTEXT, source)

	def track_system_prompt(self, prompt: str) -> UsageEvent:
		return self.track_text(prompt, UsageType.SYSTEM, "system-prompt")

	# ------------------------------------------------------------------
	# Budget
	# ------------------------------------------------------------------

	def _snapshot(self, used: int) -> ContextBudget:
		total = self.config.total_budget
		if total <= 0:
			return ContextBudget(
				total_budget=0,
				used_tokens=used,
				remaining_tokens=0,
				percent_used=100.0,
				status=BudgetStatus.EXHAUSTED,
				recommended_action=BudgetAction.STOP,
			)

		raw_percent = used * 100 / total
		status = self._status_for(raw_percent)
		return ContextBudget(
			total_budget=total,
			used_tokens=used,
			remaining_tokens=max(0, total - used),
			percent_used=min(100.0, math.floor(raw_percent * 10) / 10),
			status=status,
			recommended_action=STATUS_ACTIONS[status],
		)

	def _status_for(self, percent: float) -> BudgetStatus:
		if percent >= 100:
			return BudgetStatus.EXHAUSTED
		if percent >= self.config.critical_threshold:
			return BudgetStatus.CRITICAL
		if percent >= self.config.warning_threshold:
			return BudgetStatus.WARNING
		return BudgetStatus.HEALTHY

	def get_budget(self) -> ContextBudget:
		return self._snapshot(self._used)

	def get_budget_with_estimate(self, additional_tokens: int) -> ContextBudget:
		"""What the budget would look like after spending additional_tokens."""
		return self._snapshot(self._used + max(0, additional_tokens))

	def can_afford(self, tokens: int) -> bool:
		"""True if tokens can be spent while still leaving the wrap-up reserve."""
		return self._used + max(0, tokens) + self.config.wrap_up_reserve <= self.config.total_budget

	def should_trigger_phase_boundary(self) -> bool:
		budget = self.get_budget()
		if budget.status in (BudgetStatus.CRITICAL, BudgetStatus.EXHAUSTED):
			return True
		return budget.remaining_tokens < self.config.wrap_up_reserve

	@property
	def used_tokens(self) -> int:
		return self._used

	@property
	def phase_id(self) -> Optional[str]:
		return self._phase_id

	def _check_status(self) -> None:
		budget = self.get_budget()
		if budget.status == self._last_status:
			return
		previous = self._last_status
		self._last_status = budget.status
		logger.info(f"Budget status {previous.value} -> {budget.status.value} ({budget.percent_used}%)")

		if budget.status != BudgetStatus.HEALTHY:
			self._publish_alert(budget)

	def _publish_alert(self, budget: ContextBudget) -> BudgetAlert:
		message, suggestions = ALERT_MESSAGES[budget.status]
		alert = BudgetAlert(
			status=budget.status,
			budget=budget,
			message=message,
			suggestions=list(suggestions),
			phase_id=self._phase_id,
		)
		self.events.publish(alert)
		return alert

	def publish_status(self) -> Optional[BudgetAlert]:
		"""Publish an alert for the current status unless it is healthy."""
		budget = self.get_budget()
		if budget.status == BudgetStatus.HEALTHY:
			return None
		return self._publish_alert(budget)

	# ------------------------------------------------------------------
	# Phase control
	# ------------------------------------------------------------------

	def set_phase(self, phase_id: Optional[str]) -> None:
		self._phase_id = phase_id

	def reset(self, new_budget: Optional[int] = None, phase_id: Optional[str] = None) -> None:
		"""Start a fresh ledger, optionally with a new budget and phase tag."""
		if new_budget is not None:
			self.config.total_budget = max(0, new_budget)
		self._history = []
		self._used = 0
		self._phase_id = phase_id
		self._last_status = self.get_budget().status
		logger.debug(f"Budget reset to {self.config.total_budget} tokens (phase={phase_id})")

	# ------------------------------------------------------------------
	# Introspection
	# ------------------------------------------------------------------

	def get_history(self, limit: Optional[int] = None) -> list[UsageEvent]:
		if limit is None:
			return list(self._history)
		if limit <= 0:
			return []
		return self._history[-limit:]

	def get_statistics(self) -> dict:
		by_type = {t.value: 0 for t in UsageType}
		by_source: dict[str, int] = {}
		for event in self._history:
			by_type[event.type.value] += event.tokens
			by_source[event.source] = by_source.get(event.source, 0) + event.tokens

		count = len(self._history)
		time_span = 0.0
		if count > 1:
			first = datetime.fromisoformat(self._history[0].timestamp)
			last = datetime.fromisoformat(self._history[-1].timestamp)
			time_span = max(0.0, (last - first).total_seconds())

		return {
			"total_tokens": self._used,
			"event_count": count,
			"by_type": by_type,
			"by_source": by_source,
			"average_per_event": round(self._used / count, 1) if count else 0.0,
			"peak_event": max((e.tokens for e in self._history), default=0),
			"time_span_seconds": time_span,
			"tokens_per_minute": round(self._used / (time_span / 60), 1) if time_span > 0 else 0.0,
		}

	def generate_report(self) -> str:
		budget = self.get_budget()
		stats = self.get_statistics()

		lines = [
			"## Token Budget Report",
			"",
			"| Metric | Value |",
			"|--------|-------|",
			f"| Total Budget | {budget.total_budget:,} |",
			f"| Used | {budget.used_tokens:,} ({budget.percent_used}%) |",
			f"| Remaining | {budget.remaining_tokens:,} |",
			f"| Status | {budget.status.value} |",
			f"| Recommended Action | {budget.recommended_action.value} |",
			f"| Events | {stats['event_count']} |",
		]

		used_types = {k: v for k, v in stats["by_type"].items() if v}
		if used_types:
			lines += ["", "### Usage by Type", ""]
			for usage_type, tokens in sorted(used_types.items(), key=lambda kv: -kv[1]):
				lines.append(f"- {usage_type}: {tokens:,}")

		if stats["by_source"]:
			lines += ["", "### Top Sources", ""]
			top = sorted(stats["by_source"].items(), key=lambda kv: -kv[1])[:5]
			for source, tokens in top:
				lines.append(f"- {source}: {tokens:,}")

		return "\n".join(lines)

	# ------------------------------------------------------------------
	# Compaction
	# ------------------------------------------------------------------

	def summarize_conversation(self, turns: list[ConversationTurn], keep_recent: int = 3) -> list[ConversationTurn]:
		return compaction.summarize_conversation(turns, keep_recent)

	def truncate_to_fit(self, text: str, max_tokens: int) -> TruncationResult:
		return compaction.truncate_to_fit(text, max_tokens, self.estimate_tokens)

	def truncate_file(self, text: str, max_chars: int, path: Optional[str] = None) -> str:
		return compaction.truncate_file(text, max_chars, path)
