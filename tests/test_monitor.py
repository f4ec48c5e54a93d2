"""Tests for the token budget monitor."""

import pytest

from phase_guard.budget.monitor import (
	BudgetAction,
	BudgetAlert,
	BudgetStatus,
	MonitorConfig,
	TokenBudgetMonitor,
	UsageType,
)


def _monitor(total: int = 1000, reserve: int = 0, **kwargs) -> TokenBudgetMonitor:
	return TokenBudgetMonitor(MonitorConfig(total_budget=total, wrap_up_reserve=reserve, **kwargs))


def _collect_alerts(monitor: TokenBudgetMonitor) -> list[BudgetAlert]:
	alerts = []
	monitor.events.subscribe(alerts.append, BudgetAlert)
	return alerts


class TestBudgetSnapshot:
	def test_fresh_budget_is_healthy(self):
		budget = _monitor().get_budget()
		assert budget.status == BudgetStatus.HEALTHY
		assert budget.recommended_action == BudgetAction.CONTINUE
		assert budget.used_tokens == 0
		assert budget.remaining_tokens == 1000

	def test_used_plus_remaining_equals_total(self):
		monitor = _monitor()
		for tokens in (100, 250, 300, 349):
			monitor.track_usage(UsageType.PROMPT, tokens, "test")
			budget = monitor.get_budget()
			assert budget.used_tokens + budget.remaining_tokens == budget.total_budget

	def test_overspend_clamps_remaining_and_percent(self):
		monitor = _monitor()
		monitor.track_usage(UsageType.RESPONSE, 1500, "test")
		budget = monitor.get_budget()

		assert budget.remaining_tokens == 0
		assert budget.percent_used == 100.0
		assert budget.status == BudgetStatus.EXHAUSTED
		assert budget.recommended_action == BudgetAction.STOP

	def test_percent_is_floored_to_one_decimal(self):
		monitor = _monitor(total=3000)
		monitor.track_usage(UsageType.PROMPT, 2999, "test")
		budget = monitor.get_budget()
		assert budget.percent_used == 99.9
		assert budget.status == BudgetStatus.CRITICAL

	def test_zero_budget_is_always_exhausted(self):
		monitor = _monitor(total=0)
		budget = monitor.get_budget()
		assert budget.status == BudgetStatus.EXHAUSTED
		assert budget.percent_used == 100.0
		assert monitor.should_trigger_phase_boundary() is True

	def test_negative_budget_degrades_to_zero(self):
		monitor = _monitor(total=-100)
		assert monitor.config.total_budget == 0
		assert monitor.get_budget().status == BudgetStatus.EXHAUSTED

	def test_shared_config_is_not_mutated(self):
		config = MonitorConfig(total_budget=-100, wrap_up_reserve=500)
		first = TokenBudgetMonitor(config)
		second = TokenBudgetMonitor(config)

		second.reset(new_budget=5000)

		assert config.total_budget == -100
		assert first.config.total_budget == 0
		assert second.config.total_budget == 5000
		assert first.config is not config

	def test_status_actions(self):
		monitor = _monitor()
		monitor.track_usage(UsageType.PROMPT, 700, "test")
		assert monitor.get_budget().recommended_action == BudgetAction.WRAP_UP
		monitor.track_usage(UsageType.PROMPT, 200, "test")
		assert monitor.get_budget().recommended_action == BudgetAction.CHECKPOINT


class TestTracking:
	def test_negative_tokens_are_recorded_as_zero(self):
		monitor = _monitor()
		event = monitor.track_usage(UsageType.PROMPT, -50, "test")
		assert event.tokens == 0
		assert monitor.used_tokens == 0

	def test_events_are_tagged_with_phase(self):
		monitor = _monitor()
		monitor.set_phase("phase-2")
		event = monitor.track_prompt("hello there")
		assert event.phase_id == "phase-2"
		assert event.type == UsageType.PROMPT

	def test_typed_helpers(self):
		monitor = _monitor(total=100000)
		monitor.track_prompt("p" * 35)
		monitor.track_response("r" * 35)
		monitor.track_tool_call("read_file", "a" * 35)
		monitor.track_tool_result("read_file", "b" * 35)
		monitor.track_context("c" * 35)
		monitor.track_system_prompt("s" * 35)

		stats = monitor.get_statistics()
		assert stats["event_count"] == 6
		assert all(tokens == 10 for tokens in stats["by_type"].values())
		assert stats["by_source"]["tool:read_file"] == 10
		assert stats["by_source"]["tool-result:read_file"] == 10

	def test_estimate_tokens(self):
		monitor = _monitor()
		assert monitor.estimate_tokens("") == 0
		assert monitor.estimate_tokens("abcdefg") == 2
		assert monitor.estimate_tokens("a b") == 1

	def test_whitespace_is_cheaper(self):
		monitor = _monitor()
		assert monitor.estimate_tokens(" " * 80) < monitor.estimate_tokens("x" * 80)

	def test_history_limit(self):
		monitor = _monitor()
		for i in range(5):
			monitor.track_usage(UsageType.CONTEXT, i, f"source-{i}")
		assert len(monitor.get_history()) == 5
		assert [e.source for e in monitor.get_history(2)] == ["source-3", "source-4"]
		assert monitor.get_history(0) == []

	def test_get_budget_with_estimate_does_not_spend(self):
		monitor = _monitor()
		projected = monitor.get_budget_with_estimate(950)
		assert projected.status == BudgetStatus.CRITICAL
		assert monitor.used_tokens == 0

	def test_can_afford_respects_reserve(self):
		monitor = _monitor(reserve=200)
		assert monitor.can_afford(800) is True
		assert monitor.can_afford(801) is False


class TestAlerts:
	def test_one_alert_per_level(self):
		"""Crossing warning, critical and exhausted alerts once each."""
		monitor = _monitor()
		alerts = _collect_alerts(monitor)

		monitor.track_usage(UsageType.PROMPT, 700, "test")
		monitor.track_usage(UsageType.PROMPT, 10, "test")
		monitor.track_usage(UsageType.PROMPT, 200, "test")
		monitor.track_usage(UsageType.PROMPT, 5, "test")
		monitor.track_usage(UsageType.PROMPT, 100, "test")
		monitor.track_usage(UsageType.PROMPT, 100, "test")

		assert [a.status for a in alerts] == [
			BudgetStatus.WARNING,
			BudgetStatus.CRITICAL,
			BudgetStatus.EXHAUSTED,
		]

	def test_jump_straight_to_exhausted(self):
		monitor = _monitor()
		alerts = _collect_alerts(monitor)
		monitor.track_usage(UsageType.RESPONSE, 5000, "test")
		assert [a.status for a in alerts] == [BudgetStatus.EXHAUSTED]

	def test_alert_content(self):
		monitor = _monitor()
		monitor.set_phase("phase-1")
		alerts = _collect_alerts(monitor)
		monitor.track_usage(UsageType.PROMPT, 950, "test")

		alert = alerts[0]
		assert alert.status == BudgetStatus.CRITICAL
		assert alert.phase_id == "phase-1"
		assert alert.budget.used_tokens == 950
		assert "Create a checkpoint now" in alert.suggestions

	def test_reset_does_not_alert(self):
		monitor = _monitor()
		monitor.track_usage(UsageType.PROMPT, 800, "test")
		alerts = _collect_alerts(monitor)

		monitor.reset(new_budget=2000, phase_id="phase-2")

		assert alerts == []
		assert monitor.used_tokens == 0
		assert monitor.get_history() == []
		assert monitor.phase_id == "phase-2"
		assert monitor.get_budget().total_budget == 2000

	def test_alerts_fire_again_after_reset(self):
		monitor = _monitor()
		alerts = _collect_alerts(monitor)
		monitor.track_usage(UsageType.PROMPT, 750, "test")
		monitor.reset()
		monitor.track_usage(UsageType.PROMPT, 750, "test")
		assert [a.status for a in alerts] == [BudgetStatus.WARNING, BudgetStatus.WARNING]

	def test_restore_usage_is_silent(self):
		monitor = _monitor()
		alerts = _collect_alerts(monitor)

		event = monitor.restore_usage(800)

		assert alerts == []
		assert event.source == "restored"
		assert monitor.used_tokens == 800
		assert monitor.get_budget().status == BudgetStatus.WARNING

		monitor.track_usage(UsageType.PROMPT, 10, "test")
		assert alerts == []

	def test_publish_status(self):
		monitor = _monitor()
		alerts = _collect_alerts(monitor)
		assert monitor.publish_status() is None

		monitor.restore_usage(950)
		alert = monitor.publish_status()

		assert alert.status == BudgetStatus.CRITICAL
		assert alerts == [alert]


class TestPhaseBoundary:
	def test_last_token_flips_boundary(self):
		"""Spending the final token moves to exhausted and trips the boundary in the same call."""
		monitor = TokenBudgetMonitor(MonitorConfig(
			total_budget=1000,
			warning_threshold=99.95,
			critical_threshold=100.0,
			wrap_up_reserve=0,
		))
		monitor.track_usage(UsageType.PROMPT, 999, "test")
		assert monitor.get_budget().status == BudgetStatus.HEALTHY
		assert monitor.should_trigger_phase_boundary() is False

		monitor.track_usage(UsageType.PROMPT, 1, "test")
		assert monitor.get_budget().status == BudgetStatus.EXHAUSTED
		assert monitor.should_trigger_phase_boundary() is True

	def test_status_trigger(self):
		monitor = _monitor(reserve=0)
		monitor.track_usage(UsageType.PROMPT, 899, "test")
		assert monitor.should_trigger_phase_boundary() is False
		monitor.track_usage(UsageType.PROMPT, 1, "test")
		assert monitor.get_budget().status == BudgetStatus.CRITICAL
		assert monitor.should_trigger_phase_boundary() is True

	def test_reserve_trigger(self):
		"""Inside the wrap-up reserve the boundary trips even at warning status."""
		monitor = _monitor(total=10000, reserve=2000)
		monitor.track_usage(UsageType.PROMPT, 7900, "test")
		assert monitor.should_trigger_phase_boundary() is False

		monitor.track_usage(UsageType.PROMPT, 600, "test")
		assert monitor.get_budget().status == BudgetStatus.WARNING
		assert monitor.should_trigger_phase_boundary() is True


class TestReporting:
	def test_statistics_on_empty_monitor(self):
		stats = _monitor().get_statistics()
		assert stats["total_tokens"] == 0
		assert stats["average_per_event"] == 0.0
		assert stats["peak_event"] == 0

	def test_report_lists_usage(self):
		monitor = _monitor()
		monitor.track_usage(UsageType.TOOL_RESULT, 300, "tool-result:grep")
		report = monitor.generate_report()

		assert report.startswith("## Token Budget Report")
		assert "| Used | 300 (30.0%) |" in report
		assert "- tool_result: 300" in report
		assert "- tool-result:grep: 300" in report

	@pytest.mark.parametrize("keep", [0, 2])
	def test_summarize_delegates(self, keep):
		from phase_guard.budget.compaction import ConversationTurn

		turns = [ConversationTurn(role="user", content=f"message {i}") for i in range(6)]
		result = _monitor().summarize_conversation(turns, keep_recent=keep)
		assert len(result) == keep + 1
		assert result[0].role == "system"
