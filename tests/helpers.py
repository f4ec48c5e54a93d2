"""Shared test fixtures and helpers for phase-guard tests."""

from typing import Callable
from unittest.mock import MagicMock

from phase_guard.analyzer import ComplexityLevel, ComplexityMetrics, ComplexityScore, Recommendation
from phase_guard.phases.models import Phase, PhasePlan, PlanningStrategy

TYPO_REQUIREMENT = "Fix the typo in the README file."

AUTH_REQUIREMENT = """Build an authentication system for our web app:
- Email and password login with session management
- OAuth login with Google and GitHub
- Role-based access control (RBAC) for admins and editors
- Password reset flow via email
- Two-factor authentication with TOTP
- Admin dashboard to manage users and roles
"""


def capture_tools(config: MagicMock, register_fn: Callable) -> dict:
	"""Register tools on a mock MCP and return the captured tool functions.

	Args:
		config: Config object to pass to the registration function
		register_fn: The registration function (e.g., register_phase_tools)

	Returns:
		Dict mapping tool name to the tool function
	"""
	captured = {}

	class MockMCP:
		def tool(self):
			def decorator(fn):
				captured[fn.__name__] = fn
				return fn
			return decorator

	register_fn(MockMCP(), config)
	return captured


def make_score(
	score: int = 55,
	level: ComplexityLevel = ComplexityLevel.HIGH,
	estimated_tokens: int = 45000,
	recommendation: Recommendation = Recommendation.SPLIT_PHASES,
	features: tuple[str, ...] = (),
	domains: tuple[str, ...] = (),
	risks: tuple[str, ...] = (),
	scope: tuple[str, ...] = (),
	suggested_phase_count: int | None = None,
) -> ComplexityScore:
	"""Create a ComplexityScore without running the analyzer."""
	metrics = ComplexityMetrics(
		feature_count=len(features),
		estimated_file_count=max(1, len(features)),
		text_length=500,
		features=features,
		scope_indicators=scope,
		risk_factors=risks,
		technical_domains=domains,
	)
	return ComplexityScore(
		level=level,
		score=score,
		estimated_tokens=estimated_tokens,
		recommendation=recommendation,
		explanation=f"Complexity Score: {score}/100 ({level.name})",
		metrics=metrics,
		suggested_phase_count=suggested_phase_count,
	)


def make_phases(count: int = 3, estimated_tokens: int = 10000) -> list[Phase]:
	"""Create a chain of phases where each depends on the previous one."""
	return [
		Phase(
			id=f"phase-{i + 1}",
			order=i,
			name=f"Phase {i + 1}",
			description=f"Do part {i + 1} of the work",
			requirements=[f"Requirement {i + 1}"],
			deliverables=[f"Deliverable {i + 1}"],
			verification_criteria=["Code compiles/transpiles without errors"],
			estimated_tokens=estimated_tokens,
			dependencies=[f"phase-{i}"] if i > 0 else [],
		)
		for i in range(count)
	]


def make_plan(count: int = 3, requirement: str = "Build the thing") -> PhasePlan:
	"""Create a PhasePlan with realistic content for testing."""
	phases = make_phases(count)
	return PhasePlan(
		original_requirement=requirement,
		phases=phases,
		execution_order=[p.id for p in phases],
		estimated_total_tokens=sum(p.estimated_tokens for p in phases),
		strategy_used=PlanningStrategy.FEATURE_BASED,
		complexity_score=55,
	)
