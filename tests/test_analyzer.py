"""
Tests for the complexity analyzer.

Tests:
- Scoring of small and large requirements
- Level thresholds and recommendations
- Token estimation monotonicity
- Degradation on empty, noisy and huge input
- Injected pattern tables
"""

import re
from dataclasses import replace

import pytest

from phase_guard.analyzer import (
	DEFAULT_PATTERNS,
	AnalyzerConfig,
	ComplexityAnalyzer,
	ComplexityLevel,
	ComplexityMetrics,
	Recommendation,
	_wp,
)

from .helpers import AUTH_REQUIREMENT, TYPO_REQUIREMENT


@pytest.fixture
def analyzer():
	return ComplexityAnalyzer()


class TestAnalyzeRequirements:
	"""End-to-end analysis of realistic requirements."""

	@pytest.mark.asyncio
	async def test_trivial_fix_is_low(self, analyzer):
		"""A one-line fix should proceed in a single session."""
		score = await analyzer.analyze(TYPO_REQUIREMENT)

		assert score.level == ComplexityLevel.LOW
		assert score.recommendation == Recommendation.PROCEED
		assert score.suggested_phase_count is None
		assert score.needs_split is False

	@pytest.mark.asyncio
	async def test_auth_system_needs_split(self, analyzer):
		"""A bulleted multi-feature auth request should be split."""
		score = await analyzer.analyze(AUTH_REQUIREMENT)

		assert score.level in (ComplexityLevel.HIGH, ComplexityLevel.EXTREME)
		assert score.recommendation == Recommendation.SPLIT_PHASES
		assert score.metrics.feature_count >= 4
		assert "dashboard" in score.metrics.scope_indicators
		assert "security-concerns" in score.metrics.risk_factors
		assert score.suggested_phase_count is not None
		assert score.suggested_phase_count >= 1

	@pytest.mark.asyncio
	async def test_analyze_is_idempotent(self, analyzer):
		"""Analyzing the same text twice yields an identical score."""
		first = await analyzer.analyze(AUTH_REQUIREMENT)
		second = await analyzer.analyze(AUTH_REQUIREMENT)
		assert first == second

	def test_explanation_format(self, analyzer):
		"""The explanation starts with the score line and ends with a recommendation."""
		score = analyzer.analyze_sync(AUTH_REQUIREMENT)
		lines = score.explanation.splitlines()

		assert lines[0] == f"Complexity Score: {score.score}/100 ({score.level.name})"
		assert "Analysis found:" in lines
		assert lines[-1].startswith("Recommendation: Split into")

	def test_to_dict_is_json_friendly(self, analyzer):
		"""to_dict should flatten enums and tuples."""
		data = analyzer.analyze_sync(AUTH_REQUIREMENT).to_dict()
		assert data["level"] in ("high", "extreme")
		assert data["recommendation"] == "split_phases"
		assert isinstance(data["metrics"]["features"], list)


class TestDegradedInput:
	"""The analyzer never fails on malformed input."""

	def test_empty_text(self, analyzer):
		score = analyzer.analyze_sync("")
		assert score.score == 0
		assert score.estimated_tokens == 0
		assert score.metrics.estimated_file_count == 0
		assert score.recommendation == Recommendation.PROCEED

	def test_whitespace_only(self, analyzer):
		assert analyzer.analyze_sync("   \n\t ").score == 0

	def test_special_characters(self, analyzer):
		score = analyzer.analyze_sync("!@#$%^&*()_+{}|:<>?~`-=[]\\;',./" * 10)
		assert 0 <= score.score <= 100
		assert score.estimated_tokens >= 0

	def test_huge_text_is_capped(self, analyzer):
		"""Very large input still produces a bounded score."""
		text = "Build a full-stack app with a react frontend, postgres database and docker deploy. " * 8000
		score = analyzer.analyze_sync(text)

		assert score.score <= 100
		assert score.metrics.estimated_file_count <= 50
		assert score.recommendation == Recommendation.REQUIRE_CLARIFICATION


class TestScoring:
	"""Score and level are pure functions of the metrics."""

	def test_level_thresholds(self, analyzer):
		assert analyzer.determine_level(0) == ComplexityLevel.LOW
		assert analyzer.determine_level(20) == ComplexityLevel.LOW
		assert analyzer.determine_level(21) == ComplexityLevel.MEDIUM
		assert analyzer.determine_level(40) == ComplexityLevel.MEDIUM
		assert analyzer.determine_level(41) == ComplexityLevel.HIGH
		assert analyzer.determine_level(70) == ComplexityLevel.HIGH
		assert analyzer.determine_level(71) == ComplexityLevel.EXTREME

	def test_custom_thresholds(self):
		analyzer = ComplexityAnalyzer(AnalyzerConfig(low_threshold=5, medium_threshold=10, high_threshold=15))
		assert analyzer.determine_level(6) == ComplexityLevel.MEDIUM
		assert analyzer.determine_level(16) == ComplexityLevel.EXTREME

	def test_score_is_capped_at_100(self, analyzer):
		metrics = ComplexityMetrics(
			feature_count=50,
			estimated_file_count=50,
			text_length=100000,
			scope_weight=100,
			risk_weight=100,
		)
		assert analyzer.calculate_score(metrics) == 100

	def test_score_never_decreases_with_more_features(self, analyzer):
		base = ComplexityMetrics(feature_count=1, estimated_file_count=2, text_length=300)
		previous = analyzer.calculate_score(base)
		for count in range(2, 20):
			current = analyzer.calculate_score(replace(base, feature_count=count))
			assert current >= previous
			previous = current

	def test_extra_domains_add_points(self, analyzer):
		base = ComplexityMetrics(feature_count=1, estimated_file_count=2, text_length=300)
		multi = replace(base, technical_domains=("frontend", "backend", "database"))
		assert analyzer.calculate_score(multi) == analyzer.calculate_score(base) + 6

	def test_file_count_is_clamped(self, analyzer):
		assert analyzer.estimate_file_count(0, 0) == 1
		assert analyzer.estimate_file_count(100, 10) == 50
		assert analyzer.estimate_file_count(1, 0) == 2  # 1.5 rounds half up

	def test_context_files_raise_file_estimate(self, analyzer):
		files = [f"src/file_{i}.py" for i in range(30)]
		assert analyzer.estimate_file_count(2, 1, files) == 9  # 3 + 3 + 3.0


class TestTokenEstimation:
	"""Token estimates grow with every input dimension."""

	@pytest.fixture
	def base(self):
		return ComplexityMetrics(feature_count=2, estimated_file_count=3, text_length=400)

	def test_non_negative(self, analyzer):
		empty = ComplexityMetrics(feature_count=0, estimated_file_count=0, text_length=0)
		assert analyzer.estimate_tokens(empty) == 0

	@pytest.mark.parametrize("change", [
		{"text_length": 800},
		{"feature_count": 3},
		{"technical_domains": ("frontend",)},
		{"risk_factors": ("security-concerns",)},
		{"scope_indicators": ("dashboard",)},
	])
	def test_strictly_increasing(self, analyzer, base, change):
		assert analyzer.estimate_tokens(replace(base, **change)) > analyzer.estimate_tokens(base)

	def test_known_value(self, analyzer, base):
		# ceil(400 / 4) + 3*500 + 2*1000
		assert analyzer.estimate_tokens(base) == 100 + 1500 + 2000


class TestRecommendation:
	def test_over_five_phases_requires_clarification(self, analyzer):
		result = analyzer.determine_recommendation(ComplexityLevel.LOW, 150001)
		assert result == Recommendation.REQUIRE_CLARIFICATION

	def test_high_level_splits(self, analyzer):
		assert analyzer.determine_recommendation(ComplexityLevel.HIGH, 100) == Recommendation.SPLIT_PHASES

	def test_over_one_phase_splits(self, analyzer):
		assert analyzer.determine_recommendation(ComplexityLevel.MEDIUM, 30001) == Recommendation.SPLIT_PHASES

	def test_small_medium_proceeds(self, analyzer):
		assert analyzer.determine_recommendation(ComplexityLevel.MEDIUM, 30000) == Recommendation.PROCEED

	def test_suggest_phase_count(self, analyzer):
		assert analyzer.suggest_phase_count(1) == 1
		assert analyzer.suggest_phase_count(30000) == 1
		assert analyzer.suggest_phase_count(30001) == 2

	def test_zero_budget_suggests_one_phase(self):
		analyzer = ComplexityAnalyzer(AnalyzerConfig(tokens_per_phase=0))
		assert analyzer.suggest_phase_count(5000) == 1


class TestFeatureExtraction:
	def test_bullets_and_numbers(self, analyzer):
		features = analyzer.extract_features("- user profiles\n- billing history\n1. export to csv\n")
		assert "user profiles" in features
		assert "billing history" in features
		assert "export to csv" in features

	def test_features_are_distinct(self, analyzer):
		features = analyzer.extract_features("- search page\n- search page\n")
		assert features.count("search page") == 1

	def test_listed_items_marker(self, analyzer):
		features = analyzer.extract_features("Support csv, json and xml exports")
		assert "multiple-listed-items" in features

	def test_noise_words_are_dropped(self, analyzer):
		assert "these" not in analyzer.extract_features("- these\n")


class TestInjectedPatterns:
	def test_custom_registry_does_not_touch_defaults(self):
		"""A per-mission registry overrides tables without leaking into other analyzers."""
		custom = replace(
			DEFAULT_PATTERNS,
			risk_factors=DEFAULT_PATTERNS.risk_factors + (_wp("payments", r"\bstripe\b", 9),),
		)
		text = "Add stripe checkout"

		custom_score = ComplexityAnalyzer(patterns=custom).analyze_sync(text)
		default_score = ComplexityAnalyzer().analyze_sync(text)

		assert "payments" in custom_score.metrics.risk_factors
		assert "payments" not in default_score.metrics.risk_factors
		assert custom_score.score == default_score.score + 9

	def test_default_patterns_are_compiled(self):
		for pattern in DEFAULT_PATTERNS.scope_indicators + DEFAULT_PATTERNS.risk_factors:
			assert isinstance(pattern.pattern, re.Pattern)
