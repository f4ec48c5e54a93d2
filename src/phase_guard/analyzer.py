"""
Complexity analyzer - scores a free-text requirement before execution.

The score is a lexical heuristic: feature phrases, scope indicators, risk
factors and technical domains are matched against weighted pattern tables,
then combined into a 0-100 score, a token estimate, and a recommendation
(proceed in one session, split into phases, or ask for clarification).
"""

import math
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional


class ComplexityLevel(str, Enum):
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	EXTREME = "extreme"


class Recommendation(str, Enum):
	PROCEED = "proceed"
	SPLIT_PHASES = "split_phases"
	REQUIRE_CLARIFICATION = "require_clarification"


@dataclass(frozen=True)
class WeightedPattern:
	"""A labelled regex that contributes a fixed number of points when it matches."""
	label: str
	pattern: re.Pattern
	weight: int = 0

	def matches(self, text: str) -> bool:
		return self.pattern.search(text) is not None


def _wp(label: str, regex: str, weight: int = 0) -> WeightedPattern:
	return WeightedPattern(label=label, pattern=re.compile(regex, re.IGNORECASE), weight=weight)


@dataclass(frozen=True)
class PatternRegistry:
	"""Immutable pattern tables used by the analyzer.

	Pass a custom registry to ComplexityAnalyzer to override the tables for
	one mission without touching DEFAULT_PATTERNS.
	"""
	scope_indicators: tuple[WeightedPattern, ...]
	risk_factors: tuple[WeightedPattern, ...]
	technical_domains: tuple[WeightedPattern, ...]
	feature_templates: tuple[re.Pattern, ...]
	listed_items: re.Pattern
	noise_words: frozenset[str]


DEFAULT_PATTERNS = PatternRegistry(
	scope_indicators=(
		_wp("full-stack", r"\b(full[- ]?stack|end[- ]?to[- ]?end)\b", 15),
		_wp("complete-app", r"\b(complete|entire|whole)\s+(app|application|system|platform)\b", 15),
		_wp("from-scratch", r"\b(from\s+scratch|ground\s+up|greenfield)\b", 12),
		_wp("microservices", r"\b(microservices?|distributed)\b", 10),
		_wp("auth-system", r"\b(authentication|auth)\s*(and|&|\+|,)?\s*(authorization|authz)\b", 8),
		_wp("crud-operations", r"\b(crud|create,?\s*read,?\s*update,?\s*delete)\b", 5),
		_wp("api-layer", r"\b(api|rest|graphql)\s*(endpoints?|server|layer)\b", 6),
		_wp("dashboard", r"\b(dashboard|admin\s*panel|control\s*panel)\b", 7),
		_wp("real-time", r"\b(real[- ]?time|websocket|live\s+update)\b", 8),
		_wp("multi-platform", r"\b(mobile|responsive|cross[- ]?platform)\b", 6),
	),
	risk_factors=(
		_wp("database-migration", r"\b(migration|migrate|upgrade)\s*(database|db|schema|data)\b", 10),
		_wp("major-refactor", r"\b(refactor|rewrite|restructure)\b", 8),
		_wp("security-concerns", r"\b(security|encrypt|ssl|https|oauth|jwt)\b", 6),
		_wp("performance-optimization", r"\b(performance|optimize|scale|caching)\b", 5),
		_wp("testing-requirements", r"\b(test|testing|tdd|coverage|e2e|integration\s*test)\b", 4),
		_wp("deployment-infra", r"\b(deploy|ci/cd|docker|kubernetes|aws|azure|gcp)\b", 6),
		_wp("external-integrations", r"\b(third[- ]?party|external\s*api|integration)\b", 5),
		_wp("legacy-concerns", r"\b(legacy|backward[- ]?compatible|deprecat\w*)\b", 7),
		_wp("concurrency", r"\b(concurrent|parallel|async|thread)\b", 5),
		_wp("internationalization", r"\b(i18n|internationali[sz]ation|locali[sz]ation|l10n)\b", 4),
	),
	technical_domains=(
		_wp("frontend", r"\b(frontend|front[- ]?end|ui|ux|react|vue|angular|svelte)\b"),
		_wp("backend", r"\b(backend|back[- ]?end|server|api|node|express|fastify)\b"),
		_wp("database", r"\b(database|db|sql|nosql|postgres|mysql|mongo|redis)\b"),
		_wp("mobile", r"\b(mobile|ios|android|react[- ]?native|flutter)\b"),
		_wp("devops", r"\b(devops|infrastructure|cloud|aws|azure|gcp)\b"),
		_wp("ml-ai", r"\b(machine\s*learning|ml|ai|neural|model)\b"),
		_wp("blockchain", r"\b(blockchain|web3|smart\s*contract|ethereum)\b"),
	),
	feature_templates=(
		# Action verbs: "build a user profile page."
		re.compile(
			r"\b(?:create|build|implement|add|develop|design)\s+(?:a\s+)?(?P<phrase>[\w\s]{1,99}?)(?:\.|,|$|\band\b)",
			re.IGNORECASE | re.MULTILINE,
		),
		# "<something> feature / module / page"
		re.compile(
			r"\b(?P<phrase>[\w ]{1,99}?)\s+(?:feature|functionality|module|component|page|screen|view)\b",
			re.IGNORECASE,
		),
		# Bulleted and numbered list items
		re.compile(r"^\s*[-*•]\s*(?P<phrase>.+)$", re.MULTILINE),
		re.compile(r"^\s*\d+[.)\s]+(?P<phrase>.+)$", re.MULTILINE),
		# Requirement phrasing
		re.compile(
			r"should\s+(?:be\s+able\s+to\s+)?(?P<phrase>[\w\s]{1,99}?)(?:\.|,|$)",
			re.IGNORECASE | re.MULTILINE,
		),
		re.compile(
			r"(?:needs?|must|shall)\s+(?:to\s+)?(?P<phrase>[\w\s]{1,99}?)(?:\.|,|$)",
			re.IGNORECASE | re.MULTILINE,
		),
	),
	listed_items=re.compile(r"\b(\w+)(?:\s*,\s*|\s+and\s+)(\w+)(?:\s*,\s*|\s+and\s+)(\w+)\b"),
	noise_words=frozenset({
		"the", "this", "that", "with", "from", "they", "have", "been", "some",
		"them", "these", "those", "then", "than", "into", "also", "just", "only",
		"such", "like", "well", "back", "even", "still", "able", "following",
		"something", "anything", "everything",
	}),
)


@dataclass
class AnalyzerConfig:
	"""Tunable constants for scoring and token estimation."""
	tokens_per_phase: int = 30000
	low_threshold: int = 20
	medium_threshold: int = 40
	high_threshold: int = 70
	chars_per_token: int = 4

	# Per-category token overheads
	tokens_per_file: int = 500
	tokens_per_feature: int = 1000
	tokens_per_domain: int = 2000
	tokens_per_risk: int = 1500
	tokens_per_scope: int = 3000

	# Feature extraction only looks at this many characters
	max_scan_chars: int = 50000


@dataclass(frozen=True)
class ComplexityMetrics:
	feature_count: int
	estimated_file_count: int
	text_length: int
	features: tuple[str, ...] = ()
	scope_indicators: tuple[str, ...] = ()
	risk_factors: tuple[str, ...] = ()
	technical_domains: tuple[str, ...] = ()
	scope_weight: int = 0
	risk_weight: int = 0


@dataclass(frozen=True)
class ComplexityScore:
	level: ComplexityLevel
	score: int
	estimated_tokens: int
	recommendation: Recommendation
	explanation: str
	metrics: ComplexityMetrics
	suggested_phase_count: Optional[int] = None

	@property
	def needs_split(self) -> bool:
		return self.recommendation != Recommendation.PROCEED

	def to_dict(self) -> dict:
		data = asdict(self)
		data["level"] = self.level.value
		data["recommendation"] = self.recommendation.value
		for key in ("features", "scope_indicators", "risk_factors", "technical_domains"):
			data["metrics"][key] = list(data["metrics"][key])
		return data


def _round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


class ComplexityAnalyzer:
	"""Scores requirement text and recommends single or phased execution."""

	def __init__(
		self,
		config: Optional[AnalyzerConfig] = None,
		patterns: PatternRegistry = DEFAULT_PATTERNS,
	):
		self.config = config or AnalyzerConfig()
		self.patterns = patterns

	async def analyze(
		self,
		requirement: str,
		context_files: Optional[list[str]] = None,
	) -> ComplexityScore:
		"""
		Analyze a requirement.

		Args:
			requirement: Free-text work request
			context_files: Files already known to be involved, if any

		Returns:
			ComplexityScore with level, token estimate, and recommendation
		"""
		return self.analyze_sync(requirement, context_files)

	def analyze_sync(
		self,
		requirement: str,
		context_files: Optional[list[str]] = None,
	) -> ComplexityScore:
		text = requirement or ""
		if not text.strip():
			return self._empty_score()

		metrics = self.extract_metrics(text, context_files)
		score = self.calculate_score(metrics)
		level = self.determine_level(score)
		estimated_tokens = self.estimate_tokens(metrics)
		recommendation = self.determine_recommendation(level, estimated_tokens)

		suggested = None
		if recommendation == Recommendation.SPLIT_PHASES:
			suggested = self.suggest_phase_count(estimated_tokens)

		return ComplexityScore(
			level=level,
			score=score,
			estimated_tokens=estimated_tokens,
			recommendation=recommendation,
			explanation=self._explain(metrics, score, level, estimated_tokens, recommendation, suggested),
			metrics=metrics,
			suggested_phase_count=suggested,
		)

	def extract_metrics(
		self,
		text: str,
		context_files: Optional[list[str]] = None,
	) -> ComplexityMetrics:
		features = self.extract_features(text)

		scope = [p for p in self.patterns.scope_indicators if p.matches(text)]
		risks = [p for p in self.patterns.risk_factors if p.matches(text)]
		domains = [p.label for p in self.patterns.technical_domains if p.matches(text)]

		return ComplexityMetrics(
			feature_count=len(features),
			estimated_file_count=self.estimate_file_count(len(features), len(domains), context_files),
			text_length=len(text),
			features=tuple(features),
			scope_indicators=tuple(p.label for p in scope),
			risk_factors=tuple(p.label for p in risks),
			technical_domains=tuple(domains),
			scope_weight=sum(p.weight for p in scope),
			risk_weight=sum(p.weight for p in risks),
		)

	def extract_features(self, text: str) -> list[str]:
		"""Collect distinct requested capabilities, in first-seen order."""
		scan = text[:self.config.max_scan_chars]
		seen: dict[str, None] = {}

		for template in self.patterns.feature_templates:
			for match in template.finditer(scan):
				phrase = (match.group("phrase") or "").strip().lower()
				if 3 < len(phrase) < 100 and phrase not in self.patterns.noise_words:
					seen.setdefault(phrase, None)

		if self.patterns.listed_items.search(scan):
			seen.setdefault("multiple-listed-items", None)

		return list(seen)

	def estimate_file_count(
		self,
		feature_count: int,
		domain_count: int,
		context_files: Optional[list[str]] = None,
	) -> int:
		estimate = feature_count * 1.5 + domain_count * 3
		if context_files:
			estimate += min(len(context_files) * 0.1, 10)
		return max(1, min(50, _round_half_up(estimate)))

	def calculate_score(self, metrics: ComplexityMetrics) -> int:
		score = 0
		score += min(metrics.feature_count * 3, 30)
		score += min(metrics.estimated_file_count * 2, 20)
		score += metrics.scope_weight
		score += metrics.risk_weight
		score += min(metrics.text_length // 100, 20)
		if len(metrics.technical_domains) > 1:
			score += (len(metrics.technical_domains) - 1) * 3
		return max(0, min(100, score))

	def determine_level(self, score: int) -> ComplexityLevel:
		if score <= self.config.low_threshold:
			return ComplexityLevel.LOW
		if score <= self.config.medium_threshold:
			return ComplexityLevel.MEDIUM
		if score <= self.config.high_threshold:
			return ComplexityLevel.HIGH
		return ComplexityLevel.EXTREME

	def estimate_tokens(self, metrics: ComplexityMetrics) -> int:
		cfg = self.config
		tokens = math.ceil(metrics.text_length / cfg.chars_per_token)
		tokens += metrics.estimated_file_count * cfg.tokens_per_file
		tokens += metrics.feature_count * cfg.tokens_per_feature
		tokens += len(metrics.technical_domains) * cfg.tokens_per_domain
		tokens += len(metrics.risk_factors) * cfg.tokens_per_risk
		tokens += len(metrics.scope_indicators) * cfg.tokens_per_scope
		return tokens

	def determine_recommendation(self, level: ComplexityLevel, estimated_tokens: int) -> Recommendation:
		per_phase = self.config.tokens_per_phase
		if estimated_tokens > per_phase * 5:
			return Recommendation.REQUIRE_CLARIFICATION
		if level in (ComplexityLevel.HIGH, ComplexityLevel.EXTREME):
			return Recommendation.SPLIT_PHASES
		if estimated_tokens > per_phase:
			return Recommendation.SPLIT_PHASES
		return Recommendation.PROCEED

	def suggest_phase_count(self, estimated_tokens: int) -> int:
		if self.config.tokens_per_phase <= 0:
			return 1
		return max(1, math.ceil(estimated_tokens / self.config.tokens_per_phase))

	def _empty_score(self) -> ComplexityScore:
		metrics = ComplexityMetrics(feature_count=0, estimated_file_count=0, text_length=0)
		return ComplexityScore(
			level=ComplexityLevel.LOW,
			score=0,
			estimated_tokens=0,
			recommendation=Recommendation.PROCEED,
			explanation="Complexity Score: 0/100 (LOW)\n\nEmpty requirement, nothing to analyze.",
			metrics=metrics,
		)

	def _explain(
		self,
		metrics: ComplexityMetrics,
		score: int,
		level: ComplexityLevel,
		estimated_tokens: int,
		recommendation: Recommendation,
		suggested: Optional[int],
	) -> str:
		lines = [f"Complexity Score: {score}/100 ({level.name})", "", "Analysis found:"]

		if metrics.feature_count:
			lines.append(f"- {metrics.feature_count} distinct features/requirements")
		if metrics.technical_domains:
			lines.append(f"- Technical domains: {', '.join(metrics.technical_domains)}")
		if metrics.scope_indicators:
			lines.append(f"- Scope indicators: {', '.join(metrics.scope_indicators)}")
		if metrics.risk_factors:
			lines.append(f"- Risk factors: {', '.join(metrics.risk_factors)}")
		lines.append(f"- Estimated {metrics.estimated_file_count} files to create/modify")
		lines.append(f"- Estimated ~{estimated_tokens:,} tokens needed")
		lines.append("")

		if recommendation == Recommendation.REQUIRE_CLARIFICATION:
			lines.append(
				"Recommendation: Requirement is too large to plan reliably. "
				"Clarify or narrow the scope before starting."
			)
		elif recommendation == Recommendation.SPLIT_PHASES:
			lines.append(f"Recommendation: Split into {suggested} phases for reliable execution.")
		else:
			lines.append("Recommendation: Task is manageable in a single session.")

		return "\n".join(lines)
