"""
Phase Planner - splits an over-budget requirement into ordered phases.

Strategies:
- Feature-based: group extracted features (auth, payments, search, ...)
- Domain-based: architectural layers (foundation -> data -> API -> UI -> tests)
- Risk-based: core MVP first, then secondary features, then risk hardening

Whatever the strategy produces is fitted to the target phase count
(merge adjacent chunks or split the largest) and token estimates are
spread so that no phase exceeds the per-phase budget.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ..analyzer import ComplexityLevel, ComplexityMetrics, ComplexityScore
from .models import Phase, PhasePlan, PlanningStrategy

logger = logging.getLogger(__name__)

SYNTHETIC_FEATURES = {"multiple-listed-items"}


@dataclass
class PlannerConfig:
	max_tokens_per_phase: int = 30000
	max_features_per_phase: int = 5
	include_verification: bool = True
	preferred_strategy: PlanningStrategy = PlanningStrategy.AUTO


@dataclass(frozen=True)
class LayerDefinition:
	name: str
	description: str
	keywords: tuple[str, ...]
	domains: tuple[str, ...]
	deliverables: tuple[str, ...]
	order: int


LAYERS = (
	LayerDefinition(
		name="Foundation",
		description="Set up project structure, configuration, and shared types.",
		keywords=("setup", "config", "initialize", "scaffold", "structure", "types", "interfaces", "models", "schema"),
		domains=("database", "backend"),
		deliverables=("Project structure", "Shared types and configuration"),
		order=0,
	),
	LayerDefinition(
		name="Data Layer",
		description="Define data models, schemas, and persistence.",
		keywords=("database", "model", "schema", "migration", "entity", "repository", "data"),
		domains=("database",),
		deliverables=("Data models", "Persistence layer"),
		order=1,
	),
	LayerDefinition(
		name="Backend/API",
		description="Implement API endpoints, services, and request handling.",
		keywords=("api", "endpoint", "controller", "service", "backend", "server", "route", "handler"),
		domains=("backend",),
		deliverables=("API endpoints", "Service layer"),
		order=2,
	),
	LayerDefinition(
		name="Business Logic",
		description="Implement validation rules, workflows, and core processing.",
		keywords=("logic", "validation", "process", "workflow", "rule", "calculation"),
		domains=("backend",),
		deliverables=("Business rules", "Validation"),
		order=3,
	),
	LayerDefinition(
		name="Frontend/UI",
		description="Build user-facing components, pages, and forms.",
		keywords=("frontend", "ui", "component", "page", "view", "screen", "form", "display"),
		domains=("frontend",),
		deliverables=("UI components", "Pages and forms"),
		order=4,
	),
	LayerDefinition(
		name="Integration",
		description="Connect components and external services end to end.",
		keywords=("integrate", "connect", "sync", "webhook", "external", "third-party"),
		domains=("backend", "frontend"),
		deliverables=("Connected data flow", "External integrations"),
		order=5,
	),
	LayerDefinition(
		name="Testing & Polish",
		description="Test, fix, and polish the complete feature set.",
		keywords=("test", "testing", "qa", "fix", "polish", "refine", "optimize"),
		domains=("frontend", "backend", "database"),
		deliverables=("Test suite", "Polished feature set"),
		order=6,
	),
)

DEFAULT_LAYER_NAMES = ("Foundation", "Backend/API", "Frontend/UI")

FEATURE_GROUPS = (
	("Authentication", re.compile(r"auth|login|register|password|session|oauth|jwt|token", re.IGNORECASE)),
	("User Management", re.compile(r"user|profile|account|role|permission|admin", re.IGNORECASE)),
	("Data Management", re.compile(r"crud|create|read|update|delete|list|view|edit", re.IGNORECASE)),
	("Search & Filter", re.compile(r"search|filter|sort|query|find", re.IGNORECASE)),
	("Notifications", re.compile(r"notif|email|alert|message|sms|push", re.IGNORECASE)),
	("Payments", re.compile(r"payment|checkout|cart|order|invoice|billing|stripe|paypal", re.IGNORECASE)),
	("Dashboard & Analytics", re.compile(r"dashboard|analytics|report|chart|graph|metric|stat", re.IGNORECASE)),
	("Settings & Configuration", re.compile(r"setting|config|preference|option|customize", re.IGNORECASE)),
	("File Management", re.compile(r"file|upload|download|image|document|media|storage", re.IGNORECASE)),
	("Communication", re.compile(r"chat|comment|forum|discussion|real-?time|websocket", re.IGNORECASE)),
)

CORE_GROUPS = {"Authentication", "User Management", "Data Management"}
LATE_GROUPS = {"Dashboard & Analytics", "Notifications"}


@dataclass
class WorkChunk:
	"""Intermediate unit of work before it becomes a Phase."""
	name: str
	description: str
	items: list[str] = field(default_factory=list)
	deliverables: list[str] = field(default_factory=list)
	domains: list[str] = field(default_factory=list)
	risk_factors: list[str] = field(default_factory=list)
	weight: float = 1.0
	is_verification: bool = False

	def merge(self, other: "WorkChunk") -> "WorkChunk":
		return WorkChunk(
			name=f"{self.name} + {other.name}",
			description=f"{self.description} {other.description}",
			items=self.items + other.items,
			deliverables=self.deliverables + other.deliverables,
			domains=_union(self.domains, other.domains),
			risk_factors=_union(self.risk_factors, other.risk_factors),
			weight=self.weight + other.weight,
			is_verification=self.is_verification or other.is_verification,
		)

	def split(self) -> list["WorkChunk"]:
		"""Split into two parts. Items are halved when there are at least two."""
		if len(self.items) >= 2:
			mid = math.ceil(len(self.items) / 2)
			parts = [self.items[:mid], self.items[mid:]]
		else:
			parts = [list(self.items), [f"Complete remaining work for {self.name}"]]

		total_items = len(parts[0]) + len(parts[1])
		chunks = []
		for index, items in enumerate(parts, start=1):
			chunks.append(WorkChunk(
				name=f"{self.name} (Part {index})",
				description=self.description,
				items=items,
				deliverables=list(self.deliverables) if index == len(parts) else [],
				domains=list(self.domains),
				risk_factors=list(self.risk_factors),
				weight=self.weight * len(items) / total_items,
				is_verification=self.is_verification,
			))
		return chunks


def _union(a: list[str], b: list[str]) -> list[str]:
	return list(dict.fromkeys(a + b))


def _requirement_features(metrics: ComplexityMetrics) -> list[str]:
	return [f for f in metrics.features if f not in SYNTHETIC_FEATURES]


def group_features(requirement: str, metrics: ComplexityMetrics) -> list[tuple[str, list[str]]]:
	"""
	Assign extracted feature phrases to named feature groups.

	Phrases that match no group land in "Core Features". When the analyzer
	found no phrases, group keywords are matched against the raw text.
	"""
	features = _requirement_features(metrics)
	groups: dict[str, list[str]] = {}

	if features:
		for feature in features:
			name = next((g for g, pattern in FEATURE_GROUPS if pattern.search(feature)), "Core Features")
			groups.setdefault(name, []).append(feature)
		return list(groups.items())

	for name, pattern in FEATURE_GROUPS:
		found = list(dict.fromkeys(m.group(0).lower() for m in pattern.finditer(requirement)))
		if found:
			groups[name] = found
	if groups:
		return list(groups.items())

	return [("Implementation", [requirement.strip()[:100]])]


class PartitionStrategy(Protocol):
	name: PlanningStrategy

	def partition(self, requirement: str, score: ComplexityScore) -> list[WorkChunk]:
		...


class FeatureBasedStrategy:
	"""One chunk per feature group, capped at max_features_per_phase items."""

	name = PlanningStrategy.FEATURE_BASED

	def __init__(self, max_features_per_phase: int = 5):
		self.max_features_per_phase = max(1, max_features_per_phase)

	def partition(self, requirement: str, score: ComplexityScore) -> list[WorkChunk]:
		metrics = score.metrics
		chunks = []
		for name, items in group_features(requirement, metrics):
			batches = [
				items[i:i + self.max_features_per_phase]
				for i in range(0, len(items), self.max_features_per_phase)
			]
			for index, batch in enumerate(batches, start=1):
				label = name if len(batches) == 1 else f"{name} ({index})"
				chunks.append(WorkChunk(
					name=label,
					description=f"Implement {name.lower()} features.",
					items=batch,
					deliverables=[f"{name} features implemented"],
					domains=list(metrics.technical_domains),
					risk_factors=list(metrics.risk_factors),
					weight=float(len(batch)),
				))
		return chunks


class DomainBasedStrategy:
	"""One chunk per relevant architectural layer, in layer order."""

	name = PlanningStrategy.DOMAIN_BASED

	def partition(self, requirement: str, score: ComplexityScore) -> list[WorkChunk]:
		metrics = score.metrics
		text = requirement.lower()

		layers = [
			layer for layer in LAYERS
			if any(kw in text for kw in layer.keywords)
			or any(d in metrics.technical_domains for d in layer.domains)
		]
		if not layers:
			layers = [layer for layer in LAYERS if layer.name in DEFAULT_LAYER_NAMES]
		layers.sort(key=lambda layer: layer.order)

		assigned: dict[str, list[str]] = {layer.name: [] for layer in layers}
		for feature in _requirement_features(metrics):
			target = next(
				(layer.name for layer in layers if any(kw in feature for kw in layer.keywords)),
				None,
			)
			if target is None:
				# Unplaced features go to the business layer if present, else the middle one
				target = "Business Logic" if "Business Logic" in assigned else layers[len(layers) // 2].name
			assigned[target].append(feature)

		chunks = []
		for layer in layers:
			items = assigned[layer.name] or [layer.description]
			domains = [d for d in layer.domains if d in metrics.technical_domains] or list(layer.domains)
			chunks.append(WorkChunk(
				name=layer.name,
				description=layer.description,
				items=items,
				deliverables=list(layer.deliverables),
				domains=domains,
				risk_factors=list(metrics.risk_factors),
				weight=1.0 + len(assigned[layer.name]),
			))
		return chunks


class RiskBasedStrategy:
	"""Core MVP first, secondary features next, risky work and polish last."""

	name = PlanningStrategy.RISK_BASED

	def partition(self, requirement: str, score: ComplexityScore) -> list[WorkChunk]:
		metrics = score.metrics
		core: list[str] = []
		secondary: list[str] = []
		late: list[str] = []

		groups = group_features(requirement, metrics)
		for index, (name, items) in enumerate(groups):
			if name in CORE_GROUPS or (index == 0 and not any(g in CORE_GROUPS for g, _ in groups)):
				core.extend(items)
			elif name in LATE_GROUPS:
				late.extend(items)
			else:
				secondary.extend(items)

		domains = list(metrics.technical_domains)
		risks = list(metrics.risk_factors)
		early_risks = [r for r in risks if "security" in r or "migration" in r]
		hardening = [f"Address {risk}" for risk in risks if risk not in early_risks]

		return [
			WorkChunk(
				name="Core MVP",
				description="Implement the essential core functionality that forms the foundation of the system.",
				items=core or ["Implement basic structure and core features"],
				deliverables=["Working core functionality", "Basic data flow established"],
				domains=domains[:2],
				risk_factors=early_risks,
				weight=4.0,
			),
			WorkChunk(
				name="Secondary Features",
				description="Add secondary features that enhance the core functionality.",
				items=secondary or ["Extend the core with remaining requested features"],
				deliverables=["Enhanced functionality", "Additional features working"],
				domains=domains,
				risk_factors=[r for r in risks if "integration" in r],
				weight=3.5,
			),
			WorkChunk(
				name="Hardening & Polish",
				description="Resolve remaining risks, optimize performance, and polish the result.",
				items=late + hardening or ["Performance optimization", "Final polish"],
				deliverables=["Risks addressed", "Production-ready code"],
				domains=domains,
				risk_factors=[r for r in risks if r not in early_risks],
				weight=2.5,
			),
		]


def select_strategy(
	metrics: ComplexityMetrics,
	level: ComplexityLevel,
	preferred: PlanningStrategy = PlanningStrategy.AUTO,
) -> PlanningStrategy:
	"""Pick a partitioning strategy from the analysis alone."""
	if preferred not in (PlanningStrategy.AUTO, PlanningStrategy.SINGLE):
		return preferred
	if len(metrics.technical_domains) >= 3:
		return PlanningStrategy.DOMAIN_BASED
	if "full-stack" in metrics.scope_indicators or "complete-app" in metrics.scope_indicators:
		return PlanningStrategy.DOMAIN_BASED
	if level == ComplexityLevel.EXTREME or len(metrics.risk_factors) >= 3:
		return PlanningStrategy.RISK_BASED
	return PlanningStrategy.FEATURE_BASED


def generate_verification_criteria(phase: Phase) -> list[str]:
	criteria = ["Code compiles/transpiles without errors"]

	if "frontend" in phase.domains:
		criteria += ["UI components render correctly", "No console errors in browser"]
	if "backend" in phase.domains:
		criteria += ["API endpoints respond correctly", "No server errors in logs"]
	if "database" in phase.domains:
		criteria += ["Database migrations run successfully", "Data integrity maintained"]

	criteria += [f"{deliverable} is functional" for deliverable in phase.deliverables]

	if "security-concerns" in phase.risk_factors:
		criteria.append("Security measures implemented and tested")
	if "performance-optimization" in phase.risk_factors:
		criteria.append("Performance meets acceptable thresholds")

	return list(dict.fromkeys(criteria))


def distribute_tokens(total: int, weights: list[float], cap: int) -> list[int]:
	"""
	Split total across weights without any share exceeding cap.

	Shares that would exceed the cap are pinned to it and the rest is
	redistributed among the others.
	"""
	count = len(weights)
	if count == 0:
		return []
	cap = max(0, cap)
	weights = [w if w > 0 else 1.0 for w in weights]
	alloc = [0] * count
	remaining = min(max(0, total), cap * count)
	active = list(range(count))

	while remaining > 0 and active:
		weight_sum = sum(weights[i] for i in active)
		shares = {i: remaining * weights[i] / weight_sum for i in active}
		capped = [i for i in active if alloc[i] + shares[i] >= cap]
		if not capped:
			for i in active:
				alloc[i] += int(shares[i])
			leftover = remaining - sum(int(shares[i]) for i in active)
			for i in active:
				if leftover <= 0:
					break
				room = cap - alloc[i]
				if room > 0:
					take = min(room, leftover)
					alloc[i] += take
					leftover -= take
			break
		for i in capped:
			remaining -= cap - alloc[i]
			alloc[i] = cap
			active.remove(i)

	return alloc


def build_execution_order(phases: list[Phase]) -> list[str]:
	"""Topological order over phase dependencies, stable by phase order."""
	pending = {p.id: set(d for d in p.dependencies if d != p.id) for p in phases}
	known = set(pending)
	ordered = sorted(phases, key=lambda p: p.order)
	result: list[str] = []

	while pending:
		ready = [p.id for p in ordered if p.id in pending and not (pending[p.id] & known - set(result))]
		if not ready:
			# Cycle: fall back to plan order for whatever is left
			result += [p.id for p in ordered if p.id in pending]
			break
		for phase_id in ready:
			result.append(phase_id)
			del pending[phase_id]

	return result


class PhasePlanner:
	"""Turns a ComplexityScore into a PhasePlan."""

	def __init__(self, config: Optional[PlannerConfig] = None):
		self.config = config or PlannerConfig()
		self._strategies: dict[PlanningStrategy, PartitionStrategy] = {
			PlanningStrategy.FEATURE_BASED: FeatureBasedStrategy(self.config.max_features_per_phase),
			PlanningStrategy.DOMAIN_BASED: DomainBasedStrategy(),
			PlanningStrategy.RISK_BASED: RiskBasedStrategy(),
		}

	def register_strategy(self, strategy: PartitionStrategy) -> None:
		"""Replace the implementation used for strategy.name."""
		self._strategies[strategy.name] = strategy

	def target_phase_count(self, score: ComplexityScore) -> int:
		minimum = 2 if score.needs_split else 1
		budget = self.config.max_tokens_per_phase
		needed = math.ceil(score.estimated_tokens / budget) if budget > 0 else minimum
		suggested = score.suggested_phase_count or needed
		return max(minimum, suggested, needed)

	def plan(self, requirement: str, score: ComplexityScore) -> PhasePlan:
		"""
		Build an ordered phase plan.

		Args:
			requirement: Original requirement text
			score: Analyzer output for the same text

		Returns:
			PhasePlan whose phases each fit within max_tokens_per_phase
		"""
		strategy_name = select_strategy(score.metrics, score.level, self.config.preferred_strategy)
		strategy = self._strategies[strategy_name]
		target = self.target_phase_count(score)

		chunks = strategy.partition(requirement, score)
		if not chunks:
			chunks = [WorkChunk(name="Implementation", description="Implement the requirement.", items=[requirement[:100]])]
		chunks = self._fit(chunks, target, score)

		tokens = distribute_tokens(
			score.estimated_tokens,
			[chunk.weight for chunk in chunks],
			self.config.max_tokens_per_phase,
		)

		phases = []
		for index, (chunk, estimate) in enumerate(zip(chunks, tokens)):
			phase = Phase(
				id=f"phase-{index + 1}",
				order=index,
				name=chunk.name,
				description=chunk.description,
				requirements=list(chunk.items),
				deliverables=list(chunk.deliverables) or [f"{chunk.name} complete"],
				estimated_tokens=estimate,
				dependencies=[f"phase-{index}"] if index > 0 else [],
				domains=list(chunk.domains),
				risk_factors=list(chunk.risk_factors),
			)
			if self.config.include_verification:
				phase.verification_criteria = generate_verification_criteria(phase)
			phases.append(phase)

		plan = PhasePlan(
			original_requirement=requirement,
			phases=phases,
			execution_order=build_execution_order(phases),
			estimated_total_tokens=sum(p.estimated_tokens for p in phases),
			strategy_used=strategy_name,
			complexity_score=score.score,
		)
		plan.summary = self.generate_summary(plan, score)

		logger.info(
			f"Planned {len(phases)} phases using {strategy_name.value} "
			f"(target {target}, ~{plan.estimated_total_tokens:,} tokens)"
		)
		return plan

	def _fit(self, chunks: list[WorkChunk], target: int, score: ComplexityScore) -> list[WorkChunk]:
		"""Merge or split chunks until there are exactly target of them."""
		chunks = list(chunks)

		while len(chunks) > target and len(chunks) > 1:
			index = min(range(len(chunks) - 1), key=lambda i: chunks[i].weight + chunks[i + 1].weight)
			chunks[index:index + 2] = [chunks[index].merge(chunks[index + 1])]

		while len(chunks) < target:
			index = max(range(len(chunks)), key=lambda i: (len(chunks[i].items), chunks[i].weight))
			if len(chunks[index].items) < 2 and not any(c.is_verification for c in chunks):
				chunks.append(self._verification_chunk(score, chunks))
			else:
				chunks[index:index + 1] = chunks[index].split()

		return chunks

	def _verification_chunk(self, score: ComplexityScore, chunks: list[WorkChunk]) -> WorkChunk:
		weight = max(1.0, sum(c.weight for c in chunks) / (len(chunks) * 2))
		return WorkChunk(
			name="Verification",
			description="Verify the complete implementation end to end and fix any regressions.",
			items=["Run the full test suite", "Verify every requirement is met"],
			deliverables=["Verified implementation"],
			domains=list(score.metrics.technical_domains),
			risk_factors=list(score.metrics.risk_factors),
			weight=weight,
			is_verification=True,
		)

	def generate_summary(self, plan: PhasePlan, score: ComplexityScore) -> str:
		lines = [
			"## Phase Generation Summary",
			"",
			f"**Strategy Used:** {plan.strategy_used.value}",
			f"**Complexity Level:** {score.level.name} (Score: {score.score}/100)",
			f"**Total Phases:** {len(plan.phases)}",
			"",
			"### Phases Overview",
			"",
		]
		for index, phase in enumerate(plan.phases, start=1):
			lines.append(f"**{index}. {phase.name}**")
			lines.append(f"   - {phase.description}")
			lines.append(f"   - Estimated tokens: ~{phase.estimated_tokens:,}")
			lines.append(f"   - Deliverables: {', '.join(phase.deliverables)}")
			lines.append("")
		return "\n".join(lines)
