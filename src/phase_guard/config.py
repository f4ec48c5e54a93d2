"""Configuration system using platformdirs for cross-platform paths."""

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

import platformdirs

logger = logging.getLogger(__name__)

APP_NAME = "phase-guard"


@dataclass
class PhaseSettings:
	"""Caller-facing knobs for analysis, budgeting, and phase gating."""

	enabled: bool = True
	token_budget_per_phase: int = 30000
	phased_execution_threshold: int = 40
	require_approval_between_phases: bool = True
	auto_approve: bool = False

	# Complexity level thresholds (score <= threshold)
	low_threshold: int = 20
	medium_threshold: int = 40
	high_threshold: int = 70

	# Budget status thresholds (percent used)
	warning_threshold: float = 70.0
	critical_threshold: float = 90.0
	wrap_up_reserve: int = 2000

	max_features_per_phase: int = 5

	def __post_init__(self) -> None:
		# A negative budget degrades to an always-exhausted zero budget
		self.token_budget_per_phase = max(0, int(self.token_budget_per_phase))
		self.wrap_up_reserve = max(0, int(self.wrap_up_reserve))
		self.max_features_per_phase = max(1, int(self.max_features_per_phase))

	def analyzer_config(self):
		from .analyzer import AnalyzerConfig
		return AnalyzerConfig(
			tokens_per_phase=self.token_budget_per_phase,
			low_threshold=self.low_threshold,
			medium_threshold=self.medium_threshold,
			high_threshold=self.high_threshold,
		)

	def monitor_config(self):
		from .budget.monitor import MonitorConfig
		return MonitorConfig(
			total_budget=self.token_budget_per_phase,
			warning_threshold=self.warning_threshold,
			critical_threshold=self.critical_threshold,
			wrap_up_reserve=self.wrap_up_reserve,
		)

	def planner_config(self):
		from .phases.planner import PlannerConfig
		return PlannerConfig(
			max_tokens_per_phase=self.token_budget_per_phase,
			max_features_per_phase=self.max_features_per_phase,
		)


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	state_db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	log_level: str = "INFO"
	phases: PhaseSettings = field(default_factory=PhaseSettings)

	def __post_init__(self) -> None:
		self.state_db_path = self.data_dir / "phase_state.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


def _coerce(value, target_type):
	"""Convert a raw env/toml value to the type of a PhaseSettings field."""
	if target_type is bool or target_type == "bool":
		if isinstance(value, bool):
			return value
		return str(value).strip().lower() in ("1", "true", "yes", "on")
	if target_type is int or target_type == "int":
		return int(value)
	if target_type is float or target_type == "float":
		return float(value)
	return value


def _apply_phase_values(settings: PhaseSettings, values: dict, origin: str) -> PhaseSettings:
	"""Set known PhaseSettings fields from a mapping, skipping bad values."""
	types = {f.name: f.type for f in fields(PhaseSettings)}
	for key, raw in values.items():
		if key not in types:
			logger.warning(f"Unknown phase setting '{key}' in {origin}")
			continue
		try:
			setattr(settings, key, _coerce(raw, types[key]))
		except (TypeError, ValueError):
			logger.warning(f"Ignoring invalid value for {key} in {origin}: {raw!r}")
	settings.__post_init__()
	return settings


def _apply_env_overrides(config: Config) -> Config:
	"""Apply PHASE_GUARD_* environment variable overrides."""
	env_map = {
		"PHASE_GUARD_CONFIG_DIR": "config_dir",
		"PHASE_GUARD_DATA_DIR": "data_dir",
	}
	for env_key, attr in env_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	log_level = os.getenv("PHASE_GUARD_LOG_LEVEL")
	if log_level:
		config.log_level = log_level.upper()

	phase_values = {}
	for f in fields(PhaseSettings):
		val = os.getenv(f"PHASE_GUARD_{f.name.upper()}")
		if val is not None and val != "":
			phase_values[f.name] = val
	if phase_values:
		_apply_phase_values(config.phases, phase_values, "environment")

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key == "phases" and isinstance(val, dict):
			_apply_phase_values(config.phases, val, str(toml_path))
		elif key in path_fields:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif key == "log_level":
			config.log_level = str(val).upper()

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
