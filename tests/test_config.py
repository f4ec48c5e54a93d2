"""Tests for the configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

from phase_guard.config import Config, PhaseSettings, _apply_env_overrides, _apply_toml, load_config


def test_config_defaults():
	"""Config should have sensible defaults."""
	config = Config()
	assert config.config_dir.is_absolute()
	assert config.data_dir.is_absolute()
	assert config.state_db_path == config.data_dir / "phase_state.db"
	assert config.log_dir == config.data_dir / "logs"
	assert config.log_level == "INFO"


def test_phase_settings_defaults():
	"""Phase settings should match the documented defaults."""
	settings = PhaseSettings()
	assert settings.enabled is True
	assert settings.token_budget_per_phase == 30000
	assert settings.phased_execution_threshold == 40
	assert settings.require_approval_between_phases is True
	assert settings.auto_approve is False
	assert (settings.low_threshold, settings.medium_threshold, settings.high_threshold) == (20, 40, 70)


def test_negative_values_are_clamped():
	"""Invalid numbers degrade instead of raising."""
	settings = PhaseSettings(token_budget_per_phase=-5, wrap_up_reserve=-1, max_features_per_phase=0)
	assert settings.token_budget_per_phase == 0
	assert settings.wrap_up_reserve == 0
	assert settings.max_features_per_phase == 1


def test_settings_build_component_configs():
	"""Component configs should carry the shared settings."""
	settings = PhaseSettings(token_budget_per_phase=12000, low_threshold=10, warning_threshold=60.0)

	assert settings.analyzer_config().tokens_per_phase == 12000
	assert settings.analyzer_config().low_threshold == 10
	assert settings.monitor_config().total_budget == 12000
	assert settings.monitor_config().warning_threshold == 60.0
	assert settings.planner_config().max_tokens_per_phase == 12000


def test_config_env_overrides():
	"""Environment variables should override defaults."""
	config = Config()
	with patch.dict(os.environ, {
		"PHASE_GUARD_DATA_DIR": "/tmp/test-data",
		"PHASE_GUARD_CONFIG_DIR": "/tmp/test-config",
		"PHASE_GUARD_TOKEN_BUDGET_PER_PHASE": "15000",
		"PHASE_GUARD_AUTO_APPROVE": "true",
		"PHASE_GUARD_LOG_LEVEL": "debug",
	}):
		config = _apply_env_overrides(config)
		assert config.data_dir == Path("/tmp/test-data")
		assert config.config_dir == Path("/tmp/test-config")
		# Derived paths should be recomputed
		assert config.state_db_path == Path("/tmp/test-data/phase_state.db")
		assert config.phases.token_budget_per_phase == 15000
		assert config.phases.auto_approve is True
		assert config.log_level == "DEBUG"


def test_invalid_env_value_is_ignored():
	"""An unparseable number leaves the default in place."""
	config = Config()
	with patch.dict(os.environ, {"PHASE_GUARD_PHASED_EXECUTION_THRESHOLD": "forty"}):
		config = _apply_env_overrides(config)
	assert config.phases.phased_execution_threshold == 40


def test_toml_phase_table(tmp_path: Path):
	"""The [phases] table of config.toml should override settings."""
	(tmp_path / "config.toml").write_text(
		'log_level = "warning"\n'
		"[phases]\n"
		"token_budget_per_phase = 20000\n"
		"require_approval_between_phases = false\n"
		"warning_threshold = 65\n"
		"not_a_setting = 1\n"
	)
	config = _apply_toml(Config(config_dir=tmp_path, data_dir=tmp_path / "data"))

	assert config.log_level == "WARNING"
	assert config.phases.token_budget_per_phase == 20000
	assert config.phases.require_approval_between_phases is False
	assert config.phases.warning_threshold == 65.0


def test_config_ensure_dirs(tmp_path: Path):
	"""ensure_dirs should create all required directories."""
	config = Config(
		config_dir=tmp_path / "config",
		data_dir=tmp_path / "data",
	)
	assert not config.config_dir.exists()
	assert not config.data_dir.exists()

	config.ensure_dirs()

	assert config.config_dir.exists()
	assert config.data_dir.exists()
	assert config.log_dir.exists()


def test_load_config_creates_dirs(tmp_path: Path):
	"""load_config should create directories."""
	with patch.dict(os.environ, {
		"PHASE_GUARD_DATA_DIR": str(tmp_path / "data"),
		"PHASE_GUARD_CONFIG_DIR": str(tmp_path / "config"),
	}):
		config = load_config()
		assert config.data_dir.exists()
		assert config.config_dir.exists()
