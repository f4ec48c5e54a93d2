"""Tests for server startup and tool registration."""

import pytest


@pytest.fixture
def server_mcp(tmp_path, monkeypatch):
	"""Import the server with config and data dirs in a temp location."""
	monkeypatch.setenv("PHASE_GUARD_CONFIG_DIR", str(tmp_path / "config"))
	monkeypatch.setenv("PHASE_GUARD_DATA_DIR", str(tmp_path / "data"))
	from phase_guard.server import mcp
	return mcp


def test_server_imports(server_mcp):
	"""Server module should import without errors."""
	assert server_mcp is not None


def test_server_tool_names(server_mcp):
	"""Server should register every phase tool and the health check."""
	tool_names = set(server_mcp._tool_manager._tools.keys())

	expected = {
		"health_check",
		"analyze_requirement", "plan_phases",
		"start_mission", "resume_mission",
		"get_phase_context", "track_phase_tokens", "should_end_phase",
		"complete_phase", "approve_phase", "skip_phase", "abort_mission",
		"get_phase_info", "get_mission_report",
	}

	missing = expected - tool_names
	assert not missing, f"Missing tools: {missing}"
