"""Core health check tool."""

import json

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..phases.coordinator import get_coordinator


def register_core_tools(mcp: FastMCP, config: Config) -> None:
	"""Register core tools."""

	@mcp.tool()
	async def health_check() -> str:
		"""
		Check the health of the phase-guard server.
		Returns paths, phase settings, and active missions.
		"""
		settings = config.phases
		status = {
			"server": "running",
			"config_dir": str(config.config_dir),
			"data_dir": str(config.data_dir),
			"state_db_exists": config.state_db_path.exists(),
			"phases_enabled": settings.enabled,
			"token_budget_per_phase": settings.token_budget_per_phase,
			"phased_execution_threshold": settings.phased_execution_threshold,
			"require_approval_between_phases": settings.require_approval_between_phases,
			"active_missions": get_coordinator().list_tasks(),
		}
		return json.dumps(status, indent=2)
