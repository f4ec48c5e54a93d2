"""
Phase State Store - SQLite-backed versioned mission state.

Features:
- One row per saved version of a mission's PhaseExecutionState
- Version history for auditing approvals, skips and aborts
- Lookup by task id, listing by mission status
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiosqlite

from .models import MissionStatus, PhaseExecutionState

logger = logging.getLogger(__name__)

STATE_DB_FILENAME = "phase_state.db"


class StateNotFoundError(Exception):
	"""Raised when a mission state is not found."""
	pass


def resolve_db_path(location: str | Path) -> Path:
	"""A directory maps to <dir>/phase_state.db; anything else is used as the file."""
	path = Path(location).expanduser()
	if path.suffix == ".db":
		return path
	return path / STATE_DB_FILENAME


class PhaseStateStore:
	"""
	SQLite-backed mission state storage with versioning.

	Usage:
		store = PhaseStateStore("data/phase_state.db")
		await store.init()

		version = await store.save_state(state)
		state = await store.get_state("task-123")
	"""

	def __init__(self, db_path: str | Path):
		"""Initialize the state store."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self):
		"""Initialize the database schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS phase_states (
				task_id TEXT NOT NULL,
				version INTEGER NOT NULL,
				status TEXT NOT NULL,
				mode TEXT NOT NULL,
				data TEXT NOT NULL,
				saved_at TEXT NOT NULL,
				is_current INTEGER DEFAULT 1,
				PRIMARY KEY (task_id, version)
			)
		""")

		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_phase_states_current ON phase_states(task_id, is_current)
		""")

		await self._db.commit()
		logger.info(f"Phase state store initialized: {self.db_path}")

	async def close(self):
		"""Close the database connection."""
		if self._db:
			await self._db.close()
			self._db = None

	async def save_state(self, state: PhaseExecutionState) -> int:
		"""
		Save a new version of a mission state.

		Args:
			state: State to persist

		Returns:
			The version number written
		"""
		if not self._db:
			await self.init()

		async with self._db.execute(
			"SELECT MAX(version) AS version FROM phase_states WHERE task_id = ?",
			(state.task_id,)
		) as cursor:
			row = await cursor.fetchone()
		version = (row["version"] or 0) + 1

		await self._db.execute(
			"UPDATE phase_states SET is_current = 0 WHERE task_id = ?",
			(state.task_id,)
		)

		await self._db.execute(
			"""
			INSERT INTO phase_states (task_id, version, status, mode, data, saved_at, is_current)
			VALUES (?, ?, ?, ?, ?, ?, 1)
			""",
			(
				state.task_id,
				version,
				state.status.value,
				state.mode.value,
				state.model_dump_json(),
				datetime.now().isoformat(),
			)
		)

		await self._db.commit()
		logger.debug(f"Saved state for {state.task_id} (version {version}, {state.status.value})")

		return version

	async def get_state(
		self,
		task_id: str,
		version: Optional[int] = None,
		strict: bool = False,
	) -> Optional[PhaseExecutionState]:
		"""
		Get a mission state, optionally at a specific version.

		Args:
			task_id: Mission task id
			version: Optional version number (defaults to current)
			strict: Raise StateNotFoundError instead of returning None

		Returns:
			PhaseExecutionState or None if not found
		"""
		if not self._db:
			await self.init()

		if version:
			query = "SELECT * FROM phase_states WHERE task_id = ? AND version = ?"
			params = (task_id, version)
		else:
			query = "SELECT * FROM phase_states WHERE task_id = ? AND is_current = 1"
			params = (task_id,)

		async with self._db.execute(query, params) as cursor:
			row = await cursor.fetchone()

		if not row:
			if strict:
				raise StateNotFoundError(f"Mission state not found: {task_id}")
			return None

		return PhaseExecutionState.model_validate_json(row["data"])

	async def get_state_history(self, task_id: str) -> list[PhaseExecutionState]:
		"""
		Get all saved versions of a mission state.

		Returns:
			List of states, newest first
		"""
		if not self._db:
			await self.init()

		async with self._db.execute(
			"SELECT * FROM phase_states WHERE task_id = ? ORDER BY version DESC",
			(task_id,)
		) as cursor:
			rows = await cursor.fetchall()

		return [PhaseExecutionState.model_validate_json(row["data"]) for row in rows]

	async def list_states(self, status: Optional[MissionStatus] = None) -> list[dict]:
		"""
		List current mission states.

		Args:
			status: Filter by mission status

		Returns:
			List of summary dictionaries, most recently saved first
		"""
		if not self._db:
			await self.init()

		conditions = ["is_current = 1"]
		params = []
		if status:
			conditions.append("status = ?")
			params.append(status.value)

		async with self._db.execute(
			f"SELECT task_id, version, status, mode, saved_at FROM phase_states "
			f"WHERE {' AND '.join(conditions)} ORDER BY saved_at DESC",
			params
		) as cursor:
			rows = await cursor.fetchall()

		return [
			{
				"task_id": row["task_id"],
				"version": row["version"],
				"status": row["status"],
				"mode": row["mode"],
				"saved_at": row["saved_at"],
			}
			for row in rows
		]

	async def delete_state(self, task_id: str):
		"""Delete a mission state and all its versions."""
		if not self._db:
			await self.init()

		await self._db.execute("DELETE FROM phase_states WHERE task_id = ?", (task_id,))
		await self._db.commit()
		logger.info(f"Deleted state for {task_id}")
