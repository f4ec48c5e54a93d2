"""Tests for logging setup."""

import logging
from io import StringIO

from phase_guard.logging_config import setup_logging


def test_console_handler_writes_to_stream():
	stream = StringIO()
	logger = setup_logging(name="phase_guard_test_console", level="DEBUG", stream=stream)

	logger.debug("phase started")

	assert logger.level == logging.DEBUG
	assert "[DEBUG] phase started" in stream.getvalue()


def test_file_handler_when_log_dir_given(tmp_path):
	logger = setup_logging(name="phase_guard_test_file", level="INFO", log_dir=tmp_path, stream=StringIO())

	logger.info("mission aborted")
	for handler in logger.handlers:
		handler.flush()

	log_file = tmp_path / "phase_guard_test_file.log"
	assert log_file.exists()
	assert "mission aborted" in log_file.read_text()

	for handler in list(logger.handlers):
		handler.close()
		logger.removeHandler(handler)


def test_handlers_not_duplicated():
	name = "phase_guard_test_dupes"
	setup_logging(name=name, stream=StringIO())
	logger = setup_logging(name=name, level="WARNING", stream=StringIO())

	assert len(logger.handlers) == 1
	assert logger.level == logging.WARNING


def test_env_level(monkeypatch):
	monkeypatch.setenv("PHASE_GUARD_LOG_LEVEL", "error")
	logger = setup_logging(name="phase_guard_test_env", stream=StringIO())
	assert logger.level == logging.ERROR


def test_unknown_level_falls_back_to_info():
	logger = setup_logging(name="phase_guard_test_unknown", level="chatty", stream=StringIO())
	assert logger.level == logging.INFO
