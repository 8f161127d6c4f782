"""Tests for presence/run.py -- logging setup and settings bootstrap."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import AsyncMock, patch

import pytest

from presence.avatar_cache import MemoryStore
from presence.config import Settings
from presence.run import bootstrap_settings, run_presence, setup_logging


@pytest.fixture
def restore_presence_logger():
    logger = logging.getLogger("presence")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers, logger.level, logger.propagate = saved[0], saved[1], saved[2]


def test_setup_logging_writes_to_rotating_file(tmp_path, restore_presence_logger):
    log_file = setup_logging("debug", log_dir=tmp_path / "logs")

    assert log_file == tmp_path / "logs" / "presence.log"
    assert restore_presence_logger.level == logging.DEBUG
    assert any(isinstance(h, RotatingFileHandler) for h in restore_presence_logger.handlers)

    logging.getLogger("presence.dispatcher").info("hello from the engine")
    for handler in restore_presence_logger.handlers:
        handler.flush()
    assert "hello from the engine" in log_file.read_text()


def test_setup_logging_level_from_env(tmp_path, monkeypatch, restore_presence_logger):
    monkeypatch.setenv("SILLYRPC_LOG_LEVEL", "warning")
    setup_logging(log_dir=tmp_path)
    assert restore_presence_logger.level == logging.WARNING


@pytest.mark.asyncio
async def test_bootstrap_without_remote(tmp_path, monkeypatch):
    monkeypatch.delenv("SILLYRPC_AGENT_URL", raising=False)
    monkeypatch.delenv("SILLYRPC_MODE", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text("agentUrl: agent.lan:7000\n")

    with patch("presence.config.CONFIG_PATH", config):
        settings = await bootstrap_settings(use_remote=False)

    assert settings.endpoint == "agent.lan:7000"


@pytest.mark.asyncio
async def test_bootstrap_refines_with_remote(tmp_path, monkeypatch):
    monkeypatch.delenv("SILLYRPC_AGENT_URL", raising=False)
    monkeypatch.delenv("SILLYRPC_MODE", raising=False)
    remote = Settings(mode="remote")

    with patch("presence.config.CONFIG_PATH", tmp_path / "missing.yaml"), \
         patch("presence.run.load_remote_settings", new=AsyncMock(return_value=remote)) as load_remote:
        settings = await bootstrap_settings()

    assert settings == remote
    assert load_remote.await_args.kwargs["fallback"] == Settings()


@pytest.mark.asyncio
async def test_run_presence_fails_for_host_without_events(tmp_path):
    with patch("presence.run.SnapshotFileHost", return_value=object()), \
         patch("presence.run.JsonFileStore", return_value=MemoryStore()):
        ok = await run_presence(tmp_path / "state.json", settings=Settings())
    assert ok is False
