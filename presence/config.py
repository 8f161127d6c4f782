"""
Presence bridge settings.

Settings are a small immutable value passed explicitly into the engine. They
are loaded once (config.yaml, env overrides, optionally the plugin's settings
endpoint) and only change through an explicit save.

The agent address is stored as host + port; the ``"host:port"`` endpoint
string is always derived from it, so the two forms cannot disagree. Editing
either form goes through ``with_endpoint()`` / ``with_address()``, which
re-derive the other.

Files:
    ~/.sillyrpc/config.yaml   -- flat settings record (mode, agentUrl)

Env overrides:
    SILLYRPC_MODE, SILLYRPC_AGENT_URL, SILLYRPC_UPDATE_INTERVAL
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from sillyrpc_constants import (
    DEFAULT_AGENT_HOST,
    DEFAULT_AGENT_PORT,
    DEFAULT_MODE,
    FALLBACK_INTERVAL_SECONDS,
    SILLYRPC_HOME,
)

from presence.agent_client import AgentClient, AgentRequestError, build_base_url

logger = logging.getLogger(__name__)

CONFIG_PATH = SILLYRPC_HOME / "config.yaml"

MODES = ("local", "remote")


class SettingsSaveError(Exception):
    """Saving settings failed. Shown to the user, unlike passive-path errors."""


@dataclass(frozen=True)
class AgentAddress:
    host: str = DEFAULT_AGENT_HOST
    port: int = DEFAULT_AGENT_PORT

    @property
    def endpoint(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _validate_port(port: Any) -> int:
    if isinstance(port, bool):
        raise ValueError(f"Invalid port: {port!r}")
    try:
        value = int(str(port).strip())
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {port!r}") from None
    if not 1 <= value <= 65535:
        raise ValueError(f"Port out of range: {value}")
    return value


def parse_endpoint(endpoint: str) -> AgentAddress:
    """
    Parse ``"host:port"`` (scheme and path tolerated) into an AgentAddress.

    ``"localhost"`` -> localhost:6472, ``"http://10.0.0.5:7000/x"`` ->
    10.0.0.5:7000, ``"[::1]:6472"`` -> ::1 port 6472.
    """
    text = (endpoint or "").strip()
    if "://" in text:
        text = text.split("://", 1)[1]
    text = text.split("/", 1)[0]
    if not text:
        raise ValueError("Agent endpoint is empty")

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep:
            raise ValueError(f"Unterminated IPv6 address in {endpoint!r}")
        port = _validate_port(rest[1:]) if rest.startswith(":") else DEFAULT_AGENT_PORT
    elif text.count(":") == 1:
        host, raw_port = text.split(":", 1)
        port = _validate_port(raw_port)
    else:
        # Bare hostname or unbracketed IPv6 literal
        host, port = text, DEFAULT_AGENT_PORT

    host = host.strip()
    if not host:
        raise ValueError(f"Agent endpoint has no host: {endpoint!r}")
    return AgentAddress(host=host, port=port)


@dataclass(frozen=True)
class Settings:
    mode: str = DEFAULT_MODE
    agent: AgentAddress = field(default_factory=AgentAddress)

    @property
    def endpoint(self) -> str:
        return self.agent.endpoint

    @property
    def base_url(self) -> str:
        return build_base_url(self.endpoint)

    def with_endpoint(self, endpoint: str) -> "Settings":
        return replace(self, agent=parse_endpoint(endpoint))

    def with_address(self, host: Optional[str] = None, port: Any = None) -> "Settings":
        new_host = self.agent.host if host is None else host.strip()
        if not new_host:
            raise ValueError("Agent host is empty")
        new_port = self.agent.port if port is None else _validate_port(port)
        return replace(self, agent=AgentAddress(host=new_host, port=new_port))

    def with_mode(self, mode: str) -> "Settings":
        normalized = (mode or "").strip().lower()
        if normalized not in MODES:
            raise ValueError(f"Unknown mode {mode!r} (expected one of: {', '.join(MODES)})")
        return replace(self, mode=normalized)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "agentUrl": self.endpoint,
            "agentHost": self.agent.host,
            "agentPort": self.agent.port,
        }

    @classmethod
    def from_dict(cls, data: Any, base: Optional["Settings"] = None) -> "Settings":
        """
        Build settings from a wire/config mapping on top of ``base``.

        ``agentUrl`` wins over ``agentHost``/``agentPort`` when both are
        present. Invalid values are logged and the base value is kept.
        """
        settings = base or cls()
        if not isinstance(data, dict):
            return settings

        mode = data.get("mode")
        if mode is not None:
            try:
                settings = settings.with_mode(str(mode))
            except ValueError as e:
                logger.warning("Ignoring settings mode: %s", e)

        try:
            if data.get("agentUrl"):
                settings = settings.with_endpoint(str(data["agentUrl"]))
            elif data.get("agentHost") or data.get("agentPort"):
                settings = settings.with_address(
                    host=str(data["agentHost"]) if data.get("agentHost") else None,
                    port=data.get("agentPort") or None,
                )
        except ValueError as e:
            logger.warning("Ignoring agent address: %s", e)

        return settings


# ---------------------------------------------------------------------------
# Local config file
# ---------------------------------------------------------------------------


def _secure_write(path: Path, data: str) -> None:
    """Write data to file with restrictive permissions (owner read/write only)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass  # Windows doesn't support chmod the same way


def _apply_env_overrides(settings: Settings) -> Settings:
    overrides: Dict[str, Any] = {}
    if os.getenv("SILLYRPC_MODE"):
        overrides["mode"] = os.environ["SILLYRPC_MODE"]
    if os.getenv("SILLYRPC_AGENT_URL"):
        overrides["agentUrl"] = os.environ["SILLYRPC_AGENT_URL"]
    return Settings.from_dict(overrides, base=settings) if overrides else settings


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from config.yaml, then env overrides. Never raises."""
    config_path = path or CONFIG_PATH
    settings = Settings()
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                cfg = yaml.safe_load(f) or {}
            settings = Settings.from_dict(cfg, base=settings)
        except (yaml.YAMLError, OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read %s, using defaults: %s", config_path, e)
    return _apply_env_overrides(settings)


def save_settings(settings: Settings, path: Optional[Path] = None) -> Path:
    config_path = path or CONFIG_PATH
    record = {"mode": settings.mode, "agentUrl": settings.endpoint}
    _secure_write(config_path, yaml.safe_dump(record, default_flow_style=False, sort_keys=False))
    return config_path


def get_update_interval() -> float:
    """Fallback timer period from SILLYRPC_UPDATE_INTERVAL or the 30s default."""
    env_override = os.getenv("SILLYRPC_UPDATE_INTERVAL")
    if env_override:
        try:
            value = float(env_override)
            if value > 0:
                return value
        except ValueError:
            pass
        logger.warning("Invalid SILLYRPC_UPDATE_INTERVAL value: %s, using default", env_override)
    return float(FALLBACK_INTERVAL_SECONDS)


# ---------------------------------------------------------------------------
# Plugin settings endpoint
# ---------------------------------------------------------------------------


async def load_remote_settings(client: AgentClient, fallback: Optional[Settings] = None) -> Settings:
    """Fetch settings from the plugin; any failure falls back silently (logged)."""
    base = fallback or Settings()
    try:
        data = await client.fetch_settings()
    except AgentRequestError as e:
        logger.warning("Could not load settings from %s, using defaults: %s", client.base_url, e)
        return base
    return Settings.from_dict(data, base=base)


async def save_remote_settings(client: AgentClient, settings: Settings) -> None:
    """Persist settings through the plugin. Raises SettingsSaveError on failure."""
    try:
        await client.save_settings(settings.to_dict())
    except AgentRequestError as e:
        raise SettingsSaveError(f"Failed to save settings: {e}") from e
    logger.info("Settings saved (mode=%s, agent=%s)", settings.mode, settings.endpoint)
