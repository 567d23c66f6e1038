"""Shared branchflow configuration utilities.

Centralises reading of ~/.branchflow/configuration.json so that the CLI,
the HTTP collaborators and the flow store share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_API_BASE = "http://localhost:3000/api"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_GENERATE_PATH = "/generate"
DEFAULT_CHOOSE_PATH = "/choose-child"
# Throttle streaming response writes to the persistence layer
DEFAULT_RESPONSE_THROTTLE_MS = 500

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

BRANCHFLOW_CONFIG_FILE = Path.home() / ".branchflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the config file path, honouring BRANCHFLOW_CONFIG."""
    override = os.environ.get("BRANCHFLOW_CONFIG")
    return Path(override) if override else BRANCHFLOW_CONFIG_FILE


def get_branchflow_config() -> dict[str, Any]:
    """Load configuration from the config file; {} when missing or unreadable."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _api_section() -> dict[str, Any]:
    api = get_branchflow_config().get("api", {})
    return api if isinstance(api, dict) else {}


def get_api_base() -> str:
    """Return the base URL of the generation service (env BRANCHFLOW_API_BASE wins)."""
    env = os.environ.get("BRANCHFLOW_API_BASE")
    if env:
        return env.rstrip("/")
    return str(_api_section().get("base_url", DEFAULT_API_BASE)).rstrip("/")


def get_request_timeout() -> float:
    """Return the per-request timeout in seconds."""
    return float(_api_section().get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))


def get_generate_path() -> str:
    return str(_api_section().get("generate_path", DEFAULT_GENERATE_PATH))


def get_choose_path() -> str:
    return str(_api_section().get("choose_path", DEFAULT_CHOOSE_PATH))


def get_response_throttle_ms() -> int:
    """Return the minimum interval between persisted streaming writes per node."""
    return int(get_branchflow_config().get("response_throttle_ms", DEFAULT_RESPONSE_THROTTLE_MS))


# ---------------------------------------------------------------------------
# FlowConfig – shared across the CLI and the store
# ---------------------------------------------------------------------------


@dataclass
class FlowConfig:
    """Runtime configuration loaded from ~/.branchflow/configuration.json."""

    api_base: str = field(default_factory=get_api_base)
    timeout_seconds: float = field(default_factory=get_request_timeout)
    generate_path: str = field(default_factory=get_generate_path)
    choose_path: str = field(default_factory=get_choose_path)
    response_throttle_ms: int = field(default_factory=get_response_throttle_ms)

    @property
    def generate_url(self) -> str:
        return f"{self.api_base}{self.generate_path}"

    @property
    def choose_url(self) -> str:
        return f"{self.api_base}{self.choose_path}"
