"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all Strata settings
- Falls back to defaults when the config file is absent or unreadable
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- CLI flags are applied on top by the presentation layer, never here
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StackConfig:
    """Which stack to operate on and where it is declared."""
    name: str = ""
    region: str = ""
    definition: str = "stack.json"


@dataclass(frozen=True)
class EngineConfig:
    """Execution engine and wait monitor tuning."""
    max_concurrency: int = 4
    poll_interval: float = 2.0
    timeout: float = 600.0
    max_poll_interval: float = 30.0
    backoff_factor: float = 1.5
    failure_policy: str = "abort"  # "abort" or "continue"

    def __post_init__(self) -> None:
        if self.failure_policy not in ("abort", "continue"):
            raise ValueError(
                f"failure_policy must be 'abort' or 'continue', got {self.failure_policy!r}"
            )
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")


@dataclass(frozen=True)
class StateConfig:
    """State store backend."""
    backend: str = "json"  # "json" or "sqlite"
    path: str = ".strata"

    def __post_init__(self) -> None:
        if self.backend not in ("json", "sqlite"):
            raise ValueError(f"Unknown state backend {self.backend!r}")


@dataclass(frozen=True)
class SimulatorConfig:
    """Simulated provisioning backend behaviour."""
    settle_polls: int = 1
    unsupported_kinds: tuple[str, ...] = ()
    quotas: dict = field(default_factory=dict)
    fail_names: tuple[str, ...] = ()
    stuck_names: tuple[str, ...] = ()
    registry_path: str = ""  # defaults to simulated-cloud.json beside the state


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class StrataConfig:
    """Root configuration for the Strata application."""
    stack: StackConfig = field(default_factory=StackConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    state: StateConfig = field(default_factory=StateConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"
    log_format: str = "text"  # "text" or "json"


def _env_override(data: dict, prefix: str = "STRATA") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern STRATA_SECTION_KEY.
    For example: STRATA_ENGINE_MAX_CONCURRENCY=8, STRATA_STATE_BACKEND=sqlite
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        parts = key[len(prefix) + 1:].lower().split("_", 1)
        if len(parts) == 2 and parts[0] in _SECTIONS:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        else:
            data[key[len(prefix) + 1:].lower()] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a JSON object, ignoring", path)
        return {}
    return data


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    for f in dataclasses.fields(cls):
        if f.name not in filtered:
            continue
        val = filtered[f.name]

        # Comma-separated strings become tuples for tuple fields
        if f.type == "tuple[str, ...]":
            if isinstance(val, str):
                filtered[f.name] = tuple(v.strip() for v in val.split(",") if v.strip())
            elif isinstance(val, list):
                filtered[f.name] = tuple(val)
        elif f.type == "dict" and isinstance(val, str):
            filtered[f.name] = json.loads(val)
        elif isinstance(val, str):
            if f.type == "int":
                filtered[f.name] = int(val)
            elif f.type == "float":
                filtered[f.name] = float(val)
            elif f.type == "bool":
                filtered[f.name] = val.lower() in ("true", "1", "yes")

    return cls(**filtered)


_SECTIONS = {
    "stack": StackConfig,
    "engine": EngineConfig,
    "state": StateConfig,
    "simulator": SimulatorConfig,
    "telemetry": TelemetryConfig,
}


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "STRATA",
) -> StrataConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (STRATA_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to strata.json in CWD.
        env_prefix: Environment variable prefix. Defaults to STRATA.
    """
    config_path = Path(path) if path else Path("strata.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    sections = {
        name: _build_sub_config(cls, data.get(name) or {})
        for name, cls in _SECTIONS.items()
    }
    return StrataConfig(
        **sections,
        log_level=str(data.get("log_level", "WARNING")),
        log_format=str(data.get("log_format", "text")),
    )
