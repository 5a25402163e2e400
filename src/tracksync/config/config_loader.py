"""
Configuration loader for tracksync.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..conflict.resolution import ResolutionStrategy
from ..core.exceptions import SyncConfigError
from ..core.models import EntityKind
from ..mapping.field_mapper import DEFAULT_FIELD_SPECS, FieldMapper, FieldSpec
from ..mapping.status_map import StatusMap
from ..resilience.circuit_breaker import CircuitBreakerConfig
from ..resilience.retry import RetryConfig


logger = logging.getLogger(__name__)


# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "TRACKSYNC_STATE_DIR": "paths.state_dir",
    "TRACKSYNC_LOCAL_DIR": "paths.local_dir",
    "TRACKSYNC_STRATEGY": "sync.default_strategy",
    "JIRA_BASE_URL": "remote.base_url",
    "JIRA_EMAIL": "remote.email",
    "JIRA_API_TOKEN": "remote.api_token",
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SyncConfig:
    """
    Configuration for tracksync.

    Loads a YAML file (merged over the built-in defaults), then applies
    environment variable overrides. Typed accessors validate the values
    they return.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = self._default_config()
        if self.config_path:
            self.config = _deep_merge(self.config, self._load_config())
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise SyncConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SyncConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if config is not None and not isinstance(config, dict):
            raise SyncConfigError(f"Config root must be a mapping: {self.config_path}")
        return config or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "retry": {
                "max_retries": 3,
                "base_delay": 1.0,
                "max_delay": 30.0,
                "multiplier": 2.0,
                "jitter": True,
            },
            "circuit_breaker": {
                "threshold": 5,
                "reset_timeout": 300,
            },
            "detector": {
                "window_seconds": 300,
            },
            "sync": {
                "default_strategy": ResolutionStrategy.MERGE.value,
                "queue_failed_pushes": True,
                "max_workers": 4,
            },
            "paths": {
                "state_dir": ".tracksync",
                "local_dir": "work",
            },
            "remote": {
                "base_url": None,
                "email": None,
                "api_token": None,
                "timeout": 30,
            },
            "mappings": {
                "epic": {},
                "task": {},
                "custom_fields": {},
                "status": {},
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                section, name = key.split(".")
                self.config.setdefault(section, {})[name] = value

    def _number(self, key: str, minimum: float = 0, integer: bool = False) -> Any:
        value = self.get(key)
        try:
            number = int(value) if integer else float(value)
        except (TypeError, ValueError):
            raise SyncConfigError(f"{key} must be a number, got {value!r}")
        if number < minimum:
            raise SyncConfigError(f"{key} must be >= {minimum}, got {number}")
        return number

    def get_retry_config(self) -> RetryConfig:
        """Get retry configuration."""
        return RetryConfig(
            max_retries=self._number("retry.max_retries", integer=True),
            base_delay=self._number("retry.base_delay"),
            max_delay=self._number("retry.max_delay"),
            multiplier=self._number("retry.multiplier", minimum=1),
            jitter=bool(self.get("retry.jitter", True)),
        )

    def get_circuit_breaker_config(self) -> CircuitBreakerConfig:
        """Get circuit breaker configuration."""
        return CircuitBreakerConfig(
            threshold=self._number("circuit_breaker.threshold", minimum=1, integer=True),
            reset_timeout=self._number("circuit_breaker.reset_timeout"),
        )

    def get_window_seconds(self) -> float:
        """Get the concurrent-modification window for the detector."""
        return self._number("detector.window_seconds")

    def get_default_strategy(self) -> str:
        strategy = self.get("sync.default_strategy", ResolutionStrategy.MERGE.value)
        valid = [s.value for s in ResolutionStrategy]
        if strategy not in valid:
            raise SyncConfigError(
                f"Unknown strategy '{strategy}'. Valid: {', '.join(valid)}"
            )
        return strategy

    def get_sync_config(self) -> Dict[str, Any]:
        """Get sync runner configuration."""
        return {
            "default_strategy": self.get_default_strategy(),
            "queue_failed_pushes": bool(self.get("sync.queue_failed_pushes", True)),
            "max_workers": self._number("sync.max_workers", minimum=1, integer=True),
        }

    def get_state_dir(self) -> Path:
        return Path(self.get("paths.state_dir", ".tracksync"))

    def get_local_dir(self) -> Path:
        return Path(self.get("paths.local_dir", "work"))

    def get_remote_config(self) -> Dict[str, Any]:
        """Get remote connection configuration."""
        return self.config.get("remote", {})

    def get_status_map(self) -> StatusMap:
        """Build the status map, applying any configured table overrides."""
        tables = self.get("mappings.status", {}) or {}
        try:
            return StatusMap(
                remote_to_canonical=tables.get("remote_to_canonical"),
                canonical_to_remote=tables.get("canonical_to_remote"),
                local_to_canonical=tables.get("local_to_canonical"),
                canonical_to_local=tables.get("canonical_to_local"),
            )
        except ValueError as e:
            raise SyncConfigError(f"Invalid status mapping: {e}")

    def _field_specs(self, section: Dict[str, Any]) -> List[FieldSpec]:
        return [FieldSpec.from_dict(canonical, data) for canonical, data in section.items()]

    def get_field_mapper(self) -> FieldMapper:
        """
        Build the field mapper.

        Per-kind mappings override the default spec of the same canonical
        field; unmentioned fields keep their defaults.
        """
        mappings = {}
        for kind in EntityKind:
            overrides = {
                spec.canonical: spec
                for spec in self._field_specs(self.get(f"mappings.{kind.value}", {}) or {})
            }
            specs = [overrides.pop(spec.canonical, spec) for spec in DEFAULT_FIELD_SPECS]
            mappings[kind] = specs + list(overrides.values())
        custom_fields = self._field_specs(self.get("mappings.custom_fields", {}) or {})
        return FieldMapper(
            mappings=mappings,
            custom_fields=custom_fields,
            status_map=self.get_status_map(),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
