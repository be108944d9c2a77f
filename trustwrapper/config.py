"""
Configuration module for TrustWrapper.

Engine settings come from code, a mapping, or TRUSTWRAPPER_* environment
variables. Rule tables can be loaded from JSON files through a
thread-safe cached loader.
"""

import json
import os
import threading
import time
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .crypto import CryptoConfig
from .errors import ConfigurationError
from .hashing import object_hash
from .rules import RuleTables

ENV_PREFIX = "TRUSTWRAPPER_"
TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer") from None


# ============================================================
# Engine Configuration
# ============================================================

@dataclass
class EngineConfig:
    version: str = "2.0.0"
    max_latency_ms: int = 10
    max_batch_size: int = 100
    strict_mode: bool = True
    audit_enabled: bool = False
    degrade_on_error: bool = True
    deadline_ms: int = 1000
    max_amount_ceiling: float = 1000000
    max_leverage_ceiling: float = 100
    compliance_cache_size: int = 1024
    history_max_agents: int = 1000
    history_max_events: int = 256
    crypto: CryptoConfig = field(default_factory=CryptoConfig)

    def validate(self) -> None:
        """Raise ConfigurationError on out-of-range settings."""
        if not 1 <= self.max_latency_ms <= 10000:
            raise ConfigurationError("max_latency_ms must be within 1-10000")
        if not 1 <= self.max_batch_size <= 1000:
            raise ConfigurationError("max_batch_size must be within 1-1000")
        if self.deadline_ms <= 0:
            raise ConfigurationError("deadline_ms must be positive")
        if self.max_amount_ceiling <= 0 or self.max_leverage_ceiling <= 0:
            raise ConfigurationError("hard ceilings must be positive")
        if self.compliance_cache_size < 0:
            raise ConfigurationError("compliance_cache_size must not be negative")
        if self.history_max_agents < 1 or self.history_max_events < 1:
            raise ConfigurationError("history bounds must be at least 1")
        self.crypto.validate()

    def to_dict(self) -> Dict[str, Any]:
        d = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "crypto"}
        d["crypto"] = self.crypto.to_dict()
        return d

    def config_hash(self) -> str:
        return object_hash(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown engine settings: {', '.join(sorted(unknown))}")

        values = dict(data)
        crypto = values.pop("crypto", None)
        try:
            if isinstance(crypto, dict):
                values["crypto"] = CryptoConfig(**crypto)
            elif crypto is not None:
                values["crypto"] = crypto
            config = cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid engine config: {e}") from None
        config.validate()
        return config

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Build from TRUSTWRAPPER_* environment variables over defaults."""
        defaults = cls()
        config = cls(
            version=os.getenv(ENV_PREFIX + "VERSION", defaults.version),
            max_latency_ms=_env_int("MAX_LATENCY_MS", defaults.max_latency_ms),
            max_batch_size=_env_int("MAX_BATCH_SIZE", defaults.max_batch_size),
            strict_mode=_env_bool("STRICT_MODE", defaults.strict_mode),
            audit_enabled=_env_bool("AUDIT_ENABLED", defaults.audit_enabled),
            degrade_on_error=_env_bool("DEGRADE_ON_ERROR", defaults.degrade_on_error),
            deadline_ms=_env_int("DEADLINE_MS", defaults.deadline_ms),
            compliance_cache_size=_env_int("COMPLIANCE_CACHE_SIZE", defaults.compliance_cache_size),
            crypto=CryptoConfig(
                max_timestamp_age=_env_int("MAX_SIGNATURE_AGE", defaults.crypto.max_timestamp_age),
            ),
        )
        config.validate()
        return config


def log_level_from_env() -> str:
    return os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO")


def rules_path_from_env() -> Optional[str]:
    return os.getenv(ENV_PREFIX + "RULES_PATH") or None


# ============================================================
# Cached Rule Loading
# ============================================================

class CachedConfig:
    """
    Thread-safe cached JSON loader.
    Reloads files once their cached copy is older than the TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str, force_reload: bool = False) -> Dict[str, Any]:
        with self._lock:
            if not force_reload and path in self._cache and not self._is_stale(path):
                return self._cache[path]

            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Cannot load rules file {path}: {e}") from None

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data

    def invalidate(self, path: Optional[str] = None) -> None:
        """Invalidate cache for a specific path or all paths."""
        with self._lock:
            if path:
                self._cache.pop(path, None)
                self._timestamps.pop(path, None)
            else:
                self._cache.clear()
                self._timestamps.clear()


_rules_cache = CachedConfig(ttl_seconds=_env_int("CONFIG_CACHE_TTL", 60))


def load_rules_file(path: str, force_reload: bool = False) -> RuleTables:
    """Load and validate rule tables from a JSON file."""
    data = _rules_cache.get_json(path, force_reload=force_reload)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Rules file {path} must contain an object")
    return RuleTables.from_dict(data)


def invalidate_rules_cache() -> None:
    _rules_cache.invalidate()
