"""Configuration for the working-context store.

Values come from ``ORCHESTR8R_*`` environment variables layered over
defaults. Durations are given in milliseconds in the environment and held in
seconds on ``ContextConfig``.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .models import CONTEXT_CONSTANTS

LOG_LEVELS = ("error", "warning", "info", "debug")

ENV_MAPPINGS = {
    "ORCHESTR8R_CONTEXT_PATH": "persistence_path",
    "ORCHESTR8R_LOCK_PATH": "lock_path",
    "ORCHESTR8R_LOCK_TIMEOUT": "lock_timeout",
    "ORCHESTR8R_MAX_RETRIES": "max_retries",
    "ORCHESTR8R_RETRY_DELAY": "retry_delay",
    "ORCHESTR8R_ENABLE_MEMORY_CACHE": "enable_memory_cache",
    "ORCHESTR8R_ENABLE_PROCESS_LOCK": "enable_process_lock",
    "ORCHESTR8R_ENABLE_GITHUB_VALIDATION": "enable_github_validation",
    "ORCHESTR8R_GITHUB_VALIDATION_TIMEOUT": "github_validation_timeout",
    "ORCHESTR8R_LOG_LEVEL": "log_level",
    "ORCHESTR8R_LOG_FILE": "log_file",
    "ORCHESTR8R_DEBUG": "debug",
    "GITHUB_TOKEN": "github_token",
    "GITHUB_API_URL": "github_api_url",
}

_MILLISECOND_FIELDS = {"lock_timeout", "retry_delay", "github_validation_timeout"}
_INT_FIELDS = {"max_retries"}
_BOOL_FIELDS = {"enable_memory_cache", "enable_process_lock", "enable_github_validation", "debug"}

# field -> (minimum, maximum), in the units held on ContextConfig
_RANGES = {
    "lock_timeout": (1.0, 60.0),
    "max_retries": (1, 10),
    "retry_delay": (0.1, 5.0),
    "github_validation_timeout": (1.0, 30.0),
}


@dataclass(slots=True)
class ContextConfig:
    """Settings consumed by the persistence manager, locks and validator."""

    persistence_path: Path
    lock_path: Path
    lock_timeout: float = CONTEXT_CONSTANTS["DEFAULT_LOCK_TIMEOUT"]
    max_retries: int = CONTEXT_CONSTANTS["DEFAULT_MAX_RETRIES"]
    retry_delay: float = 1.0
    enable_memory_cache: bool = True
    enable_process_lock: bool = False
    enable_github_validation: bool = True
    github_validation_timeout: float = 10.0
    log_level: str = "info"
    log_file: Optional[Path] = None
    debug: bool = False
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com/graphql"

    @classmethod
    def defaults(cls, base_dir: Path | str | None = None) -> "ContextConfig":
        """Default configuration rooted at ``base_dir`` (the working directory by default)."""
        storage_dir = _storage_dir(base_dir)
        return cls(
            persistence_path=storage_dir / CONTEXT_CONSTANTS["DEFAULT_CONTEXT_FILE"],
            lock_path=storage_dir / CONTEXT_CONSTANTS["DEFAULT_LOCK_FILE"],
        )

    @classmethod
    def from_env(
        cls,
        base_dir: Path | str | None = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ContextConfig":
        """Build configuration from environment variables layered over defaults."""
        environ = os.environ if environ is None else environ
        storage_dir = _storage_dir(base_dir)
        config = cls.defaults(base_dir)
        errors: List[str] = []

        for env_var, field_name in ENV_MAPPINGS.items():
            raw = environ.get(env_var)
            if raw is None or raw == "":
                continue
            try:
                value = _convert(field_name, raw, storage_dir)
            except ValueError as e:
                errors.append(f"{env_var}: {e}")
                continue
            setattr(config, field_name, value)

        errors.extend(config.validate())
        if errors:
            raise ValueError("Context configuration validation failed:\n" + "\n".join(errors))

        if config.debug:
            config.log_level = "debug"
        return config

    def validate(self) -> List[str]:
        """Validate ranges and enumerations and return any issues."""
        issues = []
        for field_name, (minimum, maximum) in _RANGES.items():
            value = getattr(self, field_name)
            if not minimum <= value <= maximum:
                issues.append(f"{field_name} must be between {minimum} and {maximum}, got {value}")
        if self.log_level not in LOG_LEVELS:
            issues.append(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")
        return issues

    def validate_deployment(self) -> Dict[str, Any]:
        """Check the environment this configuration will run in."""
        errors: List[str] = []
        warnings: List[str] = []

        context_dir = self.persistence_path.parent
        if not context_dir.exists():
            warnings.append(f"Context directory does not exist: {context_dir}")
        elif not os.access(context_dir, os.W_OK):
            errors.append(f"Context directory is not writable: {context_dir}")

        if self.enable_github_validation and not self.github_token:
            warnings.append("GitHub validation enabled but GITHUB_TOKEN not set")
        if self.max_retries > 5:
            warnings.append("High retry count may cause delays under contention")
        if not self.enable_process_lock:
            warnings.append("Cross-process locking disabled; concurrent processes use last-writer-wins")

        return {"is_valid": not errors, "errors": errors, "warnings": warnings}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, without secrets."""
        data = asdict(self)
        data["persistence_path"] = str(self.persistence_path)
        data["lock_path"] = str(self.lock_path)
        data["log_file"] = str(self.log_file) if self.log_file else None
        data["github_token"] = "***" if self.github_token else None
        return data


def _storage_dir(base_dir: Path | str | None) -> Path:
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    return base.expanduser().resolve() / CONTEXT_CONSTANTS["DEFAULT_STORAGE_DIR"]


def _convert(field_name: str, raw: str, storage_dir: Path) -> Any:
    if field_name in ("persistence_path", "lock_path"):
        # Only the file name is honoured so state always lands in the storage dir.
        return storage_dir / Path(raw).name
    if field_name == "log_file":
        return Path(raw).expanduser()
    if field_name in _MILLISECOND_FIELDS:
        return int(raw) / 1000.0
    if field_name in _INT_FIELDS:
        return int(raw)
    if field_name in _BOOL_FIELDS:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if field_name == "log_level":
        level = raw.strip().lower()
        return "warning" if level == "warn" else level
    return raw
