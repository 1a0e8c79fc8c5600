"""Configuration loading for the panel service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

MIN_SECRET_LENGTH = 32

_ENV_OVERRIDES: Dict[str, str] = {
    "PANEL_DB_PATH": "database_path",
    "PANEL_HOST": "host",
    "PANEL_PORT": "port",
    "PANEL_TOKEN_SECRET": "token_secret",
    "PANEL_TOKEN_TTL": "token_ttl",
    "PANEL_UPLOAD_DIR": "upload_dir",
    "PANEL_MAX_UPLOAD_BYTES": "max_upload_bytes",
    "PANEL_PASSWORD_ROUNDS": "password_rounds",
    "PANEL_DB_TIMEOUT": "db_timeout",
}

_PATH_FIELDS = {"database_path", "upload_dir"}
_INT_FIELDS = {
    "port",
    "token_ttl",
    "max_upload_bytes",
    "password_rounds",
    "default_page_size",
    "max_page_size",
}
_FLOAT_FIELDS = {"db_timeout"}


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, constructed once at startup."""

    token_secret: str = field(repr=False)
    database_path: Path = field(default_factory=lambda: _project_root() / "data" / "panel.sqlite3")
    upload_dir: Path = field(default_factory=lambda: _project_root() / "data" / "uploads")
    host: str = "0.0.0.0"
    port: int = 8000
    token_ttl: int = 8 * 60 * 60
    max_upload_bytes: int = 25 * 1024 * 1024
    password_rounds: int = 600_000
    default_page_size: int = 50
    max_page_size: int = 200
    db_timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.token_secret or len(self.token_secret) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"Token signing secret must be at least {MIN_SECRET_LENGTH} characters. "
                "Set PANEL_TOKEN_SECRET."
            )
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if self.token_ttl < 0:
            raise ValueError("token_ttl must not be negative")
        if self.max_upload_bytes < 1:
            raise ValueError("max_upload_bytes must be positive")
        if self.password_rounds < 1:
            raise ValueError("password_rounds must be positive")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be between 1 and max_page_size")
        if self.db_timeout <= 0:
            raise ValueError("db_timeout must be positive")

    def with_overrides(self, **changes: Any) -> "Settings":
        return replace(self, **changes)


def _coerce(name: str, value: Any, *, source: str, base_path: Optional[Path] = None) -> Any:
    if name in _PATH_FIELDS:
        path = Path(str(value)).expanduser()
        if not path.is_absolute() and base_path is not None:
            path = base_path / path
        return path.resolve(strict=False)
    if name in _INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{source} must be an integer, got {value!r}") from exc
    if name in _FLOAT_FIELDS:
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{source} must be a number, got {value!r}") from exc
    return str(value)


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    known = {item.name for item in fields(Settings)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    base_path = config_path.parent
    return {
        key: _coerce(key, value, source=f"{config_path}:{key}", base_path=base_path)
        for key, value in raw.items()
    }


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from defaults, an optional YAML file and the environment."""

    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if config_path is None and env.get("PANEL_CONFIG"):
        config_path = Path(env["PANEL_CONFIG"]).expanduser()
    if config_path is not None:
        values.update(_read_config_file(config_path.resolve(strict=False)))

    for variable, name in _ENV_OVERRIDES.items():
        raw = env.get(variable)
        if raw is None or not raw.strip():
            continue
        values[name] = _coerce(name, raw.strip(), source=variable)

    if "token_secret" not in values:
        raise ValueError("No token signing secret configured. Set PANEL_TOKEN_SECRET.")

    return Settings(**values)


__all__ = ["MIN_SECRET_LENGTH", "Settings", "load_settings"]
