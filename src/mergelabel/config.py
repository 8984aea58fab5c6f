from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
import tomllib
from typing import cast


DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class RepoConfig:
    owner: str
    name: str
    conflict_label: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class PollingConfig:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    reconcile_on_timeout: bool = True


@dataclass(frozen=True)
class RuntimeConfig:
    max_workers: int = DEFAULT_MAX_WORKERS
    log_dir: Path | None = None


@dataclass(frozen=True)
class AppConfig:
    repo: RepoConfig
    github_token: str = field(repr=False)
    polling: PollingConfig = PollingConfig()
    runtime: RuntimeConfig = RuntimeConfig()


class ConfigError(ValueError):
    pass


def load_config(path: Path, *, environ: Mapping[str, str]) -> AppConfig:
    """Load a TOML config file; the token is read from the env var it names."""
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    repo_data = _require_table(data, "repo")
    polling_data = _optional_table(data, "polling") or {}
    runtime_data = _optional_table(data, "runtime") or {}

    repo = RepoConfig(
        owner=_require_str(repo_data, "owner"),
        name=_require_str(repo_data, "name"),
        conflict_label=_require_str(repo_data, "conflict_label"),
    )
    token_env = _str_with_default(repo_data, "token_env", DEFAULT_TOKEN_ENV)
    token = environ.get(token_env, "").strip()
    if not token:
        raise ConfigError(f"Environment variable {token_env} must hold a GitHub token")

    polling = PollingConfig(
        max_attempts=_int_with_default(polling_data, "max_attempts", DEFAULT_MAX_ATTEMPTS),
        interval_seconds=_number_with_default(
            polling_data, "interval_seconds", DEFAULT_INTERVAL_SECONDS
        ),
        reconcile_on_timeout=_bool_with_default(polling_data, "reconcile_on_timeout", True),
    )
    runtime = RuntimeConfig(
        max_workers=_int_with_default(runtime_data, "max_workers", DEFAULT_MAX_WORKERS),
        log_dir=_optional_path(runtime_data, "log_dir"),
    )
    return _validated(AppConfig(repo=repo, github_token=token, polling=polling, runtime=runtime))


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """Build config from the variables GitHub Actions exposes to a step."""
    repository = environ.get("GITHUB_REPOSITORY", "").strip()
    owner, sep, name = repository.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ConfigError("GITHUB_REPOSITORY must be set to owner/name")

    label_name = environ.get("INPUT_CONFLICT_LABEL_NAME", "").strip()
    if not label_name:
        raise ConfigError("INPUT_CONFLICT_LABEL_NAME is required and must be non-empty")

    token = environ.get("INPUT_GITHUB_TOKEN", "").strip() or environ.get(
        DEFAULT_TOKEN_ENV, ""
    ).strip()
    if not token:
        raise ConfigError(f"INPUT_GITHUB_TOKEN (or {DEFAULT_TOKEN_ENV}) is required")

    polling = PollingConfig(
        max_attempts=_env_int(environ, "INPUT_MAX_RETRIES", DEFAULT_MAX_ATTEMPTS),
        interval_seconds=_env_int(
            environ, "INPUT_WAIT_MS", int(DEFAULT_INTERVAL_SECONDS * 1000)
        )
        / 1000.0,
    )
    return _validated(
        AppConfig(
            repo=RepoConfig(owner=owner, name=name, conflict_label=label_name),
            github_token=token,
            polling=polling,
        )
    )


def _validated(config: AppConfig) -> AppConfig:
    if config.polling.max_attempts < 1:
        raise ConfigError("polling.max_attempts must be >= 1")
    if config.polling.interval_seconds < 0:
        raise ConfigError("polling.interval_seconds must be >= 0")
    if config.runtime.max_workers < 1:
        raise ConfigError("runtime.max_workers must be >= 1")
    return config


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _require_table(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] is required and must be a TOML table")
    return cast(dict[str, object], value)


def _optional_table(data: dict[str, object], key: str) -> dict[str, object] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a TOML table when provided")
    return cast(dict[str, object], value)


def _require_str(data: dict[str, object], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} is required and must be a non-empty string")
    return value.strip()


def _str_with_default(data: dict[str, object], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    return value.strip()


def _int_with_default(data: dict[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return value


def _number_with_default(data: dict[str, object], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _bool_with_default(data: dict[str, object], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean")
    return value


def _optional_path(data: dict[str, object], key: str) -> Path | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string if provided")
    return Path(value).expanduser()
