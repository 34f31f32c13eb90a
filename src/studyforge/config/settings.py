"""Typed settings loader for studyforge."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Tuple
import json
import os


_MISSING = object()
_VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_VALID_PROVIDERS = ("openai", "deepseek")
_VALID_BACKENDS = ("http", "sdk")


class SettingsError(ValueError):
    """Raised when settings cannot be loaded or validated."""


@dataclass(frozen=True)
class ProviderSettings:
    name: Optional[str] = None
    api_key_env: str = "STUDYFORGE_API_KEY"
    model: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout_seconds: float = 30.0
    backend: str = "http"

    def __post_init__(self) -> None:
        name = self.name.strip().lower() if self.name else None
        if name == "":
            name = None
        if name is not None and name not in _VALID_PROVIDERS:
            raise SettingsError("provider.name must be 'openai' or 'deepseek'.")

        api_key_env = self.api_key_env.strip()
        if not api_key_env:
            raise SettingsError("provider.api_key_env cannot be empty.")

        if self.max_tokens <= 0:
            raise SettingsError("provider.max_tokens must be > 0.")

        if not 0.0 <= self.temperature <= 2.0:
            raise SettingsError("provider.temperature must be between 0.0 and 2.0.")

        if self.timeout_seconds <= 0:
            raise SettingsError("provider.timeout_seconds must be > 0.")

        backend = self.backend.strip().lower()
        if backend not in _VALID_BACKENDS:
            raise SettingsError("provider.backend must be 'http' or 'sdk'.")

        model = self.model.strip() if self.model else None
        base_url = self.base_url.strip() if self.base_url else None

        object.__setattr__(self, "name", name)
        object.__setattr__(self, "api_key_env", api_key_env)
        object.__setattr__(self, "backend", backend)
        object.__setattr__(self, "model", model or None)
        object.__setattr__(self, "base_url", base_url or None)


@dataclass(frozen=True)
class DocumentSettings:
    chunk_size: int = 4000
    merge_threshold: int = 4000
    max_concurrency: Optional[int] = None

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise SettingsError("documents.chunk_size must be > 0.")

        if self.merge_threshold <= 0:
            raise SettingsError("documents.merge_threshold must be > 0.")

        if self.max_concurrency is not None and self.max_concurrency <= 0:
            raise SettingsError("documents.max_concurrency must be > 0 when set.")


@dataclass(frozen=True)
class RuntimeSettings:
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        log_level = self.log_level.strip().upper()
        if log_level not in _VALID_LOG_LEVELS:
            raise SettingsError(
                "runtime.log_level must be one of: " + ", ".join(sorted(_VALID_LOG_LEVELS))
            )

        object.__setattr__(self, "log_level", log_level)


@dataclass(frozen=True)
class AppSettings:
    provider: ProviderSettings
    documents: DocumentSettings
    runtime: RuntimeSettings


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppSettings:
    """Load validated settings from JSON config and environment overrides."""

    env = dict(environ) if environ is not None else dict(os.environ)
    config = _load_config(config_path)

    def read(section: str, key: str, caster: Callable[[Any], Any], default: Any = _MISSING) -> Any:
        return _read_value(
            config,
            env,
            section=section,
            key=key,
            env_key=f"STUDYFORGE_{section.upper()}_{key.upper()}",
            caster=caster,
            default=default,
        )

    provider = ProviderSettings(
        name=read("provider", "name", _as_optional_str, None),
        api_key_env=read("provider", "api_key_env", _as_str, "STUDYFORGE_API_KEY"),
        model=read("provider", "model", _as_optional_str, None),
        base_url=read("provider", "base_url", _as_optional_str, None),
        temperature=read("provider", "temperature", _as_float, 0.7),
        max_tokens=read("provider", "max_tokens", _as_int, 1000),
        timeout_seconds=read("provider", "timeout_seconds", _as_float, 30.0),
        backend=read("provider", "backend", _as_str, "http"),
    )

    documents = DocumentSettings(
        chunk_size=read("documents", "chunk_size", _as_int, 4000),
        merge_threshold=read("documents", "merge_threshold", _as_int, 4000),
        max_concurrency=read("documents", "max_concurrency", _as_optional_int, None),
    )

    runtime = RuntimeSettings(
        log_level=read("runtime", "log_level", _as_str, "INFO"),
    )

    return AppSettings(provider=provider, documents=documents, runtime=runtime)


def resolve_env_secret(env_name: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Resolve a secret value from environment by indirection key."""

    env = environ if environ is not None else os.environ
    value = env.get(env_name)
    if value is None:
        raise SettingsError(f"Required secret environment variable '{env_name}' is not set.")

    if not value.strip():
        raise SettingsError(f"Secret environment variable '{env_name}' cannot be empty.")

    return value


def settings_summary(settings: AppSettings) -> dict:
    """Render redacted settings for diagnostics."""

    return {
        "provider": {
            "name": settings.provider.name,
            "api_key_env": settings.provider.api_key_env,
            "model": settings.provider.model,
            "base_url": settings.provider.base_url,
            "temperature": settings.provider.temperature,
            "max_tokens": settings.provider.max_tokens,
            "timeout_seconds": settings.provider.timeout_seconds,
            "backend": settings.provider.backend,
        },
        "documents": {
            "chunk_size": settings.documents.chunk_size,
            "merge_threshold": settings.documents.merge_threshold,
            "max_concurrency": settings.documents.max_concurrency,
        },
        "runtime": {
            "log_level": settings.runtime.log_level,
        },
    }


def _load_config(config_path: Optional[Path]) -> Mapping[str, Any]:
    if config_path is None:
        return {}

    resolved = config_path.expanduser()
    if not resolved.exists():
        raise SettingsError(f"Config file does not exist: {resolved}")

    try:
        with resolved.open("r", encoding="utf-8") as handle:
            loaded = json.load(handle)
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Config file is not valid JSON: {resolved}") from exc

    if not isinstance(loaded, dict):
        raise SettingsError("Config root must be an object.")

    return loaded


def _read_value(
    config: Mapping[str, Any],
    environ: Mapping[str, str],
    *,
    section: str,
    key: str,
    env_key: str,
    caster: Callable[[Any], Any],
    default: Any = _MISSING,
) -> Any:
    raw_value, source = _resolve_raw_value(
        config=config,
        environ=environ,
        section=section,
        key=key,
        env_key=env_key,
        default=default,
    )

    try:
        return caster(raw_value)
    except SettingsError:
        raise
    except (TypeError, ValueError) as exc:
        raise SettingsError(
            f"Invalid value for {section}.{key} from {source}: {raw_value!r}"
        ) from exc


def _resolve_raw_value(
    *,
    config: Mapping[str, Any],
    environ: Mapping[str, str],
    section: str,
    key: str,
    env_key: str,
    default: Any,
) -> Tuple[Any, str]:
    env_value = environ.get(env_key)
    if env_value not in (None, ""):
        return env_value, "environment"

    section_map = config.get(section)
    if section_map is not None and not isinstance(section_map, Mapping):
        raise SettingsError(f"Config section '{section}' must be an object.")

    if isinstance(section_map, Mapping) and key in section_map:
        return section_map[key], "config"

    if default is not _MISSING:
        return default, "default"

    raise SettingsError(
        f"Missing required setting '{section}.{key}'. "
        f"Provide it in config or via '{env_key}'."
    )


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise SettingsError("Value cannot be empty.")
        return text

    raise SettingsError("Expected string value.")


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text if text else None
    raise SettingsError("Expected string value.")


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise SettingsError("Boolean is not a valid integer value.")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        return int(value.strip())

    raise SettingsError("Expected integer value.")


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return _as_int(value)


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise SettingsError("Boolean is not a valid float value.")

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        return float(value.strip())

    raise SettingsError("Expected float value.")
