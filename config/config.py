import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from models.search import SourceId


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(name: str, default: float | None) -> float | None:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _env_int(name: str, default: int | None) -> int | None:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


@dataclass(frozen=True)
class SourceSettings:
    """Per-source overrides. None means "use the global default"."""

    api_key: str | None = None
    base_url: str | None = None
    detail_url: str | None = None
    timeout_s: float | None = None
    max_retries: int | None = None
    cache_ttl_s: float | None = None


class Config:
    """Configuration management for the legal search client."""

    def __init__(self, env_file: str | Path | None = None):
        """
        Initialize configuration with environment variables.

        Args:
            env_file: Optional .env path; defaults to the project root .env
        """
        env_path = Path(env_file) if env_file else Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)

        # Every source on law.go.kr accepts the same OC key
        self.LAW_API_KEY = _env_str("LAW_API_KEY")

        self.REQUEST_TIMEOUT_S = _env_float("LAW_REQUEST_TIMEOUT_S", 10.0)
        self.DISPATCH_TIMEOUT_S = _env_float("LAW_DISPATCH_TIMEOUT_S", 30.0)
        self.MAX_RETRIES = _env_int("LAW_MAX_RETRIES", 3)
        self.RETRY_BASE_DELAY_S = _env_float("LAW_RETRY_BASE_DELAY_S", 0.1)
        self.MAX_CONCURRENT = _env_int("LAW_MAX_CONCURRENT", None)

        self.CACHE_ENABLED = (_env_str("LAW_CACHE_ENABLED", "true") or "true").lower() == "true"
        self.CACHE_TTL_S = _env_float("LAW_CACHE_TTL_S", 86400.0)
        self.CACHE_DB_PATH = _env_str("LAW_CACHE_DB_PATH")

        self.sources: dict[SourceId, SourceSettings] = {
            source: self._load_source(source) for source in SourceId
        }

    @staticmethod
    def _load_source(source: SourceId) -> SourceSettings:
        prefix = f"LAW_{source.value.upper()}"
        return SourceSettings(
            api_key=_env_str(f"{prefix}_API_KEY"),
            base_url=_env_str(f"{prefix}_BASE_URL"),
            detail_url=_env_str(f"{prefix}_DETAIL_URL"),
            timeout_s=_env_float(f"{prefix}_TIMEOUT_S", None),
            max_retries=_env_int(f"{prefix}_MAX_RETRIES", None),
            cache_ttl_s=_env_float(f"{prefix}_CACHE_TTL_S", None),
        )

    def api_key_for(self, source: SourceId) -> str | None:
        return self.sources[source].api_key or self.LAW_API_KEY

    def timeout_for(self, source: SourceId) -> float:
        return self.sources[source].timeout_s or self.REQUEST_TIMEOUT_S

    def max_retries_for(self, source: SourceId) -> int:
        override = self.sources[source].max_retries
        return override if override is not None else self.MAX_RETRIES

    def cache_ttl_for(self, source: SourceId, registry_ttl: float | None = None) -> float:
        """Per-source env override, then the registry's source TTL, then LAW_CACHE_TTL_S."""
        override = self.sources[source].cache_ttl_s
        if override is not None:
            return override
        if registry_ttl is not None:
            return registry_ttl
        return self.CACHE_TTL_S

    def missing_keys(self) -> list[SourceId]:
        return sorted(
            (s for s in SourceId if not self.api_key_for(s)), key=lambda s: s.value
        )

    def validate(self) -> bool:
        """
        Report sources without an API key.

        Missing keys are not fatal: those sources fail with an auth error while
        the others proceed.

        Returns:
            bool: True if every source has a key
        """
        missing = self.missing_keys()
        if missing:
            names = ", ".join(s.value for s in missing)
            print(f"Warning: no API key for: {names}. Set LAW_API_KEY in the .env file.", file=sys.stderr)
            return False
        return True
