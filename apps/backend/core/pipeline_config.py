"""
Pipeline configuration.

Everything the extraction cascade needs to know about its environment lives on
one ``PipelineConfig`` object that is built once at startup and passed to the
orchestrator. Nothing inside the pipeline reads environment variables directly.
"""

import os
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ALL_STRATEGIES = [
    "site_profile",
    "embedded_data",
    "heuristic",
    "ai_assisted",
    "headless_render",
]

AI_KEY_ENV = {
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
    "requesty": "REQUESTY_API_KEY",
}


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not an integer, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not a number, using {default}")
        return default


def _parse_strategies(raw: Optional[str]) -> List[str]:
    """Parse comma-separated strategy names, keeping only known ones."""
    if not raw:
        return list(ALL_STRATEGIES)
    names = [s.strip().lower() for s in raw.split(",") if s.strip()]
    unknown = [n for n in names if n not in ALL_STRATEGIES]
    if unknown:
        logger.warning(f"[config] Ignoring unknown strategies: {', '.join(unknown)}")
    return [n for n in names if n in ALL_STRATEGIES]


class PipelineConfig(BaseModel):
    """Settings threaded through the orchestrator and its strategies."""

    # Cache
    cache_ttl_seconds: int = 24 * 60 * 60
    cache_max_entries: int = 100

    # Acceptance
    min_content_length: int = 100
    minimal_summary_max_length: int = 200

    enabled_strategies: List[str] = Field(default_factory=lambda: list(ALL_STRATEGIES))
    headless_enabled: bool = False

    # Fetching
    initial_delay_seconds: float = 1.0
    fetch_timeout_seconds: float = 10.0
    escalated_timeout_seconds: float = 15.0
    max_fetch_attempts: int = 3
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = None
    proxy_host: str = "brd.superproxy.io:22225"
    follow_api_endpoints: bool = False

    # AI provider
    ai_provider: str = "openrouter"
    ai_api_key: Optional[str] = None
    ai_model: str = "anthropic/claude-3-haiku"
    ai_timeout_seconds: float = 45.0
    ai_max_input_chars: int = 15000
    ai_max_attempts: int = 2
    ai_max_calls: int = 1000

    # Headless render
    render_timeout_seconds: float = 45.0
    render_settle_ms: int = 2000
    render_marker_timeout_ms: int = 5000
    max_browsers: int = 1

    # Whole request
    request_deadline_seconds: float = 90.0
    max_concurrent_extractions: int = 4

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build configuration from environment variables."""
        provider = os.getenv("CAREERAI_AI_PROVIDER", "openrouter").lower()
        config = cls(
            cache_ttl_seconds=_env_int("CAREERAI_CACHE_TTL_SECONDS", 24 * 60 * 60),
            cache_max_entries=_env_int("CAREERAI_CACHE_MAX_ENTRIES", 100),
            min_content_length=_env_int("CAREERAI_MIN_CONTENT_LENGTH", 100),
            minimal_summary_max_length=_env_int("CAREERAI_MINIMAL_SUMMARY_MAX_LENGTH", 200),
            enabled_strategies=_parse_strategies(os.getenv("CAREERAI_STRATEGIES")),
            headless_enabled=_env_bool("CAREERAI_HEADLESS_ENABLED", False),
            initial_delay_seconds=_env_float("CAREERAI_INITIAL_DELAY_SECONDS", 1.0),
            fetch_timeout_seconds=_env_float("CAREERAI_FETCH_TIMEOUT_SECONDS", 10.0),
            escalated_timeout_seconds=_env_float("CAREERAI_ESCALATED_TIMEOUT_SECONDS", 15.0),
            max_fetch_attempts=_env_int("CAREERAI_MAX_FETCH_ATTEMPTS", 3),
            proxy_username=os.getenv("BRIGHT_DATA_USERNAME") or None,
            proxy_password=os.getenv("BRIGHT_DATA_PASSWORD") or None,
            proxy_host=os.getenv("BRIGHT_DATA_HOST", "brd.superproxy.io:22225"),
            follow_api_endpoints=_env_bool("CAREERAI_FOLLOW_API_ENDPOINTS", False),
            ai_provider=provider,
            ai_api_key=os.getenv(AI_KEY_ENV.get(provider, "OPENROUTER_API_KEY")) or None,
            ai_model=os.getenv("CAREERAI_AI_MODEL", "anthropic/claude-3-haiku"),
            ai_timeout_seconds=_env_float("CAREERAI_AI_TIMEOUT_SECONDS", 45.0),
            ai_max_input_chars=_env_int("CAREERAI_AI_MAX_INPUT_CHARS", 15000),
            ai_max_attempts=_env_int("CAREERAI_AI_MAX_ATTEMPTS", 2),
            ai_max_calls=_env_int("CAREERAI_AI_MAX_CALLS", 1000),
            render_timeout_seconds=_env_float("CAREERAI_RENDER_TIMEOUT_SECONDS", 45.0),
            render_settle_ms=_env_int("CAREERAI_RENDER_SETTLE_MS", 2000),
            render_marker_timeout_ms=_env_int("CAREERAI_RENDER_MARKER_TIMEOUT_MS", 5000),
            max_browsers=_env_int("CAREERAI_MAX_BROWSERS", 1),
            request_deadline_seconds=_env_float("CAREERAI_REQUEST_DEADLINE_SECONDS", 90.0),
            max_concurrent_extractions=_env_int("CAREERAI_MAX_CONCURRENT_EXTRACTIONS", 4),
        )

        logger.info(
            f"PipelineConfig: strategies={','.join(config.enabled_strategies)}, "
            f"headless={config.headless_enabled}, ai={'on' if config.ai_api_key else 'off'} "
            f"({config.ai_provider}), proxy={'on' if config.proxy_configured else 'off'}, "
            f"cache_ttl={config.cache_ttl_seconds}s"
        )
        return config

    @property
    def proxy_configured(self) -> bool:
        return bool(self.proxy_username and self.proxy_password)

    @property
    def proxy_url(self) -> Optional[str]:
        """Proxy URL for the unblocking service, or None when not configured."""
        if not self.proxy_configured:
            return None
        return f"http://{self.proxy_username}:{self.proxy_password}@{self.proxy_host}"

    def is_enabled(self, strategy: str) -> bool:
        if strategy == "headless_render" and not self.headless_enabled:
            return False
        return strategy in self.enabled_strategies
