import os
from typing import Optional

from core.pipeline_config import PipelineConfig


class Capabilities:
    """Optional-strategy flags as seen by a pipeline configuration."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig.from_env()

    def is_ai_enabled(self) -> bool:
        return bool(self.config.ai_api_key)

    def is_headless_enabled(self) -> bool:
        return self.config.headless_enabled

    def is_proxy_enabled(self) -> bool:
        return self.config.proxy_configured

    def enabled_strategies(self) -> list:
        return list(self.config.enabled_strategies)

    def get_status(self) -> dict:
        ai = self.is_ai_enabled()
        headless = self.is_headless_enabled()
        proxy = self.is_proxy_enabled()

        # Structural strategies always work; optional ones only degrade coverage
        if ai and headless:
            status = "green"
        else:
            status = "amber"

        return {
            "status": status,
            "components": {
                "ai": ai,
                "headless": headless,
                "proxy": proxy,
            },
        }

    def get_capabilities(self) -> dict:
        return {
            "ai": self.is_ai_enabled(),
            "headless": self.is_headless_enabled(),
            "proxy": self.is_proxy_enabled(),
            "strategies": self.enabled_strategies(),
        }


def get_env_presence() -> dict:
    required_vars = [
        "CAREERAI_ENV",
        "CAREERAI_AI_PROVIDER",
        "CAREERAI_AI_MODEL",
        "OPENROUTER_API_KEY",
        "OPENAI_API_KEY",
        "REQUESTY_API_KEY",
        "BRIGHT_DATA_USERNAME",
        "BRIGHT_DATA_PASSWORD",
        "BRIGHT_DATA_HOST",
        "CAREERAI_STRATEGIES",
        "CAREERAI_HEADLESS_ENABLED",
        "CAREERAI_CACHE_TTL_SECONDS",
        "CAREERAI_REQUEST_DEADLINE_SECONDS",
        "RATE_LIMIT_EXTRACT",
    ]

    return {var: bool(os.getenv(var)) for var in required_vars}
