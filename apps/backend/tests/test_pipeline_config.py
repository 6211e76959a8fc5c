"""
Unit tests for PipelineConfig.from_env.
"""

import pytest

from core.pipeline_config import ALL_STRATEGIES, PipelineConfig

ENV_VARS = [
    "CAREERAI_STRATEGIES",
    "CAREERAI_HEADLESS_ENABLED",
    "CAREERAI_CACHE_TTL_SECONDS",
    "CAREERAI_AI_PROVIDER",
    "OPENROUTER_API_KEY",
    "OPENAI_API_KEY",
    "BRIGHT_DATA_USERNAME",
    "BRIGHT_DATA_PASSWORD",
    "BRIGHT_DATA_HOST",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    config = PipelineConfig.from_env()

    assert config.enabled_strategies == ALL_STRATEGIES
    assert config.cache_ttl_seconds == 86400
    assert config.min_content_length == 100
    assert config.ai_api_key is None
    assert config.proxy_url is None
    assert not config.is_enabled("headless_render")
    assert config.is_enabled("heuristic")


def test_strategy_list_and_headless_flag(monkeypatch):
    monkeypatch.setenv("CAREERAI_STRATEGIES", "Heuristic, headless_render, unknown")
    monkeypatch.setenv("CAREERAI_HEADLESS_ENABLED", "true")

    config = PipelineConfig.from_env()

    assert config.enabled_strategies == ["heuristic", "headless_render"]
    assert config.is_enabled("headless_render")
    assert not config.is_enabled("embedded_data")


def test_bad_number_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("CAREERAI_CACHE_TTL_SECONDS", "a day")
    assert PipelineConfig.from_env().cache_ttl_seconds == 86400


def test_ai_key_read_for_selected_provider(monkeypatch):
    monkeypatch.setenv("CAREERAI_AI_PROVIDER", "OpenAI")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-test")

    config = PipelineConfig.from_env()

    assert config.ai_provider == "openai"
    assert config.ai_api_key == "sk-test"


def test_proxy_url(monkeypatch):
    monkeypatch.setenv("BRIGHT_DATA_USERNAME", "brd-user")
    monkeypatch.setenv("BRIGHT_DATA_PASSWORD", "pw")
    monkeypatch.setenv("BRIGHT_DATA_HOST", "proxy.example:22225")

    assert PipelineConfig.from_env().proxy_url == "http://brd-user:pw@proxy.example:22225"
