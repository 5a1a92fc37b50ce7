import pydantic
import pytest

from copilot_core.config.settings import Settings
from copilot_core.domain.models import BackendKind


def bot(**service):
    return {
        "name": "ai",
        "user_id": "bot-ai",
        "custom_instructions": "Be brief.",
        "service": {"type": "openaicompatible", "api_url": "https://api.example.com/v1/", **service},
    }


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("COPILOT_CONFIG_FILE", raising=False)
    cfg = Settings()
    assert cfg.http_timeout == 600.0
    assert cfg.enable_llm_trace is False
    assert cfg.stream_flush_chars == 80


def test_bot_configs_are_mapped():
    cfg = Settings(bots=[bot(api_key="sk-0123456789", default_model="gpt-4o")])
    (config,) = cfg.bot_configs()
    assert config.display_name == "ai"
    assert config.custom_instructions == "Be brief."
    assert config.backend.kind is BackendKind.OPENAI_COMPATIBLE
    assert config.backend.endpoint == "https://api.example.com/v1"
    assert config.backend.model_name == "gpt-4o"


def test_unknown_service_type_fails_at_load():
    with pytest.raises(pydantic.ValidationError):
        Settings(bots=[bot(type="mystery")])


def test_short_api_key_rejected():
    with pytest.raises(pydantic.ValidationError):
        Settings(bots=[bot(api_key="short")])


def test_yaml_config_file(monkeypatch, tmp_path):
    path = tmp_path / "copilot.yaml"
    path.write_text(
        "default_bot: helper\n"
        "enable_llm_trace: true\n"
        "bots:\n"
        "  - name: helper\n"
        "    user_id: bot-helper\n"
        "    service:\n"
        "      type: selfhosted\n"
        "      api_url: http://serge.local:8008\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("COPILOT_CONFIG_FILE", str(path))
    cfg = Settings()
    assert cfg.default_bot == "helper"
    assert cfg.enable_llm_trace is True
    assert cfg.bot_configs()[0].backend.kind is BackendKind.SELF_HOSTED_STREAMING


def test_env_overrides_yaml(monkeypatch, tmp_path):
    path = tmp_path / "copilot.yaml"
    path.write_text("http_timeout: 30\n", encoding="utf-8")
    monkeypatch.setenv("COPILOT_CONFIG_FILE", str(path))
    monkeypatch.setenv("HTTP_TIMEOUT", "45")
    assert Settings().http_timeout == 45.0
