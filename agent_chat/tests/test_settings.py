import pytest
from pydantic import ValidationError

from agent_chat.config.settings import AgentChatSettings


def test_yaml_config_is_loaded(tmp_path, monkeypatch):
    cfg = tmp_path / "agent.yaml"
    cfg.write_text(
        "agent_base_url: http://yaml.test/\nstreaming_enabled: false\ntitle_max_chars: 12\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("AGENT_CONFIG_FILE", str(cfg))
    monkeypatch.delenv("AGENT_BASE_URL", raising=False)
    s = AgentChatSettings(_env_file=None)
    assert s.agent_base_url == "http://yaml.test"
    assert s.streaming_enabled is False
    assert s.title_max_chars == 12


def test_env_overrides_yaml(tmp_path, monkeypatch):
    cfg = tmp_path / "agent.yaml"
    cfg.write_text("agent_base_url: http://yaml.test\n", encoding="utf-8")
    monkeypatch.setenv("AGENT_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("AGENT_BASE_URL", "http://env.test")
    s = AgentChatSettings(_env_file=None)
    assert s.agent_base_url == "http://env.test"


def test_short_api_key_is_rejected(monkeypatch):
    monkeypatch.setenv("AGENT_API_KEY", "short")
    with pytest.raises(ValidationError):
        AgentChatSettings(_env_file=None)
