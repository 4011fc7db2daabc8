from __future__ import annotations

from pathlib import Path

import pytest

from reply_flow.config import EngineConfig, EngineSettings, load_engine_config
from reply_flow.errors import ConfigurationError


def test_settings_from_env_reads_required_values():
    settings = EngineSettings.from_env(
        {
            "IBM_API_KEY": "key",
            "IBM_PROJECT_ID": "proj",
            "IBM_WATSON_ENDPOINT": "https://wx.test/",
            "REPLY_FLOW_CALL_TIMEOUT": "12.5",
        }
    )
    assert settings.endpoint == "https://wx.test"
    assert settings.model_id == "ibm/granite-3-8b-instruct"
    assert settings.call_timeout_seconds == 12.5
    settings.validate()


def test_validate_lists_every_missing_name():
    with pytest.raises(ConfigurationError) as excinfo:
        EngineSettings.from_env({}).validate()
    assert excinfo.value.missing == ("IBM_API_KEY", "IBM_WATSON_ENDPOINT", "IBM_PROJECT_ID")
    assert "IBM_API_KEY" in str(excinfo.value)


def test_bad_timeout_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        EngineSettings.from_env({"REPLY_FLOW_CALL_TIMEOUT": "soon"})


def test_from_env_uses_process_environment(monkeypatch):
    monkeypatch.setenv("IBM_API_KEY", "from-env")
    monkeypatch.setenv("IBM_MODEL_ID", "ibm/granite-13b-chat-v2")
    settings = EngineSettings.from_env()
    assert settings.api_key == "from-env"
    assert settings.model_id == "ibm/granite-13b-chat-v2"


def test_engine_config_from_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "decoding:\n"
        "  temperature: 0.7\n"
        "weights:\n"
        "  b: 1.2\n"
        "selection:\n"
        "  prefer_count: 4\n"
        "default_call_count: 5\n",
        encoding="utf-8",
    )
    config = load_engine_config(path)
    assert config.decoding.temperature == 0.7
    assert config.decoding.top_k == 60
    assert config.weights.b == 1.2
    assert config.weights.tau == 0.9
    assert config.selection.prefer_count == 4
    assert config.default_call_count == 5


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_engine_config(path) == EngineConfig()


@pytest.mark.parametrize(
    "data",
    [
        {"unknown": 1},
        {"weights": {"delta": 0.1}},
        {"selection": ["not", "a", "mapping"]},
    ],
)
def test_unknown_config_keys_are_rejected(data):
    with pytest.raises(ValueError):
        EngineConfig.from_mapping(data)


def test_shipped_engine_config_matches_defaults():
    path = Path(__file__).resolve().parents[2] / "configs" / "engine.yaml"
    assert load_engine_config(path) == EngineConfig()
