from pathlib import Path

import pytest

import codegenius.config as config_module
from codegenius.config import Config
from codegenius.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    for name in ("CODEGENIUS_AGENT__MAX_TURNS", "CODEGENIUS_MODEL__PROVIDER", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = Config.load()

    assert cfg.model.provider == "openai"
    assert cfg.model.temperature == 0.7
    assert cfg.agent.max_context == 50
    assert cfg.agent.max_turns == 25
    assert cfg.workspace.path == "./output"


def test_load_prefers_local_config_yaml(tmp_path: Path):
    home_cfg = config_module.DEFAULT_CONFIG_PATH
    home_cfg.parent.mkdir(parents=True)
    home_cfg.write_text("model:\n  provider: ollama\n  model: llama3.2\n", encoding="utf-8")
    (tmp_path / "codegenius.yaml").write_text(
        "model:\n  provider: openai\n  model: gpt-4o\nworkspace:\n  path: ./proj\n",
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.provider == "openai"
    assert cfg.model.model == "gpt-4o"
    assert cfg.workspace.path == "./proj"


def test_load_falls_back_to_home_config():
    home_cfg = config_module.DEFAULT_CONFIG_PATH
    home_cfg.parent.mkdir(parents=True)
    home_cfg.write_text("model:\n  provider: ollama\n  model: llama3.2\n", encoding="utf-8")

    cfg = Config.load()

    assert cfg.model.provider == "ollama"
    assert cfg.model.model == "llama3.2"


def test_env_vars_fill_unset_sections(monkeypatch, tmp_path: Path):
    (tmp_path / "codegenius.yaml").write_text("model:\n  model: gpt-4o\n", encoding="utf-8")
    monkeypatch.setenv("CODEGENIUS_AGENT__MAX_TURNS", "3")

    cfg = Config.load()

    assert cfg.model.model == "gpt-4o"
    assert cfg.agent.max_turns == 3


def test_save_round_trip(tmp_path: Path):
    cfg = Config()
    cfg.model.provider = "ollama"
    cfg.agent.max_turns = 4
    target = tmp_path / "nested" / "out.yaml"

    cfg.save(target)
    loaded = Config.from_yaml(target)

    assert loaded.model.provider == "ollama"
    assert loaded.agent.max_turns == 4


def test_relative_workspace_is_anchored_to_cwd(tmp_path: Path):
    cfg = Config()
    cfg.workspace.path = "ws"

    assert cfg.resolved_workspace_path() == (tmp_path / "ws").resolve()
    assert cfg.resolved_workspace_path(tmp_path / "base") == (tmp_path / "base" / "ws").resolve()


def test_api_key_falls_back_to_openai_env(monkeypatch):
    cfg = Config()
    assert cfg.model.resolved_api_key() == ""

    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    assert cfg.model.resolved_api_key() == "env-key"

    cfg.model.api_key = "file-key"
    assert cfg.model.resolved_api_key() == "file-key"


def test_malformed_yaml_raises_configuration_error(tmp_path: Path):
    bad = tmp_path / "codegenius.yaml"
    bad.write_text("model: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config.load()


def test_non_mapping_yaml_raises_configuration_error(tmp_path: Path):
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="mapping"):
        Config.from_yaml(bad)
