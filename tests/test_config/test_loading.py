from pathlib import Path

import pytest
from pydantic import ValidationError

import coworkbot.config as config_module
from coworkbot.config import AgentConfig, Config


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  provider: minimax\n  model: MiniMax-M2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "config.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  provider: openai\n"
            "  model: gpt-4o-mini\n"
            "agent:\n"
            "  max_iterations: 12\n"
            "  work_mode: code\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.provider == "openai"
    assert cfg.model.model == "gpt-4o-mini"
    assert cfg.agent.max_iterations == 12
    assert cfg.agent.work_mode == "code"


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text(
        (
            "tools:\n"
            "  authorized_folders:\n"
            "    - /srv/projects\n"
            "  shell:\n"
            "    timeout: 15\n"
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.tools.authorized_folders == ["/srv/projects"]
    assert cfg.tools.shell.timeout == 15
    assert cfg.tools.require_confirmation == ["write_file", "run_command"]


def test_missing_config_file_yields_defaults(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    cfg = Config.load()

    assert cfg.agent.max_history == 200
    assert cfg.agent.max_iterations == 30
    assert cfg.agent.max_sensitive_retries == 3
    assert cfg.attachments.max_images == 10
    assert cfg.attachments.max_image_bytes == 20 * 1024 * 1024
    assert cfg.streaming.token_batch_size == 10


def test_environment_overrides_nested_values(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("COWORKBOT_AGENT__MAX_ITERATIONS", "5")

    cfg = Config()

    assert cfg.agent.max_iterations == 5


def test_save_round_trips_through_yaml(tmp_path: Path):
    cfg = Config()
    cfg.model.provider = "openai"
    cfg.agent.todo_analysis_modes = ["cowork", "code"]
    target = tmp_path / "nested" / "config.yaml"

    cfg.save(target)
    loaded = Config.from_yaml(target)

    assert loaded.model.provider == "openai"
    assert loaded.agent.todo_analysis_modes == ["cowork", "code"]


def test_global_config_accessors(monkeypatch):
    cfg = Config()
    cfg.model.model = "claude-3-5-haiku-latest"
    monkeypatch.setattr(config_module, "_config", None)

    config_module.set_config(cfg)

    assert config_module.get_config() is cfg


def test_max_history_must_fit_one_tool_exchange():
    with pytest.raises(ValidationError):
        AgentConfig(max_history=3)

    assert AgentConfig(max_history=4).max_history == 4
