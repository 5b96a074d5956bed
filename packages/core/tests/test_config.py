"""Tests for configuration loading."""

import pytest

from hunkwise_core.config import load_config, load_guidelines


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["model"] == "anthropic"
    assert config["batch_limit"] == 60
    assert config["guidelines"] is None
    assert config["exclude"] == []
    assert config["review_draft_prs"] is False
    assert config["resume"] is True
    assert config["store"] == "comment"
    assert config["max_files"] == 150
    assert config["llm_concurrency"] == 6
    assert config["github_concurrency"] == 6
    assert config["retry_max_attempts"] == 3


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("model: openai\nbatch_limit: 30\nllm_concurrency: 2\nresume: false\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "openai"
    assert config["batch_limit"] == 30
    assert config["llm_concurrency"] == 2
    assert config["resume"] is False


def test_exclude_patterns_loaded(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("exclude:\n  - migrations/\n  - '*.lock'\n")
    config = load_config(config_path=str(cfg))
    assert "migrations/" in config["exclude"]
    assert "*.lock" in config["exclude"]


def test_retry_overrides_loaded(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("retry_per_error_type:\n  rate_limit: 8\n")
    config = load_config(config_path=str(cfg))
    assert config["retry_per_error_type"] == {"rate_limit": 8}


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["model"] == "anthropic"


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "anthropic"})
    assert config["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": None})
    assert config["model"] == "openai"


def test_custom_guidelines_path(tmp_path):
    guidelines_file = tmp_path / "my-guidelines.md"
    guidelines_file.write_text("# Custom Guidelines\n- Rule 1")
    cfg = tmp_path / ".hunkwise.yml"
    cfg.write_text(f"guidelines: {guidelines_file}\n")
    config = load_config(config_path=str(cfg))
    assert "Custom Guidelines" in load_guidelines(config)


def test_builtin_guidelines_loaded_as_fallback(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert len(load_guidelines(config)) > 0


def test_missing_custom_guidelines_raises(tmp_path):
    config = {"guidelines": str(tmp_path / "does-not-exist.md")}
    with pytest.raises(FileNotFoundError):
        load_guidelines(config)


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_mutable_defaults_are_not_shared(tmp_path):
    """Mutating one config's exclude list or retry table must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["exclude"].append("migrations/")
    config_a["retry_per_error_type"]["rate_limit"] = 9
    assert config_b["exclude"] == []
    assert config_b["retry_per_error_type"] == {}
