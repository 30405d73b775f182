from pathlib import Path

from toolstream.config import Settings
from toolstream.prompts import DEFAULT_SYSTEM_PROMPT


def test_settings_read_prefixed_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TOOLSTREAM_MAX_TOOL_ROUNDS", "5")
    monkeypatch.setenv("TOOLSTREAM_HOME", str(tmp_path))

    settings = Settings()

    assert settings.max_tool_rounds == 5
    assert settings.max_attempts == 4
    assert settings.retry_delays == (1.0, 2.0, 4.0)
    assert settings.session_root == tmp_path / "sessions"


def test_api_key_falls_back_to_anthropic_variable(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOOLSTREAM_API_KEY", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-fallback")

    assert Settings().resolved_api_key == "sk-fallback"
    assert Settings(api_key="sk-own").resolved_api_key == "sk-own"


def test_system_prompt_resolution(tmp_path: Path) -> None:
    prompt_file = tmp_path / "prompt.txt"
    prompt_file.write_text("from file", encoding="utf-8")

    assert Settings(system_prompt_file=prompt_file).resolved_system_prompt() == "from file"
    assert Settings(system_prompt="inline", system_prompt_file=prompt_file).resolved_system_prompt() == "inline"
    assert Settings(system_prompt_file=tmp_path / "missing.txt").resolved_system_prompt() == DEFAULT_SYSTEM_PROMPT
