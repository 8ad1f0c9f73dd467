import os

import pytest
import yaml
from pydantic import ValidationError

from computeproof.config import DEFAULT_CONFIG_PATH, RetrySettings, Settings, load_settings


def test_load_settings_reads_yaml(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "MOCK_NUMBERS_API: true\n"
        "GPU_HOUR_RATE: 3.0\n"
        "RETRY:\n"
        "  max_attempts: 4\n"
        "  delay: 0.5\n"
    )

    settings = load_settings(str(config_file))
    assert settings.MOCK_NUMBERS_API is True
    assert settings.GPU_HOUR_RATE == 3.0
    assert settings.RETRY == RetrySettings(max_attempts=4, delay=0.5)


def test_overrides_win_over_file(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("GPU_HOUR_RATE: 3.0\n")
    assert load_settings(str(config_file), GPU_HOUR_RATE=1.0).GPU_HOUR_RATE == 1.0


def test_missing_config_file_uses_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yaml"), MOCK_NUMBERS_API=False)
    assert settings.ASSET_FILE_BASE_URL == "https://example.com/assets"
    assert settings.RETRY.max_attempts == 1


def test_malformed_config_file_raises(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("RETRY: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_settings(str(config_file))


def test_config_path_from_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "env.yaml"
    config_file.write_text("EXPLORER_BASE_URL: https://explorer.example/tx\n")
    monkeypatch.setenv("COMPUTEPROOF_CONFIG", str(config_file))
    assert load_settings().EXPLORER_BASE_URL == "https://explorer.example/tx"


def test_token_comes_from_environment(monkeypatch):
    monkeypatch.setenv("CAPTURE_TOKEN", "env-token")
    assert Settings().CAPTURE_TOKEN == "env-token"


def test_settings_are_immutable():
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.MOCK_NUMBERS_API = True


def test_environment_wins_over_config_file(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "MOCK_NUMBERS_API: false\n"
        "ASSET_FILE_BASE_URL: https://example.com/assets\n"
        "RETRY:\n"
        "  max_attempts: 4\n"
        "  delay: 0.5\n"
    )
    monkeypatch.setenv("MOCK_NUMBERS_API", "true")
    monkeypatch.setenv("ASSET_FILE_BASE_URL", "https://cdn.example.org/jobs")
    monkeypatch.setenv("RETRY__max_attempts", "2")

    settings = load_settings(str(config_file))
    assert settings.MOCK_NUMBERS_API is True
    assert settings.ASSET_FILE_BASE_URL == "https://cdn.example.org/jobs"
    assert settings.RETRY == RetrySettings(max_attempts=2, delay=0.5)


def test_environment_wins_over_default_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("COMPUTEPROOF_CONFIG", raising=False)
    monkeypatch.setenv("MOCK_NUMBERS_API", "true")
    monkeypatch.setenv("ASSET_FILE_BASE_URL", "https://cdn.example.org/jobs")

    assert os.path.isfile(DEFAULT_CONFIG_PATH)
    settings = load_settings()
    assert settings.MOCK_NUMBERS_API is True
    assert settings.ASSET_FILE_BASE_URL == "https://cdn.example.org/jobs"
    assert settings.GPU_HOUR_RATE == 2.5


def test_default_config_path_does_not_depend_on_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert os.path.isfile(DEFAULT_CONFIG_PATH)
