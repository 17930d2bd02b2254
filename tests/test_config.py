"""
Tests for settings loading.
"""
import json
import os

import pytest

from salesync.config import Settings, load_env_file, load_settings


def test_defaults_when_nothing_configured(tmp_path):
    settings = load_settings(tmp_path / "missing.json", env={})
    assert settings == Settings()
    assert settings.server_url == "http://localhost:3000/api"
    assert settings.request_timeout == 15.0


def test_file_then_env_override(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"server_url": "https://sales.example/api", "api_port": 9001}))

    settings = load_settings(path, env={"SALESYNC_API_PORT": "9100", "SALESYNC_REQUEST_TIMEOUT": "2.5"})

    assert settings.server_url == "https://sales.example/api"
    assert settings.api_port == 9100
    assert settings.request_timeout == 2.5


def test_bad_number_names_the_setting(tmp_path):
    with pytest.raises(ValueError, match="probe_interval"):
        load_settings(tmp_path / "missing.json", env={"SALESYNC_PROBE_INTERVAL": "soon"})


def test_env_file_does_not_override_existing(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\n"
        "SALESYNC_SERVER_URL='http://from-file/api'\n"
        "SALESYNC_LOG_LEVEL=DEBUG\n"
        "garbage line\n"
    )
    monkeypatch.setenv("SALESYNC_SERVER_URL", "")
    monkeypatch.delenv("SALESYNC_SERVER_URL")
    monkeypatch.setenv("SALESYNC_LOG_LEVEL", "WARNING")

    load_env_file(env_file)

    assert os.environ["SALESYNC_SERVER_URL"] == "http://from-file/api"
    assert os.environ["SALESYNC_LOG_LEVEL"] == "WARNING"
