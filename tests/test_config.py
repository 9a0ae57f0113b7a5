"""
Tests for configuration loading.
"""

import logging

import pytest

from campslots.config import AppConfig


def test_defaults():
    config = AppConfig()

    assert config.backend == "json"
    assert config.defaults.slot_interval == 15
    assert config.defaults.slot_capacity == 5
    assert config.scheduling.max_retries == 3
    assert config.get_log_level() == logging.WARNING


def test_load_from_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "backend: firestore\n"
        "timezone: Asia/Kolkata\n"
        "log_level: info\n"
        "firebase:\n"
        "  project_id: demo\n"
        "  api_key: key\n"
        "defaults:\n"
        "  slot_interval: 10\n",
        encoding="utf-8",
    )

    config = AppConfig.load_from_yaml(config_path)

    assert config.firebase.project_id == "demo"
    assert config.log_level == "INFO"
    assert config.defaults.slot_interval == 10
    assert config.session_key() == "firestore:demo"


def test_session_file_defaults_next_to_data(tmp_path):
    config = AppConfig(data_file=tmp_path / "data.json")

    assert config.get_session_file() == tmp_path / "session.json"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "backend: [unclosed\n",
        "backend: firestore\n",
        "backend: postgres\n",
        "defaults:\n  slot_capacity: 0\n",
        "scheduling:\n  max_retries: 0\n",
        "log_level: LOUD\n",
        "timezone: Mars/Olympus\n",
    ],
)
def test_invalid_config(tmp_path, content):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        AppConfig.load_from_yaml(config_path)
