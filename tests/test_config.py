"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from statement_recon.config import (
    ReconConfig,
    generate_default_config,
    get_default_config,
    load_config,
)
from statement_recon.utils.exceptions import ConfigurationError


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_defaults_without_file():
    config = load_config(None)
    assert config.matching.matched_threshold == 85
    assert config.matching.suggested_threshold == 70
    assert config.matching.date_window_days == 7
    assert config.ingestion.duplicate_policy == "skip"
    assert config.config_file_path is None


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml")
    assert config == ReconConfig()


def test_partial_file_is_merged(tmp_path):
    path = write(
        tmp_path,
        "matching:\n  date_window_days: 3\ndatabase:\n  url: sqlite:///other.db\n",
    )
    config = load_config(path)

    assert config.matching.date_window_days == 3
    assert config.matching.matched_threshold == 85
    assert config.database.url == "sqlite:///other.db"
    assert config.header.date_keywords == ["tanggal", "date", "tgl"]
    assert config.config_file_path == str(path)


def test_empty_file(tmp_path):
    assert load_config(write(tmp_path, "")).matching.matched_threshold == 85


@pytest.mark.parametrize(
    "text",
    [
        "matching:\n  suggested_threshold: 90\n",
        "matching:\n  matched_threshold: 120\n",
        "matching:\n  date_window_days: -1\n",
        "ingestion:\n  duplicate_policy: ask\n",
    ],
)
def test_inconsistent_settings_are_rejected(tmp_path, text):
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, text))


def test_wrong_types_are_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, "matching:\n  date_window_days: soon\n"))


def test_invalid_yaml(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, "matching: [unclosed\n"))


def test_non_mapping_root(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, "- just\n- a list\n"))


def test_generated_file_round_trips(tmp_path):
    path = tmp_path / "out" / "config.yaml"
    generate_default_config(path)

    assert yaml.safe_load(path.read_text()) == get_default_config()
    assert load_config(path).matching == ReconConfig().matching
