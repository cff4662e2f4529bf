"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from tabswitch.daemon.config import Config
from tabswitch.errors import ConfigError


def test_defaults():
    config = Config()
    assert config.recency.compaction_interval == 1.0
    assert config.search.min_score == 0.0
    assert config.provider.factory == "tabswitch.daemon.providers:InMemoryTabProvider"
    assert config.server.socket_path.name == "daemon.sock"


def test_load_from_yaml(tmp_path):
    path = tmp_path / "tabswitch.yaml"
    path.write_text(yaml.safe_dump({
        "server": {"socket_path": str(tmp_path / "d.sock")},
        "recency": {"compaction_interval": 0.25},
        "provider": {"tabs": [{"id": 1, "title": "GitHub", "url": "https://github.com"}]},
    }))

    config = Config.load(path)

    assert config.server.socket_path == tmp_path / "d.sock"
    assert config.recency.compaction_interval == 0.25
    assert config.provider.tabs[0]["title"] == "GitHub"


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert Config.load(path) == Config()


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        Config.load(tmp_path / "nope.yaml")


@pytest.mark.parametrize("data", [
    {"recency": {"compaction_interval": 0}},
    {"search": {"min_score": 1.5}},
    ["not", "a", "mapping"],
])
def test_invalid_values(tmp_path, data):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump(data))
    with pytest.raises(ConfigError):
        Config.load(path)


def test_no_config_anywhere_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Config, "candidates", classmethod(lambda cls: [tmp_path / "missing.yaml"]))
    assert Config.load() == Config()


def test_save_round_trip(tmp_path):
    config = Config()
    config.server.socket_path = Path("/tmp/tsw-test.sock")
    path = tmp_path / "out" / "config.yaml"

    config.save(path)

    assert Config.load(path).server.socket_path == Path("/tmp/tsw-test.sock")
