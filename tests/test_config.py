"""Tests for configuration loading."""

import json

import pytest

from houseflip.config import DEFAULT_CONFIG, load_config


def test_defaults() -> None:
    config = load_config(env={})
    assert config == DEFAULT_CONFIG
    assert config["commitment"] == "finalized"


def test_file_then_env(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"port": 9000, "rpc_url": "http://file"}))
    config = load_config(str(path), env={"RPC_URL": "http://env", "CONFIRM_INTERVAL": "0.5"})
    assert config["port"] == 9000
    assert config["rpc_url"] == "http://env"
    assert config["confirm_interval"] == 0.5


def test_empty_env_value_ignored() -> None:
    assert load_config(env={"PORT": ""})["port"] == 8787


def test_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.json"), env={})


def test_bad_env_value() -> None:
    with pytest.raises(ValueError, match="PORT"):
        load_config(env={"PORT": "eighty"})


def test_bad_commitment() -> None:
    with pytest.raises(ValueError, match="commitment"):
        load_config(env={"COMMITMENT": "instant"})
