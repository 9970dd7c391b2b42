"""Tests for server wiring."""

import json

from solders.keypair import Keypair

from houseflip.cli import build_coordinator, main
from houseflip.config import load_config


def test_build_coordinator(tmp_path) -> None:
    house = Keypair()
    key_path = tmp_path / "house.json"
    key_path.write_text(json.dumps(list(bytes(house))))
    config = load_config(env={
        "HOUSE_PATH": str(key_path),
        "DATA_DIR": str(tmp_path / "data"),
        "RPC_URL": "http://127.0.0.1:1",
    })

    coordinator = build_coordinator(config)
    assert coordinator.house_address == str(house.pubkey())
    assert coordinator.pending_intents() == 0
    assert str(coordinator.policy.payout_multiplier) == "1.95"
    assert (tmp_path / "data").is_dir()


def test_main_fails_without_keypair(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOUSE_PATH", str(tmp_path / "missing.json"))
    assert main(["--log-level", "ERROR"]) == 1


def test_main_fails_on_missing_config(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert main(["--config", str(tmp_path / "nope.json")]) == 1
