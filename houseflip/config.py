"""
houseflip - Configuration

Resolution order (later wins):
  1. DEFAULT_CONFIG
  2. JSON config file (--config)
  3. Environment variables (a .env file in the working directory is loaded)
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "rpc_url": "https://api.mainnet-beta.solana.com",
    "rpc_timeout": 30,
    "commitment": "finalized",       # wager transactions must reach this level
    "house_keypair_path": "house.json",
    "data_dir": "data",
    "burns_path": "burns.json",
    "host": "0.0.0.0",
    "port": 8787,

    # House policy
    "win_chance": "0.5",
    "house_edge": "0.025",
    "max_stake_fraction": "0.10",
    "fee_buffer_lamports": 5000,

    # Payout confirmation poll
    "confirm_attempts": 10,
    "confirm_interval": 1.0,

    "burn_interval_sec": 150,
}

# env var -> (config key, type)
ENV_OVERRIDES = {
    "RPC_URL": ("rpc_url", str),
    "RPC_TIMEOUT": ("rpc_timeout", int),
    "COMMITMENT": ("commitment", str),
    "HOUSE_PATH": ("house_keypair_path", str),
    "DATA_DIR": ("data_dir", str),
    "BURNS_PATH": ("burns_path", str),
    "HOST": ("host", str),
    "PORT": ("port", int),
    "CONFIRM_ATTEMPTS": ("confirm_attempts", int),
    "CONFIRM_INTERVAL": ("confirm_interval", float),
    "BURN_INTERVAL_SEC": ("burn_interval_sec", int),
}

VALID_COMMITMENTS = ("processed", "confirmed", "finalized")


def load_config(path: Optional[str] = None, env: Optional[dict] = None) -> dict:
    """
    Build the effective configuration.

    Args:
        path: Optional JSON config file
        env: Environment mapping (defaults to os.environ after loading .env)

    Returns:
        Config dict
    """
    config = DEFAULT_CONFIG.copy()

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config.update(json.loads(config_path.read_text()))
        log.info(f"Loaded config from {config_path}")

    if env is None:
        load_dotenv()
        env = os.environ

    for var, (key, cast) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is not None and value != "":
            try:
                config[key] = cast(value)
            except ValueError:
                raise ValueError(f"Invalid value for {var}: {value!r}")

    if config["commitment"] not in VALID_COMMITMENTS:
        raise ValueError(f"Unsupported commitment: {config['commitment']}. "
                         f"Supported: {VALID_COMMITMENTS}")
    return config
