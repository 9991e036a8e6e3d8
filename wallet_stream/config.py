"""
Wallet stream configuration.

Secrets and deployment knobs come from the environment (.env supported);
tunables live in DEFAULT_STREAM_CONFIG and can be overridden by a YAML file.
"""
import copy
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

load_dotenv()

HELIUS_API_KEYS = os.getenv("HELIUS_API_KEYS", "")
HELIUS_NETWORK = os.getenv("HELIUS_NETWORK", "mainnet")
WALLET_STREAM_CONFIG = os.getenv("WALLET_STREAM_CONFIG", "")
WATCHED_WALLETS = os.getenv("WATCHED_WALLETS", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_STREAM_CONFIG = {
    "network": "mainnet",
    "endpoints": {
        "websocket": "wss://{network}.helius-rpc.com/",
        "transactions": "https://api.helius.xyz/v0/transactions",
        "rpc": "https://{network}.helius-rpc.com/",
    },
    "http": {
        "timeout_seconds": 10,
    },
    "key_rotation": {
        "interval_seconds": 900,     # 15 minutes
        "max_calls_per_key": 100,
    },
    "rate_limit": {
        "min_interval_seconds": 1.2,
    },
    "cache": {
        "ttl_seconds": 300,
        "sweep_interval_seconds": 300,
    },
    "reconnect": {
        "initial_delay_seconds": 1.0,
        "max_delay_seconds": 30.0,
        "max_attempts": 5,
        "restart_delay_seconds": 1.0,
        "heartbeat_seconds": 30.0,
    },
    "classifier": {
        "min_sol_amount": 0.001,
    },
    "filter": {
        "extra_blacklisted_tokens": [],
    },
    "fallback_events": True,
    "stats_interval_seconds": 60,
}


def parse_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated env value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _deep_merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_stream_config(path: Optional[str] = None, overrides: Dict = None) -> Dict:
    """
    Build the effective configuration.

    Order: defaults, environment, YAML file, explicit overrides.

    Args:
        path: YAML file; defaults to $WALLET_STREAM_CONFIG when set
        overrides: Dict merged last (tests, embedding callers)

    Returns:
        Config dict including an `api_keys` list
    """
    config = copy.deepcopy(DEFAULT_STREAM_CONFIG)
    config["network"] = HELIUS_NETWORK
    config["api_keys"] = parse_list(HELIUS_API_KEYS)

    path = path or WALLET_STREAM_CONFIG
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
        config = _deep_merge(config, data)

    if overrides:
        config = _deep_merge(config, overrides)

    return config


def validate_config(config: Dict):
    """
    Reject configurations the service cannot run with.

    Raises:
        ConfigurationError: empty key pool, non-positive interval, or
            non-positive retry budget
    """
    keys = [k for k in config.get("api_keys") or [] if k]
    if not keys:
        raise ConfigurationError("No Helius API keys configured (set HELIUS_API_KEYS)")

    positive = [
        ("key_rotation", "interval_seconds"),
        ("key_rotation", "max_calls_per_key"),
        ("cache", "ttl_seconds"),
        ("cache", "sweep_interval_seconds"),
        ("reconnect", "initial_delay_seconds"),
        ("reconnect", "max_delay_seconds"),
        ("reconnect", "max_attempts"),
    ]
    for section, key in positive:
        value = config.get(section, {}).get(key, DEFAULT_STREAM_CONFIG[section][key])
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ConfigurationError(f"{section}.{key} must be a positive number, got {value!r}")

    min_interval = config.get("rate_limit", {}).get(
        "min_interval_seconds", DEFAULT_STREAM_CONFIG["rate_limit"]["min_interval_seconds"])
    if not isinstance(min_interval, (int, float)) or isinstance(min_interval, bool) or min_interval < 0:
        raise ConfigurationError(f"rate_limit.min_interval_seconds must be >= 0, got {min_interval!r}")

    stats_interval = config.get("stats_interval_seconds")
    if stats_interval is not None and (not isinstance(stats_interval, (int, float)) or stats_interval <= 0):
        raise ConfigurationError(f"stats_interval_seconds must be positive, got {stats_interval!r}")
