"""YAML config loader with dotted-key get/set."""

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from p2p.config.defaults import DEFAULT_ESCROW_TOKENS
from p2p.config.schema import P2PConfig


def load_config(path: str | Path) -> P2PConfig:
    """Load and validate config from a YAML file.

    If the escrow section lists no tokens, injects DEFAULT_ESCROW_TOKENS.
    """
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    escrow = raw.setdefault("escrow", {}) or {}
    if not escrow.get("tokens"):
        escrow["tokens"] = dict(DEFAULT_ESCROW_TOKENS)
    raw["escrow"] = escrow

    return P2PConfig(**raw)


def default_config() -> P2PConfig:
    """Config used when no YAML file is present."""
    return P2PConfig(escrow={"tokens": dict(DEFAULT_ESCROW_TOKENS)})


def config_hash(config: P2PConfig) -> str:
    """Compute a deterministic SHA256 hash of the config."""
    data = config.model_dump_json(indent=None)
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def get_config_value(config: P2PConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'orders.conflict_retries'."""
    obj: Any = config
    for part in dotted_key.split("."):
        if isinstance(obj, dict):
            if part not in obj:
                raise KeyError(f"Config key not found: {dotted_key}")
            obj = obj[part]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj


def set_config_value(config: P2PConfig, dotted_key: str, value: Any) -> P2PConfig:
    """Set a config value by dotted key path and re-validate.

    Returns a new P2PConfig instance.
    """
    data = json.loads(config.model_dump_json())
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        if part not in target:
            raise KeyError(f"Config key not found: {dotted_key}")
        target = target[part]

    old_value = target.get(parts[-1])
    if isinstance(value, str):
        if isinstance(old_value, bool):
            value = value.lower() in ("1", "true", "yes", "on")
        elif isinstance(old_value, int):
            value = int(value)
        elif isinstance(old_value, float):
            value = float(value)
    target[parts[-1]] = value
    return P2PConfig(**data)
