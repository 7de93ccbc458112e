import logging
from dataclasses import dataclass
from typing import Dict, List

import yaml

from gnoduty.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULTS = {
    "log_format": "json",
    "log_level": "INFO",
    "status_interval": 5,
    "health_interval": 60,
    "request_timeout": 10,
    "window": 100,
    "blocks": 512,
}

NUMERIC_KEYS = ("status_interval", "health_interval", "request_timeout", "window")


@dataclass(frozen=True)
class ChainIdentity:
    """Immutable per-chain settings, fixed once the chain is set up."""

    name: str
    chain_id: str
    address: str
    window: int = DEFAULTS["window"]
    blocks: int = DEFAULTS["blocks"]
    status_interval: float = DEFAULTS["status_interval"]
    health_interval: float = DEFAULTS["health_interval"]
    request_timeout: float = DEFAULTS["request_timeout"]


def is_gnoland_chain(chain_id: str) -> bool:
    return chain_id == "test6" or "gno" in chain_id


def load_config(path):
    with open(path, "r") as f:
        raw_config = yaml.safe_load(f)
    return normalize_config(raw_config)


def normalize_config(config):
    """
    Normalize a raw config dict and fill in process defaults.

    Chains are keyed by display name. Nodes may be plain URLs or dicts:

      chains:
        gnoland-test:
          chain_id: test6
          valoper_address: g1abc...
          window: 100
          nodes:
            - https://rpc1.example.com
            - url: https://rpc2.example.com/
    """
    if not isinstance(config, dict):
        raise ConfigError("config must be a mapping")

    normalized = {key: config.get(key, default) for key, default in DEFAULTS.items()}
    for key in NUMERIC_KEYS + ("blocks",):
        _check_positive(key, normalized[key])

    chains = config.get("chains")
    if not isinstance(chains, dict) or not chains:
        raise ConfigError("config must define at least one chain under 'chains'")

    normalized["chains"] = {}
    for name, chain_config in chains.items():
        if not isinstance(chain_config, dict):
            raise ConfigError(f"chain {name}: expected a mapping")

        chain_id = chain_config.get("chain_id")
        if not chain_id:
            raise ConfigError(f"chain {name}: chain_id is required")
        address = chain_config.get("valoper_address") or chain_config.get("address")
        if not address:
            raise ConfigError(f"chain {name}: valoper_address is required")
        if not is_gnoland_chain(chain_id):
            logger.warning(
                f"Chain {name} ({chain_id}) does not look like a Gnoland chain, "
                f"only the Gnoland RPC dialect is supported"
            )

        chain = {"chain_id": chain_id, "address": address}
        for key in NUMERIC_KEYS:
            chain[key] = chain_config.get(key, normalized[key])
            _check_positive(f"chain {name}: {key}", chain[key])
        chain["nodes"] = _normalize_nodes(name, chain_config.get("nodes", []))
        normalized["chains"][name] = chain

    return normalized


def _check_positive(label: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{label} must be a positive number, got {value!r}")


def _normalize_nodes(name: str, nodes) -> List[str]:
    urls = []
    for node in nodes or []:
        if isinstance(node, str):
            url = node
        elif isinstance(node, dict) and node.get("url"):
            url = node["url"]
        else:
            raise ConfigError(f"chain {name}: invalid node entry {node!r}")
        urls.append(url.rstrip("/"))
    if not urls:
        raise ConfigError(f"chain {name}: at least one node is required")
    return urls


def chain_identity(name: str, chain_config: Dict, blocks: int = DEFAULTS["blocks"]) -> ChainIdentity:
    return ChainIdentity(
        name=name,
        chain_id=chain_config["chain_id"],
        address=chain_config["address"],
        window=int(chain_config["window"]),
        blocks=int(blocks),
        status_interval=float(chain_config["status_interval"]),
        health_interval=float(chain_config["health_interval"]),
        request_timeout=float(chain_config["request_timeout"]),
    )
