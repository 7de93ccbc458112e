import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests
from dateutil import parser as date_parser

from gnoduty.errors import ChainSetupError, NoUsableEndpointError, RpcError
from gnoduty.nodes import NodeEndpoint, NodeRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None


def parse_height(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class NodeStatus:
    """Decoded ``/status`` result."""

    network: str
    moniker: str
    catching_up: bool
    latest_block_height: int
    latest_block_time: Optional[datetime] = None
    validator_address: str = ""
    pub_key_type: str = ""
    pub_key_value: str = ""
    voting_power: int = 0

    @classmethod
    def from_json(cls, result: Dict[str, Any]) -> "NodeStatus":
        node_info = result.get("node_info") or {}
        sync_info = result.get("sync_info") or {}
        validator_info = result.get("validator_info") or {}
        pub_key = validator_info.get("pub_key") or {}
        return cls(
            network=node_info.get("network", ""),
            moniker=node_info.get("moniker", ""),
            catching_up=bool(sync_info.get("catching_up", False)),
            latest_block_height=parse_height(sync_info.get("latest_block_height")),
            latest_block_time=parse_time(sync_info.get("latest_block_time")),
            validator_address=validator_info.get("address", ""),
            pub_key_type=pub_key.get("@type", ""),
            pub_key_value=pub_key.get("value", ""),
            voting_power=parse_height(validator_info.get("voting_power")),
        )


@dataclass(frozen=True)
class Precommit:
    validator_address: str
    signature: str


@dataclass(frozen=True)
class Block:
    """Decoded ``/block`` result, reduced to what signature checks need."""

    height: int
    time: Optional[datetime]
    precommits: List[Precommit] = field(default_factory=list)

    @classmethod
    def from_json(cls, result: Dict[str, Any]) -> "Block":
        block = result.get("block")
        if not isinstance(block, dict):
            raise ValueError("block missing from response")
        header = block.get("header") or (result.get("block_meta") or {}).get("header") or {}
        last_commit = block.get("last_commit") or {}
        precommits = []
        # absent votes are encoded as null entries
        for vote in last_commit.get("precommits") or []:
            if not vote:
                continue
            precommits.append(
                Precommit(
                    validator_address=str(vote.get("validator_address") or ""),
                    signature=str(vote.get("signature") or ""),
                )
            )
        return cls(
            height=parse_height(header.get("height")),
            time=parse_time(header.get("time")),
            precommits=precommits,
        )


class RpcGateway:
    """
    Issues requests against a chain's endpoints with ordered failover.

    Endpoints that are not usable are skipped without any network call. A
    failing endpoint is passed over but not marked down here; only
    ``connect`` and the health prober change endpoint health.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.registry = registry
        self.timeout = timeout
        self.session = session or requests.Session()

    def request(self, endpoint: NodeEndpoint, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Query one endpoint and return the unwrapped ``result`` object."""
        url = f"{endpoint.url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            raise RpcError(endpoint.url, str(e)) from e
        except ValueError as e:
            raise RpcError(endpoint.url, f"invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise RpcError(endpoint.url, "unexpected response envelope")
        if body.get("error"):
            raise RpcError(endpoint.url, f"rpc error: {body['error']}")
        result = body.get("result")
        if not isinstance(result, dict):
            raise RpcError(endpoint.url, "response has no result")
        return result

    def status_of(self, endpoint: NodeEndpoint) -> NodeStatus:
        result = self.request(endpoint, "/status")
        try:
            return NodeStatus.from_json(result)
        except (AttributeError, TypeError, ValueError) as e:
            raise RpcError(endpoint.url, f"failed to decode status: {e}") from e

    def block_of(self, endpoint: NodeEndpoint, height: int) -> Block:
        result = self.request(endpoint, "/block", {"height": str(height)})
        try:
            return Block.from_json(result)
        except (AttributeError, TypeError, ValueError) as e:
            raise RpcError(endpoint.url, f"failed to decode block: {e}") from e

    def _failover(self, call, what: str):
        for endpoint in self.registry:
            if not endpoint.usable:
                continue
            try:
                return call(endpoint)
            except RpcError as e:
                logger.debug(f"{what} failed on {endpoint.url}, trying next: {e.reason}")
                continue
        raise NoUsableEndpointError(f"no usable endpoint for {what}")

    def fetch_status(self) -> NodeStatus:
        return self._failover(self.status_of, "status")

    def fetch_block(self, height: int) -> Block:
        return self._failover(lambda endpoint: self.block_of(endpoint, height), f"block {height}")

    def connect(self, chain_id: str, name: str = "") -> Tuple[NodeEndpoint, NodeStatus]:
        """
        Pick the first endpoint that answers, serves ``chain_id`` and is synced.

        Endpoints that fail a check on the way are marked down (and syncing
        when catching up). Raises ChainSetupError when none qualifies.
        """
        name = name or chain_id
        for endpoint in self.registry:
            if endpoint.down:
                continue

            try:
                status = self.status_of(endpoint)
            except RpcError as e:
                endpoint.mark_down(f"could not get status for {name}: {e.reason}")
                logger.warning(endpoint.last_msg)
                continue

            if status.network != chain_id:
                endpoint.mark_down(
                    f"chain id {status.network} on {endpoint.url} does not match, expected {chain_id}"
                )
                logger.warning(endpoint.last_msg)
                continue

            if status.catching_up:
                endpoint.mark_syncing(f"node is not synced, skipping {endpoint.url}", down=True)
                logger.warning(endpoint.last_msg)
                continue

            endpoint.mark_healthy()
            logger.info(f"{name} connected to Gnoland node: {endpoint.url}")
            return endpoint, status

        raise ChainSetupError(f"no usable Gnoland endpoints available for {chain_id}")
