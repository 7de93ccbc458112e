import logging
import threading
from typing import Dict, List, Optional, Sequence

import requests

from gnoduty.config import ChainIdentity, chain_identity
from gnoduty.dashboard import DashboardChannel, StatusSnapshot
from gnoduty.errors import ChainSetupError, GnodutyError
from gnoduty.ledger import LivenessLedger, ValidatorInfo, consensus_key
from gnoduty.metrics import BLOCKS_COUNTER, NODE_DOWN_GAUGE
from gnoduty.nodes import ChainState, NodeRegistry
from gnoduty.prober import HealthProber
from gnoduty.rpc import NodeStatus, RpcGateway
from gnoduty.signing import BlockStatus, check_signed

logger = logging.getLogger(__name__)

JOIN_GRACE = 5


class ChainMonitor:
    """Watches one chain: block signing loop plus endpoint health prober."""

    def __init__(
        self,
        identity: ChainIdentity,
        nodes: Sequence[str],
        channel: DashboardChannel,
        session: Optional[requests.Session] = None,
    ):
        self.identity = identity
        self.channel = channel
        self.registry = NodeRegistry(nodes)
        self.chain_state = ChainState()
        self.gateway = RpcGateway(self.registry, identity.request_timeout, session)
        self.stop_event = threading.Event()
        self.prober = HealthProber(
            identity.name,
            identity.chain_id,
            self.gateway,
            self.chain_state,
            interval=identity.health_interval,
            stop_event=self.stop_event,
        )
        self.ledger: Optional[LivenessLedger] = None
        self.last_processed_height = 0
        self.thread = None

    @property
    def name(self) -> str:
        return self.identity.name

    def connect(self) -> None:
        """Bootstrap against the first usable node, or flag the chain as having none."""
        try:
            endpoint, status = self.gateway.connect(self.identity.chain_id, self.name)
        except ChainSetupError as e:
            self.chain_state.set_no_nodes(str(e))
            logger.error(f"{self.name}: {e}")
            for node in self.registry:
                NODE_DOWN_GAUGE.labels(node=node.url, network=self.identity.chain_id).set(
                    int(node.down)
                )
            self.channel.publish(self.degraded_snapshot())
            raise

        self.chain_state.clear_no_nodes()
        NODE_DOWN_GAUGE.labels(node=endpoint.url, network=self.identity.chain_id).set(0)
        self._ensure_validator_info(status)

    def _ensure_validator_info(self, status: NodeStatus) -> None:
        if self.ledger is not None:
            return
        address = self.identity.address
        moniker = address
        # the answering node may be the validator itself
        if status.validator_address == address and status.moniker:
            moniker = status.moniker
        info = ValidatorInfo(
            moniker=moniker,
            window=self.identity.window,
            conspub=consensus_key(address),
        )
        self.ledger = LivenessLedger(info, self.identity.blocks)
        logger.info(f"Gnoland validator {address} ({moniker}) is being monitored on {self.name}")

    def start(self):
        self.stop_event.clear()
        logger.info(f"{self.identity.chain_id} starting Gnoland block monitoring")
        self.thread = threading.Thread(
            target=self._monitor_loop, name=f"monitor-{self.name}", daemon=True
        )
        self.thread.start()
        self.prober.start()

    def stop(self):
        self.stop_event.set()
        # a tick blocked in requests finishes within one timeout per endpoint
        timeout = len(self.registry) * self.identity.request_timeout + JOIN_GRACE
        for thread in (self.thread, self.prober.thread):
            if thread:
                thread.join(timeout)
                if thread.is_alive():
                    logger.warning(f"{thread.name} still running after {timeout:.0f}s, leaving it")

    def _monitor_loop(self):
        while not self.stop_event.wait(self.identity.status_interval):
            try:
                self.tick()
            except Exception:
                logger.exception(f"Error in monitor loop for {self.name}")

    def tick(self) -> Optional[StatusSnapshot]:
        """Run one polling step; returns the emitted snapshot, if any."""
        if self.chain_state.no_nodes:
            return None

        try:
            status = self.gateway.fetch_status()
        except GnodutyError as e:
            logger.error(f"{self.name} error getting status: {e}")
            return None

        if status.catching_up:
            return None

        self._ensure_validator_info(status)
        height = status.latest_block_height
        if height > self.last_processed_height:
            logger.info(f"{self.identity.chain_id} block {height}")
            outcome = self.check_block(height)
            self.ledger.record_outcome(outcome)
            BLOCKS_COUNTER.labels(
                chain=self.name, network=self.identity.chain_id, status=outcome.name.lower()
            ).inc()
            self.last_processed_height = height

        snapshot = self.snapshot(height)
        self.channel.publish(snapshot)
        return snapshot

    def check_block(self, height: int) -> BlockStatus:
        address = self.identity.address
        try:
            block = self.gateway.fetch_block(height)
        except GnodutyError as e:
            logger.error(f"{self.identity.chain_id} error getting block {height}: {e}")
            return BlockStatus.UNKNOWN

        logger.debug(
            f"{self.identity.chain_id} block {height} has {len(block.precommits)} precommits, "
            f"looking for validator {address}"
        )
        outcome = check_signed(block, address)
        if outcome is BlockStatus.SIGNED:
            logger.info(f"{self.identity.chain_id} validator {address} SIGNED block {height}")
        else:
            logger.warning(f"{self.identity.chain_id} validator {address} MISSED block {height}")
        return outcome

    def snapshot(self, height: int) -> StatusSnapshot:
        info, blocks = self.ledger.view()
        return StatusSnapshot(
            name=self.name,
            chain_id=self.identity.chain_id,
            moniker=info.moniker,
            bonded=info.bonded,
            jailed=info.jailed,
            tombstoned=info.tombstoned,
            missed=info.missed,
            window=info.window,
            nodes=len(self.registry),
            healthy_nodes=self.registry.healthy_count(),
            active_alerts=0,
            height=height,
            last_error="",
            blocks=tuple(int(b) for b in blocks),
        )

    def degraded_snapshot(self) -> StatusSnapshot:
        blocks = self.ledger.blocks() if self.ledger is not None else ()
        return StatusSnapshot(
            name=self.name,
            chain_id=self.identity.chain_id,
            moniker="Unknown",
            bonded=False,
            jailed=False,
            tombstoned=False,
            missed=0,
            window=0,
            nodes=len(self.registry),
            healthy_nodes=0,
            active_alerts=1,
            height=0,
            last_error=self.chain_state.last_error,
            blocks=tuple(int(b) for b in blocks),
        )


class MonitorManager:
    """Runs a ChainMonitor for every configured chain."""

    def __init__(self, config: dict, channel: DashboardChannel):
        self.config = config
        self.channel = channel
        self.monitors: Dict[str, ChainMonitor] = {}

    def build(self) -> List[ChainMonitor]:
        for name, chain_config in self.config["chains"].items():
            identity = chain_identity(name, chain_config, self.config.get("blocks", 512))
            self.monitors[name] = ChainMonitor(identity, chain_config["nodes"], self.channel)
        return list(self.monitors.values())

    def start(self):
        if not self.monitors:
            self.build()
        for monitor in self.monitors.values():
            try:
                monitor.connect()
            except ChainSetupError:
                # the prober can still bring a node back
                logger.warning(f"{monitor.name} started without a usable node")
            monitor.start()
        logger.info(f"Started monitoring for {len(self.monitors)} chains")

    def stop(self):
        for monitor in self.monitors.values():
            monitor.stop()
