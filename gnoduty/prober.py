import logging
import threading
from typing import Optional

from gnoduty.errors import RpcError
from gnoduty.metrics import NODE_DOWN_GAUGE
from gnoduty.nodes import ChainState, NodeEndpoint
from gnoduty.rpc import RpcGateway

logger = logging.getLogger(__name__)


class HealthProber:
    """
    Re-tests every endpoint of a chain on a fixed period.

    Each tick starts one thread per endpoint, so a slow or failing node
    never holds up its siblings.
    """

    def __init__(
        self,
        name: str,
        chain_id: str,
        gateway: RpcGateway,
        chain_state: ChainState,
        interval: float = 60,
        stop_event: Optional[threading.Event] = None,
    ):
        self.name = name
        self.chain_id = chain_id
        self.gateway = gateway
        self.chain_state = chain_state
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.thread = None

    def start(self):
        self.thread = threading.Thread(
            target=self._probe_loop, name=f"prober-{self.name}", daemon=True
        )
        self.thread.start()

    def _probe_loop(self):
        while not self.stop_event.wait(self.interval):
            try:
                self.probe_all()
            except Exception:
                logger.exception(f"Error in health prober for {self.name}")

    def probe_all(self, wait: bool = True):
        """Probe all endpoints concurrently; optionally wait for the round."""
        threads = []
        for endpoint in self.gateway.registry:
            thread = threading.Thread(
                target=self.probe,
                args=(endpoint,),
                name=f"probe-{self.name}-{endpoint.url}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        if wait:
            for thread in threads:
                thread.join(self.gateway.timeout + 5)
        return threads

    def probe(self, endpoint: NodeEndpoint) -> None:
        try:
            status = self.gateway.status_of(endpoint)
        except RpcError as e:
            if endpoint.mark_down(f"{self.name} node {endpoint.url} is down: {e.reason}"):
                logger.warning(endpoint.last_msg)
            NODE_DOWN_GAUGE.labels(node=endpoint.url, network=self.chain_id).set(1)
            return

        if status.catching_up:
            endpoint.mark_syncing(f"{self.name} node {endpoint.url} is syncing")
            NODE_DOWN_GAUGE.labels(node=endpoint.url, network=self.chain_id).set(
                int(endpoint.down)
            )
            return

        if endpoint.mark_healthy():
            logger.info(f"{self.name} node {endpoint.url} is healthy")
        NODE_DOWN_GAUGE.labels(node=endpoint.url, network=self.chain_id).set(0)
        self.chain_state.clear_no_nodes()
