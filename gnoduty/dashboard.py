import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from gnoduty.metrics import (
    ACTIVE_ALERTS_GAUGE,
    HEALTHY_NODES_GAUGE,
    HEIGHT_GAUGE,
    MISSED_BLOCKS_GAUGE,
    NODES_GAUGE,
    SNAPSHOTS_DROPPED_COUNTER,
    VALIDATOR_INFO,
    WINDOW_GAUGE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of one chain handed to the dashboard."""

    name: str
    chain_id: str
    moniker: str
    bonded: bool
    jailed: bool
    tombstoned: bool
    missed: int
    window: int
    nodes: int
    healthy_nodes: int
    active_alerts: int
    height: int
    last_error: str = ""
    blocks: Tuple[int, ...] = field(default_factory=tuple)
    msg_type: str = "status"

    def to_dict(self) -> dict:
        return {
            "msgType": self.msg_type,
            "name": self.name,
            "chain_id": self.chain_id,
            "moniker": self.moniker,
            "bonded": self.bonded,
            "jailed": self.jailed,
            "tombstoned": self.tombstoned,
            "missed": self.missed,
            "window": self.window,
            "nodes": self.nodes,
            "healthy_nodes": self.healthy_nodes,
            "active_alerts": self.active_alerts,
            "height": self.height,
            "last_error": self.last_error,
            "blocks": [int(b) for b in self.blocks],
        }


class DashboardChannel:
    """
    Bounded hand-off queue between chain monitors and the dashboard.

    ``publish`` never blocks: when the queue is full the oldest pending
    snapshot is discarded to make room.
    """

    def __init__(self, maxsize: int = 1024):
        self._queue: "queue.Queue[StatusSnapshot]" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.dropped = 0

    def publish(self, snapshot: StatusSnapshot) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(snapshot)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self.dropped += 1
                    SNAPSHOTS_DROPPED_COUNTER.inc()

    def get(self, timeout: Optional[float] = None) -> StatusSnapshot:
        """Next snapshot; raises queue.Empty after ``timeout``."""
        return self._queue.get(timeout=timeout)

    def qsize(self) -> int:
        return self._queue.qsize()


class StatusBoard:
    """Consumes snapshots, keeps the latest per chain and exports metrics."""

    def __init__(self, channel: DashboardChannel):
        self.channel = channel
        self._latest: Dict[str, StatusSnapshot] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self.thread = None

    def start(self):
        self._stop.clear()
        self.thread = threading.Thread(target=self._consume_loop, name="status-board", daemon=True)
        self.thread.start()

    def stop(self):
        self._stop.set()
        if self.thread:
            self.thread.join()

    def _consume_loop(self):
        while not self._stop.is_set():
            try:
                snapshot = self.channel.get(timeout=1)
            except queue.Empty:
                continue
            try:
                self.apply(snapshot)
            except Exception as e:
                logger.error(f"Error applying snapshot for {snapshot.name}: {e}")

    def apply(self, snapshot: StatusSnapshot) -> None:
        with self._lock:
            self._latest[snapshot.name] = snapshot

        labels = {"chain": snapshot.name, "network": snapshot.chain_id}
        VALIDATOR_INFO.labels(chain=snapshot.name).info(
            {
                "moniker": snapshot.moniker,
                "bonded": str(snapshot.bonded).lower(),
                "jailed": str(snapshot.jailed).lower(),
                "tombstoned": str(snapshot.tombstoned).lower(),
            }
        )
        MISSED_BLOCKS_GAUGE.labels(**labels).set(snapshot.missed)
        WINDOW_GAUGE.labels(**labels).set(snapshot.window)
        HEIGHT_GAUGE.labels(**labels).set(snapshot.height)
        NODES_GAUGE.labels(**labels).set(snapshot.nodes)
        HEALTHY_NODES_GAUGE.labels(**labels).set(snapshot.healthy_nodes)
        ACTIVE_ALERTS_GAUGE.labels(**labels).set(snapshot.active_alerts)

    def latest(self, name: str) -> Optional[StatusSnapshot]:
        with self._lock:
            return self._latest.get(name)

    def snapshots(self) -> List[StatusSnapshot]:
        with self._lock:
            return [self._latest[name] for name in sorted(self._latest)]
