"""Endpoint registry and per-endpoint health state.

All mutable state here is shared between the monitor loop and the health
prober threads, so every read and write goes through a lock.
"""

import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional, Sequence, Tuple

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class NodeState(enum.Enum):
    HEALTHY = "healthy"
    DOWN = "down"
    SYNCING = "syncing"


@dataclass(frozen=True)
class NodeHealth:
    """
    Health of one endpoint.

    ``since`` is set exactly while the endpoint is out of rotation because of
    a failure. A SYNCING endpoint keeps ``since`` when it was down before it
    started catching up, and has none when it fell behind while healthy.
    """

    state: NodeState = NodeState.HEALTHY
    since: Optional[datetime] = None
    reason: str = ""

    @property
    def down(self) -> bool:
        return self.state is NodeState.DOWN or self.since is not None

    @property
    def syncing(self) -> bool:
        return self.state is NodeState.SYNCING

    @property
    def usable(self) -> bool:
        return self.state is NodeState.HEALTHY


class NodeEndpoint:
    """One RPC candidate for a chain."""

    def __init__(self, url: str):
        self.url = url.rstrip("/")
        self._lock = threading.Lock()
        self._health = NodeHealth()
        self._was_down = False

    def __repr__(self):
        return f"NodeEndpoint({self.url!r}, {self.health.state.value})"

    @property
    def health(self) -> NodeHealth:
        with self._lock:
            return self._health

    @property
    def down(self) -> bool:
        return self.health.down

    @property
    def syncing(self) -> bool:
        return self.health.syncing

    @property
    def usable(self) -> bool:
        return self.health.usable

    @property
    def down_since(self) -> datetime:
        return self.health.since or EPOCH

    @property
    def last_msg(self) -> str:
        return self.health.reason

    @property
    def was_down(self) -> bool:
        with self._lock:
            return self._was_down

    def mark_down(self, reason: str, now: Optional[datetime] = None) -> bool:
        """Take the endpoint out of rotation. Returns False if it already was."""
        if not reason:
            raise ValueError("a down endpoint needs a reason")
        with self._lock:
            if self._health.down:
                return False
            self._health = NodeHealth(NodeState.DOWN, now or _utcnow(), reason)
            return True

    def mark_syncing(self, reason: str, now: Optional[datetime] = None, down: bool = False) -> None:
        """
        Flag the endpoint as catching up.

        With ``down`` the endpoint is also treated as failed (connect path);
        otherwise an earlier down timestamp is carried over unchanged.
        """
        with self._lock:
            since = self._health.since
            if down and since is None:
                since = now or _utcnow()
            self._health = NodeHealth(NodeState.SYNCING, since, reason)

    def mark_healthy(self) -> bool:
        """Put the endpoint back in rotation. Returns True if it was down."""
        with self._lock:
            recovered = self._health.down
            if recovered:
                self._was_down = True
            self._health = NodeHealth()
            return recovered


class NodeRegistry:
    """
    Ordered candidate list for one chain.

    Position is failover priority: the first listed endpoint is tried first.
    Endpoints are never removed or reordered.
    """

    def __init__(self, urls: Sequence[str]):
        self._endpoints: Tuple[NodeEndpoint, ...] = tuple(NodeEndpoint(url) for url in urls)

    def __iter__(self) -> Iterator[NodeEndpoint]:
        return iter(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __getitem__(self, index: int) -> NodeEndpoint:
        return self._endpoints[index]

    def healthy_count(self) -> int:
        return sum(1 for endpoint in self._endpoints if endpoint.usable)


class ChainState:
    """Chain-wide flags: whether any node is usable and the last chain error."""

    def __init__(self):
        self._lock = threading.Lock()
        self._no_nodes = False
        self._last_error = ""

    @property
    def no_nodes(self) -> bool:
        with self._lock:
            return self._no_nodes

    @property
    def last_error(self) -> str:
        with self._lock:
            return self._last_error

    def set_no_nodes(self, error: str) -> None:
        with self._lock:
            self._no_nodes = True
            self._last_error = error

    def clear_no_nodes(self) -> None:
        with self._lock:
            self._no_nodes = False
            self._last_error = ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
