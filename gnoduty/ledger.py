import binascii
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Tuple

from gnoduty.signing import BlockStatus

SHOW_BLOCKS = 512


@dataclass(frozen=True)
class ValidatorInfo:
    moniker: str
    bonded: bool = True
    jailed: bool = False
    tombstoned: bool = False
    missed: int = 0
    window: int = 100
    conspub: bytes = b""


def consensus_key(address: str) -> bytes:
    """Hex-decode an address with its ``g`` prefix stripped; empty if not hex."""
    value = address[1:] if address.startswith("g") else address
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        return b""


class LivenessLedger:
    """
    Recent signing history for one validator plus its missed counter.

    The window has a fixed capacity, is filled with UNKNOWN at creation and
    is exposed most-recent-first. ``missed`` only grows, capped at the
    validator's window.
    """

    def __init__(self, info: ValidatorInfo, capacity: int = SHOW_BLOCKS):
        if info.window <= 0:
            raise ValueError(f"window must be positive, got {info.window}")
        self._lock = threading.Lock()
        self._info = replace(info, missed=min(max(info.missed, 0), info.window))
        self._blocks = deque([BlockStatus.UNKNOWN] * capacity, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._blocks.maxlen

    @property
    def info(self) -> ValidatorInfo:
        with self._lock:
            return self._info

    @property
    def missed(self) -> int:
        return self.info.missed

    def blocks(self) -> Tuple[BlockStatus, ...]:
        with self._lock:
            return tuple(self._blocks)

    def view(self) -> Tuple[ValidatorInfo, Tuple[BlockStatus, ...]]:
        """Consistent copy of the validator info and window."""
        with self._lock:
            return self._info, tuple(self._blocks)

    def record_outcome(self, status: BlockStatus) -> None:
        status = BlockStatus(status)
        with self._lock:
            self._blocks.appendleft(status)
            if status is BlockStatus.MISSED:
                self._info = replace(self._info, missed=min(self._info.missed + 1, self._info.window))

