import enum
import logging
from typing import Optional

from gnoduty.rpc import Block

logger = logging.getLogger(__name__)


class BlockStatus(enum.IntEnum):
    """Per-block outcome codes, as rendered by the dashboard grid."""

    UNKNOWN = -1
    MISSED = 0
    PREVOTE_MISSED = 1
    PRECOMMIT_MISSED = 2
    SIGNED = 3
    PROPOSED = 4


def check_signed(block: Optional[Block], address: str) -> BlockStatus:
    """
    Classify a block for ``address``.

    Presence of a non-empty signature from the address counts as signed;
    the signature itself is not verified. ``None`` stands for a block that
    could not be fetched.
    """
    if block is None:
        return BlockStatus.UNKNOWN

    for i, vote in enumerate(block.precommits):
        if logger.isEnabledFor(logging.DEBUG):
            preview = vote.signature[:20] + "..." if len(vote.signature) > 20 else vote.signature
            logger.debug(
                f"block {block.height} precommit {i}: validator={vote.validator_address}, "
                f"signature={preview}"
            )
        if vote.validator_address == address and vote.signature:
            return BlockStatus.SIGNED
    return BlockStatus.MISSED
