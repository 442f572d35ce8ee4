"""
Command option adapters
"""

from typing import Iterable, List

from .client import AckPolicy
from .exceptions import InvalidAckPolicy

_ACK_POLICIES = {
    "leader": AckPolicy.LEADER,
    "all": AckPolicy.ALL,
    "none": AckPolicy.NONE,
}


def resolve_ack_policy(token: str) -> AckPolicy:
    """
    Map an ack policy token to an AckPolicy

    Tokens are case-sensitive; unknown tokens raise InvalidAckPolicy.
    """
    try:
        return _ACK_POLICIES[token]
    except KeyError:
        raise InvalidAckPolicy(token) from None


def to_partition_indices(values: Iterable[int]) -> List[int]:
    """Narrow partition indices to int32, preserving order"""
    return [((value + 2**31) % 2**32) - 2**31 for value in values]
