from enum import Enum
from typing import Dict, List


class IdentityState(str, Enum):
    UNREGISTERED = "unregistered"
    PENDING = "pending"
    APPROVED = "approved"


ALLOWED_TRANSITIONS: Dict[IdentityState, List[IdentityState]] = {
    IdentityState.UNREGISTERED: [
        IdentityState.UNREGISTERED,
        IdentityState.PENDING,
        IdentityState.APPROVED,
    ],
    IdentityState.PENDING: [
        IdentityState.PENDING,
        IdentityState.APPROVED,
        IdentityState.UNREGISTERED,
    ],
    IdentityState.APPROVED: [IdentityState.APPROVED, IdentityState.UNREGISTERED],
}


def can_transition(current: IdentityState, target: IdentityState) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, [])


def transition(current: IdentityState, target: IdentityState) -> IdentityState:
    if not can_transition(current, target):
        raise ValueError(f"Illegal transition: {current.value} -> {target.value}")
    return target


def derive_state(exists: bool, approver_count: int, registered: bool) -> IdentityState:
    """Map a record's fields onto the lifecycle state.

    A record with no approvals that is not registered (freshly registered,
    revoked, or with its hash replaced) is UNREGISTERED.
    """
    if not exists:
        return IdentityState.UNREGISTERED
    if registered:
        return IdentityState.APPROVED
    if approver_count == 0:
        return IdentityState.UNREGISTERED
    return IdentityState.PENDING
