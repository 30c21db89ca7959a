"""
Approval engine.

Runs the identity registration lifecycle on top of the role registry, the
threshold policy and the identity store:

    UNREGISTERED -> PENDING -> APPROVED  (approvals accumulate)
    PENDING/APPROVED -> UNREGISTERED     (revocation, or hash replaced)

Every operation runs under one re-entrant lock, so mutations are applied
atomically and in a total order, and reads never see a half-applied change.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import NotFound
from .identity import IdentityRecord, IdentityStore
from .roles import RoleRegistry
from .state import IdentityState, transition
from .threshold import ThresholdPolicy
from .utils import normalize_digest, normalize_id, require_id


logger = logging.getLogger(__name__)

Checkpoint = Callable[[Dict[str, Any]], None]
AuditSink = Callable[[str, Optional[str], str, Dict[str, Any]], None]
Event = Tuple[str, Optional[str], str, Dict[str, Any]]


class ApprovalEngine:
    """
    Threshold approval of identity records by a set of validators.

    Invariants:
    - Approvals are a set: a validator is counted at most once per subject
    - A subject is registered once its approvals reach the threshold
    - Role checks run before any state is touched
    - A failed checkpoint leaves the engine as it was before the call
    """

    def __init__(
        self,
        roles: RoleRegistry,
        policy: ThresholdPolicy,
        store: Optional[IdentityStore] = None,
        checkpoint: Optional[Checkpoint] = None,
        audit: Optional[AuditSink] = None,
    ):
        self._roles = roles
        self._policy = policy
        self._store = store or IdentityStore()
        self._checkpoint = checkpoint
        self._audit = audit
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        admin: str,
        validators: Iterable[str],
        threshold: int,
        checkpoint: Optional[Checkpoint] = None,
        audit: Optional[AuditSink] = None,
    ) -> "ApprovalEngine":
        roles = RoleRegistry(admin, validators)
        policy = ThresholdPolicy(roles, threshold)
        return cls(roles, policy, checkpoint=checkpoint, audit=audit)

    @classmethod
    def from_snapshot(
        cls,
        data: Dict[str, Any],
        checkpoint: Optional[Checkpoint] = None,
        audit: Optional[AuditSink] = None,
    ) -> "ApprovalEngine":
        roles, policy, store = _build(data)
        return cls(roles, policy, store, checkpoint=checkpoint, audit=audit)

    # -- snapshots --------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self._snapshot_unlocked()

    def _snapshot_unlocked(self) -> Dict[str, Any]:
        data = self._roles.snapshot()
        data["threshold"] = self._policy.threshold
        data["identities"] = {r.subject: r.to_dict() for r in self._store.records()}
        return data

    def _restore(self, data: Dict[str, Any]) -> None:
        self._roles, self._policy, self._store = _build(data)

    @contextmanager
    def _mutation(self) -> Iterator[List[Event]]:
        with self._lock:
            backup = self._snapshot_unlocked()
            events: List[Event] = []
            try:
                yield events
                if events and self._checkpoint is not None:
                    self._checkpoint(self._snapshot_unlocked())
            except Exception:
                self._restore(backup)
                raise
            if self._audit is not None:
                for event_type, subject, actor, data in events:
                    try:
                        self._audit(event_type, subject, actor, data)
                    except OSError as exc:
                        # Mutation is already committed; the audit trail is best-effort
                        logger.error(f"Audit event {event_type} for {subject} not recorded: {exc}")

    # -- reads ------------------------------------------------------------

    def admin(self) -> str:
        with self._lock:
            return self._roles.admin

    def approval_threshold(self) -> int:
        with self._lock:
            return self._policy.threshold

    def validators(self) -> List[str]:
        with self._lock:
            return self._roles.validators()

    def is_admin(self, identifier: str) -> bool:
        with self._lock:
            return self._roles.is_admin(identifier)

    def is_validator(self, identifier: str) -> bool:
        with self._lock:
            return self._roles.is_validator(identifier)

    def is_quorum(self, approver_count: int) -> bool:
        with self._lock:
            return self._policy.is_quorum(approver_count)

    def get_identity_hash(self, subject: str) -> str:
        with self._lock:
            return self._store.get_hash(subject)

    def is_registered(self, subject: str) -> bool:
        with self._lock:
            return self._store.is_registered(subject)

    def identity_state(self, subject: str) -> IdentityState:
        with self._lock:
            return self._store.state_of(subject)

    def get_approvals(self, subject: str) -> List[str]:
        with self._lock:
            record = self._store.get(subject)
            return sorted(record.approvers) if record else []

    def get_record(self, subject: str) -> Optional[IdentityRecord]:
        with self._lock:
            record = self._store.get(subject)
            return record.copy() if record else None

    def list_records(self) -> List[IdentityRecord]:
        with self._lock:
            return [r.copy() for r in self._store.records()]

    # -- identity lifecycle -----------------------------------------------

    def register_identity(self, caller: str, subject: str, data_hash) -> IdentityRecord:
        """
        Register ``subject`` with ``data_hash``.

        Registration is not an approval. Re-registering with the same hash is a
        no-op; a different hash replaces it and clears prior approvals.
        """
        with self._mutation() as events:
            self._roles.require_validator(caller, "register_identity")
            key = require_id(subject, "subject")
            digest = normalize_digest(data_hash)
            actor = normalize_id(caller)

            existing = self._store.get(key)
            if existing is not None and existing.data_hash == digest:
                logger.info(f"Identity {key} already registered with this hash; nothing to do")
                return existing.copy()

            before = self._store.state_of(key)
            record = self._store.create_or_get_record(key)
            had_approvals = bool(record.approvers) or record.registered
            record.data_hash = digest
            record.approvers.clear()
            record.registered = False
            record.touch()
            transition(before, record.state)

            logger.info(f"Identity {key} registered by {actor}, awaiting approvals")
            events.append(
                ("register", key, actor, {"data_hash": digest, "approvals_cleared": had_approvals})
            )
            return record.copy()

    def approve_identity(self, caller: str, subject: str) -> IdentityRecord:
        """
        Record ``caller``'s approval of ``subject``.

        A repeated approval from the same validator is a no-op. Reaching the
        threshold marks the subject registered.
        """
        with self._mutation() as events:
            self._roles.require_validator(caller, "approve_identity")
            record = self._store.get(subject)
            if record is None:
                raise NotFound(f"No identity record for {subject}")
            actor = normalize_id(caller)

            if actor in record.approvers:
                logger.info(f"{actor} already approved {record.subject}; nothing to do")
                return record.copy()

            before = record.state
            record.approvers.add(actor)
            reached = not record.registered and self._policy.is_quorum(len(record.approvers))
            if reached:
                record.registered = True
            record.touch()
            transition(before, record.state)

            data = {"approvals": len(record.approvers), "threshold": self._policy.threshold}
            events.append(("approve", record.subject, actor, data))
            if reached:
                logger.info(
                    f"Identity {record.subject} reached quorum "
                    f"({len(record.approvers)}/{self._policy.threshold})"
                )
                events.append(("registered", record.subject, actor, data))
            return record.copy()

    def store_identity_hash(self, caller: str, subject: str, new_hash) -> IdentityRecord:
        """Replace the stored hash; a changed hash clears prior approvals."""
        with self._mutation() as events:
            self._roles.require_validator(caller, "store_identity_hash")
            digest = normalize_digest(new_hash)
            record = self._store.get(subject)
            if record is None:
                raise NotFound(f"No identity record for {subject}")
            actor = normalize_id(caller)

            if record.data_hash == digest:
                return record.copy()

            before = record.state
            previous = record.data_hash
            cleared = bool(record.approvers) or record.registered
            record.data_hash = digest
            record.approvers.clear()
            record.registered = False
            record.touch()
            transition(before, record.state)

            if cleared:
                logger.info(f"Hash of {record.subject} changed; prior approvals cleared")
            events.append(
                (
                    "store_hash",
                    record.subject,
                    actor,
                    {"data_hash": digest, "previous_hash": previous, "approvals_cleared": cleared},
                )
            )
            return record.copy()

    def revoke_identity(self, caller: str, subject: str) -> IdentityRecord:
        """Admin revocation: clears approvals and registration, keeps the hash."""
        with self._mutation() as events:
            self._roles.require_admin(caller, "revoke_identity")
            record = self._store.get(subject)
            if record is None:
                raise NotFound(f"No identity record for {subject}")

            before = record.state
            revoked_approvals = len(record.approvers)
            record.approvers.clear()
            record.registered = False
            record.touch()
            transition(before, record.state)

            logger.info(f"Identity {record.subject} revoked")
            events.append(
                ("revoke", record.subject, normalize_id(caller), {"approvals_cleared": revoked_approvals})
            )
            return record.copy()

    # -- administration ---------------------------------------------------

    def change_admin(self, caller: str, new_admin: str) -> None:
        with self._mutation() as events:
            previous = self._roles.change_admin(caller, new_admin)
            events.append(
                ("change_admin", None, previous, {"previous": previous, "admin": self._roles.admin})
            )

    def add_validator(self, caller: str, identifier: str) -> bool:
        with self._mutation() as events:
            added = self._roles.add_validator(caller, identifier)
            if added:
                events.append(
                    ("add_validator", None, normalize_id(caller), {"validator": normalize_id(identifier)})
                )
            return added

    def remove_validator(self, caller: str, identifier: str) -> None:
        with self._mutation() as events:
            self._roles.remove_validator(caller, identifier, self._policy.threshold)
            events.append(
                ("remove_validator", None, normalize_id(caller), {"validator": normalize_id(identifier)})
            )

    def change_threshold(self, caller: str, threshold: int) -> None:
        with self._mutation() as events:
            previous = self._policy.change_threshold(caller, threshold)
            events.append(
                ("change_threshold", None, normalize_id(caller), {"previous": previous, "threshold": threshold})
            )


def _build(data: Dict[str, Any]) -> Tuple[RoleRegistry, ThresholdPolicy, IdentityStore]:
    if not data or "admin" not in data or "threshold" not in data:
        raise ValueError("State snapshot must contain 'admin' and 'threshold'")
    roles = RoleRegistry(data["admin"], data.get("validators") or [])
    policy = ThresholdPolicy(roles, int(data["threshold"]))
    records = {}
    for subject, raw in (data.get("identities") or {}).items():
        record = IdentityRecord.from_dict({"subject": subject, **raw})
        records[record.subject] = record
    return roles, policy, IdentityStore(records)
