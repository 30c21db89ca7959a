from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .state import IdentityState, derive_state
from .utils import EMPTY_DIGEST, normalize_id, utc_now


@dataclass
class IdentityRecord:
    subject: str
    data_hash: str = EMPTY_DIGEST
    approvers: Set[str] = field(default_factory=set)
    registered: bool = False
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def state(self) -> IdentityState:
        return derive_state(True, len(self.approvers), self.registered)

    def touch(self) -> None:
        self.updated_at = utc_now()

    def copy(self) -> "IdentityRecord":
        return IdentityRecord(
            subject=self.subject,
            data_hash=self.data_hash,
            approvers=set(self.approvers),
            registered=self.registered,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "data_hash": self.data_hash,
            "approvers": sorted(self.approvers),
            "registered": self.registered,
            "state": self.state.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentityRecord":
        return cls(
            subject=normalize_id(data["subject"]),
            data_hash=data.get("data_hash", EMPTY_DIGEST),
            approvers={normalize_id(a) for a in data.get("approvers", [])},
            registered=bool(data.get("registered", False)),
            created_at=data.get("created_at", utc_now()),
            updated_at=data.get("updated_at", utc_now()),
        )


class IdentityStore:
    """Per-subject identity records. Reads never create records."""

    def __init__(self, records: Optional[Dict[str, IdentityRecord]] = None):
        self._records: Dict[str, IdentityRecord] = dict(records or {})

    def get(self, subject: str) -> Optional[IdentityRecord]:
        return self._records.get(normalize_id(subject))

    def get_hash(self, subject: str) -> str:
        record = self.get(subject)
        return record.data_hash if record else EMPTY_DIGEST

    def is_registered(self, subject: str) -> bool:
        record = self.get(subject)
        return record.registered if record else False

    def state_of(self, subject: str) -> IdentityState:
        record = self.get(subject)
        if record is None:
            return derive_state(False, 0, False)
        return record.state

    def create_or_get_record(self, subject: str) -> IdentityRecord:
        key = normalize_id(subject)
        record = self._records.get(key)
        if record is None:
            record = IdentityRecord(subject=key)
            self._records[key] = record
        return record

    def records(self) -> List[IdentityRecord]:
        return [self._records[key] for key in sorted(self._records)]
