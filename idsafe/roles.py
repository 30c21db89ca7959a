"""
Role registry.

Owns the single administrator and the validator (NGO) set and answers the
capability checks that every privileged operation starts with.
"""

import logging
from typing import Iterable, List, Set

from .errors import NotFound, ThresholdViolation, Unauthorized
from .utils import normalize_id, normalize_ids, require_id


logger = logging.getLogger(__name__)


class RoleRegistry:
    """
    Administrator and validator membership.

    Invariants:
    - Exactly one administrator, never null
    - Validators are unique, normalised identifiers
    - Only the administrator mutates membership
    """

    def __init__(self, admin: str, validators: Iterable[str]):
        self._admin = require_id(admin, "admin")
        self._validators: Set[str] = set(normalize_ids(validators, "validator"))

    @property
    def admin(self) -> str:
        return self._admin

    def validators(self) -> List[str]:
        return sorted(self._validators)

    def validator_count(self) -> int:
        return len(self._validators)

    def is_admin(self, identifier: str) -> bool:
        return normalize_id(identifier) == self._admin

    def is_validator(self, identifier: str) -> bool:
        return normalize_id(identifier) in self._validators

    def require_admin(self, caller: str, action: str) -> None:
        if not self.is_admin(caller):
            logger.warning(f"Unauthorized {action}: {caller} is not the admin")
            raise Unauthorized(f"{action} requires the admin role (caller: {caller})")

    def require_validator(self, caller: str, action: str) -> None:
        if not self.is_validator(caller):
            logger.warning(f"Unauthorized {action}: {caller} is not a validator")
            raise Unauthorized(f"{action} requires a validator (caller: {caller})")

    def change_admin(self, caller: str, new_admin: str) -> str:
        """Hand the admin role to ``new_admin``; returns the previous admin."""
        self.require_admin(caller, "change_admin")
        target = require_id(new_admin, "new admin")
        previous = self._admin
        self._admin = target
        logger.info(f"Admin changed: {previous} -> {target}")
        return previous

    def add_validator(self, caller: str, identifier: str) -> bool:
        """Add a validator. Returns False when it was already a member (no-op)."""
        self.require_admin(caller, "add_validator")
        target = require_id(identifier, "validator")
        if target in self._validators:
            logger.info(f"Validator {target} already registered; nothing to do")
            return False
        self._validators.add(target)
        logger.info(f"Validator added: {target}")
        return True

    def remove_validator(self, caller: str, identifier: str, threshold: int) -> None:
        """
        Remove a validator.

        Args:
            caller: Identity making the call (must be admin)
            identifier: Validator to remove
            threshold: Current approval threshold; the set may not shrink below it
        """
        self.require_admin(caller, "remove_validator")
        target = normalize_id(identifier)
        if target not in self._validators:
            raise NotFound(f"{identifier} is not a validator")
        if len(self._validators) - 1 < threshold:
            logger.warning(
                f"Refusing to remove {target}: {len(self._validators) - 1} validators "
                f"would remain under threshold {threshold}"
            )
            raise ThresholdViolation(
                f"removing {target} leaves {len(self._validators) - 1} validators, "
                f"below threshold {threshold}"
            )
        self._validators.discard(target)
        logger.info(f"Validator removed: {target}")

    def snapshot(self) -> dict:
        return {"admin": self._admin, "validators": self.validators()}
