import logging

from .errors import InvalidArgument
from .roles import RoleRegistry


logger = logging.getLogger(__name__)


def validate_threshold(threshold: int, validator_count: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise InvalidArgument(f"threshold must be an integer, got {threshold!r}")
    if threshold < 1 or threshold > validator_count:
        raise InvalidArgument(
            f"threshold {threshold} out of range 1..{validator_count}"
        )
    return threshold


class ThresholdPolicy:
    """Approval threshold k, kept within 1 <= k <= number of validators."""

    def __init__(self, roles: RoleRegistry, threshold: int):
        self._roles = roles
        self._threshold = validate_threshold(threshold, roles.validator_count())

    @property
    def threshold(self) -> int:
        return self._threshold

    def change_threshold(self, caller: str, threshold: int) -> int:
        """Set a new threshold; returns the previous one."""
        self._roles.require_admin(caller, "change_threshold")
        try:
            validate_threshold(threshold, self._roles.validator_count())
        except InvalidArgument:
            logger.warning(f"Rejected threshold {threshold!r} from {caller}")
            raise
        previous = self._threshold
        self._threshold = threshold
        logger.info(f"Approval threshold changed: {previous} -> {threshold}")
        return previous

    def is_quorum(self, approver_count: int) -> bool:
        return approver_count >= self._threshold
