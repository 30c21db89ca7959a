"""Error kinds raised by the registry.

Every error is raised synchronously to the caller and never retried here.
Idempotent no-ops (duplicate approval, duplicate validator add) are not errors.
"""


class IdSafeError(Exception):
    """Base class for registry errors."""


class Unauthorized(IdSafeError):
    """Caller lacks the role the operation requires."""


class NotFound(IdSafeError, LookupError):
    """No record for the subject, or the validator is not a member."""


class InvalidArgument(IdSafeError, ValueError):
    """Threshold or identifier out of its valid range."""


class ThresholdViolation(IdSafeError, ValueError):
    """Mutation would leave the threshold above the validator count."""
