"""
IDSafe identity registry.

A fixed administrator and a set of trusted validators (NGOs) jointly attest
identities: a subject's data hash becomes registered once a threshold of
distinct validators approve it. The administrator manages validators, the
threshold, and revocation.
"""

from .engine import ApprovalEngine
from .errors import IdSafeError, InvalidArgument, NotFound, ThresholdViolation, Unauthorized

__all__ = [
    "ApprovalEngine",
    "IdSafeError",
    "InvalidArgument",
    "NotFound",
    "ThresholdViolation",
    "Unauthorized",
]
