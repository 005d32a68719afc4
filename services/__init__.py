"""
Business logic services for Identity Reconciliation API
Contains the identity reconciliation engine, its error taxonomy and
the serializable-transaction retry policy.
"""

from .exceptions import (
    IdentityError,
    ValidationError,
    ConsistencyError,
    ConflictExhausted,
    StoreError
)
from .identity_service import IdentityService, identity_service

__all__ = [
    "IdentityService",
    "identity_service",
    "IdentityError",
    "ValidationError",
    "ConsistencyError",
    "ConflictExhausted",
    "StoreError"
]
