"""
Error taxonomy for the identity reconciliation engine
Every failure leaving IdentityService.reconcile is one of these classes
"""

from typing import Optional


class IdentityError(Exception):
    """Base class for reconciliation failures"""
    pass


class ValidationError(IdentityError):
    """Neither email nor phone number reached the engine"""
    pass


class ConsistencyError(IdentityError):
    """
    Contact links are corrupted: a chain deeper than the hop bound, a cycle,
    or a secondary pointing at a missing record
    """

    def __init__(self, message: str, contact_id: Optional[int] = None):
        super().__init__(message)
        self.contact_id = contact_id


class ConflictExhausted(IdentityError):
    """Serializable transaction kept conflicting after every allowed attempt"""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class StoreError(IdentityError):
    """Any other data store failure, the driver exception is kept in `original`"""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
