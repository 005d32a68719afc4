"""
Pydantic schemas for Identity Reconciliation API
Contains request/response models and the engine's identity view
"""

from .identify import (
    IdentifyRequest,
    IdentityView,
    ContactResponse,
    IdentifyResponse,
    ErrorResponse
)

__all__ = [
    "IdentifyRequest",
    "IdentityView",
    "ContactResponse",
    "IdentifyResponse",
    "ErrorResponse"
]
