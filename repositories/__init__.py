"""
Data access layer for Identity Reconciliation API
"""

from .contact_repository import ContactRepository

__all__ = ["ContactRepository"]
