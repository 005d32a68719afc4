"""
Database models package for Identity Reconciliation System
Contains SQLAlchemy models for contact information and relationships
"""

from .base import Base, BaseModel, utcnow
from .contact import Contact, PRIMARY, SECONDARY

__all__ = ['Base', 'BaseModel', 'utcnow', 'Contact', 'PRIMARY', 'SECONDARY']
