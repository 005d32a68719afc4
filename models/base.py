"""
SQLAlchemy base configuration for Identity Reconciliation System
This module sets up the declarative base and the columns shared by every table
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""
    pass


class BaseModel(Base):
    """
    Abstract model carrying the identifier, audit timestamps and the
    soft-delete marker
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    created_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        comment="Creation time, decides seniority between primaries"
    )

    updated_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    deleted_at = Column(
        DateTime,
        nullable=True,
        comment="Soft delete marker, rows with a value are ignored"
    )

    def to_dict(self):
        """Convert model columns to a plain dictionary"""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }
