"""
Contact model for Identity Reconciliation API
This module defines the Contact database model for storing customer
contact information and managing identity linking relationships.
Supports primary/secondary contact hierarchy and soft delete functionality.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Index, CheckConstraint
from .base import BaseModel

PRIMARY = "primary"
SECONDARY = "secondary"


class Contact(BaseModel):
    """
    Contact model representing customer contact information

    Each contact is either 'primary' (the oldest record of an identity) or
    'secondary' (linked directly to its primary through linked_id).

    Database Table: contacts
    """
    __tablename__ = "contacts"

    # Contact information fields - at least one must be provided
    phone_number = Column(
        String(20),
        nullable=True,
        index=True,
        comment="Customer phone number, trimmed"
    )

    email = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Customer email address, trimmed and lowercased"
    )

    # Identity linking fields
    linked_id = Column(
        Integer,
        ForeignKey("contacts.id"),
        nullable=True,
        index=True,
        comment="ID of the primary contact this secondary contact links to"
    )

    link_precedence = Column(
        String(10),
        nullable=False,
        default=PRIMARY,
        comment="Either 'primary' (independent contact) or 'secondary' (linked contact)"
    )

    __table_args__ = (
        CheckConstraint(
            link_precedence.in_([PRIMARY, SECONDARY]),
            name="valid_link_precedence"
        ),

        CheckConstraint(
            "(phone_number IS NOT NULL) OR (email IS NOT NULL)",
            name="contact_info_required"
        ),

        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="secondary_must_have_linked_id"
        ),

        Index("ix_contact_precedence_linked", link_precedence, linked_id),
    )

    def __repr__(self):
        """String representation showing key contact information"""
        contact_info = []
        if self.email:
            contact_info.append(f"email={self.email}")
        if self.phone_number:
            contact_info.append(f"phone={self.phone_number}")
        if self.linked_id is not None:
            contact_info.append(f"linked_id={self.linked_id}")

        return (
            f"<Contact(id={self.id}, "
            f"{', '.join(contact_info)}, "
            f"precedence={self.link_precedence})>"
        )

    def is_primary(self):
        """Check if this is a primary contact"""
        return self.link_precedence == PRIMARY

    def is_secondary(self):
        """Check if this is a secondary contact"""
        return self.link_precedence == SECONDARY

    def seniority_key(self):
        """Sort key deciding which of two primaries is older"""
        return (self.created_at, self.id)

    def to_dict(self):
        """Convert contact to dictionary with formatted timestamps"""
        data = super().to_dict()

        for field in ("created_at", "updated_at", "deleted_at"):
            if data.get(field):
                data[field] = data[field].isoformat()

        return data
