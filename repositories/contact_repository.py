"""
Contact Repository.

Responsibilities:
- Filtered reads of the contacts table (soft-deleted rows excluded).
- Single-row inserts and updates, bulk re-link by filter.

Non-Responsibilities:
- No transaction management, the caller owns the session and its transaction.
- No linking decisions.
"""

from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Contact, PRIMARY, SECONDARY, utcnow


def _active():
    return Contact.deleted_at.is_(None)


class ContactRepository:
    """Data access for Contact rows within one session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, contact_id: int) -> Optional[Contact]:
        query = (
            select(Contact)
            .where(Contact.id == contact_id, _active())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_email_or_phone(
        self,
        email: Optional[str],
        phone_number: Optional[str]
    ) -> List[Contact]:
        """
        Every active contact whose email equals `email` or whose phone number
        equals `phone_number`, oldest first. Empty inputs match nothing.
        """
        conditions = []
        if email:
            conditions.append(Contact.email == email)
        if phone_number:
            conditions.append(Contact.phone_number == phone_number)

        if not conditions:
            return []

        query = (
            select(Contact)
            .where(or_(*conditions), _active())
            .order_by(Contact.created_at, Contact.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_by_linked_id(self, primary_id: int) -> List[Contact]:
        """Active secondaries linked to `primary_id`, in creation order"""
        query = (
            select(Contact)
            .where(Contact.linked_id == primary_id, _active())
            .order_by(Contact.created_at, Contact.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def insert(
        self,
        email: Optional[str],
        phone_number: Optional[str],
        link_precedence: str = PRIMARY,
        linked_id: Optional[int] = None
    ) -> Contact:
        now = utcnow()
        contact = Contact(
            email=email,
            phone_number=phone_number,
            link_precedence=link_precedence,
            linked_id=linked_id,
            created_at=now,
            updated_at=now
        )
        self.session.add(contact)
        await self.session.flush()  # Get the ID
        return contact

    async def demote(self, contact_id: int, primary_id: int) -> int:
        """Turn `contact_id` into a secondary of `primary_id`"""
        statement = (
            update(Contact)
            .where(Contact.id == contact_id, _active())
            .values(
                link_precedence=SECONDARY,
                linked_id=primary_id,
                updated_at=utcnow()
            )
        )
        result = await self.session.execute(statement)
        return result.rowcount

    async def relink_secondaries(self, from_primary_id: int, to_primary_id: int) -> int:
        """Point every active secondary of `from_primary_id` at `to_primary_id`"""
        statement = (
            update(Contact)
            .where(Contact.linked_id == from_primary_id, _active())
            .values(linked_id=to_primary_id, updated_at=utcnow())
        )
        result = await self.session.execute(statement)
        return result.rowcount
