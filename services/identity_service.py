"""
Identity Service - Core business logic for identity reconciliation
Matches an (email, phone) observation against stored contacts, merges
identities that the observation connects, records new information as a
secondary contact and builds the consolidated identity view.

Each call runs as one serializable transaction, re-executed from scratch
when the database reports a conflicting concurrent transaction.
"""

import logging
from typing import Dict, Iterable, List, Optional

from config import settings
from database import DatabaseManager, db_manager
from models import Contact, SECONDARY
from repositories import ContactRepository
from schemas.identify import IdentityView
from .exceptions import ConflictExhausted, ConsistencyError, ValidationError
from .retry import retry_on_conflict

logger = logging.getLogger(__name__)


def _unique_values(values: Iterable[Optional[str]]) -> List[str]:
    """Drop empty values and keep the first occurrence of each"""
    seen = set()
    unique = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


class IdentityService:
    """
    Core service for identity reconciliation logic

    Holds no mutable state between calls; the database is the only
    synchronization point between concurrent requests.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_hops: Optional[int] = None
    ):
        self.db_manager = database or db_manager
        self.max_attempts = max_attempts if max_attempts is not None else settings.RECONCILE_MAX_ATTEMPTS
        self.max_hops = max_hops if max_hops is not None else settings.ROOT_RESOLUTION_MAX_HOPS
        delay = retry_delay if retry_delay is not None else settings.RECONCILE_RETRY_DELAY

        self._reconcile_with_retry = retry_on_conflict(
            max_attempts=self.max_attempts,
            base_delay=delay,
            on_retry=self._log_conflict
        )(self._reconcile_once)

    def _log_conflict(self, attempt: int, exc: BaseException):
        logger.warning(
            f"Transaction conflict on attempt {attempt}/{self.max_attempts}, retrying: {exc.__class__.__name__}"
        )

    async def reconcile(
        self,
        email: Optional[str],
        phone_number: Optional[str]
    ) -> IdentityView:
        """
        Resolve an (email, phone) observation into its consolidated identity

        Inputs are expected to be normalized already (see IdentifyRequest).

        Algorithm:
        1. Find active contacts matching email or phone
        2. If no matches -> create new primary contact
        3. Resolve every match to its root primary; the oldest survives
        4. Demote the other primaries, re-linking their secondaries
        5. If the observation carries an unseen email or phone -> create secondary
        6. Return the consolidated view of the surviving primary

        Raises:
            ValidationError: both inputs are empty
            ConsistencyError: contact links are corrupted
            ConflictExhausted: serialization conflicts on every attempt
            StoreError: any other database failure
        """
        if not email and not phone_number:
            raise ValidationError("At least one of email or phoneNumber is required")

        try:
            return await self._reconcile_with_retry(email, phone_number)
        except ConsistencyError as e:
            logger.error(f"Contact graph corrupted (contact {e.contact_id}): {e}")
            raise
        except ConflictExhausted as e:
            logger.error(f"Giving up after {e.attempts} conflicting attempts")
            raise

    async def _reconcile_once(
        self,
        email: Optional[str],
        phone_number: Optional[str]
    ) -> IdentityView:
        async with self.db_manager.serializable_session() as session:
            repository = ContactRepository(session)

            matches = await repository.find_by_email_or_phone(email, phone_number)

            if not matches:
                contact = await repository.insert(email, phone_number)
                logger.info(f"Created primary contact {contact.id}")
                return self._build_identity_view(contact, [])

            roots = await self._resolve_root_primaries(repository, matches)
            primary, *newer_primaries = sorted(roots, key=Contact.seniority_key)

            for newer in newer_primaries:
                await self._demote_primary(repository, newer, primary)

            secondaries = await repository.list_by_linked_id(primary.id)

            if self._has_new_information([primary, *secondaries], email, phone_number):
                secondary = await repository.insert(
                    email, phone_number, link_precedence=SECONDARY, linked_id=primary.id
                )
                logger.info(f"Created secondary contact {secondary.id} under {primary.id}")
                secondaries = await repository.list_by_linked_id(primary.id)

            return self._build_identity_view(primary, secondaries)

    async def _resolve_root_primaries(
        self,
        repository: ContactRepository,
        matches: List[Contact]
    ) -> List[Contact]:
        """Distinct root primaries of the matched contacts"""
        roots: Dict[int, Contact] = {}
        for contact in matches:
            root = await self._resolve_root_primary(repository, contact)
            roots.setdefault(root.id, root)
        return list(roots.values())

    async def _resolve_root_primary(
        self,
        repository: ContactRepository,
        contact: Contact
    ) -> Contact:
        """
        Follow linked_id until a primary is reached

        One hop in the flat steady state. More hops are tolerated up to
        max_hops; beyond that the links are treated as corrupted.
        """
        current = contact
        hops = 0
        while not current.is_primary():
            if hops >= self.max_hops:
                raise ConsistencyError(
                    f"Contact {contact.id} is more than {self.max_hops} links away from a primary",
                    contact_id=contact.id
                )

            parent = await repository.get_by_id(current.linked_id)
            if parent is None:
                raise ConsistencyError(
                    f"Contact {current.id} links to missing contact {current.linked_id}",
                    contact_id=current.id
                )

            current = parent
            hops += 1

        return current

    async def _demote_primary(
        self,
        repository: ContactRepository,
        newer: Contact,
        primary: Contact
    ):
        """
        Move `newer` and its secondaries under `primary`

        Secondaries are re-linked before the demotion so no chain is
        ever committed.
        """
        relinked = await repository.relink_secondaries(newer.id, primary.id)
        await repository.demote(newer.id, primary.id)
        logger.info(
            f"Demoted contact {newer.id} to secondary under {primary.id} "
            f"({relinked} secondaries re-linked)"
        )

    def _has_new_information(
        self,
        group: List[Contact],
        email: Optional[str],
        phone_number: Optional[str]
    ) -> bool:
        """
        Check if the request carries an email or phone unknown to the identity
        """
        known_emails = {c.email for c in group if c.email}
        known_phones = {c.phone_number for c in group if c.phone_number}

        has_new_email = bool(email) and email not in known_emails
        has_new_phone = bool(phone_number) and phone_number not in known_phones

        return has_new_email or has_new_phone

    def _build_identity_view(
        self,
        primary: Contact,
        secondaries: List[Contact]
    ) -> IdentityView:
        """
        Primary values first, then secondaries in creation order
        """
        return IdentityView(
            primary_id=primary.id,
            emails=_unique_values([primary.email] + [s.email for s in secondaries]),
            phone_numbers=_unique_values(
                [primary.phone_number] + [s.phone_number for s in secondaries]
            ),
            secondary_ids=[s.id for s in secondaries]
        )


# Global service instance
identity_service = IdentityService()
