"""Contact directory: resolves (role, id) to a reachable recipient."""

from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from app.domain.models import Contact, Role
from app.persistence import ContactRepository, get_session


class ContactDirectory(Protocol):
    def lookup(self, role: Role, ref_id: str) -> Optional[Contact]:  # pragma: no cover - protocol
        """Return the contact for ``ref_id`` in ``role``, or None."""

    def members(self, role: Role) -> List[Contact]:  # pragma: no cover - protocol
        """Return every contact holding ``role``."""


class SQLContactDirectory:
    """Directory backed by the contacts table; each call uses a short session."""

    def lookup(self, role: Role, ref_id: str) -> Optional[Contact]:
        with get_session() as session:
            return ContactRepository(session).lookup(role, ref_id)

    def members(self, role: Role) -> List[Contact]:
        with get_session() as session:
            return ContactRepository(session).members(role)

    def add(self, contact: Contact) -> Contact:
        with get_session() as session:
            return ContactRepository(session).upsert(contact)


class StaticContactDirectory:
    """In-memory directory for tests and seeding."""

    def __init__(self, contacts: Iterable[Contact] = ()):
        self._contacts: Dict[Tuple[Role, str], Contact] = {}
        for contact in contacts:
            self.add(contact)

    def add(self, contact: Contact) -> Contact:
        self._contacts[(contact.role, contact.ref_id)] = contact
        return contact

    def lookup(self, role: Role, ref_id: str) -> Optional[Contact]:
        return self._contacts.get((role, str(ref_id)))

    def members(self, role: Role) -> List[Contact]:
        return sorted(
            (contact for (r, _), contact in self._contacts.items() if r == role),
            key=lambda contact: contact.ref_id,
        )
