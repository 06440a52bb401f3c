"""Approver resolution: maps an approval role to a concrete person"""
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from oeapp.errors import UnresolvedApprover
from oeapp.models.approver import Approver, StoreResponsible
from oeapp.utils.chain import ApproverIdentity

AREA_MANAGER = "AreaManager"


@dataclass(frozen=True)
class ApproverSelection:
    """Identity chosen by the requester on the form for one role"""

    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    email: Optional[str] = None


class ApproverResolver:
    """Resolve roles to identities using the requester's selection or the directory.

    Selection is authoritative: when the requester picked someone for a role,
    that person is used even if several people hold the role. Without a
    selection the store's Area Manager (for ``AreaManager``) or the first
    active holder of the role is used.
    """

    def __init__(self, db: Session):
        self.db = db

    def candidates(self, role: str) -> List[Approver]:
        """Active directory entries holding ``role``, ordered by id."""
        approvers = (
            self.db.query(Approver)
            .filter(Approver.is_active == True)
            .order_by(Approver.id.asc())
            .all()
        )
        return [a for a in approvers if role in (a.roles or [])]

    def store_area_manager(self, store: Optional[str]) -> Optional[Approver]:
        if not store:
            return None
        responsible = (
            self.db.query(StoreResponsible)
            .filter(StoreResponsible.store == store, StoreResponsible.is_active == True)
            .order_by(StoreResponsible.id.asc())
            .first()
        )
        if responsible and responsible.area_manager and responsible.area_manager.is_active:
            return responsible.area_manager
        return None

    def _lookup(self, approver_id: Union[int, str]) -> Optional[Approver]:
        try:
            key = int(approver_id)
        except (TypeError, ValueError):
            return None
        return self.db.query(Approver).filter(Approver.id == key).first()

    def resolve(
        self,
        role: str,
        selection: Optional[ApproverSelection] = None,
        store: Optional[str] = None,
    ) -> ApproverIdentity:
        """Return the identity for ``role``.

        Raises:
            UnresolvedApprover: no selection and no directory candidate, or the
                selected id is unknown and the form carried no email.
        """
        if selection is not None and (selection.id is not None or selection.email):
            if selection.name and selection.email:
                return ApproverIdentity(id=selection.id, name=selection.name, email=selection.email)

            # Name/email were not carried from the client: look the id up
            found = self._lookup(selection.id) if selection.id is not None else None
            if found is not None:
                return ApproverIdentity(
                    id=found.id,
                    name=selection.name or found.name,
                    email=selection.email or found.email,
                )
            if selection.email:
                return ApproverIdentity(id=selection.id, name=selection.name, email=selection.email)
            raise UnresolvedApprover(role, f"Selected approver {selection.id} for {role} was not found")

        if role == AREA_MANAGER:
            manager = self.store_area_manager(store)
            if manager is not None:
                return ApproverIdentity(id=manager.id, name=manager.name, email=manager.email)

        holders = self.candidates(role)
        if not holders:
            raise UnresolvedApprover(role)
        first = holders[0]
        return ApproverIdentity(id=first.id, name=first.name, email=first.email)
