"""
Repository Pattern for Back Office Database Operations

Provides clean data access layer with proper typing and error handling.
Every repository receives its Session through the constructor and only
flushes; the caller (request dependency or session_scope) owns the commit.

Composite reads (client, account, shop and association views) return plain
dicts keyed by column name plus the joined display fields. Simple reads
return ORM rows.
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Dict, Any, Iterable, Tuple

from sqlalchemy import select, update, delete, func, case, and_, or_
from sqlalchemy.orm import Session, aliased
from sqlalchemy.exc import IntegrityError

from backoffice_db.monitoring import timed_query
from backoffice_db.models import (
    Address,
    Institution,
    Client,
    Contact,
    Shop,
    ShopClient,
    Account,
    AccountHolder,
    Transaction,
    AuditLog,
    Document,
    ProfilePicture,
    DeletionStatus,
    ContactType,
    ContactPriority,
    HolderType,
    ShopRelationshipType,
    TransactionType,
    TransactionStatus,
    AuditOperation,
    PictureEntityType,
    row_to_dict,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""
    pass


class DuplicateEntityError(RepositoryError):
    """Raised when attempting to create a duplicate entity."""
    pass


# ============================================
# SHARED HELPERS
# ============================================

def _flush_new(session: Session, obj: Any, label: str) -> Any:
    """
    Insert `obj` inside a SAVEPOINT so a constraint failure only undoes this row.

    Raises:
        DuplicateEntityError: On a UNIQUE violation
        RepositoryError: On any other integrity violation (missing FK target)
    """
    try:
        with session.begin_nested():
            session.add(obj)
    except IntegrityError as e:
        if "UNIQUE" in str(e.orig).upper():
            raise DuplicateEntityError(f"{label} already exists: {e.orig}") from e
        raise RepositoryError(f"Could not save {label.lower()}: {e.orig}") from e
    return obj


def _update_guarded(
    session: Session,
    obj: Any,
    updates: Dict[str, Any],
    allowed: Iterable[str],
    label: str
) -> bool:
    """
    Apply allow-listed updates inside a SAVEPOINT, mapping integrity errors
    like _flush_new does.

    Returns:
        True if at least one allow-listed key was present
    """
    try:
        with session.begin_nested():
            applied = _apply_updates(obj, updates, allowed)
    except IntegrityError as e:
        if "UNIQUE" in str(e.orig).upper():
            raise DuplicateEntityError(f"{label} already exists: {e.orig}") from e
        raise RepositoryError(f"Could not update {label.lower()}: {e.orig}") from e
    return applied


def _cascade_delete(session: Session, statement) -> bool:
    """
    Run a DELETE whose FK cascades remove or null rows the session may
    still hold, then expire the identity map so those rows reload.

    Pending changes are flushed first so the expiry cannot discard them.

    Returns:
        True if the target row existed
    """
    session.flush()
    result = session.execute(statement)
    session.expire_all()
    return result.rowcount > 0


def _set_deletion_status(session: Session, row, status: DeletionStatus, entity: str) -> bool:
    """Move a soft-deletable row to `status`; False if the row is missing."""
    if row is None:
        return False
    if row.is_deleted == (status != DeletionStatus.ACTIVE):
        return True
    row.deletion_status = status
    session.flush()
    logger.info(f"{entity} {row.id} {'restored' if status == DeletionStatus.ACTIVE else 'soft deleted'}")
    return True


def _apply_updates(obj: Any, updates: Dict[str, Any], allowed: Iterable[str]) -> bool:
    """
    Copy allow-listed keys from `updates` onto `obj`.

    Returns:
        True if at least one allow-listed key was present
    """
    applied = False
    for key, value in updates.items():
        if key in allowed:
            setattr(obj, key, value)
            applied = True
    return applied


def _like(term: str) -> str:
    return f"%{term}%"


def _full_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    if first_name is None and last_name is None:
        return None
    return " ".join(part for part in (first_name, last_name) if part)


def _address_fields(address: Optional[Address]) -> Dict[str, Any]:
    """Flatten an address row into the parent view."""
    fields = (
        "address_line1", "address_line2", "address_line3",
        "city", "state", "district", "pincode", "country",
    )
    if address is None:
        return {name: None for name in fields}
    return {name: getattr(address, name) for name in fields}


def _not_deleted(model) -> Any:
    return model.deletion_status == DeletionStatus.ACTIVE


# Primary-contact aliases shared by the client and association views
PrimaryEmail = aliased(Contact, name="primary_email")
PrimaryPhone = aliased(Contact, name="primary_phone")


def _primary_contact_join(alias, client_id_column, contact_type: ContactType):
    return and_(
        alias.client_id == client_id_column,
        alias.type == contact_type,
        alias.contact_priority == ContactPriority.PRIMARY,
    )


# ============================================
# ADDRESS REPOSITORY
# ============================================

class AddressRepository:
    """Repository for postal addresses."""

    UPDATABLE_FIELDS = frozenset({
        "address_line1", "address_line2", "address_line3",
        "city", "state", "district", "pincode", "country",
    })

    def __init__(self, session: Session):
        self.session = session

    def get_all(self) -> List[Address]:
        """Get all addresses, newest first."""
        query = select(Address).order_by(Address.id.desc())
        return list(self.session.execute(query).scalars().all())

    def get_by_id(self, address_id: int) -> Optional[Address]:
        return self.session.get(Address, address_id)

    def create(self, address_data: Dict[str, Any]) -> Address:
        """
        Create a new address.

        Args:
            address_data: Address fields; `country` defaults to India

        Returns:
            Created Address instance
        """
        data = {k: v for k, v in address_data.items() if k in self.UPDATABLE_FIELDS}
        if not data.get("country"):
            data["country"] = "India"
        address = _flush_new(self.session, Address(**data), "Address")
        logger.debug(f"Created address: {address.id}")
        return address

    def update(self, address_id: int, updates: Dict[str, Any]) -> bool:
        """
        Update allow-listed address fields.

        Returns:
            False if the address is missing or no allow-listed field was given
        """
        address = self.get_by_id(address_id)
        if address is None:
            return False
        if not _apply_updates(address, updates, self.UPDATABLE_FIELDS):
            return False
        self.session.flush()
        return True

    def delete(self, address_id: int) -> bool:
        """Delete an address. Owners keep their rows with address_id set to NULL."""
        result = self.session.execute(delete(Address).where(Address.id == address_id))
        return result.rowcount > 0


# ============================================
# INSTITUTION REPOSITORY
# ============================================

class InstitutionRepository:
    """Repository for banks and post offices."""

    UPDATABLE_FIELDS = frozenset({
        "institution_name", "institution_type", "branch_code", "ifsc_code", "address_id",
    })

    def __init__(self, session: Session):
        self.session = session

    def create(self, institution_data: Dict[str, Any]) -> Institution:
        data = {k: v for k, v in institution_data.items() if k in self.UPDATABLE_FIELDS}
        institution = _flush_new(self.session, Institution(**data), "Institution")
        logger.debug(f"Created institution: {institution.id} ({institution.institution_name})")
        return institution

    def find_by_id(self, institution_id: int) -> Optional[Institution]:
        return self.session.get(Institution, institution_id)

    def find_all(self) -> List[Institution]:
        query = select(Institution).order_by(Institution.institution_name)
        return list(self.session.execute(query).scalars().all())

    def find_by_type(self, institution_type: str) -> List[Institution]:
        query = select(Institution).where(
            Institution.institution_type == institution_type
        ).order_by(Institution.institution_name)
        return list(self.session.execute(query).scalars().all())

    def find_by_ifsc_code(self, ifsc_code: str) -> Optional[Institution]:
        query = select(Institution).where(Institution.ifsc_code == ifsc_code).limit(1)
        return self.session.execute(query).scalars().first()

    def update(self, institution_id: int, updates: Dict[str, Any]) -> Optional[Institution]:
        """
        Update only the provided fields.

        Returns:
            The updated institution, or None if it does not exist
        """
        institution = self.find_by_id(institution_id)
        if institution is None:
            return None
        _update_guarded(self.session, institution, updates, self.UPDATABLE_FIELDS, "Institution")
        return institution

    def delete(self, institution_id: int) -> bool:
        """
        Delete an institution.

        Raises:
            RepositoryError: If accounts still reference the institution
        """
        try:
            with self.session.begin_nested():
                result = self.session.execute(
                    delete(Institution).where(Institution.id == institution_id)
                )
        except IntegrityError as e:
            raise RepositoryError(
                f"Institution {institution_id} is still referenced by accounts"
            ) from e
        return result.rowcount > 0

    def find_with_address(self) -> List[Dict[str, Any]]:
        """All institutions with their address fields (left join)."""
        query = select(Institution, Address).outerjoin(
            Address, Institution.address_id == Address.id
        ).order_by(Institution.institution_name)
        rows = []
        for institution, address in self.session.execute(query).all():
            view = row_to_dict(institution)
            view.update(_address_fields(address))
            rows.append(view)
        return rows


# ============================================
# CONTACT REPOSITORY
# ============================================

class ContactRepository:
    """Repository for client email/phone contacts."""

    UPDATABLE_FIELDS = frozenset({"type", "contact_priority", "contact_details"})

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _ordering():
        # primary first, then secondary/unset, oldest first within a priority
        return (
            case((Contact.contact_priority == ContactPriority.PRIMARY, 0), else_=1),
            Contact.id.asc(),
        )

    def get_by_client_id(self, client_id: int) -> List[Contact]:
        query = select(Contact).where(Contact.client_id == client_id).order_by(*self._ordering())
        return list(self.session.execute(query).scalars().all())

    def get_by_id(self, contact_id: int) -> Optional[Contact]:
        return self.session.get(Contact, contact_id)

    def get_by_type_and_client(self, contact_type: str, client_id: int) -> List[Contact]:
        query = select(Contact).where(
            and_(Contact.type == contact_type, Contact.client_id == client_id)
        ).order_by(*self._ordering())
        return list(self.session.execute(query).scalars().all())

    def get_primary_contact(self, client_id: int, contact_type: str) -> Optional[Contact]:
        query = select(Contact).where(
            and_(
                Contact.client_id == client_id,
                Contact.type == contact_type,
                Contact.contact_priority == ContactPriority.PRIMARY,
            )
        ).order_by(Contact.id).limit(1)
        return self.session.execute(query).scalars().first()

    def create(self, contact_data: Dict[str, Any]) -> Contact:
        """
        Create a contact.

        Raises:
            RepositoryError: If the client does not exist
        """
        data = {k: v for k, v in contact_data.items() if k in self.UPDATABLE_FIELDS | {"client_id"}}
        contact = _flush_new(self.session, Contact(**data), "Contact")
        logger.debug(f"Created contact {contact.id} for client {contact.client_id}")
        return contact

    def create_multiple(self, client_id: int, contacts: List[Dict[str, Any]]) -> List[Contact]:
        """
        Create several contacts for one client.

        Each contact is inserted on its own; a failing entry is logged and
        skipped without undoing the ones already created.

        Returns:
            The contacts that were created
        """
        created = []
        for contact_data in contacts:
            try:
                created.append(self.create({**contact_data, "client_id": client_id}))
            except (RepositoryError, TypeError, ValueError) as e:
                logger.warning(f"Skipping contact for client {client_id}: {e}")
        return created

    def update(self, contact_id: int, updates: Dict[str, Any]) -> bool:
        contact = self.get_by_id(contact_id)
        if contact is None:
            return False
        if not _apply_updates(contact, updates, self.UPDATABLE_FIELDS):
            return False
        self.session.flush()
        return True

    def delete(self, contact_id: int) -> bool:
        result = self.session.execute(delete(Contact).where(Contact.id == contact_id))
        return result.rowcount > 0

    def delete_by_client_id(self, client_id: int) -> int:
        """Delete all contacts of a client. Returns the number removed."""
        result = self.session.execute(delete(Contact).where(Contact.client_id == client_id))
        return result.rowcount

    def set_primary(self, contact_id: int) -> bool:
        """
        Make a contact the primary one for its (client, type).

        The demotion of the current primary and the promotion of the target
        run in one SAVEPOINT, so no reader sees zero or two primaries.

        Returns:
            False if the contact does not exist
        """
        contact = self.get_by_id(contact_id)
        if contact is None:
            return False

        with self.session.begin_nested():
            self.session.execute(
                update(Contact)
                .where(
                    and_(
                        Contact.client_id == contact.client_id,
                        Contact.type == contact.type,
                        Contact.contact_priority == ContactPriority.PRIMARY,
                    )
                )
                .values(contact_priority=ContactPriority.SECONDARY)
            )
            contact.contact_priority = ContactPriority.PRIMARY

        logger.debug(f"Contact {contact_id} is now primary {_enum_value(contact.type)} for client {contact.client_id}")
        return True


# ============================================
# CLIENT REPOSITORY
# ============================================

class ClientRepository:
    """
    Repository for clients.

    Reads return denormalized views: client columns, flattened address
    fields, `email`/`phone` from the primary contacts, the full `contacts`
    list, `linked_client_name` and `all_linked_clients` (forward and reverse
    links).
    """

    UPDATABLE_FIELDS = frozenset({
        "title", "first_name", "middle_name", "last_name",
        "date_of_birth", "gender", "occupation",
        "kyc_number", "pan_number", "aadhaar_number",
        "address_id", "linked_client_id", "linked_client_relationship",
        "status",
    })

    def __init__(self, session: Session):
        self.session = session

    # ---- view assembly ----

    def _fetch_views(self, conditions: List[Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        linked = aliased(Client, name="linked_client")
        query = (
            select(
                Client,
                Address,
                PrimaryEmail.contact_details.label("email"),
                PrimaryPhone.contact_details.label("phone"),
                linked.first_name.label("linked_first_name"),
                linked.last_name.label("linked_last_name"),
            )
            .outerjoin(Address, Client.address_id == Address.id)
            .outerjoin(PrimaryEmail, _primary_contact_join(PrimaryEmail, Client.id, ContactType.EMAIL))
            .outerjoin(PrimaryPhone, _primary_contact_join(PrimaryPhone, Client.id, ContactType.PHONE))
            .outerjoin(linked, Client.linked_client_id == linked.id)
        )
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Client.first_name, Client.last_name, Client.id)
        if limit:
            query = query.limit(limit)

        views = []
        seen = set()
        for client, address, email, phone, linked_first, linked_last in self.session.execute(query).all():
            # a data error leaving two primaries would duplicate the row
            if client.id in seen:
                continue
            seen.add(client.id)
            view = row_to_dict(client)
            view.update(_address_fields(address))
            view["email"] = email
            view["phone"] = phone
            view["linked_client_name"] = _full_name(linked_first, linked_last)
            views.append(view)

        self._attach_contacts(views)
        self._attach_links(views)
        return views

    def _attach_contacts(self, views: List[Dict[str, Any]]) -> None:
        """Batch-load every contact of the listed clients in one query."""
        if not views:
            return
        ids = [view["id"] for view in views]
        query = select(Contact).where(Contact.client_id.in_(ids)).order_by(
            Contact.client_id, *ContactRepository._ordering()
        )
        grouped: Dict[int, List[Dict[str, Any]]] = {client_id: [] for client_id in ids}
        for contact in self.session.execute(query).scalars().all():
            grouped[contact.client_id].append(row_to_dict(contact))
        for view in views:
            view["contacts"] = grouped[view["id"]]

    def _attach_links(self, views: List[Dict[str, Any]]) -> None:
        """
        Merge forward links and reverse links into `all_linked_clients`.

        The relationship is stored only on the referencing client; reverse
        entries reuse that stored relationship.
        """
        if not views:
            return
        ids = [view["id"] for view in views]
        query = select(
            Client.id, Client.first_name, Client.last_name,
            Client.linked_client_id, Client.linked_client_relationship,
        ).where(
            and_(Client.linked_client_id.in_(ids), _not_deleted(Client))
        ).order_by(Client.id)

        reverse: Dict[int, List[Dict[str, Any]]] = {client_id: [] for client_id in ids}
        for row in self.session.execute(query).all():
            reverse[row.linked_client_id].append({
                "id": row.id,
                "name": _full_name(row.first_name, row.last_name),
                "relationship_type": _enum_value(row.linked_client_relationship),
                "direction": "reverse",
            })

        for view in views:
            links = []
            if view["linked_client_id"] is not None and view["linked_client_name"] is not None:
                links.append({
                    "id": view["linked_client_id"],
                    "name": view["linked_client_name"],
                    "relationship_type": view["linked_client_relationship"],
                    "direction": "forward",
                })
            links.extend(reverse[view["id"]])
            view["all_linked_clients"] = links

    # ---- reads ----

    @timed_query("clients.get_all")
    def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        List clients.

        Args:
            filters: Optional keys status, search, state, district, include_deleted

        Returns:
            Client views ordered by first and last name
        """
        filters = filters or {}
        conditions = []
        if not filters.get("include_deleted"):
            conditions.append(_not_deleted(Client))
        if filters.get("status"):
            conditions.append(Client.status == filters["status"])
        if filters.get("search"):
            term = _like(filters["search"])
            conditions.append(or_(
                Client.first_name.like(term),
                Client.last_name.like(term),
                PrimaryEmail.contact_details.like(term),
            ))
        if filters.get("state"):
            conditions.append(Address.state == filters["state"])
        if filters.get("district"):
            conditions.append(Address.district == filters["district"])
        return self._fetch_views(conditions)

    @timed_query("clients.get_by_id")
    def get_by_id(self, client_id: int, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        """
        Get one client view.

        Args:
            client_id: Client ID
            include_deleted: If True, also return a soft-deleted client

        Returns:
            Client view or None
        """
        conditions = [Client.id == client_id]
        if not include_deleted:
            conditions.append(_not_deleted(Client))
        views = self._fetch_views(conditions, limit=1)
        return views[0] if views else None

    def get_row(self, client_id: int) -> Optional[Client]:
        """Get the raw ORM row regardless of deletion status."""
        return self.session.get(Client, client_id)

    def exists(self, client_id: int) -> bool:
        query = select(func.count()).select_from(Client).where(
            and_(Client.id == client_id, _not_deleted(Client))
        )
        return self.session.execute(query).scalar_one() > 0

    def get_count(self, include_deleted: bool = False) -> int:
        query = select(func.count()).select_from(Client)
        if not include_deleted:
            query = query.where(_not_deleted(Client))
        return self.session.execute(query).scalar_one()

    def get_by_status(self, status: str) -> List[Dict[str, Any]]:
        return self._fetch_views([Client.status == status, _not_deleted(Client)])

    def search(self, term: str) -> List[Dict[str, Any]]:
        return self.get_all({"search": term})

    def get_by_linked_client_id(self, linked_client_id: int) -> List[Dict[str, Any]]:
        """Active clients whose link points at `linked_client_id`."""
        return self._fetch_views([
            Client.linked_client_id == linked_client_id,
            _not_deleted(Client),
        ])

    def get_deleted(self) -> List[Dict[str, Any]]:
        return self._fetch_views([Client.deletion_status == DeletionStatus.SOFT_DELETED])

    # ---- writes ----

    def create(self, client_data: Dict[str, Any]) -> Client:
        """
        Create a new client.

        Args:
            client_data: Client fields; unknown keys are ignored

        Returns:
            Created Client instance

        Raises:
            RepositoryError: If a referenced address or linked client is missing
        """
        data = {k: v for k, v in client_data.items() if k in self.UPDATABLE_FIELDS}
        client = _flush_new(self.session, Client(**data), "Client")
        logger.debug(f"Created client: {client.id} ({client.full_name})")
        return client

    def update(self, client_id: int, updates: Dict[str, Any]) -> bool:
        """
        Update allow-listed client fields.

        Returns:
            False if the client is missing or no allow-listed field was given
        """
        client = self.get_row(client_id)
        if client is None:
            return False
        return _update_guarded(self.session, client, updates, self.UPDATABLE_FIELDS, "Client")

    def delete(self, client_id: int) -> bool:
        """Soft delete. Idempotent; True whenever the client exists."""
        return _set_deletion_status(self.session, self.get_row(client_id), DeletionStatus.SOFT_DELETED, "Client")

    def restore(self, client_id: int) -> bool:
        """Undo a soft delete. Idempotent; True whenever the client exists."""
        return _set_deletion_status(self.session, self.get_row(client_id), DeletionStatus.ACTIVE, "Client")

    def hard_delete(self, client_id: int) -> bool:
        """
        Permanently remove a client.

        Contacts, shops, holdings and shop associations go with it; clients
        linking to it keep their rows with the link cleared.
        """
        return _cascade_delete(self.session, delete(Client).where(Client.id == client_id))


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


# ============================================
# ACCOUNT REPOSITORY
# ============================================

def parse_tenure_range(tenure_range: str) -> Tuple[int, Optional[int]]:
    """
    Parse a tenure filter in months.

    "12-24" means 12 to 24 inclusive, "24+" means 24 or more.

    Raises:
        RepositoryError: If the range is malformed
    """
    value = tenure_range.strip()
    try:
        if value.endswith("+"):
            return int(value[:-1]), None
        low, high = value.split("-", 1)
        return int(low), int(high)
    except ValueError as e:
        raise RepositoryError(f"Invalid tenure range: {tenure_range!r}") from e


class AccountRepository:
    """
    Repository for accounts.

    Views carry the institution fields and the holders with their names.
    """

    UPDATABLE_FIELDS = frozenset({
        "account_number", "account_type", "account_ownership_type", "balance",
        "interest_rate", "tenure", "start_date", "maturity_date", "payment_type",
        "status", "institution_id",
    })

    def __init__(self, session: Session):
        self.session = session

    def _fetch_views(self, conditions: List[Any]) -> List[Dict[str, Any]]:
        query = select(Account, Institution).join(
            Institution, Account.institution_id == Institution.id
        )
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Account.account_number)

        views = []
        for account, institution in self.session.execute(query).all():
            view = row_to_dict(account)
            view["institution_name"] = institution.institution_name
            view["institution_type"] = _enum_value(institution.institution_type)
            view["branch_code"] = institution.branch_code
            view["ifsc_code"] = institution.ifsc_code
            views.append(view)

        self._attach_holders(views)
        return views

    def _attach_holders(self, views: List[Dict[str, Any]]) -> None:
        if not views:
            return
        ids = [view["id"] for view in views]
        query = select(AccountHolder, Client.first_name, Client.last_name).join(
            Client, AccountHolder.client_id == Client.id
        ).where(AccountHolder.account_id.in_(ids)).order_by(
            AccountHolder.account_id, _holder_type_order(), AccountHolder.id
        )
        grouped: Dict[int, List[Dict[str, Any]]] = {account_id: [] for account_id in ids}
        for holder, first_name, last_name in self.session.execute(query).all():
            entry = row_to_dict(holder)
            entry["client_name"] = _full_name(first_name, last_name)
            grouped[holder.account_id].append(entry)
        for view in views:
            view["holders"] = grouped[view["id"]]
            view["account_holder_names"] = [h["client_name"] for h in grouped[view["id"]]]

    # ---- reads ----

    @timed_query("accounts.get_all")
    def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        List accounts.

        Args:
            filters: Optional keys status, search, institution_type, account_type,
                payment_type, tenure_range, client_ids, include_deleted

        Returns:
            Account views ordered by account number
        """
        filters = filters or {}
        conditions = []
        if not filters.get("include_deleted"):
            conditions.append(_not_deleted(Account))
        if filters.get("status"):
            conditions.append(Account.status == filters["status"])
        if filters.get("search"):
            term = _like(filters["search"])
            holder_match = select(AccountHolder.account_id).join(
                Client, AccountHolder.client_id == Client.id
            ).where(or_(Client.first_name.like(term), Client.last_name.like(term)))
            conditions.append(or_(
                Account.account_number.like(term),
                Institution.institution_name.like(term),
                Account.id.in_(holder_match),
            ))
        if filters.get("institution_type"):
            conditions.append(Institution.institution_type == filters["institution_type"])
        if filters.get("account_type"):
            conditions.append(Account.account_type == filters["account_type"])
        if filters.get("payment_type"):
            conditions.append(Account.payment_type == filters["payment_type"])
        if filters.get("tenure_range"):
            low, high = parse_tenure_range(filters["tenure_range"])
            if high is None:
                conditions.append(Account.tenure >= low)
            else:
                conditions.append(Account.tenure.between(low, high))
        if filters.get("client_ids"):
            held = select(AccountHolder.account_id).where(
                AccountHolder.client_id.in_(filters["client_ids"])
            )
            conditions.append(Account.id.in_(held))
        return self._fetch_views(conditions)

    @timed_query("accounts.get_by_id")
    def get_by_id(self, account_id: int, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        conditions = [Account.id == account_id]
        if not include_deleted:
            conditions.append(_not_deleted(Account))
        views = self._fetch_views(conditions)
        return views[0] if views else None

    def get_row(self, account_id: int) -> Optional[Account]:
        return self.session.get(Account, account_id)

    def get_by_account_number(self, account_number: str) -> Optional[Dict[str, Any]]:
        """Look up a non-deleted account by number."""
        views = self._fetch_views([
            Account.account_number == account_number,
            _not_deleted(Account),
        ])
        return views[0] if views else None

    def number_exists(self, account_number: str, exclude_id: Optional[int] = None) -> bool:
        """
        Check whether any row, deleted or not, already uses `account_number`.

        Args:
            account_number: Number to check
            exclude_id: Account to ignore (the one being updated)
        """
        query = select(func.count()).select_from(Account).where(
            Account.account_number == account_number
        )
        if exclude_id is not None:
            query = query.where(Account.id != exclude_id)
        return self.session.execute(query).scalar_one() > 0

    def get_count(self, include_deleted: bool = False) -> int:
        query = select(func.count()).select_from(Account)
        if not include_deleted:
            query = query.where(_not_deleted(Account))
        return self.session.execute(query).scalar_one()

    def get_by_status(self, status: str) -> List[Dict[str, Any]]:
        return self._fetch_views([Account.status == status, _not_deleted(Account)])

    def search(self, term: str) -> List[Dict[str, Any]]:
        return self.get_all({"search": term})

    def get_by_institution_type(self, institution_type: str) -> List[Dict[str, Any]]:
        return self.get_all({"institution_type": institution_type})

    def get_by_account_type(self, account_type: str) -> List[Dict[str, Any]]:
        return self.get_all({"account_type": account_type})

    def get_by_payment_type(self, payment_type: str) -> List[Dict[str, Any]]:
        return self.get_all({"payment_type": payment_type})

    def get_deleted(self) -> List[Dict[str, Any]]:
        return self._fetch_views([Account.deletion_status == DeletionStatus.SOFT_DELETED])

    # ---- writes ----

    def create(self, account_data: Dict[str, Any]) -> Account:
        """
        Create a new account.

        Raises:
            DuplicateEntityError: If the account number is already used
            RepositoryError: If the institution does not exist
        """
        data = {k: v for k, v in account_data.items() if k in self.UPDATABLE_FIELDS}
        account = _flush_new(self.session, Account(**data), "Account")
        logger.debug(f"Created account: {account.id} ({account.account_number})")
        return account

    def update(self, account_id: int, updates: Dict[str, Any]) -> bool:
        account = self.get_row(account_id)
        if account is None:
            return False
        return _update_guarded(self.session, account, updates, self.UPDATABLE_FIELDS, "Account")

    def delete(self, account_id: int) -> bool:
        return _set_deletion_status(self.session, self.get_row(account_id), DeletionStatus.SOFT_DELETED, "Account")

    def restore(self, account_id: int) -> bool:
        return _set_deletion_status(self.session, self.get_row(account_id), DeletionStatus.ACTIVE, "Account")

    def hard_delete(self, account_id: int) -> bool:
        """Permanently remove an account with its holders and transactions."""
        return _cascade_delete(self.session, delete(Account).where(Account.id == account_id))


def _holder_type_order():
    return case(
        (AccountHolder.holder_type == HolderType.PRIMARY, 0),
        (AccountHolder.holder_type == HolderType.SECONDARY, 1),
        else_=2,
    )


# ============================================
# ACCOUNT HOLDER REPOSITORY
# ============================================

class AccountHolderRepository:
    """Repository for the account/client junction."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, holder_data: Dict[str, Any]) -> AccountHolder:
        """
        Add a client to an account.

        Raises:
            DuplicateEntityError: If the client already holds the account
        """
        allowed = {"account_id", "client_id", "holder_type", "share_percentage"}
        data = {k: v for k, v in holder_data.items() if k in allowed and v is not None}
        holder = _flush_new(self.session, AccountHolder(**data), "Account holder")
        logger.debug(f"Client {holder.client_id} added to account {holder.account_id}")
        return holder

    def find_by_id(self, holder_id: int) -> Optional[AccountHolder]:
        return self.session.get(AccountHolder, holder_id)

    def find_by_account_id(self, account_id: int) -> List[AccountHolder]:
        query = select(AccountHolder).where(
            AccountHolder.account_id == account_id
        ).order_by(_holder_type_order(), AccountHolder.id)
        return list(self.session.execute(query).scalars().all())

    def find_by_client_id(self, client_id: int) -> List[AccountHolder]:
        query = select(AccountHolder).where(
            AccountHolder.client_id == client_id
        ).order_by(AccountHolder.created_at.desc(), AccountHolder.id.desc())
        return list(self.session.execute(query).scalars().all())

    def find_account_holders_with_details(self, account_id: int) -> List[Dict[str, Any]]:
        """Holders of an account with client name and primary contacts."""
        query = (
            select(
                AccountHolder, Client.first_name, Client.last_name,
                PrimaryEmail.contact_details, PrimaryPhone.contact_details,
            )
            .join(Client, AccountHolder.client_id == Client.id)
            .outerjoin(PrimaryEmail, _primary_contact_join(PrimaryEmail, Client.id, ContactType.EMAIL))
            .outerjoin(PrimaryPhone, _primary_contact_join(PrimaryPhone, Client.id, ContactType.PHONE))
            .where(AccountHolder.account_id == account_id)
            .order_by(_holder_type_order(), AccountHolder.id)
        )
        rows = []
        for holder, first_name, last_name, email, phone in self.session.execute(query).all():
            view = row_to_dict(holder)
            view.update({
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "phone": phone,
            })
            rows.append(view)
        return rows

    def find_client_accounts_with_details(self, client_id: int) -> List[Dict[str, Any]]:
        """Non-deleted accounts held by a client, with institution details."""
        query = (
            select(
                AccountHolder, Account.account_number, Account.account_type,
                Account.status, Institution.institution_name, Institution.institution_type,
            )
            .join(Account, AccountHolder.account_id == Account.id)
            .join(Institution, Account.institution_id == Institution.id)
            .where(and_(AccountHolder.client_id == client_id, _not_deleted(Account)))
            .order_by(AccountHolder.created_at.desc(), AccountHolder.id.desc())
        )
        rows = []
        for holder, number, account_type, status, inst_name, inst_type in self.session.execute(query).all():
            view = row_to_dict(holder)
            view.update({
                "account_number": number,
                "account_type": _enum_value(account_type),
                "account_status": _enum_value(status),
                "institution_name": inst_name,
                "institution_type": _enum_value(inst_type),
            })
            rows.append(view)
        return rows

    def delete(self, holder_id: int) -> bool:
        result = self.session.execute(delete(AccountHolder).where(AccountHolder.id == holder_id))
        return result.rowcount > 0

    def delete_by_account_and_client(self, account_id: int, client_id: int) -> bool:
        result = self.session.execute(
            delete(AccountHolder).where(
                and_(AccountHolder.account_id == account_id, AccountHolder.client_id == client_id)
            )
        )
        return result.rowcount > 0

    def update_holder_type(self, holder_id: int, holder_type: str) -> bool:
        holder = self.find_by_id(holder_id)
        if holder is None:
            return False
        holder.holder_type = holder_type
        self.session.flush()
        return True


# ============================================
# SHOP REPOSITORY
# ============================================

class ShopRepository:
    """Repository for shops. Views carry `owner_name` and the address fields."""

    UPDATABLE_FIELDS = frozenset({
        "shop_name", "shop_type", "category", "license_number",
        "status", "owner_id", "address_id",
    })

    def __init__(self, session: Session):
        self.session = session

    def _fetch_views(self, conditions: List[Any]) -> List[Dict[str, Any]]:
        query = (
            select(Shop, Address, Client.first_name, Client.last_name)
            .join(Client, Shop.owner_id == Client.id)
            .outerjoin(Address, Shop.address_id == Address.id)
        )
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Shop.shop_name, Shop.id)

        views = []
        for shop, address, first_name, last_name in self.session.execute(query).all():
            view = row_to_dict(shop)
            view.update(_address_fields(address))
            view["owner_name"] = _full_name(first_name, last_name)
            views.append(view)
        return views

    @timed_query("shops.get_all")
    def get_all(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        List shops.

        Args:
            filters: Optional keys status, search, shop_type, category, state,
                district, include_deleted
        """
        filters = filters or {}
        conditions = []
        if not filters.get("include_deleted"):
            conditions.append(_not_deleted(Shop))
        if filters.get("status"):
            conditions.append(Shop.status == filters["status"])
        if filters.get("search"):
            term = _like(filters["search"])
            conditions.append(or_(
                Shop.shop_name.like(term),
                Shop.category.like(term),
                Client.first_name.like(term),
                Client.last_name.like(term),
            ))
        if filters.get("shop_type"):
            conditions.append(Shop.shop_type == filters["shop_type"])
        if filters.get("category"):
            conditions.append(Shop.category == filters["category"])
        if filters.get("state"):
            conditions.append(Address.state == filters["state"])
        if filters.get("district"):
            conditions.append(Address.district == filters["district"])
        return self._fetch_views(conditions)

    def get_by_id(self, shop_id: int, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        conditions = [Shop.id == shop_id]
        if not include_deleted:
            conditions.append(_not_deleted(Shop))
        views = self._fetch_views(conditions)
        return views[0] if views else None

    def get_row(self, shop_id: int) -> Optional[Shop]:
        return self.session.get(Shop, shop_id)

    def get_count(self, include_deleted: bool = False) -> int:
        query = select(func.count()).select_from(Shop)
        if not include_deleted:
            query = query.where(_not_deleted(Shop))
        return self.session.execute(query).scalar_one()

    def get_by_status(self, status: str) -> List[Dict[str, Any]]:
        return self.get_all({"status": status})

    def search(self, term: str) -> List[Dict[str, Any]]:
        return self.get_all({"search": term})

    def get_by_type(self, shop_type: str) -> List[Dict[str, Any]]:
        return self.get_all({"shop_type": shop_type})

    def get_by_category(self, category: str) -> List[Dict[str, Any]]:
        return self.get_all({"category": category})

    def get_deleted(self) -> List[Dict[str, Any]]:
        return self._fetch_views([Shop.deletion_status == DeletionStatus.SOFT_DELETED])

    def create(self, shop_data: Dict[str, Any]) -> Shop:
        """
        Create a new shop.

        Raises:
            RepositoryError: If the owner or address does not exist
        """
        data = {k: v for k, v in shop_data.items() if k in self.UPDATABLE_FIELDS}
        shop = _flush_new(self.session, Shop(**data), "Shop")
        logger.debug(f"Created shop: {shop.id} ({shop.shop_name})")
        return shop

    def update(self, shop_id: int, updates: Dict[str, Any]) -> bool:
        shop = self.get_row(shop_id)
        if shop is None:
            return False
        return _update_guarded(self.session, shop, updates, self.UPDATABLE_FIELDS, "Shop")

    def delete(self, shop_id: int) -> bool:
        return _set_deletion_status(self.session, self.get_row(shop_id), DeletionStatus.SOFT_DELETED, "Shop")

    def restore(self, shop_id: int) -> bool:
        return _set_deletion_status(self.session, self.get_row(shop_id), DeletionStatus.ACTIVE, "Shop")

    def hard_delete(self, shop_id: int) -> bool:
        return _cascade_delete(self.session, delete(Shop).where(Shop.id == shop_id))


# ============================================
# SHOP CLIENT REPOSITORY
# ============================================

class ShopClientRepository:
    """Repository for shop/client associations."""

    def __init__(self, session: Session):
        self.session = session

    def _detail_query(self):
        return (
            select(
                ShopClient,
                Client.first_name, Client.last_name,
                PrimaryEmail.contact_details, PrimaryPhone.contact_details,
                Shop.shop_name,
            )
            .join(Client, ShopClient.client_id == Client.id)
            .join(Shop, ShopClient.shop_id == Shop.id)
            .outerjoin(PrimaryEmail, _primary_contact_join(PrimaryEmail, Client.id, ContactType.EMAIL))
            .outerjoin(PrimaryPhone, _primary_contact_join(PrimaryPhone, Client.id, ContactType.PHONE))
        )

    def _details(self, query) -> List[Dict[str, Any]]:
        rows = []
        for link, first_name, last_name, email, phone, shop_name in self.session.execute(query).all():
            view = row_to_dict(link)
            view.update({
                "client_first_name": first_name,
                "client_last_name": last_name,
                "client_email": email,
                "client_phone": phone,
                "shop_name": shop_name,
            })
            rows.append(view)
        return rows

    def add_client_to_shop(
        self,
        shop_id: int,
        client_id: int,
        relationship_type: str = ShopRelationshipType.CUSTOMER
    ) -> ShopClient:
        """
        Associate a client with a shop.

        Raises:
            DuplicateEntityError: If the pair is already associated
            RepositoryError: If the shop or client does not exist
        """
        link = ShopClient(
            shop_id=shop_id,
            client_id=client_id,
            relationship_type=relationship_type or ShopRelationshipType.CUSTOMER,
        )
        _flush_new(self.session, link, "Shop client association")
        logger.debug(f"Client {client_id} associated with shop {shop_id}")
        return link

    def remove_client_from_shop(self, shop_id: int, client_id: int) -> bool:
        result = self.session.execute(
            delete(ShopClient).where(
                and_(ShopClient.shop_id == shop_id, ShopClient.client_id == client_id)
            )
        )
        return result.rowcount > 0

    def get_clients_for_shop(self, shop_id: int) -> List[Dict[str, Any]]:
        query = self._detail_query().where(ShopClient.shop_id == shop_id).order_by(
            Client.first_name, Client.last_name
        )
        return self._details(query)

    def get_shops_for_client(self, client_id: int) -> List[Dict[str, Any]]:
        query = self._detail_query().where(ShopClient.client_id == client_id).order_by(
            Shop.shop_name
        )
        return self._details(query)

    def is_client_associated_with_shop(self, shop_id: int, client_id: int) -> bool:
        query = select(func.count()).select_from(ShopClient).where(
            and_(ShopClient.shop_id == shop_id, ShopClient.client_id == client_id)
        )
        return self.session.execute(query).scalar_one() > 0

    def get_by_id(self, link_id: int) -> Optional[Dict[str, Any]]:
        rows = self._details(self._detail_query().where(ShopClient.id == link_id))
        return rows[0] if rows else None

    def get_client_count_for_shop(self, shop_id: int) -> int:
        query = select(func.count()).select_from(ShopClient).where(ShopClient.shop_id == shop_id)
        return self.session.execute(query).scalar_one()

    def get_shop_count_for_client(self, client_id: int) -> int:
        query = select(func.count()).select_from(ShopClient).where(ShopClient.client_id == client_id)
        return self.session.execute(query).scalar_one()


# ============================================
# TRANSACTION REPOSITORY
# ============================================

CREDIT_TYPES = (TransactionType.DEPOSIT, TransactionType.INTEREST)
DEBIT_TYPES = (TransactionType.WITHDRAWAL, TransactionType.PENALTY)


class TransactionRepository:
    """Repository for the per-account ledger."""

    UPDATABLE_FIELDS = frozenset({
        "transaction_type", "amount", "balance_after", "transaction_date",
        "description", "reference_number", "status",
    })

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _newest_first(query):
        return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())

    def create(self, transaction_data: Dict[str, Any]) -> Transaction:
        """
        Record a transaction.

        Raises:
            RepositoryError: If the account does not exist
        """
        data = {k: v for k, v in transaction_data.items() if k in self.UPDATABLE_FIELDS | {"account_id"}}
        if data.get("transaction_date") is None:
            data["transaction_date"] = date.today()
        transaction = _flush_new(self.session, Transaction(**data), "Transaction")
        logger.debug(
            f"Created transaction {transaction.id}: {_enum_value(transaction.transaction_type)} "
            f"{transaction.amount} on account {transaction.account_id}"
        )
        return transaction

    def find_by_id(self, transaction_id: int) -> Optional[Transaction]:
        return self.session.get(Transaction, transaction_id)

    def find_by_account_id(self, account_id: int, limit: Optional[int] = None) -> List[Transaction]:
        query = self._newest_first(select(Transaction).where(Transaction.account_id == account_id))
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars().all())

    def find_by_date_range(
        self,
        start_date: date,
        end_date: date,
        account_id: Optional[int] = None
    ) -> List[Transaction]:
        conditions = [Transaction.transaction_date.between(start_date, end_date)]
        if account_id is not None:
            conditions.append(Transaction.account_id == account_id)
        query = self._newest_first(select(Transaction).where(and_(*conditions)))
        return list(self.session.execute(query).scalars().all())

    def find_by_type(self, transaction_type: str, account_id: Optional[int] = None) -> List[Transaction]:
        conditions = [Transaction.transaction_type == transaction_type]
        if account_id is not None:
            conditions.append(Transaction.account_id == account_id)
        query = self._newest_first(select(Transaction).where(and_(*conditions)))
        return list(self.session.execute(query).scalars().all())

    def find_by_status(self, status: str, account_id: Optional[int] = None) -> List[Transaction]:
        conditions = [Transaction.status == status]
        if account_id is not None:
            conditions.append(Transaction.account_id == account_id)
        query = self._newest_first(select(Transaction).where(and_(*conditions)))
        return list(self.session.execute(query).scalars().all())

    def find_with_account_details(self, account_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = select(Transaction, Account.account_number, Account.account_type).join(
            Account, Transaction.account_id == Account.id
        )
        if account_id is not None:
            query = query.where(Transaction.account_id == account_id)
        rows = []
        for transaction, number, account_type in self.session.execute(self._newest_first(query)).all():
            view = row_to_dict(transaction)
            view["account_number"] = number
            view["account_type"] = _enum_value(account_type)
            rows.append(view)
        return rows

    def update(self, transaction_id: int, updates: Dict[str, Any]) -> Optional[Transaction]:
        """Change only the provided fields. Returns None if the row is missing."""
        transaction = self.find_by_id(transaction_id)
        if transaction is None:
            return None
        if _apply_updates(transaction, updates, self.UPDATABLE_FIELDS):
            self.session.flush()
        return transaction

    def delete(self, transaction_id: int) -> bool:
        result = self.session.execute(delete(Transaction).where(Transaction.id == transaction_id))
        return result.rowcount > 0

    @timed_query("transactions.get_account_balance")
    def get_account_balance(self, account_id: int) -> float:
        """
        Derived balance of an account.

        Sum of completed deposits and interest minus completed withdrawals
        and penalties. Other statuses and types do not count.
        """
        signed = case(
            (Transaction.transaction_type.in_(CREDIT_TYPES), Transaction.amount),
            (Transaction.transaction_type.in_(DEBIT_TYPES), -Transaction.amount),
            else_=0,
        )
        query = select(func.coalesce(func.sum(signed), 0)).where(
            and_(
                Transaction.account_id == account_id,
                Transaction.status == TransactionStatus.COMPLETED,
            )
        )
        return round(float(self.session.execute(query).scalar_one()), 2)

    @timed_query("transactions.get_transaction_summary")
    def get_transaction_summary(self, account_id: int) -> List[Dict[str, Any]]:
        """Count, total and average of completed transactions per type."""
        query = select(
            Transaction.transaction_type,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.amount), 0),
            func.coalesce(func.avg(Transaction.amount), 0),
        ).where(
            and_(
                Transaction.account_id == account_id,
                Transaction.status == TransactionStatus.COMPLETED,
            )
        ).group_by(Transaction.transaction_type).order_by(Transaction.transaction_type)

        return [
            {
                "transaction_type": _enum_value(transaction_type),
                "count": count,
                "total_amount": round(float(total), 2),
                "average_amount": round(float(average), 2),
            }
            for transaction_type, count, total, average in self.session.execute(query).all()
        ]


# ============================================
# AUDIT LOG REPOSITORY
# ============================================

class AuditLogRepository:
    """Repository for the change history."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _newest_first(query):
        return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    def _list(self, query, limit: Optional[int] = None) -> List[AuditLog]:
        query = self._newest_first(query)
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars().all())

    def create(self, audit_data: Dict[str, Any]) -> AuditLog:
        allowed = {
            "table_name", "record_id", "operation", "old_values",
            "new_values", "user_id", "timestamp",
        }
        data = {k: v for k, v in audit_data.items() if k in allowed}
        entry = AuditLog(**data)
        self.session.add(entry)
        self.session.flush()
        return entry

    def find_by_id(self, audit_id: int) -> Optional[AuditLog]:
        return self.session.get(AuditLog, audit_id)

    def find_by_table(self, table_name: str, limit: Optional[int] = None) -> List[AuditLog]:
        return self._list(select(AuditLog).where(AuditLog.table_name == table_name), limit)

    def find_by_record(self, table_name: str, record_id: int) -> List[AuditLog]:
        return self._list(select(AuditLog).where(
            and_(AuditLog.table_name == table_name, AuditLog.record_id == record_id)
        ))

    def find_by_operation(self, operation: str, limit: Optional[int] = None) -> List[AuditLog]:
        return self._list(select(AuditLog).where(AuditLog.operation == operation), limit)

    def find_by_user(self, user_id: str, limit: Optional[int] = None) -> List[AuditLog]:
        return self._list(select(AuditLog).where(AuditLog.user_id == user_id), limit)

    def find_by_date_range(self, start: datetime, end: datetime) -> List[AuditLog]:
        return self._list(select(AuditLog).where(AuditLog.timestamp.between(start, end)))

    def find_all(
        self,
        limit: Optional[int] = None,
        table_name: Optional[str] = None,
        record_id: Optional[int] = None,
        operation: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[AuditLog]:
        """
        List audit entries, newest first, with optional filters.

        Args:
            limit: Maximum entries to return
            table_name: Only entries for this table
            record_id: Only entries for this record id
            operation: Only this operation
            user_id: Only entries written by this user
        """
        conditions = []
        if table_name:
            conditions.append(AuditLog.table_name == table_name)
        if record_id is not None:
            conditions.append(AuditLog.record_id == record_id)
        if operation:
            conditions.append(AuditLog.operation == operation)
        if user_id:
            conditions.append(AuditLog.user_id == user_id)
        query = select(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
        return self._list(query, limit)

    def log_change(
        self,
        table_name: str,
        record_id: int,
        operation: AuditOperation,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditLog:
        """
        Record one change.

        Snapshots are stored as JSON text; values JSON cannot encode
        (dates, decimals) are stringified.
        """
        entry = self.create({
            "table_name": table_name,
            "record_id": record_id,
            "operation": operation,
            "old_values": json.dumps(old_values, default=str) if old_values is not None else None,
            "new_values": json.dumps(new_values, default=str) if new_values is not None else None,
            "user_id": user_id,
        })
        logger.debug(f"Audit {_enum_value(operation)} {table_name}#{record_id} by {user_id or 'anonymous'}")
        return entry

    def delete_older_than(self, days: int) -> int:
        """
        Purge entries older than `days` days.

        Returns:
            Number of entries removed
        """
        cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
        result = self.session.execute(delete(AuditLog).where(AuditLog.timestamp < cutoff))
        logger.info(f"Purged {result.rowcount} audit entries older than {days} days")
        return result.rowcount


# ============================================
# DOCUMENT REPOSITORY
# ============================================

class DocumentRepository:
    """Repository for uploaded documents. Deleting only deactivates."""

    UPDATABLE_FIELDS = frozenset({
        "document_number", "file_name", "file_path", "file_size", "mime_type",
        "expiry_date", "is_verified", "is_active", "verified_by", "verified_at", "notes",
    })

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _newest_first(query):
        return query.order_by(Document.uploaded_at.desc(), Document.id.desc())

    def get_by_entity(self, entity_type: str, entity_id: int) -> List[Document]:
        query = self._newest_first(select(Document).where(
            and_(
                Document.entity_type == entity_type,
                Document.entity_id == entity_id,
                Document.is_active.is_(True),
            )
        ))
        return list(self.session.execute(query).scalars().all())

    def get_by_id(self, document_id: int) -> Optional[Document]:
        query = select(Document).where(
            and_(Document.id == document_id, Document.is_active.is_(True))
        )
        return self.session.execute(query).scalars().first()

    def get_by_type_and_entity(self, document_type: str, entity_type: str, entity_id: int) -> List[Document]:
        query = self._newest_first(select(Document).where(
            and_(
                Document.document_type == document_type,
                Document.entity_type == entity_type,
                Document.entity_id == entity_id,
                Document.is_active.is_(True),
            )
        ))
        return list(self.session.execute(query).scalars().all())

    def create(self, document_data: Dict[str, Any]) -> Document:
        allowed = self.UPDATABLE_FIELDS | {"entity_type", "entity_id", "document_type"}
        data = {k: v for k, v in document_data.items() if k in allowed}
        document = _flush_new(self.session, Document(**data), "Document")
        logger.debug(
            f"Created document {document.id} ({_enum_value(document.document_type)}) "
            f"for {_enum_value(document.entity_type)} {document.entity_id}"
        )
        return document

    def update(self, document_id: int, updates: Dict[str, Any]) -> bool:
        document = self.session.get(Document, document_id)
        if document is None:
            return False
        if not _apply_updates(document, updates, self.UPDATABLE_FIELDS):
            return False
        self.session.flush()
        return True

    def delete(self, document_id: int) -> bool:
        """Soft delete: the row stays with is_active cleared."""
        return self.update(document_id, {"is_active": False})

    def hard_delete(self, document_id: int) -> bool:
        result = self.session.execute(delete(Document).where(Document.id == document_id))
        return result.rowcount > 0

    def verify(self, document_id: int, verified_by: str) -> bool:
        return self.update(document_id, {
            "is_verified": True,
            "verified_by": verified_by,
            "verified_at": datetime.now(timezone.utc),
        })


# ============================================
# PROFILE PICTURE REPOSITORY
# ============================================

class ProfilePictureRepository:
    """Repository for client, shop and account images."""

    UPDATABLE_FIELDS = frozenset({
        "entity_type", "entity_id", "image_type", "file_name", "file_path",
        "file_size", "mime_type", "is_active",
    })

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _newest_first(query):
        return query.order_by(ProfilePicture.uploaded_at.desc(), ProfilePicture.id.desc())

    def create(self, picture_data: Dict[str, Any]) -> ProfilePicture:
        data = {k: v for k, v in picture_data.items() if k in self.UPDATABLE_FIELDS}
        picture = ProfilePicture(**data)
        self.session.add(picture)
        self.session.flush()
        return picture

    def find_by_id(self, picture_id: int) -> Optional[ProfilePicture]:
        return self.session.get(ProfilePicture, picture_id)

    def find_by_entity(self, entity_type: str, entity_id: int) -> List[ProfilePicture]:
        query = self._newest_first(select(ProfilePicture).where(
            and_(
                ProfilePicture.entity_type == entity_type,
                ProfilePicture.entity_id == entity_id,
                ProfilePicture.is_active.is_(True),
            )
        ))
        return list(self.session.execute(query).scalars().all())

    def find_by_entity_and_type(self, entity_type: str, entity_id: int, image_type: str) -> Optional[ProfilePicture]:
        """The current active image of one type for an entity."""
        query = self._newest_first(select(ProfilePicture).where(
            and_(
                ProfilePicture.entity_type == entity_type,
                ProfilePicture.entity_id == entity_id,
                ProfilePicture.image_type == image_type,
                ProfilePicture.is_active.is_(True),
            )
        )).limit(1)
        return self.session.execute(query).scalars().first()

    def find_all(self, filters: Optional[Dict[str, Any]] = None) -> List[ProfilePicture]:
        """
        List pictures.

        Args:
            filters: Optional keys entity_type, image_type, is_active
        """
        filters = filters or {}
        conditions = []
        if filters.get("entity_type"):
            conditions.append(ProfilePicture.entity_type == filters["entity_type"])
        if filters.get("image_type"):
            conditions.append(ProfilePicture.image_type == filters["image_type"])
        if filters.get("is_active") is not None:
            conditions.append(ProfilePicture.is_active.is_(bool(filters["is_active"])))
        query = select(ProfilePicture)
        if conditions:
            query = query.where(and_(*conditions))
        return list(self.session.execute(self._newest_first(query)).scalars().all())

    def update(self, picture_id: int, updates: Dict[str, Any]) -> Optional[ProfilePicture]:
        picture = self.find_by_id(picture_id)
        if picture is None:
            return None
        provided = {k: v for k, v in updates.items() if v is not None}
        if _apply_updates(picture, provided, self.UPDATABLE_FIELDS):
            self.session.flush()
        return picture

    def deactivate(self, picture_id: int) -> bool:
        return self.update(picture_id, {"is_active": False}) is not None

    def delete(self, picture_id: int) -> bool:
        result = self.session.execute(delete(ProfilePicture).where(ProfilePicture.id == picture_id))
        return result.rowcount > 0

    def replace_image(
        self,
        entity_type: str,
        entity_id: int,
        image_type: str,
        new_image: Dict[str, Any]
    ) -> ProfilePicture:
        """
        Deactivate the current image of this type and store the new one.

        Afterwards exactly one active picture exists for (entity, image_type).
        """
        self.session.execute(
            update(ProfilePicture)
            .where(
                and_(
                    ProfilePicture.entity_type == entity_type,
                    ProfilePicture.entity_id == entity_id,
                    ProfilePicture.image_type == image_type,
                    ProfilePicture.is_active.is_(True),
                )
            )
            .values(is_active=False)
        )
        return self.create({
            **new_image,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "image_type": image_type,
            "is_active": True,
        })

    def _with_owner(self, owner_query) -> List[Dict[str, Any]]:
        rows = []
        for row in self.session.execute(owner_query).all():
            picture, *extra = row
            view = row_to_dict(picture)
            for key, value in zip(row._fields[1:], extra):
                view[key] = _enum_value(value)
            rows.append(view)
        return rows

    def find_client_profile_pictures(self) -> List[Dict[str, Any]]:
        query = self._newest_first(
            select(ProfilePicture, Client.first_name, Client.last_name)
            .join(Client, ProfilePicture.entity_id == Client.id)
            .where(and_(
                ProfilePicture.entity_type == PictureEntityType.CLIENT,
                ProfilePicture.is_active.is_(True),
            ))
        )
        return self._with_owner(query)

    def find_shop_profile_pictures(self) -> List[Dict[str, Any]]:
        query = self._newest_first(
            select(ProfilePicture, Shop.shop_name, Shop.shop_type, Shop.category)
            .join(Shop, ProfilePicture.entity_id == Shop.id)
            .where(and_(
                ProfilePicture.entity_type == PictureEntityType.SHOP,
                ProfilePicture.is_active.is_(True),
            ))
        )
        return self._with_owner(query)

    def find_account_profile_pictures(self) -> List[Dict[str, Any]]:
        query = self._newest_first(
            select(
                ProfilePicture, Account.account_number, Account.account_type,
                Institution.institution_name, Institution.institution_type,
            )
            .join(Account, ProfilePicture.entity_id == Account.id)
            .join(Institution, Account.institution_id == Institution.id)
            .where(and_(
                ProfilePicture.entity_type == PictureEntityType.ACCOUNT,
                ProfilePicture.is_active.is_(True),
            ))
        )
        return self._with_owner(query)

    def get_storage_stats(self) -> List[Dict[str, Any]]:
        """Count and size of active pictures grouped by entity and image type."""
        query = select(
            ProfilePicture.entity_type,
            ProfilePicture.image_type,
            func.count(ProfilePicture.id),
            func.sum(ProfilePicture.file_size),
            func.avg(ProfilePicture.file_size),
        ).where(
            and_(ProfilePicture.is_active.is_(True), ProfilePicture.file_size.is_not(None))
        ).group_by(
            ProfilePicture.entity_type, ProfilePicture.image_type
        ).order_by(ProfilePicture.entity_type, ProfilePicture.image_type)

        return [
            {
                "entity_type": _enum_value(entity_type),
                "image_type": _enum_value(image_type),
                "count": count,
                "total_size": int(total or 0),
                "avg_size": float(average or 0),
            }
            for entity_type, image_type, count, total, average in self.session.execute(query).all()
        ]
