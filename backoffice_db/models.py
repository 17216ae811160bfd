"""
SQLAlchemy ORM Models for the Back Office Store

This module defines the relational schema behind the admin back office:
- Normalized reference data (addresses, institutions)
- Clients with per-client contacts and optional client-to-client links
- Accounts held by one or more clients, with a transaction ledger
- Shops owned by clients and their client associations
- Polymorphic attachments (documents, profile pictures) keyed by entity type/id
- An explicit audit trail

Tables:
1. addresses - Shared postal addresses (referenced with SET NULL)
2. institutions - Banks and post offices
3. clients - Core client records with soft delete
4. contacts - Email/phone records per client
5. shops - Shops owned by a client
6. accounts - Financial accounts at an institution
7. account_holders - Junction table linking accounts to clients
8. shop_clients - Junction table linking shops to clients
9. transactions - Per-account ledger
10. audit_log - Change history written by callers
11. profile_pictures - Images attached to clients/shops/accounts
12. documents - KYC and account documents attached to clients/accounts
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from typing import List, Optional, Type

from sqlalchemy import (
    String, Integer, Float, Boolean, Date, DateTime, Text, Numeric,
    ForeignKey, Index, UniqueConstraint, Enum,
)
from sqlalchemy.orm import relationship, declarative_base, Mapped, mapped_column
from sqlalchemy.sql import func

# Base class for all models
Base = declarative_base()


# ============================================
# ENUMS
# ============================================

class DeletionStatus(str, PyEnum):
    """Lifecycle of a soft-deletable row. HARD_DELETED is terminal (row absent)."""
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"
    HARD_DELETED = "hard_deleted"


class InstitutionType(str, PyEnum):
    """Kind of financial institution"""
    BANK = "bank"
    POST_OFFICE = "post_office"


class ClientStatus(str, PyEnum):
    """Onboarding status of a client"""
    INVITE_NOW = "invite_now"
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class LinkedClientRelationship(str, PyEnum):
    """Relationship stored on the referencing side of a client link"""
    SPOUSE = "spouse"
    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"
    BUSINESS_PARTNER = "business_partner"
    GUARANTOR = "guarantor"
    OTHER = "other"


class ContactType(str, PyEnum):
    EMAIL = "email"
    PHONE = "phone"


class ContactPriority(str, PyEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ShopStatus(str, PyEnum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class AccountType(str, PyEnum):
    SAVINGS = "savings"
    CURRENT = "current"
    FIXED_DEPOSIT = "fixed_deposit"
    RECURRING_DEPOSIT = "recurring_deposit"
    LOAN = "loan"


class AccountOwnershipType(str, PyEnum):
    INDIVIDUAL = "individual"
    JOINT = "joint"
    MINOR = "minor"


class AccountStatus(str, PyEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    FINED = "fined"
    MATURED = "matured"
    CLOSED = "closed"


class PaymentType(str, PyEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    LUMPSUM = "lumpsum"


class HolderType(str, PyEnum):
    """Role of a client on a shared account"""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    NOMINEE = "nominee"


class ShopRelationshipType(str, PyEnum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    PARTNER = "partner"


class TransactionType(str, PyEnum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    INTEREST = "interest"
    FEE = "fee"
    PENALTY = "penalty"
    MATURITY = "maturity"


class TransactionStatus(str, PyEnum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AuditOperation(str, PyEnum):
    """Type of audited change"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"


class DocumentEntityType(str, PyEnum):
    CLIENT = "client"
    ACCOUNT = "account"


class PictureEntityType(str, PyEnum):
    CLIENT = "client"
    SHOP = "shop"
    ACCOUNT = "account"


class ImageType(str, PyEnum):
    PROFILE = "profile"
    OUTLET = "outlet"
    FRONT_PAGE = "front_page"


class DocumentType(str, PyEnum):
    """Type of uploaded document"""
    PAN_CARD = "pan_card"
    AADHAR_CARD = "aadhar_card"
    PASSPORT = "passport"
    DRIVING_LICENSE = "driving_license"
    VOTER_ID = "voter_id"
    PASSBOOK_PAGE = "passbook_page"
    STATEMENT = "statement"
    CHEQUE_LEAF = "cheque_leaf"
    FD_RECEIPT = "fd_receipt"
    LOAN_DOCUMENT = "loan_document"


def enum_column(enum_cls: Type[PyEnum], name: str) -> Enum:
    """
    Build a portable enum column type that stores the enum *values*.

    Stored as VARCHAR with a CHECK constraint so the embedded store
    rejects values outside the enum.
    """
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=32,
    )


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class SoftDeleteMixin:
    """Mixin for soft delete support via a tagged status"""
    deletion_status: Mapped[DeletionStatus] = mapped_column(
        enum_column(DeletionStatus, "deletion_status"),
        default=DeletionStatus.ACTIVE,
        server_default=DeletionStatus.ACTIVE.value,
        nullable=False
    )

    @property
    def is_deleted(self) -> bool:
        return self.deletion_status != DeletionStatus.ACTIVE


class AttachmentTimestampMixin:
    """Upload timestamps for attachment tables"""
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# ============================================
# REFERENCE DATA
# ============================================

class Address(Base, TimestampMixin):
    """
    Postal address shared by clients, institutions and shops.

    Owners reference it through a nullable FK with ON DELETE SET NULL,
    so removing an address never removes its owners.
    """
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address_line1: Mapped[str] = mapped_column(Text, nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address_line3: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    district: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pincode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    country: Mapped[str] = mapped_column(
        String(100),
        default="India",
        server_default="India",
        nullable=False
    )

    __table_args__ = (
        Index('idx_addresses_location', 'state', 'district', 'pincode'),
    )

    def __repr__(self) -> str:
        return f"<Address(id={self.id}, pincode='{self.pincode}')>"


class Institution(Base, TimestampMixin):
    """Banks and post offices where accounts are held."""
    __tablename__ = "institutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    institution_name: Mapped[str] = mapped_column(String(200), nullable=False)
    institution_type: Mapped[InstitutionType] = mapped_column(
        enum_column(InstitutionType, "institution_type"),
        nullable=False
    )
    branch_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ifsc_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True
    )

    address: Mapped[Optional["Address"]] = relationship("Address")

    __table_args__ = (
        Index('idx_institutions_type', 'institution_type'),
        Index('idx_institutions_ifsc', 'ifsc_code'),
    )

    def __repr__(self) -> str:
        return f"<Institution(id={self.id}, name='{self.institution_name}', type={self.institution_type})>"


# ============================================
# CLIENT MODELS
# ============================================

class Client(Base, TimestampMixin, SoftDeleteMixin):
    """
    Core client record.

    A client may point at another client through linked_client_id. The
    relationship type is stored once, on the referencing row, and is
    resolved in both directions by the repository.
    """
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Name parts
    title: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # KYC identifiers
    kyc_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pan_number: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    aadhaar_number: Mapped[Optional[str]] = mapped_column(String(14), nullable=True)

    address_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True
    )
    linked_client_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True
    )
    linked_client_relationship: Mapped[Optional[LinkedClientRelationship]] = mapped_column(
        enum_column(LinkedClientRelationship, "linked_client_relationship"),
        nullable=True
    )

    status: Mapped[ClientStatus] = mapped_column(
        enum_column(ClientStatus, "client_status"),
        default=ClientStatus.ACTIVE,
        server_default=ClientStatus.ACTIVE.value,
        nullable=False
    )

    # Relationships
    address: Mapped[Optional["Address"]] = relationship("Address")
    contacts: Mapped[List["Contact"]] = relationship(
        "Contact",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index('idx_clients_name', 'first_name', 'last_name'),
        Index('idx_clients_status', 'status'),
        Index('idx_clients_deletion', 'deletion_status'),
        Index('idx_clients_linked', 'linked_client_id'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.full_name}', status={self.status})>"


class Contact(Base, TimestampMixin):
    """
    Email or phone record belonging to one client.

    At most one contact per (client_id, type) should be primary; this is
    maintained by ContactRepository.set_primary rather than a constraint.
    """
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    type: Mapped[ContactType] = mapped_column(
        enum_column(ContactType, "contact_type"),
        nullable=False
    )
    contact_priority: Mapped[Optional[ContactPriority]] = mapped_column(
        enum_column(ContactPriority, "contact_priority"),
        nullable=True
    )
    contact_details: Mapped[str] = mapped_column(String(255), nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="contacts")

    __table_args__ = (
        Index('idx_contacts_client', 'client_id'),
        Index('idx_contacts_client_type_priority', 'client_id', 'type', 'contact_priority'),
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, client_id={self.client_id}, type={self.type})>"


# ============================================
# SHOP MODELS
# ============================================

class Shop(Base, TimestampMixin, SoftDeleteMixin):
    """Shop owned by a client. Removed together with its owner."""
    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_name: Mapped[str] = mapped_column(String(200), nullable=False)
    shop_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    license_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[ShopStatus] = mapped_column(
        enum_column(ShopStatus, "shop_status"),
        default=ShopStatus.ACTIVE,
        server_default=ShopStatus.ACTIVE.value,
        nullable=False
    )
    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    address_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True
    )

    owner: Mapped["Client"] = relationship("Client")
    address: Mapped[Optional["Address"]] = relationship("Address")

    __table_args__ = (
        Index('idx_shops_name', 'shop_name'),
        Index('idx_shops_owner', 'owner_id'),
        Index('idx_shops_status', 'status'),
        Index('idx_shops_deletion', 'deletion_status'),
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, name='{self.shop_name}', owner_id={self.owner_id})>"


class ShopClient(Base, TimestampMixin):
    """Junction table linking shops to clients."""
    __tablename__ = "shop_clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    relationship_type: Mapped[ShopRelationshipType] = mapped_column(
        enum_column(ShopRelationshipType, "shop_relationship_type"),
        default=ShopRelationshipType.CUSTOMER,
        server_default=ShopRelationshipType.CUSTOMER.value,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint('shop_id', 'client_id', name='uq_shop_client'),
        Index('idx_shop_clients_shop', 'shop_id'),
        Index('idx_shop_clients_client', 'client_id'),
    )

    def __repr__(self) -> str:
        return f"<ShopClient(shop_id={self.shop_id}, client_id={self.client_id})>"


# ============================================
# ACCOUNT MODELS
# ============================================

class Account(Base, TimestampMixin, SoftDeleteMixin):
    """
    Financial account held at an institution.

    `balance` is the declared/opening balance entered by staff. The running
    balance is derived from completed transactions (see
    TransactionRepository.get_account_balance).
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    account_type: Mapped[AccountType] = mapped_column(
        enum_column(AccountType, "account_type"),
        nullable=False
    )
    account_ownership_type: Mapped[AccountOwnershipType] = mapped_column(
        enum_column(AccountOwnershipType, "account_ownership_type"),
        default=AccountOwnershipType.INDIVIDUAL,
        server_default=AccountOwnershipType.INDIVIDUAL.value,
        nullable=False
    )
    balance: Mapped[float] = mapped_column(
        Numeric(15, 2, asdecimal=False),
        default=0,
        server_default="0",
        nullable=False
    )
    interest_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tenure: Mapped[int] = mapped_column(Integer, default=12, server_default="12", nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    maturity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_type: Mapped[Optional[PaymentType]] = mapped_column(
        enum_column(PaymentType, "payment_type"),
        nullable=True
    )
    status: Mapped[AccountStatus] = mapped_column(
        enum_column(AccountStatus, "account_status"),
        default=AccountStatus.ACTIVE,
        server_default=AccountStatus.ACTIVE.value,
        nullable=False
    )
    institution_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("institutions.id", ondelete="RESTRICT"),
        nullable=False
    )

    institution: Mapped["Institution"] = relationship("Institution")
    holders: Mapped[List["AccountHolder"]] = relationship(
        "AccountHolder",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index('idx_accounts_institution', 'institution_id'),
        Index('idx_accounts_status', 'status'),
        Index('idx_accounts_deletion', 'deletion_status'),
        Index('idx_accounts_dates', 'start_date', 'maturity_date'),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, number='{self.account_number}', type={self.account_type})>"


class AccountHolder(Base, TimestampMixin):
    """Junction table linking accounts to the clients that hold them."""
    __tablename__ = "account_holders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    holder_type: Mapped[HolderType] = mapped_column(
        enum_column(HolderType, "holder_type"),
        default=HolderType.PRIMARY,
        server_default=HolderType.PRIMARY.value,
        nullable=False
    )
    share_percentage: Mapped[Optional[float]] = mapped_column(
        Numeric(5, 2, asdecimal=False),
        nullable=True
    )

    account: Mapped["Account"] = relationship("Account", back_populates="holders")

    __table_args__ = (
        UniqueConstraint('account_id', 'client_id', name='uq_account_holder'),
        Index('idx_account_holders_account', 'account_id'),
        Index('idx_account_holders_client', 'client_id'),
    )

    def __repr__(self) -> str:
        return f"<AccountHolder(account_id={self.account_id}, client_id={self.client_id}, type={self.holder_type})>"


class Transaction(Base, TimestampMixin):
    """Ledger entry against one account."""
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType, "transaction_type"),
        nullable=False
    )
    amount: Mapped[float] = mapped_column(Numeric(15, 2, asdecimal=False), nullable=False)
    balance_after: Mapped[Optional[float]] = mapped_column(
        Numeric(15, 2, asdecimal=False),
        nullable=True
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus, "transaction_status"),
        default=TransactionStatus.COMPLETED,
        server_default=TransactionStatus.COMPLETED.value,
        nullable=False
    )

    __table_args__ = (
        Index('idx_transactions_account', 'account_id'),
        Index('idx_transactions_date', 'transaction_date'),
        Index('idx_transactions_type', 'transaction_type'),
        Index('idx_transactions_status', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, account_id={self.account_id}, type={self.transaction_type}, amount={self.amount})>"


# ============================================
# AUDIT MODEL
# ============================================

class AuditLog(Base):
    """
    Change history.

    Rows are only written when a caller invokes AuditLogRepository.log_change;
    there are no triggers.
    """
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False)
    operation: Mapped[AuditOperation] = mapped_column(
        enum_column(AuditOperation, "audit_operation"),
        nullable=False
    )
    # JSON snapshots
    old_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index('idx_audit_table_record', 'table_name', 'record_id'),
        Index('idx_audit_timestamp', 'timestamp'),
        Index('idx_audit_operation', 'operation'),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, op={self.operation}, table='{self.table_name}', record={self.record_id})>"


# ============================================
# ATTACHMENT MODELS
# ============================================

class ProfilePicture(Base, AttachmentTimestampMixin):
    """Image attached to a client, shop or account."""
    __tablename__ = "profile_pictures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[PictureEntityType] = mapped_column(
        enum_column(PictureEntityType, "picture_entity_type"),
        nullable=False
    )
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    image_type: Mapped[ImageType] = mapped_column(
        enum_column(ImageType, "image_type"),
        nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1", nullable=False)

    __table_args__ = (
        Index('idx_profile_pictures_entity', 'entity_type', 'entity_id'),
        Index('idx_profile_pictures_type', 'image_type'),
        Index('idx_profile_pictures_active', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<ProfilePicture(id={self.id}, entity={self.entity_type}:{self.entity_id}, image={self.image_type})>"


class Document(Base, AttachmentTimestampMixin):
    """Document uploaded for a client or an account, with verification state."""
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[DocumentEntityType] = mapped_column(
        enum_column(DocumentEntityType, "document_entity_type"),
        nullable=False
    )
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    document_type: Mapped[DocumentType] = mapped_column(
        enum_column(DocumentType, "document_type"),
        nullable=False
    )
    document_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Verification sub-state
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    verified_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1", nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index('idx_documents_entity', 'entity_type', 'entity_id'),
        Index('idx_documents_type', 'document_type'),
        Index('idx_documents_number', 'document_number'),
        Index('idx_documents_verified', 'is_verified'),
        Index('idx_documents_active', 'is_active'),
        Index('idx_documents_expiry', 'expiry_date'),
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, entity={self.entity_type}:{self.entity_id}, type={self.document_type})>"


# ============================================
# HELPER FUNCTIONS
# ============================================

def row_to_dict(row: Base) -> dict:
    """
    Snapshot an ORM row's column values as a plain dict.

    Enum members are reduced to their values. Used for audit snapshots.
    """
    if row is None:
        return {}
    snapshot = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, PyEnum):
            value = value.value
        snapshot[column.key] = value
    return snapshot
