"""
Pydantic request/response schemas for the Back Office API

JSON bodies use camelCase; every schema also accepts the snake_case field
names so repository dicts and ORM rows can be validated directly.
"""

from datetime import date, datetime
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from backoffice_db.models import (
    InstitutionType,
    ClientStatus,
    LinkedClientRelationship,
    ContactType,
    ContactPriority,
    ShopStatus,
    AccountType,
    AccountOwnershipType,
    AccountStatus,
    PaymentType,
    HolderType,
    ShopRelationshipType,
    TransactionType,
    TransactionStatus,
    AuditOperation,
    DocumentEntityType,
    DocumentType,
    DeletionStatus,
)
from validation_utils import (
    validate_pan,
    validate_aadhaar,
    validate_pincode,
    validate_contact_details,
)


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, snake_case names accepted too."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


def serialize(schema: type, obj: Any) -> Dict[str, Any]:
    """Validate a row or dict against `schema` and dump it as camelCase JSON data."""
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def serialize_list(schema: type, rows: List[Any]) -> List[Dict[str, Any]]:
    return [serialize(schema, row) for row in rows]


# ============================================
# REQUEST SCHEMAS
# ============================================

class AddressCreate(CamelModel):
    """Address nested in a client, shop or institution payload."""
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    address_line3: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    district: Optional[str] = Field(default=None, max_length=100)
    pincode: str = Field(..., description="6-digit Indian pincode")
    country: Optional[str] = Field(default="India", max_length=100)

    @field_validator('pincode')
    @classmethod
    def check_pincode(cls, v: str) -> str:
        return validate_pincode(v)


class ContactCreate(CamelModel):
    type: ContactType
    contact_priority: Optional[ContactPriority] = None
    contact_details: str = Field(..., min_length=1, max_length=255)

    @model_validator(mode='after')
    def check_details_match_type(self) -> 'ContactCreate':
        self.contact_details = validate_contact_details(self.type.value, self.contact_details)
        return self


class ClientBase(CamelModel):
    title: Optional[str] = Field(default=None, max_length=20)
    first_name: Optional[str] = Field(default=None, max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=20)
    occupation: Optional[str] = Field(default=None, max_length=100)
    kyc_number: Optional[str] = Field(default=None, max_length=50)
    pan_number: Optional[str] = None
    aadhaar_number: Optional[str] = None
    address_id: Optional[int] = None
    linked_client_id: Optional[int] = None
    linked_client_relationship: Optional[LinkedClientRelationship] = None
    status: Optional[ClientStatus] = None
    address: Optional[AddressCreate] = None

    @field_validator('pan_number')
    @classmethod
    def check_pan(cls, v: Optional[str]) -> Optional[str]:
        return validate_pan(v) if v else v

    @field_validator('aadhaar_number')
    @classmethod
    def check_aadhaar(cls, v: Optional[str]) -> Optional[str]:
        return validate_aadhaar(v) if v else v


class ClientCreate(ClientBase):
    """Request schema for creating a client.

    `contacts` is kept raw: each entry is validated on its own when the
    contacts are inserted, and a bad entry is skipped rather than failing
    the whole request.
    """
    contacts: List[Dict[str, Any]] = Field(default_factory=list)


class ClientUpdate(ClientBase):
    pass


class HolderCreate(CamelModel):
    client_id: int = Field(..., gt=0)
    holder_type: HolderType = HolderType.PRIMARY
    share_percentage: Optional[float] = Field(default=None, ge=0, le=100)


class AccountBase(CamelModel):
    account_number: Optional[str] = Field(default=None, max_length=50)
    account_type: Optional[AccountType] = None
    account_ownership_type: Optional[AccountOwnershipType] = None
    balance: Optional[float] = None
    interest_rate: Optional[float] = Field(default=None, ge=0)
    tenure: Optional[int] = Field(default=None, ge=0, description="Tenure in months")
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    payment_type: Optional[PaymentType] = None
    status: Optional[AccountStatus] = None
    institution_id: Optional[int] = None


class AccountCreate(AccountBase):
    holders: List[HolderCreate] = Field(default_factory=list)


class AccountUpdate(AccountBase):
    pass


class TransactionCreate(CamelModel):
    transaction_type: TransactionType
    amount: float = Field(..., gt=0)
    balance_after: Optional[float] = None
    transaction_date: Optional[date] = None
    description: Optional[str] = None
    reference_number: Optional[str] = Field(default=None, max_length=100)
    status: TransactionStatus = TransactionStatus.COMPLETED


class ShopBase(CamelModel):
    shop_name: Optional[str] = Field(default=None, max_length=255)
    shop_type: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=100)
    license_number: Optional[str] = Field(default=None, max_length=100)
    status: Optional[ShopStatus] = None
    owner_id: Optional[int] = None
    address_id: Optional[int] = None
    address: Optional[AddressCreate] = None


class ShopCreate(ShopBase):
    pass


class ShopUpdate(ShopBase):
    pass


class ShopClientCreate(CamelModel):
    shop_id: int = Field(..., gt=0)
    client_id: int = Field(..., gt=0)
    relationship_type: ShopRelationshipType = ShopRelationshipType.CUSTOMER


class InstitutionCreate(CamelModel):
    institution_type: InstitutionType
    institution_name: str = Field(..., min_length=1, max_length=255)
    branch_code: Optional[str] = Field(default=None, max_length=50)
    ifsc_code: Optional[str] = Field(default=None, max_length=20)
    address_id: Optional[int] = None
    address: Optional[AddressCreate] = None


class InstitutionUpdate(CamelModel):
    institution_type: Optional[InstitutionType] = None
    institution_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    branch_code: Optional[str] = Field(default=None, max_length=50)
    ifsc_code: Optional[str] = Field(default=None, max_length=20)
    address_id: Optional[int] = None


class DocumentVerify(CamelModel):
    verified_by: Optional[str] = Field(default=None, max_length=100)


# ============================================
# RESPONSE SCHEMAS
# ============================================

class AddressFields(CamelModel):
    """Address columns flattened into a parent view."""
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    address_line3: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None


class ContactResponse(CamelModel):
    id: int
    client_id: int
    type: ContactType
    contact_priority: Optional[ContactPriority] = None
    contact_details: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LinkedClientResponse(CamelModel):
    id: int
    name: Optional[str] = None
    relationship_type: Optional[LinkedClientRelationship] = None
    direction: str


class ClientResponse(AddressFields):
    """Client view: columns, flattened address, primary contacts and links."""
    id: int
    title: Optional[str] = None
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    kyc_number: Optional[str] = None
    pan_number: Optional[str] = None
    aadhaar_number: Optional[str] = None
    address_id: Optional[int] = None
    linked_client_id: Optional[int] = None
    linked_client_relationship: Optional[LinkedClientRelationship] = None
    linked_client_name: Optional[str] = None
    status: ClientStatus
    deletion_status: DeletionStatus
    email: Optional[str] = None
    phone: Optional[str] = None
    contacts: List[ContactResponse] = Field(default_factory=list)
    all_linked_clients: List[LinkedClientResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InstitutionResponse(AddressFields):
    id: int
    institution_type: InstitutionType
    institution_name: str
    branch_code: Optional[str] = None
    ifsc_code: Optional[str] = None
    address_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AccountHolderResponse(CamelModel):
    id: int
    account_id: int
    client_id: int
    holder_type: HolderType
    share_percentage: Optional[float] = None
    client_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


class ClientAccountResponse(CamelModel):
    """An account as seen from one of its holders."""
    id: int
    account_id: int
    client_id: int
    holder_type: HolderType
    share_percentage: Optional[float] = None
    account_number: str
    account_type: AccountType
    account_status: AccountStatus
    institution_name: str
    institution_type: InstitutionType


class AccountResponse(CamelModel):
    id: int
    account_number: str
    account_type: AccountType
    account_ownership_type: AccountOwnershipType
    balance: Optional[float] = None
    interest_rate: Optional[float] = None
    tenure: Optional[int] = None
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    payment_type: Optional[PaymentType] = None
    status: AccountStatus
    institution_id: int
    institution_name: Optional[str] = None
    institution_type: Optional[InstitutionType] = None
    branch_code: Optional[str] = None
    ifsc_code: Optional[str] = None
    deletion_status: DeletionStatus
    holders: List[AccountHolderResponse] = Field(default_factory=list)
    account_holder_names: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionResponse(CamelModel):
    id: int
    account_id: int
    transaction_type: TransactionType
    amount: float
    balance_after: Optional[float] = None
    transaction_date: date
    description: Optional[str] = None
    reference_number: Optional[str] = None
    status: TransactionStatus
    account_number: Optional[str] = None
    created_at: Optional[datetime] = None


class TransactionSummaryItem(CamelModel):
    transaction_type: TransactionType
    count: int
    total_amount: float
    average_amount: float


class ShopResponse(AddressFields):
    id: int
    shop_name: str
    shop_type: Optional[str] = None
    category: Optional[str] = None
    license_number: Optional[str] = None
    status: ShopStatus
    owner_id: int
    owner_name: Optional[str] = None
    address_id: Optional[int] = None
    deletion_status: DeletionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ShopClientResponse(CamelModel):
    id: int
    shop_id: int
    client_id: int
    relationship_type: ShopRelationshipType
    client_first_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    shop_name: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentResponse(CamelModel):
    id: int
    entity_type: DocumentEntityType
    entity_id: int
    document_type: DocumentType
    document_number: Optional[str] = None
    file_name: str
    file_size: int
    mime_type: str
    expiry_date: Optional[date] = None
    is_verified: bool
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    is_active: bool
    notes: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuditLogResponse(CamelModel):
    id: int
    table_name: str
    record_id: int
    operation: AuditOperation
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: Optional[datetime] = None
