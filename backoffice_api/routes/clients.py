"""
Client routes: CRUD with soft delete, contacts, linked clients, held
accounts and KYC document access.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from backoffice_api.dependencies import get_user_id, success_response
from backoffice_api.models import (
    ClientCreate,
    ClientUpdate,
    ClientResponse,
    ContactCreate,
    ContactResponse,
    ClientAccountResponse,
    serialize,
    serialize_list,
)
from backoffice_db.connection import get_db
from backoffice_db.models import (
    AuditOperation,
    ClientStatus,
    ContactPriority,
    DocumentEntityType,
    DocumentType,
    row_to_dict,
)
from backoffice_db.repositories import (
    AddressRepository,
    AccountHolderRepository,
    AuditLogRepository,
    ClientRepository,
    ContactRepository,
    DocumentRepository,
)
from validation_utils import parse_id, sanitize_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])

# URL names of the KYC documents a client can download
KYC_DOCUMENT_TYPES = {
    "pan": DocumentType.PAN_CARD,
    "aadhaar": DocumentType.AADHAR_CARD,
}


def _create_contacts(db: Session, client_id: int, raw_contacts: List[Dict[str, Any]]) -> list:
    """Best-effort contact creation: an invalid or failing entry is logged and skipped."""
    valid = []
    for raw in raw_contacts:
        try:
            valid.append(ContactCreate.model_validate(raw).model_dump())
        except ValidationError as e:
            logger.warning(
                "Skipping invalid contact for client %s: %s",
                client_id,
                sanitize_for_logging(str(e)),
            )
    repo = ContactRepository(db)
    created = repo.create_multiple(client_id, valid)
    for contact in created:
        if contact.contact_priority == ContactPriority.PRIMARY:
            repo.set_primary(contact.id)
    return created


def _client_or_404(repo: ClientRepository, client_id: int, include_deleted: bool = False) -> Dict[str, Any]:
    client = repo.get_by_id(client_id, include_deleted=include_deleted)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


# ---- collection routes (declared before /{client_id}) ----

@router.get("", summary="List clients")
def list_clients(
    status: Optional[ClientStatus] = None,
    search: Optional[str] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    clients = ClientRepository(db).get_all({
        "status": status,
        "search": search,
        "state": state,
        "district": district,
        "include_deleted": include_deleted,
    })
    return success_response(serialize_list(ClientResponse, clients), count=len(clients))


@router.get("/deleted", summary="List soft-deleted clients")
def list_deleted_clients(db: Session = Depends(get_db)):
    clients = ClientRepository(db).get_deleted()
    return success_response(serialize_list(ClientResponse, clients), count=len(clients))


@router.get("/stats/count", summary="Count clients")
def count_clients(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    return success_response({"count": ClientRepository(db).get_count(include_deleted)})


@router.get("/status/{status}", summary="List clients by status")
def list_clients_by_status(status: ClientStatus, db: Session = Depends(get_db)):
    clients = ClientRepository(db).get_by_status(status)
    return success_response(serialize_list(ClientResponse, clients), count=len(clients))


@router.get("/linked/{client_id}", summary="Clients linked to a client")
def list_linked_clients(client_id: str, db: Session = Depends(get_db)):
    linked_id = parse_id(client_id, "client ID")
    clients = ClientRepository(db).get_by_linked_client_id(linked_id)
    return success_response(serialize_list(ClientResponse, clients), count=len(clients))


@router.put("/contacts/{contact_id}/primary", summary="Make a contact primary")
def set_primary_contact(contact_id: str, db: Session = Depends(get_db)):
    repo = ContactRepository(db)
    contact_pk = parse_id(contact_id, "contact ID")
    if not repo.set_primary(contact_pk):
        raise HTTPException(status_code=404, detail="Contact not found")
    return success_response(
        serialize(ContactResponse, repo.get_by_id(contact_pk)),
        message="Primary contact updated successfully",
    )


@router.post("", status_code=201, summary="Create a client")
def create_client(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Create a client, with an optional address and best-effort contacts."""
    if not payload.first_name or not payload.last_name:
        raise HTTPException(status_code=400, detail="First name and last name are required")

    repo = ClientRepository(db)
    data = payload.model_dump(exclude={"address", "contacts"}, exclude_none=True)
    if payload.address is not None:
        address = AddressRepository(db).create(payload.address.model_dump())
        data["address_id"] = address.id

    client = repo.create(data)
    _create_contacts(db, client.id, payload.contacts)

    AuditLogRepository(db).log_change(
        "clients", client.id, AuditOperation.INSERT,
        new_values=row_to_dict(client), user_id=user_id,
    )
    logger.info("Client created: id=%s", client.id)
    return success_response(
        serialize(ClientResponse, repo.get_by_id(client.id)),
        message="Client created successfully",
    )


# ---- single client routes ----

@router.get("/{client_id}", summary="Get a client")
def get_client(
    client_id: str,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    client = _client_or_404(ClientRepository(db), parse_id(client_id, "client ID"), include_deleted)
    return success_response(serialize(ClientResponse, client))


@router.put("/{client_id}", summary="Update a client")
def update_client(
    client_id: str,
    payload: ClientUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Partial update. Only the fields present in the body change."""
    client_pk = parse_id(client_id, "client ID")
    repo = ClientRepository(db)
    row = repo.get_row(client_pk)
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found or no changes made")
    old_values = row_to_dict(row)

    updates = payload.model_dump(exclude_unset=True, exclude={"address"})
    address_changed = False
    if payload.address is not None:
        address_repo = AddressRepository(db)
        address_data = payload.address.model_dump(exclude_unset=True)
        if row.address_id is not None and address_repo.get_by_id(row.address_id) is not None:
            address_changed = address_repo.update(row.address_id, address_data)
        else:
            updates["address_id"] = address_repo.create(payload.address.model_dump()).id

    if not repo.update(client_pk, updates) and not address_changed:
        raise HTTPException(status_code=404, detail="Client not found or no changes made")

    AuditLogRepository(db).log_change(
        "clients", client_pk, AuditOperation.UPDATE,
        old_values=old_values, new_values=row_to_dict(row), user_id=user_id,
    )
    return success_response(
        serialize(ClientResponse, repo.get_by_id(client_pk, include_deleted=True)),
        message="Client updated successfully",
    )


@router.delete("/{client_id}", summary="Soft delete a client")
def delete_client(
    client_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    client_pk = parse_id(client_id, "client ID")
    repo = ClientRepository(db)
    row = repo.get_row(client_pk)
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    old_values = row_to_dict(row)
    repo.delete(client_pk)
    AuditLogRepository(db).log_change(
        "clients", client_pk, AuditOperation.DELETE,
        old_values=old_values, new_values=row_to_dict(row), user_id=user_id,
    )
    return success_response(message="Client deleted successfully")


@router.delete("/{client_id}/hard", summary="Permanently delete a client")
def hard_delete_client(
    client_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    client_pk = parse_id(client_id, "client ID")
    repo = ClientRepository(db)
    row = repo.get_row(client_pk)
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    old_values = row_to_dict(row)
    repo.hard_delete(client_pk)
    AuditLogRepository(db).log_change(
        "clients", client_pk, AuditOperation.DELETE,
        old_values=old_values, user_id=user_id,
    )
    logger.warning("Client permanently deleted: id=%s", client_pk)
    return success_response(message="Client permanently deleted")


@router.post("/{client_id}/restore", summary="Restore a soft-deleted client")
def restore_client(
    client_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    client_pk = parse_id(client_id, "client ID")
    repo = ClientRepository(db)
    row = repo.get_row(client_pk)
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    old_values = row_to_dict(row)
    repo.restore(client_pk)
    AuditLogRepository(db).log_change(
        "clients", client_pk, AuditOperation.RESTORE,
        old_values=old_values, new_values=row_to_dict(row), user_id=user_id,
    )
    return success_response(
        serialize(ClientResponse, repo.get_by_id(client_pk)),
        message="Client restored successfully",
    )


# ---- contacts ----

@router.get("/{client_id}/contacts", summary="List a client's contacts")
def list_client_contacts(client_id: str, db: Session = Depends(get_db)):
    client_pk = parse_id(client_id, "client ID")
    if ClientRepository(db).get_row(client_pk) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    contacts = ContactRepository(db).get_by_client_id(client_pk)
    return success_response(serialize_list(ContactResponse, contacts), count=len(contacts))


@router.post("/{client_id}/contacts", status_code=201, summary="Add a contact")
def add_client_contact(client_id: str, payload: ContactCreate, db: Session = Depends(get_db)):
    client_pk = parse_id(client_id, "client ID")
    if ClientRepository(db).get_row(client_pk) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    repo = ContactRepository(db)
    contact = repo.create({**payload.model_dump(), "client_id": client_pk})
    if contact.contact_priority == ContactPriority.PRIMARY:
        repo.set_primary(contact.id)
    return success_response(serialize(ContactResponse, contact), message="Contact added successfully")


# ---- accounts ----

@router.get("/{client_id}/accounts", summary="Accounts held by a client")
def list_client_accounts(client_id: str, db: Session = Depends(get_db)):
    client_pk = parse_id(client_id, "client ID")
    if ClientRepository(db).get_row(client_pk) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    accounts = AccountHolderRepository(db).find_client_accounts_with_details(client_pk)
    return success_response(serialize_list(ClientAccountResponse, accounts), count=len(accounts))


# ---- KYC documents ----

def _latest_kyc_document(db: Session, client_id: str, kind: str):
    client_pk = parse_id(client_id, "client ID")
    document_type = KYC_DOCUMENT_TYPES.get(kind.lower())
    if document_type is None:
        raise HTTPException(status_code=400, detail="Document type must be pan or aadhaar")

    documents = DocumentRepository(db).get_by_type_and_entity(
        document_type, DocumentEntityType.CLIENT, client_pk
    )
    if not documents:
        raise HTTPException(status_code=404, detail=f"No {kind.upper()} document found for this client")

    document = documents[0]
    if not Path(document.file_path).is_file():
        logger.error("Document file missing on disk: id=%s path=%s", document.id, document.file_path)
        raise HTTPException(status_code=404, detail="Document file not found")
    return document


@router.get("/{client_id}/documents/{kind}/download", summary="Download a client's PAN or Aadhaar document")
def download_kyc_document(client_id: str, kind: str, db: Session = Depends(get_db)):
    document = _latest_kyc_document(db, client_id, kind)
    return FileResponse(
        document.file_path,
        media_type=document.mime_type,
        filename=document.file_name,
        content_disposition_type="attachment",
    )


@router.get("/{client_id}/documents/{kind}/view", summary="View a client's PAN or Aadhaar document")
def view_kyc_document(client_id: str, kind: str, db: Session = Depends(get_db)):
    document = _latest_kyc_document(db, client_id, kind)
    return FileResponse(
        document.file_path,
        media_type=document.mime_type,
        filename=document.file_name,
        content_disposition_type="inline",
    )
