"""
Account routes: CRUD with soft delete, holders, transactions, derived
balance and per-type summary.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice_api.dependencies import get_user_id, success_response
from backoffice_api.models import (
    AccountCreate,
    AccountUpdate,
    AccountResponse,
    AccountHolderResponse,
    HolderCreate,
    TransactionCreate,
    TransactionResponse,
    TransactionSummaryItem,
    serialize,
    serialize_list,
)
from backoffice_db.connection import get_db
from backoffice_db.models import (
    AccountStatus,
    AccountType,
    AuditOperation,
    InstitutionType,
    PaymentType,
    row_to_dict,
)
from backoffice_db.repositories import (
    AccountHolderRepository,
    AccountRepository,
    AuditLogRepository,
    ClientRepository,
    InstitutionRepository,
    TransactionRepository,
)
from validation_utils import parse_id, parse_id_list

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


def _account_row_or_404(repo: AccountRepository, account_id: str):
    account = repo.get_row(parse_id(account_id, "account ID"))
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


def _listing(accounts: list) -> dict:
    return success_response(serialize_list(AccountResponse, accounts), count=len(accounts))


# ---- collection routes (declared before /{account_id}) ----

@router.get("", summary="List accounts")
def list_accounts(
    status: Optional[AccountStatus] = None,
    search: Optional[str] = None,
    institution_type: Optional[InstitutionType] = Query(None, alias="institutionType"),
    account_type: Optional[AccountType] = Query(None, alias="accountType"),
    payment_type: Optional[PaymentType] = Query(None, alias="paymentType"),
    tenure_range: Optional[str] = Query(None, alias="tenureRange", description='"12-24" or "60+"'),
    client_ids: Optional[str] = Query(None, alias="clientIds", description="Comma-separated client IDs"),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    accounts = AccountRepository(db).get_all({
        "status": status,
        "search": search,
        "institution_type": institution_type,
        "account_type": account_type,
        "payment_type": payment_type,
        "tenure_range": tenure_range,
        "client_ids": parse_id_list(client_ids),
        "include_deleted": include_deleted,
    })
    return _listing(accounts)


@router.get("/deleted", summary="List soft-deleted accounts")
def list_deleted_accounts(db: Session = Depends(get_db)):
    return _listing(AccountRepository(db).get_deleted())


@router.get("/stats/count", summary="Count accounts")
def count_accounts(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    return success_response({"count": AccountRepository(db).get_count(include_deleted)})


@router.get("/status/{status}", summary="List accounts by status")
def list_accounts_by_status(status: AccountStatus, db: Session = Depends(get_db)):
    return _listing(AccountRepository(db).get_by_status(status))


@router.get("/number/{account_number}", summary="Find an account by number")
def get_account_by_number(account_number: str, db: Session = Depends(get_db)):
    account = AccountRepository(db).get_by_account_number(account_number)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return success_response(serialize(AccountResponse, account))


@router.get("/institution/{institution_type}", summary="List accounts by institution type")
def list_accounts_by_institution_type(institution_type: InstitutionType, db: Session = Depends(get_db)):
    return _listing(AccountRepository(db).get_by_institution_type(institution_type))


@router.get("/type/{account_type}", summary="List accounts by account type")
def list_accounts_by_type(account_type: AccountType, db: Session = Depends(get_db)):
    return _listing(AccountRepository(db).get_by_account_type(account_type))


@router.get("/payment/{payment_type}", summary="List accounts by payment type")
def list_accounts_by_payment_type(payment_type: PaymentType, db: Session = Depends(get_db)):
    return _listing(AccountRepository(db).get_by_payment_type(payment_type))


@router.post("", status_code=201, summary="Create an account")
def create_account(
    payload: AccountCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Create an account and its holders.

    The account number is checked against every row, soft-deleted ones
    included, before anything is written.
    """
    if not payload.account_number or not payload.institution_id or payload.account_type is None:
        raise HTTPException(
            status_code=400,
            detail="Account number, institution ID and account type are required",
        )

    repo = AccountRepository(db)
    if repo.number_exists(payload.account_number):
        raise HTTPException(status_code=400, detail="Account number already exists")
    if InstitutionRepository(db).find_by_id(payload.institution_id) is None:
        raise HTTPException(status_code=400, detail="Institution not found")

    account = repo.create(payload.model_dump(exclude={"holders"}, exclude_none=True))

    holder_repo = AccountHolderRepository(db)
    client_repo = ClientRepository(db)
    for holder in payload.holders:
        if not client_repo.exists(holder.client_id):
            raise HTTPException(status_code=400, detail=f"Client {holder.client_id} not found")
        holder_repo.create({**holder.model_dump(), "account_id": account.id})

    AuditLogRepository(db).log_change(
        "accounts", account.id, AuditOperation.INSERT,
        new_values=row_to_dict(account), user_id=user_id,
    )
    logger.info("Account created: id=%s holders=%d", account.id, len(payload.holders))
    return success_response(
        serialize(AccountResponse, repo.get_by_id(account.id)),
        message="Account created successfully",
    )


# ---- single account routes ----

@router.get("/{account_id}", summary="Get an account")
def get_account(
    account_id: str,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    account = AccountRepository(db).get_by_id(parse_id(account_id, "account ID"), include_deleted)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return success_response(serialize(AccountResponse, account))


@router.put("/{account_id}", summary="Update an account")
def update_account(
    account_id: str,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = AccountRepository(db)
    account = _account_row_or_404(repo, account_id)
    updates = payload.model_dump(exclude_unset=True)

    if updates.get("account_number") and repo.number_exists(updates["account_number"], exclude_id=account.id):
        raise HTTPException(status_code=400, detail="Account number already exists")
    if updates.get("institution_id") and InstitutionRepository(db).find_by_id(updates["institution_id"]) is None:
        raise HTTPException(status_code=400, detail="Institution not found")

    old_values = row_to_dict(account)
    if not repo.update(account.id, updates):
        raise HTTPException(status_code=404, detail="Account not found or no changes made")

    AuditLogRepository(db).log_change(
        "accounts", account.id, AuditOperation.UPDATE,
        old_values=old_values, new_values=row_to_dict(account), user_id=user_id,
    )
    return success_response(
        serialize(AccountResponse, repo.get_by_id(account.id, include_deleted=True)),
        message="Account updated successfully",
    )


@router.delete("/{account_id}", summary="Soft delete an account")
def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = AccountRepository(db)
    account = _account_row_or_404(repo, account_id)
    old_values = row_to_dict(account)
    repo.delete(account.id)
    AuditLogRepository(db).log_change(
        "accounts", account.id, AuditOperation.DELETE,
        old_values=old_values, new_values=row_to_dict(account), user_id=user_id,
    )
    return success_response(message="Account deleted successfully")


@router.delete("/{account_id}/hard", summary="Permanently delete an account")
def hard_delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = AccountRepository(db)
    account = _account_row_or_404(repo, account_id)
    account_pk = account.id
    old_values = row_to_dict(account)
    repo.hard_delete(account_pk)
    AuditLogRepository(db).log_change(
        "accounts", account_pk, AuditOperation.DELETE,
        old_values=old_values, user_id=user_id,
    )
    logger.warning("Account permanently deleted: id=%s", account_pk)
    return success_response(message="Account permanently deleted")


@router.post("/{account_id}/restore", summary="Restore a soft-deleted account")
def restore_account(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = AccountRepository(db)
    account = _account_row_or_404(repo, account_id)
    old_values = row_to_dict(account)
    repo.restore(account.id)
    AuditLogRepository(db).log_change(
        "accounts", account.id, AuditOperation.RESTORE,
        old_values=old_values, new_values=row_to_dict(account), user_id=user_id,
    )
    return success_response(
        serialize(AccountResponse, repo.get_by_id(account.id)),
        message="Account restored successfully",
    )


# ---- holders ----

@router.get("/{account_id}/holders", summary="List account holders")
def list_account_holders(account_id: str, db: Session = Depends(get_db)):
    account = _account_row_or_404(AccountRepository(db), account_id)
    holders = AccountHolderRepository(db).find_account_holders_with_details(account.id)
    return success_response(serialize_list(AccountHolderResponse, holders), count=len(holders))


@router.post("/{account_id}/holders", status_code=201, summary="Add an account holder")
def add_account_holder(account_id: str, payload: HolderCreate, db: Session = Depends(get_db)):
    account = _account_row_or_404(AccountRepository(db), account_id)
    if not ClientRepository(db).exists(payload.client_id):
        raise HTTPException(status_code=404, detail="Client not found")

    holder_repo = AccountHolderRepository(db)
    if any(h.client_id == payload.client_id for h in holder_repo.find_by_account_id(account.id)):
        raise HTTPException(status_code=400, detail="Client is already a holder of this account")

    holder = holder_repo.create({**payload.model_dump(), "account_id": account.id})
    return success_response(serialize(AccountHolderResponse, holder), message="Account holder added successfully")


@router.delete("/{account_id}/holders/{client_id}", summary="Remove an account holder")
def remove_account_holder(account_id: str, client_id: str, db: Session = Depends(get_db)):
    removed = AccountHolderRepository(db).delete_by_account_and_client(
        parse_id(account_id, "account ID"), parse_id(client_id, "client ID")
    )
    if not removed:
        raise HTTPException(status_code=404, detail="Account holder not found")
    return success_response(message="Account holder removed successfully")


# ---- transactions ----

@router.get("/{account_id}/transactions", summary="List account transactions")
def list_account_transactions(
    account_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    account = _account_row_or_404(AccountRepository(db), account_id)
    transactions = TransactionRepository(db).find_by_account_id(account.id, limit=limit)
    return success_response(serialize_list(TransactionResponse, transactions), count=len(transactions))


@router.post("/{account_id}/transactions", status_code=201, summary="Record a transaction")
def create_account_transaction(account_id: str, payload: TransactionCreate, db: Session = Depends(get_db)):
    account = _account_row_or_404(AccountRepository(db), account_id)
    transaction = TransactionRepository(db).create({**payload.model_dump(), "account_id": account.id})
    return success_response(serialize(TransactionResponse, transaction), message="Transaction recorded successfully")


@router.get("/{account_id}/balance", summary="Derived account balance")
def get_account_balance(account_id: str, db: Session = Depends(get_db)):
    """Balance from completed transactions; the stored opening balance is not included."""
    account = _account_row_or_404(AccountRepository(db), account_id)
    balance = TransactionRepository(db).get_account_balance(account.id)
    return success_response({"accountId": account.id, "balance": balance})


@router.get("/{account_id}/summary", summary="Transaction summary by type")
def get_account_summary(account_id: str, db: Session = Depends(get_db)):
    account = _account_row_or_404(AccountRepository(db), account_id)
    summary = TransactionRepository(db).get_transaction_summary(account.id)
    return success_response(serialize_list(TransactionSummaryItem, summary), count=len(summary))
