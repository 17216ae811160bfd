"""
Shop routes: CRUD with soft delete and the shop's associated clients.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice_api.dependencies import get_user_id, success_response
from backoffice_api.models import (
    ShopCreate,
    ShopUpdate,
    ShopResponse,
    ShopClientResponse,
    serialize,
    serialize_list,
)
from backoffice_db.connection import get_db
from backoffice_db.models import AuditOperation, ShopStatus, row_to_dict
from backoffice_db.repositories import (
    AddressRepository,
    AuditLogRepository,
    ClientRepository,
    ShopClientRepository,
    ShopRepository,
)
from validation_utils import parse_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shops", tags=["shops"])


def _shop_row_or_404(repo: ShopRepository, shop_id: str):
    shop = repo.get_row(parse_id(shop_id, "shop ID"))
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    return shop


def _listing(shops: list) -> dict:
    return success_response(serialize_list(ShopResponse, shops), count=len(shops))


@router.get("", summary="List shops")
def list_shops(
    status: Optional[ShopStatus] = None,
    search: Optional[str] = None,
    shop_type: Optional[str] = Query(None, alias="shopType"),
    category: Optional[str] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    shops = ShopRepository(db).get_all({
        "status": status,
        "search": search,
        "shop_type": shop_type,
        "category": category,
        "state": state,
        "district": district,
        "include_deleted": include_deleted,
    })
    return _listing(shops)


@router.get("/deleted", summary="List soft-deleted shops")
def list_deleted_shops(db: Session = Depends(get_db)):
    return _listing(ShopRepository(db).get_deleted())


@router.get("/stats/count", summary="Count shops")
def count_shops(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    return success_response({"count": ShopRepository(db).get_count(include_deleted)})


@router.get("/status/{status}", summary="List shops by status")
def list_shops_by_status(status: ShopStatus, db: Session = Depends(get_db)):
    return _listing(ShopRepository(db).get_by_status(status))


@router.get("/type/{shop_type}", summary="List shops by type")
def list_shops_by_type(shop_type: str, db: Session = Depends(get_db)):
    return _listing(ShopRepository(db).get_by_type(shop_type))


@router.get("/category/{category}", summary="List shops by category")
def list_shops_by_category(category: str, db: Session = Depends(get_db)):
    return _listing(ShopRepository(db).get_by_category(category))


@router.post("", status_code=201, summary="Create a shop")
def create_shop(
    payload: ShopCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    if not payload.shop_name or not payload.owner_id:
        raise HTTPException(status_code=400, detail="Shop name and owner ID are required")
    if not ClientRepository(db).exists(payload.owner_id):
        raise HTTPException(status_code=400, detail="Owner client not found")

    repo = ShopRepository(db)
    data = payload.model_dump(exclude={"address"}, exclude_none=True)
    if payload.address is not None:
        data["address_id"] = AddressRepository(db).create(payload.address.model_dump()).id

    shop = repo.create(data)
    AuditLogRepository(db).log_change(
        "shops", shop.id, AuditOperation.INSERT,
        new_values=row_to_dict(shop), user_id=user_id,
    )
    logger.info("Shop created: id=%s owner=%s", shop.id, shop.owner_id)
    return success_response(serialize(ShopResponse, repo.get_by_id(shop.id)), message="Shop created successfully")


@router.get("/{shop_id}", summary="Get a shop")
def get_shop(
    shop_id: str,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    db: Session = Depends(get_db),
):
    shop = ShopRepository(db).get_by_id(parse_id(shop_id, "shop ID"), include_deleted)
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    return success_response(serialize(ShopResponse, shop))


@router.get("/{shop_id}/clients", summary="Clients associated with a shop")
def list_shop_clients(shop_id: str, db: Session = Depends(get_db)):
    shop = _shop_row_or_404(ShopRepository(db), shop_id)
    links = ShopClientRepository(db).get_clients_for_shop(shop.id)
    return success_response(serialize_list(ShopClientResponse, links), count=len(links))


@router.put("/{shop_id}", summary="Update a shop")
def update_shop(
    shop_id: str,
    payload: ShopUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = ShopRepository(db)
    shop = _shop_row_or_404(repo, shop_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"address"})
    if updates.get("owner_id") and not ClientRepository(db).exists(updates["owner_id"]):
        raise HTTPException(status_code=400, detail="Owner client not found")

    old_values = row_to_dict(shop)
    address_changed = False
    if payload.address is not None:
        address_repo = AddressRepository(db)
        if shop.address_id is not None and address_repo.get_by_id(shop.address_id) is not None:
            address_changed = address_repo.update(shop.address_id, payload.address.model_dump(exclude_unset=True))
        else:
            updates["address_id"] = address_repo.create(payload.address.model_dump()).id

    if not repo.update(shop.id, updates) and not address_changed:
        raise HTTPException(status_code=404, detail="Shop not found or no changes made")

    AuditLogRepository(db).log_change(
        "shops", shop.id, AuditOperation.UPDATE,
        old_values=old_values, new_values=row_to_dict(shop), user_id=user_id,
    )
    return success_response(
        serialize(ShopResponse, repo.get_by_id(shop.id, include_deleted=True)),
        message="Shop updated successfully",
    )


@router.delete("/{shop_id}", summary="Soft delete a shop")
def delete_shop(
    shop_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = ShopRepository(db)
    shop = _shop_row_or_404(repo, shop_id)
    old_values = row_to_dict(shop)
    repo.delete(shop.id)
    AuditLogRepository(db).log_change(
        "shops", shop.id, AuditOperation.DELETE,
        old_values=old_values, new_values=row_to_dict(shop), user_id=user_id,
    )
    return success_response(message="Shop deleted successfully")


@router.delete("/{shop_id}/hard", summary="Permanently delete a shop")
def hard_delete_shop(
    shop_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = ShopRepository(db)
    shop = _shop_row_or_404(repo, shop_id)
    shop_pk = shop.id
    old_values = row_to_dict(shop)
    repo.hard_delete(shop_pk)
    AuditLogRepository(db).log_change(
        "shops", shop_pk, AuditOperation.DELETE,
        old_values=old_values, user_id=user_id,
    )
    logger.warning("Shop permanently deleted: id=%s", shop_pk)
    return success_response(message="Shop permanently deleted")


@router.post("/{shop_id}/restore", summary="Restore a soft-deleted shop")
def restore_shop(
    shop_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    repo = ShopRepository(db)
    shop = _shop_row_or_404(repo, shop_id)
    old_values = row_to_dict(shop)
    repo.restore(shop.id)
    AuditLogRepository(db).log_change(
        "shops", shop.id, AuditOperation.RESTORE,
        old_values=old_values, new_values=row_to_dict(shop), user_id=user_id,
    )
    return success_response(serialize(ShopResponse, repo.get_by_id(shop.id)), message="Shop restored successfully")
