"""
Shop/client association routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backoffice_api.dependencies import success_response
from backoffice_api.models import ShopClientCreate, ShopClientResponse, serialize, serialize_list
from backoffice_db.connection import get_db
from backoffice_db.repositories import ClientRepository, ShopClientRepository, ShopRepository
from validation_utils import parse_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shop-clients", tags=["shop-clients"])


@router.get("/shop/{shop_id}", summary="Clients of a shop")
def list_clients_for_shop(shop_id: str, db: Session = Depends(get_db)):
    links = ShopClientRepository(db).get_clients_for_shop(parse_id(shop_id, "shop ID"))
    return success_response(serialize_list(ShopClientResponse, links), count=len(links))


@router.get("/shop/{shop_id}/count", summary="Number of clients of a shop")
def count_clients_for_shop(shop_id: str, db: Session = Depends(get_db)):
    count = ShopClientRepository(db).get_client_count_for_shop(parse_id(shop_id, "shop ID"))
    return success_response({"count": count})


@router.get("/client/{client_id}", summary="Shops of a client")
def list_shops_for_client(client_id: str, db: Session = Depends(get_db)):
    links = ShopClientRepository(db).get_shops_for_client(parse_id(client_id, "client ID"))
    return success_response(serialize_list(ShopClientResponse, links), count=len(links))


@router.get("/client/{client_id}/count", summary="Number of shops of a client")
def count_shops_for_client(client_id: str, db: Session = Depends(get_db)):
    count = ShopClientRepository(db).get_shop_count_for_client(parse_id(client_id, "client ID"))
    return success_response({"count": count})


@router.post("", status_code=201, summary="Associate a client with a shop")
def add_client_to_shop(payload: ShopClientCreate, db: Session = Depends(get_db)):
    if ShopRepository(db).get_row(payload.shop_id) is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    if ClientRepository(db).get_row(payload.client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")

    repo = ShopClientRepository(db)
    if repo.is_client_associated_with_shop(payload.shop_id, payload.client_id):
        raise HTTPException(status_code=400, detail="Client is already associated with this shop")

    link = repo.add_client_to_shop(payload.shop_id, payload.client_id, payload.relationship_type)
    logger.info("Client %s associated with shop %s", payload.client_id, payload.shop_id)
    return success_response(
        serialize(ShopClientResponse, repo.get_by_id(link.id)),
        message="Client added to shop successfully",
    )


@router.delete("/shop/{shop_id}/client/{client_id}", summary="Remove a client from a shop")
def remove_client_from_shop(shop_id: str, client_id: str, db: Session = Depends(get_db)):
    removed = ShopClientRepository(db).remove_client_from_shop(
        parse_id(shop_id, "shop ID"), parse_id(client_id, "client ID")
    )
    if not removed:
        raise HTTPException(status_code=404, detail="Association not found")
    return success_response(message="Client removed from shop successfully")


@router.get("/{link_id}", summary="Get an association")
def get_association(link_id: str, db: Session = Depends(get_db)):
    link = ShopClientRepository(db).get_by_id(parse_id(link_id, "association ID"))
    if link is None:
        raise HTTPException(status_code=404, detail="Association not found")
    return success_response(serialize(ShopClientResponse, link))
