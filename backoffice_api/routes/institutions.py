"""
Institution routes (banks and post offices).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice_api.dependencies import success_response
from backoffice_api.models import (
    InstitutionCreate,
    InstitutionUpdate,
    InstitutionResponse,
    serialize,
    serialize_list,
)
from backoffice_db.connection import get_db
from backoffice_db.models import InstitutionType
from backoffice_db.repositories import AddressRepository, InstitutionRepository
from validation_utils import parse_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/institutions", tags=["institutions"])


@router.get("", summary="List institutions")
def list_institutions(
    institution_type: Optional[InstitutionType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
):
    repo = InstitutionRepository(db)
    if institution_type is not None:
        institutions = repo.find_by_type(institution_type)
    else:
        institutions = repo.find_with_address()
    return success_response(serialize_list(InstitutionResponse, institutions), count=len(institutions))


@router.get("/{institution_id}", summary="Get an institution")
def get_institution(institution_id: str, db: Session = Depends(get_db)):
    institution = InstitutionRepository(db).find_by_id(parse_id(institution_id, "institution ID"))
    if institution is None:
        raise HTTPException(status_code=404, detail="Institution not found")
    return success_response(serialize(InstitutionResponse, institution))


@router.post("", status_code=201, summary="Create an institution")
def create_institution(payload: InstitutionCreate, db: Session = Depends(get_db)):
    data = payload.model_dump(exclude={"address"}, exclude_none=True)
    if payload.address is not None:
        data["address_id"] = AddressRepository(db).create(payload.address.model_dump()).id
    institution = InstitutionRepository(db).create(data)
    logger.info("Institution created: id=%s", institution.id)
    return success_response(serialize(InstitutionResponse, institution), message="Institution created successfully")


@router.put("/{institution_id}", summary="Update an institution")
def update_institution(institution_id: str, payload: InstitutionUpdate, db: Session = Depends(get_db)):
    institution = InstitutionRepository(db).update(
        parse_id(institution_id, "institution ID"),
        payload.model_dump(exclude_unset=True),
    )
    if institution is None:
        raise HTTPException(status_code=404, detail="Institution not found")
    return success_response(serialize(InstitutionResponse, institution), message="Institution updated successfully")


@router.delete("/{institution_id}", summary="Delete an institution")
def delete_institution(institution_id: str, db: Session = Depends(get_db)):
    """Fails with 400 while accounts still reference the institution."""
    if not InstitutionRepository(db).delete(parse_id(institution_id, "institution ID")):
        raise HTTPException(status_code=404, detail="Institution not found")
    return success_response(message="Institution deleted successfully")
