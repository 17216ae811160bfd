"""
Document routes: multipart upload, listing, file streaming, verification
and soft delete.

Uploads are streamed to disk in 8KB chunks so an oversized file is
rejected without being held in memory.
"""

import time
import uuid
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from backoffice_api.dependencies import UploadSettings, get_upload_settings, success_response
from backoffice_api.models import DocumentResponse, DocumentVerify, serialize, serialize_list
from backoffice_db.connection import get_db
from backoffice_db.models import DocumentEntityType, DocumentType
from backoffice_db.repositories import AccountRepository, ClientRepository, DocumentRepository
from validation_utils import parse_id, sanitize_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

ALLOWED_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "pdf"}
ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "application/pdf",
}
CHUNK_SIZE = 8192


def _parse_entity_type(entity_type: str) -> DocumentEntityType:
    try:
        return DocumentEntityType(entity_type.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid entity type. Must be client or account")


def _entity_exists(db: Session, entity_type: DocumentEntityType, entity_id: int) -> bool:
    if entity_type == DocumentEntityType.CLIENT:
        return ClientRepository(db).exists(entity_id)
    return AccountRepository(db).get_row(entity_id) is not None


def _discard(path: Optional[Path]) -> None:
    if path is None or not path.exists():
        return
    try:
        path.unlink()
    except OSError as e:
        logger.error("Failed to remove uploaded file: path=%s error=%s", path, e)


@router.post("/upload/{entity_type}/{entity_id}", status_code=201, summary="Upload a document")
def upload_document(
    entity_type: str,
    entity_id: str,
    document: UploadFile = File(..., description="JPEG, PNG, GIF or PDF file"),
    document_type: str = Form(..., alias="documentType"),
    document_number: Optional[str] = Form(None, alias="documentNumber"),
    expiry_date: Optional[date] = Form(None, alias="expiryDate"),
    notes: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    upload: UploadSettings = Depends(get_upload_settings),
):
    """Store an uploaded file for a client or account and record it.

    The file is removed again if anything after the write fails.
    """
    owner_type = _parse_entity_type(entity_type)
    owner_id = parse_id(entity_id, "entity ID")
    try:
        doc_type = DocumentType(document_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid document type: {sanitize_for_logging(document_type)}")

    filename = document.filename or ""
    extension = Path(filename).suffix.lower().lstrip(".")
    content_type = (document.content_type or "").lower()
    if extension not in ALLOWED_EXTENSIONS or content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Only image files (JPEG, PNG, GIF) and PDF files are allowed",
        )

    if not _entity_exists(db, owner_type, owner_id):
        raise HTTPException(status_code=404, detail=f"{owner_type.value.capitalize()} not found")

    upload_dir = upload.directory
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored_path = upload_dir / f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}.{extension}"

    # Validate path is within the upload directory (prevent path traversal)
    if not stored_path.resolve().is_relative_to(upload_dir.resolve()):
        raise HTTPException(status_code=400, detail="Invalid file path")

    total_size = 0
    try:
        with open(stored_path, "wb") as file_handle:
            while True:
                chunk = document.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > upload.max_size_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File too large. Maximum size is {upload.max_size_mb}MB",
                    )
                file_handle.write(chunk)

        record = DocumentRepository(db).create({
            "entity_type": owner_type,
            "entity_id": owner_id,
            "document_type": doc_type,
            "document_number": document_number,
            "file_name": filename,
            "file_path": str(stored_path),
            "file_size": total_size,
            "mime_type": content_type,
            "expiry_date": expiry_date,
            "notes": notes,
        })
    except Exception:
        _discard(stored_path)
        raise

    logger.info(
        "Document uploaded: id=%s entity=%s:%s type=%s size=%d",
        record.id,
        owner_type.value,
        owner_id,
        doc_type.value,
        total_size,
    )
    return success_response(serialize(DocumentResponse, record), message="Document uploaded successfully")


@router.get("/file/{document_id}", summary="Stream a document file")
def get_document_file(document_id: str, db: Session = Depends(get_db)):
    document = DocumentRepository(db).get_by_id(parse_id(document_id, "document ID"))
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    if not Path(document.file_path).is_file():
        logger.error("Document file missing on disk: id=%s path=%s", document.id, document.file_path)
        raise HTTPException(status_code=404, detail="Document file not found")
    return FileResponse(
        document.file_path,
        media_type=document.mime_type,
        filename=document.file_name,
        content_disposition_type="inline",
    )


@router.get("/{entity_type}/{entity_id}", summary="List documents of a client or account")
def list_documents(entity_type: str, entity_id: str, db: Session = Depends(get_db)):
    owner_type = _parse_entity_type(entity_type)
    documents = DocumentRepository(db).get_by_entity(owner_type, parse_id(entity_id, "entity ID"))
    return success_response(serialize_list(DocumentResponse, documents), count=len(documents))


@router.put("/verify/{document_id}", summary="Mark a document as verified")
def verify_document(document_id: str, payload: DocumentVerify, db: Session = Depends(get_db)):
    if not payload.verified_by:
        raise HTTPException(status_code=400, detail="verifiedBy is required")
    repo = DocumentRepository(db)
    document_pk = parse_id(document_id, "document ID")
    if repo.get_by_id(document_pk) is None:
        raise HTTPException(status_code=404, detail="Document not found")
    repo.verify(document_pk, payload.verified_by)
    return success_response(serialize(DocumentResponse, repo.get_by_id(document_pk)), message="Document verified successfully")


@router.delete("/{document_id}", summary="Soft delete a document")
def delete_document(document_id: str, db: Session = Depends(get_db)):
    repo = DocumentRepository(db)
    document_pk = parse_id(document_id, "document ID")
    if repo.get_by_id(document_pk) is None:
        raise HTTPException(status_code=404, detail="Document not found")
    repo.delete(document_pk)
    return success_response(message="Document deleted successfully")
