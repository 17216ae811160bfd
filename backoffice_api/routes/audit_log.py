"""
Read-only audit trail route.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice_api.dependencies import success_response
from backoffice_api.models import AuditLogResponse, serialize_list
from backoffice_db.connection import get_db
from backoffice_db.models import AuditOperation
from backoffice_db.repositories import AuditLogRepository

router = APIRouter(prefix="/audit-log", tags=["audit-log"])


@router.get("", summary="List audit entries, newest first")
def list_audit_log(
    table_name: Optional[str] = Query(None, alias="tableName"),
    record_id: Optional[int] = Query(None, alias="recordId", ge=1),
    operation: Optional[AuditOperation] = None,
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    entries = AuditLogRepository(db).find_all(
        limit=limit,
        table_name=table_name,
        record_id=record_id,
        operation=operation,
        user_id=user_id,
    )
    return success_response(serialize_list(AuditLogResponse, entries), count=len(entries))
