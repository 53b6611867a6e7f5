"""Record API routes.

Records live under ``/api/groups/{group_id}/{kind}/{record_id}``. The
server stores documents as sent and never compares timestamps; conflict
resolution happens on the clients.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from finsync.core.types import RecordKind
from finsync.server.api.deps import get_current_token, get_db, require_member
from finsync.server.database import Database
from finsync.server.models import Token
from finsync.server.schemas import RecordDocumentRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["records"])


@router.get("/{group_id}/{kind}", response_model=list[dict[str, Any]])
def list_records(
    kind: RecordKind,
    group_id: str = Depends(require_member),
    db: Database = Depends(get_db),
) -> list[dict[str, Any]]:
    """List every record of one collection, tombstones included."""
    return db.list_records(group_id, kind)


@router.get("/{group_id}/{kind}/{record_id}", response_model=dict[str, Any])
def get_record(
    kind: RecordKind,
    record_id: str,
    group_id: str = Depends(require_member),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    """Get one record."""
    document = db.get_record(group_id, kind, record_id)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Record not found: {kind.value}/{record_id}",
        )
    return document


@router.put("/{group_id}/{kind}/{record_id}", response_model=dict[str, Any])
def upsert_record(
    kind: RecordKind,
    record_id: str,
    body: RecordDocumentRequest,
    group_id: str = Depends(require_member),
    db: Database = Depends(get_db),
    auth: Token = Depends(get_current_token),
) -> dict[str, Any]:
    """Create or replace a record.

    A ``lastModified`` that is not an ISO-8601 string is rejected with 422.
    """
    document = body.to_document()
    if str(document.get("id", record_id)) != record_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Document id {document['id']!r} does not match {record_id!r}",
        )
    if document.get("groupId", group_id) != group_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Document groupId {document['groupId']!r} does not match {group_id!r}",
        )
    stored = db.upsert_record(group_id, kind, record_id, document, auth.user_id)
    logger.debug("%s wrote %s/%s/%s", auth.user_id, group_id, kind.value, record_id)
    return stored
