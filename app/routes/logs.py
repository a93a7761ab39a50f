"""
Ginee sync log routes.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from ..dependencies import get_db, require_auth
from ..db import SQLiteDatabase, SyncLog, SyncLogPage, SyncLogType, SyncLogStatus

router = APIRouter(prefix="/api/ginee/logs", dependencies=[Depends(require_auth)])

TYPE_LABELS = {
    SyncLogType.PULL_STOCK: "Stock Update",
    SyncLogType.PUSH_ORDER: "Push Order",
    SyncLogType.PULL_PRODUCT: "Pull Product",
    SyncLogType.PUSH_PRODUCT: "Push Product",
    SyncLogType.SYNC_ALL: "Sync All Job",
}


@router.get("", response_model=SyncLogPage)
async def list_logs(
    type: Optional[SyncLogType] = Query(None),
    status: Optional[SyncLogStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: SQLiteDatabase = Depends(get_db),
):
    """List sync logs, newest first."""
    return await db.get_logs(type=type, status=status, page=page, limit=limit)


async def _get_log_or_404(db: SQLiteDatabase, log_id: int) -> SyncLog:
    log = await db.get_log(log_id)
    if not log:
        raise HTTPException(status_code=404, detail="Log not found")
    return log


@router.get("/{log_id}", response_model=SyncLog)
async def get_log(log_id: int, db: SQLiteDatabase = Depends(get_db)):
    """A single log entry with its payload and response snapshots."""
    return await _get_log_or_404(db, log_id)


@router.get("/{log_id}/download", response_class=PlainTextResponse)
async def download_log(log_id: int, db: SQLiteDatabase = Depends(get_db)):
    """Download a log entry as a text file."""
    log = await _get_log_or_404(db, log_id)

    lines = [
        "=" * 80,
        f"GINEE SYNC LOG #{log.id}: {TYPE_LABELS.get(log.type, log.type.value)}",
        "=" * 80,
        "",
        f"Type:      {log.type.value}",
        f"Status:    {log.status.value.upper()}",
        f"Created:   {log.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]

    if log.error_message:
        lines.extend(["", f"Error:     {log.error_message}"])

    lines.extend([
        "",
        "-" * 80,
        "PAYLOAD SENT",
        "-" * 80,
        json.dumps(log.payload_sent, indent=2, default=str),
        "",
        "-" * 80,
        "RESPONSE RECEIVED",
        "-" * 80,
        json.dumps(log.response_received, indent=2, default=str),
        "",
        "=" * 80,
    ])

    filename = f"ginee_log_{log.id}_{log.type.value}_{log.created_at.strftime('%Y%m%d_%H%M%S')}.txt"

    return PlainTextResponse(
        content="\n".join(lines),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
