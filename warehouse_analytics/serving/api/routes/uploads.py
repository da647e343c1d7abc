"""
Upload Management Endpoints

- POST /uploads/{kind}: ingest one CSV/XLSX file as a new batch
- GET /uploads: list batches, newest first
- DELETE /uploads/{uploadId}: remove a batch and all its rows
"""

from pathlib import Path
from typing import Dict, List, Optional
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
import structlog

from warehouse_analytics.analytics.filters import parse_batch_id
from warehouse_analytics.database.models import BatchStatus, SourceKind
from warehouse_analytics.ingestion.batch_loader import BatchIngestor, BatchInfo, IngestionResult
from warehouse_analytics.serving.api.dependencies import get_ingestor, get_upload_dir

logger = structlog.get_logger(__name__)
router = APIRouter()

ALLOWED_SUFFIXES = {".csv", ".xlsx", ".xlsm", ".xls"}
COPY_CHUNK_BYTES = 1024 * 1024


async def _save_upload(upload: UploadFile, upload_dir: str) -> Path:
    target_dir = Path(upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4().hex}{Path(upload.filename or '').suffix.lower()}"
    with target.open("wb") as out:
        while True:
            chunk = await upload.read(COPY_CHUNK_BYTES)
            if not chunk:
                break
            out.write(chunk)
    return target


@router.post(
    "/uploads/{kind}",
    response_model=IngestionResult,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": IngestionResult, "description": "File rejected; batch marked FAILED"}},
)
async def upload_file(
    kind: SourceKind,
    file: UploadFile = File(...),
    ingestor: BatchIngestor = Depends(get_ingestor),
    upload_dir: str = Depends(get_upload_dir),
):
    """
    Ingest an uploaded file for one source kind.

    The batch is created before reading; a file that cannot be read or
    yields no rows still leaves a FAILED batch behind and answers 422.
    """
    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in ALLOWED_SUFFIXES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unsupported file type '{suffix or file.filename}'",
        )

    path = await _save_upload(file, upload_dir)
    try:
        result = await ingestor.ingest_file(kind, path, file_name=file.filename)
    finally:
        path.unlink(missing_ok=True)

    if result.status == BatchStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result


@router.get("/uploads", response_model=List[BatchInfo])
async def list_uploads(
    kind: Optional[SourceKind] = None,
    ingestor: BatchIngestor = Depends(get_ingestor),
):
    return await ingestor.list_batches(kind)


@router.delete("/uploads/{upload_id}")
async def delete_upload(
    upload_id: str,
    ingestor: BatchIngestor = Depends(get_ingestor),
) -> Dict[str, str]:
    """Delete one batch; its fact rows go with it."""
    batch_id = parse_batch_id(upload_id)
    await ingestor.delete_batch(batch_id)
    return {"status": "deleted", "uploadId": str(batch_id)}
