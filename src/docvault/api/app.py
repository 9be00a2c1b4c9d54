"""HTTP API for uploads, job status, history, revert and download."""

import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import quote

from fastapi import FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import iterate_in_threadpool

import docvault
from docvault.bootstrap import AppContext
from docvault.core import get_logger
from docvault.core.errors import (
    ConflictError,
    DocVaultError,
    NotFoundError,
    StorageError,
    TransactionError,
    ValidationError,
)
from docvault.models import Document, JobStatus, UploadRequest, Version
from docvault.storage.object_store import ObjectStream

logger = get_logger(__name__)

ERROR_STATUS = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 400),
    (StorageError, 503),
    (TransactionError, 503),
]


class UploadAccepted(BaseModel):
    """Response to an accepted upload."""
    job_id: str = Field(..., description="Id to poll for the ingestion outcome")
    message: str = "Upload queued for processing"


class RevertRequest(BaseModel):
    version_id: str = Field(..., description="Version whose content becomes current")


class DeleteResult(BaseModel):
    deleted: str


def status_for(error: DocVaultError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def content_disposition(file_name: str) -> str:
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"


async def stream_body(stream: ObjectStream) -> AsyncIterator[bytes]:
    """Yield an object's chunks, closing it even if the client goes away."""
    try:
        async for chunk in iterate_in_threadpool(iter(stream)):
            yield chunk
    finally:
        stream.close()


def create_app(context: AppContext) -> FastAPI:
    """Build the FastAPI application around a wired context."""
    app = FastAPI(
        title="Document Vault API",
        description="Versioned document storage with asynchronous ingestion",
        version=docvault.__version__,
    )
    app.state.context = context

    @app.exception_handler(DocVaultError)
    async def handle_vault_error(request: Request, exc: DocVaultError):
        status = status_for(exc)
        if status >= 500:
            logger.error("request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status,
            content=exc.to_dict(),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("request_crashed", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL", "message": "Internal server error"},
        )

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "storage": context.store.name,
            "jobs": context.queue.counts(),
        }

    @app.post("/documents/upload", status_code=202, response_model=UploadAccepted)
    def upload_document(
        file: UploadFile = File(...),
        title: Optional[str] = Form(None),
        node_id: Optional[str] = Form(None),
        document_id: Optional[str] = Form(None),
        changelog: Optional[str] = Form(None),
        x_user_id: Optional[str] = Header(None),
    ):
        """Stage an upload and queue it; the work happens on a worker."""
        original_name = file.filename or ""
        staged = context.settings.temp_dir / f"{uuid.uuid4()}{Path(original_name).suffix}"
        with open(staged, "wb") as out:
            shutil.copyfileobj(file.file, out)

        request = UploadRequest(
            temp_file_path=str(staged),
            original_name=original_name,
            mime_type=file.content_type or "application/octet-stream",
            file_size=staged.stat().st_size,
            title=title,
            node_id=node_id,
            document_id=document_id,
            changelog=changelog,
            user_id=x_user_id,
        )
        try:
            job_id = context.ingestion.enqueue_upload(request)
        except Exception:
            staged.unlink(missing_ok=True)
            raise
        return UploadAccepted(job_id=job_id)

    @app.get("/documents", response_model=list[Document])
    def list_documents(node_id: str = Query(..., description="Classification node to list")):
        return context.engine.list_documents(node_id)

    @app.get("/documents/jobs/{job_id}", response_model=JobStatus)
    def get_job_status(job_id: str):
        return context.ingestion.get_job_status(job_id)

    @app.get("/documents/{document_id}", response_model=Document)
    def get_document(document_id: str):
        return context.engine.get_document(document_id)

    @app.get("/documents/{document_id}/versions", response_model=list[Version])
    def get_history(document_id: str):
        return context.engine.get_history(document_id)

    @app.post("/documents/{document_id}/revert", response_model=Document)
    def revert_document(
        document_id: str,
        body: RevertRequest,
        x_user_id: Optional[str] = Header(None),
    ):
        if not x_user_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        return context.engine.revert(document_id, body.version_id, x_user_id)

    @app.get("/documents/{document_id}/download")
    def download_document(document_id: str):
        info, stream = context.engine.open_download(document_id)
        headers = {"Content-Disposition": content_disposition(info.file_name)}
        if stream.content_length is not None:
            headers["Content-Length"] = str(stream.content_length)
        return StreamingResponse(stream_body(stream), media_type=info.mime_type, headers=headers)

    @app.delete("/documents/{document_id}", response_model=DeleteResult)
    def delete_document(document_id: str):
        return DeleteResult(deleted=context.engine.delete(document_id))

    return app
