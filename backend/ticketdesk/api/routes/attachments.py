"""Attachment API Routes - File upload and download"""
import urllib.parse
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ...domain.errors import DomainError
from ...services.attachment_service import AttachmentService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================

class UploadResponse(BaseModel):
    """Upload response"""
    attachment_id: str
    ticket_id: str
    original_filename: str
    size_bytes: int
    mime_type: str


# ============================================================================
# Routes
# ============================================================================

@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    file: UploadFile = File(...),
    ticket_id: str = Form(...),
    description: Optional[str] = Form(None),
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Upload attachment

    Attach a file to an existing ticket. Size and mime type are limited by
    configuration.
    """
    try:
        service = AttachmentService()
        attachment = await service.upload_attachment(
            file=file,
            ticket_id=ticket_id,
            user=current.user,
            description=description
        )

        return UploadResponse(
            attachment_id=attachment.attachment_id,
            ticket_id=attachment.ticket_id,
            original_filename=attachment.original_filename,
            size_bytes=attachment.size_bytes,
            mime_type=attachment.mime_type
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/ticket/{ticket_id}")
async def get_attachments_for_ticket(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Attachments of a ticket, newest first"""
    try:
        service = AttachmentService()
        attachments = service.list_attachments(ticket_id)
        return {
            "ticket_id": ticket_id,
            "total_count": len(attachments),
            "attachments": [a.model_dump(mode="json") for a in attachments]
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{attachment_id}/download")
async def download_attachment(
    attachment_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Stream the stored file with its original name"""
    try:
        service = AttachmentService()
        attachment, file_stream = service.get_attachment(attachment_id)

        # Content-Disposition needs the name percent-encoded
        encoded_filename = urllib.parse.quote(attachment.original_filename)

        return StreamingResponse(
            file_stream,
            media_type=attachment.mime_type,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{encoded_filename}",
                "Content-Length": str(attachment.size_bytes),
                "Access-Control-Expose-Headers": "Content-Disposition, Content-Length",
                "Cache-Control": "no-cache",
            }
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{attachment_id}")
async def delete_attachment(
    attachment_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Delete attachment

    Only the uploader or admin can delete.
    """
    try:
        service = AttachmentService()
        service.delete_attachment(attachment_id, current.user, is_admin=current.is_admin)
        return {"message": "Attachment deleted"}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
