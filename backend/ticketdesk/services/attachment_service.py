"""Attachment Service - File upload and download"""
import os
import re
from typing import Iterator, List, Optional, Tuple
from fastapi import UploadFile

from ..domain.models import Attachment, User
from ..domain.errors import (
    AttachmentTooLargeError, InvalidMimeTypeError, AttachmentNotFoundError,
    PermissionDeniedError
)
from ..repositories.attachment_repo import AttachmentRepository
from ..repositories.ticket_repo import TicketRepository
from ..engine.permission_guard import PermissionGuard
from .directory_service import DirectoryService
from ..config.settings import settings
from ..utils.idgen import generate_attachment_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


class AttachmentService:
    """Service for attachment operations"""

    def __init__(self):
        self.attachment_repo = AttachmentRepository()
        self.ticket_repo = TicketRepository()
        self.directory = DirectoryService()
        self.permission_guard = PermissionGuard()
        self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Ensure storage directory exists"""
        os.makedirs(settings.attachments_base_path, exist_ok=True)

    async def upload_attachment(
        self,
        file: UploadFile,
        ticket_id: str,
        user: User,
        description: Optional[str] = None
    ) -> Attachment:
        """
        Upload attachment

        Validates the ticket, mime type and size before saving.
        """
        self.ticket_repo.get_ticket_or_raise(ticket_id)

        content_type = file.content_type or "application/octet-stream"
        if content_type not in settings.allowed_mime_types_list:
            raise InvalidMimeTypeError(
                f"File type {content_type} is not allowed",
                details={
                    "mime_type": content_type,
                    "allowed": settings.allowed_mime_types_list
                }
            )

        content = await file.read()
        file_size = len(content)

        if file_size > settings.attachments_max_bytes:
            raise AttachmentTooLargeError(
                f"File exceeds maximum size of {settings.attachments_max_mb}MB",
                details={
                    "size_bytes": file_size,
                    "max_bytes": settings.attachments_max_bytes
                }
            )

        attachment_id = generate_attachment_id()
        original_filename = file.filename or "unnamed"
        stored_filename = f"{attachment_id}_{self._sanitize_filename(original_filename)}"

        storage_dir = os.path.join(settings.attachments_base_path, ticket_id)
        os.makedirs(storage_dir, exist_ok=True)
        storage_path = os.path.join(storage_dir, stored_filename)
        relative_path = os.path.join(ticket_id, stored_filename)

        try:
            with open(storage_path, "wb") as f:
                f.write(content)

            attachment = Attachment(
                attachment_id=attachment_id,
                ticket_id=ticket_id,
                original_filename=original_filename,
                stored_filename=stored_filename,
                mime_type=content_type,
                size_bytes=file_size,
                uploaded_by=self.directory.snapshot_for(user),
                uploaded_at=utc_now(),
                storage_path=relative_path,
                description=description
            )

            self.attachment_repo.create_attachment(attachment)
        except Exception as e:
            # Cleanup on failure
            if os.path.exists(storage_path):
                os.remove(storage_path)
            logger.error(f"Failed to upload attachment: {e}", extra={"ticket_id": ticket_id})
            raise

        self.ticket_repo.touch_ticket(ticket_id)

        logger.info(
            f"Uploaded attachment: {attachment_id} ({file_size} bytes)",
            extra={
                "attachment_id": attachment_id,
                "ticket_id": ticket_id,
                "actor_email": user.email
            }
        )
        return attachment

    def _sanitize_filename(self, filename: str) -> str:
        """Keep only the base name and safe characters, at most 100 long"""
        safe = os.path.basename(filename.replace("\\", "/"))
        safe = UNSAFE_FILENAME_CHARS.sub("_", safe).replace("..", "_").strip(" .")
        if not safe:
            safe = "file"
        if len(safe) > 100:
            name, ext = os.path.splitext(safe)
            safe = name[:100 - len(ext[:10])] + ext[:10]
        return safe

    def _file_iterator(self, file_path: str, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
        """
        Generator that yields file in chunks for memory-efficient streaming.
        Default chunk size is 1MB.
        """
        with open(file_path, "rb") as f:
            while chunk := f.read(chunk_size):
                yield chunk

    def _file_path(self, attachment: Attachment) -> str:
        return os.path.join(settings.attachments_base_path, attachment.storage_path)

    def get_attachment(self, attachment_id: str) -> Tuple[Attachment, Iterator[bytes]]:
        """
        Get attachment for download

        Returns attachment metadata and file iterator for streaming.
        """
        attachment = self.attachment_repo.get_attachment_or_raise(attachment_id)

        file_path = self._file_path(attachment)
        if not os.path.exists(file_path):
            raise AttachmentNotFoundError(
                "Attachment file not found",
                details={"attachment_id": attachment_id}
            )

        return attachment, self._file_iterator(file_path)

    def list_attachments(self, ticket_id: str) -> List[Attachment]:
        """Attachments of a ticket, newest first"""
        self.ticket_repo.get_ticket_or_raise(ticket_id)
        return self.attachment_repo.get_attachments_for_ticket(ticket_id)

    def delete_attachment(self, attachment_id: str, user: User, is_admin: bool = False) -> None:
        """
        Delete attachment

        Only uploader or admin can delete.
        """
        attachment = self.attachment_repo.get_attachment_or_raise(attachment_id)

        if not self.permission_guard.can_delete_attachment(user, attachment, is_admin):
            raise PermissionDeniedError(
                "You can only delete attachments you uploaded",
                details={"attachment_id": attachment_id}
            )

        file_path = self._file_path(attachment)
        if os.path.exists(file_path):
            os.remove(file_path)

        self.attachment_repo.delete_attachment(attachment_id)

        logger.info(
            f"Deleted attachment: {attachment_id}",
            extra={"attachment_id": attachment_id, "actor_email": user.email}
        )
