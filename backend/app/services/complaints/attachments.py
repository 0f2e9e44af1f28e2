"""
Attachment Storage

Opaque byte storage for intake and closure-request attachments. The
workflow core only ever sees the AttachmentRef; bytes live on disk under
ATTACHMENT_STORAGE_DIR, named by reference id, with a SHA-256 for integrity.
"""
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

from ...models.workflow_models import AttachmentRef, new_id
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ATTACHMENT_STORAGE_DIR = os.getenv("ATTACHMENT_STORAGE_DIR", "./attachments")
ATTACHMENT_MAX_BYTES = int(os.getenv("ATTACHMENT_MAX_BYTES", str(10 * 1024 * 1024)))


class LocalAttachmentStore:
    """Filesystem-backed attachment storage."""

    def __init__(self, root: Optional[str] = None, max_bytes: int = ATTACHMENT_MAX_BYTES):
        self.root = Path(root or ATTACHMENT_STORAGE_DIR)
        self.max_bytes = max_bytes

    def _path_for(self, attachment_id: str) -> Path:
        # Reference ids are uuids we minted; anything else is not ours
        if not attachment_id or "/" in attachment_id or "\\" in attachment_id or attachment_id.startswith("."):
            raise ValidationError("Malformed attachment id")
        return self.root / attachment_id

    def store(self, data: bytes, file_name: str, content_type: str) -> AttachmentRef:
        """Persist raw bytes and return a stable reference."""
        if not data:
            raise ValidationError("Attachment is empty")
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"Attachment exceeds {self.max_bytes} bytes",
                details={"size": len(data)},
            )
        if not file_name:
            raise ValidationError("Attachment file name is required")

        ref = AttachmentRef(
            id=new_id(),
            file_name=os.path.basename(file_name),
            content_type=content_type or "application/octet-stream",
            size=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
        )
        self.root.mkdir(parents=True, exist_ok=True)
        self._path_for(ref.id).write_bytes(data)
        logger.info(f"Stored attachment {ref.id} ({ref.size} bytes, {ref.content_type})")
        return ref

    def read(self, attachment_id: str) -> bytes:
        path = self._path_for(attachment_id)
        if not path.exists():
            raise NotFoundError(f"Attachment {attachment_id} not found")
        return path.read_bytes()

    def exists(self, attachment_id: str) -> bool:
        try:
            return self._path_for(attachment_id).exists()
        except ValidationError:
            return False
