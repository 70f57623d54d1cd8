# dmchat/services/storage_service.py
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple
from supabase import create_client, Client
import base64
import binascii
import logging
import mimetypes
import uuid

from dmchat.config import get_settings
from dmchat.exceptions import StoreError, ValidationError
from dmchat.models.enums import AttachmentKind
from dmchat.models.message import Attachment

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase() -> Client:
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


@dataclass(frozen=True)
class UploadResult:
    url: str
    original_name: str
    format: str

    @property
    def display_name(self) -> str:
        if self.format and not self.original_name.endswith(f".{self.format}"):
            return f"{self.original_name}.{self.format}"
        return self.original_name


def kind_for_content_type(content_type: str) -> AttachmentKind:
    """Map a MIME type onto an attachment kind; documents default to pdf."""
    major = content_type.split("/", 1)[0].lower()
    if major == "image":
        return AttachmentKind.IMAGE
    if major == "video":
        return AttachmentKind.VIDEO
    if major == "audio":
        return AttachmentKind.AUDIO
    return AttachmentKind.PDF


def parse_data_uri(data: str) -> Tuple[str, bytes]:
    """
    Decode ``data:<mime>;base64,<payload>`` (or bare base64) into
    (content type, raw bytes).
    """
    content_type = "application/octet-stream"
    payload = data
    if data.startswith("data:"):
        header, sep, payload = data.partition(",")
        if not sep or ";base64" not in header:
            raise ValidationError("File must be a base64 data URI")
        content_type = header[len("data:"):].split(";", 1)[0] or content_type

    try:
        return content_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("File is not valid base64") from e


class StorageService:
    """Uploads message media to a Supabase Storage bucket."""

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or get_settings().STORAGE_BUCKET

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def upload(
        self,
        data: bytes,
        kind: AttachmentKind,
        content_type: str = "application/octet-stream",
        file_name: Optional[str] = None
    ) -> UploadResult:
        """
        Upload raw bytes and return where they can be fetched from.

        Raises:
            ValidationError: If there is nothing to upload.
            StoreError: If the storage backend rejects the upload.
        """
        if not data:
            raise ValidationError("File is empty")

        extension = (mimetypes.guess_extension(content_type) or "").lstrip(".")
        original_name = file_name or f"{kind.value}_{uuid.uuid4().hex[:8]}"
        path = f"{kind.value}/{uuid.uuid4()}" + (f".{extension}" if extension else "")

        bucket = self.client.storage.from_(self.bucket)
        try:
            bucket.upload(path, data, {"content-type": content_type})
            url = bucket.get_public_url(path)
        except Exception as e:
            logger.error(f"Upload to bucket {self.bucket} failed: {str(e)}")
            raise StoreError("Failed to upload attachment") from e

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return UploadResult(url=url, original_name=original_name, format=extension)

    def upload_data_uri(
        self,
        data_uri: str,
        file_name: Optional[str] = None,
        kind: Optional[AttachmentKind] = None
    ) -> Attachment:
        """Upload a base64 data URI and describe it as a message attachment."""
        content_type, data = parse_data_uri(data_uri)
        kind = kind or kind_for_content_type(content_type)
        result = self.upload(data, kind, content_type=content_type, file_name=file_name)
        return Attachment(kind=kind, url=result.url, name=result.display_name)
