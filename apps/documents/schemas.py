from datetime import datetime
from typing import Optional
from uuid import UUID
from ninja import Schema


class DocumentOut(Schema):
    id: UUID
    project_id: UUID
    label: str
    original_name: str
    mime_type: str
    size_bytes: int
    visibility: str
    created_by_id: Optional[UUID] = None
    created_at: datetime


class DocumentUpdateIn(Schema):
    label: Optional[str] = None
    visibility: Optional[str] = None


class DownloadOut(Schema):
    download_url: str
