from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ninja import Schema
from pydantic import Field

from .sla import get_sla_state


class CategoryOut(Schema):
    id: UUID
    label: str


class PriorityOut(Schema):
    id: UUID
    code: str
    response_sla_minutes: int
    resolve_sla_minutes: int


class TicketIn(Schema):
    client_id: UUID
    subject: str
    project_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    priority_id: Optional[UUID] = None
    message: Optional[str] = None


class TicketUpdateIn(Schema):
    subject: Optional[str] = None
    project_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    priority_id: Optional[UUID] = None


class TicketStatusIn(Schema):
    status: str


class SlaStateOut(Schema):
    first_response: Optional[str] = None
    resolution: Optional[str] = None


class TicketOut(Schema):
    id: UUID
    client_id: UUID
    project_id: Optional[UUID] = None
    subject: str
    status: str
    category: Optional[str] = None
    priority: Optional[str] = None
    first_response_due_at: Optional[datetime] = None
    resolve_due_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    last_customer_activity: Optional[datetime] = None
    last_admin_activity: Optional[datetime] = None
    sla: SlaStateOut
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def resolve_category(obj):
        return obj.category.label if obj.category else None

    @staticmethod
    def resolve_priority(obj):
        return obj.priority.code if obj.priority else None

    @staticmethod
    def resolve_sla(obj):
        state = get_sla_state(obj)
        return {"first_response": state.first_response, "resolution": state.resolution}


class MessageIn(Schema):
    body: str
    visibility: str = "public"


class MessageOut(Schema):
    id: UUID
    author_id: Optional[UUID] = None
    author_name: Optional[str] = None
    body: str
    visibility: str
    created_at: datetime

    @staticmethod
    def resolve_author_name(obj):
        return obj.author.display_name if obj.author else None


class AttachmentOut(Schema):
    id: UUID
    ticket_id: UUID
    label: str
    original_name: str
    mime_type: str
    size_bytes: int
    created_at: datetime


class TicketDetailOut(TicketOut):
    messages: List[MessageOut] = []
    attachments: List[AttachmentOut] = []

    @staticmethod
    def resolve_messages(obj):
        # Filtered per user by the view
        return getattr(obj, "visible_messages", [])

    @staticmethod
    def resolve_attachments(obj):
        return list(obj.attachments.all())


class DownloadOut(Schema):
    download_url: str


class SlaTicketIn(Schema):
    id: UUID
    subject: Optional[str] = None
    client_id: Optional[UUID] = None


class SlaNotifyIn(Schema):
    due_soon: List[SlaTicketIn] = Field(default_factory=list, alias="dueSoon")
    overdue: List[SlaTicketIn] = Field(default_factory=list)


class SlaNotifyOut(Schema):
    ok: bool
    warnings_sent: int
    breaches_sent: int
