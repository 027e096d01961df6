"""
Django Ninja schemas for clients and prospects.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID
from ninja import Schema


class ClientIn(Schema):
    name: str
    contact_email: str = ""
    phone: str = ""
    address: str = ""


class ClientUpdateIn(Schema):
    name: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ClientOut(Schema):
    id: UUID
    org_id: UUID
    name: str
    contact_email: str
    phone: str
    address: str
    created_at: datetime


class ClientMemberIn(Schema):
    user_id: UUID
    is_primary: bool = False


class ClientMemberOut(Schema):
    id: UUID
    client_id: UUID
    user_id: UUID
    is_primary: bool


class ProspectIn(Schema):
    name: str
    email: str = ""
    phone: str = ""
    status: str = "new"
    source: str = ""
    notes: str = ""


class ProspectUpdateIn(Schema):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None


class ProspectOut(Schema):
    id: UUID
    name: str
    email: str
    phone: str
    status: str
    source: str
    notes: str
    created_at: datetime
