from dataclasses import dataclass, field
from datetime import datetime
from ninja import Schema
from ninja.orm import create_schema
from uuid import UUID
from typing import Optional, Dict, Any, List
from .models import Organization

OrganizationOut = create_schema(Organization, exclude=['created_at', 'updated_at'])


class OrganizationIn(Schema):
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    legal_notice: str = ""
    logo: Optional[str] = None
    default_currency: str = "XOF"
    settings: Dict[str, Any] = {}
    is_active: bool = True


class OrganizationSettingsIn(Schema):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    legal_notice: Optional[str] = None
    logo: Optional[str] = None


from apps.identity.dtos import UserCreate, UserDTO


class OnboardingRequest(Schema):
    organization: OrganizationIn
    admin_user: UserCreate


class OnboardingResponse(Schema):
    organization: OrganizationOut
    admin_user: UserDTO


@dataclass(frozen=True)
class RecentItemDTO:
    id: UUID
    label: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class AdminOverviewDTO:
    """Counters and latest activity shown on the agency dashboard."""
    projects_count: int
    tasks_count: int
    clients_count: int
    documents_count: int
    open_tickets_count: int
    unpaid_invoices_count: int
    recent_projects: List[RecentItemDTO] = field(default_factory=list)
    recent_tasks: List[RecentItemDTO] = field(default_factory=list)
    recent_clients: List[RecentItemDTO] = field(default_factory=list)
    recent_documents: List[RecentItemDTO] = field(default_factory=list)
