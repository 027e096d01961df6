"""DTOs for the projects app."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID


@dataclass(frozen=True)
class TaskSummaryDTO:
    id: UUID
    title: str
    status: str
    priority: str
    assigned_to_id: Optional[UUID]


@dataclass(frozen=True)
class MilestoneSummaryDTO:
    id: UUID
    title: str
    status: str
    due_date: Optional[date]


@dataclass(frozen=True)
class DocumentSummaryDTO:
    id: UUID
    label: str
    mime_type: str
    size_bytes: int
    created_at: datetime


@dataclass(frozen=True)
class ProjectStatsDTO:
    total_tasks: int
    completed_tasks: int
    progress_percentage: int
    total_milestones: int
    completed_milestones: int
    total_documents: int
    recent_tasks: List[TaskSummaryDTO] = field(default_factory=list)
    recent_milestones: List[MilestoneSummaryDTO] = field(default_factory=list)
    recent_documents: List[DocumentSummaryDTO] = field(default_factory=list)
