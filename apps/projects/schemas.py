"""
Django Ninja schemas for projects, milestones, tasks, comments and checklists.
"""
from datetime import date, datetime
from typing import Optional, List
from uuid import UUID
from ninja import Schema


class ProjectIn(Schema):
    client_id: UUID
    title: str
    description: str = ""
    status: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None


class ProjectUpdateIn(Schema):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None


class ProjectOut(Schema):
    id: UUID
    client_id: UUID
    title: str
    description: str
    status: str
    progress: int
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    created_at: datetime


class MilestoneIn(Schema):
    title: str
    description: str = ""
    status: Optional[str] = None
    due_date: Optional[date] = None
    position: Optional[int] = None


class MilestoneUpdateIn(Schema):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[date] = None
    position: Optional[int] = None


class MilestoneOut(Schema):
    id: UUID
    project_id: UUID
    title: str
    description: str
    status: str
    due_date: Optional[date] = None
    position: int


class TaskIn(Schema):
    title: str
    description: str = ""
    status: Optional[str] = None
    priority: Optional[str] = None
    position: Optional[int] = None
    milestone_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[date] = None


class TaskUpdateIn(Schema):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    position: Optional[int] = None
    milestone_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[date] = None


class TaskMoveIn(Schema):
    status: str
    position: int


class TaskOut(Schema):
    id: UUID
    project_id: UUID
    milestone_id: Optional[UUID] = None
    title: str
    description: str
    status: str
    priority: str
    position: int
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[date] = None
    created_at: datetime


class TaskBoardOut(Schema):
    todo: List[TaskOut]
    doing: List[TaskOut]
    done: List[TaskOut]
    blocked: List[TaskOut]


class CommentIn(Schema):
    body: str


class CommentOut(Schema):
    id: UUID
    task_id: UUID
    author_id: Optional[UUID] = None
    author_name: Optional[str] = None
    body: str
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def resolve_author_name(obj):
        return obj.author.display_name if obj.author else None


class ChecklistItemIn(Schema):
    label: str
    position: Optional[int] = None


class ChecklistItemUpdateIn(Schema):
    label: Optional[str] = None
    is_done: Optional[bool] = None
    position: Optional[int] = None


class ChecklistItemOut(Schema):
    id: UUID
    task_id: UUID
    label: str
    is_done: bool
    position: int


class ChecklistReorderEntry(Schema):
    id: UUID
    position: int


class ChecklistReorderIn(Schema):
    items: List[ChecklistReorderEntry]
