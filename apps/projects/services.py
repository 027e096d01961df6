"""
Project management services: projects, milestones, kanban tasks,
comments and checklists.

Every read goes through get_accessible_project() so CLIENT users only
reach projects of their own client accounts.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import F, Max

from apps.clients.services import get_accessible_client_ids, get_client
from apps.identity.models import User, UserRole
from .models import (
    Project, ProjectStatus, Milestone, Task, TaskComment, TaskChecklistItem,
    WorkStatus, TaskPriority,
)
from .dtos import ProjectStatsDTO, TaskSummaryDTO, MilestoneSummaryDTO, DocumentSummaryDTO

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5
PROJECT_FIELDS = ('title', 'description', 'status', 'start_date', 'due_date')
MILESTONE_FIELDS = ('title', 'description', 'status', 'due_date', 'position')
TASK_FIELDS = ('title', 'description', 'status', 'priority', 'position', 'due_date')


def _check_choice(value, choices, label):
    if value is not None and value not in choices.values:
        raise ValueError(f"Invalid {label}: {value}")


def compute_progress(done: int, total: int) -> int:
    """Percentage of done items, rounded half up. 0 when there is nothing to do."""
    if total <= 0:
        return 0
    pct = (Decimal(done) * 100 / Decimal(total)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return int(pct)


# =============================================================================
# Projects
# =============================================================================

def get_accessible_project(user: User, project_id) -> Optional[Project]:
    return Project.objects.filter(
        id=project_id,
        org_id=user.org_id,
        client_id__in=get_accessible_client_ids(user),
    ).first()


def list_projects(user: User, status: Optional[str] = None, client_id=None) -> List[Project]:
    qs = Project.objects.filter(org_id=user.org_id, client_id__in=get_accessible_client_ids(user))
    if status:
        qs = qs.filter(status=status)
    if client_id:
        qs = qs.filter(client_id=client_id)
    return list(qs)


def create_project(org_id, data: dict, created_by: Optional[User] = None) -> Project:
    if not (data.get('title') or '').strip():
        raise ValueError("Project title is required")
    if not get_client(org_id, data.get('client_id')):
        raise ValueError("Client not found")
    _check_choice(data.get('status'), ProjectStatus, 'project status')

    project = Project.objects.create(
        org_id=org_id,
        client_id=data['client_id'],
        created_by_id=created_by.id if created_by else None,
        **{k: data[k] for k in PROJECT_FIELDS if data.get(k) is not None},
    )
    logger.info(f"Created project {project.id} for client {project.client_id}")
    return project


def update_project(project: Project, data: dict) -> Project:
    _check_choice(data.get('status'), ProjectStatus, 'project status')
    for key in PROJECT_FIELDS:
        if data.get(key) is not None:
            setattr(project, key, data[key])
    if not project.title.strip():
        raise ValueError("Project title is required")
    project.save()
    return project


def delete_project(project: Project) -> None:
    """Deletes the project, its milestones and tasks, and its stored documents."""
    from apps.documents.services import delete_project_documents

    with transaction.atomic():
        delete_project_documents(project.id)
        project.delete()
    logger.info(f"Deleted project {project.id}")


def recompute_project_progress(project: Project) -> int:
    tasks = Task.objects.filter(project=project)
    progress = compute_progress(tasks.filter(status=WorkStatus.DONE).count(), tasks.count())
    if progress != project.progress:
        Project.objects.filter(id=project.id).update(progress=progress)
        project.progress = progress
    return progress


def get_project_stats(project: Project, user: User) -> ProjectStatsDTO:
    from apps.documents.services import visible_documents

    tasks = Task.objects.filter(project=project).order_by('-created_at')
    milestones = Milestone.objects.filter(project=project).order_by('-created_at')
    documents = visible_documents(user).filter(project_id=project.id).order_by('-created_at')

    total_tasks = tasks.count()
    completed_tasks = tasks.filter(status=WorkStatus.DONE).count()

    return ProjectStatsDTO(
        total_tasks=total_tasks,
        completed_tasks=completed_tasks,
        progress_percentage=compute_progress(completed_tasks, total_tasks),
        total_milestones=milestones.count(),
        completed_milestones=milestones.filter(status=WorkStatus.DONE).count(),
        total_documents=documents.count(),
        recent_tasks=[
            TaskSummaryDTO(id=t.id, title=t.title, status=t.status, priority=t.priority,
                           assigned_to_id=t.assigned_to_id)
            for t in tasks[:RECENT_LIMIT]
        ],
        recent_milestones=[
            MilestoneSummaryDTO(id=m.id, title=m.title, status=m.status, due_date=m.due_date)
            for m in milestones[:RECENT_LIMIT]
        ],
        recent_documents=[
            DocumentSummaryDTO(id=d.id, label=d.label, mime_type=d.mime_type,
                               size_bytes=d.size_bytes, created_at=d.created_at)
            for d in documents[:RECENT_LIMIT]
        ],
    )


# =============================================================================
# Milestones
# =============================================================================

def _next_position(qs) -> int:
    current = qs.aggregate(m=Max('position'))['m']
    return 0 if current is None else current + 1


def list_milestones(project: Project) -> List[Milestone]:
    return list(Milestone.objects.filter(project=project))


def create_milestone(project: Project, data: dict) -> Milestone:
    if not (data.get('title') or '').strip():
        raise ValueError("Milestone title is required")
    _check_choice(data.get('status'), WorkStatus, 'milestone status')

    fields = {k: data[k] for k in MILESTONE_FIELDS if data.get(k) is not None}
    fields.setdefault('position', _next_position(Milestone.objects.filter(project=project)))
    return Milestone.objects.create(org_id=project.org_id, project=project, **fields)


def update_milestone(milestone: Milestone, data: dict) -> Milestone:
    _check_choice(data.get('status'), WorkStatus, 'milestone status')
    for key in MILESTONE_FIELDS:
        if data.get(key) is not None:
            setattr(milestone, key, data[key])
    milestone.save()
    return milestone


def get_milestone(project: Project, milestone_id) -> Optional[Milestone]:
    return Milestone.objects.filter(project=project, id=milestone_id).first()


# =============================================================================
# Tasks
# =============================================================================

def get_task(user: User, task_id) -> Optional[Task]:
    """A task the user can reach through its project."""
    task = Task.objects.select_related('project').filter(id=task_id, org_id=user.org_id).first()
    if task and task.project.client_id in get_accessible_client_ids(user):
        return task
    return None


def list_tasks(project: Project, status: Optional[str] = None, milestone_id=None,
               assigned_to_id=None) -> List[Task]:
    qs = Task.objects.filter(project=project)
    if status:
        qs = qs.filter(status=status)
    if milestone_id:
        qs = qs.filter(milestone_id=milestone_id)
    if assigned_to_id:
        qs = qs.filter(assigned_to_id=assigned_to_id)
    return list(qs)


def get_tasks_by_status(project: Project) -> Dict[str, List[Task]]:
    """Kanban board: every status column is present, each ordered by position."""
    board = {status: [] for status in WorkStatus.values}
    for task in Task.objects.filter(project=project).order_by('position', 'created_at'):
        board[task.status].append(task)
    return board


def _resolve_assignee(org_id, assigned_to_id):
    if assigned_to_id is None:
        return None
    if not User.objects.filter(id=assigned_to_id, org_id=org_id, is_active=True).exists():
        raise ValueError("Assignee must be an active user of the organization")
    return assigned_to_id


def _resolve_milestone(project: Project, milestone_id):
    if milestone_id is None:
        return None
    milestone = get_milestone(project, milestone_id)
    if not milestone:
        raise ValueError("Milestone does not belong to this project")
    return milestone


def create_task(project: Project, data: dict, created_by: Optional[User] = None) -> Task:
    if not (data.get('title') or '').strip():
        raise ValueError("Task title is required")
    _check_choice(data.get('status'), WorkStatus, 'task status')
    _check_choice(data.get('priority'), TaskPriority, 'task priority')

    fields = {k: data[k] for k in TASK_FIELDS if data.get(k) is not None}
    status = fields.get('status', WorkStatus.TODO)
    fields.setdefault('position', _next_position(Task.objects.filter(project=project, status=status)))

    with transaction.atomic():
        task = Task.objects.create(
            org_id=project.org_id,
            project=project,
            milestone=_resolve_milestone(project, data.get('milestone_id')),
            assigned_to_id=_resolve_assignee(project.org_id, data.get('assigned_to_id')),
            created_by_id=created_by.id if created_by else None,
            **fields,
        )
        recompute_project_progress(project)
    return task


def update_task(task: Task, data: dict) -> Task:
    _check_choice(data.get('status'), WorkStatus, 'task status')
    _check_choice(data.get('priority'), TaskPriority, 'task priority')

    status_before = task.status
    for key in TASK_FIELDS:
        if data.get(key) is not None:
            setattr(task, key, data[key])
    if 'milestone_id' in data:
        task.milestone = _resolve_milestone(task.project, data['milestone_id'])
    if 'assigned_to_id' in data:
        task.assigned_to_id = _resolve_assignee(task.org_id, data['assigned_to_id'])

    with transaction.atomic():
        task.save()
        if task.status != status_before:
            recompute_project_progress(task.project)
    return task


def update_task_position(task: Task, status: str, position: int) -> Task:
    """
    Kanban move: put the task at `position` in the `status` column and
    shift the tasks below it down by one.
    """
    _check_choice(status, WorkStatus, 'task status')
    if position < 0:
        raise ValueError("Position must be >= 0")

    status_before = task.status
    with transaction.atomic():
        Task.objects.filter(
            project_id=task.project_id, status=status, position__gte=position
        ).exclude(id=task.id).update(position=F('position') + 1)
        task.status = status
        task.position = position
        task.save(update_fields=['status', 'position', 'updated_at'])
        if status != status_before:
            recompute_project_progress(task.project)
    return task


def delete_task(task: Task) -> None:
    project = task.project
    with transaction.atomic():
        task.delete()
        recompute_project_progress(project)


# =============================================================================
# Comments
# =============================================================================

def list_comments(task: Task) -> List[TaskComment]:
    return list(TaskComment.objects.filter(task=task).select_related('author'))


def create_comment(task: Task, author: User, body: str) -> TaskComment:
    if not (body or '').strip():
        raise ValueError("Comment cannot be empty")
    return TaskComment.objects.create(task=task, author=author, body=body.strip())


def _can_edit_comment(comment: TaskComment, user: User) -> bool:
    return comment.author_id == user.id or user.role == UserRole.ADMIN


def update_comment(comment: TaskComment, user: User, body: str) -> TaskComment:
    if not _can_edit_comment(comment, user):
        raise PermissionError("Only the author or an administrator can edit this comment")
    if not (body or '').strip():
        raise ValueError("Comment cannot be empty")
    comment.body = body.strip()
    comment.save(update_fields=['body', 'updated_at'])
    return comment


def delete_comment(comment: TaskComment, user: User) -> None:
    if not _can_edit_comment(comment, user):
        raise PermissionError("Only the author or an administrator can delete this comment")
    comment.delete()


# =============================================================================
# Checklist
# =============================================================================

def list_checklist_items(task: Task) -> List[TaskChecklistItem]:
    return list(TaskChecklistItem.objects.filter(task=task))


def create_checklist_item(task: Task, label: str, position: Optional[int] = None) -> TaskChecklistItem:
    if not (label or '').strip():
        raise ValueError("Checklist label is required")
    if position is None:
        position = _next_position(TaskChecklistItem.objects.filter(task=task))
    return TaskChecklistItem.objects.create(task=task, label=label.strip(), position=position)


def update_checklist_item(item: TaskChecklistItem, data: dict) -> TaskChecklistItem:
    for key in ('label', 'is_done', 'position'):
        if data.get(key) is not None:
            setattr(item, key, data[key])
    item.save()
    return item


def toggle_checklist_item(item: TaskChecklistItem) -> TaskChecklistItem:
    item.is_done = not item.is_done
    item.save(update_fields=['is_done', 'updated_at'])
    return item


def reorder_checklist_items(task: Task, positions: Dict) -> List[TaskChecklistItem]:
    """
    Apply {item_id: position}. Every id must belong to the task.
    """
    items = {item.id: item for item in TaskChecklistItem.objects.filter(task=task)}
    unknown = [item_id for item_id in positions if item_id not in items]
    if unknown:
        raise ValueError("Checklist items do not belong to this task")

    with transaction.atomic():
        for item_id, position in positions.items():
            item = items[item_id]
            item.position = position
            item.save(update_fields=['position', 'updated_at'])
    return list_checklist_items(task)
