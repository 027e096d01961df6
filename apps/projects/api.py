from typing import List, Optional
from uuid import UUID

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.identity.decorators import require_permission, get_org_id
from apps.identity.permissions import Permissions
from apps.audit.audit_service import log_action, AuditAction
from .models import TaskComment, TaskChecklistItem
from .dtos import ProjectStatsDTO
from . import services
from .schemas import (
    ProjectIn, ProjectUpdateIn, ProjectOut,
    MilestoneIn, MilestoneUpdateIn, MilestoneOut,
    TaskIn, TaskUpdateIn, TaskMoveIn, TaskOut, TaskBoardOut,
    CommentIn, CommentOut,
    ChecklistItemIn, ChecklistItemUpdateIn, ChecklistItemOut, ChecklistReorderIn,
)

router = Router(tags=["Projects"])


def _project_or_404(request, project_id: UUID, permission: str = Permissions.PROJECT_VIEW):
    user = require_permission(request, permission)
    project = services.get_accessible_project(user, project_id)
    if not project:
        raise HttpError(404, "Project not found")
    return project


def _task_or_404(request, task_id: UUID, permission: str = Permissions.PROJECT_VIEW):
    user = require_permission(request, permission)
    task = services.get_task(user, task_id)
    if not task:
        raise HttpError(404, "Task not found")
    return task


# =============================================================================
# Projects
# =============================================================================

@router.get("/", response=List[ProjectOut], auth=None)
def list_projects(request: HttpRequest, status: Optional[str] = None, client_id: Optional[UUID] = None):
    user = require_permission(request, Permissions.PROJECT_VIEW)
    return services.list_projects(user, status=status, client_id=client_id)


@router.post("/", response=ProjectOut, auth=None)
def create_project(request: HttpRequest, payload: ProjectIn):
    user = require_permission(request, Permissions.PROJECT_MANAGE)
    org_id = get_org_id(request)
    try:
        project = services.create_project(org_id, payload.dict(), created_by=user)
    except ValueError as e:
        raise HttpError(400, str(e))

    log_action(
        org_id=org_id,
        action=AuditAction.CREATE_PROJECT,
        target_type="Project",
        target_id=project.id,
        target_label=project.title,
        performed_by=user,
    )
    return project


@router.get("/{project_id}", response=ProjectOut, auth=None)
def get_project(request: HttpRequest, project_id: UUID):
    return _project_or_404(request, project_id)


@router.patch("/{project_id}", response=ProjectOut, auth=None)
def update_project(request: HttpRequest, project_id: UUID, payload: ProjectUpdateIn):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    try:
        return services.update_project(project, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{project_id}", auth=None)
def delete_project(request: HttpRequest, project_id: UUID):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    services.delete_project(project)
    log_action(
        org_id=project.org_id,
        action=AuditAction.DELETE_PROJECT,
        target_type="Project",
        target_id=project_id,
        target_label=project.title,
        performed_by=request.user,
    )
    return {"success": True}


@router.get("/{project_id}/stats", response=ProjectStatsDTO, auth=None)
def project_stats(request: HttpRequest, project_id: UUID):
    """Task/milestone completion, document count and latest items."""
    return services.get_project_stats(_project_or_404(request, project_id), request.user)


# =============================================================================
# Milestones
# =============================================================================

@router.get("/{project_id}/milestones", response=List[MilestoneOut], auth=None)
def list_milestones(request: HttpRequest, project_id: UUID):
    return services.list_milestones(_project_or_404(request, project_id))


@router.post("/{project_id}/milestones", response=MilestoneOut, auth=None)
def create_milestone(request: HttpRequest, project_id: UUID, payload: MilestoneIn):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    try:
        return services.create_milestone(project, payload.dict())
    except ValueError as e:
        raise HttpError(400, str(e))


@router.patch("/{project_id}/milestones/{milestone_id}", response=MilestoneOut, auth=None)
def update_milestone(request: HttpRequest, project_id: UUID, milestone_id: UUID, payload: MilestoneUpdateIn):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    milestone = services.get_milestone(project, milestone_id)
    if not milestone:
        raise HttpError(404, "Milestone not found")
    try:
        return services.update_milestone(milestone, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/{project_id}/milestones/{milestone_id}", auth=None)
def delete_milestone(request: HttpRequest, project_id: UUID, milestone_id: UUID):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    milestone = services.get_milestone(project, milestone_id)
    if not milestone:
        raise HttpError(404, "Milestone not found")
    milestone.delete()
    return {"success": True}


# =============================================================================
# Tasks
# =============================================================================

@router.get("/{project_id}/tasks", response=List[TaskOut], auth=None)
def list_tasks(
    request: HttpRequest,
    project_id: UUID,
    status: Optional[str] = None,
    milestone_id: Optional[UUID] = None,
    assigned_to_id: Optional[UUID] = None,
):
    project = _project_or_404(request, project_id)
    return services.list_tasks(project, status=status, milestone_id=milestone_id, assigned_to_id=assigned_to_id)


@router.get("/{project_id}/board", response=TaskBoardOut, auth=None)
def task_board(request: HttpRequest, project_id: UUID):
    """Tasks grouped by status column."""
    return services.get_tasks_by_status(_project_or_404(request, project_id))


@router.post("/{project_id}/tasks", response=TaskOut, auth=None)
def create_task(request: HttpRequest, project_id: UUID, payload: TaskIn):
    project = _project_or_404(request, project_id, Permissions.PROJECT_MANAGE)
    try:
        return services.create_task(project, payload.dict(), created_by=request.user)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/tasks/{task_id}", response=TaskOut, auth=None)
def get_task(request: HttpRequest, task_id: UUID):
    return _task_or_404(request, task_id)


@router.patch("/tasks/{task_id}", response=TaskOut, auth=None)
def update_task(request: HttpRequest, task_id: UUID, payload: TaskUpdateIn):
    task = _task_or_404(request, task_id, Permissions.PROJECT_MANAGE)
    try:
        return services.update_task(task, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/tasks/{task_id}/move", response=TaskOut, auth=None)
def move_task(request: HttpRequest, task_id: UUID, payload: TaskMoveIn):
    """Drag & drop on the board: new status column and position."""
    task = _task_or_404(request, task_id, Permissions.PROJECT_MANAGE)
    try:
        return services.update_task_position(task, payload.status, payload.position)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/tasks/{task_id}", auth=None)
def delete_task(request: HttpRequest, task_id: UUID):
    services.delete_task(_task_or_404(request, task_id, Permissions.PROJECT_MANAGE))
    return {"success": True}


# =============================================================================
# Comments
# =============================================================================

@router.get("/tasks/{task_id}/comments", response=List[CommentOut], auth=None)
def list_comments(request: HttpRequest, task_id: UUID):
    return services.list_comments(_task_or_404(request, task_id))


@router.post("/tasks/{task_id}/comments", response=CommentOut, auth=None)
def create_comment(request: HttpRequest, task_id: UUID, payload: CommentIn):
    task = _task_or_404(request, task_id)
    try:
        return services.create_comment(task, request.user, payload.body)
    except ValueError as e:
        raise HttpError(400, str(e))


def _comment_or_404(request, comment_id: UUID) -> TaskComment:
    comment = TaskComment.objects.select_related('task', 'author').filter(id=comment_id).first()
    if not comment or not services.get_task(request.user, comment.task_id):
        raise HttpError(404, "Comment not found")
    return comment


@router.patch("/comments/{comment_id}", response=CommentOut, auth=None)
def update_comment(request: HttpRequest, comment_id: UUID, payload: CommentIn):
    require_permission(request, Permissions.PROJECT_VIEW)
    comment = _comment_or_404(request, comment_id)
    try:
        return services.update_comment(comment, request.user, payload.body)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))


@router.delete("/comments/{comment_id}", auth=None)
def delete_comment(request: HttpRequest, comment_id: UUID):
    require_permission(request, Permissions.PROJECT_VIEW)
    comment = _comment_or_404(request, comment_id)
    try:
        services.delete_comment(comment, request.user)
    except PermissionError as e:
        raise HttpError(403, str(e))
    return {"success": True}


# =============================================================================
# Checklist
# =============================================================================

@router.get("/tasks/{task_id}/checklist", response=List[ChecklistItemOut], auth=None)
def list_checklist(request: HttpRequest, task_id: UUID):
    return services.list_checklist_items(_task_or_404(request, task_id))


@router.post("/tasks/{task_id}/checklist", response=ChecklistItemOut, auth=None)
def create_checklist_item(request: HttpRequest, task_id: UUID, payload: ChecklistItemIn):
    task = _task_or_404(request, task_id, Permissions.PROJECT_MANAGE)
    try:
        return services.create_checklist_item(task, payload.label, payload.position)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.post("/tasks/{task_id}/checklist/reorder", response=List[ChecklistItemOut], auth=None)
def reorder_checklist(request: HttpRequest, task_id: UUID, payload: ChecklistReorderIn):
    task = _task_or_404(request, task_id, Permissions.PROJECT_MANAGE)
    try:
        return services.reorder_checklist_items(task, {e.id: e.position for e in payload.items})
    except ValueError as e:
        raise HttpError(400, str(e))


def _checklist_item_or_404(request, item_id: UUID) -> TaskChecklistItem:
    require_permission(request, Permissions.PROJECT_MANAGE)
    item = TaskChecklistItem.objects.filter(id=item_id).first()
    if not item or not services.get_task(request.user, item.task_id):
        raise HttpError(404, "Checklist item not found")
    return item


@router.patch("/checklist/{item_id}", response=ChecklistItemOut, auth=None)
def update_checklist_item(request: HttpRequest, item_id: UUID, payload: ChecklistItemUpdateIn):
    item = _checklist_item_or_404(request, item_id)
    return services.update_checklist_item(item, payload.dict(exclude_unset=True))


@router.post("/checklist/{item_id}/toggle", response=ChecklistItemOut, auth=None)
def toggle_checklist_item(request: HttpRequest, item_id: UUID):
    return services.toggle_checklist_item(_checklist_item_or_404(request, item_id))


@router.delete("/checklist/{item_id}", auth=None)
def delete_checklist_item(request: HttpRequest, item_id: UUID):
    _checklist_item_or_404(request, item_id).delete()
    return {"success": True}
