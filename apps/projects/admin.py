from django.contrib import admin
from .models import Project, Milestone, Task, TaskComment, TaskChecklistItem


class MilestoneInline(admin.TabularInline):
    model = Milestone
    extra = 0
    fields = ['title', 'status', 'due_date', 'position']


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['title', 'client_id', 'status', 'progress', 'due_date', 'created_at']
    list_filter = ['status']
    search_fields = ['title']
    inlines = [MilestoneInline]


class ChecklistInline(admin.TabularInline):
    model = TaskChecklistItem
    extra = 0


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'project', 'status', 'priority', 'position', 'due_date']
    list_filter = ['status', 'priority']
    search_fields = ['title']
    inlines = [ChecklistInline]


@admin.register(TaskComment)
class TaskCommentAdmin(admin.ModelAdmin):
    list_display = ['task', 'author', 'created_at']
    readonly_fields = ['created_at', 'updated_at']
