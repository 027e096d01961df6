import json
from uuid import uuid4

from django.test import TestCase, Client as HttpClient

from apps.core.testing import make_org, make_user, make_client, make_client_user, make_project
from apps.identity.models import UserRole
from apps.documents.models import Document, DocumentVisibility
from apps.projects.models import Project, Task, TaskChecklistItem, WorkStatus
from apps.projects import services


class ProgressTest(TestCase):
    def test_compute_progress(self):
        self.assertEqual(services.compute_progress(0, 0), 0)
        self.assertEqual(services.compute_progress(1, 3), 33)
        self.assertEqual(services.compute_progress(2, 3), 67)
        self.assertEqual(services.compute_progress(1, 8), 13)
        self.assertEqual(services.compute_progress(4, 4), 100)

    def test_progress_follows_task_status(self):
        org = make_org()
        project = make_project(org, make_client(org))
        first = services.create_task(project, {"title": "Maquette"})
        services.create_task(project, {"title": "Intégration"})
        self.assertEqual(project.progress, 0)

        services.update_task(first, {"status": WorkStatus.DONE})
        project.refresh_from_db()
        self.assertEqual(project.progress, 50)

        services.delete_task(Task.objects.get(title="Intégration"))
        project.refresh_from_db()
        self.assertEqual(project.progress, 100)


class ProjectServiceTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.acme_user = make_client_user(self.org, self.acme)

    def test_create_project_requires_client_of_org(self):
        foreign = make_client(make_org())
        with self.assertRaises(ValueError):
            services.create_project(self.org.id, {"client_id": foreign.id, "title": "Site"})

    def test_create_project_rejects_blank_title(self):
        with self.assertRaises(ValueError):
            services.create_project(self.org.id, {"client_id": self.acme.id, "title": " "})

    def test_client_user_only_reaches_own_projects(self):
        own = make_project(self.org, self.acme)
        other = make_project(self.org, self.globex)
        self.assertEqual(services.get_accessible_project(self.acme_user, own.id), own)
        self.assertIsNone(services.get_accessible_project(self.acme_user, other.id))
        self.assertEqual(services.list_projects(self.acme_user), [own])

    def test_board_has_every_column(self):
        project = make_project(self.org, self.acme)
        services.create_task(project, {"title": "A", "status": WorkStatus.DOING})
        board = services.get_tasks_by_status(project)
        self.assertEqual(set(board), {"todo", "doing", "done", "blocked"})
        self.assertEqual([t.title for t in board["doing"]], ["A"])
        self.assertEqual(board["todo"], [])

    def test_move_shifts_following_tasks(self):
        project = make_project(self.org, self.acme)
        a = services.create_task(project, {"title": "A"})
        b = services.create_task(project, {"title": "B"})
        c = services.create_task(project, {"title": "C", "status": WorkStatus.DOING})
        self.assertEqual((a.position, b.position), (0, 1))

        services.update_task_position(c, WorkStatus.TODO, 0)

        board = services.get_tasks_by_status(project)
        self.assertEqual([t.title for t in board["todo"]], ["C", "A", "B"])
        self.assertEqual(board["doing"], [])

    def test_milestone_from_other_project_rejected(self):
        project = make_project(self.org, self.acme)
        other = make_project(self.org, self.acme)
        milestone = services.create_milestone(other, {"title": "V1"})
        with self.assertRaises(ValueError):
            services.create_task(project, {"title": "A", "milestone_id": milestone.id})

    def test_assignee_must_belong_to_org(self):
        project = make_project(self.org, self.acme)
        outsider = make_user(make_org(), role=UserRole.STAFF)
        with self.assertRaises(ValueError):
            services.create_task(project, {"title": "A", "assigned_to_id": outsider.id})

    def test_reorder_checklist_rejects_foreign_items(self):
        project = make_project(self.org, self.acme)
        task = services.create_task(project, {"title": "A"})
        other_task = services.create_task(project, {"title": "B"})
        first = services.create_checklist_item(task, "Logo")
        second = services.create_checklist_item(task, "Couleurs")
        foreign = services.create_checklist_item(other_task, "Autre")

        items = services.reorder_checklist_items(task, {first.id: 1, second.id: 0})
        self.assertEqual([i.label for i in items], ["Couleurs", "Logo"])

        with self.assertRaises(ValueError):
            services.reorder_checklist_items(task, {foreign.id: 0})

    def test_stats(self):
        project = make_project(self.org, self.acme)
        services.create_task(project, {"title": "A", "status": WorkStatus.DONE})
        services.create_task(project, {"title": "B"})
        services.create_milestone(project, {"title": "V1", "status": WorkStatus.DONE})

        stats = services.get_project_stats(project, make_user(self.org, role=UserRole.ADMIN))
        self.assertEqual(stats.total_tasks, 2)
        self.assertEqual(stats.completed_tasks, 1)
        self.assertEqual(stats.progress_percentage, 50)
        self.assertEqual(stats.completed_milestones, 1)
        self.assertEqual(stats.total_documents, 0)


class CommentPermissionTest(TestCase):
    def setUp(self):
        self.org = make_org()
        client = make_client(self.org)
        self.task = services.create_task(make_project(self.org, client), {"title": "A"})
        self.author = make_client_user(self.org, client)
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.staff = make_user(self.org, role=UserRole.STAFF)

    def test_author_and_admin_can_edit(self):
        comment = services.create_comment(self.task, self.author, "Bonjour")
        services.update_comment(comment, self.author, "Bonjour !")
        services.update_comment(comment, self.admin, "Modéré")
        self.assertEqual(comment.body, "Modéré")

    def test_other_user_cannot_delete(self):
        comment = services.create_comment(self.task, self.author, "Bonjour")
        with self.assertRaises(PermissionError):
            services.delete_comment(comment, self.staff)

    def test_empty_comment_rejected(self):
        with self.assertRaises(ValueError):
            services.create_comment(self.task, self.author, "   ")


class ProjectAPITest(TestCase):
    def setUp(self):
        self.http = HttpClient()
        self.org = make_org()
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.acme_user = make_client_user(self.org, self.acme)

    def _post(self, url, payload):
        return self.http.post(url, data=json.dumps(payload), content_type="application/json")

    def test_admin_creates_project_and_tasks(self):
        self.http.force_login(self.admin)
        response = self._post("/api/projects/", {"client_id": str(self.acme.id), "title": "Site vitrine"})
        self.assertEqual(response.status_code, 200)
        project_id = response.json()["id"]
        self.assertEqual(response.json()["progress"], 0)

        response = self._post(f"/api/projects/{project_id}/tasks", {"title": "Maquette", "status": "done"})
        self.assertEqual(response.status_code, 200)

        board = self.http.get(f"/api/projects/{project_id}/board").json()
        self.assertEqual(len(board["done"]), 1)
        self.assertEqual(self.http.get(f"/api/projects/{project_id}").json()["progress"], 100)

    def test_client_cannot_create_project(self):
        self.http.force_login(self.acme_user)
        response = self._post("/api/projects/", {"client_id": str(self.acme.id), "title": "Site"})
        self.assertEqual(response.status_code, 403)

    def test_client_cannot_see_other_client_project(self):
        other = make_project(self.org, self.globex)
        self.http.force_login(self.acme_user)
        self.assertEqual(self.http.get(f"/api/projects/{other.id}").status_code, 404)

    def test_unknown_project_is_404(self):
        self.http.force_login(self.admin)
        self.assertEqual(self.http.get(f"/api/projects/{uuid4()}").status_code, 404)

    def test_client_comments_on_own_task(self):
        project = make_project(self.org, self.acme)
        task = services.create_task(project, {"title": "Maquette"})
        self.http.force_login(self.acme_user)

        response = self._post(f"/api/projects/tasks/{task.id}/comments", {"body": "Validé"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["author_name"], self.acme_user.display_name)

    def test_client_cannot_edit_someone_elses_comment(self):
        project = make_project(self.org, self.acme)
        task = services.create_task(project, {"title": "Maquette"})
        comment = services.create_comment(task, self.admin, "Note")
        self.http.force_login(self.acme_user)

        response = self.http.patch(
            f"/api/projects/comments/{comment.id}",
            data=json.dumps({"body": "Changé"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_move_and_checklist_toggle(self):
        project = make_project(self.org, self.acme)
        task = services.create_task(project, {"title": "Maquette"})
        item = services.create_checklist_item(task, "Logo")
        self.http.force_login(self.admin)

        response = self._post(f"/api/projects/tasks/{task.id}/move", {"status": "doing", "position": 0})
        self.assertEqual(response.json()["status"], "doing")

        response = self.http.post(f"/api/projects/checklist/{item.id}/toggle")
        self.assertTrue(response.json()["is_done"])
        self.assertTrue(TaskChecklistItem.objects.get(id=item.id).is_done)

    def test_delete_project(self):
        project = make_project(self.org, self.acme)
        services.create_task(project, {"title": "A"})
        self.http.force_login(self.admin)

        response = self.http.delete(f"/api/projects/{project.id}")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Project.objects.filter(id=project.id).exists())
        self.assertFalse(Task.objects.filter(project_id=project.id).exists())

    def test_client_stats_hide_private_documents(self):
        project = make_project(self.org, self.acme)
        for label, visibility in [("Internal margins", DocumentVisibility.PRIVATE), ("Cahier des charges", DocumentVisibility.PUBLIC)]:
            Document.objects.create(
                org_id=self.org.id, project_id=project.id, label=label,
                storage_path=f"project-{project.id}/{uuid4()}.pdf",
                mime_type="application/pdf", size_bytes=10, visibility=visibility,
            )

        self.http.force_login(self.acme_user)
        stats = self.http.get(f"/api/projects/{project.id}/stats").json()
        self.assertEqual(stats["total_documents"], 1)
        self.assertEqual([d["label"] for d in stats["recent_documents"]], ["Cahier des charges"])

        self.http.force_login(self.admin)
        self.assertEqual(self.http.get(f"/api/projects/{project.id}/stats").json()["total_documents"], 2)
