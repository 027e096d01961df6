import os
import shutil
import tempfile
from unittest import mock
from uuid import uuid4

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, Client as HttpClient, override_settings

from apps.core.testing import make_org, make_user, make_client, make_client_user, make_project
from apps.identity.models import UserRole
from apps.documents.models import Document, DocumentVisibility
from apps.documents import services, storage_service
from apps.projects import services as project_services


def pdf_file(name="brief.pdf", content=b"%PDF-1.4 brief"):
    return SimpleUploadedFile(name, content, content_type="application/pdf")


class StorageTestCase(TestCase):
    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.override = override_settings(MEDIA_ROOT=self.media_root)
        self.override.enable()

    def tearDown(self):
        self.override.disable()
        shutil.rmtree(self.media_root, ignore_errors=True)

    def stored(self, path):
        return os.path.exists(os.path.join(self.media_root, path))


class ValidationTest(TestCase):
    def test_accepts_allowed_types(self):
        for mime in ("application/pdf", "image/jpeg", "image/png", "image/webp", "text/plain"):
            ok, error = storage_service.validate_upload_file(SimpleUploadedFile("f", b"x", content_type=mime))
            self.assertTrue(ok, mime)
            self.assertIsNone(error)

    def test_rejects_other_types(self):
        ok, error = storage_service.validate_upload_file(
            SimpleUploadedFile("run.exe", b"MZ", content_type="application/x-msdownload")
        )
        self.assertFalse(ok)
        self.assertIn("Invalid file type", error)

    def test_rejects_large_files(self):
        big = SimpleUploadedFile("big.pdf", b"0" * (storage_service.MAX_FILE_SIZE + 1),
                                 content_type="application/pdf")
        ok, error = storage_service.validate_upload_file(big)
        self.assertFalse(ok)
        self.assertIn("10 MB", error)

    def test_storage_path_layout(self):
        path = storage_service.build_storage_path("project-abc", pdf_file())
        self.assertTrue(path.startswith("project-abc/"))
        self.assertTrue(path.endswith(".pdf"))


class DocumentServiceTest(StorageTestCase):
    def setUp(self):
        super().setUp()
        self.org = make_org()
        self.acme = make_client(self.org)
        self.globex = make_client(self.org)
        self.project = make_project(self.org, self.acme)
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.acme_user = make_client_user(self.org, self.acme)
        self.globex_user = make_client_user(self.org, self.globex)

    def test_upload_defaults_to_private(self):
        document = services.upload_document(self.admin, self.project.id, pdf_file(), "Brief")
        self.assertEqual(document.visibility, DocumentVisibility.PRIVATE)
        self.assertTrue(document.storage_path.startswith(f"project-{self.project.id}/"))
        self.assertEqual(document.size_bytes, len(b"%PDF-1.4 brief"))
        self.assertTrue(self.stored(document.storage_path))

    def test_client_of_other_account_cannot_upload(self):
        with self.assertRaises(LookupError):
            services.upload_document(self.globex_user, self.project.id, pdf_file(), "Brief")

    def test_stored_file_removed_when_row_fails(self):
        with mock.patch.object(Document.objects, "create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                services.upload_document(self.admin, self.project.id, pdf_file(), "Brief")
        folder = os.path.join(self.media_root, f"project-{self.project.id}")
        self.assertEqual(os.listdir(folder) if os.path.isdir(folder) else [], [])

    def test_clients_only_see_public_documents(self):
        services.upload_document(self.admin, self.project.id, pdf_file(), "Interne")
        services.upload_document(self.admin, self.project.id, pdf_file(), "Livrable", "public")

        self.assertEqual(len(services.list_documents(self.admin, self.project.id)), 2)
        labels = [d.label for d in services.list_documents(self.acme_user, self.project.id)]
        self.assertEqual(labels, ["Livrable"])
        self.assertEqual(services.list_documents(self.globex_user, self.project.id), [])

    def test_delete_project_removes_documents(self):
        document = services.upload_document(self.admin, self.project.id, pdf_file(), "Brief")
        project_services.delete_project(self.project)
        self.assertFalse(Document.objects.filter(id=document.id).exists())
        self.assertFalse(self.stored(document.storage_path))


class DocumentAPITest(StorageTestCase):
    def setUp(self):
        super().setUp()
        self.http = HttpClient()
        self.org = make_org()
        self.acme = make_client(self.org)
        self.project = make_project(self.org, self.acme)
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.acme_user = make_client_user(self.org, self.acme)

    def test_client_uploads_to_own_project(self):
        self.http.force_login(self.acme_user)
        response = self.http.post("/api/documents/upload", {
            "project_id": str(self.project.id),
            "label": "Logo",
            "file": SimpleUploadedFile("logo.png", b"\x89PNG", content_type="image/png"),
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["mime_type"], "image/png")
        self.assertEqual(response.json()["visibility"], "private")

    def test_invalid_type_is_400(self):
        self.http.force_login(self.admin)
        response = self.http.post("/api/documents/upload", {
            "project_id": str(self.project.id),
            "label": "Script",
            "file": SimpleUploadedFile("x.sh", b"echo", content_type="application/x-sh"),
        })
        self.assertEqual(response.status_code, 400)

    def test_unknown_project_is_404(self):
        self.http.force_login(self.admin)
        response = self.http.post("/api/documents/upload", {
            "project_id": str(uuid4()),
            "label": "Brief",
            "file": pdf_file(),
        })
        self.assertEqual(response.status_code, 404)

    def test_only_admin_updates_and_deletes(self):
        document = services.upload_document(self.admin, self.project.id, pdf_file(), "Brief", "public")

        self.http.force_login(self.acme_user)
        self.assertEqual(self.http.delete(f"/api/documents/{document.id}").status_code, 403)

        self.http.force_login(self.admin)
        response = self.http.patch(
            f"/api/documents/{document.id}",
            data='{"visibility": "private", "label": "Brief v2"}',
            content_type="application/json",
        )
        self.assertEqual(response.json()["label"], "Brief v2")
        self.assertEqual(self.http.delete(f"/api/documents/{document.id}").status_code, 200)
        self.assertFalse(self.stored(document.storage_path))

    def test_download_url(self):
        document = services.upload_document(self.admin, self.project.id, pdf_file(), "Brief", "public")
        self.http.force_login(self.acme_user)
        response = self.http.get(f"/api/documents/{document.id}/download")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["download_url"].startswith("/media/project-"))
