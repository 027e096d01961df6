import json
from uuid import uuid4

from django.test import TestCase, Client
from apps.organizations.models import Organization
from apps.organizations.services import get_admin_overview, update_organization_settings
from apps.identity.models import User, UserRole
from apps.clients.models import Client as CustomerAccount
from apps.projects.models import Project, Task
from apps.audit.models import AuditLog


class OnboardingTests(TestCase):
    def setUp(self):
        self.client = Client()

    def test_onboard_organization_flow(self):
        """Onboarding creates the tenant and forces the ADMIN role on its first user."""
        payload = {
            "organization": {
                "name": "Studio Lagune",
                "email": "hello@lagune.test",
                "default_currency": "XOF",
            },
            "admin_user": {
                "username": "lagune_admin",
                "email": "admin@lagune.test",
                "password": "StrongPassword123!",
                "full_name": "Aya Koffi",
                "role": "CLIENT",
            }
        }

        response = self.client.post(
            "/api/organizations/onboard",
            data=json.dumps(payload),
            content_type="application/json"
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        org_id = data["organization"]["id"]
        user = User.objects.get(id=data["admin_user"]["id"])

        self.assertTrue(Organization.objects.filter(id=org_id).exists())
        self.assertEqual(user.role, UserRole.ADMIN)
        self.assertEqual(str(user.org_id), org_id)
        self.assertTrue(user.check_password("StrongPassword123!"))


class MultiTenancyTest(TestCase):
    def setUp(self):
        self.org_a = Organization.objects.create(name="Agency A")
        self.admin_a = User.objects.create_user(username="admin_a", role=UserRole.ADMIN, org_id=self.org_a.id)
        self.staff_a = User.objects.create_user(username="staff_a", role=UserRole.STAFF, org_id=self.org_a.id)

        self.org_b = Organization.objects.create(name="Agency B")

    def test_admin_cannot_read_other_org(self):
        self.client.force_login(self.admin_a)
        response = self.client.get(f"/api/organizations/{self.org_b.id}")
        self.assertEqual(response.status_code, 403)

    def test_admin_reads_own_org(self):
        self.client.force_login(self.admin_a)
        response = self.client.get(f"/api/organizations/{self.org_a.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Agency A")

    def test_staff_cannot_manage_settings(self):
        self.client.force_login(self.staff_a)
        response = self.client.get("/api/organizations/current/settings")
        self.assertEqual(response.status_code, 403)

    def test_list_only_returns_own_org(self):
        self.client.force_login(self.admin_a)
        response = self.client.get("/api/organizations/")
        self.assertEqual([o["name"] for o in response.json()], ["Agency A"])


class OrganizationSettingsTest(TestCase):
    def setUp(self):
        self.org = Organization.objects.create(name="Atelier Nord")
        self.admin = User.objects.create_user(username="nord_admin", role=UserRole.ADMIN, org_id=self.org.id)

    def test_update_settings_via_api_is_audited(self):
        self.client.force_login(self.admin)
        response = self.client.patch(
            "/api/organizations/current/settings",
            data=json.dumps({"address": "Rue 12, Cocody", "legal_notice": "RCCM CI-ABJ-2024-B-1234"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.org.refresh_from_db()
        self.assertEqual(self.org.address, "Rue 12, Cocody")
        self.assertEqual(self.org.name, "Atelier Nord")
        self.assertTrue(AuditLog.objects.filter(org_id=self.org.id, target_type="Organization").exists())

    def test_empty_name_rejected(self):
        with self.assertRaises(ValueError):
            update_organization_settings(self.org.id, {"name": "  "})

    def test_unknown_org_returns_none(self):
        self.assertIsNone(update_organization_settings(uuid4(), {"name": "X"}))


class AdminOverviewTest(TestCase):
    def setUp(self):
        self.org = Organization.objects.create(name="Overview Org")
        self.customer = CustomerAccount.objects.create(org_id=self.org.id, name="Acme", contact_email="ops@acme.test")
        for i in range(7):
            project = Project.objects.create(org_id=self.org.id, client_id=self.customer.id, title=f"Project {i}")
            Task.objects.create(org_id=self.org.id, project_id=project.id, title=f"Task {i}")
        # Another tenant's data never leaks into the counters
        Project.objects.create(org_id=uuid4(), client_id=uuid4(), title="Foreign")

    def test_counts_and_recent_lists(self):
        overview = get_admin_overview(self.org.id)
        self.assertEqual(overview.projects_count, 7)
        self.assertEqual(overview.tasks_count, 7)
        self.assertEqual(overview.clients_count, 1)
        self.assertEqual(overview.documents_count, 0)
        self.assertEqual(len(overview.recent_projects), 5)
        self.assertEqual(overview.recent_clients[0].label, "Acme")
