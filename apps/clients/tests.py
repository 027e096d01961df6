import json
from uuid import uuid4

from django.test import TestCase, Client as HttpClient

from apps.core.testing import make_org, make_user, make_client, make_client_user
from apps.identity.models import UserRole
from apps.clients.models import Client, ClientMember, Prospect, ProspectStatus
from apps.clients import services


class AccessScopingTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.acme_user = make_client_user(self.org, self.acme)

    def test_agency_members_see_all_org_clients(self):
        make_client(make_org(), name="Foreign")
        ids = set(services.get_accessible_client_ids(self.admin))
        self.assertEqual(ids, {self.acme.id, self.globex.id})

    def test_client_user_sees_only_memberships(self):
        self.assertEqual(services.get_accessible_client_ids(self.acme_user), [self.acme.id])
        self.assertFalse(services.can_access_client(self.acme_user, self.globex.id))

    def test_recipients_include_contact_and_members(self):
        recipients = services.get_client_recipients(self.acme.id)
        self.assertEqual(recipients[0], "contact@client.test")
        self.assertIn(self.acme_user.email, recipients)


class MembershipTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.client_account = make_client(self.org)
        self.client_user = make_user(self.org, role=UserRole.CLIENT)
        self.staff = make_user(self.org, role=UserRole.STAFF)

    def test_add_member_and_single_primary(self):
        other = make_user(self.org, role=UserRole.CLIENT)
        services.add_member(self.org.id, self.client_account.id, self.client_user.id, is_primary=True)
        services.add_member(self.org.id, self.client_account.id, other.id, is_primary=True)

        primaries = ClientMember.objects.filter(client=self.client_account, is_primary=True)
        self.assertEqual([m.user_id for m in primaries], [other.id])

    def test_only_client_role_can_be_member(self):
        with self.assertRaises(ValueError):
            services.add_member(self.org.id, self.client_account.id, self.staff.id)

    def test_user_from_other_org_rejected(self):
        outsider = make_user(make_org(), role=UserRole.CLIENT)
        with self.assertRaises(ValueError):
            services.add_member(self.org.id, self.client_account.id, outsider.id)


class ProspectConversionTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.prospect = Prospect.objects.create(
            org_id=self.org.id, name="Boutique Kente", email="hello@kente.test",
            phone="+225 01 02 03 04", status=ProspectStatus.QUALIFIED,
        )

    def test_convert_creates_client_and_deletes_prospect(self):
        client = services.convert_prospect_to_client(self.org.id, self.prospect.id)
        self.assertEqual(client.name, "Boutique Kente")
        self.assertEqual(client.contact_email, "hello@kente.test")
        self.assertEqual(client.org_id, self.org.id)
        self.assertFalse(Prospect.objects.filter(id=self.prospect.id).exists())

    def test_convert_unknown_prospect(self):
        with self.assertRaises(ValueError):
            services.convert_prospect_to_client(self.org.id, uuid4())

    def test_convert_prospect_of_other_org(self):
        with self.assertRaises(ValueError):
            services.convert_prospect_to_client(make_org().id, self.prospect.id)
        self.assertTrue(Prospect.objects.filter(id=self.prospect.id).exists())

    def test_invalid_status_rejected(self):
        with self.assertRaises(ValueError):
            services.update_prospect(self.org.id, self.prospect.id, {"status": "won"})


class ClientAPITest(TestCase):
    def setUp(self):
        self.http = HttpClient()
        self.org = make_org()
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.staff = make_user(self.org, role=UserRole.STAFF)
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.acme_user = make_client_user(self.org, self.acme)

    def test_create_client_requires_manage_permission(self):
        self.http.force_login(self.staff)
        response = self.http.post(
            "/api/clients/", data=json.dumps({"name": "Initech"}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 403)

    def test_admin_creates_client(self):
        self.http.force_login(self.admin)
        response = self.http.post(
            "/api/clients/",
            data=json.dumps({"name": "Initech", "contact_email": "it@initech.test"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(Client.objects.filter(org_id=self.org.id, name="Initech").exists())

    def test_blank_name_rejected(self):
        self.http.force_login(self.admin)
        response = self.http.post(
            "/api/clients/", data=json.dumps({"name": "  "}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)

    def test_client_user_lists_only_own_account(self):
        self.http.force_login(self.acme_user)
        response = self.http.get("/api/clients/")
        self.assertEqual([c["name"] for c in response.json()], ["Acme"])

    def test_prospect_crud_and_convert(self):
        self.http.force_login(self.admin)
        response = self.http.post(
            "/api/clients/prospects/",
            data=json.dumps({"name": "Maquis 225", "email": "chef@maquis.test", "source": "referral"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        prospect_id = response.json()["id"]
        self.assertEqual(response.json()["status"], "new")

        response = self.http.patch(
            f"/api/clients/prospects/{prospect_id}",
            data=json.dumps({"status": "contacted"}),
            content_type="application/json",
        )
        self.assertEqual(response.json()["status"], "contacted")

        response = self.http.post(f"/api/clients/prospects/{prospect_id}/convert")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Maquis 225")
        self.assertEqual(self.http.get("/api/clients/prospects/").json(), [])
