import json
from uuid import uuid4

from django.test import TestCase, Client
from .models import User, UserRole
from .permissions import get_user_permissions, Permissions
from .jwt_auth import create_access_token, create_refresh_token, decode_token


class RBACTest(TestCase):
    def test_client_permissions(self):
        user = User.objects.create_user(username="client", password="pw", role=UserRole.CLIENT)
        perms = get_user_permissions(user)
        self.assertIn(Permissions.PAYMENT_INITIATE, perms)
        self.assertIn(Permissions.SUPPORT_CREATE, perms)
        self.assertNotIn(Permissions.BILLING_MANAGE, perms)
        self.assertNotIn(Permissions.SUPPORT_MANAGE, perms)

    def test_admin_permissions(self):
        user = User.objects.create_user(username="admin", password="pw", role=UserRole.ADMIN)
        perms = get_user_permissions(user)
        self.assertIn(Permissions.BILLING_MANAGE, perms)
        self.assertIn(Permissions.AUDIT_VIEW, perms)

    def test_staff_permissions(self):
        user = User.objects.create_user(username="staff", password="pw", role=UserRole.STAFF)
        perms = get_user_permissions(user)
        self.assertIn(Permissions.PROJECT_MANAGE, perms)
        self.assertNotIn(Permissions.BILLING_MANAGE, perms)
        self.assertNotIn(Permissions.IDENTITY_MANAGE_USER, perms)

    def test_inactive_user_has_no_permissions(self):
        user = User.objects.create_user(username="gone", password="pw", role=UserRole.ADMIN, is_active=False)
        self.assertEqual(get_user_permissions(user), [])


class JWTTest(TestCase):
    def test_access_token_round_trip(self):
        user_id, org_id = uuid4(), uuid4()
        payload = decode_token(create_access_token(user_id, org_id, UserRole.ADMIN), expected_type='access')
        self.assertEqual(payload['sub'], str(user_id))
        self.assertEqual(payload['org_id'], str(org_id))
        self.assertEqual(payload['role'], UserRole.ADMIN)

    def test_refresh_token_rejected_as_access(self):
        token = create_refresh_token(uuid4())
        self.assertIsNone(decode_token(token, expected_type='access'))

    def test_tampered_token_rejected(self):
        token = create_access_token(uuid4(), uuid4()) + "x"
        self.assertIsNone(decode_token(token))


class AuthAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.org_id = uuid4()
        self.admin = User.objects.create_user(
            username="agency_admin", email="admin@agency.test", password="S3cure-pass-42",
            role=UserRole.ADMIN, org_id=self.org_id,
        )

    def _login(self, username="agency_admin", password="S3cure-pass-42"):
        return self.client.post(
            '/api/identity/login',
            data=json.dumps({"username": username, "password": password}),
            content_type='application/json',
        )

    def test_login_sets_cookies_and_me_works(self):
        response = self._login()
        self.assertEqual(response.status_code, 200)
        self.assertIn('access_token', response.cookies)
        self.assertIn('refresh_token', response.cookies)

        me = self.client.get('/api/identity/me')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()['username'], "agency_admin")

    def test_login_wrong_password(self):
        response = self._login(password="nope")
        self.assertEqual(response.status_code, 401)

    def test_me_requires_auth(self):
        self.assertEqual(self.client.get('/api/identity/me').status_code, 401)

    def test_refresh_issues_new_access_token(self):
        self._login()
        response = self.client.post('/api/identity/refresh')
        self.assertEqual(response.status_code, 200)
        self.assertIn('access_token', response.cookies)

    def test_logout_clears_cookies(self):
        self._login()
        response = self.client.post('/api/identity/logout')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.cookies['access_token'].value, '')


class UserManagementAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.org_id = uuid4()
        self.admin = User.objects.create_user(
            username="admin_um", password="pw", role=UserRole.ADMIN, org_id=self.org_id,
        )
        self.staff = User.objects.create_user(
            username="staff_um", password="pw", role=UserRole.STAFF, org_id=self.org_id,
        )
        self.outsider = User.objects.create_user(
            username="other_org", password="pw", role=UserRole.STAFF, org_id=uuid4(),
        )

    def test_admin_creates_client_user(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            '/api/identity/users',
            data=json.dumps({
                "username": "acme_contact",
                "email": "contact@acme.test",
                "password": "S3cure-pass-42",
                "full_name": "Awa Traoré",
                "role": UserRole.CLIENT,
            }),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        created = User.objects.get(username="acme_contact")
        self.assertEqual(created.org_id, self.org_id)
        self.assertEqual(created.role, UserRole.CLIENT)

    def test_staff_cannot_create_users(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            '/api/identity/users',
            data=json.dumps({"username": "x", "email": "x@x.test", "password": "pw"}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 403)

    def test_list_users_is_tenant_scoped(self):
        self.client.force_login(self.admin)
        response = self.client.get('/api/identity/users')
        usernames = {u['username'] for u in response.json()}
        self.assertEqual(usernames, {"admin_um", "staff_um"})

    def test_cannot_update_user_of_other_org(self):
        self.client.force_login(self.admin)
        response = self.client.put(
            f'/api/identity/users/{self.outsider.id}',
            data=json.dumps({"full_name": "Hijack"}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 404)

    def test_deactivate_user(self):
        self.client.force_login(self.admin)
        response = self.client.delete(f'/api/identity/users/{self.staff.id}')
        self.assertEqual(response.status_code, 200)
        self.staff.refresh_from_db()
        self.assertFalse(self.staff.is_active)


class ProfileSettingsAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.user = User.objects.create_user(
            username="profile_user", password="Old-pass-1234", role=UserRole.CLIENT, org_id=uuid4(),
            preferences={"language": "fr"},
        )
        self.client.force_login(self.user)

    def test_update_profile(self):
        response = self.client.patch(
            '/api/identity/me/profile',
            data=json.dumps({"full_name": "Kouamé Yao", "phone": "+225 07 00 00 00"}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.full_name, "Kouamé Yao")

    def test_change_password_requires_current(self):
        response = self.client.post(
            '/api/identity/me/password',
            data=json.dumps({"current_password": "wrong", "new_password": "N3w-pass-5678"}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            '/api/identity/me/password',
            data=json.dumps({"current_password": "Old-pass-1234", "new_password": "N3w-pass-5678"}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("N3w-pass-5678"))

    def test_preferences_are_merged(self):
        response = self.client.patch(
            '/api/identity/me/preferences',
            data=json.dumps({"preferences": {"email_notifications": False}}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.preferences, {"language": "fr", "email_notifications": False})
