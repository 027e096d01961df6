"""
Factories shared by the test suites.
"""
from uuid import uuid4

from django.contrib.auth import get_user_model

from apps.organizations.models import Organization
from apps.identity.models import UserRole

User = get_user_model()


def make_org(name=None, **kwargs):
    """Create a test Organization."""
    return Organization.objects.create(
        name=name or f"Agency {uuid4().hex[:6]}",
        email="billing@agency.test",
        **kwargs,
    )


def make_user(org, role=UserRole.ADMIN, username=None, **kwargs):
    """Create a test User in the given org."""
    username = username or f"user_{uuid4().hex[:8]}"
    return User.objects.create_user(
        username=username,
        email=kwargs.pop('email', f"{username}@test.com"),
        password="testpass123",
        org_id=org.id,
        role=role,
        **kwargs,
    )


def make_client(org, name=None, contact_email="contact@client.test"):
    from apps.clients.models import Client
    return Client.objects.create(
        org_id=org.id,
        name=name or f"Client {uuid4().hex[:6]}",
        contact_email=contact_email,
    )


def make_client_user(org, client, username=None, is_primary=True):
    """CLIENT user attached to the given client account."""
    from apps.clients.models import ClientMember
    user = make_user(org, role=UserRole.CLIENT, username=username)
    ClientMember.objects.create(client=client, user_id=user.id, is_primary=is_primary)
    return user


def make_project(org, client, title=None, **kwargs):
    from apps.projects.models import Project
    return Project.objects.create(
        org_id=org.id,
        client_id=client.id,
        title=title or f"Project {uuid4().hex[:6]}",
        **kwargs,
    )
