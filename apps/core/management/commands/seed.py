from datetime import timedelta
from decimal import Decimal

from django.utils import timezone
from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model

from apps.organizations.models import Organization
from apps.identity.models import UserRole
from apps.clients.models import Client, ClientMember
from apps.clients import services as client_services
from apps.projects.models import Project
from apps.projects import services as project_services
from apps.billing.models import Quote, Invoice
from apps.billing import services as billing_services
from apps.support.models import Ticket
from apps.support.defaults import seed_support_defaults

User = get_user_model()

DEMO_ORG_NAME = 'Demo Agency'
DEMO_PASSWORD = 'password123'


class Command(BaseCommand):
    help = 'Seeds the database with a demo agency, a client account and sample work.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clean',
            action='store_true',
            help='Delete existing demo data before seeding',
        )
        parser.add_argument(
            '--users',
            action='store_true',
            help='Seed the organization and users only',
        )
        parser.add_argument(
            '--billing',
            action='store_true',
            help='Seed quotes and invoices only',
        )
        parser.add_argument(
            '--support',
            action='store_true',
            help='Seed support defaults and a sample ticket only',
        )

    def handle(self, *args, **options):
        seed_all = not any([options['users'], options['billing'], options['support']])

        if options['clean']:
            self.stdout.write(self.style.WARNING('Cleaning demo data...'))
            self._clean_database()
            self.stdout.write(self.style.SUCCESS('Demo data cleaned.'))

        org = self._get_or_create_org()
        admin, client_user = self._seed_users(org)
        client = self._seed_client(org, client_user)

        if seed_all:
            self._seed_project(org, client, admin)

        if seed_all or options['billing']:
            self._seed_billing(org, client, admin)

        if seed_all or options['support']:
            self._seed_support(org, client, client_user)

        self.stdout.write(self.style.SUCCESS(f'Seeding complete for {org.name} ({org.id}).'))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _clean_database(self):
        org = Organization.objects.filter(name=DEMO_ORG_NAME).first()
        if not org:
            return
        Ticket.objects.filter(org_id=org.id).delete()
        Invoice.objects.filter(org_id=org.id).delete()
        Quote.objects.filter(org_id=org.id).delete()
        Project.objects.filter(org_id=org.id).delete()
        ClientMember.objects.filter(client__org_id=org.id).delete()
        Client.objects.filter(org_id=org.id).delete()
        User.objects.filter(org_id=org.id).delete()
        org.delete()

    def _get_or_create_org(self):
        org, created = Organization.objects.get_or_create(
            name=DEMO_ORG_NAME,
            defaults={
                'email': 'contact@demo-agency.test',
                'phone': '+225 01 02 03 04',
                'address': 'Abidjan, Cocody',
                'default_currency': 'XOF',
            },
        )
        if created:
            self.stdout.write(f'Created organization {org.name}')
        return org

    def _get_or_create_user(self, org, username, role, full_name, **extra):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={
                'org_id': org.id,
                'role': role,
                'full_name': full_name,
                'email': f'{username}@demo-agency.test',
                **extra,
            },
        )
        if created:
            user.set_password(DEMO_PASSWORD)
            user.save()
            self.stdout.write(f'  Created {role} user {username}')
        return user

    # =========================================================================
    # Seeders
    # =========================================================================

    def _seed_users(self, org):
        self.stdout.write('Seeding users...')
        admin = self._get_or_create_user(
            org, 'admin', UserRole.ADMIN, 'Agency Admin', is_staff=True, is_superuser=True,
        )
        self._get_or_create_user(org, 'staff', UserRole.STAFF, 'Project Manager')
        client_user = self._get_or_create_user(org, 'client', UserRole.CLIENT, 'Client Contact')
        return admin, client_user

    def _seed_client(self, org, client_user):
        client = Client.objects.filter(org_id=org.id, name='Acme Corp').first()
        if not client:
            client = client_services.create_client(org.id, {
                'name': 'Acme Corp',
                'contact_email': 'billing@acme.test',
                'phone': '+225 05 06 07 08',
            })
            self.stdout.write(f'  Created client {client.name}')
        if not ClientMember.objects.filter(client=client, user_id=client_user.id).exists():
            client_services.add_member(org.id, client.id, client_user.id, is_primary=True)
        return client

    def _seed_project(self, org, client, admin):
        self.stdout.write('Seeding project...')
        if Project.objects.filter(org_id=org.id, client_id=client.id).exists():
            return
        today = timezone.localdate()
        project = project_services.create_project(org.id, {
            'client_id': client.id,
            'title': 'Website redesign',
            'description': 'New corporate website with a customer area.',
            'start_date': today,
            'due_date': today + timedelta(days=60),
        }, created_by=admin)
        milestone = project_services.create_milestone(project, {
            'title': 'Design approved',
            'due_date': today + timedelta(days=20),
        })
        for title, status in [
            ('Collect brand assets', 'done'),
            ('Wireframes', 'doing'),
            ('Homepage mockup', 'todo'),
        ]:
            project_services.create_task(project, {
                'title': title,
                'status': status,
                'milestone_id': milestone.id,
            }, created_by=admin)

    def _seed_billing(self, org, client, admin):
        self.stdout.write('Seeding billing...')
        if Quote.objects.filter(org_id=org.id, client_id=client.id).exists():
            return
        today = timezone.localdate()
        items = [
            {'label': 'UX design', 'qty': Decimal('5'), 'unit_price': Decimal('150000'), 'vat_rate': Decimal('18')},
            {'label': 'Front-end integration', 'qty': Decimal('8'), 'unit_price': Decimal('120000'), 'vat_rate': Decimal('18')},
        ]
        quote = billing_services.create_quote(org.id, {
            'client_id': client.id,
            'expires_at': today + timedelta(days=30),
            'items': items,
        }, created_by=admin)
        invoice = billing_services.create_invoice(org.id, {
            'client_id': client.id,
            'due_date': today + timedelta(days=15),
            'items': items[:1],
        }, created_by=admin)
        self.stdout.write(f'  Created quote {quote.number} and invoice {invoice.number}')

    def _seed_support(self, org, client, client_user):
        self.stdout.write('Seeding support...')
        priorities, categories = seed_support_defaults(org.id)
        self.stdout.write(f'  {priorities} priorities, {categories} categories created')
        if Ticket.objects.filter(org_id=org.id, client_id=client.id).exists():
            return
        from apps.support import services as support_services
        ticket = support_services.create_ticket(client_user, {
            'client_id': client.id,
            'subject': 'Cannot log in to the staging site',
            'message': 'The staging password sent last week no longer works.',
        })
        self.stdout.write(f'  Created ticket {ticket.subject}')
