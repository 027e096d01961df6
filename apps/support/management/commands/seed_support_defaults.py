"""
Management command to seed the default ticket priorities and categories.
"""
from django.core.management.base import BaseCommand

from apps.organizations.models import Organization
from apps.support.defaults import seed_support_defaults


class Command(BaseCommand):
    help = 'Seeds default ticket priorities (with SLA targets) and categories'

    def add_arguments(self, parser):
        parser.add_argument(
            '--org-id',
            type=str,
            help='Organization UUID to seed data for.',
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Seed for all active organizations',
        )

    def handle(self, *args, **options):
        org_id = options.get('org_id')

        if org_id:
            org = Organization.objects.filter(id=org_id).first()
            if not org:
                self.stderr.write(self.style.ERROR(f'Organization {org_id} not found'))
                return
            orgs = [org]
        elif options.get('all'):
            orgs = list(Organization.objects.filter(is_active=True))
        else:
            self.stderr.write(self.style.WARNING('Please provide --org-id or --all flag'))
            return

        for org in orgs:
            priorities, categories = seed_support_defaults(org.id)
            self.stdout.write(f'{org.name}: {priorities} priorities, {categories} categories created')
        self.stdout.write(self.style.SUCCESS(f'Seeded support defaults for {len(orgs)} organization(s)'))
