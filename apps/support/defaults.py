"""
Default ticket priorities and categories, seeded per organization.
"""
from typing import Dict, List, Tuple
from uuid import UUID

from .models import PriorityCode, TicketCategory, TicketPriority


# (response, resolution) targets in minutes
DEFAULT_PRIORITIES: Dict[str, Tuple[int, int]] = {
    PriorityCode.LOW: (1440, 10080),
    PriorityCode.NORMAL: (480, 4320),
    PriorityCode.HIGH: (120, 1440),
    PriorityCode.URGENT: (30, 480),
}

DEFAULT_CATEGORIES: List[str] = [
    'Bug',
    'Demande de modification',
    'Question',
    'Facturation',
    'Accès',
]


def seed_support_defaults(org_id: UUID) -> Tuple[int, int]:
    """Create the missing default priorities and categories. Returns (priorities, categories) created."""
    priorities = 0
    for code, (response, resolve) in DEFAULT_PRIORITIES.items():
        _, created = TicketPriority.objects.get_or_create(
            org_id=org_id,
            code=code,
            defaults={'response_sla_minutes': response, 'resolve_sla_minutes': resolve},
        )
        priorities += int(created)

    categories = 0
    for label in DEFAULT_CATEGORIES:
        _, created = TicketCategory.objects.get_or_create(org_id=org_id, label=label)
        categories += int(created)
    return priorities, categories
