"""DTOs for the support app."""
from dataclasses import dataclass


@dataclass(frozen=True)
class SlaSweepResult:
    warnings_sent: int = 0
    breaches_sent: int = 0
