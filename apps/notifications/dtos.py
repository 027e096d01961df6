from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class EmailResult:
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
