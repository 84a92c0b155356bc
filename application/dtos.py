from dataclasses import dataclass
from typing import Optional

from domain.session import SessionState


@dataclass
class SessionOutcome:
    session_id: int
    principal: str
    final_state: SessionState
    reached: SessionState
    exit_status: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
