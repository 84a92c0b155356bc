"""Per-connection session state."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from .install_report import InstallReport


class SessionState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    PROVISIONED = "provisioned"
    INTERACTIVE = "interactive"
    CLOSED = "closed"


# Allowed edges; any non-terminal state may also drop straight to CLOSED.
_TRANSITIONS = {
    SessionState.CONNECTED: (SessionState.AUTHENTICATED,),
    SessionState.AUTHENTICATED: (SessionState.PROVISIONED,),
    SessionState.PROVISIONED: (SessionState.INTERACTIVE,),
    SessionState.INTERACTIVE: (),
    SessionState.CLOSED: (),
}

_HIGHLIGHT_RE = re.compile(r"^\[(?P<package>[^\[\]]+)\]$")


@dataclass
class SessionContext:
    """
    Everything one connection owns.

    Created when the transport accepts a session and discarded on close;
    never shared between connections. ``last_report`` is the published
    install report and must be treated as read-only.
    """
    session_id: int
    principal: str
    working_dir: Optional[Path] = None
    environment: Dict[str, str] = field(default_factory=dict)
    last_report: Optional[InstallReport] = None
    state: SessionState = SessionState.CONNECTED
    history: Tuple[SessionState, ...] = (SessionState.CONNECTED,)

    @property
    def highlighted_package(self) -> Optional[str]:
        """Package name when the principal connected as ``[package]``."""
        match = _HIGHLIGHT_RE.match(self.principal)
        return match.group("package") if match else None

    @property
    def display_name(self) -> str:
        return self.highlighted_package or self.principal

    def advance(self, new_state: SessionState) -> None:
        if self.state is SessionState.CLOSED:
            raise ValueError(f"Session {self.session_id} is already closed")
        if new_state is not SessionState.CLOSED and new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid session transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history = self.history + (new_state,)

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED
