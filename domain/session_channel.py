from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict


class SessionChannel(ABC):
    """
    Transport-facing side of one interactive connection.

    Implementations wrap whatever accepted the connection (an SSH channel in
    production, an in-memory fake in tests). The session handler drives its
    state machine purely through this interface.
    """

    @property
    @abstractmethod
    def principal(self) -> str:
        """The identity the transport established for this connection."""
        pass

    @abstractmethod
    def write(self, text: str) -> None:
        """Queue text for the remote terminal. Newlines are sent as CRLF."""
        pass

    @abstractmethod
    async def attach_shell(self, command: list, cwd: Path, env: Dict[str, str]) -> int:
        """
        Run an interactive program wired to the connection's byte streams.

        Returns:
            The program's exit status once it finishes or the peer disconnects.
        """
        pass

    @abstractmethod
    async def close(self, exit_status: int = 0) -> None:
        """Flush pending output and close the connection. Must be idempotent."""
        pass
