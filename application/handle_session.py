import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from domain.errors import AuthError, RenderError, SessionError
from domain.session import SessionContext, SessionState
from domain.session_channel import SessionChannel
from application.dtos import SessionOutcome
from application.onboarding import fallback_text, report_summary, welcome_lines
from application.report_slot import ReportSlot
from application.config import CREDENTIAL_ENV, default_cargo_home, default_gopath

logger = logging.getLogger(__name__)

DEFAULT_SHELL = ["bash", "--noprofile", "--norc", "-i"]


class SessionHandler:
    """
    Drives one connection through connected -> authenticated -> provisioned
    -> interactive -> closed.

    A handler instance is shared by all connections but keeps no per-session
    state of its own; everything a session owns lives in its SessionContext.
    """

    def __init__(
        self,
        access_policy,
        renderer,
        onboarding_document: Path,
        report_slot: ReportSlot,
        shell_command: Optional[List[str]] = None,
        session_timeout: Optional[float] = None,
        workspace_root: Optional[Path] = None
    ):
        self.access_policy = access_policy
        self.renderer = renderer
        self.onboarding_document = onboarding_document
        self.report_slot = report_slot
        self.shell_command = shell_command or DEFAULT_SHELL
        self.session_timeout = session_timeout
        self.workspace_root = workspace_root

    async def handle(self, session_id: int, channel: SessionChannel) -> SessionOutcome:
        """Run a session to completion. Errors are contained to this session."""
        context = SessionContext(
            session_id=session_id,
            principal=channel.principal,
            last_report=self.report_slot.get()
        )
        logger.info("Session %d connected as %r", session_id, context.principal)

        exit_status = 0
        error: Optional[str] = None
        reached = context.state

        try:
            self._authenticate(context, channel)
            reached = context.state
            await self._provision(context, channel)
            reached = context.state
            exit_status = await self._interact(context, channel)
            reached = context.state
        except AuthError as e:
            logger.warning("Session %d rejected: %s", session_id, e)
            error = str(e)
            exit_status = 1
        except asyncio.CancelledError:
            logger.info("Session %d cancelled in state %s", session_id, context.state.value)
            await self._close(context, channel, 1)
            raise
        except Exception as e:
            failure = SessionError(session_id, str(e) or e.__class__.__name__)
            logger.exception("Session %d failed in state %s", session_id, context.state.value)
            error = str(failure)
            exit_status = 1

        await self._close(context, channel, exit_status)
        return SessionOutcome(
            session_id=session_id,
            principal=context.principal,
            final_state=context.state,
            reached=reached,
            exit_status=exit_status,
            error=error
        )

    def _authenticate(self, context: SessionContext, channel: SessionChannel) -> None:
        if not self.access_policy.is_allowed(context.principal):
            channel.write("Access denied.\n")
            raise AuthError(f"principal {context.principal!r} is not allowed")
        context.advance(SessionState.AUTHENTICATED)

    async def _provision(self, context: SessionContext, channel: SessionChannel) -> None:
        context.working_dir = Path(tempfile.mkdtemp(
            prefix=f"session-{context.session_id}-",
            dir=str(self.workspace_root) if self.workspace_root else None
        ))
        context.environment = self._session_environment(context)

        try:
            rendered = await asyncio.to_thread(self.renderer.render, self.onboarding_document)
            channel.write(rendered)
        except RenderError as e:
            logger.warning("Session %d: onboarding render failed, using plain text: %s", context.session_id, e)
            channel.write(fallback_text())

        for line in report_summary(context.last_report):
            channel.write(line + "\n")
        channel.write("\n")
        for line in welcome_lines(context, self.session_timeout):
            channel.write(line + "\n")

        context.advance(SessionState.PROVISIONED)

    async def _interact(self, context: SessionContext, channel: SessionChannel) -> int:
        context.advance(SessionState.INTERACTIVE)
        shell = channel.attach_shell(self.shell_command, context.working_dir, context.environment)
        try:
            return await asyncio.wait_for(shell, timeout=self.session_timeout)
        except asyncio.TimeoutError:
            logger.info("Session %d reached its time limit", context.session_id)
            channel.write("\nSession time limit reached. Goodbye!\n")
            return 0

    async def _close(self, context: SessionContext, channel: SessionChannel, exit_status: int) -> None:
        if context.is_closed:
            return
        context.advance(SessionState.CLOSED)
        try:
            await channel.close(exit_status)
        except (OSError, ConnectionError) as e:
            logger.debug("Session %d: channel already gone: %s", context.session_id, e)
        finally:
            if context.working_dir:
                shutil.rmtree(context.working_dir, ignore_errors=True)
        logger.info("Session %d closed", context.session_id)

    def _session_environment(self, context: SessionContext) -> Dict[str, str]:
        env = {k: v for k, v in os.environ.items() if k != CREDENTIAL_ENV}
        cargo_home = default_cargo_home()
        gopath = default_gopath()
        # HOME moves to the scratch dir; toolchains and installed binaries stay where they are
        env["HOME"] = str(context.working_dir)
        env["CARGO_HOME"] = str(cargo_home)
        env.setdefault("RUSTUP_HOME", str(Path.home() / ".rustup"))
        env["GOPATH"] = str(gopath)
        env["PATH"] = os.pathsep.join(
            [str(cargo_home / "bin"), str(gopath / "bin")] + ([env["PATH"]] if env.get("PATH") else [])
        )
        env["CARGO_CULT_ONBOARDING"] = str(self.onboarding_document)
        env["PS1"] = f"{context.display_name}@cargo-cult:\\w\\$ "
        env["CARGO_CULT_SESSION"] = str(context.session_id)
        return env
