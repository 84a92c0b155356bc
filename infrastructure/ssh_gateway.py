import asyncio
import codecs
import fcntl
import itertools
import logging
import os
import struct
import termios
from pathlib import Path
from typing import Dict, List, Optional, Set

import asyncssh

from application.dtos import SessionOutcome
from application.handle_session import SessionHandler
from domain.errors import ConfigurationError
from domain.session import SessionState
from domain.session_channel import SessionChannel

logger = logging.getLogger(__name__)


def _set_window_size(fd: int, width: int, height: int) -> None:
    if width and height:
        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", height, width, 0, 0))


def _acquire_controlling_tty() -> None:
    # runs in the child after setsid(); stdin is the pty slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class SSHSessionChannel(SessionChannel):
    """SessionChannel backed by an asyncssh server process."""

    def __init__(self, process: asyncssh.SSHServerProcess):
        self._process = process
        self._closed = False

    @property
    def principal(self) -> str:
        return self._process.get_extra_info("username") or ""

    def write(self, text: str) -> None:
        if self._closed:
            return
        self._process.stdout.write(text.replace("\r\n", "\n").replace("\n", "\r\n"))

    async def attach_shell(self, command: list, cwd: Path, env: Dict[str, str]) -> int:
        env = dict(env)
        term = self._process.get_terminal_type()
        if term:
            env["TERM"] = term
            return await self._attach_pty(command, cwd, env)
        return await self._attach_pipes(command, cwd, env)

    async def _attach_pipes(self, command: list, cwd: Path, env: Dict[str, str]) -> int:
        local = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT
        )
        try:
            await self._process.redirect(stdin=local.stdin, stdout=local.stdout)
            return await local.wait()
        finally:
            if local.returncode is None:
                local.kill()
                await local.wait()

    async def _attach_pty(self, command: list, cwd: Path, env: Dict[str, str]) -> int:
        """Run the program on a pseudo-terminal sized like the client's."""
        master, slave = os.openpty()
        try:
            width, height = self._process.get_terminal_size()[:2]
            _set_window_size(master, width, height)
            local = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                env=env,
                stdin=slave,
                stdout=slave,
                stderr=slave,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty
            )
        except BaseException:
            os.close(master)
            raise
        finally:
            os.close(slave)

        waiter = asyncio.ensure_future(local.wait())
        feeding = asyncio.ensure_future(self._pump_input(master))
        echoing = asyncio.ensure_future(self._pump_output(master))
        try:
            await asyncio.wait({waiter, feeding}, return_when=asyncio.FIRST_COMPLETED)
            if waiter.done():
                # let the last output drain from the pty
                await asyncio.wait({echoing}, timeout=1)
                return waiter.result()
            logger.debug("Client closed its input; ending the shell")
            return 0
        finally:
            for task in (feeding, echoing, waiter):
                task.cancel()
            await asyncio.gather(feeding, echoing, waiter, return_exceptions=True)
            if local.returncode is None:
                local.kill()
                await local.wait()
            os.close(master)

    async def _pump_input(self, master: int) -> None:
        while True:
            try:
                data = await self._process.stdin.read(4096)
            except asyncssh.TerminalSizeChanged as exc:
                _set_window_size(master, exc.width, exc.height)
                continue
            except (asyncssh.BreakReceived, asyncssh.SignalReceived):
                continue
            if not data:
                return
            payload = data.encode("utf-8") if isinstance(data, str) else data
            while payload:
                try:
                    written = os.write(master, payload)
                except BlockingIOError:
                    # the output pump made the shared descriptor non-blocking
                    await asyncio.sleep(0.01)
                    continue
                payload = payload[written:]

    async def _pump_output(self, master: int) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader),
            os.fdopen(os.dup(master), "rb", buffering=0)
        )
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        try:
            while True:
                try:
                    data = await reader.read(4096)
                except OSError:
                    # EIO once every process has closed the terminal
                    break
                if not data:
                    break
                self._process.stdout.write(decoder.decode(data))
        finally:
            transport.close()

    async def close(self, exit_status: int = 0) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._process.stdout.drain()
        except (BrokenPipeError, ConnectionError, asyncssh.Error) as e:
            logger.debug("Could not flush session output: %s", e)
        self._process.exit(exit_status)


class _GatewayServer(asyncssh.SSHServer):
    """Accepts any SSH user; the session access policy decides afterwards."""

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        self._peer = conn.get_extra_info("peername")
        logger.debug("Connection from %s", self._peer)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            logger.info("Connection from %s lost: %s", self._peer, exc)

    def begin_auth(self, username: str) -> bool:
        return False


class SSHGateway:
    """
    Accepts SSH connections and dispatches one task per session.

    Per-session logic lives entirely in SessionHandler; finished sessions
    report back through a results queue that the gateway drains for logging.
    """

    def __init__(self, handler: SessionHandler, host: str, port: int, host_key_path: Path):
        self.handler = handler
        self.host = host
        self.port = port
        self.host_key_path = host_key_path
        self.results: "asyncio.Queue[SessionOutcome]" = asyncio.Queue()
        self._ids = itertools.count(1)
        self._active: Set[int] = set()
        self._server: Optional[asyncssh.SSHAcceptor] = None

    async def start(self) -> None:
        """Bind the transport. Any failure here is a startup failure."""
        try:
            host_key = asyncssh.read_private_key(str(self.host_key_path))
        except (OSError, asyncssh.KeyImportError) as e:
            raise ConfigurationError(f"Cannot load SSH host key {self.host_key_path}: {e}")

        try:
            self._server = await asyncssh.create_server(
                _GatewayServer,
                self.host,
                self.port,
                server_host_keys=[host_key],
                process_factory=self._run_session,
                line_editor=False,
                login_timeout=60,
                keepalive_interval=30
            )
        except OSError as e:
            raise ConfigurationError(f"Cannot bind SSH gateway on {self.host}:{self.port}: {e}")

        logger.info("SSH gateway listening on %s:%d", self.host, self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        try:
            while True:
                self._log_outcome(await self.results.get())
        finally:
            self.close()

    def close(self) -> None:
        if self._server is not None:
            self._server.close()
            self._server = None

    @property
    def active_sessions(self) -> List[int]:
        return sorted(self._active)

    async def _run_session(self, process: asyncssh.SSHServerProcess) -> None:
        session_id = next(self._ids)
        channel = SSHSessionChannel(process)
        self._active.add(session_id)
        try:
            outcome = await self.handler.handle(session_id, channel)
        except asyncio.CancelledError:
            self.results.put_nowait(SessionOutcome(
                session_id=session_id,
                principal=channel.principal,
                final_state=SessionState.CLOSED,
                reached=SessionState.CLOSED,
                exit_status=1,
                error="cancelled"
            ))
            raise
        finally:
            self._active.discard(session_id)
        self.results.put_nowait(outcome)

    def _log_outcome(self, outcome: SessionOutcome) -> None:
        if outcome.ok:
            logger.info("Session %d (%s) finished after %s, exit status %d",
                        outcome.session_id, outcome.principal, outcome.reached.value, outcome.exit_status)
        else:
            logger.warning("Session %d (%s) ended in %s: %s",
                           outcome.session_id, outcome.principal, outcome.reached.value, outcome.error)
