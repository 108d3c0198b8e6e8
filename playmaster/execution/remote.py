"""Command execution on a remote host over SSH.

Every command gets its own authenticated transport and a pseudo-terminal
sized like the local one, so the remote side behaves as in an interactive
shell and stdout/stderr arrive merged.
"""

import logging
import os
import queue
import shlex
import shutil
import socket
import stat
import sys
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import paramiko

from playmaster.execution.base import CommandOutput, ExecutionSession, LineStream
from playmaster.processes import ProcessRegistry
from playmaster.state import RemoteInfo

log = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
READ_SIZE = 4096
READER_JOIN_TIMEOUT = 5.0
DEFAULT_TERMINAL_SIZE = (120, 30)
TERM = "xterm"


class RemoteConnectionError(Exception):
    """Raised when a remote session cannot be established."""


class SSHConnectError(RemoteConnectionError):
    """Raised when the TCP connection to the host fails."""


class SSHHandshakeError(RemoteConnectionError):
    """Raised when the SSH protocol handshake fails."""


class SSHAuthenticationError(RemoteConnectionError):
    """Raised when the host rejects the credentials."""


class LineAssembler:
    """Splits a byte stream into complete ``\\n`` terminated lines."""

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, data: bytes) -> list[str]:
        """Add bytes and return the lines they completed."""
        *lines, self._pending = (self._pending + data).split(b"\n")
        return [_decode(line) for line in lines]

    def flush(self) -> str | None:
        """Return the undelimited remainder, if any."""
        pending, self._pending = self._pending, b""
        if not pending:
            return None
        return _decode(pending)


def _decode(raw: bytes) -> str:
    return raw.decode(errors="replace").rstrip("\r")


def _shell_command(
    cmd: str, cwd: str | None, env: Mapping[str, str] | None
) -> str:
    parts: list[str] = []
    if env:
        parts.extend(f"export {k}={shlex.quote(v)}" for k, v in env.items())
    if cwd:
        parts.append(f"cd {shlex.quote(cwd)}")
    parts.append(cmd)
    return f"bash -c {shlex.quote(' && '.join(parts))}"


def _channel_finished(channel: paramiko.Channel) -> bool:
    return not channel.recv_ready() and (channel.eof_received or channel.closed)


@dataclass(frozen=True, kw_only=True)
class RemoteSession(ExecutionSession):
    """Runs commands on a remote host authenticated by password."""

    is_remote = True

    remote: RemoteInfo
    registry: ProcessRegistry = field(repr=False)
    connect_timeout: float = 10.0
    echo: bool = True

    def connect(self) -> paramiko.Transport:
        """Open an authenticated transport.

        Raises:
            SSHConnectError: If the host cannot be reached
            SSHHandshakeError: If the SSH handshake fails
            SSHAuthenticationError: If the password is rejected

        """
        address = (self.remote.host, self.remote.port)
        try:
            sock = socket.create_connection(address, timeout=self.connect_timeout)
        except OSError as e:
            raise SSHConnectError(
                f"Failed to connect to {self.remote.host}:{self.remote.port}: {e}"
            ) from e

        transport = paramiko.Transport(sock)
        try:
            transport.start_client(timeout=self.connect_timeout)
        except (paramiko.SSHException, EOFError, OSError) as e:
            transport.close()
            raise SSHHandshakeError(
                f"SSH handshake with {self.remote.host} failed: {e}"
            ) from e

        try:
            transport.auth_password(self.remote.user, self.remote.password)
        except paramiko.SSHException as e:
            transport.close()
            raise SSHAuthenticationError(
                f"SSH authentication failed for {self.remote.address}: {e}"
            ) from e

        if not transport.is_authenticated():
            transport.close()
            raise SSHAuthenticationError(
                f"SSH authentication failed for {self.remote.address}"
            )

        return transport

    def _start(self, transport: paramiko.Transport, cmd: str) -> paramiko.Channel:
        width, height = shutil.get_terminal_size(DEFAULT_TERMINAL_SIZE)
        channel = transport.open_session()
        channel.get_pty(term=TERM, width=width, height=height)
        channel.exec_command(cmd)
        channel.setblocking(False)
        return channel

    def execute(
        self,
        cmd: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutput:
        """Run a command remotely, mirroring its output to the console."""
        shell_cmd = _shell_command(cmd, cwd, env)
        log.debug("Running remote command on %s: %s", self.remote.host, shell_cmd)

        transport = self.connect()
        try:
            channel = self._start(transport, shell_cmd)
            stdout, stderr = self._collect(channel)
            exit_code = channel.recv_exit_status()
        finally:
            transport.close()

        return CommandOutput(
            stdout=stdout.strip(), stderr=stderr.strip(), exit_code=exit_code
        )

    def _collect(self, channel: paramiko.Channel) -> tuple[str, str]:
        stdout: list[str] = []
        stderr: list[str] = []

        while True:
            received = False
            if channel.recv_ready():
                chunk = channel.recv(READ_SIZE).decode(errors="replace")
                stdout.append(chunk)
                self._mirror(chunk)
                received = True
            if channel.recv_stderr_ready():
                chunk = channel.recv_stderr(READ_SIZE).decode(errors="replace")
                stderr.append(chunk)
                self._mirror(chunk)
                received = True

            if not received:
                if _channel_finished(channel) and not channel.recv_stderr_ready():
                    break
                time.sleep(POLL_INTERVAL)

        return "".join(stdout), "".join(stderr)

    def _mirror(self, chunk: str) -> None:
        if self.echo:
            sys.stdout.write(chunk)
            sys.stdout.flush()

    def stream(
        self,
        cmd: str,
        *,
        name: str,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "RemoteLineStream":
        """Start a command remotely; a reader thread publishes its lines.

        The command is tracked by ``name`` as a ``pkill -f`` pattern until
        the stream ends.
        """
        shell_cmd = _shell_command(cmd, cwd, env)
        log.info("Running remote command on %s: %s", self.remote.host, shell_cmd)

        transport = self.connect()
        try:
            channel = self._start(transport, shell_cmd)
        except Exception:
            transport.close()
            raise

        def _release() -> None:
            transport.close()
            self.registry.untrack_remote(name)

        self.registry.track_remote(name, self)
        return RemoteLineStream(channel=channel, on_close=_release)

    def upload_file(self, local_path: Path, remote_path: str) -> None:
        """Copy a single file to the remote host, creating parent dirs."""
        parent = os.path.dirname(remote_path)
        if parent:
            self.execute(f"mkdir -p {shlex.quote(parent)}")

        transport = self.connect()
        try:
            sftp = paramiko.SFTPClient.from_transport(transport)
            if sftp is None:
                raise RemoteConnectionError("Failed to open SFTP session")
            with sftp:
                sftp.put(str(local_path), remote_path)
                sftp.chmod(remote_path, stat.S_IMODE(local_path.stat().st_mode))
        finally:
            transport.close()

    def upload_dir(self, local_dir: Path, remote_dir: str) -> int:
        """Copy a directory tree to the remote host.

        Returns:
            Number of files copied

        """
        if not local_dir.is_dir():
            raise FileNotFoundError(f"Directory to sync not found: {local_dir}")

        quoted = shlex.quote(remote_dir)
        self.execute(f"rm -rf {quoted} && mkdir -p {quoted}")

        copied = 0
        transport = self.connect()
        try:
            sftp = paramiko.SFTPClient.from_transport(transport)
            if sftp is None:
                raise RemoteConnectionError("Failed to open SFTP session")
            with sftp:
                for root, dirs, files in os.walk(local_dir):
                    rel = Path(root).relative_to(local_dir)
                    target = (
                        remote_dir
                        if rel == Path(".")
                        else f"{remote_dir}/{rel.as_posix()}"
                    )
                    for d in dirs:
                        sftp.mkdir(f"{target}/{d}")
                    for f in files:
                        source = Path(root) / f
                        if source.is_symlink():
                            sftp.symlink(os.readlink(source), f"{target}/{f}")
                            continue
                        sftp.put(str(source), f"{target}/{f}")
                        sftp.chmod(
                            f"{target}/{f}", stat.S_IMODE(source.stat().st_mode)
                        )
                        copied += 1
        finally:
            transport.close()

        log.debug("Copied %d file(s) from %s to %s", copied, local_dir, remote_dir)
        return copied


class RemoteLineStream(LineStream):
    """Lines of a remote command, produced by a dedicated reader thread.

    The reader thread owns the channel while the stream is open; it pushes
    complete lines onto a queue and None once the channel reaches EOF.
    """

    def __init__(
        self,
        *,
        channel: paramiko.Channel,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._channel = channel
        self._on_close = on_close
        self._lines: queue.Queue[str | None] = queue.Queue()
        self._stop = threading.Event()
        self._closed = False
        self._exit_code: int | None = None
        self._reader = threading.Thread(
            target=self._pump, name="remote-stream-reader", daemon=True
        )
        self._reader.start()

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def _pump(self) -> None:
        assembler = LineAssembler()
        try:
            while not self._stop.is_set():
                if self._channel.recv_ready():
                    data = self._channel.recv(READ_SIZE)
                    if not data:
                        break
                    for line in assembler.feed(data):
                        self._lines.put(line)
                elif _channel_finished(self._channel):
                    break
                else:
                    time.sleep(POLL_INTERVAL)
        except (OSError, paramiko.SSHException) as e:
            log.error("Error reading remote output: %s", e)
        finally:
            if (remainder := assembler.flush()) is not None:
                self._lines.put(remainder)
            self._lines.put(None)

    def __next__(self) -> str:
        if self._closed:
            raise StopIteration

        line = self._lines.get()
        if line is None:
            self._exit_code = self._channel.recv_exit_status()
            self.close()
            raise StopIteration

        return line

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        self._reader.join(READER_JOIN_TIMEOUT)
        if self._reader.is_alive():
            log.warning("Remote output reader did not stop in time")
        self._channel.close()
        if self._on_close is not None:
            self._on_close()
