"""
Remote command execution over SSH using paramiko.
"""
import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import paramiko
from paramiko.ssh_exception import (
    AuthenticationException,
    NoValidConnectionsError,
    SSHException,
)

from swarmctl.errors import ExecutionError, ExecutionTimeout
from swarmctl.modules.swarm.models import Host

logger = logging.getLogger("ssh")

REDACTED = "***"


@dataclass
class CommandResult:
    """Output of a remote command."""
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined, stripped stdout and stderr (for error messages)."""
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)


def redact(command: str, secrets: Iterable[str] = ()) -> str:
    """Mask every secret occurring in a command string."""
    for secret in secrets:
        if secret:
            command = command.replace(secret, REDACTED)
    return command


class RemoteExecutor:
    """Runs a command on a host and returns its result.

    Implementations block until the command finishes or the timeout elapses.
    They never retry on their own; retry policy belongs to the caller.
    """

    def execute(self, host: Host, command: str, timeout: Optional[float] = None,
                secrets: Iterable[str] = ()) -> CommandResult:
        """Execute a command on a host.

        Args:
            host: Target host
            command: Shell command line
            timeout: Seconds to wait for completion
            secrets: Values to mask whenever the command is logged

        Raises:
            ExecutionTimeout: If the command did not finish in time
            ExecutionError: If the host could not be reached
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any connections held by the executor."""


class ConnectionPool:
    """Thread-safe cache of paramiko clients, one per user@host:port."""

    def __init__(self, connect_timeout: float = 10, password: Optional[str] = None):
        self.connect_timeout = connect_timeout
        self.password = password
        self.connections: Dict[str, paramiko.SSHClient] = {}
        self.lock = threading.RLock()

    def get_connection(self, host: str, username: str, key_path: Optional[str] = None,
                       port: int = 22) -> paramiko.SSHClient:
        """Get a connected client from the pool, reconnecting if the transport died.

        Raises:
            ExecutionError: If the connection cannot be established
        """
        connection_id = f"{username}@{host}:{port}"

        with self.lock:
            client = self.connections.get(connection_id)
            if client is not None:
                transport = client.get_transport()
                if transport is not None and transport.is_active():
                    return client
                logger.debug(f"Connection to {connection_id} is stale, reconnecting")
                client.close()
                del self.connections[connection_id]

            logger.debug(f"Creating new SSH connection to {connection_id}")
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    hostname=host,
                    port=port,
                    username=username,
                    key_filename=key_path,
                    password=self.password,
                    timeout=self.connect_timeout,
                    banner_timeout=self.connect_timeout,
                    auth_timeout=self.connect_timeout,
                    allow_agent=True,
                    look_for_keys=key_path is None,
                )
            except (socket.timeout, TimeoutError) as e:
                client.close()
                raise ExecutionTimeout(f"Timed out connecting to {connection_id}: {e}", step='connect')
            except AuthenticationException as e:
                client.close()
                raise ExecutionError(f"Authentication failed for {connection_id}: {e}", step='connect')
            except (NoValidConnectionsError, SSHException, OSError) as e:
                client.close()
                raise ExecutionError(f"Cannot connect to {connection_id}: {e}", step='connect')

            self.connections[connection_id] = client
            return client

    def discard(self, host: str, username: str, port: int = 22) -> None:
        with self.lock:
            client = self.connections.pop(f"{username}@{host}:{port}", None)
        if client is not None:
            client.close()

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self.lock:
            for connection_id, client in self.connections.items():
                try:
                    client.close()
                except Exception as e:
                    logger.warning(f"Error closing SSH connection {connection_id}: {e}")
            self.connections.clear()


class SSHExecutor(RemoteExecutor):
    """Executes commands over SSH with connection reuse."""

    def __init__(self, user: str = "vagrant", key_path: Optional[str] = None, port: int = 22,
                 connect_timeout: float = 10, command_timeout: float = 300,
                 password: Optional[str] = None, pool: Optional[ConnectionPool] = None):
        self.user = user
        self.key_path = key_path
        self.port = port
        self.command_timeout = command_timeout
        self.pool = pool or ConnectionPool(connect_timeout=connect_timeout, password=password)

    @classmethod
    def from_config(cls, config) -> 'SSHExecutor':
        """Build an executor from a BootstrapConfig."""
        return cls(
            user=config.ssh.user,
            key_path=config.ssh.key_path,
            port=config.ssh.port,
            connect_timeout=config.ssh.connect_timeout,
            command_timeout=config.ssh.command_timeout,
            password=config.ssh.password,
        )

    def _target(self, host: Host):
        return (
            host.address,
            host.ssh_user or self.user,
            host.ssh_key_path or self.key_path,
            host.ssh_port or self.port,
        )

    def execute(self, host: Host, command: str, timeout: Optional[float] = None,
                secrets: Iterable[str] = ()) -> CommandResult:
        address, username, key_path, port = self._target(host)
        timeout = timeout or self.command_timeout
        safe_command = redact(command, secrets)

        try:
            client = self.pool.get_connection(address, username, key_path, port)
        except ExecutionError as e:
            raise type(e)(e.message, host=host.identity, step=e.step) from e
        logger.debug(f"[{host.identity}] $ {safe_command}")
        start_time = time.time()

        try:
            _, stdout, stderr = client.exec_command(command, timeout=timeout)
            out = stdout.read().decode('utf-8', 'replace')
            err = stderr.read().decode('utf-8', 'replace')
            exit_code = stdout.channel.recv_exit_status()
        except (socket.timeout, TimeoutError):
            # The channel may be mid-command; drop the connection rather than reuse it
            self.pool.discard(address, username, port)
            raise ExecutionTimeout(
                f"Command timed out after {timeout}s: {safe_command}",
                host=host.identity, step='execute'
            )
        except (SSHException, OSError) as e:
            self.pool.discard(address, username, port)
            raise ExecutionError(f"SSH command failed: {e}", host=host.identity, step='execute')

        logger.debug(
            f"[{host.identity}] exit={exit_code} after {time.time() - start_time:.1f}s"
        )
        return CommandResult(stdout=out, stderr=redact(err, secrets), exit_code=exit_code)

    def close(self) -> None:
        self.pool.close_all()
