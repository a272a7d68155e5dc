"""Error taxonomy for swarmctl.

Every error carries the identity of the host it concerns (if any) and the
name of the step that failed, so an operator can re-run precisely.
"""
from typing import Optional


class SwarmctlError(Exception):
    """Base class for all swarmctl errors."""

    def __init__(self, message: str, host: Optional[str] = None, step: Optional[str] = None):
        self.host = host
        self.step = step
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = []
        if self.host:
            prefix.append(f"host={self.host}")
        if self.step:
            prefix.append(f"step={self.step}")
        if prefix:
            return f"[{' '.join(prefix)}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        return {
            'error': type(self).__name__,
            'host': self.host,
            'step': self.step,
            'message': self.message,
        }


class ConfigError(SwarmctlError):
    """Malformed or inconsistent host registry or configuration."""


class ExecutionError(SwarmctlError):
    """A remote command could not be delivered or its result could not be read."""


class ExecutionTimeout(ExecutionError):
    """A remote command did not finish within its timeout."""


class InstallError(SwarmctlError):
    """Runtime installation failed on a host."""


class InitError(SwarmctlError):
    """The leader failed to initialize the swarm. Fatal for the run."""


class CredentialError(SwarmctlError):
    """Join credentials could not be read from the leader."""


class JoinError(SwarmctlError):
    """At least one host failed to join the swarm.

    Carries the full report so callers can still see which hosts succeeded.
    """

    def __init__(self, message: str, report=None, step: Optional[str] = 'join'):
        self.report = report
        super().__init__(message, host=None, step=step)
