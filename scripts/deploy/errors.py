"""Typed deployment failures.

Every stage raises one of these at the failure site; only
:func:`deploy.main` turns them into a process exit code.
"""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    GENERIC = 1
    SSH_KEY = 2
    GIT = 3
    BUILD_DESCRIPTOR = 4
    SSH_CONNECT = 5
    TRANSFER = 7
    INTERRUPTED = 130


class DeployError(RuntimeError):
    exit_code: ExitCode = ExitCode.GENERIC


class DeploymentCancelled(DeployError):
    """Operator declined to proceed. Not a failure."""

    exit_code = ExitCode.OK


class SshKeyError(DeployError):
    """SSH key missing, or a local directory cannot be accessed."""

    exit_code = ExitCode.SSH_KEY


class GitOperationError(DeployError):
    exit_code = ExitCode.GIT


class BuildDescriptorMissing(DeployError):
    exit_code = ExitCode.BUILD_DESCRIPTOR


class SshConnectionError(DeployError):
    exit_code = ExitCode.SSH_CONNECT


class TransferError(DeployError):
    exit_code = ExitCode.TRANSFER


class RemoteCommandError(DeployError):
    """A remote command outside the tolerated set returned non-zero."""

    def __init__(self, message: str, *, returncode: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.detail = detail


class ProxyConfigError(RemoteCommandError):
    pass


class ContainerStartError(RemoteCommandError):
    pass
