"""Authenticated command channel to the deployment host.

Security note: this module shells out to ``ssh`` and ``rsync``.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from scripts.deploy.deploy_config import SSH_CONNECT_TIMEOUT_SECONDS, TRANSFER_EXCLUDES
from scripts.deploy.errors import RemoteCommandError, SshConnectionError, TransferError


logger = logging.getLogger(__name__)

LOG_PREFIX = "[REMOTE]"


def _result_text(result: subprocess.CompletedProcess) -> str:
    stderr = str(result.stderr or "").strip()
    stdout = str(result.stdout or "").strip()
    return stderr or stdout


def ssh_failure_hint(error_text: str) -> str:
    lowered = error_text.lower()
    if "no route to host" in lowered:
        return "No route to host. Check VPN/LAN reachability and the server address."
    if "connection timed out" in lowered or "operation timed out" in lowered:
        return "SSH timed out. Verify the server is online and port 22 is reachable."
    if "connection refused" in lowered:
        return "SSH connection refused. Confirm SSH daemon is running and port 22 is open."
    if "permission denied" in lowered:
        return "SSH authentication failed. Verify the SSH key and username."
    if "could not resolve hostname" in lowered:
        return "Host resolution failed. Check the server address for typos."
    return ""


def _with_hint(message: str, detail: str) -> str:
    if detail:
        message = f"{message} {detail}"
    hint = ssh_failure_hint(detail)
    if hint:
        message = f"{message} {hint}"
    return message


@dataclass(frozen=True)
class RemoteSession:
    user: str
    host: str
    key_path: Path

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def ssh_options(self, *, connect_timeout: int | None = None) -> list[str]:
        opts = [
            "-i", str(self.key_path),
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=accept-new",
        ]
        if connect_timeout is not None:
            opts.extend(["-o", f"ConnectTimeout={int(connect_timeout)}"])
        return opts

    def ssh_cmd(self, remote_command: str, *, connect_timeout: int | None = None) -> list[str]:
        return ["ssh", *self.ssh_options(connect_timeout=connect_timeout), self.target, remote_command]

    def rsync_cmd(self, *, local_dir: Path, remote_dir: str, excludes: tuple[str, ...] = TRANSFER_EXCLUDES) -> list[str]:
        transport = " ".join(shlex.quote(part) for part in ["ssh", *self.ssh_options()])
        cmd = ["rsync", "-az", "--delete", "-e", transport]
        cmd.extend(f"--exclude={name}" for name in excludes)
        # Trailing slashes copy the directory contents, not the directory itself.
        cmd.extend([f"{local_dir}/", f"{self.target}:{remote_dir}/"])
        return cmd

    def check_connectivity(self, *, timeout_seconds: int = SSH_CONNECT_TIMEOUT_SECONDS) -> None:
        """Fail with :class:`SshConnectionError` unless the host answers within the timeout."""
        cmd = self.ssh_cmd("echo SSH_OK", connect_timeout=timeout_seconds)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                stdin=subprocess.DEVNULL,
                timeout=timeout_seconds + 5,
            )
        except subprocess.TimeoutExpired:
            raise SshConnectionError(
                f"SSH connection to {self.target} timed out after {timeout_seconds}s. "
                "Verify the server is online and reachable on port 22."
            )
        except FileNotFoundError:
            raise SshConnectionError("ssh client not found on PATH")

        if result.returncode != 0 or "SSH_OK" not in str(result.stdout or ""):
            message = _with_hint(f"SSH connection to {self.target} failed.", _result_text(result))
            raise SshConnectionError(message)

    def run(
        self,
        remote_command: str,
        *,
        check: bool = True,
        input_text: str | None = None,
        action: str | None = None,
    ) -> subprocess.CompletedProcess:
        """Run *remote_command* on the host and capture its output.

        With ``check=True`` a non-zero exit raises :class:`RemoteCommandError`.
        """
        logger.debug("%s $ %s", LOG_PREFIX, remote_command)
        # Without input, ssh must not read the operator's stdin.
        stdin_kwargs: dict[str, object] = {"stdin": subprocess.DEVNULL}
        if input_text is not None:
            stdin_kwargs = {"input": input_text}
        result = subprocess.run(
            self.ssh_cmd(remote_command),
            capture_output=True,
            text=True,
            check=False,
            **stdin_kwargs,
        )
        for line in str(result.stdout or "").splitlines():
            logger.debug("%s %s", LOG_PREFIX, line)
        for line in str(result.stderr or "").splitlines():
            logger.debug("%s [stderr] %s", LOG_PREFIX, line)

        if check and result.returncode != 0:
            detail = _result_text(result)
            action_text = action or f"Remote command failed: {remote_command}"
            message = _with_hint(f"{action_text} (exit code {result.returncode}).", detail)
            raise RemoteCommandError(message, returncode=result.returncode, detail=detail)
        return result

    def push_tree(self, local_dir: Path, remote_dir: str, *, excludes: tuple[str, ...] = TRANSFER_EXCLUDES) -> None:
        """Mirror *local_dir* into *remote_dir* on the host."""
        cmd = self.rsync_cmd(local_dir=local_dir, remote_dir=remote_dir, excludes=excludes)
        logger.debug("%s $ %s", LOG_PREFIX, " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False, stdin=subprocess.DEVNULL)
        except FileNotFoundError:
            raise TransferError("Transfer failed: rsync not found on PATH")
        for line in str(result.stdout or "").splitlines():
            logger.debug("[rsync] %s", line)
        if result.returncode != 0:
            raise TransferError(_with_hint(f"Transfer failed (rsync exit code {result.returncode}).", _result_text(result)))
