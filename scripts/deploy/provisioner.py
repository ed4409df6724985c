"""Bring the remote host to a state where it can run the app.

Each required tool is declared once as a :class:`RemoteDependency` and
reconciled on its own: probe, install only when absent, then make sure its
service (if any) is enabled and started. Running this twice is a no-op the
second time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from scripts.deploy.deploy_log import log_success
from scripts.deploy.remote_session import RemoteSession


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteDependency:
    name: str
    probe: str
    install_command: str
    service: str | None = None
    version_command: str | None = None
    needs_package_index: bool = False


DOCKER = RemoteDependency(
    name="Docker",
    probe="docker",
    install_command=(
        "curl -fsSL https://get.docker.com -o get-docker.sh "
        "&& sudo sh get-docker.sh "
        "&& sudo usermod -aG docker $USER"
    ),
    service="docker",
    version_command="docker --version",
)

DOCKER_COMPOSE = RemoteDependency(
    name="Docker Compose",
    probe="docker-compose",
    install_command=(
        'sudo curl -fsSL "https://github.com/docker/compose/releases/latest/download/'
        'docker-compose-$(uname -s)-$(uname -m)" -o /usr/local/bin/docker-compose '
        "&& sudo chmod +x /usr/local/bin/docker-compose"
    ),
    version_command="docker-compose --version",
)

NGINX = RemoteDependency(
    name="Nginx",
    probe="nginx",
    install_command="sudo apt-get install -y nginx",
    service="nginx",
    version_command="nginx -v 2>&1",
    needs_package_index=True,
)

REQUIRED_DEPENDENCIES: tuple[RemoteDependency, ...] = (DOCKER, DOCKER_COMPOSE, NGINX)

PACKAGE_INDEX_REFRESH_CMD = "sudo apt-get update -y"


@dataclass(frozen=True)
class ServerInfo:
    hostname: str
    os_name: str


@dataclass
class ProvisionReport:
    installed: list[str] = field(default_factory=list)
    already_present: list[str] = field(default_factory=list)
    services: dict[str, bool] = field(default_factory=dict)


def presence_probe_cmd(dependency: RemoteDependency) -> str:
    return f"command -v {dependency.probe} >/dev/null 2>&1"


def service_enable_cmd(service: str) -> str:
    return f"sudo systemctl enable {service} && sudo systemctl start {service}"


def service_status_cmd(service: str) -> str:
    return f"sudo systemctl is-active {service}"


def gather_server_info(session: RemoteSession) -> ServerInfo:
    """Hostname and OS name of the remote host, for the log only."""
    hostname = session.run("hostname", check=False)
    os_release = session.run(
        "grep '^PRETTY_NAME=' /etc/os-release | cut -d'\"' -f2",
        check=False,
    )
    info = ServerInfo(
        hostname=str(hostname.stdout or "").strip() or "unknown",
        os_name=str(os_release.stdout or "").strip() or "unknown",
    )
    logger.info("Server hostname: %s", info.hostname)
    logger.info("Server OS: %s", info.os_name)
    return info


def is_installed(session: RemoteSession, dependency: RemoteDependency) -> bool:
    result = session.run(presence_probe_cmd(dependency), check=False)
    return result.returncode == 0


class _PackageIndex:
    """Refreshes the apt index at most once, and only when an install needs it."""

    def __init__(self, session: RemoteSession) -> None:
        self._session = session
        self._refreshed = False

    def ensure_fresh(self) -> None:
        if self._refreshed:
            return
        logger.info("Updating package index...")
        self._session.run(PACKAGE_INDEX_REFRESH_CMD, action="Failed to update package index")
        self._refreshed = True


def ensure_dependency(
    session: RemoteSession,
    dependency: RemoteDependency,
    *,
    package_index: _PackageIndex | None = None,
) -> bool:
    """Install *dependency* when its probe fails.

    Returns True if an install was performed, False if it was already present.
    """
    if is_installed(session, dependency):
        log_success(logger, "%s already installed", dependency.name)
        return False

    logger.info("Installing %s...", dependency.name)
    if dependency.needs_package_index:
        (package_index or _PackageIndex(session)).ensure_fresh()
    session.run(dependency.install_command, action=f"Failed to install {dependency.name}")

    if not is_installed(session, dependency):
        logger.warning("%s install finished but '%s' is still not on PATH", dependency.name, dependency.probe)
    else:
        log_success(logger, "%s installed", dependency.name)
    return True


def ensure_service_running(session: RemoteSession, service: str) -> bool:
    """Enable and start *service*; return whether it reports ``active``.

    Enable/start failures are fatal. A non-active status afterwards is only
    reported.
    """
    session.run(service_enable_cmd(service), action=f"Failed to enable/start {service}")
    status = str(session.run(service_status_cmd(service), check=False).stdout or "").strip()
    if status == "active":
        log_success(logger, "%s service is running", service)
        return True
    logger.warning("%s service status is '%s' (expected 'active')", service, status or "unknown")
    return False


def log_versions(session: RemoteSession, dependencies: tuple[RemoteDependency, ...] = REQUIRED_DEPENDENCIES) -> None:
    for dependency in dependencies:
        if not dependency.version_command:
            continue
        result = session.run(dependency.version_command, check=False)
        version = str(result.stdout or "").strip()
        if result.returncode == 0 and version:
            logger.info("%s", version)


def provision_remote_host(
    session: RemoteSession,
    dependencies: tuple[RemoteDependency, ...] = REQUIRED_DEPENDENCIES,
) -> ProvisionReport:
    report = ProvisionReport()
    package_index = _PackageIndex(session)

    for dependency in dependencies:
        if ensure_dependency(session, dependency, package_index=package_index):
            report.installed.append(dependency.name)
        else:
            report.already_present.append(dependency.name)

    for dependency in dependencies:
        if dependency.service:
            report.services[dependency.service] = ensure_service_running(session, dependency.service)

    log_versions(session, dependencies)
    return report
