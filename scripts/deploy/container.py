"""Container lifecycle on the remote host.

Old containers are always removed before a new one is started, and removing
something that does not exist is not an error, so a rebuild can be repeated
safely.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from scripts.deploy.deploy_config import (
    COMPOSE_PROJECT,
    CONTAINER_NAME,
    CONTAINER_PORT,
    IMAGE_NAME,
    REMOTE_APP_DIR,
    DeploymentConfig,
)
from scripts.deploy.deploy_log import log_success
from scripts.deploy.errors import ContainerStartError
from scripts.deploy.remote_session import RemoteSession
from scripts.deploy.repo_sync import BuildDescriptor


logger = logging.getLogger(__name__)

STARTUP_DELAY_SECONDS = 5


def stop_container_cmd(name: str = CONTAINER_NAME) -> str:
    return f"sudo docker stop {name} 2>/dev/null || true"


def remove_container_cmd(name: str = CONTAINER_NAME) -> str:
    return f"sudo docker rm {name} 2>/dev/null || true"


def remove_image_cmd(image: str = IMAGE_NAME) -> str:
    return f"sudo docker rmi {image} 2>/dev/null || true"


def build_image_cmd(*, remote_dir: str = REMOTE_APP_DIR, image: str = IMAGE_NAME) -> str:
    return f"cd {remote_dir} && sudo docker build -t {image} ."


def run_container_cmd(
    *,
    host_port: int,
    name: str = CONTAINER_NAME,
    image: str = IMAGE_NAME,
    container_port: int = CONTAINER_PORT,
) -> str:
    return (
        f"sudo docker run -d --name {name} "
        f"-p {int(host_port)}:{int(container_port)} "
        f"--restart unless-stopped {image}"
    )


def container_running_cmd(name: str = CONTAINER_NAME) -> str:
    return f"sudo docker ps --filter 'name=^/{name}$' --format '{{{{.Names}}}}'"


def compose_down_cmd(*, remote_dir: str = REMOTE_APP_DIR, project: str = COMPOSE_PROJECT, remove_images: bool = False) -> str:
    rmi = " --rmi all" if remove_images else ""
    return (
        f"cd {remote_dir} 2>/dev/null "
        f"&& sudo docker-compose -p {project} down --remove-orphans{rmi} 2>/dev/null || true"
    )


def compose_up_cmd(*, app_port: int, remote_dir: str = REMOTE_APP_DIR, project: str = COMPOSE_PROJECT) -> str:
    # APP_PORT is exported so the compose file can publish ${APP_PORT}:3000.
    return f"cd {remote_dir} && sudo env APP_PORT={int(app_port)} docker-compose -p {project} up -d --build"


def compose_running_cmd(*, remote_dir: str = REMOTE_APP_DIR, project: str = COMPOSE_PROJECT) -> str:
    return f"cd {remote_dir} && sudo docker-compose -p {project} ps -q"


def remove_existing_container(session: RemoteSession, name: str = CONTAINER_NAME) -> None:
    logger.info("Stopping old containers...")
    session.run(stop_container_cmd(name))
    session.run(remove_container_cmd(name))


def _rebuild_from_dockerfile(session: RemoteSession, config: DeploymentConfig, sleep: Callable[[float], None]) -> None:
    remove_existing_container(session)

    logger.info("Building image %s...", IMAGE_NAME)
    session.run(build_image_cmd(), action="Docker image build failed")

    logger.info("Running container %s (port %s -> %s)...", CONTAINER_NAME, config.app_port, CONTAINER_PORT)
    session.run(run_container_cmd(host_port=config.app_port), action="Failed to start container")

    sleep(STARTUP_DELAY_SECONDS)
    result = session.run(container_running_cmd(), check=False)
    if CONTAINER_NAME not in str(result.stdout or "").split():
        raise ContainerStartError(
            f"Container {CONTAINER_NAME} is not running after start. "
            f"Check remote logs with: sudo docker logs {CONTAINER_NAME}"
        )


def _rebuild_from_compose(session: RemoteSession, config: DeploymentConfig, sleep: Callable[[float], None]) -> None:
    # A previous Dockerfile-based run may still hold the port.
    remove_existing_container(session)
    session.run(compose_down_cmd())

    logger.info("Starting compose project %s (APP_PORT=%s)...", COMPOSE_PROJECT, config.app_port)
    session.run(compose_up_cmd(app_port=config.app_port), action="docker-compose up failed")

    sleep(STARTUP_DELAY_SECONDS)
    result = session.run(compose_running_cmd(), check=False)
    if result.returncode != 0 or not str(result.stdout or "").strip():
        raise ContainerStartError(
            f"Compose project {COMPOSE_PROJECT} has no running containers after start. "
            f"Check remote logs with: cd {REMOTE_APP_DIR} && sudo docker-compose -p {COMPOSE_PROJECT} logs"
        )


def rebuild_container(
    session: RemoteSession,
    config: DeploymentConfig,
    descriptor: BuildDescriptor,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Replace whatever is running with a fresh build of the synced tree."""
    if descriptor.is_compose:
        _rebuild_from_compose(session, config, sleep)
    else:
        _rebuild_from_dockerfile(session, config, sleep)
    log_success(logger, "Docker application deployed")
