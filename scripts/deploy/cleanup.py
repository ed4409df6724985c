"""Tear down everything a deployment created.

Every removal tolerates the resource already being gone, so cleanup can be
run against a host in any intermediate state.
"""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

from scripts.deploy import container, nginx_proxy
from scripts.deploy.deploy_config import REMOTE_APP_DIR, is_safe_repo_name, repo_name_from_url
from scripts.deploy.deploy_log import log_success
from scripts.deploy.remote_session import RemoteSession


logger = logging.getLogger(__name__)


def remove_app_dir_cmd(remote_dir: str = REMOTE_APP_DIR) -> str:
    return f"rm -rf {remote_dir}"


def cleanup_remote_host(session: RemoteSession) -> None:
    logger.info("Cleaning up deployment on %s...", session.target)
    session.check_connectivity()

    logger.info("Stopping and removing containers...")
    session.run(container.stop_container_cmd())
    session.run(container.remove_container_cmd())
    # Must run before the app dir (and its compose file) is deleted.
    session.run(container.compose_down_cmd(remove_images=True))

    logger.info("Removing Docker image...")
    session.run(container.remove_image_cmd())

    logger.info("Removing application files...")
    session.run(remove_app_dir_cmd())

    logger.info("Removing Nginx configuration...")
    for cmd in nginx_proxy.remove_site_cmds():
        session.run(cmd)
    reload_result = session.run(nginx_proxy.NGINX_RELOAD_CMD, check=False)
    if reload_result.returncode != 0:
        logger.warning("Nginx reload after cleanup failed; Nginx may not be running")

    log_success(logger, "All resources removed successfully")


def remove_local_clone(*, workdir: Path, repo_url: str) -> bool:
    """Delete the local working copy of *repo_url* under *workdir*.

    Only a git working copy directly inside *workdir* is removed. Returns
    True when something was deleted.
    """
    name = repo_name_from_url(repo_url)
    if not is_safe_repo_name(name):
        return False
    repo_dir = workdir / name
    if repo_dir.parent != workdir or not (repo_dir / ".git").exists():
        return False
    shutil.rmtree(repo_dir)
    log_success(logger, "Removed local working copy %s", repo_dir)
    return True
