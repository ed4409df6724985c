"""Local working copy of the application repository.

A first run clones with the token embedded in the URL, then rewrites
``origin`` so the token is not left in ``.git/config``. Later runs update
the existing copy in place; for those the token is supplied per command via
a transient ``url.<auth>.insteadOf`` override.
"""
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import yaml

from scripts.deploy.deploy_config import GIT_HOST, DeploymentConfig, is_safe_repo_name
from scripts.deploy.deploy_log import log_success, redact
from scripts.deploy.errors import BuildDescriptorMissing, GitOperationError, SshKeyError


logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"
COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml")

DESCRIPTOR_DOCKERFILE = "dockerfile"
DESCRIPTOR_COMPOSE = "compose"


@dataclass(frozen=True)
class RepoState:
    path: Path
    cloned: bool
    branch: str
    commit: str


@dataclass(frozen=True)
class BuildDescriptor:
    kind: str
    path: Path
    services: tuple[str, ...] = ()

    @property
    def is_compose(self) -> bool:
        return self.kind == DESCRIPTOR_COMPOSE


def credential_config_args(config: DeploymentConfig) -> list[str]:
    """``git -c`` arguments that route the hosting URL through the token."""
    plain_prefix = f"https://{GIT_HOST}/"
    auth_prefix = f"https://{config.token}@{GIT_HOST}/"
    return ["-c", f"url.{auth_prefix}.insteadOf={plain_prefix}"]


def _git(
    args: list[str],
    *,
    cwd: Path,
    action: str,
    secret: str | None = None,
) -> subprocess.CompletedProcess:
    cmd = ["git", *args]
    logger.debug("$ %s", redact(" ".join(cmd), secret))
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    try:
        result = subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True, check=False, env=env)
    except FileNotFoundError:
        raise GitOperationError("git not found on PATH")

    if result.returncode != 0:
        detail = redact(str(result.stderr or "").strip() or str(result.stdout or "").strip(), secret)
        message = f"{action} (exit code {result.returncode})."
        if detail:
            message = f"{message} {detail}"
        raise GitOperationError(message)
    return result


def _git_output(args: list[str], *, cwd: Path) -> str:
    try:
        result = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=False)
    except FileNotFoundError:
        return ""
    if result.returncode != 0:
        return ""
    return str(result.stdout or "").strip()


def describe_head(repo_dir: Path) -> tuple[str, str]:
    branch = _git_output(["branch", "--show-current"], cwd=repo_dir) or "unknown"
    commit = _git_output(["rev-parse", "--short", "HEAD"], cwd=repo_dir) or "unknown"
    return branch, commit


def _update_existing(config: DeploymentConfig, repo_dir: Path) -> None:
    logger.info("Repository directory exists, updating...")
    auth = credential_config_args(config)

    logger.info("Fetching latest changes from remote...")
    _git([*auth, "fetch", "origin"], cwd=repo_dir, action="Git fetch failed", secret=config.token)

    logger.info("Switching to branch: %s", config.branch)
    _git(["checkout", config.branch], cwd=repo_dir, action="Branch checkout failed")

    logger.info("Pulling latest changes...")
    _git([*auth, "pull", "origin", config.branch], cwd=repo_dir, action="Git pull failed", secret=config.token)

    log_success(logger, "Repository updated successfully")


def _clone_fresh(config: DeploymentConfig, repo_dir: Path, workdir: Path) -> None:
    logger.info("Cloning repository for the first time...")
    _git(
        ["clone", "-b", config.branch, config.authenticated_repo_url, str(repo_dir)],
        cwd=workdir,
        action="Git clone failed",
        secret=config.token,
    )
    _git(
        ["remote", "set-url", "origin", config.repo_url],
        cwd=repo_dir,
        action="Failed to reset origin URL after clone",
    )
    log_success(logger, "Repository cloned successfully")


def sync_repository(config: DeploymentConfig, *, workdir: Path) -> RepoState:
    """Clone or update the working copy under *workdir*."""
    if not workdir.is_dir():
        raise SshKeyError(f"Cannot access working directory: {workdir}")

    if not is_safe_repo_name(config.repo_name):
        raise GitOperationError(f"Refusing to use repository name {config.repo_name!r} as a local directory")
    repo_dir = workdir / config.repo_name
    logger.info("Repository name: %s", config.repo_name)

    if repo_dir.exists():
        if not repo_dir.is_dir() or not os.access(repo_dir, os.R_OK | os.X_OK):
            raise SshKeyError(f"Cannot access repository directory: {repo_dir}")
        _update_existing(config, repo_dir)
        cloned = False
    else:
        _clone_fresh(config, repo_dir, workdir)
        cloned = True

    branch, commit = describe_head(repo_dir)
    logger.info("Current directory: %s", repo_dir)
    logger.info("Current branch: %s", branch)
    logger.info("Current commit: %s", commit)
    return RepoState(path=repo_dir, cloned=cloned, branch=branch, commit=commit)


def _compose_services(path: Path) -> tuple[str, ...]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise BuildDescriptorMissing(f"{path.name} is not valid YAML: {exc}")
    if not isinstance(payload, dict):
        raise BuildDescriptorMissing(f"{path.name} is not a valid compose mapping")
    services = payload.get("services")
    if not isinstance(services, dict) or not services:
        raise BuildDescriptorMissing(f"{path.name} does not define any services")
    return tuple(str(name) for name in services)


def detect_build_descriptor(repo_dir: Path) -> BuildDescriptor:
    """Find how to build the app; a Dockerfile takes precedence over compose."""
    logger.info("Checking for Dockerfile...")
    dockerfile = repo_dir / DOCKERFILE_NAME
    if dockerfile.is_file():
        log_success(logger, "Dockerfile found")
        return BuildDescriptor(kind=DESCRIPTOR_DOCKERFILE, path=dockerfile)

    for name in COMPOSE_FILE_NAMES:
        compose_file = repo_dir / name
        if compose_file.is_file():
            services = _compose_services(compose_file)
            log_success(logger, "%s found (services: %s)", name, ", ".join(services))
            return BuildDescriptor(kind=DESCRIPTOR_COMPOSE, path=compose_file, services=services)

    raise BuildDescriptorMissing("No Dockerfile or docker-compose.yml found in repository")
