"""Deployment parameters, their validation rules and default resolution."""
from __future__ import annotations

import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from scripts.deploy.errors import SshKeyError


ENV_GIT_REPO = "GIT_REPO"
ENV_GIT_PAT = "GIT_PAT"
ENV_GIT_BRANCH = "GIT_BRANCH"
ENV_SSH_USER = "SSH_USER"
ENV_SERVER_IP = "SERVER_IP"
ENV_SSH_KEY = "SSH_KEY"
ENV_APP_PORT = "APP_PORT"

DEPLOY_ENV_FILE = ".env.deploy"
DEPLOY_SECRETS_FILE = ".env.deploy.secrets"

DEFAULT_BRANCH = "main"
DEFAULT_SSH_KEY = "~/.ssh/devops-key.pem"
DEFAULT_APP_PORT = 3000

CONTAINER_PORT = 3000
CONTAINER_NAME = "app-container"
IMAGE_NAME = "devops-app:latest"
COMPOSE_PROJECT = "devops-app"
REMOTE_APP_DIR = "~/app"
NGINX_SITE_NAME = "devops-app"

MIN_TOKEN_LENGTH = 40
SSH_CONNECT_TIMEOUT_SECONDS = 10
TRANSFER_EXCLUDES = (".git", "node_modules")

GIT_HOST = "github.com"

_REPO_URL_PATTERN = re.compile(r"^https://github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(\.git)?/?$")
_IPV4_PATTERN = re.compile(r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$")
_ACCEPTED_KEY_MODES = {0o400, 0o600}


class InvalidInput(ValueError):
    """A value failed its validation predicate; the operator is asked again."""


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def normalize_repo_url(value: str) -> str:
    url = str(value or "").strip()
    match = _REPO_URL_PATTERN.match(url)
    if not match:
        raise InvalidInput("Invalid GitHub URL format (expected https://github.com/<owner>/<repo>)")
    owner, repo = match.group(1), match.group(2)
    if not is_safe_repo_name(owner) or not is_safe_repo_name(repo):
        raise InvalidInput("Invalid GitHub URL format (owner and repository cannot be only dots)")
    return f"https://{GIT_HOST}/{owner}/{repo}.git"


def repo_name_from_url(url: str) -> str:
    name = str(url or "").rstrip("/").rsplit("/", 1)[-1]
    return name[: -len(".git")] if name.endswith(".git") else name


def is_safe_repo_name(name: str) -> bool:
    """False for names that would resolve to the working directory or its parent."""
    return bool(name) and name.strip(".") != ""


def validate_token(value: str) -> str:
    token = str(value or "").strip()
    if len(token) < MIN_TOKEN_LENGTH:
        raise InvalidInput("Token seems too short")
    return token


def validate_ssh_user(value: str) -> str:
    user = str(value or "").strip()
    if not user:
        raise InvalidInput("Username cannot be empty")
    return user


def validate_server_ip(value: str) -> str:
    # Syntax only; octets are not range checked.
    address = str(value or "").strip()
    if not _IPV4_PATTERN.match(address):
        raise InvalidInput("Invalid IP format")
    return address


def validate_port(value: str | int) -> int:
    raw = str(value).strip()
    # isdigit alone admits non-ASCII digits such as "²" that int() rejects.
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidInput("Invalid port number")
    port = int(raw)
    if port < 1 or port > 65535:
        raise InvalidInput("Invalid port number")
    return port


def resolve_ssh_key(value: str) -> Path:
    raw = str(value or "").strip() or DEFAULT_SSH_KEY
    path = Path(raw).expanduser()
    if not path.is_file() or not os.access(path, os.R_OK):
        raise SshKeyError(f"SSH key not found at: {path}")
    return path


def ensure_key_permissions(path: Path) -> bool:
    """Tighten *path* to 0400 unless it is already 0400 or 0600.

    Returns True when the mode was changed.
    """
    mode = stat.S_IMODE(path.stat().st_mode)
    if mode in _ACCEPTED_KEY_MODES:
        return False
    path.chmod(0o400)
    return True


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeploymentConfig:
    repo_url: str
    token: str = field(repr=False)
    branch: str
    ssh_user: str
    server_ip: str
    ssh_key: Path
    app_port: int

    @property
    def repo_name(self) -> str:
        return repo_name_from_url(self.repo_url)

    @property
    def ssh_target(self) -> str:
        return f"{self.ssh_user}@{self.server_ip}"

    @property
    def authenticated_repo_url(self) -> str:
        return self.repo_url.replace("https://", f"https://{self.token}@", 1)

    def summary_lines(self) -> list[str]:
        return [
            f"Repository: {self.repo_url}",
            f"Branch: {self.branch}",
            f"Server: {self.ssh_target}",
            f"SSH Key: {self.ssh_key}",
            f"App Port: {self.app_port}",
        ]


def read_dotenv_key(*, dotenv_path: Path, key: str) -> str:
    if not dotenv_path.exists():
        return ""
    raw = dotenv_values(dotenv_path)
    return str(raw.get(key) or "").strip()


def read_deploy_key(*, repo_root: Path, key: str) -> str:
    return read_dotenv_key(dotenv_path=repo_root / DEPLOY_ENV_FILE, key=key)


def read_deploy_secret_key(*, repo_root: Path, key: str) -> str:
    return read_dotenv_key(dotenv_path=repo_root / DEPLOY_SECRETS_FILE, key=key)


def load_deploy_defaults(*, repo_root: Path, environ: dict[str, str] | None = None) -> dict[str, str]:
    """Collect pre-seeded answers for the prompts.

    Resolution: environment variable -> .env.deploy (.env.deploy.secrets for
    the token) -> built-in default. Keys absent everywhere map to "".
    """
    env = os.environ if environ is None else environ
    builtin = {
        ENV_GIT_BRANCH: DEFAULT_BRANCH,
        ENV_SSH_KEY: DEFAULT_SSH_KEY,
        ENV_APP_PORT: str(DEFAULT_APP_PORT),
    }

    out: dict[str, str] = {}
    for key in [ENV_GIT_REPO, ENV_GIT_PAT, ENV_GIT_BRANCH, ENV_SSH_USER, ENV_SERVER_IP, ENV_SSH_KEY, ENV_APP_PORT]:
        value = str(env.get(key) or "").strip()
        if not value:
            if key == ENV_GIT_PAT:
                value = read_deploy_secret_key(repo_root=repo_root, key=key)
            else:
                value = read_deploy_key(repo_root=repo_root, key=key)
        if not value:
            value = builtin.get(key, "")
        out[key] = value
    return out
