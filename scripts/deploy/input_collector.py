"""Interactive collection of deployment parameters.

Every prompt repeats until its value passes validation. Pre-seeded values
(environment or ``.env.deploy``) are offered as the default answer.
"""
from __future__ import annotations

import getpass
import logging
from pathlib import Path
from typing import Callable, TypeVar

from scripts.deploy import deploy_config
from scripts.deploy.deploy_config import DeploymentConfig, InvalidInput
from scripts.deploy.deploy_log import BLUE, NC, YELLOW, log_success
from scripts.deploy.errors import DeploymentCancelled


logger = logging.getLogger(__name__)

T = TypeVar("T")

PromptFn = Callable[[str], str]


class InputCollector:
    def __init__(
        self,
        *,
        defaults: dict[str, str] | None = None,
        prompt: PromptFn = input,
        secret_prompt: PromptFn = getpass.getpass,
    ) -> None:
        self.defaults = dict(defaults or {})
        self._prompt = prompt
        self._secret_prompt = secret_prompt

    # -- low level --------------------------------------------------------

    def _ask(self, label: str, *, default: str = "", secret: bool = False) -> str:
        if default and not secret:
            label = f"{label} [{default}]"
        elif default:
            label = f"{label} [configured]"
        reader = self._secret_prompt if secret else self._prompt
        try:
            value = reader(f"{BLUE}{label}: {NC}")
        except (EOFError, KeyboardInterrupt):
            raise DeploymentCancelled("Input aborted by user")
        value = str(value or "").strip()
        return value or default

    def _ask_until_valid(
        self,
        label: str,
        validate: Callable[[str], T],
        *,
        default: str = "",
        secret: bool = False,
    ) -> T:
        while True:
            raw = self._ask(label, default=default, secret=secret)
            try:
                return validate(raw)
            except InvalidInput as exc:
                logger.warning("%s", exc)

    # -- fields -----------------------------------------------------------

    def collect_repo_url(self) -> str:
        url = self._ask_until_valid(
            "Enter Git Repository URL",
            deploy_config.normalize_repo_url,
            default=self.defaults.get(deploy_config.ENV_GIT_REPO, ""),
        )
        log_success(logger, "Repository URL validated: %s", url)
        return url

    def collect_token(self) -> str:
        token = self._ask_until_valid(
            "Enter GitHub Personal Access Token",
            deploy_config.validate_token,
            default=self.defaults.get(deploy_config.ENV_GIT_PAT, ""),
            secret=True,
        )
        log_success(logger, "GitHub token received")
        return token

    def collect_branch(self) -> str:
        default = self.defaults.get(deploy_config.ENV_GIT_BRANCH) or deploy_config.DEFAULT_BRANCH
        branch = self._ask("Enter branch name", default=default)
        logger.info("Using branch: %s", branch)
        return branch

    def collect_ssh_user(self) -> str:
        user = self._ask_until_valid(
            "Enter SSH Username",
            deploy_config.validate_ssh_user,
            default=self.defaults.get(deploy_config.ENV_SSH_USER, ""),
        )
        log_success(logger, "SSH username: %s", user)
        return user

    def collect_server_ip(self) -> str:
        address = self._ask_until_valid(
            "Enter Server IP Address",
            deploy_config.validate_server_ip,
            default=self.defaults.get(deploy_config.ENV_SERVER_IP, ""),
        )
        log_success(logger, "Server IP: %s", address)
        return address

    def collect_ssh_key(self) -> Path:
        """Resolve the key path; a missing key is fatal rather than re-asked."""
        default = self.defaults.get(deploy_config.ENV_SSH_KEY) or deploy_config.DEFAULT_SSH_KEY
        path = deploy_config.resolve_ssh_key(self._ask("Enter SSH Key Path", default=default))
        log_success(logger, "SSH key found: %s", path)
        if deploy_config.ensure_key_permissions(path):
            log_success(logger, "SSH key permissions fixed")
        return path

    def collect_app_port(self) -> int:
        default = self.defaults.get(deploy_config.ENV_APP_PORT) or str(deploy_config.DEFAULT_APP_PORT)
        port = self._ask_until_valid("Enter Application Port", deploy_config.validate_port, default=default)
        log_success(logger, "Application port: %s", port)
        return port

    # -- aggregates -------------------------------------------------------

    def collect(self) -> DeploymentConfig:
        logger.info("Collecting deployment parameters...")
        repo_url = self.collect_repo_url()
        token = self.collect_token()
        branch = self.collect_branch()
        ssh_user = self.collect_ssh_user()
        server_ip = self.collect_server_ip()
        ssh_key = self.collect_ssh_key()
        app_port = self.collect_app_port()
        return DeploymentConfig(
            repo_url=repo_url,
            token=token,
            branch=branch,
            ssh_user=ssh_user,
            server_ip=server_ip,
            ssh_key=ssh_key,
            app_port=app_port,
        )

    def collect_ssh_credentials(self) -> tuple[str, str, Path]:
        """Return (user, address, key), asking only for what is not pre-seeded."""
        user = self.defaults.get(deploy_config.ENV_SSH_USER, "")
        address = self.defaults.get(deploy_config.ENV_SERVER_IP, "")
        key = self.defaults.get(deploy_config.ENV_SSH_KEY, "")
        try:
            if user and address and key:
                return (
                    deploy_config.validate_ssh_user(user),
                    deploy_config.validate_server_ip(address),
                    deploy_config.resolve_ssh_key(key),
                )
        except InvalidInput as exc:
            logger.warning("Configured SSH credentials rejected: %s", exc)

        logger.info("Please provide SSH credentials for cleanup:")
        return self.collect_ssh_user(), self.collect_server_ip(), self.collect_ssh_key()

    def collect_cleanup_repo_url(self) -> str:
        """Repository whose local working copy cleanup should remove; "" skips it."""
        seeded = self.defaults.get(deploy_config.ENV_GIT_REPO, "")
        if seeded:
            try:
                return deploy_config.normalize_repo_url(seeded)
            except InvalidInput as exc:
                logger.warning("Configured repository URL rejected: %s", exc)

        return self._ask_until_valid(
            "Enter Git Repository URL to remove its local copy (blank to skip)",
            lambda value: deploy_config.normalize_repo_url(value) if value else "",
        )

    def confirm(self, config: DeploymentConfig) -> None:
        """Show the summary and require a literal "yes"."""
        logger.info("=" * 51)
        logger.info("Configuration Summary:")
        logger.info("=" * 51)
        for line in config.summary_lines():
            logger.info("%s", line)
        logger.info("=" * 51)

        try:
            answer = self._prompt(f"{YELLOW}Proceed with deployment? (yes/no): {NC}")
        except (EOFError, KeyboardInterrupt):
            raise DeploymentCancelled("Deployment cancelled by user")
        if str(answer or "").strip() != "yes":
            raise DeploymentCancelled("Deployment cancelled by user")
