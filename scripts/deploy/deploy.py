#!/usr/bin/env python3
"""Deploy a containerized app from a GitHub repository to a remote host.

Collects parameters interactively, prepares the host (Docker, Docker Compose,
Nginx), syncs the repository, rebuilds and runs the container, puts Nginx in
front of it and probes the result. ``--cleanup`` removes everything again.

Every step is safe to repeat: re-running the whole deployment is the way to
recover from a failure part-way through.

Security note: this script shells out to ``git``, ``ssh`` and ``rsync``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.deploy import container, deploy_config, health_check, nginx_proxy, provisioner, repo_sync
from scripts.deploy.cleanup import cleanup_remote_host, remove_local_clone
from scripts.deploy.deploy_config import REMOTE_APP_DIR, DeploymentConfig
from scripts.deploy.deploy_log import ROOT_LOGGER, log_success, setup_logging
from scripts.deploy.errors import DeployError, DeploymentCancelled, ExitCode
from scripts.deploy.input_collector import InputCollector
from scripts.deploy.remote_session import RemoteSession


logger = logging.getLogger(f"{ROOT_LOGGER}.deploy")

RULE = "=" * 51


@dataclass(frozen=True)
class DeploymentReport:
    repo: repo_sync.RepoState
    descriptor: repo_sync.BuildDescriptor
    server: provisioner.ServerInfo
    provision: provisioner.ProvisionReport
    validation: health_check.ValidationReport


def session_for(config: DeploymentConfig) -> RemoteSession:
    return RemoteSession(user=config.ssh_user, host=config.server_ip, key_path=config.ssh_key)


def _banner(title: str) -> None:
    logger.info(RULE)
    logger.info("%s", title)
    logger.info(RULE)


def run_deployment(
    config: DeploymentConfig,
    *,
    workdir: Path,
    session: RemoteSession | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentReport:
    """Run the deploy pipeline once; raises :class:`DeployError` on the first failure."""
    session = session or session_for(config)
    step_number = 0

    def log_step(message: str) -> None:
        nonlocal step_number
        step_number += 1
        _banner(f"STEP {step_number}: {message}")

    log_step("Testing SSH Connection")
    logger.info("Connecting to %s...", session.target)
    session.check_connectivity()
    log_success(logger, "SSH connection established")
    logger.info("Gathering server information...")
    server = provisioner.gather_server_info(session)

    log_step("Setting Up Remote Server")
    provision = provisioner.provision_remote_host(session)
    log_success(logger, "Remote server setup completed")

    log_step("Repository Operations")
    repo = repo_sync.sync_repository(config, workdir=workdir)
    descriptor = repo_sync.detect_build_descriptor(repo.path)
    log_success(logger, "Repository operations completed")

    log_step("Transferring Files")
    session.run(f"mkdir -p {REMOTE_APP_DIR}", action="Failed to create remote application directory")
    logger.info("Transferring files...")
    session.push_tree(repo.path, REMOTE_APP_DIR)
    log_success(logger, "Files transferred")

    log_step("Deploying Docker Application")
    container.rebuild_container(session, config, descriptor, sleep=sleep)

    log_step("Configuring Nginx")
    nginx_proxy.configure_reverse_proxy(session, app_port=config.app_port)

    log_step("Final Validation")
    validation = health_check.validate_deployment(
        session,
        server_ip=config.server_ip,
        app_port=config.app_port,
        compose=descriptor.is_compose,
        sleep=sleep,
    )

    report = DeploymentReport(
        repo=repo,
        descriptor=descriptor,
        server=server,
        provision=provision,
        validation=validation,
    )
    _log_summary(config, report)
    return report


def _log_summary(config: DeploymentConfig, report: DeploymentReport) -> None:
    _banner("DEPLOYMENT COMPLETED SUCCESSFULLY!")
    log_success(logger, "Application is now accessible at:")
    logger.info("  → http://%s", config.server_ip)
    logger.info("  → http://%s/health", config.server_ip)
    logger.info("Deployment Summary:")
    logger.info("  - Repository: %s", config.repo_url)
    logger.info("  - Branch: %s", config.branch)
    logger.info("  - Commit: %s", report.repo.commit)
    logger.info("  - Server: %s (%s)", config.ssh_target, report.server.hostname)
    logger.info("  - Container: %s", container.CONTAINER_NAME)
    logger.info("  - Port: %s → 80", config.app_port)
    logger.info("To remove all deployed resources, run:")
    logger.info("  devops-deploy --cleanup")


def run_cleanup(collector: InputCollector, *, workdir: Path, session: RemoteSession | None = None) -> None:
    if session is None:
        user, address, key = collector.collect_ssh_credentials()
        session = RemoteSession(user=user, host=address, key_path=key)
    repo_url = collector.collect_cleanup_repo_url()

    cleanup_remote_host(session)

    if repo_url:
        remove_local_clone(workdir=workdir, repo_url=repo_url)
    else:
        logger.info("No repository given; local working copy left in place")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deploy a containerized app to a remote host behind an Nginx reverse proxy",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove the deployed container, image, app files and Nginx site from the remote host, then exit",
    )
    parser.add_argument(
        "--workdir",
        default=None,
        help=(
            "Directory that holds the local clone and optional .env.deploy/.env.deploy.secrets defaults. "
            "Default: current directory"
        ),
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for deploy_YYYYMMDD_HHMMSS.log. Default: current directory",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Also print captured remote command output to the console",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    workdir = Path(args.workdir).expanduser().resolve() if args.workdir else Path.cwd()
    log_dir = Path(args.log_dir).expanduser().resolve() if args.log_dir else Path.cwd()
    log_path = setup_logging(log_dir=log_dir, verbose=bool(args.verbose))

    _banner("     DevOps Deployment Script Started")
    logger.info("Log file: %s", log_path)

    collector = InputCollector(defaults=deploy_config.load_deploy_defaults(repo_root=workdir))

    try:
        if args.cleanup:
            logger.info("Starting cleanup process...")
            run_cleanup(collector, workdir=workdir)
            return int(ExitCode.OK)

        config = collector.collect()
        collector.confirm(config)
        logger.info("Starting deployment process...")
        run_deployment(config, workdir=workdir)
        logger.info("Log: %s", log_path)
        return int(ExitCode.OK)
    except DeploymentCancelled as exc:
        logger.warning("%s", exc)
        return int(ExitCode.OK)
    except DeployError as exc:
        logger.error("%s", exc)
        logger.error("Check log file: %s", log_path)
        return int(exc.exit_code)
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        logger.error("Check log file: %s", log_path)
        return int(ExitCode.INTERRUPTED)
    except Exception as exc:
        logger.exception("Deployment failed unexpectedly: %s", exc)
        logger.error("Check log file: %s", log_path)
        return int(ExitCode.GENERIC)


if __name__ == "__main__":
    raise SystemExit(main())
