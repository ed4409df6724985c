"""Post-deploy probes. None of them fail the run; results are reported."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

import requests

from scripts.deploy.deploy_log import log_success
from scripts.deploy.remote_session import RemoteSession


logger = logging.getLogger(__name__)

SETTLE_DELAY_SECONDS = 2
PUBLIC_PROBE_TIMEOUT_SECONDS = 10

ROOT_STATUS_CMD = "curl -s -o /dev/null -w '%{http_code}' http://localhost"
HEALTH_BODY_CMD = "curl -s http://localhost/health"


@dataclass(frozen=True)
class ValidationReport:
    status_code: str
    health_body: str
    public_status: int | None

    @property
    def responding(self) -> bool:
        return self.status_code == "200"


def probe_root_status(session: RemoteSession) -> str:
    result = session.run(ROOT_STATUS_CMD, check=False)
    return str(result.stdout or "").strip()


def fetch_health_body(session: RemoteSession) -> str:
    result = session.run(HEALTH_BODY_CMD, check=False)
    return str(result.stdout or "").strip()


def probe_public_endpoint(server_ip: str, *, timeout_seconds: int = PUBLIC_PROBE_TIMEOUT_SECONDS) -> int | None:
    """HTTP status of ``http://<server_ip>/`` as seen from this machine, or None."""
    url = f"http://{server_ip}/"
    try:
        response = requests.get(url, timeout=timeout_seconds)
    except requests.RequestException as exc:
        logger.warning("Public probe of %s failed: %s", url, exc)
        return None
    return int(response.status_code)


def validate_deployment(
    session: RemoteSession,
    *,
    server_ip: str,
    app_port: int | None = None,
    compose: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> ValidationReport:
    sleep(SETTLE_DELAY_SECONDS)

    status_code = probe_root_status(session)
    if status_code == "200":
        log_success(logger, "Application is responding (HTTP %s)", status_code)
    else:
        logger.warning("Application root returned HTTP %s (expected 200)", status_code or "no response")
        if compose:
            # Nginx only forwards to localhost:APP_PORT; compose decides what is published there.
            logger.warning(
                'Compose deployments must publish the app on host port %s, e.g. "${APP_PORT}:3000" in docker-compose.yml',
                app_port if app_port is not None else "APP_PORT",
            )

    health_body = fetch_health_body(session)
    if health_body:
        logger.info("Health check: %s", health_body)
    else:
        logger.warning("Health check returned an empty body")

    public_status = probe_public_endpoint(server_ip)
    if public_status == 200:
        log_success(logger, "Reachable from this machine at http://%s/", server_ip)
    elif public_status is not None:
        logger.warning("http://%s/ returned HTTP %s from this machine", server_ip, public_status)

    return ValidationReport(status_code=status_code, health_body=health_body, public_status=public_status)
