"""Route external HTTP traffic to the app through the host's Nginx.

The site file for the app is rewritten on every run, replacing any previous
version, and linked into ``sites-enabled``. The stock ``default`` site is
removed because it also listens on port 80. Syntax is validated with
``nginx -t`` before the reload; a failing validation is fatal.
"""
from __future__ import annotations

import logging
import re

from scripts.deploy.deploy_config import NGINX_SITE_NAME
from scripts.deploy.deploy_log import log_success
from scripts.deploy.errors import ProxyConfigError
from scripts.deploy.remote_session import RemoteSession


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SITES_AVAILABLE_DIR = "/etc/nginx/sites-available"
SITES_ENABLED_DIR = "/etc/nginx/sites-enabled"
DEFAULT_SITE_PATH = f"{SITES_ENABLED_DIR}/default"
LOG_PREFIX = "[NGINX]"


logger = logging.getLogger(__name__)

# Placeholder: {port}. Nginx variables are written with a single $.
SITE_CONFIG_TEMPLATE = """\
server {{
    listen 80;
    server_name _;

    location / {{
        proxy_pass http://localhost:{port};
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
    }}

    location /health {{
        proxy_pass http://localhost:{port}/health;
        proxy_set_header Host $host;
    }}
}}
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def site_available_path(site_name: str = NGINX_SITE_NAME) -> str:
    return f"{SITES_AVAILABLE_DIR}/{site_name}"


def site_enabled_path(site_name: str = NGINX_SITE_NAME) -> str:
    return f"{SITES_ENABLED_DIR}/{site_name}"


def render_site_config(app_port: int) -> str:
    return SITE_CONFIG_TEMPLATE.format(port=int(app_port))


def proxy_pass_targets(config_text: str) -> list[str]:
    """Return every ``proxy_pass`` target in *config_text*, in order."""
    return re.findall(r"^\s*proxy_pass\s+([^;\s]+)\s*;", config_text, re.MULTILINE)


def _routes_to_port(config_text: str, app_port: int) -> bool:
    expected = f"http://localhost:{int(app_port)}"
    targets = proxy_pass_targets(config_text)
    return bool(targets) and all(t == expected or t.startswith(f"{expected}/") for t in targets)


def write_site_cmd(site_name: str = NGINX_SITE_NAME) -> str:
    return f"sudo tee {site_available_path(site_name)} > /dev/null"


def enable_site_cmd(site_name: str = NGINX_SITE_NAME) -> str:
    return f"sudo ln -sf {site_available_path(site_name)} {site_enabled_path(site_name)}"


def remove_default_site_cmd() -> str:
    return f"sudo rm -f {DEFAULT_SITE_PATH}"


def remove_site_cmds(site_name: str = NGINX_SITE_NAME) -> list[str]:
    return [
        f"sudo rm -f {site_enabled_path(site_name)}",
        f"sudo rm -f {site_available_path(site_name)}",
    ]


NGINX_TEST_CMD = "sudo nginx -t"
NGINX_RELOAD_CMD = "sudo systemctl reload nginx"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_reverse_proxy(session: RemoteSession, *, app_port: int, site_name: str = NGINX_SITE_NAME) -> str:
    """Install the site config routing ``/`` and ``/health`` to *app_port*.

    Returns the rendered configuration. Raises :class:`ProxyConfigError`
    when the written file cannot be verified or ``nginx -t`` rejects it.
    """
    config_text = render_site_config(app_port)
    available = site_available_path(site_name)

    # 1. Write (replaces any previous version)  ────────────────────────
    logger.info("%s Writing %s", LOG_PREFIX, available)
    session.run(write_site_cmd(site_name), input_text=config_text, action=f"Failed to write {available}")

    # 2. Verify the write  ─────────────────────────────────────────────
    reread = session.run(f"cat {available}", check=False)
    if reread.returncode != 0 or not _routes_to_port(str(reread.stdout or ""), app_port):
        raise ProxyConfigError(f"Wrote {available} but it does not route to port {app_port} on re-read")

    # 3. Enable, drop the conflicting default site  ────────────────────
    session.run(enable_site_cmd(site_name), action=f"Failed to enable site {site_name}")
    session.run(remove_default_site_cmd(), action="Failed to remove default Nginx site")

    # 4. Validate syntax, then reload  ─────────────────────────────────
    result = session.run(NGINX_TEST_CMD, check=False)
    if result.returncode != 0:
        detail = str(result.stderr or "").strip() or str(result.stdout or "").strip()
        raise ProxyConfigError(
            f"Nginx configuration test failed: {detail}",
            returncode=result.returncode,
            detail=detail,
        )
    session.run(NGINX_RELOAD_CMD, action="Failed to reload Nginx")

    log_success(logger, "Nginx configured: / and /health -> localhost:%s", app_port)
    return config_text
