"""Nginx reverse proxy: one fixed server block forwarding :80 to the app port."""

from __future__ import annotations

import logging
import shlex
import textwrap

from remote_deploy.deploy_log import SUCCESS
from remote_deploy.errors import DeployError, ExitCode
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)

SITES_AVAILABLE = "/etc/nginx/sites-available"
SITES_ENABLED = "/etc/nginx/sites-enabled"
DEFAULT_SITE = f"{SITES_ENABLED}/default"

_SERVER_BLOCK = textwrap.dedent(
    """\
    server {{
        listen 80;
        server_name _;

        location / {{
            proxy_pass http://localhost:{port};
            proxy_set_header Host $host;
            proxy_set_header X-Real-IP $remote_addr;
            proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
            proxy_set_header X-Forwarded-Proto $scheme;
            proxy_connect_timeout 30s;
            proxy_send_timeout 30s;
            proxy_read_timeout 30s;
        }}
    }}
    """
)


def site_available_path(site: str) -> str:
    return f"{SITES_AVAILABLE}/{site}"


def site_enabled_path(site: str) -> str:
    return f"{SITES_ENABLED}/{site}"


def render_site_config(*, app_port: int) -> str:
    return _SERVER_BLOCK.format(port=int(app_port))


def write_site_remote_cmd(site: str) -> str:
    # Content arrives on stdin so nginx variables ($host, ...) need no shell escaping.
    return f"sudo tee {shlex.quote(site_available_path(site))} >/dev/null"


def enable_site_remote_cmd(site: str) -> str:
    return f"sudo ln -sf {shlex.quote(site_available_path(site))} {shlex.quote(SITES_ENABLED + '/')}"


def remove_default_site_remote_cmd() -> str:
    return f"sudo rm -f {DEFAULT_SITE}"


def configure_reverse_proxy(remote: RemoteHost, *, site: str, app_port: int) -> None:
    logger.info("Creating Nginx configuration for reverse proxy...")
    remote.check(write_site_remote_cmd(site), input_text=render_site_config(app_port=app_port))

    logger.info("Enabling the site and removing default...")
    remote.check(enable_site_remote_cmd(site))
    remote.check(remove_default_site_remote_cmd())

    logger.info("Testing Nginx configuration...")
    test = remote.run("sudo nginx -t")
    if not test.ok:
        if test.detail():
            logger.error("%s", test.detail())
        raise DeployError("Nginx config test failed", ExitCode.NGINX_CONFIG_INVALID)

    logger.info("Reloading Nginx...")
    reload = remote.run("sudo systemctl reload nginx || sudo systemctl restart nginx")
    if not reload.ok:
        if reload.detail():
            logger.error("%s", reload.detail())
        raise DeployError("Nginx reload failed", ExitCode.NGINX_RELOAD_FAILED)
    logger.log(SUCCESS, "Nginx reverse proxy configured successfully")
