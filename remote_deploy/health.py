"""Post-deploy checks: container health before the proxy, full stack after it."""

from __future__ import annotations

import logging
import shlex
import time
from typing import Callable

import requests

from remote_deploy.deploy_log import SUCCESS
from remote_deploy.errors import DeployError, ExitCode
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)

EXTERNAL_TIMEOUT_SECONDS = 10


def container_status_remote_cmd(name: str) -> str:
    return (
        f"docker ps -a --filter {shlex.quote(f'name=^{name}$')} "
        "--format 'table {{.Names}}\\t{{.Status}}\\t{{.Ports}}'"
    )


def container_state_remote_cmd(name: str) -> str:
    return f"docker inspect {shlex.quote(name)} --format '{{{{.State.Status}}}}'"


def local_http_probe_remote_cmd(port: int | None = None) -> str:
    url = f"http://localhost:{port}" if port else "http://localhost/"
    return f"curl -f -s {url} >/dev/null"


def _log_block(text: str) -> None:
    for line in text.rstrip().splitlines():
        logger.info("  %s", line)


def validate_container(
    remote: RemoteHost,
    *,
    name: str,
    app_port: int,
    settle_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Status and logs are informational; only the port probe decides."""
    logger.info("Validating Container Health...")
    logger.info("Checking container status...")
    status = remote.run(container_status_remote_cmd(name))
    if not status.ok or len(status.output.splitlines()) < 2:
        raise DeployError(f"Container {name} not found after deployment", ExitCode.CONTAINER_NOT_RUNNING)
    _log_block(status.stdout)

    logger.info("Checking container logs...")
    logs = remote.run(f"docker logs {shlex.quote(name)}")
    _log_block(logs.stdout + logs.stderr)

    logger.info("Testing application accessibility on port %d...", app_port)
    sleep(settle_seconds)
    if not remote.run(local_http_probe_remote_cmd(app_port)).ok:
        raise DeployError(f"App not accessible on port {app_port}", ExitCode.APP_UNREACHABLE)
    logger.log(SUCCESS, "Application is accessible on port %d", app_port)


def check_external_access(address: str, *, http_get: Callable[..., requests.Response] = requests.get) -> None:
    url = f"http://{address}/"
    try:
        response = http_get(url, timeout=EXTERNAL_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise DeployError(f"External access test failed: {exc}", ExitCode.EXTERNAL_CHECK_FAILED) from exc


def validate_deployment(
    remote: RemoteHost,
    *,
    name: str,
    address: str,
    http_get: Callable[..., requests.Response] = requests.get,
) -> None:
    logger.info("Checking Docker service status...")
    if not remote.run("sudo systemctl is-active docker").ok:
        raise DeployError("Docker service not running", ExitCode.DOCKER_SERVICE_DOWN)

    logger.info("Verifying container health...")
    state = remote.run(container_state_remote_cmd(name))
    if not state.ok or state.output != "running":
        raise DeployError(f"Container not running. Status: {state.output or 'unknown'}", ExitCode.CONTAINER_NOT_RUNNING)

    logger.info("Testing Nginx proxy...")
    if not remote.run(local_http_probe_remote_cmd()).ok:
        raise DeployError("Nginx proxy test failed", ExitCode.PROXY_CHECK_FAILED)

    logger.info("Testing external accessibility...")
    check_external_access(address, http_get=http_get)
    logger.log(SUCCESS, "External access verified")


def container_uptime_remote_cmd(name: str) -> str:
    return f"docker ps --filter {shlex.quote(f'name=^{name}$')} --format '{{{{.Status}}}}'"
