"""Idempotent preparation of the remote host (apt-based).

Each tool is a two-branch shell script: report the version if present, install
and start it otherwise. A failing script has no designated exit code and falls
through to the CLI catch-all.
"""

from __future__ import annotations

import logging

from remote_deploy.deploy_log import SUCCESS
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)

DOCKER_PACKAGES = "docker-ce docker-ce-cli containerd.io docker-buildx-plugin docker-compose-plugin"


def stale_docker_sources_remote_cmd() -> str:
    return (
        "sudo rm -f /etc/apt/sources.list.d/docker.list; "
        "sudo rm -f /etc/apt/sources.list.d/docker.list.save"
    )


def apt_update_remote_cmd() -> str:
    return "sudo apt-get update"


def docker_ensure_installed_remote_cmd() -> str:
    return (
        "if command -v docker >/dev/null 2>&1 && docker compose version >/dev/null 2>&1; then "
        "echo 'Docker and Docker-Compose already installed'; "
        "echo \"Docker Version: $(docker --version)\"; "
        "echo \"Docker-Compose Version: $(docker compose version)\"; "
        "else "
        "echo 'Installing latest versions of Docker and Docker-Compose...' && "
        "sudo apt-get install -y curl ca-certificates && "
        "sudo mkdir -p /etc/apt/keyrings && "
        "sudo curl -fsSL https://download.docker.com/linux/ubuntu/gpg -o /etc/apt/keyrings/docker.asc && "
        "sudo chmod a+r /etc/apt/keyrings/docker.asc && "
        "echo \"deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.asc] "
        "https://download.docker.com/linux/ubuntu $(. /etc/os-release && echo \"$VERSION_CODENAME\") stable\" "
        "| sudo tee /etc/apt/sources.list.d/docker.list >/dev/null && "
        "sudo apt-get update && "
        f"sudo apt-get install -y {DOCKER_PACKAGES} && "
        "sudo systemctl enable docker && "
        "sudo systemctl start docker && "
        "echo 'Docker and Docker-Compose installed successfully' && "
        "echo \"Docker Version: $(docker --version)\" && "
        "echo \"Docker-Compose Version: $(docker compose version)\"; "
        "fi"
    )


def docker_group_remote_cmd() -> str:
    return 'sudo usermod -aG docker "$USER"'


def nginx_ensure_installed_remote_cmd() -> str:
    return (
        "if command -v nginx >/dev/null 2>&1; then "
        "echo 'NGINX is already installed'; "
        "nginx -v 2>&1; "
        "else "
        "sudo apt-get install -y nginx && "
        "sudo systemctl enable nginx && "
        "sudo systemctl start nginx && "
        "echo 'NGINX installed successfully' && "
        "nginx -v 2>&1; "
        "fi"
    )


def _echo_output(text: str) -> None:
    for line in text.strip().splitlines():
        logger.info("  %s", line)


def prepare_remote_environment(remote: RemoteHost) -> None:
    logger.info("Cleaning up any corrupted repository configurations...")
    remote.check(stale_docker_sources_remote_cmd())

    logger.info("Updating system packages...")
    remote.check(apt_update_remote_cmd())
    logger.log(SUCCESS, "System packages updated")

    logger.info("Installing Docker and Docker Compose if not present...")
    _echo_output(remote.check(docker_ensure_installed_remote_cmd()).stdout)

    logger.info("Adding %s to docker group...", remote.target.user)
    remote.check(docker_group_remote_cmd())

    logger.info("Installing NGINX if not present...")
    _echo_output(remote.check(nginx_ensure_installed_remote_cmd()).stdout)

    logger.log(SUCCESS, "Remote environment preparation completed")
