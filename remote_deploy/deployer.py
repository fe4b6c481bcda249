"""Transfer the project and (re)build the single named container.

Sequence per run: stop -> remove container -> remove image -> build -> run.
The first three are best-effort; build and run failures are fatal.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from pathlib import Path

from remote_deploy.config import DeploymentNames
from remote_deploy.deploy_log import SUCCESS
from remote_deploy.errors import DeployError, ExitCode
from remote_deploy.resources import Container, Image, RemoteDirectory, reconcile_absent
from remote_deploy.source import BuildDescriptor, transfer_sources
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)

RESTART_POLICY = "unless-stopped"


def build_docker_build_remote_cmd(*, remote_dir: str, image: str, descriptor: BuildDescriptor) -> str:
    cmd = ["docker", "build", "-t", image]
    if descriptor.dockerfile:
        cmd.extend(["-f", posixpath.join(descriptor.context, descriptor.dockerfile)])
    cmd.append(descriptor.context)
    return f"cd {shlex.quote(remote_dir)} && {shlex.join(cmd)}"


def build_docker_run_remote_cmd(*, name: str, image: str, app_port: int) -> str:
    return shlex.join(
        [
            "docker",
            "run",
            "-d",
            "-p",
            f"{app_port}:{app_port}",
            "--name",
            name,
            "--restart",
            RESTART_POLICY,
            image,
        ]
    )


def transfer_project(remote: RemoteHost, *, repo_dir: Path, remote_dir: str) -> None:
    logger.info("Creating deployment directory...")
    RemoteDirectory(remote_dir).ensure_absent(remote)
    remote.check(f"mkdir -p {shlex.quote(remote_dir)}")

    logger.info("Transferring project files...")
    sources = transfer_sources(repo_dir)
    if not sources:
        raise DeployError(f"Nothing to transfer from {repo_dir}", ExitCode.TRANSFER_FAILED)
    result = remote.copy(sources, remote_dir)
    if not result.ok:
        if result.detail():
            logger.error("%s", result.detail())
        raise DeployError("File transfer failed", ExitCode.TRANSFER_FAILED)
    logger.log(SUCCESS, "Project files transferred successfully")


def deploy_container(remote: RemoteHost, *, names: DeploymentNames, app_port: int, descriptor: BuildDescriptor) -> None:
    logger.info("Building and deploying Docker container...")
    # The image shares the container's name; both are cleared so every run builds fresh.
    reconcile_absent(remote, [Container(names.container), Image(names.container)])

    logger.info("Building new Docker image...")
    build = remote.run(
        build_docker_build_remote_cmd(remote_dir=names.remote_dir, image=names.container, descriptor=descriptor)
    )
    if not build.ok:
        if build.detail():
            logger.error("%s", build.detail())
        raise DeployError("Docker deployment failed: image build failed", ExitCode.DOCKER_DEPLOY_FAILED)

    logger.info("Starting new container...")
    run = remote.run(build_docker_run_remote_cmd(name=names.container, image=names.container, app_port=app_port))
    if not run.ok:
        if run.detail():
            logger.error("%s", run.detail())
        raise DeployError("Docker deployment failed: container did not start", ExitCode.DOCKER_DEPLOY_FAILED)
    logger.log(SUCCESS, "Docker container deployed successfully")
