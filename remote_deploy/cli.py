#!/usr/bin/env python3
"""Deploy a Dockerized GitHub repository to an Ubuntu server behind Nginx.

Usage:
    remote-deploy              # interactive deployment
    remote-deploy --cleanup    # tear down everything a deployment created

Inputs are prompted for; values found in the environment, `.env.deploy` or
`.env.deploy.secrets` (working directory) are offered as defaults.

Security note: this script shells out to `git`, `ssh` and `scp`.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
import time
import traceback
from datetime import datetime
from pathlib import Path
from typing import Callable

import requests

from remote_deploy import cleanup, deployer, health, nginx, provision, source
from remote_deploy.config import DeployConfig, collect_cleanup_config, collect_deploy_config
from remote_deploy.deploy_log import SUCCESS, StepLogger, close_logging, configure_logging
from remote_deploy.env_schema import EnvValidationError, VarsEnum, load_settings
from remote_deploy.errors import DeployError, ExitCode
from remote_deploy.ssh import RemoteHost, ensure_reachable

logger = logging.getLogger("remote_deploy")

SEPARATOR = "----------------"

INTRO_LINES = (
    "These are the details needed to proceed with your deployment:",
    "1. GitHub Repository URL - the full URL of the repository with your Dockerized application.",
    "2. Personal Access Token (PAT) - a token that allows access to the repository.",
    "3. Remote Server details - the address and username of the server to deploy to.",
    "4. SSH Key Path - the path to the private key (on this machine) for the remote server.",
    "5. Application Port - the internal port of your Dockerized application.",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deploy a Dockerized app to a remote server behind Nginx")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove the container, image, Nginx site and deployment directory from the remote server",
    )
    return parser


def run_deploy(
    config: DeployConfig,
    *,
    remote: RemoteHost,
    log_step: StepLogger,
    http_get: Callable[..., requests.Response] = requests.get,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    log_step("Cloning Repo provided using PAT", icon="📥")
    repo_dir = source.clone_or_update(
        repo_url=config.repo_url,
        pat=config.pat,
        work_dir=config.work_dir,
        branch=config.git_branch,
    )
    descriptor = source.detect_build_descriptor(repo_dir)

    log_step("Test SSH Connection to Remote server with dry-run", icon="🔌")
    ensure_reachable(remote)

    log_step("Preparing environment on remote server", icon="🛠️")
    provision.prepare_remote_environment(remote)

    log_step("Deploying Dockerized Application on remote server", icon="📦")
    deployer.transfer_project(remote, repo_dir=repo_dir, remote_dir=config.names.remote_dir)
    deployer.deploy_container(remote, names=config.names, app_port=config.app_port, descriptor=descriptor)
    health.validate_container(
        remote,
        name=config.names.container,
        app_port=config.app_port,
        settle_seconds=config.settle_seconds,
        sleep=sleep,
    )

    log_step("Configuring Nginx Reverse Proxy", icon="🌐")
    nginx.configure_reverse_proxy(remote, site=config.names.nginx_site, app_port=config.app_port)

    log_step("Validating Complete Deployment", icon="🔎")
    health.validate_deployment(remote, name=config.names.container, address=config.target.address, http_get=http_get)

    log_step("Cleanup and Finalization", icon="⏳")
    if config.stabilize_seconds > 0:
        logger.info("Waiting %ss to ensure all services stabilize...", config.stabilize_seconds)
        sleep(config.stabilize_seconds)

    logger.log(SUCCESS, "=========> Deployment Complete! =========")
    logger.log(SUCCESS, "Container running on port %d", config.app_port)
    logger.log(SUCCESS, "Nginx proxy configured on port 80")
    logger.info("View the application at: http://%s/", config.target.address)
    status = remote.run(health.container_uptime_remote_cmd(config.names.container))
    logger.info("Container status: %s", status.output or "unknown")


def _log_failure_location(exc: BaseException) -> None:
    frames = traceback.extract_tb(exc.__traceback__)
    if frames:
        frame = frames[-1]
        logger.error("Script failed at %s:%s (%s). %s: %s", Path(frame.filename).name, frame.lineno, frame.name, type(exc).__name__, exc)
    else:
        logger.error("Script failed. %s: %s", type(exc).__name__, exc)


def main(
    argv: list[str] | None = None,
    work_dir_override: Path | None = None,
    *,
    input_fn: Callable[[str], str] = input,
    secret_fn: Callable[[str], str] = getpass.getpass,
    remote_factory: Callable[..., RemoteHost] = RemoteHost,
    http_get: Callable[..., requests.Response] = requests.get,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    args = build_parser().parse_args(argv)
    work_dir = work_dir_override or Path.cwd()

    settings: dict[str, str] = {}
    settings_error: EnvValidationError | None = None
    try:
        settings = load_settings(work_dir)
    except EnvValidationError as e:
        settings_error = e

    log_dir = work_dir / (settings.get(VarsEnum.DEPLOY_LOG_DIR.value) or ".")
    log_path = configure_logging(log_dir=log_dir, started_at=datetime.now())
    logger.info("Starting deployment script. Log file: %s", log_path)

    if settings_error is not None:
        logger.error("%s", settings_error.format())
        close_logging()
        return int(ExitCode.INVALID_INPUT)

    try:
        return _dispatch(
            args,
            settings,
            work_dir=work_dir,
            log_path=log_path,
            input_fn=input_fn,
            secret_fn=secret_fn,
            remote_factory=remote_factory,
            http_get=http_get,
            sleep=sleep,
        )
    finally:
        close_logging()


def _dispatch(
    args: argparse.Namespace,
    settings: dict[str, str],
    *,
    work_dir: Path,
    log_path: Path,
    input_fn: Callable[[str], str],
    secret_fn: Callable[[str], str],
    remote_factory: Callable[..., RemoteHost],
    http_get: Callable[..., requests.Response],
    sleep: Callable[[float], None],
) -> int:
    log_step = StepLogger()
    try:
        if args.cleanup:
            logger.info("========> Cleanup Mode Activated")
            logger.info("This will remove all deployed resources from the remote server.")
            cleanup_config = collect_cleanup_config(settings, input_fn=input_fn)
            remote = remote_factory(cleanup_config.target)
            log_step("Validating SSH connection for cleanup", icon="🔌")
            ensure_reachable(remote)
            log_step("Removing deployed resources", icon="🧹")
            cleanup.cleanup_deployment(remote, names=cleanup_config.names)
            return 0

        logger.info("========> Let's get started with deployment!!!")
        for line in INTRO_LINES:
            logger.info("%s", line)
        config = collect_deploy_config(
            settings,
            work_dir=work_dir,
            input_fn=input_fn,
            secret_fn=secret_fn,
            validate_repo_url=source.validate_repo_url,
        )
        logger.info(SEPARATOR)
        logger.info("GitHub Repo URL: %s", config.repo_url)
        logger.info("Remote Server Address: %s", config.target.address)
        logger.info("Remote Server Username: %s", config.target.user)
        logger.info("SSH Key Path: %s", config.target.key_path)
        logger.info("Application Port: %d", config.app_port)

        run_deploy(
            config,
            remote=remote_factory(config.target),
            log_step=log_step,
            http_get=http_get,
            sleep=sleep,
        )
    except DeployError as e:
        logger.error("%s", e.format())
        return int(e.exit_code)
    except Exception as e:
        _log_failure_location(e)
        return int(ExitCode.UNEXPECTED)

    logger.info("Deployment completed at: %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    logger.info("Log file saved as: %s", log_path)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
