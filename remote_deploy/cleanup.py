"""Teardown of everything a deployment leaves on the remote host.

Safe to run any number of times: each step tolerates the resource being absent.
"""

from __future__ import annotations

import logging

from remote_deploy.config import DeploymentNames
from remote_deploy.deploy_log import SUCCESS
from remote_deploy.resources import Container, Image, NginxSite, ReconcileReport, RemoteDirectory, Resource, reconcile_absent
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)


def teardown_resources(names: DeploymentNames) -> list[Resource]:
    return [
        Container(names.container),
        Image(names.container),
        NginxSite(names.nginx_site),
        RemoteDirectory(names.remote_dir),
    ]


def cleanup_deployment(remote: RemoteHost, *, names: DeploymentNames) -> ReconcileReport:
    logger.info("=========> Starting cleanup process...")
    report = reconcile_absent(remote, teardown_resources(names))
    if report.failed:
        logger.error("Some resources could not be removed: %s", ", ".join(repr(r) for r in report.failed))
    else:
        logger.log(SUCCESS, "Cleanup completed successfully!")
        logger.info("All deployed resources have been removed from the remote server.")
    return report
