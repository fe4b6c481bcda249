"""Remote resources keyed by a fixed name, each with a presence query and a force-absent step.

Reconciling to "absent" is best-effort: a failing stop/remove is logged and
ignored, never fatal. This holds for the deploy path and for cleanup alike.
"""

from __future__ import annotations

import logging
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass

from remote_deploy import nginx
from remote_deploy.ssh import RemoteHost

logger = logging.getLogger(__name__)


class Resource(ABC):
    kind = "resource"

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @abstractmethod
    def present(self, remote: RemoteHost) -> bool: ...

    @abstractmethod
    def removal_steps(self, remote: RemoteHost) -> list[tuple[str, str]]:
        """(description, remote command) pairs that drive the resource to absent."""

    def ensure_absent(self, remote: RemoteHost) -> bool:
        """Return True if every removal step succeeded (or nothing was there)."""
        if not self.present(remote):
            logger.info("No existing %s '%s'; nothing to clean up", self.kind, self.name)
            return True

        clean = True
        for description, command in self.removal_steps(remote):
            logger.info("%s", description)
            result = remote.run(command)
            if not result.ok:
                clean = False
                logger.info("%s failed (ignored): %s", description, result.detail() or f"exit {result.returncode}")
        return clean


def _name_filter(name: str) -> str:
    return shlex.quote(f"name=^{name}$")


class Container(Resource):
    kind = "container"

    def running(self, remote: RemoteHost) -> bool:
        return bool(remote.run(f"docker ps -q --filter {_name_filter(self.name)}").output)

    def present(self, remote: RemoteHost) -> bool:
        return bool(remote.run(f"docker ps -aq --filter {_name_filter(self.name)}").output)

    def removal_steps(self, remote: RemoteHost) -> list[tuple[str, str]]:
        quoted = shlex.quote(self.name)
        steps: list[tuple[str, str]] = []
        if self.running(remote):
            steps.append(("Stopping existing container...", f"docker stop {quoted}"))
        steps.append(("Removing existing container...", f"docker rm {quoted}"))
        return steps


class Image(Resource):
    kind = "image"

    def present(self, remote: RemoteHost) -> bool:
        return bool(remote.run(f"docker images -q {shlex.quote(self.name)}").output)

    def removal_steps(self, remote: RemoteHost) -> list[tuple[str, str]]:
        return [("Removing existing image for clean build...", f"docker rmi {shlex.quote(self.name)}")]


class NginxSite(Resource):
    kind = "nginx site"

    def _paths(self) -> tuple[str, str]:
        return shlex.quote(nginx.site_available_path(self.name)), shlex.quote(nginx.site_enabled_path(self.name))

    def present(self, remote: RemoteHost) -> bool:
        available, enabled = self._paths()
        return remote.run(f"test -e {available} || test -L {enabled}").ok

    def removal_steps(self, remote: RemoteHost) -> list[tuple[str, str]]:
        available, enabled = self._paths()
        return [
            ("Removing Nginx configuration...", f"sudo rm -f {available} {enabled}"),
            ("Reloading Nginx...", "sudo systemctl reload nginx"),
        ]


class RemoteDirectory(Resource):
    kind = "directory"

    def present(self, remote: RemoteHost) -> bool:
        return remote.run(f"test -e {shlex.quote(self.name)}").ok

    def removal_steps(self, remote: RemoteHost) -> list[tuple[str, str]]:
        return [("Removing deployment directory...", f"rm -rf {shlex.quote(self.name)}")]


@dataclass
class ReconcileReport:
    clean: list[Resource]
    failed: list[Resource]


def reconcile_absent(remote: RemoteHost, resources: list[Resource]) -> ReconcileReport:
    """Drive each resource to absent, in order."""
    report = ReconcileReport(clean=[], failed=[])
    for resource in resources:
        if resource.ensure_absent(remote):
            report.clean.append(resource)
        else:
            report.failed.append(resource)
    return report
