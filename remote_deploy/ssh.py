"""Remote command execution over plain `ssh`/`scp`.

Every call opens a fresh SSH session and blocks until it finishes; there is no
multiplexing. Commands return a `CommandResult` instead of raising, so callers
decide which failures are fatal.

Security note: this module shells out to `ssh` and `scp`.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from remote_deploy.config import RemoteTarget
from remote_deploy.deploy_log import SUCCESS
from remote_deploy.errors import DeployError, ExitCode

logger = logging.getLogger(__name__)

SSH_OK = "SSH_OK"
_COMMON_OPTS = ["-o", "StrictHostKeyChecking=accept-new"]


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()

    def detail(self) -> str:
        return self.stderr.strip() or self.stdout.strip()


class CommandFailed(RuntimeError):
    """A remote command without its own exit code failed; handled by the CLI catch-all."""

    def __init__(self, command: str, result: CommandResult):
        super().__init__(f"Remote command failed ({result.returncode}): {command}\n{result.detail()}")
        self.command = command
        self.result = result


def build_ssh_cmd(*, target: RemoteTarget, remote_command: str, connect_timeout: int | None = None) -> list[str]:
    cmd = ["ssh", "-i", str(target.key_path), *_COMMON_OPTS]
    # No BatchMode: a passphrase-protected key must still be able to prompt.
    if connect_timeout is not None:
        cmd.extend(["-o", f"ConnectTimeout={connect_timeout}"])
    cmd.extend([target.host, remote_command])
    return cmd


def build_ssh_connectivity_cmd(*, target: RemoteTarget) -> list[str]:
    return build_ssh_cmd(target=target, remote_command=f"echo {SSH_OK}", connect_timeout=target.connect_timeout)


def build_scp_cmd(*, target: RemoteTarget, sources: list[Path], remote_dir: str) -> list[str]:
    srcs = [str(p) for p in sources]
    # Trailing slash on remote_dir ensures scp copies into the dir.
    dest = f"{target.host}:{remote_dir.rstrip('/')}/"
    return ["scp", "-r", "-i", str(target.key_path), *_COMMON_OPTS, *srcs, dest]


def _run(cmd: list[str], *, input_text: str | None = None) -> CommandResult:
    try:
        proc = subprocess.run(
            cmd,
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        return CommandResult(returncode=127, stderr=str(exc))
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


class RemoteHost:
    """Blocking runner bound to one SSH target."""

    def __init__(self, target: RemoteTarget):
        self.target = target

    def run(self, remote_command: str, *, input_text: str | None = None) -> CommandResult:
        logger.debug("[ssh] %s: %s", self.target.host, remote_command)
        return _run(build_ssh_cmd(target=self.target, remote_command=remote_command), input_text=input_text)

    def check(self, remote_command: str, *, input_text: str | None = None) -> CommandResult:
        result = self.run(remote_command, input_text=input_text)
        if not result.ok:
            raise CommandFailed(remote_command, result)
        return result

    def copy(self, sources: list[Path], remote_dir: str) -> CommandResult:
        return _run(build_scp_cmd(target=self.target, sources=sources, remote_dir=remote_dir))

    def probe(self) -> CommandResult:
        return _run(build_ssh_connectivity_cmd(target=self.target))


def ensure_reachable(remote: RemoteHost) -> None:
    """Single bounded-timeout round-trip; failure aborts the run before any mutation."""
    target = remote.target
    logger.info("Performing SSH dry-run to %s using key %s", target.host, target.key_path)
    result = remote.probe()
    if not result.ok or SSH_OK not in result.stdout:
        if result.detail():
            logger.info("ssh said: %s", result.detail())
        raise DeployError(
            "SSH dry-run failed. Please check server address, username, and key permissions.",
            ExitCode.SSH_UNREACHABLE,
        )
    logger.log(SUCCESS, "SSH dry-run succeeded. Remote host reachable and authenticated.")
