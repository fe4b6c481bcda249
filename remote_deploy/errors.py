"""Exit codes and the error type that carries them."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    INVALID_INPUT = 1
    SSH_KEY_MISSING = 2
    SSH_UNREACHABLE = 3
    TRANSFER_FAILED = 4
    DOCKER_DEPLOY_FAILED = 5
    APP_UNREACHABLE = 6
    NGINX_CONFIG_INVALID = 7
    NGINX_RELOAD_FAILED = 8
    DOCKER_SERVICE_DOWN = 9
    CONTAINER_NOT_RUNNING = 10
    PROXY_CHECK_FAILED = 11
    EXTERNAL_CHECK_FAILED = 12
    UNEXPECTED = 99


class DeployError(Exception):
    """A failure at one of the designated checkpoints; always fatal."""

    def __init__(self, message: str, exit_code: ExitCode):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def format(self) -> str:
        return f"{self.message} (exit code {int(self.exit_code)})"
